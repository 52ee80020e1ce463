"""Exception hierarchy and structured results for the learning engine.

Validation failures and lifecycle conflicts are reported through
``ValidationReport`` and ``OperationResult`` rather than raised; the
exception types exist for callers that prefer to escalate a result, and for
failures at the persistence boundary, which always propagate.

Follows the same flat hierarchy pattern as the rest of Cadence: catch
``CadenceError`` broadly or a specific subclass narrowly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class CadenceError(Exception):
    """Base exception for all Cadence errors."""


class ValidationError(CadenceError):
    """A record, pattern, metric or insight fails its structural invariants.

    Attributes:
        errors: Individual validation messages.
    """

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class DomainConflictError(CadenceError):
    """An operation violates a lifecycle rule.

    Examples: re-applying an applied insight, rolling back an insight that
    was never applied.
    """


class PersistenceError(CadenceError):
    """The persistence gateway failed (I/O, locking, serialization)."""


class DataIntegrityWarning(UserWarning):
    """Non-fatal inconsistency in stored statistics.

    Issued through ``warnings.warn`` when a pattern update leaves its
    counters inconsistent; the update itself still succeeds. Callers can
    filter or escalate the category with the ``warnings`` module.
    """


@dataclass
class ValidationReport:
    """Outcome of an explicit validation check."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def extend(self, other: ValidationReport) -> None:
        """Merge another report's messages into this one."""
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)

    def raise_if_invalid(self, subject: str = "object") -> None:
        """Escalate to ValidationError when any error was recorded.

        Raises:
            ValidationError: If the report contains errors.
        """
        if self.errors:
            raise ValidationError(
                f"{subject} failed validation: {'; '.join(self.errors)}",
                errors=list(self.errors),
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


@dataclass
class OperationResult:
    """Outcome of a lifecycle operation such as apply or rollback.

    Attributes:
        success: Whether the transition happened.
        error: Reason the transition was rejected.
        actions: Actions emitted by the transition (apply/rollback).
    """

    success: bool
    error: str | None = None
    actions: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def ok(cls, actions: list[dict[str, Any]] | None = None) -> OperationResult:
        return cls(success=True, actions=actions or [])

    @classmethod
    def rejected(cls, error: str) -> OperationResult:
        return cls(success=False, error=error)

    def raise_for_conflict(self) -> None:
        """Escalate a rejected transition to DomainConflictError."""
        if not self.success:
            raise DomainConflictError(self.error or "operation rejected")

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "error": self.error, "actions": self.actions}


__all__ = [
    "CadenceError",
    "DataIntegrityWarning",
    "DomainConflictError",
    "OperationResult",
    "PersistenceError",
    "ValidationError",
    "ValidationReport",
]

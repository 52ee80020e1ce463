"""Structured logging for Cadence.

Wraps structlog so every component logs snake_case events with key/value
fields, and so ingestion-scoped context (hook name, record id, insight id)
is attached automatically while a record or insight is being processed.

Example usage:
    from cadence.core.logging import configure_logging, get_logger, with_context

    configure_logging(level="DEBUG", format="console")

    logger = get_logger("engine")
    logger.info("record_ingested", features=8)

    with with_context(IngestContext(hook_name="format-check", record_id="r-1")):
        logger.debug("pattern_updated")  # includes hook_name and record_id
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Literal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# Keys whose values never reach a log sink
SENSITIVE_PATTERNS = frozenset({
    "api_key",
    "token",
    "secret",
    "password",
    "credential",
    "authorization",
})

_current_log_path: Path | None = None


def get_current_log_path() -> Path | None:
    """Return the file currently receiving JSON logs, if any."""
    return _current_log_path


@dataclass(frozen=True)
class IngestContext:
    """Correlation fields attached to every log entry inside a scope.

    Attributes:
        hook_name: Hook whose execution record is being processed.
        record_id: Identifier of the execution record.
        insight_id: Identifier of the insight being transitioned.
    """

    hook_name: str | None = None
    record_id: str | None = None
    insight_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return only the fields that are set."""
        return {k: v for k, v in asdict(self).items() if v is not None}


_current_context: ContextVar[IngestContext | None] = ContextVar(
    "cadence_ingest_context", default=None
)


def get_current_context() -> IngestContext | None:
    """Get the ingest context active in this task or thread."""
    return _current_context.get()


@contextmanager
def with_context(ctx: IngestContext) -> Iterator[IngestContext]:
    """Activate an ingest context for the duration of a block.

    Contexts nest; the previous context is restored on exit.
    """
    token = _current_context.set(ctx)
    try:
        yield ctx
    finally:
        _current_context.reset(token)


def _sanitize_value(key: str, value: Any) -> Any:
    key_lower = key.lower()
    for pattern in SENSITIVE_PATTERNS:
        if pattern in key_lower:
            return "[REDACTED]"
    return value


def _sanitize_event_dict(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that redacts sensitive fields, one level deep."""
    sanitized: EventDict = {}
    for key, value in event_dict.items():
        if isinstance(value, dict):
            sanitized[key] = {k: _sanitize_value(k, v) for k, v in value.items()}
        else:
            sanitized[key] = _sanitize_value(key, value)
    return sanitized


def _add_timestamp(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    event_dict["timestamp"] = datetime.now(UTC).isoformat()
    return event_dict


def _add_context(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that merges the active IngestContext.

    Explicitly passed fields win over context fields.
    """
    ctx = get_current_context()
    if ctx is not None:
        for key, value in ctx.to_dict().items():
            event_dict.setdefault(key, value)
    return event_dict


class CadenceLogger:
    """Component logger around structlog.

    The underlying structlog logger is fetched on every call so loggers
    created at import time still follow a later configure_logging().
    """

    def __init__(self, component: str, **initial_context: Any) -> None:
        self._component = component
        self._context: dict[str, Any] = {"component": component, **initial_context}

    def _get_logger(self) -> structlog.stdlib.BoundLogger:
        logger: structlog.stdlib.BoundLogger = structlog.get_logger().bind(**self._context)
        return logger

    def bind(self, **context: Any) -> CadenceLogger:
        """Return a new logger with additional bound context."""
        new_logger = CadenceLogger.__new__(CadenceLogger)
        new_logger._component = self._component
        new_logger._context = {**self._context, **context}
        return new_logger

    def unbind(self, *keys: str) -> CadenceLogger:
        """Return a new logger without the given keys."""
        new_logger = CadenceLogger.__new__(CadenceLogger)
        new_logger._component = self._component
        new_logger._context = {k: v for k, v in self._context.items() if k not in keys}
        return new_logger

    def debug(self, event: str, **kw: Any) -> None:
        self._get_logger().debug(event, **kw)

    def info(self, event: str, **kw: Any) -> None:
        self._get_logger().info(event, **kw)

    def warning(self, event: str, **kw: Any) -> None:
        self._get_logger().warning(event, **kw)

    def error(self, event: str, **kw: Any) -> None:
        self._get_logger().error(event, **kw)

    def exception(self, event: str, **kw: Any) -> None:
        """Log an error with traceback; call from an exception handler."""
        self._get_logger().exception(event, **kw)


def _build_processors(
    renderer: Processor,
    include_timestamps: bool,
    include_context: bool,
) -> list[Processor]:
    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        _sanitize_event_dict,
    ]
    if include_context:
        processors.append(_add_context)
    if include_timestamps:
        processors.append(_add_timestamp)
    processors.extend([
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        renderer,
    ])
    return processors


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO",
    format: Literal["json", "console", "both"] = "console",  # noqa: A002
    file_path: Path | None = None,
    max_file_size_mb: int = 20,
    backup_count: int = 3,
    include_timestamps: bool = True,
    include_context: bool = True,
) -> None:
    """Configure Cadence structured logging.

    Call once at startup, before the first log event.

    Args:
        level: Minimum log level.
        format: "console" for human-readable stderr output, "json" for
            structured output (to file_path if given, else stdout), "both"
            for console on stderr plus JSON to file_path.
        file_path: Log file; required when format="both".
        max_file_size_mb: Rotation threshold for the log file.
        backup_count: Number of rotated files kept.
        include_timestamps: Add an ISO-8601 UTC timestamp to each entry.
        include_context: Merge the active IngestContext into each entry.

    Raises:
        ValueError: If format="both" and no file_path is given.
    """
    global _current_log_path

    if format == "both" and file_path is None:
        raise ValueError("file_path is required when format='both'")

    log_level = getattr(logging, level)
    handlers: list[logging.Handler] = []

    if format in ("console", "both"):
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(log_level)
        handlers.append(console_handler)

    if format in ("json", "both"):
        if file_path is not None:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            _current_log_path = file_path
            file_handler = RotatingFileHandler(
                file_path,
                maxBytes=max_file_size_mb * 1024 * 1024,
                backupCount=backup_count,
                encoding="utf-8",
            )
            file_handler.setLevel(log_level)
            handlers.append(file_handler)
        else:
            json_handler = logging.StreamHandler(sys.stdout)
            json_handler.setLevel(log_level)
            handlers.append(json_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in handlers:
        root_logger.addHandler(handler)

    if format == "json":
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=_build_processors(renderer, include_timestamps, include_context),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(component: str, **initial_context: Any) -> CadenceLogger:
    """Get a logger bound to a component name (e.g. "engine", "store")."""
    return CadenceLogger(component, **initial_context)


__all__ = [
    "CadenceLogger",
    "IngestContext",
    "SENSITIVE_PATTERNS",
    "configure_logging",
    "get_current_context",
    "get_current_log_path",
    "get_logger",
    "with_context",
]

"""Time utilities for Cadence.

Every timestamp that enters the engine is normalized to timezone-aware UTC,
so comparisons never mix naive and aware values and stored ISO strings sort
chronologically.
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Convert a datetime to aware UTC.

    Naive values are taken to already be in UTC; aware values are converted.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)

"""Datetime conversion utilities."""

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Timezone-aware current time, used for rated_at / scored_at / completed_at."""
    return datetime.now(UTC)


def datetime_to_iso(value: datetime | None) -> str | None:
    """Convert a datetime to an ISO-8601 string, or None."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()

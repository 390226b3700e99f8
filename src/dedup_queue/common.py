"""Common timestamp helpers."""

from __future__ import annotations

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Current UTC timestamp."""

    return datetime.now(tz=UTC)


def from_iso(value: str) -> datetime:
    """Parse ISO datetime and ensure timezone-aware UTC fallback."""

    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


def compact_stamp(value: datetime) -> str:
    """Sortable, filename-safe UTC stamp with microseconds."""

    return value.astimezone(UTC).strftime("%Y%m%dT%H%M%S%fZ")

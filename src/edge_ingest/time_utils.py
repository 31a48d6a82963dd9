"""Shared UTC timestamp and calendar-day helpers."""

from __future__ import annotations

from datetime import UTC, date, datetime


def utc_now() -> datetime:
    """Return current UTC time with second precision."""
    return datetime.now(UTC).replace(microsecond=0)


def iso_z(value: datetime) -> str:
    """Format a datetime as ISO-8601 with trailing Z in UTC."""
    normalized = value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)
    return normalized.replace(microsecond=0).isoformat().replace("+00:00", "Z")


def utc_now_str() -> str:
    """Return current UTC timestamp in ISO-Z format."""
    return iso_z(utc_now())


def utc_today() -> date:
    return utc_now().date()


def parse_iso_z(value: str) -> datetime | None:
    """Parse an ISO timestamp and normalize to UTC."""
    raw = value.strip()
    if not raw:
        return None
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def parse_day(value: str) -> date:
    """Parse YYYY-MM-DD, raising ValueError with the offending value."""
    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise ValueError(f"invalid day value: {value}") from exc


def noon_utc(day: date) -> str:
    """Historical snapshot anchor for one calendar day."""
    return f"{day.isoformat()}T12:00:00Z"

"""UTC timestamp helpers."""

from __future__ import annotations

from datetime import datetime, timezone

_SORT_FLOOR = datetime.min.replace(tzinfo=timezone.utc)


def now_utc() -> datetime:
    """Return current timezone-aware UTC timestamp."""

    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime:
    """Return `value` as an aware UTC datetime; naive values are taken as UTC, None sorts first."""

    if value is None:
        return _SORT_FLOOR
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def run_stamp() -> str:
    return now_utc().strftime("%Y%m%d%H%M%S")

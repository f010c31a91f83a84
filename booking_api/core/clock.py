"""Clock and timezone helpers.

Nothing in the lifecycle reads the wall clock directly. Services receive a
``Clock`` so tests can pin "now", and every zone is passed by IANA name.
"""

from __future__ import annotations

import calendar
from datetime import datetime, timezone
from typing import Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from booking_api.core.errors import InvalidDateError


class Clock(Protocol):
    def now(self) -> datetime:
        """Return the current instant as an aware UTC datetime."""


class SystemClock:
    """Wall-clock implementation used in production."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def get_zone(name: str | None) -> ZoneInfo:
    """Resolve an IANA zone name, failing closed on missing/unknown names."""
    if not name or not isinstance(name, str):
        raise InvalidDateError("Timezone is required")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        raise InvalidDateError(f"Unknown timezone: {name}")


def to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_zone(value: datetime, zone_name: str) -> datetime:
    """Convert an instant into the given zone (naive values are treated as UTC)."""
    return to_utc(value).astimezone(get_zone(zone_name))


def localize(value: datetime, zone_name: str) -> datetime:
    """Attach ``zone_name`` to naive values; aware values are left untouched."""
    if value.tzinfo is not None:
        return value
    return value.replace(tzinfo=get_zone(zone_name))


def parse_datetime(value: datetime | str | None, zone_name: str) -> datetime:
    """
    Parse an ISO-8601 value into an aware datetime.

    Naive values (no offset) are interpreted in ``zone_name``.
    """
    if value is None or value == "":
        raise InvalidDateError("Date is required")
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            raise InvalidDateError(f"Invalid date: {value}")
    else:
        raise InvalidDateError(f"Invalid date: {value!r}")
    return localize(parsed, zone_name)


def add_months(value: datetime, months: int) -> datetime:
    """Calendar-month addition, clamped to the last day of the target month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)

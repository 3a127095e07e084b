"""UTC timestamp helpers and the clock-skew guard for ``updated_at``."""
from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

SKEW_STEP = timedelta(milliseconds=1)

_UTC_PATTERN = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(?P<frac>\d{1,9}))?(?:Z|[+-]00:?00)?$"
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def next_updated_at(previous: Optional[datetime], now: Optional[datetime] = None) -> datetime:
    """Return the next ``updated_at`` value without ever going backwards.

    Documents may carry a timestamp written by a host whose clock runs ahead
    of ours. When ``previous`` is later than the local clock, the result is
    ``previous`` plus one millisecond so the sequence stays strictly ordered.
    """
    current = as_utc(now) if now is not None else utc_now()
    if previous is None:
        return current
    previous = as_utc(previous)
    if previous > current:
        return previous + SKEW_STEP
    return current


def format_utc_timestamp(value: datetime) -> str:
    """Format as ``YYYY-MM-DDTHH:MM:SS.fffffffZ`` (seven fractional digits)."""
    value = as_utc(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond:06d}0Z"


def parse_utc_timestamp(text: Optional[str]) -> Optional[datetime]:
    """Parse the output of :func:`format_utc_timestamp`.

    Also accepts fewer fractional digits and a ``+00:00`` suffix. Digits past
    microsecond precision are truncated.
    """
    if text is None or not str(text).strip():
        return None
    match = _UTC_PATTERN.match(str(text).strip())
    if match is None:
        raise ValueError(f"Unrecognised UTC timestamp: {text!r}")
    base = datetime.strptime(match.group("base"), "%Y-%m-%dT%H:%M:%S")
    frac = (match.group("frac") or "0")[:6].ljust(6, "0")
    return base.replace(microsecond=int(frac), tzinfo=timezone.utc)


def format_sortable_date(value: datetime) -> str:
    return as_utc(value).strftime("%Y-%m-%d")

"""
Civil-time / absolute-time conversion and slot arithmetic.

Everything downstream of this module works on timezone-aware UTC datetimes.
This is the only place that knows about IANA zones, UTC offsets and DST.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple, Union
import logging

import pytz

from app.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

DateLike = Union[date, str]
TimeLike = Union[time, str]

END_OF_DAY = time(23, 59, 59, 999000)

# Zone names commonly submitted with spaces instead of underscores
TIMEZONE_FIXES = {
    "America/New York": "America/New_York",
    "America/Los Angeles": "America/Los_Angeles",
    "America/Mexico City": "America/Mexico_City",
    "Asia/Hong Kong": "Asia/Hong_Kong",
    "Australia/Lord Howe": "Australia/Lord_Howe",
}


@dataclass(frozen=True)
class TimeSlot:
    """A bookable half-open interval [start, end) in absolute time"""
    start: datetime
    end: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start": self.start.astimezone(timezone.utc).isoformat(),
            "end": self.end.astimezone(timezone.utc).isoformat(),
        }


def _get_timezone(tz_name: str):
    if not tz_name or not isinstance(tz_name, str):
        raise ValidationError(f"Invalid timezone: {tz_name!r}")
    try:
        return pytz.timezone(tz_name)
    except pytz.exceptions.UnknownTimeZoneError:
        raise ValidationError(f"Unknown timezone: {tz_name}")


def parse_date(value: DateLike) -> date:
    """Accept a date or a strict YYYY-MM-DD string"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise ValidationError(f"Date must be in YYYY-MM-DD format: {value!r}")


def parse_time(value: TimeLike) -> time:
    """Accept a time or an HH:MM / HH:MM:SS string"""
    if isinstance(value, time):
        return value
    try:
        return datetime.strptime(parse_time_string(value), "%H:%M").time()
    except (AttributeError, IndexError, TypeError, ValueError):
        raise ValidationError(f"Time must be in HH:MM format: {value!r}")


def parse_time_string(time_str: str) -> str:
    """Truncate 'HH:MM:SS' (as stored) to 'HH:MM'"""
    parts = time_str.split(":")
    return f"{parts[0]}:{parts[1]}"


def _localize(tz, naive: datetime) -> datetime:
    try:
        return tz.localize(naive, is_dst=None)
    except pytz.exceptions.NonExistentTimeError:
        # Inside a spring-forward gap: standard offset moves the instant past the gap
        return tz.localize(naive, is_dst=False)
    except pytz.exceptions.AmbiguousTimeError:
        # Fall-back overlap: first occurrence
        return tz.localize(naive, is_dst=True)


def local_time_to_utc(local_date: DateLike, local_time: TimeLike, tz_name: str) -> datetime:
    """
    Interpret a civil date and time-of-day in `tz_name` and return the UTC instant.

    The offset is the one in force at that civil moment, so DST is honored.

    Raises:
        ValidationError: unknown zone, malformed date/time, or an instant
            outside the representable range
    """
    tz = _get_timezone(tz_name)
    naive = datetime.combine(parse_date(local_date), parse_time(local_time))
    try:
        return _localize(tz, naive).astimezone(timezone.utc)
    except (OverflowError, ValueError):
        # Offsets push instants at the ends of the calendar out of range
        raise ValidationError(f"Cannot convert {naive.isoformat()} in {tz_name} to UTC")


def utc_to_local_time(instant: datetime, tz_name: str) -> datetime:
    """Project an absolute instant onto the civil clock of `tz_name`"""
    tz = _get_timezone(tz_name)
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(tz)


def day_of_week_in_timezone(instant: datetime, tz_name: str) -> Optional[int]:
    """
    Weekday (0 = Sunday ... 6 = Saturday) of `instant` in the civil calendar of `tz_name`.

    Returns None instead of raising when the instant is not an aware datetime or
    the zone is not recognized; callers treat None as "no data available".
    """
    if not isinstance(instant, datetime) or instant.tzinfo is None:
        logger.error(f"day_of_week_in_timezone: invalid instant {instant!r}")
        return None

    try:
        tz = _get_timezone(tz_name)
    except ValidationError as e:
        logger.error(f"day_of_week_in_timezone: {e}")
        return None

    try:
        local = instant.astimezone(tz)
    except (OverflowError, ValueError) as e:
        logger.error(f"day_of_week_in_timezone: conversion failed for {instant!r} in {tz_name}: {e}")
        return None

    # Python weekday(): Monday = 0
    return (local.weekday() + 1) % 7


def day_boundaries_in_utc(local_date: DateLike, tz_name: str) -> Tuple[datetime, datetime]:
    """UTC instants of 00:00:00.000 and 23:59:59.999 civil time on `local_date`"""
    return (
        local_time_to_utc(local_date, time(0, 0), tz_name),
        local_time_to_utc(local_date, END_OF_DAY, tz_name),
    )


def generate_time_slots(window_start: datetime, window_end: datetime, duration_minutes: int) -> List[TimeSlot]:
    """
    Split [window_start, window_end) into consecutive slots of `duration_minutes`.

    A trailing remainder shorter than the duration is dropped, never emitted short.
    Both bounds must be absolute (UTC) datetimes.
    """
    if duration_minutes <= 0 or window_end <= window_start:
        return []

    step = timedelta(minutes=duration_minutes)
    slots = []
    current = window_start
    while current + step <= window_end:
        slots.append(TimeSlot(start=current, end=current + step))
        current += step

    return slots


def time_ranges_overlap(start1: datetime, end1: datetime, start2: datetime, end2: datetime) -> bool:
    """Half-open overlap test; ranges sharing only a boundary do not overlap"""
    return start1 < end2 and start2 < end1


def normalize_timezone(tz_name: Optional[str]) -> Optional[str]:
    """Repair common spelling slips in a zone name; empty input stays empty"""
    if not tz_name:
        return tz_name
    if tz_name in TIMEZONE_FIXES:
        return TIMEZONE_FIXES[tz_name]
    return "_".join(tz_name.split())


def is_valid_timezone(tz_name: Optional[str]) -> bool:
    try:
        _get_timezone(tz_name)
        return True
    except ValidationError:
        return False

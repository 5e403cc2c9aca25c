from __future__ import annotations
import math
import re
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as date_parser

from .errors import InvalidInput

# Event times are entered as Sri Lanka wall-clock time (UTC+05:30, no DST).
LOCAL_UTC_OFFSET_MINUTES = 5 * 60 + 30
LOCAL_OFFSET = timedelta(minutes=LOCAL_UTC_OFFSET_MINUTES)
DEFAULT_DISPLAY_TZ = "Asia/Colombo"

_SLUG_STRIP = re.compile(r"[^a-z0-9]+")


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


def _resolve_display_zone() -> ZoneInfo | timezone:
    """Asia/Colombo, or the same fixed offset when no tz database is installed.

    Pinned to the input offset so displayed times and edit-form values agree.
    """
    try:
        return ZoneInfo(DEFAULT_DISPLAY_TZ)
    except ZoneInfoNotFoundError:
        return timezone(LOCAL_OFFSET, "+0530")


DISPLAY_TZ = _resolve_display_zone()


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def slugify(value: str, fallback: str = "") -> str:
    return _SLUG_STRIP.sub("-", value.lower()).strip("-") or fallback


def format_utc_with_offset(dt: datetime) -> str:
    """Render as YYYY-MM-DDTHH:MM:SS+00:00 (no fractional seconds, never Z).

    Naive datetimes are taken to be UTC already.
    """
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "+00:00"


def _split_local_input(value: str) -> datetime | None:
    date_part, sep, time_part = value.strip().partition("T")
    if not sep or not date_part or not time_part:
        return None
    date_fields = date_part.split("-")
    time_fields = time_part.split(":")
    if len(date_fields) != 3 or len(time_fields) not in (2, 3):
        return None
    second_part = time_fields[2] if len(time_fields) == 3 else "00"
    second_str, _, milli_str = second_part.partition(".")
    milli_str = (milli_str or "000")[:3].ljust(3, "0")
    try:
        year, month, day = (int(f) for f in date_fields)
        hour, minute = int(time_fields[0]), int(time_fields[1])
        second, milli = int(second_str), int(milli_str)
        return datetime(year, month, day, hour, minute, second, milli * 1000)
    except ValueError:
        return None


def convert_local_input_to_utc(raw: str, label: str) -> str:
    """Convert a local ``YYYY-MM-DDTHH:MM[:SS[.mmm]]`` string to canonical UTC."""
    if not raw:
        raise InvalidInput(f"{label} is required.")
    local = _split_local_input(raw)
    if local is None:
        raise InvalidInput(f"{label} must be a valid date.")
    try:
        return format_utc_with_offset(local - LOCAL_OFFSET)
    except OverflowError as e:
        raise InvalidInput(f"{label} must be a valid date.") from e


def _parse_any(value) -> datetime | None:
    """Parse with the generic date parser; aware UTC datetime or None."""
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        dt = date_parser.parse(value)
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        # out-of-range offsets raise ValueError here, late years OverflowError
        return dt.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        return None


def normalize_utc_date_string(value, field: str) -> str:
    """Normalize any parseable date string to canonical UTC.

    Offsets in the input are honored; naive input is taken as UTC.
    """
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(f"{field} is required.")
    dt = _parse_any(value)
    if dt is None:
        raise InvalidInput(f"{field} must be a valid date.")
    return format_utc_with_offset(dt)


def parse_utc(value: str) -> datetime:
    """Parse a stored UTC timestamp into an aware datetime. Raises ValueError."""
    s = value.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_local_display_input_value(iso_string: str) -> str:
    """UTC string -> local ``YYYY-MM-DDTHH:MM`` for an edit form, or "" if unparseable."""
    dt = _parse_any(iso_string)
    if dt is None:
        return ""
    try:
        local = dt.replace(tzinfo=None) + LOCAL_OFFSET
    except OverflowError:
        return ""
    return local.isoformat(timespec="minutes")


def format_local_display(iso_string: str) -> str:
    """Medium date, short time in the display zone, e.g. ``Jan 1, 2024, 10:00 AM``."""
    dt = _parse_any(iso_string)
    if dt is None:
        return iso_string
    try:
        local = dt.astimezone(DISPLAY_TZ)
    except OverflowError:
        return iso_string
    hour = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return f"{local:%b} {local.day}, {local.year}, {hour}:{local:%M} {meridiem}"

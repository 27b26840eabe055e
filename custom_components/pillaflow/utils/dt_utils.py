# File: utils/dt_utils.py
"""Date and time utilities for Pillaflow.

Pure Python date/time functions with ZERO Home Assistant dependencies.
All functions here can be unit tested without Home Assistant mocking.

⚠️ UTILS PURITY: NO `homeassistant.*` imports allowed.
   Uses standard library: datetime, zoneinfo.

Functions:
    - set_default_timezone / get_default_timezone: Timezone plumbing
    - dt_now_local / dt_today_local / dt_today_key: Current date/time
    - as_local / as_utc: Timezone conversion
    - dt_parse_datetime: Parse ISO datetime strings
    - dt_day_key: Canonical YYYY-MM-DD day key from any date-like input
    - dt_legacy_day_key: Legacy "Www Mmm DD YYYY" day string
    - dt_shift_day_key: Shift a day key by whole calendar days
    - dt_day_diff: Whole calendar days between two instants
    - parse_time_string: Lenient time-of-day parsing with fallback
    - parse_time_to_minutes: Strict time-of-day parsing
    - build_date_time: Combine a date and an optional time-of-day
    - dt_format_friendly: Format a datetime for notification text
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta
import logging
import re
from zoneinfo import ZoneInfo

# Module-level logger (no HA dependency)
_LOGGER = logging.getLogger(__name__)

# ==============================================================================
# Constants (local copies to avoid circular imports)
# ==============================================================================

# Default timezone - overridden during integration setup
DEFAULT_TIME_ZONE: ZoneInfo = ZoneInfo("UTC")

# Fallback time-of-day for dated items without a time
DEFAULT_FALLBACK_HOUR = 9
DEFAULT_FALLBACK_MINUTE = 0

# English labels, fixed so day keys never depend on the process locale
WEEKDAY_LABELS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
MONTH_LABELS = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)

_ISO_DATE_LENGTH = 10

# "9", "09:30", "9:30 pm", "12 AM"
_LENIENT_TIME_RE = re.compile(r"(\d{1,2})(?::(\d{2}))?\s*(AM|PM)?", re.IGNORECASE)
_STRICT_TIME_RE = re.compile(r"^(\d{1,2})(?::(\d{2}))?\s*(AM|PM)?$", re.IGNORECASE)


# ==============================================================================
# Timezone Configuration
# ==============================================================================


def set_default_timezone(tz: ZoneInfo) -> None:
    """Set the default timezone for all dt_utils functions.

    Call this during integration setup to configure the user's timezone.
    """
    global DEFAULT_TIME_ZONE  # noqa: PLW0603
    DEFAULT_TIME_ZONE = tz


def get_default_timezone() -> ZoneInfo:
    """Return the configured default timezone."""
    return DEFAULT_TIME_ZONE


# ==============================================================================
# Current Date/Time Functions
# ==============================================================================


def dt_now_local(tz: ZoneInfo | None = None) -> datetime:
    """Return the current datetime in local timezone (timezone-aware)."""
    return datetime.now(tz or DEFAULT_TIME_ZONE)


def dt_today_local(tz: ZoneInfo | None = None) -> date:
    """Return today's date in local timezone."""
    return dt_now_local(tz).date()


def dt_today_key(tz: ZoneInfo | None = None) -> str:
    """Return today's canonical day key, e.g. "2024-01-02"."""
    return dt_today_local(tz).isoformat()


# ==============================================================================
# Timezone Conversion
# ==============================================================================


def as_local(dt_obj: datetime, tz: ZoneInfo | None = None) -> datetime:
    """Convert a datetime to local timezone.

    Naive datetimes are assumed to be local wall-clock time already.
    """
    tz_info = tz or DEFAULT_TIME_ZONE
    if dt_obj.tzinfo is None:
        return dt_obj.replace(tzinfo=tz_info)
    return dt_obj.astimezone(tz_info)


def as_utc(dt_obj: datetime) -> datetime:
    """Convert a datetime to UTC; naive values are taken as local time."""
    return as_local(dt_obj).astimezone(UTC)


# ==============================================================================
# Parsing
# ==============================================================================


def dt_parse_datetime(value: str | datetime | None) -> datetime | None:
    """Parse an ISO 8601 datetime string into an aware local datetime.

    Returns None when the value cannot be parsed.
    """
    if isinstance(value, datetime):
        return as_local(value)
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    return as_local(parsed)


def _parse_legacy_day(value: str) -> date | None:
    """Parse a legacy "Mon Jan 01 2024" day string without using the locale."""
    parts = value.split()
    if len(parts) != 4:
        return None
    _weekday, month_label, day_str, year_str = parts
    month_label = month_label[:3].title()
    if month_label not in MONTH_LABELS:
        return None
    try:
        return date(int(year_str), MONTH_LABELS.index(month_label) + 1, int(day_str))
    except ValueError:
        return None


def _coerce_date(value: str | date | datetime | None) -> date | None:
    """Reduce any supported date-like input to a local calendar date."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_local(value).date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    # The leading calendar date of an ISO string is taken as-is
    try:
        return date.fromisoformat(text[:_ISO_DATE_LENGTH])
    except ValueError:
        pass

    return _parse_legacy_day(text)


# ==============================================================================
# Day Keys
# ==============================================================================


def dt_day_key(value: str | date | datetime | None) -> str:
    """Return the canonical YYYY-MM-DD day key for a date-like input.

    Accepts `date`, `datetime` (converted to local time first), ISO strings
    (the leading calendar date is used) and legacy "Mon Jan 01 2024" strings.

    Returns:
        The day key, or "" when the input carries no usable date.

    Examples:
        dt_day_key("Tue Jan 02 2024") → "2024-01-02"
        dt_day_key("2024-01-02T23:15:00Z") → "2024-01-02"
    """
    day = _coerce_date(value)
    if day is None:
        return ""
    return day.isoformat()


def dt_legacy_day_key(value: str | date | datetime | None) -> str:
    """Return the legacy "Www Mmm DD YYYY" day string for a date-like input.

    Example:
        dt_legacy_day_key("2024-01-01") → "Mon Jan 01 2024"
    """
    day = _coerce_date(value)
    if day is None:
        return ""
    return (
        f"{WEEKDAY_LABELS[day.weekday()]} {MONTH_LABELS[day.month - 1]} "
        f"{day.day:02d} {day.year}"
    )


def dt_shift_day_key(value: str | date | datetime | None, days: int) -> str:
    """Shift a day key by whole calendar days ("" for unusable input)."""
    day = _coerce_date(value)
    if day is None:
        return ""
    return (day + timedelta(days=days)).isoformat()


def dt_day_diff(earlier: datetime | date, later: datetime | date) -> int:
    """Return the whole number of local calendar days from earlier to later.

    Negative gaps are floored at zero.
    """
    start = _coerce_date(earlier)
    end = _coerce_date(later)
    if start is None or end is None:
        return 0
    return max((end - start).days, 0)


# ==============================================================================
# Time-of-day Parsing
# ==============================================================================


def parse_time_string(
    value: str | None,
    fallback_hour: int = DEFAULT_FALLBACK_HOUR,
    fallback_minute: int = DEFAULT_FALLBACK_MINUTE,
) -> tuple[int, int]:
    """Parse a time-of-day string into an (hour, minute) tuple.

    Lenient: accepts "HH:mm", "H" and "h:mm AM/PM" anywhere in the string.
    Input that cannot be turned into a valid clock time yields the fallback.
    """
    if not value or not isinstance(value, str):
        return fallback_hour, fallback_minute

    match = _LENIENT_TIME_RE.search(value.strip())
    if not match:
        return fallback_hour, fallback_minute

    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    suffix = (match.group(3) or "").upper()

    if suffix == "PM" and hour < 12:
        hour += 12
    if suffix == "AM" and hour == 12:
        hour = 0

    if hour > 23 or minute > 59:
        _LOGGER.debug(
            "Time string '%s' is out of range, using fallback %s:%s",
            value,
            fallback_hour,
            fallback_minute,
        )
        return fallback_hour, fallback_minute

    return hour, minute


def parse_time_to_minutes(value: str | None) -> int | None:
    """Parse a time-of-day string into minutes since midnight.

    Strict: 12-hour values must be 1..12, 24-hour values 0..23, minutes 0..59.

    Examples:
        parse_time_to_minutes("9:30 PM") → 1290
        parse_time_to_minutes("13 PM") → None
    """
    if not value or not isinstance(value, str):
        return None

    match = _STRICT_TIME_RE.match(value.strip())
    if not match:
        return None

    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    suffix = (match.group(3) or "").upper()

    if minute > 59:
        return None

    if suffix:
        if hour < 1 or hour > 12:
            return None
        if suffix == "PM" and hour < 12:
            hour += 12
        if suffix == "AM" and hour == 12:
            hour = 0
    elif hour > 23:
        return None

    return hour * 60 + minute


def build_date_time(
    date_input: str | date | datetime | None,
    time_str: str | None,
    fallback_hour: int = DEFAULT_FALLBACK_HOUR,
    fallback_minute: int = DEFAULT_FALLBACK_MINUTE,
    tz: ZoneInfo | None = None,
) -> datetime | None:
    """Combine a date with an optional time-of-day into a local datetime.

    A date-only value is the local calendar day it names. When no time is
    supplied the fallback hour/minute is used.

    Returns:
        Timezone-aware local datetime, or None when no usable date exists.
        Callers treat None as "do not schedule".
    """
    day = _coerce_date(date_input)
    if day is None:
        return None

    hour, minute = parse_time_string(time_str, fallback_hour, fallback_minute)
    return datetime.combine(day, time(hour, minute), tzinfo=tz or DEFAULT_TIME_ZONE)


# ==============================================================================
# Formatting
# ==============================================================================


def dt_format_friendly(dt_obj: datetime | None) -> str:
    """Format a datetime as "Mon, Jan 1, 9:00 AM" in local time ("" for None)."""
    if dt_obj is None:
        return ""
    local_dt = as_local(dt_obj)
    hour_12 = local_dt.hour % 12 or 12
    meridiem = "AM" if local_dt.hour < 12 else "PM"
    return (
        f"{WEEKDAY_LABELS[local_dt.weekday()]}, {MONTH_LABELS[local_dt.month - 1]} "
        f"{local_dt.day}, {hour_12}:{local_dt.minute:02d} {meridiem}"
    )

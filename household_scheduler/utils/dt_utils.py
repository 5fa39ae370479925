# File: utils/dt_utils.py
"""Date and time utilities for the household scheduling core.

Pure date/time functions with no knowledge of tasks, schedules or conflicts.
Uses standard library datetime/zoneinfo plus dateutil for civil-calendar
arithmetic. Every function takes its timezone explicitly; nothing here reads
the current time.

Functions:
    - get_time_zone: Resolve an IANA timezone name
    - as_utc: Convert to UTC (naive input is interpreted in a given zone)
    - as_local: Convert to a local timezone
    - localize_wall_time: Attach a zone to a naive local wall-clock time
    - start_of_local_day: Local midnight for a datetime
    - date_key: Local calendar date as "YYYY-MM-DD"
    - dt_parse_date: Parse date strings
    - dt_parse: Normalize datetime inputs to aware datetimes
    - dt_parse_rrule_until: Parse the RRULE UNTIL basic ISO form
    - dt_format_rrule_until: Format a datetime into the UNTIL basic ISO form
    - dt_format_iso_ms: UTC ISO-8601 with millisecond precision
    - dt_format_short: Human readable local time for conflict text
    - dt_add_calendar: Civil-calendar addition on wall-clock time
    - months_between: Whole calendar months between two wall-clock times
"""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta, tzinfo
import logging
import re
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil.relativedelta import relativedelta

# Module-level logger
_LOGGER = logging.getLogger(__name__)

# ==============================================================================
# Constants (local copies to keep this module free of package imports)
# ==============================================================================

UNTIL_FORMAT = "%Y%m%dT%H%M%SZ"
_UNTIL_RE = re.compile(r"^\d{8}T\d{6}Z$")

DATE_KEY_FORMAT = "%Y-%m-%d"

DISPLAY_UNKNOWN = "Unknown"


# ==============================================================================
# Timezone Handling
# ==============================================================================


def get_time_zone(name: str | None) -> ZoneInfo | None:
    """Resolve an IANA timezone name.

    Args:
        name: Timezone identifier such as "Europe/Oslo"

    Returns:
        ZoneInfo for the name, or None if it is empty or unknown.
    """
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        _LOGGER.debug("Unknown timezone %r", name)
        return None


def as_utc(dt_obj: datetime, tz: ZoneInfo | None = None) -> datetime:
    """Convert a datetime to UTC.

    Args:
        dt_obj: Datetime object; if naive it is taken as wall time in `tz`
        tz: Zone for naive input (UTC if not given)

    Returns:
        Datetime in UTC timezone
    """
    if dt_obj.tzinfo is None:
        dt_obj = localize_wall_time(dt_obj, tz or UTC)
    return dt_obj.astimezone(UTC)


def as_local(dt_obj: datetime, tz: ZoneInfo) -> datetime:
    """Convert a datetime to local timezone.

    Args:
        dt_obj: Datetime object (naive input is assumed to be UTC)
        tz: Target timezone

    Returns:
        Datetime in local timezone
    """
    if dt_obj.tzinfo is None:
        dt_obj = dt_obj.replace(tzinfo=UTC)
    return dt_obj.astimezone(tz)


def localize_wall_time(naive: datetime, tz: tzinfo) -> datetime:
    """Attach a timezone to a naive local wall-clock time.

    Ambiguous times (autumn fall-back) resolve to the first occurrence
    (fold=0). Times inside a spring-forward gap keep the pre-transition
    offset, which lands them one hour later on the wall clock.
    """
    return naive.replace(tzinfo=tz, fold=0)


def start_of_local_day(dt_obj: datetime, tz: ZoneInfo) -> datetime:
    """Get the start of day (00:00:00) for a datetime in local timezone.

    Built from the local calendar date rather than by subtracting the
    time-of-day, so it stays correct on DST transition days.
    """
    local_dt = as_local(dt_obj, tz)
    return localize_wall_time(datetime.combine(local_dt.date(), datetime.min.time()), tz)


def date_key(dt_obj: datetime, tz: ZoneInfo) -> str:
    """Return the local calendar date of `dt_obj` as "YYYY-MM-DD"."""
    return as_local(dt_obj, tz).strftime(DATE_KEY_FORMAT)


# ==============================================================================
# Parsing
# ==============================================================================


def dt_parse_date(date_str: str | date | None) -> date | None:
    """Safely parse a date string into a `datetime.date`.

    Accepts "2025-04-07" (ISO) and full ISO datetimes, of which only the
    date part is kept. Date objects pass through.

    Returns:
        The parsed date, or None if the input could not be parsed.
    """
    if date_str is None:
        return None
    if isinstance(date_str, datetime):
        return date_str.date()
    if isinstance(date_str, date):
        return date_str

    try:
        return date.fromisoformat(date_str)
    except (TypeError, ValueError):
        pass

    try:
        return datetime.fromisoformat(date_str).date()
    except (TypeError, ValueError):
        return None


def dt_parse(
    dt_input: str | datetime | None,
    default_tzinfo: ZoneInfo | None = None,
) -> datetime | None:
    """Normalize string or datetime input to an aware datetime.

    Args:
        dt_input: ISO-8601 string or datetime, or None
        default_tzinfo: Zone applied to naive input (UTC if not given)

    Returns:
        Timezone-aware datetime, or None if the input could not be parsed.

    Example:
        >>> dt_parse("2025-03-10T08:00:00Z")
        datetime.datetime(2025, 3, 10, 8, 0, tzinfo=datetime.timezone.utc)
    """
    if dt_input is None or dt_input == "":
        return None

    if isinstance(dt_input, datetime):
        result = dt_input
    elif isinstance(dt_input, str):
        try:
            result = datetime.fromisoformat(dt_input)
        except ValueError:
            return None
    else:
        return None

    if result.tzinfo is None:
        result = localize_wall_time(result, default_tzinfo or UTC)
    return result


def dt_parse_rrule_until(value: str) -> datetime | None:
    """Parse the basic ISO-8601 UTC form used by RRULE UNTIL.

    Args:
        value: String such as "20250312T080000Z"

    Returns:
        Aware UTC datetime, or None if the string is not in that exact form.
    """
    if not _UNTIL_RE.match(value):
        return None
    try:
        return datetime.strptime(value, UNTIL_FORMAT).replace(tzinfo=UTC)
    except ValueError:
        return None


# ==============================================================================
# Formatting
# ==============================================================================


def dt_format_rrule_until(dt_obj: datetime) -> str:
    """Format a datetime as RRULE UNTIL ("20250312T080000Z")."""
    return as_utc(dt_obj).strftime(UNTIL_FORMAT)


def dt_format_iso_ms(dt_obj: datetime | None) -> str | None:
    """Format as UTC ISO-8601 with millisecond precision and a Z suffix.

    Example:
        >>> dt_format_iso_ms(datetime(2025, 3, 11, 8, tzinfo=UTC))
        '2025-03-11T08:00:00.000Z'
    """
    if dt_obj is None:
        return None
    return as_utc(dt_obj).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def dt_format_short(dt_obj: datetime | None, tz: ZoneInfo) -> str:
    """Format a datetime for conflict text, e.g. "Mon 10 Mar 14:30".

    Returns:
        Formatted local time, or "Unknown" if dt_obj is None.
    """
    if dt_obj is None:
        return DISPLAY_UNKNOWN
    return as_local(dt_obj, tz).strftime("%a %d %b %H:%M")


# ==============================================================================
# Civil-calendar arithmetic
# ==============================================================================


def dt_add_calendar(
    wall_time: datetime,
    *,
    days: int = 0,
    months: int = 0,
) -> datetime:
    """Add calendar days and/or months to a naive wall-clock time.

    Month addition clamps to the end of the month (Jan 31 + 1 month =
    Feb 28) via relativedelta. Operating on wall-clock fields keeps the
    time of day fixed across DST transitions.
    """
    if months:
        wall_time = wall_time + relativedelta(months=months)
    if days:
        wall_time = wall_time + timedelta(days=days)
    return wall_time


def months_between(earlier: datetime, later: datetime) -> int:
    """Whole calendar months from `earlier` to `later` (may be negative).

    Only year and month fields are compared; the day is ignored.
    """
    return (later.year - earlier.year) * 12 + (later.month - earlier.month)

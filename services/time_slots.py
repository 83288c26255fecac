"""
Time Slots
Version: 2.0

Half-hour booking grid, duration validation and the date/time parsing
used for upstream booking rows.

Upstream rows encode times three different ways:
    "4:00 pm"                              (12-hour)
    "1899-12-30t16:00:00.000z"             (ISO, often lowercased)
    "Sat Dec 30 1899 16:00:00 GMT+0521"    (JS date string)
All of them must resolve to the same minutes-since-midnight.

NO DEPENDENCIES on other services.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import List, Optional

from dateutil import parser as date_parser
from dateutil import tz

from config import get_settings

settings = get_settings()

SLOT_MINUTES = 30
GRID_START_HOUR = 8
MIN_DURATION_MINUTES = 30
MAX_DURATION_MINUTES = 30 * 60

# Sort key for times that cannot be parsed
UNPARSEABLE_MINUTES = 999999

DATE_LABELS = ["Today", "Tomorrow", "Day After Tomorrow"]
MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
               "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

_AMPM_RE = re.compile(r'^(\d{1,2})(?::(\d{2}))?\s*(am|pm)$')
_H24_RE = re.compile(r'^(\d{1,2})(?::(\d{2}))?$')
_ISO_TIME_RE = re.compile(r't(\d{2}):(\d{2}):')
_CLOCK_RE = re.compile(r'(\d{2}):(\d{2}):(\d{2})')
_ISO_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}(t|T|$)')
_DMY_RE = re.compile(r'^(\d{1,2})[/\-](\d{1,2})[/\-](\d{2,4})$')
_SHORT_DATE_RE = re.compile(r'^(\d{1,2})\s+([A-Za-z]{3})[a-z]*\s+(\d{2}|\d{4})$')
_PAREN_RE = re.compile(r'\(.*?\)')


@dataclass
class TimeValidation:
    """Result of a from/to time check."""
    valid: bool
    error: str = ""
    duration: int = 0


def booking_tz():
    """Timezone that defines the booking calendar day."""
    return tz.gettz(settings.BOOKING_TIMEZONE)


def now_local(now: Optional[datetime] = None) -> datetime:
    """Current wall-clock time in the booking timezone."""
    if now is None:
        return datetime.now(booking_tz())
    if now.tzinfo is None:
        return now.replace(tzinfo=booking_tz())
    return now.astimezone(booking_tz())


# =============================================================================
# GRID
# =============================================================================

def generate_time_grid() -> List[str]:
    """48 half-hour values from 08:00 wrapping through to 07:30."""
    times = []
    for h in range(GRID_START_HOUR, GRID_START_HOUR + 24):
        for m in range(0, 60, SLOT_MINUTES):
            times.append(f"{h % 24:02d}:{m:02d}")
    return times


def first_bookable_time(now: Optional[datetime] = None) -> str:
    """Now rounded up to the next half-hour boundary, as HH:MM."""
    current = now_local(now)
    if current.minute <= 30:
        return f"{current.hour:02d}:30"
    return f"{(current.hour + 1) % 24:02d}:00"


def available_times(offset: int, now: Optional[datetime] = None) -> List[str]:
    """
    Times selectable for a date offset.

    For today (offset 0) every grid value earlier than now rounded up to
    the next half-hour is dropped.
    """
    times = generate_time_grid()
    if offset != 0:
        return times
    cutoff = first_bookable_time(now)
    return [t for t in times if t >= cutoff]


def time_to_minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_hhmm(minutes: int) -> str:
    minutes = minutes % (24 * 60)
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def get_time_duration(from_time: Optional[str], to_time: Optional[str]) -> int:
    """Minutes between two HH:MM values. No wraparound."""
    if not from_time or not to_time:
        return 0
    return time_to_minutes(to_time) - time_to_minutes(from_time)


def validate_time_selection(from_time: Optional[str], to_time: Optional[str]) -> TimeValidation:
    if not from_time or not to_time:
        return TimeValidation(valid=False, error="Select both from and to time")

    try:
        duration = get_time_duration(from_time, to_time)
    except ValueError:
        return TimeValidation(valid=False, error="Invalid time format")

    if duration < MIN_DURATION_MINUTES:
        return TimeValidation(valid=False, error="Duration must be at least 30 minutes", duration=duration)

    if duration > MAX_DURATION_MINUTES:
        return TimeValidation(valid=False, error="Duration cannot exceed 30 hours", duration=duration)

    return TimeValidation(valid=True, duration=duration)


# =============================================================================
# DATES
# =============================================================================

def date_for_offset(offset: int, now: Optional[datetime] = None) -> date:
    return now_local(now).date() + timedelta(days=offset)


def date_key_for_offset(offset: int, now: Optional[datetime] = None) -> str:
    """YYYY-MM-DD of today + offset on the Asia/Kolkata calendar."""
    return date_for_offset(offset, now).isoformat()


def short_date(value: date) -> str:
    """date -> "03 Jan 26"."""
    return f"{value.day:02d} {MONTH_NAMES[value.month - 1]} {value.year % 100:02d}"


def parse_calendar_date(value, now: Optional[datetime] = None) -> Optional[date]:
    """
    Calendar day of an upstream date value, or None.

    ISO timestamps with an offset are shifted into the local timezone
    before taking the day; every other format is read as written.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    s = str(value).strip()
    if not s or s == "-":
        return None

    m = _DMY_RE.match(s)
    if m:
        day, month, year = int(m.group(1)), int(m.group(2)), int(m.group(3))
        if year < 100:
            year += 2000
        try:
            return date(year, month, day)
        except ValueError:
            return None

    m = _SHORT_DATE_RE.match(s)
    if m and m.group(2).title() in MONTH_NAMES:
        year = int(m.group(3))
        if year < 100:
            year += 2000
        try:
            return date(year, MONTH_NAMES.index(m.group(2).title()) + 1, int(m.group(1)))
        except ValueError:
            return None

    try:
        if _ISO_DATE_RE.match(s):
            parsed = date_parser.isoparse(s.upper())
            if parsed.tzinfo is not None:
                local_tz = now_local(now).tzinfo
                parsed = parsed.astimezone(local_tz)
            return parsed.date()
        return date_parser.parse(_PAREN_RE.sub("", s), ignoretz=True).date()
    except (ValueError, OverflowError):
        return None


def format_short_date(value) -> str:
    """Upstream date value -> "dd Mon yy", falling back to the raw value."""
    if value is None or str(value).strip() in ("", "-"):
        return "-"
    s = str(value).strip()
    if re.match(r'^\d{2}\s+[A-Za-z]{3}\s+\d{2}$', s):
        return s
    parsed = parse_calendar_date(s)
    return short_date(parsed) if parsed else s


def date_bucket(value, now: Optional[datetime] = None) -> int:
    """0 for today, 1 for tomorrow, 2 for anything else (client clock)."""
    parsed = parse_calendar_date(value, now)
    if parsed is None:
        return 2
    today = now_local(now).date()
    if parsed == today:
        return 0
    if parsed == today + timedelta(days=1):
        return 1
    return 2


# =============================================================================
# TIMES
# =============================================================================

def parse_time_to_minutes(value) -> int:
    """
    Minutes since midnight for any upstream time encoding.

    Never raises: unparseable input returns UNPARSEABLE_MINUTES so that
    it sorts last.
    """
    if value is None or value == "":
        return UNPARSEABLE_MINUTES
    s = str(value).strip().lower()

    m = _AMPM_RE.match(s)
    if m:
        hh = int(m.group(1))
        mm = int(m.group(2) or 0)
        if m.group(3) == "pm" and hh != 12:
            hh += 12
        if m.group(3) == "am" and hh == 12:
            hh = 0
        return hh * 60 + mm

    m = _H24_RE.match(s)
    if m and int(m.group(1)) < 24:
        return int(m.group(1)) * 60 + int(m.group(2) or 0)

    m = _ISO_TIME_RE.search(s)
    if m:
        return int(m.group(1)) * 60 + int(m.group(2))

    m = _CLOCK_RE.search(s)
    if m:
        return int(m.group(1)) * 60 + int(m.group(2))

    try:
        parsed = date_parser.parse(_PAREN_RE.sub("", str(value)), ignoretz=True)
        return parsed.hour * 60 + parsed.minute
    except (ValueError, OverflowError):
        return UNPARSEABLE_MINUTES


def format_time(value) -> str:
    """Upstream time value -> "4:00 PM"; unparseable input is returned as-is."""
    if value is None or str(value).strip() == "":
        return "-"
    s = str(value).strip()
    minutes = parse_time_to_minutes(s)
    if minutes == UNPARSEABLE_MINUTES:
        return s
    hh, mm = divmod(minutes, 60)
    period = "PM" if hh >= 12 else "AM"
    if hh > 12:
        hh -= 12
    if hh == 0:
        hh = 12
    return f"{hh}:{mm:02d} {period}"

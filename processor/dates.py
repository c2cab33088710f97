"""Date and time helpers shared by the providers."""
import re
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, NamedTuple, Optional, Tuple

from dateutil import parser as date_parser
from dateutil.tz import gettz, tzoffset

ISO_UTC_FORMAT = '%Y-%m-%dT%H:%M:%SZ'
ISO_LOCAL_FORMAT = '%Y-%m-%dT%H:%M:%S'

MONTH_NAMES = [
    'january', 'february', 'march', 'april', 'may', 'june',
    'july', 'august', 'september', 'october', 'november', 'december',
]

# US abbreviations seen in feeds; dateutil ignores unknown names otherwise.
_TZINFOS = {
    'EST': tzoffset('EST', -5 * 3600),
    'EDT': tzoffset('EDT', -4 * 3600),
    'CST': tzoffset('CST', -6 * 3600),
    'CDT': tzoffset('CDT', -5 * 3600),
    'MST': tzoffset('MST', -7 * 3600),
    'MDT': tzoffset('MDT', -6 * 3600),
    'PST': tzoffset('PST', -8 * 3600),
    'PDT': tzoffset('PDT', -7 * 3600),
    'GMT': timezone.utc,
    'UTC': timezone.utc,
}

_YEAR_PATTERN = re.compile(r'\b(\d{4})\b')
_ISO_DATE_PATTERN = re.compile(r'\d{4}-\d{2}-\d{2}(?:[Tt ][\d:.]{4,}(?:Z|[+-]\d{2}:?\d{2})?)?')
_CATEGORY_DATE_PATTERN = re.compile(r'\b(\d{4})[/-](\d{2})[/-](\d{2})\b')
_MONTH_DAY_TIME_PATTERN = re.compile(
    r'\b(January|February|March|April|May|June|July|August|September|October|November|December)'
    r'\s+(\d{1,2})(?:,\s*(\d{4}))?(?:,\s*(\d{1,2})(?::(\d{2}))?\s*(am|pm))?',
    re.IGNORECASE
)
_ICAL_DATETIME_PATTERN = re.compile(
    r'^(\d{4})(\d{2})(\d{2})(?:T(\d{2})(\d{2})(\d{2})?)?(Z|[+-]\d{4})?$'
)
_LOCAL_PARTS_PATTERN = re.compile(r'(\d{4})-(\d{2})-(\d{2})(?:[Tt ](\d{2}):(\d{2}))?')


class LocalParts(NamedTuple):
    """Calendar parts of a local ISO string; hour/minute are None for date-only values."""
    year: int
    month: int
    day: int
    hour: Optional[int]
    minute: Optional[int]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_utc(value: datetime) -> str:
    """Format an aware datetime as ``YYYY-MM-DDTHH:MM:SSZ``."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(ISO_UTC_FORMAT)


def format_local(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> str:
    """Format wall-clock parts as a zone-less local ISO string."""
    return f"{year:04d}-{month:02d}-{day:02d}T{hour:02d}:{minute:02d}:00"


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO 8601 string into an aware datetime.

    Naive values are taken as UTC.

    Args:
        value: ISO string

    Returns:
        Aware datetime or None if the value cannot be parsed
    """
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = date_parser.isoparse(value.strip())
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_date_value(value: Optional[str], default_tz: Optional[str] = None) -> Optional[str]:
    """
    Parse a free-form date string found in a feed.

    Only values that carry a four digit year are accepted so that stray
    numbers are not turned into dates.

    Args:
        value: Raw date text (RFC 822, ISO 8601, "March 5, 2024 8pm" ...)
        default_tz: IANA zone applied to values without an offset (default UTC)

    Returns:
        UTC ISO string or None
    """
    if not value or not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed or not _YEAR_PATTERN.search(trimmed):
        return None
    try:
        parsed = date_parser.parse(trimmed, tzinfos=_TZINFOS)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        zone = gettz(default_tz) if default_tz else None
        parsed = parsed.replace(tzinfo=zone or timezone.utc)
    return format_utc(parsed)


def first_parseable_date(values: Iterable[str], default_tz: Optional[str] = None) -> Optional[str]:
    for value in values:
        parsed = parse_date_value(value, default_tz)
        if parsed:
            return parsed
    return None


def find_first_iso_date(text: Optional[str], default_tz: Optional[str] = None) -> Optional[str]:
    """Return the first ISO-looking date embedded in free text, as UTC ISO."""
    if not text or not isinstance(text, str):
        return None
    match = _ISO_DATE_PATTERN.search(text)
    if not match:
        return None
    return parse_date_value(match.group(0), default_tz)


def is_category_date_like(value: Optional[str]) -> bool:
    if not value or not isinstance(value, str):
        return False
    return bool(_CATEGORY_DATE_PATTERN.search(value))


def parse_category_date(categories: Iterable[str], default_tz: Optional[str] = None) -> Optional[str]:
    """
    Pick the first ``YYYY/MM/DD`` (or ``YYYY-MM-DD``) category as a midnight start.

    Args:
        categories: RSS category values
        default_tz: Zone the midnight is interpreted in

    Returns:
        UTC ISO string or None
    """
    for value in categories or []:
        if not value or not isinstance(value, str):
            continue
        match = _CATEGORY_DATE_PATTERN.search(value)
        if not match:
            continue
        try:
            return zoned_time_to_utc(
                int(match.group(1)), int(match.group(2)), int(match.group(3)), 0, 0, 0, default_tz
            )
        except ValueError:
            continue
    return None


def to_24_hour(hour: int, meridiem: Optional[str]) -> int:
    meridiem = (meridiem or '').lower()
    if meridiem == 'pm' and hour < 12:
        return hour + 12
    if meridiem == 'am' and hour == 12:
        return 0
    return hour


def parse_month_day_time(value: Optional[str], fallback_year: int,
                         default_tz: Optional[str] = None) -> Optional[str]:
    """Parse ``March 5, 2024, 7:30 pm`` style text (year and time optional)."""
    if not value or not isinstance(value, str):
        return None
    match = _MONTH_DAY_TIME_PATTERN.search(value)
    if not match:
        return None
    month = MONTH_NAMES.index(match.group(1).lower()) + 1
    day = int(match.group(2))
    year = int(match.group(3)) if match.group(3) else fallback_year
    hour = 0
    minute = int(match.group(5)) if match.group(5) else 0
    if match.group(4):
        hour = to_24_hour(int(match.group(4)), match.group(6))
    try:
        return zoned_time_to_utc(year, month, day, hour, minute, 0, default_tz)
    except ValueError:
        return None


def extract_dates_from_description(text: Optional[str], default_tz: Optional[str] = None,
                                   today: Optional[date] = None) -> Tuple[Optional[str], Optional[str]]:
    """
    Find start and end dates written in prose, e.g. "March 5, 2024, 7 pm".

    Years missing from later mentions borrow the first year found.

    Args:
        text: Plain-text description
        default_tz: Zone for the wall-clock values
        today: Reference date for the fallback year (default: today)

    Returns:
        Tuple of (start, end) UTC ISO strings; either may be None
    """
    if not text or not isinstance(text, str):
        return None, None
    matches = [match.group(0) for match in _MONTH_DAY_TIME_PATTERN.finditer(text)]
    if not matches:
        return None, None
    fallback_year = (today or date.today()).year
    for value in matches:
        year_match = _YEAR_PATTERN.search(value)
        if year_match:
            fallback_year = int(year_match.group(1))
            break
    parsed = [
        result for result in (parse_month_day_time(value, fallback_year, default_tz) for value in matches)
        if result
    ]
    start = parsed[0] if parsed else None
    end = parsed[1] if len(parsed) > 1 else None
    return start, end


def zoned_time_to_utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0,
                      second: int = 0, time_zone: Optional[str] = None) -> str:
    """
    Convert wall-clock parts in an IANA zone to a UTC ISO string.

    Unknown or missing zones are treated as UTC.

    Raises:
        ValueError: If the parts do not form a valid date/time
    """
    zone = gettz(time_zone) if time_zone else None
    local = datetime(year, month, day, hour, minute, second, tzinfo=zone or timezone.utc)
    return format_utc(local)


def parse_ical_datetime(raw_value: Optional[str], tzid: Optional[str] = None,
                        fallback_tz: Optional[str] = None) -> Optional[str]:
    """
    Parse an iCalendar DATE or DATE-TIME value.

    Resolution order: date-only values are midnight UTC, a ``Z`` suffix is
    UTC, a ``+HHMM``/``-HHMM`` suffix is applied as an offset, otherwise the
    TZID (or the fallback zone) is used, and finally UTC.

    Args:
        raw_value: Value such as ``20240115T200000`` or ``20240115``
        tzid: TZID parameter of the property, if any
        fallback_tz: Zone override configured on the datasource

    Returns:
        UTC ISO string or None
    """
    if not raw_value or not isinstance(raw_value, str):
        return None
    match = _ICAL_DATETIME_PATTERN.match(raw_value.strip())
    if not match:
        return None
    year, month, day = int(match.group(1)), int(match.group(2)), int(match.group(3))
    hour = int(match.group(4)) if match.group(4) else 0
    minute = int(match.group(5)) if match.group(5) else 0
    second = int(match.group(6)) if match.group(6) else 0
    zone_token = match.group(7) or ''
    try:
        if not match.group(4) or zone_token == 'Z':
            return zoned_time_to_utc(year, month, day, hour, minute, second)
        if zone_token:
            sign = -1 if zone_token.startswith('-') else 1
            offset = timedelta(hours=int(zone_token[1:3]), minutes=int(zone_token[3:5]))
            naive = datetime(year, month, day, hour, minute, second)
            return (naive - sign * offset).strftime(ISO_UTC_FORMAT)
        return zoned_time_to_utc(year, month, day, hour, minute, second, tzid or fallback_tz)
    except ValueError:
        return None


def is_event_in_lookahead(start: Optional[str], end: Optional[str], lookahead_days: int,
                          now: Optional[datetime] = None) -> bool:
    """
    Check whether an event overlaps ``[now, now + lookahead_days]``.

    Events without any parseable time are kept.
    """
    start_dt = parse_iso(start)
    end_dt = parse_iso(end)
    event_start = start_dt or end_dt
    event_end = end_dt or start_dt
    if event_start is None and event_end is None:
        return True
    now = now or utc_now()
    window_end = now + timedelta(days=lookahead_days)
    if event_start is not None and event_start > window_end:
        return False
    if event_end is not None and event_end < now:
        return False
    return True


def resolve_listing_year(month: int, day: int, today: date) -> int:
    """
    Year for a month/day listed without one on a venue calendar.

    Listings run forward, so a date that already passed (by more than a
    day) in an earlier month belongs to next year.
    """
    year = today.year
    try:
        candidate = date(year, month, day)
    except ValueError:
        return year
    if candidate < today - timedelta(days=1) and month < today.month:
        return year + 1
    return year


def parse_local_parts(value: Optional[str]) -> Optional[LocalParts]:
    """Read year/month/day (and hour/minute when present) from an ISO-like string."""
    if not value or not isinstance(value, str):
        return None
    match = _LOCAL_PARTS_PATTERN.search(value)
    if not match:
        return None
    return LocalParts(
        year=int(match.group(1)),
        month=int(match.group(2)),
        day=int(match.group(3)),
        hour=int(match.group(4)) if match.group(4) is not None else None,
        minute=int(match.group(5)) if match.group(5) is not None else None,
    )


def is_valid_local(value: Optional[str]) -> bool:
    """True when a local ISO-like string names a real calendar date and time."""
    parts = parse_local_parts(value)
    if parts is None:
        return False
    try:
        datetime(parts.year, parts.month, parts.day, parts.hour or 0, parts.minute or 0)
    except ValueError:
        return False
    return True


def local_to_utc(local_value: Optional[str], time_zone: Optional[str]) -> Optional[str]:
    """Interpret a zone-less local ISO string in ``time_zone`` and return UTC ISO."""
    parts = parse_local_parts(local_value)
    if parts is None:
        return None
    seconds_match = re.search(r'T\d{2}:\d{2}:(\d{2})', local_value)
    second = int(seconds_match.group(1)) if seconds_match else 0
    try:
        return zoned_time_to_utc(
            parts.year, parts.month, parts.day,
            parts.hour or 0, parts.minute or 0, second, time_zone
        )
    except ValueError:
        return None


def normalize_utc(value: Optional[str]) -> Optional[str]:
    """Re-format any parseable ISO string as canonical UTC ISO."""
    parsed = parse_iso(value)
    return format_utc(parsed) if parsed else None

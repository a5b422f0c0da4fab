"""
Wall-clock to UTC conversion for bookings.

Clients pick hours on a calendar rendered in their browser timezone and send
that IANA name along with the date and time. Reconciliation runs on a server
whose own local timezone has nothing to do with the client, so every booking
time is converted explicitly:

- user offsets are east-positive minutes (Asia/Jakarta -> +420)
- server offsets follow the runtime convention, west-positive minutes
  (a UTC+1 host reports -60)

Named zones are resolved through the tz database for the booking's own date,
so daylight-saving rules apply. Abbreviations and ``GMT+N`` strings the tz
database does not know fall back to a static table.
"""
import logging
import re
from datetime import datetime, time, timedelta, timezone
from typing import Optional

import pytz

from domain.exceptions import ValidationError

logger = logging.getLogger(__name__)

DISPLAY_FORMAT = "%d %B %H:%M"

# Minutes east of UTC for names browsers and users commonly send
STATIC_OFFSETS = {
    "UTC": 0,
    "GMT": 0,
    "WIB": 420,
    "WITA": 480,
    "WIT": 540,
    "ASIA/JAKARTA": 420,
    "ASIA/PONTIANAK": 420,
    "ASIA/MAKASSAR": 480,
    "ASIA/JAYAPURA": 540,
    "ASIA/SINGAPORE": 480,
    "ASIA/KUALA_LUMPUR": 480,
    "ASIA/BANGKOK": 420,
    "ASIA/HO_CHI_MINH": 420,
    "ASIA/MANILA": 480,
    "ASIA/SHANGHAI": 480,
    "ASIA/HONG_KONG": 480,
    "ASIA/TOKYO": 540,
    "ASIA/SEOUL": 540,
    "ASIA/KOLKATA": 330,
    "ASIA/DUBAI": 240,
    "EUROPE/LONDON": 0,
    "EUROPE/PARIS": 60,
    "EUROPE/BERLIN": 60,
    "EUROPE/AMSTERDAM": 60,
    "EUROPE/MOSCOW": 180,
    "AMERICA/NEW_YORK": -300,
    "AMERICA/CHICAGO": -360,
    "AMERICA/DENVER": -420,
    "AMERICA/LOS_ANGELES": -480,
    "AMERICA/SAO_PAULO": -180,
    "AUSTRALIA/SYDNEY": 600,
    "AUSTRALIA/PERTH": 480,
    "PACIFIC/AUCKLAND": 720,
}

_GMT_PATTERN = re.compile(r"^(?:GMT|UTC)\s*([+-])\s*(\d{1,2})(?::?(\d{2}))?$", re.IGNORECASE)

# Checked in order; WITA must be tested before WIT
_INDONESIA_HINTS = (
    (("jayapura", "papua", "maluku", "ambon"), 540),
    (("makassar", "bali", "denpasar", "wita"), 480),
    (("wit",), 540),
    (("jakarta", "pontianak", "indonesia", "wib"), 420),
)


def _tz_database_zone(tz_name: str) -> Optional[pytz.BaseTzInfo]:
    if tz_name in pytz.all_timezones_set:
        return pytz.timezone(tz_name)
    return None


def _localize(zone: pytz.BaseTzInfo, naive: datetime) -> datetime:
    try:
        return zone.localize(naive, is_dst=None)
    except pytz.exceptions.AmbiguousTimeError:
        # Clock repeats an hour; take the first occurrence
        return zone.localize(naive, is_dst=True)
    except pytz.exceptions.NonExistentTimeError:
        raise ValidationError(
            f"The time {naive.strftime('%H:%M')} does not exist on {naive.date()} "
            f"in {zone.zone} due to Daylight Saving Time"
        )


def _fallback_offset(tz_name: str) -> Optional[int]:
    key = tz_name.strip().upper()
    if key in STATIC_OFFSETS:
        return STATIC_OFFSETS[key]

    match = _GMT_PATTERN.match(tz_name.strip())
    if match:
        sign = 1 if match.group(1) == "+" else -1
        minutes = int(match.group(2)) * 60 + int(match.group(3) or 0)
        return sign * minutes

    lowered = tz_name.lower()
    for hints, offset in _INDONESIA_HINTS:
        if any(hint in lowered for hint in hints):
            return offset
    return None


def resolve_offset_minutes(tz_name: Optional[str], naive_local: Optional[datetime] = None) -> int:
    """UTC offset of a named zone in minutes east, for the given local wall clock"""
    if not tz_name:
        logger.warning("No user timezone given, assuming UTC")
        return 0

    zone = _tz_database_zone(tz_name)
    if zone is not None:
        local = _localize(zone, naive_local or datetime.now(timezone.utc).replace(tzinfo=None))
        return int(local.utcoffset().total_seconds() // 60)

    offset = _fallback_offset(tz_name)
    if offset is None:
        logger.warning("Unknown timezone %r, assuming UTC", tz_name)
        return 0
    return offset


def server_offset_minutes(naive_local: Optional[datetime] = None) -> int:
    """This host's UTC offset in the runtime convention (minutes west of UTC)"""
    local = (naive_local or datetime.now()).astimezone()
    return -int(local.utcoffset().total_seconds() // 60)


def _parse_wall_clock(date_str: str, time_str: str) -> datetime:
    try:
        day = datetime.strptime(date_str, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid date '{date_str}', expected yyyy-MM-dd")

    parts = (time_str or "").split(":")
    try:
        hour = int(parts[0])
        minute = int(parts[1]) if len(parts) > 1 else 0
        second = int(parts[2]) if len(parts) > 2 else 0
    except ValueError:
        raise ValidationError(f"Invalid time '{time_str}', expected HH:MM")

    if hour == 24 and minute == 0 and second == 0:
        return datetime.combine(day + timedelta(days=1), time(0, 0))
    try:
        return datetime.combine(day, time(hour, minute, second))
    except ValueError:
        raise ValidationError(f"Invalid time '{time_str}', expected HH:MM")


def to_utc(
    date_str: str,
    time_str: str,
    user_timezone: Optional[str],
    server_offset: Optional[int] = None
) -> datetime:
    """
    Convert a user's local booking date and time into an aware UTC datetime.

    ``server_offset`` is the executing host's offset in minutes west of UTC;
    it is read from the host when omitted. The result does not depend on it.
    """
    naive = _parse_wall_clock(date_str, time_str)
    if server_offset is None:
        server_offset = server_offset_minutes(naive)

    # Instant the runtime would produce parsing the wall clock as host-local time
    naive_local_instant = naive + timedelta(minutes=server_offset)

    user_offset = resolve_offset_minutes(user_timezone, naive)
    # Server offset is west-positive, so subtracting its east value means adding it
    adjustment = user_offset + server_offset

    return (naive_local_instant - timedelta(minutes=adjustment)).replace(tzinfo=timezone.utc)


def utc_to_local(utc_dt: datetime, tz_name: Optional[str]) -> datetime:
    """Convert a UTC datetime into the user's zone"""
    if utc_dt.tzinfo is None:
        utc_dt = utc_dt.replace(tzinfo=timezone.utc)

    zone = _tz_database_zone(tz_name or "UTC")
    if zone is not None:
        return utc_dt.astimezone(zone)
    offset = _fallback_offset(tz_name) if tz_name else None
    if offset is None:
        logger.warning("Unknown timezone %r, displaying UTC", tz_name)
        offset = 0
    return utc_dt.astimezone(timezone(timedelta(minutes=offset)))


def format_local(utc_dt: datetime, tz_name: Optional[str]) -> str:
    """Human display of a UTC instant in the user's zone, e.g. '10 June 14:00'"""
    return utc_to_local(utc_dt, tz_name).strftime(DISPLAY_FORMAT)


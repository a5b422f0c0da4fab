"""Bookable-hour evaluation over a streamer's schedule"""
from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional, Set, Tuple, Union

from domain.entities import ActiveSchedule, Booking, DayOff
from domain.timezones import utc_to_local

DayOffLike = Union[DayOff, date, str]


def _day_off_keys(day_offs: Iterable[DayOffLike]) -> Set[str]:
    keys = set()
    for item in day_offs:
        if isinstance(item, DayOff):
            keys.add(item.key)
        elif isinstance(item, date):
            keys.add(item.strftime("%Y-%m-%d"))
        else:
            keys.add(str(item))
    return keys


def booking_window(booking: Booking, tz_name: str = "UTC") -> Tuple[datetime, datetime]:
    """Wall-clock start and end of a booking in the viewer's zone"""
    start = utc_to_local(booking.start_time, tz_name).replace(tzinfo=None)
    end = utc_to_local(booking.end_time, tz_name).replace(tzinfo=None)
    return start, end


def is_hour_booked(day: date, hour: int, bookings: Iterable[Booking], tz_name: str = "UTC") -> bool:
    """
    True when a pending or accepted booking covers ``[day hour:00, +1h)``.

    Bookings are compared as intervals, so one that runs past midnight
    blocks hours on both calendar days. The hour holding a booking's end
    also counts as booked, which keeps adjacent bookings one hour apart.
    """
    hour_start = datetime.combine(day, time(hour))
    hour_end = hour_start + timedelta(hours=1)
    for booking in bookings:
        if not booking.holds_slot():
            continue
        start, end = booking_window(booking, tz_name)
        if end <= start:
            continue
        if start < hour_end and hour_start <= end:
            return True
    return False


def is_slot_available(
    day: date,
    hour: int,
    active_schedule: Optional[ActiveSchedule],
    day_offs: Iterable[DayOffLike],
    existing_bookings: Iterable[Booking],
    tz_name: str = "UTC"
) -> bool:
    """True when the hour is in the weekly schedule, not a day off and not booked"""
    if day.strftime("%Y-%m-%d") in _day_off_keys(day_offs):
        return False
    if active_schedule is None or not active_schedule.slots_for(day):
        return False
    if not active_schedule.covers(day, hour):
        return False
    return not is_hour_booked(day, hour, existing_bookings, tz_name)


def available_hours(
    day: date,
    active_schedule: Optional[ActiveSchedule],
    day_offs: Iterable[DayOffLike],
    existing_bookings: Iterable[Booking],
    tz_name: str = "UTC"
) -> List[int]:
    """All bookable hours of a date, ascending"""
    if active_schedule is None:
        return []
    day_offs = list(day_offs)
    existing_bookings = list(existing_bookings)
    return [
        hour for hour in active_schedule.hours_for(day)
        if is_slot_available(day, hour, active_schedule, day_offs, existing_bookings, tz_name)
    ]

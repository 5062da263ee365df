"""Hooked Hours and opening hours evaluation (device local time)."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional

from app.schemas.venue import HoursWindow, Venue

DAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
END_OF_DAY = "24:00"
MINUTES_PER_DAY = 24 * 60


@dataclass
class VenueActiveStatus:
    is_hooked_hours_active: bool
    is_opening_hours_active: bool
    should_glow: bool
    status_text: str


@dataclass
class HookedHoursChange:
    next_change_time: Optional[datetime]
    will_be_active: bool
    description: str


def parse_time_to_minutes(value: str) -> int:
    if value == END_OF_DAY:
        return MINUTES_PER_DAY
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def _minutes_of(now: datetime) -> int:
    return now.hour * 60 + now.minute


def _at_minutes(day: datetime, minutes: int) -> datetime:
    midnight = day.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight + timedelta(minutes=minutes)


def is_time_within_range(open_time: str, close_time: str, now: datetime) -> bool:
    """Overnight spans (close earlier than open, e.g. 18:00-02:00) are supported."""
    current = _minutes_of(now)
    open_minutes = parse_time_to_minutes(open_time)
    close_minutes = parse_time_to_minutes(close_time)

    if close_minutes < open_minutes:
        return current >= open_minutes or current <= close_minutes
    return open_minutes <= current <= close_minutes


def _day_schedule(schedule: Optional[Dict[str, HoursWindow]], now: datetime) -> Optional[HoursWindow]:
    if not schedule:
        return None
    day = schedule.get(DAYS[now.weekday()])
    if day is None or day.closed:
        return None
    return day


def is_hooked_hours_active(venue: Venue, now: Optional[datetime] = None) -> bool:
    now = now or datetime.now()
    day = _day_schedule(venue.hooked_hours, now)
    return day is not None and is_time_within_range(day.open, day.close, now)


def is_opening_hours_active(venue: Venue, now: Optional[datetime] = None) -> bool:
    now = now or datetime.now()
    day = _day_schedule(venue.opening_hours, now)
    return day is not None and is_time_within_range(day.open, day.close, now)


def get_venue_active_status(venue: Venue, now: Optional[datetime] = None) -> VenueActiveStatus:
    now = now or datetime.now()
    hooked = is_hooked_hours_active(venue, now)
    open_now = is_opening_hours_active(venue, now)

    if hooked:
        status_text = "Hooked Hours Active"
    elif open_now:
        status_text = "Open - Hooked Hours Inactive"
    else:
        status_text = "Closed"

    return VenueActiveStatus(
        is_hooked_hours_active=hooked,
        is_opening_hours_active=open_now,
        should_glow=hooked,
        status_text=status_text,
    )


def get_next_hooked_hours_change(venue: Venue, now: Optional[datetime] = None) -> HookedHoursChange:
    if not venue.hooked_hours:
        return HookedHoursChange(None, False, "No Hooked Hours configured")

    now = now or datetime.now()
    current = _minutes_of(now)
    today = _day_schedule(venue.hooked_hours, now)

    if today is not None:
        open_minutes = parse_time_to_minutes(today.open)
        close_minutes = parse_time_to_minutes(today.close)
        overnight = close_minutes < open_minutes

        if overnight and current < close_minutes:
            return HookedHoursChange(_at_minutes(now, close_minutes), False, f"Closes at {today.close}")
        if current < open_minutes:
            return HookedHoursChange(_at_minutes(now, open_minutes), True, f"Opens at {today.open}")
        if overnight:
            closes = _at_minutes(now + timedelta(days=1), close_minutes)
            return HookedHoursChange(closes, False, f"Closes at {today.close}")
        if current < close_minutes:
            return HookedHoursChange(_at_minutes(now, close_minutes), False, f"Closes at {today.close}")

    today_index = now.weekday()
    for offset in range(1, 8):
        day_name = DAYS[(today_index + offset) % 7]
        window = venue.hooked_hours.get(day_name)
        if window is None or window.closed:
            continue
        opens = _at_minutes(now + timedelta(days=offset), parse_time_to_minutes(window.open))
        when = "tomorrow" if offset == 1 else day_name.capitalize()
        return HookedHoursChange(opens, True, f"Opens {when} at {window.open}")

    return HookedHoursChange(None, False, "No upcoming Hooked Hours")


def format_time_until_change(target: datetime, now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    diff = (target - now).total_seconds()
    if diff <= 0:
        return "Now"

    minutes = int(diff // 60)
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return f"{days}d {hours % 24}h"
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    return f"{minutes}m"

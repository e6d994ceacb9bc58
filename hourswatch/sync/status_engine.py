from datetime import datetime, timedelta
from typing import Iterable, Optional

from hourswatch.config import CLOSING_SOON_MINUTES
from hourswatch.formatting import format_hours
from hourswatch.models import BusinessStatus, DaySchedule, Weekday


def schedule_for_day(schedule: Iterable[DaySchedule], moment: datetime) -> Optional[DaySchedule]:
    """Return the entry for the weekday of `moment`, or None."""
    weekday = Weekday.from_datetime(moment)
    for day in schedule:
        if day.weekday == weekday:
            return day
    return None


def status_at(
    schedule: Iterable[DaySchedule],
    now: datetime,
    closing_soon_minutes: int = CLOSING_SOON_MINUTES,
) -> BusinessStatus:
    """
    Compute whether a business is open at `now` (interpreted in now's own timezone).

    Args:
        schedule (Iterable[DaySchedule]): Weekly schedule.
        now (datetime): Moment to evaluate.
        closing_soon_minutes (int): Window before close that counts as closing soon.

    Returns:
        BusinessStatus: OPEN, CLOSING_SOON or CLOSED.
    """
    today = schedule_for_day(schedule, now)
    if today is None or today.is_closed:
        return BusinessStatus.CLOSED

    current_minutes = now.hour * 60 + now.minute
    if not today.is_open_at(current_minutes):
        return BusinessStatus.CLOSED

    minutes_until_close = today.close_time - current_minutes
    if 0 < minutes_until_close <= closing_soon_minutes:
        return BusinessStatus.CLOSING_SOON
    return BusinessStatus.OPEN


def is_stale(last_updated: datetime, now: datetime, threshold_days: float) -> bool:
    """True once at least `threshold_days` have passed since `last_updated`."""
    return now - last_updated >= timedelta(days=threshold_days)


def todays_hours_text(schedule: Iterable[DaySchedule], now: datetime) -> Optional[str]:
    today = schedule_for_day(schedule, now)
    if today is None:
        return None
    if today.is_closed:
        return "Closed today"
    return format_hours(today)

from typing import Dict, Iterable, List, Optional

from hourswatch.formatting import format_window
from hourswatch.models import (
    Change,
    ContactChanged,
    ContactField,
    ContactInfo,
    DayClosed,
    DayOpened,
    DaySchedule,
    HoursChanged,
    Weekday,
)


def _index_by_weekday(schedule: Iterable[DaySchedule]) -> Dict[Weekday, DaySchedule]:
    return {Weekday(day.weekday): day for day in schedule}


def _diff_day(weekday: Weekday, old: Optional[DaySchedule], new: Optional[DaySchedule]) -> Optional[Change]:
    """
    Classify one weekday. Absent entries count as closed, so a day that was already
    closed and is now missing yields no change rather than a second closure alert.
    """
    was_open = old is not None and not old.is_closed
    is_open = new is not None and not new.is_closed

    if not was_open and is_open:
        return DayOpened(weekday=weekday, new_window=format_window(new))
    if was_open and not is_open:
        return DayClosed(weekday=weekday)
    if was_open and is_open:
        if old.open_time != new.open_time or old.close_time != new.close_time:
            return HoursChanged(
                weekday=weekday,
                old_window=format_window(old),
                new_window=format_window(new),
            )
    return None


def diff_schedules(
    old: Iterable[DaySchedule],
    new: Iterable[DaySchedule],
    old_contact: ContactInfo,
    new_contact: ContactInfo,
) -> List[Change]:
    """
    Compare stored and freshly fetched data and list every typed difference.

    Changes are ordered by weekday ascending (Sunday first), followed by the
    phone change and then the website change. A weekday dropped from the new
    schedule is reported as a closure.

    Args:
        old (Iterable[DaySchedule]): Currently stored schedule.
        new (Iterable[DaySchedule]): Schedule converted from the directory payload.
        old_contact (ContactInfo): Stored phone/website.
        new_contact (ContactInfo): Fetched phone/website.

    Returns:
        List[Change]: Possibly empty list of changes.
    """
    old_days = _index_by_weekday(old)
    new_days = _index_by_weekday(new)

    changes: List[Change] = []
    for weekday in sorted(set(old_days) | set(new_days)):
        change = _diff_day(weekday, old_days.get(weekday), new_days.get(weekday))
        if change is not None:
            changes.append(change)

    if old_contact.phone != new_contact.phone:
        changes.append(ContactChanged(ContactField.PHONE, old_contact.phone, new_contact.phone))
    if old_contact.website != new_contact.website:
        changes.append(ContactChanged(ContactField.WEBSITE, old_contact.website, new_contact.website))

    return changes

from typing import List, Tuple

from loguru import logger

from hourswatch.models import ContactInfo, DaySchedule, RemotePlacePayload, Weekday

MINUTES_PER_DAY = 1440


def _valid_minute(value: int) -> bool:
    return 0 <= value < MINUTES_PER_DAY


def convert_payload(payload: RemotePlacePayload) -> Tuple[List[DaySchedule], ContactInfo]:
    """
    Convert a directory payload into our schedule and contact representation.

    The directory numbers days 0 = Sunday .. 6 = Saturday; we use 1 = Sunday .. 7 = Saturday.
    Periods missing any field, or with offsets outside a day, are dropped. When the
    directory reports several periods for one day, the first one is kept.

    Args:
        payload (RemotePlacePayload): Place details from the lookup service.

    Returns:
        Tuple[List[DaySchedule], ContactInfo]: Schedule sorted by weekday, and contact fields.
    """
    schedule = {}
    for period in payload.periods:
        if period.day is None or period.open_minute is None or period.close_minute is None:
            continue
        if not 0 <= period.day <= 6:
            continue
        if not (_valid_minute(period.open_minute) and _valid_minute(period.close_minute)):
            logger.debug(f"Dropping out-of-range period for {payload.place_id}: {period}")
            continue

        weekday = Weekday(period.day + 1)
        if weekday in schedule:
            logger.debug(f"Ignoring extra period on {weekday.label} for {payload.place_id}")
            continue
        schedule[weekday] = DaySchedule(
            weekday=weekday,
            open_time=period.open_minute,
            close_time=period.close_minute,
        )

    days = [schedule[weekday] for weekday in sorted(schedule)]
    return days, ContactInfo(phone=payload.phone, website=payload.website)

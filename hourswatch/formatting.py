from hourswatch.models import DaySchedule


def format_minutes(total_minutes: int) -> str:
    """
    Format minutes since midnight as 12-hour clock time.

    Args:
        total_minutes (int): Offset in minutes (0-1439).

    Returns:
        str: Time like "9:00 AM" or "12:30 PM".
    """
    hours, minutes = divmod(total_minutes, 60)
    period = "PM" if hours >= 12 else "AM"
    display_hour = hours - 12 if hours > 12 else (12 if hours == 0 else hours)
    return f"{display_hour}:{minutes:02d} {period}"


def format_window(day: DaySchedule) -> str:
    """Compact window used in change alerts, e.g. "9:00 AM-5:00 PM"."""
    return f"{format_minutes(day.open_time)}-{format_minutes(day.close_time)}"


def format_hours(day: DaySchedule) -> str:
    """Spaced window used for display, e.g. "9:00 AM - 5:00 PM"."""
    return f"{format_minutes(day.open_time)} - {format_minutes(day.close_time)}"

"""
Turns detected changes into user-facing alerts.
"""
import itertools
import time
from typing import Any, Dict, List, Protocol, Tuple

from loguru import logger

from hourswatch.models import (
    Change,
    ContactChanged,
    ContactField,
    DayClosed,
    DayOpened,
    HoursChanged,
    NotificationPermission,
)


class AlertSink(Protocol):
    async def deliver(self, title: str, body: str, unique_id: str, payload: Dict[str, Any]) -> None:
        """Deliver one alert immediately."""

    async def request_authorization(self) -> bool:
        """Ask the user (or the host) whether alerts may be shown."""


def format_alert(change: Change, business_name: str) -> Tuple[str, str]:
    """
    Build the (title, body) pair for a single change.

    Args:
        change (Change): The change to describe.
        business_name (str): Display name of the business.

    Returns:
        Tuple[str, str]: Alert title and body.
    """
    if isinstance(change, HoursChanged):
        return (
            f"{business_name} Changed Hours",
            f"{change.weekday.label}: {change.old_window} → {change.new_window}",
        )
    if isinstance(change, DayClosed):
        return f"{business_name} Closed", f"Now closed on {change.weekday.label}"
    if isinstance(change, DayOpened):
        return f"{business_name} Now Open", f"Now open on {change.weekday.label}: {change.new_window}"
    if isinstance(change, ContactChanged):
        if change.field is ContactField.PHONE:
            body = f"Phone: {change.old_value or 'N/A'} → {change.new_value or 'N/A'}"
        else:
            body = "Website updated"
        return f"{business_name} Updated", body
    raise TypeError(f"Unknown change type: {type(change).__name__}")


class ChangeNotifier:
    """
    Sends one alert per change, only while notification permission is granted.
    Delivery failures are logged and never raised to the caller.
    """

    def __init__(
        self,
        sink: AlertSink,
        authorization_status: NotificationPermission = NotificationPermission.NOT_DETERMINED,
    ):
        self.sink = sink
        self.authorization_status = authorization_status
        # Disambiguates alerts created within the same clock tick
        self._sequence = itertools.count()

    async def request_permission(self) -> bool:
        """Ask the sink for permission and remember the answer."""
        try:
            granted = await self.sink.request_authorization()
        except Exception as e:
            logger.warning(f"Error requesting notification permission: {e}")
            granted = False
        self.authorization_status = (
            NotificationPermission.AUTHORIZED if granted else NotificationPermission.DENIED
        )
        return granted

    def _unique_id(self, record_id: str) -> str:
        return f"{record_id}-{time.time_ns()}-{next(self._sequence)}"

    async def notify(self, changes: List[Change], business_name: str, record_id: str) -> int:
        """
        Deliver one alert for every change.

        Args:
            changes (List[Change]): Changes detected for one record.
            business_name (str): Display name used in the alert titles.
            record_id (str): Local record id, carried in the payload for deep links.

        Returns:
            int: Number of alerts handed to the sink successfully.
        """
        if self.authorization_status is not NotificationPermission.AUTHORIZED:
            return 0

        delivered = 0
        for change in changes:
            title, body = format_alert(change, business_name)
            try:
                await self.sink.deliver(
                    title=title,
                    body=body,
                    unique_id=self._unique_id(record_id),
                    payload={"businessId": record_id},
                )
                delivered += 1
            except Exception as e:
                logger.warning(f"⚠️ Error sending notification for '{business_name}': {e}")
        return delivered

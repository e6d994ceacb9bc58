"""
Alert delivery targets for change notifications.
"""
from typing import Any, Dict, Optional

from aiohttp import ClientSession, ClientTimeout
from loguru import logger

from hourswatch.config import ALERT_WEBHOOK_URL, REQUEST_TIMEOUT


class LogAlertSink:
    """Writes alerts to the log. Always authorized."""

    async def request_authorization(self) -> bool:
        return True

    async def deliver(self, title: str, body: str, unique_id: str, payload: Dict[str, Any]) -> None:
        logger.info(f"🔔 {title}: {body} [{unique_id}]")


class WebhookAlertSink:
    """
    Posts each alert as JSON to a webhook (ntfy, Slack-compatible relays, etc.).
    """

    def __init__(self, url: Optional[str] = ALERT_WEBHOOK_URL, timeout: float = REQUEST_TIMEOUT):
        self.url = url
        self.timeout = ClientTimeout(total=timeout)
        self._session: Optional[ClientSession] = None

    async def _get_session(self) -> ClientSession:
        if self._session is None or self._session.closed:
            self._session = ClientSession(timeout=self.timeout)
        return self._session

    async def request_authorization(self) -> bool:
        return bool(self.url)

    async def deliver(self, title: str, body: str, unique_id: str, payload: Dict[str, Any]) -> None:
        session = await self._get_session()
        message = {"id": unique_id, "title": title, "body": body, "payload": payload}
        async with session.post(self.url, json=message) as resp:
            resp.raise_for_status()

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

"""
Google Places (New) client with rate limiting using aiolimiter.
"""
import asyncio
from typing import Any, Dict, List, Optional

from aiohttp import ClientError, ClientSession, ClientTimeout
from aiolimiter import AsyncLimiter
from loguru import logger

from hourswatch.config import CONCURRENCY, GOOGLE_API_KEY, PLACES_URL, REQUEST_TIMEOUT
from hourswatch.errors import RemoteFetchFailed
from hourswatch.models import RemotePeriod, RemotePlacePayload

DETAIL_FIELDS = [
    "id",
    "displayName",
    "formattedAddress",
    "location",
    "currentOpeningHours",
    "internationalPhoneNumber",
    "websiteUri",
]


def _minutes(point: Optional[Dict[str, Any]]) -> Optional[int]:
    if not point:
        return None
    hour = point.get("hour")
    minute = point.get("minute")
    if hour is None or minute is None:
        return None
    return int(hour) * 60 + int(minute)


def _day(point: Dict[str, Any]) -> Optional[int]:
    day = point.get("day")
    return None if day is None else int(day)


def parse_place(data: Dict[str, Any]) -> RemotePlacePayload:
    """
    Parse a Places API place object into a RemotePlacePayload.

    Args:
        data (Dict[str, Any]): One place object from the API response.

    Returns:
        RemotePlacePayload: Parsed payload. Sub-fields missing upstream are left as None.
    """
    if not isinstance(data, dict) or not data.get("id"):
        raise ValueError(f"Place object without id: {data!r}")

    hours = data.get("currentOpeningHours") or {}
    periods = []
    for period in hours.get("periods") or []:
        opening = period.get("open") or {}
        periods.append(RemotePeriod(
            day=_day(opening),
            open_minute=_minutes(opening),
            close_minute=_minutes(period.get("close")),
        ))

    location = data.get("location") or {}
    return RemotePlacePayload(
        place_id=data["id"],
        name=(data.get("displayName") or {}).get("text", ""),
        address=data.get("formattedAddress", ""),
        latitude=location.get("latitude"),
        longitude=location.get("longitude"),
        periods=periods,
        phone=data.get("internationalPhoneNumber"),
        website=data.get("websiteUri"),
    )


class PlacesClient:
    """
    Directory lookup against Google Places. Construct once and share it.
    Every request is bounded by `timeout` seconds and shares one rate limiter.
    """

    def __init__(
        self,
        api_key: Optional[str] = GOOGLE_API_KEY,
        base_url: str = PLACES_URL,
        timeout: float = REQUEST_TIMEOUT,
        max_rate: int = CONCURRENCY,
    ):
        if not api_key:
            raise ValueError("GOOGLE_API_KEY must be set in environment or config")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = ClientTimeout(total=timeout)
        self.rate_limiter = AsyncLimiter(max_rate=max_rate, time_period=1.0)
        self._session: Optional[ClientSession] = None

    async def _get_session(self) -> ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = ClientSession(timeout=self.timeout)
        return self._session

    def _headers(self, fields: List[str]) -> Dict[str, str]:
        return {
            "X-Goog-Api-Key": self.api_key,
            "X-Goog-FieldMask": ",".join(fields),
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, url: str, fields: List[str], body: Optional[dict] = None) -> Dict[str, Any]:
        async with self.rate_limiter:
            session = await self._get_session()
            try:
                async with session.request(method, url, headers=self._headers(fields), json=body) as resp:
                    if resp.status == 404:
                        raise RemoteFetchFailed(f"Place not found: {url}")
                    if not 200 <= resp.status < 300:
                        text = await resp.text()
                        raise RemoteFetchFailed(f"Places API error {resp.status}: {text[:200]}")
                    return await resp.json()
            except asyncio.TimeoutError as e:
                raise RemoteFetchFailed(f"Timed out after {self.timeout.total}s: {url}") from e
            except (ClientError, ValueError) as e:
                logger.debug(f"⚠️ Places request failed: {e}")
                raise RemoteFetchFailed(str(e)) from e

    async def fetch(self, remote_id: str) -> RemotePlacePayload:
        """
        Fetch current details for one place.

        Args:
            remote_id (str): Google place id.

        Returns:
            RemotePlacePayload: Parsed place details.

        Raises:
            RemoteFetchFailed: On network errors, timeouts, non-2xx responses or malformed JSON.
        """
        data = await self._request("GET", f"{self.base_url}/{remote_id}", DETAIL_FIELDS)
        try:
            return parse_place(data)
        except (ValueError, TypeError, AttributeError) as e:
            raise RemoteFetchFailed(f"Malformed place payload for {remote_id}: {e}") from e

    async def search_places(self, query: str) -> List[RemotePlacePayload]:
        """
        Text search for places.

        Args:
            query (str): Free-text query, e.g. "Blue Bottle Coffee Oakland".

        Returns:
            List[RemotePlacePayload]: Parsed results; unparseable entries are skipped.
        """
        fields = [f"places.{name}" for name in DETAIL_FIELDS]
        data = await self._request(
            "POST",
            f"{self.base_url}:searchText",
            fields,
            body={"textQuery": query, "languageCode": "en"},
        )
        results = []
        for place in data.get("places") or []:
            try:
                results.append(parse_place(place))
            except (ValueError, TypeError, AttributeError) as e:
                logger.debug(f"Skipping search result: {e}")
        return results

    async def close(self):
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

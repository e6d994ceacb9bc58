"""
Dashboard filtering and ordering of tracked records.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional, Protocol, Tuple

import numpy as np

from hourswatch.models import BusinessRecord, BusinessStatus
from hourswatch.sync.status_engine import status_at

EARTH_RADIUS_M = 6_371_000.0

Coordinate = Tuple[float, float]  # (latitude, longitude)


class LocationProvider(Protocol):
    def current_location(self) -> Optional[Coordinate]:
        """Device location, if known."""

    def home_location(self) -> Optional[Coordinate]:
        """User-chosen home location, if set."""


@dataclass(frozen=True)
class FixedLocations:
    """LocationProvider backed by coordinates known up front (CLI flags or config)."""
    current: Optional[Coordinate] = None
    home: Optional[Coordinate] = None

    def current_location(self) -> Optional[Coordinate]:
        return self.current

    def home_location(self) -> Optional[Coordinate]:
        return self.home


def parse_coordinate(text: str) -> Coordinate:
    """Parse "LAT,LON" into a coordinate. Raises ValueError on malformed or out-of-range input."""
    parts = text.split(",")
    if len(parts) != 2:
        raise ValueError(f"Expected LAT,LON, got {text!r}")
    lat, lon = float(parts[0]), float(parts[1])
    if not (-90 <= lat <= 90 and -180 <= lon <= 180):
        raise ValueError(f"Coordinate out of range: {text!r}")
    return lat, lon


class SortOption(Enum):
    NAME = "Name"
    STATUS = "Status"
    DISTANCE_CURRENT = "Distance (Current)"
    DISTANCE_HOME = "Distance (Home)"


class FilterOption(Enum):
    ALL = "All"
    OPEN = "Open"
    CLOSING_SOON = "Closing Soon"
    CLOSED = "Closed"


_FILTER_STATUS = {
    FilterOption.OPEN: BusinessStatus.OPEN,
    FilterOption.CLOSING_SOON: BusinessStatus.CLOSING_SOON,
    FilterOption.CLOSED: BusinessStatus.CLOSED,
}

_STATUS_PRIORITY = {
    BusinessStatus.OPEN: 0,
    BusinessStatus.CLOSING_SOON: 1,
    BusinessStatus.CLOSED: 2,
}


def distances_from(records: List[BusinessRecord], origin: Coordinate) -> np.ndarray:
    """
    Great-circle distances in meters from `origin` to each record.
    Records without coordinates get +inf so they sort last.
    """
    lat = np.array([r.latitude if r.latitude is not None else np.nan for r in records], dtype=float)
    lon = np.array([r.longitude if r.longitude is not None else np.nan for r in records], dtype=float)

    lat1, lon1 = np.radians(origin[0]), np.radians(origin[1])
    lat2, lon2 = np.radians(lat), np.radians(lon)
    a = np.sin((lat2 - lat1) / 2) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin((lon2 - lon1) / 2) ** 2
    dist = 2 * EARTH_RADIUS_M * np.arcsin(np.sqrt(a))
    return np.where(np.isnan(dist), np.inf, dist)


def reference_location(option: SortOption, locations: Optional[LocationProvider]) -> Optional[Coordinate]:
    if locations is None:
        return None
    if option is SortOption.DISTANCE_CURRENT:
        return locations.current_location()
    if option is SortOption.DISTANCE_HOME:
        return locations.home_location()
    return None


def filter_and_sort(
    records: List[BusinessRecord],
    now: datetime,
    sort_option: SortOption = SortOption.NAME,
    filter_option: FilterOption = FilterOption.ALL,
    search_text: str = "",
    locations: Optional[LocationProvider] = None,
) -> List[BusinessRecord]:
    """
    Apply the dashboard's search, status filter and sort order.

    Args:
        records (List[BusinessRecord]): All tracked records.
        now (datetime): Moment used to compute open/closed status.
        sort_option (SortOption): Sort key. Distance sorts keep the input order
            when the reference location is unknown.
        filter_option (FilterOption): Status filter.
        search_text (str): Case-insensitive match against name and address.
        locations (Optional[LocationProvider]): Source of current/home coordinates.

    Returns:
        List[BusinessRecord]: Filtered and ordered records.
    """
    result = list(records)

    if search_text:
        needle = search_text.casefold()
        result = [r for r in result if needle in r.name.casefold() or needle in r.address.casefold()]

    if filter_option in _FILTER_STATUS:
        wanted = _FILTER_STATUS[filter_option]
        result = [r for r in result if status_at(r.opening_hours, now) is wanted]

    if sort_option is SortOption.NAME:
        result.sort(key=lambda r: r.name.casefold())
    elif sort_option is SortOption.STATUS:
        result.sort(key=lambda r: _STATUS_PRIORITY[status_at(r.opening_hours, now)])
    else:
        origin = reference_location(sort_option, locations)
        if origin is not None and result:
            order = np.argsort(distances_from(result, origin), kind="stable")
            result = [result[i] for i in order]

    return result

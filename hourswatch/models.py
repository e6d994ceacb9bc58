"""
Typed data models for the opening-hours sync engine.
All data structures used throughout the codebase should be defined here.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional, Union


class Weekday(IntEnum):
    """Calendar weekday, 1 = Sunday through 7 = Saturday."""
    SUNDAY = 1
    MONDAY = 2
    TUESDAY = 3
    WEDNESDAY = 4
    THURSDAY = 5
    FRIDAY = 6
    SATURDAY = 7

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @classmethod
    def from_datetime(cls, moment: datetime) -> "Weekday":
        # isoweekday(): Monday = 1 ... Sunday = 7
        return cls(moment.isoweekday() % 7 + 1)


class BusinessStatus(Enum):
    OPEN = "OPEN"
    CLOSING_SOON = "CLOSING SOON"
    CLOSED = "CLOSED"

    @property
    def text(self) -> str:
        return self.value


class ContactField(Enum):
    PHONE = "phone"
    WEBSITE = "website"


class FailureReason(Enum):
    REMOTE_FETCH_FAILED = "remote_fetch_failed"
    PERSISTENCE_FAILED = "persistence_failed"


class MessageType(Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class NotificationPermission(Enum):
    NOT_DETERMINED = "not_determined"
    AUTHORIZED = "authorized"
    DENIED = "denied"


class SyncMode(Enum):
    """How a batch was triggered. AUTO batches only visit stale records."""
    MANUAL = "manual"
    AUTO = "auto"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_instant(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    moment = datetime.fromisoformat(value)
    # Hand-edited rows may lack an offset; stored times are UTC
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


@dataclass(frozen=True)
class DaySchedule:
    """One weekday's opening window. Offsets are minutes since midnight (0-1439)."""
    weekday: Weekday
    open_time: int  # e.g. 540 = 9:00 AM
    close_time: int  # e.g. 1020 = 5:00 PM
    is_closed: bool = False

    def is_open_at(self, minutes: int) -> bool:
        if self.is_closed:
            return False
        return self.open_time <= minutes < self.close_time

    def to_dict(self) -> Dict[str, Any]:
        return {
            "weekday": int(self.weekday),
            "open_time": self.open_time,
            "close_time": self.close_time,
            "is_closed": self.is_closed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DaySchedule":
        return cls(
            weekday=Weekday(int(data["weekday"])),
            open_time=int(data["open_time"]),
            close_time=int(data["close_time"]),
            is_closed=bool(data.get("is_closed", False)),
        )


@dataclass(frozen=True)
class ContactInfo:
    phone: Optional[str] = None
    website: Optional[str] = None


@dataclass
class BusinessRecord:
    """A tracked business. Records without a remote_id can never be synchronized."""
    name: str
    remote_id: Optional[str] = None  # Google place id
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    custom_label: Optional[str] = None
    address: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    opening_hours: List[DaySchedule] = field(default_factory=list)
    date_added: datetime = field(default_factory=utcnow)
    last_updated: datetime = field(default_factory=utcnow)
    last_checked: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        return self.custom_label or self.name

    @property
    def contact(self) -> ContactInfo:
        return ContactInfo(phone=self.phone, website=self.website)

    @property
    def is_syncable(self) -> bool:
        return bool(self.remote_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "remote_id": self.remote_id,
            "custom_label": self.custom_label,
            "address": self.address,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "phone": self.phone,
            "website": self.website,
            "opening_hours": [day.to_dict() for day in self.opening_hours],
            "date_added": self.date_added.isoformat(),
            "last_updated": self.last_updated.isoformat(),
            "last_checked": self.last_checked.isoformat() if self.last_checked else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BusinessRecord":
        return cls(
            id=data["id"],
            name=data["name"],
            remote_id=data.get("remote_id"),
            custom_label=data.get("custom_label"),
            address=data.get("address") or "",
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
            phone=data.get("phone"),
            website=data.get("website"),
            opening_hours=[DaySchedule.from_dict(d) for d in data.get("opening_hours", [])],
            date_added=_parse_instant(data.get("date_added")) or utcnow(),
            last_updated=_parse_instant(data.get("last_updated")) or utcnow(),
            last_checked=_parse_instant(data.get("last_checked")),
        )


@dataclass
class RemotePeriod:
    """One opening period as reported by the directory (day uses 0 = Sunday)."""
    day: Optional[int] = None
    open_minute: Optional[int] = None
    close_minute: Optional[int] = None


@dataclass
class RemotePlacePayload:
    """Place details returned by the directory lookup service."""
    place_id: str
    name: str = ""
    address: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    periods: List[RemotePeriod] = field(default_factory=list)
    phone: Optional[str] = None
    website: Optional[str] = None


# --- Changes (ephemeral, never persisted) ---

@dataclass(frozen=True)
class HoursChanged:
    weekday: Weekday
    old_window: str  # "9:00 AM-5:00 PM"
    new_window: str


@dataclass(frozen=True)
class DayClosed:
    weekday: Weekday


@dataclass(frozen=True)
class DayOpened:
    weekday: Weekday
    new_window: str


@dataclass(frozen=True)
class ContactChanged:
    field: ContactField
    old_value: Optional[str]
    new_value: Optional[str]


Change = Union[HoursChanged, DayClosed, DayOpened, ContactChanged]


@dataclass
class BatchResult:
    """Outcome of syncing one record within a batch."""
    record_id: str
    display_name: str
    attempted: bool = True
    succeeded: bool = False
    change_count: int = 0
    failure_reason: Optional[FailureReason] = None
    failure_detail: Optional[str] = None

    @property
    def has_changes(self) -> bool:
        return self.change_count > 0


@dataclass
class BatchSummary:
    """Aggregate counts for one batch, plus the user-facing message."""
    total: int
    succeeded: int
    failed: int
    changed: int
    expired: bool
    message: str
    message_type: MessageType

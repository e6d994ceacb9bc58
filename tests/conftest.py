import copy
from datetime import datetime, timedelta, timezone
from typing import Iterable, List
from unittest.mock import AsyncMock, MagicMock

import pytest

from hourswatch.errors import PersistenceFailed
from hourswatch.models import BusinessRecord, NotificationPermission
from hourswatch.sync.change_notifier import ChangeNotifier

# Monday 19 October 2026, 10:00 UTC
NOW = datetime(2026, 10, 19, 10, 0, tzinfo=timezone.utc)


class InMemoryStore:
    """Record store double that keeps copies, like a real store would."""

    def __init__(self, records: Iterable[BusinessRecord] = (), fail_on: Iterable[str] = ()):
        self.records = {r.id: copy.deepcopy(r) for r in records}
        self.fail_on = set(fail_on)
        self.saves: List[BusinessRecord] = []

    async def save(self, record: BusinessRecord) -> None:
        if record.id in self.fail_on:
            raise PersistenceFailed("disk full")
        self.saves.append(copy.deepcopy(record))
        self.records[record.id] = copy.deepcopy(record)

    async def fetch_all(self) -> List[BusinessRecord]:
        return [copy.deepcopy(r) for r in self.records.values()]


def stale_record(name: str, remote_id=None, **kwargs) -> BusinessRecord:
    kwargs.setdefault("last_updated", NOW - timedelta(days=2))
    return BusinessRecord(name=name, remote_id=remote_id, **kwargs)


@pytest.fixture
def sink():
    mock_sink = MagicMock()
    mock_sink.deliver = AsyncMock(return_value=None)
    mock_sink.request_authorization = AsyncMock(return_value=True)
    return mock_sink


@pytest.fixture
def notifier(sink):
    return ChangeNotifier(sink, NotificationPermission.AUTHORIZED)

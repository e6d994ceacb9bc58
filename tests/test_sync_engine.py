import asyncio
import time
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from hourswatch.errors import NoRemoteIdentifier, RemoteFetchFailed
from hourswatch.models import (
    DaySchedule,
    FailureReason,
    MessageType,
    RemotePeriod,
    RemotePlacePayload,
    SyncMode,
    Weekday,
)
from hourswatch.sync.sync_engine import SyncEngine

from conftest import NOW, InMemoryStore, stale_record


def monday_payload(place_id: str, close_minute: int = 1020, phone=None) -> RemotePlacePayload:
    return RemotePlacePayload(
        place_id=place_id,
        periods=[RemotePeriod(day=1, open_minute=540, close_minute=close_minute)],
        phone=phone,
    )


def directory_for(payloads):
    """Directory double: payload per remote id, or an exception to raise."""
    async def fetch(remote_id):
        result = payloads[remote_id]
        if isinstance(result, Exception):
            raise result
        return result

    directory = MagicMock()
    directory.fetch = AsyncMock(side_effect=fetch)
    return directory


def monday_record(name: str, remote_id: str, **kwargs):
    return stale_record(name, remote_id, opening_hours=[DaySchedule(Weekday.MONDAY, 540, 1020)], **kwargs)


class TestRunBatch:
    @pytest.mark.asyncio
    async def test_monday_hours_extended(self, sink, notifier):
        record = monday_record("Corner Bakery", "place-1")
        store = InMemoryStore([record])
        directory = directory_for({"place-1": monday_payload("place-1", close_minute=1080)})
        engine = SyncEngine(directory, store, notifier, request_interval=0)

        results = await engine.run_batch([record], now=NOW)

        assert len(results) == 1
        assert results[0].succeeded
        assert results[0].change_count == 1
        assert len(store.saves) == 1
        assert store.saves[0].opening_hours == [DaySchedule(Weekday.MONDAY, 540, 1080)]
        assert store.saves[0].last_updated == NOW
        assert record.opening_hours == [DaySchedule(Weekday.MONDAY, 540, 1080)]
        assert record.last_updated == NOW
        assert record.last_checked == NOW
        sink.deliver.assert_awaited_once()
        assert sink.deliver.await_args.kwargs["body"] == "Monday: 9:00 AM-5:00 PM → 9:00 AM-6:00 PM"

    @pytest.mark.asyncio
    async def test_one_failure_does_not_abort_batch(self, notifier):
        records = [monday_record(f"Shop {i}", f"place-{i}") for i in (1, 2, 3)]
        store = InMemoryStore(records)
        directory = directory_for({
            "place-1": monday_payload("place-1", close_minute=1080),
            "place-2": RemoteFetchFailed("HTTP 503"),
            "place-3": monday_payload("place-3"),
        })
        engine = SyncEngine(directory, store, notifier, request_interval=0)

        results = await engine.run_batch(records, now=NOW)

        assert [r.record_id for r in results] == [r.id for r in records]
        assert [r.succeeded for r in results] == [True, False, True]
        assert results[1].failure_reason is FailureReason.REMOTE_FETCH_FAILED
        assert results[1].failure_detail == "HTTP 503"
        assert results[0].change_count == 1
        assert results[2].change_count == 0
        assert engine.last_summary.message == "Updated 2 of 3 businesses"
        assert engine.last_summary.message_type is MessageType.WARNING

    @pytest.mark.asyncio
    async def test_check_time_recorded_even_on_failure(self, notifier):
        original_update = NOW - timedelta(days=2)
        record = monday_record("Corner Bakery", "place-1")
        store = InMemoryStore([record])
        directory = directory_for({"place-1": RemoteFetchFailed("timeout")})
        engine = SyncEngine(directory, store, notifier, request_interval=0)

        await engine.run_batch([record], now=NOW)

        assert record.last_checked == NOW
        assert record.last_updated == original_update
        assert store.records[record.id].last_checked == NOW

    @pytest.mark.asyncio
    async def test_records_without_remote_id_are_skipped(self, notifier):
        local_only = stale_record("Home Cafe")
        synced = monday_record("Corner Bakery", "place-1")
        directory = directory_for({"place-1": monday_payload("place-1")})
        engine = SyncEngine(directory, InMemoryStore([local_only, synced]), notifier, request_interval=0)

        results = await engine.run_batch([local_only, synced], now=NOW)

        assert [r.record_id for r in results] == [synced.id]
        directory.fetch.assert_awaited_once_with("place-1")

    @pytest.mark.asyncio
    async def test_no_changes_means_no_alert(self, sink, notifier):
        record = monday_record("Corner Bakery", "place-1")
        store = InMemoryStore([record])
        engine = SyncEngine(directory_for({"place-1": monday_payload("place-1")}), store, notifier, request_interval=0)

        results = await engine.run_batch([record], now=NOW)

        assert results[0].succeeded and results[0].change_count == 0
        assert record.last_updated == NOW - timedelta(days=2)
        sink.deliver.assert_not_called()
        assert engine.last_summary.message == "All businesses are up to date"

    @pytest.mark.asyncio
    async def test_failed_save_keeps_old_data(self, sink, notifier):
        record = monday_record("Corner Bakery", "place-1")
        store = InMemoryStore([record], fail_on=[record.id])
        directory = directory_for({"place-1": monday_payload("place-1", close_minute=1080)})
        engine = SyncEngine(directory, store, notifier, request_interval=0)

        results = await engine.run_batch([record], now=NOW)

        assert not results[0].succeeded
        assert results[0].failure_reason is FailureReason.PERSISTENCE_FAILED
        assert record.opening_hours == [DaySchedule(Weekday.MONDAY, 540, 1020)]
        assert record.last_updated == NOW - timedelta(days=2)
        sink.deliver.assert_not_called()

    @pytest.mark.asyncio
    async def test_auto_mode_only_visits_stale_records(self, notifier):
        stale = monday_record("Old", "place-1")
        fresh = monday_record("New", "place-2", last_updated=NOW - timedelta(hours=3))
        directory = directory_for({"place-1": monday_payload("place-1"), "place-2": monday_payload("place-2")})
        engine = SyncEngine(directory, InMemoryStore([stale, fresh]), notifier, request_interval=0)

        results = await engine.run_batch([stale, fresh], now=NOW, mode=SyncMode.AUTO)

        assert [r.record_id for r in results] == [stale.id]

    @pytest.mark.asyncio
    async def test_manual_mode_forces_fresh_records(self, notifier):
        fresh = monday_record("New", "place-2", last_updated=NOW - timedelta(minutes=5))
        directory = directory_for({"place-2": monday_payload("place-2")})
        engine = SyncEngine(directory, InMemoryStore([fresh]), notifier, request_interval=0)

        results = await engine.run_batch([fresh], now=NOW, mode=SyncMode.MANUAL)

        assert len(results) == 1

    @pytest.mark.asyncio
    async def test_requests_are_spaced_but_first_is_immediate(self, notifier):
        records = [monday_record(f"Shop {i}", f"place-{i}") for i in (1, 2, 3)]
        call_times = []

        async def fetch(remote_id):
            call_times.append(time.monotonic())
            return monday_payload(remote_id)

        directory = MagicMock()
        directory.fetch = AsyncMock(side_effect=fetch)
        engine = SyncEngine(directory, InMemoryStore(records), notifier, request_interval=0.1)

        start = time.monotonic()
        await engine.run_batch(records, now=NOW)

        assert call_times[0] - start < 0.05
        assert call_times[1] - call_times[0] >= 0.08
        assert call_times[2] - call_times[1] >= 0.08

    @pytest.mark.asyncio
    async def test_cancellation_is_checked_between_records(self, notifier):
        records = [monday_record(f"Shop {i}", f"place-{i}") for i in (1, 2, 3)]
        cancel_event = asyncio.Event()

        async def fetch(remote_id):
            cancel_event.set()
            return monday_payload(remote_id, close_minute=1080)

        directory = MagicMock()
        directory.fetch = AsyncMock(side_effect=fetch)
        store = InMemoryStore(records)
        engine = SyncEngine(directory, store, notifier, request_interval=0)

        results = await engine.run_batch(records, now=NOW, cancel_event=cancel_event)

        assert len(results) == 1
        assert directory.fetch.await_count == 1
        assert store.records[records[0].id].last_updated == NOW
        assert engine.last_summary.expired

    @pytest.mark.asyncio
    async def test_overlapping_batches_are_serialized(self, notifier):
        record = monday_record("Corner Bakery", "place-1")
        in_flight = 0
        max_in_flight = 0

        async def fetch(remote_id):
            nonlocal in_flight, max_in_flight
            in_flight += 1
            max_in_flight = max(max_in_flight, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return monday_payload(remote_id)

        directory = MagicMock()
        directory.fetch = AsyncMock(side_effect=fetch)
        engine = SyncEngine(directory, InMemoryStore([record]), notifier, request_interval=0)

        await asyncio.gather(engine.run_batch([record], now=NOW), engine.run_batch([record], now=NOW))

        assert max_in_flight == 1
        assert directory.fetch.await_count == 2


class TestEntryPoints:
    @pytest.mark.asyncio
    async def test_sweep_uses_store_records(self, notifier):
        stale = monday_record("Old", "place-1")
        store = InMemoryStore([stale])
        engine = SyncEngine(directory_for({"place-1": monday_payload("place-1")}), store, notifier, request_interval=0)

        results = await engine.sweep_stale(now=NOW)

        assert [r.record_id for r in results] == [stale.id]

    @pytest.mark.asyncio
    async def test_sweep_propagates_store_failure(self, notifier):
        store = MagicMock()
        store.fetch_all = AsyncMock(side_effect=OSError("unreadable"))
        engine = SyncEngine(MagicMock(), store, notifier, request_interval=0)

        with pytest.raises(OSError):
            await engine.sweep_stale(now=NOW)

    @pytest.mark.asyncio
    async def test_refresh_record_requires_remote_id(self, notifier):
        engine = SyncEngine(MagicMock(), InMemoryStore(), notifier, request_interval=0)

        with pytest.raises(NoRemoteIdentifier):
            await engine.refresh_record(stale_record("Home Cafe"), now=NOW)

    @pytest.mark.asyncio
    async def test_subscribers_receive_summary(self, notifier):
        record = monday_record("Corner Bakery", "place-1")
        directory = directory_for({"place-1": monday_payload("place-1", close_minute=1080)})
        engine = SyncEngine(directory, InMemoryStore([record]), notifier, request_interval=0)
        received = []
        unsubscribe = engine.subscribe(received.append)

        await engine.refresh_record(record, now=NOW)
        unsubscribe()
        await engine.refresh_record(record, now=NOW)

        assert len(received) == 1
        assert received[0].changed == 1
        assert received[0].message == "Updated 1 business(es) with new hours"


class TestBatchRobustness:
    @pytest.mark.asyncio
    async def test_malformed_payload_fails_only_that_record(self, notifier):
        records = [monday_record(f"Shop {i}", f"place-{i}") for i in (1, 2, 3)]
        store = InMemoryStore(records)
        directory = directory_for({
            "place-1": monday_payload("place-1"),
            "place-2": RemotePlacePayload(
                place_id="place-2",
                periods=[RemotePeriod(day="1", open_minute=540, close_minute=1020)],
            ),
            "place-3": monday_payload("place-3", close_minute=1080),
        })
        engine = SyncEngine(directory, store, notifier, request_interval=0)

        results = await engine.run_batch(records, now=NOW)

        assert [r.succeeded for r in results] == [True, False, True]
        assert results[1].failure_reason is FailureReason.REMOTE_FETCH_FAILED
        assert results[2].change_count == 1
        assert store.records[records[1].id].last_checked == NOW
        assert store.records[records[1].id].opening_hours == [DaySchedule(Weekday.MONDAY, 540, 1020)]

    @pytest.mark.asyncio
    async def test_pause_follows_a_slow_fetch(self, notifier):
        records = [monday_record(f"Shop {i}", f"place-{i}") for i in (1, 2)]
        spans = []

        async def fetch(remote_id):
            started = time.monotonic()
            await asyncio.sleep(0.15)
            spans.append((started, time.monotonic()))
            return monday_payload(remote_id)

        directory = MagicMock()
        directory.fetch = AsyncMock(side_effect=fetch)
        engine = SyncEngine(directory, InMemoryStore(records), notifier, request_interval=0.1)

        await engine.run_batch(records, now=NOW)

        first_end, second_start = spans[0][1], spans[1][0]
        assert second_start - first_end >= 0.08

    @pytest.mark.asyncio
    async def test_cancel_cuts_the_pause_short(self, notifier):
        records = [monday_record(f"Shop {i}", f"place-{i}") for i in (1, 2)]
        cancel_event = asyncio.Event()
        directory = directory_for({"place-1": monday_payload("place-1"), "place-2": monday_payload("place-2")})
        engine = SyncEngine(directory, InMemoryStore(records), notifier, request_interval=5)

        asyncio.get_running_loop().call_later(0.05, cancel_event.set)
        start = time.monotonic()
        results = await engine.run_batch(records, now=NOW, cancel_event=cancel_event)

        assert time.monotonic() - start < 1
        assert len(results) == 1
        assert directory.fetch.await_count == 1

    @pytest.mark.asyncio
    async def test_sweep_queued_behind_batch_sees_its_writes(self, sink, notifier):
        record = monday_record("Corner Bakery", "place-1")
        store = InMemoryStore([record])
        directory = directory_for({"place-1": monday_payload("place-1", close_minute=1080)})
        engine = SyncEngine(directory, store, notifier, request_interval=0)

        manual, swept = await asyncio.gather(
            engine.run_batch([record], now=NOW),
            engine.sweep_stale(now=NOW),
        )

        assert manual[0].change_count == 1
        assert swept == []
        assert directory.fetch.await_count == 1
        assert sink.deliver.await_count == 1
        assert len(store.saves) == 1

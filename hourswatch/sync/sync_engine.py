"""
Sync engine: refreshes tracked records from the directory, one record at a time,
under a per-batch request interval.
"""
import asyncio
import dataclasses
import time
from datetime import datetime
from typing import Callable, List, Optional, Protocol

from loguru import logger

from hourswatch.config import REQUEST_INTERVAL_SECONDS, SYNC_STALE_THRESHOLD_HOURS
from hourswatch.errors import NoRemoteIdentifier
from hourswatch.models import (
    BatchResult,
    BatchSummary,
    BusinessRecord,
    FailureReason,
    RemotePlacePayload,
    SyncMode,
    utcnow,
)
from hourswatch.sync.change_notifier import ChangeNotifier
from hourswatch.sync.conversion import convert_payload
from hourswatch.sync.schedule_differ import diff_schedules
from hourswatch.sync.status_engine import is_stale
from hourswatch.sync.summary import summarize


class DirectoryLookupService(Protocol):
    async def fetch(self, remote_id: str) -> RemotePlacePayload:
        """Fetch place details. Must complete or fail within a bounded time."""


class RecordStore(Protocol):
    async def save(self, record: BusinessRecord) -> None:
        """Persist one record atomically."""

    async def fetch_all(self) -> List[BusinessRecord]:
        """Load every stored record."""


SummaryCallback = Callable[[BatchSummary], None]


def _cancelled(cancel_event: Optional[asyncio.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()


class SyncEngine:
    """
    Coordinates fetch, diff, persist and notify for batches of records.

    Batches are serialized: a batch started while another is in flight waits for it
    to finish, and AUTO batches re-check staleness once they get their turn.
    """

    def __init__(
        self,
        directory: DirectoryLookupService,
        store: RecordStore,
        notifier: ChangeNotifier,
        request_interval: float = REQUEST_INTERVAL_SECONDS,
        stale_threshold_hours: float = SYNC_STALE_THRESHOLD_HOURS,
    ):
        self.directory = directory
        self.store = store
        self.notifier = notifier
        self.request_interval = request_interval
        self.stale_threshold_hours = stale_threshold_hours
        self.last_summary: Optional[BatchSummary] = None
        self._subscribers: List[SummaryCallback] = []
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def subscribe(self, callback: SummaryCallback) -> Callable[[], None]:
        """Register a callback for every finished batch. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, summary: BatchSummary) -> None:
        self.last_summary = summary
        for callback in list(self._subscribers):
            try:
                callback(summary)
            except Exception as e:
                logger.warning(f"Batch subscriber failed: {e}")

    def select_candidates(
        self,
        records: List[BusinessRecord],
        now: datetime,
        mode: SyncMode = SyncMode.MANUAL,
    ) -> List[BusinessRecord]:
        """
        Pick the records a batch will visit.

        Records without a remote id are always excluded. AUTO mode also drops records
        updated within the sync staleness threshold; MANUAL mode forces the rest.
        """
        candidates = [r for r in records if r.is_syncable]
        if mode is SyncMode.AUTO:
            threshold_days = self.stale_threshold_hours / 24
            candidates = [r for r in candidates if is_stale(r.last_updated, now, threshold_days)]
        return candidates

    async def run_batch(
        self,
        records: List[BusinessRecord],
        now: Optional[datetime] = None,
        mode: SyncMode = SyncMode.MANUAL,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[BatchResult]:
        """
        Sync a batch of records sequentially.

        Per-record failures are captured in that record's result and never raised.
        If `cancel_event` is set, the loop stops before the next record; records
        already processed keep their writes.

        Args:
            records (List[BusinessRecord]): Records to consider.
            now (Optional[datetime]): Timezone-aware batch timestamp (defaults to current UTC time).
            mode (SyncMode): MANUAL forces every syncable record; AUTO only visits stale ones.
            cancel_event (Optional[asyncio.Event]): Expiration signal checked between records.

        Returns:
            List[BatchResult]: One entry per visited record, in visiting order.
        """
        async with self._lock:
            return await self._run_batch(records, now, mode, cancel_event)

    async def _run_batch(
        self,
        records: List[BusinessRecord],
        now: Optional[datetime],
        mode: SyncMode,
        cancel_event: Optional[asyncio.Event],
    ) -> List[BatchResult]:
        # Caller holds self._lock
        now = now or utcnow()
        candidates = self.select_candidates(records, now, mode)
        logger.info(f"🔄 Starting {mode.value} refresh of {len(candidates)} of {len(records)} businesses")
        start = time.perf_counter()

        results: List[BatchResult] = []
        for index, record in enumerate(candidates):
            if _cancelled(cancel_event):
                break
            if index > 0:
                # The pause starts when the previous record finished
                await self._pause(cancel_event)
                if _cancelled(cancel_event):
                    break
            results.append(await self._sync_record(record, now))

        expired = _cancelled(cancel_event)
        if expired:
            logger.warning(
                f"⏱️ Refresh expired after {len(results)} of {len(candidates)} businesses; "
                f"the rest will be retried on the next run"
            )

        summary = summarize(results, expired=expired)
        duration = time.perf_counter() - start
        logger.info(
            f"✅ Refresh complete in {duration:.2f}s: {summary.succeeded} succeeded, "
            f"{summary.changed} had changes, {summary.failed} failed"
        )
        self._publish(summary)
        return results

    async def _pause(self, cancel_event: Optional[asyncio.Event]) -> None:
        """Wait `request_interval` seconds, returning early if the batch is cancelled."""
        if self.request_interval <= 0:
            return
        if cancel_event is None:
            await asyncio.sleep(self.request_interval)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=self.request_interval)
        except asyncio.TimeoutError:
            pass

    async def _sync_record(self, record: BusinessRecord, now: datetime) -> BatchResult:
        result = BatchResult(record_id=record.id, display_name=record.display_name)

        # Recorded for every attempt, whatever the outcome
        record.last_checked = now

        # 1) Fetch from the directory, then convert and diff
        try:
            payload = await self.directory.fetch(record.remote_id)
            new_schedule, new_contact = convert_payload(payload)
            changes = diff_schedules(record.opening_hours, new_schedule, record.contact, new_contact)
        except Exception as e:
            logger.warning(f"⚠️ Fetch failed for '{record.display_name}': {e}")
            result.failure_reason = FailureReason.REMOTE_FETCH_FAILED
            result.failure_detail = str(e)
            try:
                await self.store.save(record)
            except Exception as save_error:
                logger.warning(f"⚠️ Could not record check time for '{record.display_name}': {save_error}")
            return result

        # 2) Persist; the in-memory record only takes new data after a confirmed save
        if changes:
            updated = dataclasses.replace(
                record,
                opening_hours=new_schedule,
                phone=new_contact.phone,
                website=new_contact.website,
                last_updated=now,
            )
        else:
            updated = record

        try:
            await self.store.save(updated)
        except Exception as e:
            logger.warning(f"⚠️ Save failed for '{record.display_name}': {e}")
            result.failure_reason = FailureReason.PERSISTENCE_FAILED
            result.failure_detail = str(e)
            return result

        result.succeeded = True
        if not changes:
            logger.debug(f"No changes for '{record.display_name}'")
            return result

        record.opening_hours = updated.opening_hours
        record.phone = updated.phone
        record.website = updated.website
        record.last_updated = updated.last_updated
        result.change_count = len(changes)
        logger.debug(f"'{record.display_name}' has {len(changes)} change(s)")

        # 3) Alert the user
        await self.notifier.notify(changes, record.display_name, record.id)
        return result

    async def sweep_stale(
        self,
        now: Optional[datetime] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[BatchResult]:
        """
        Load all records and refresh the stale ones. Store read errors propagate.

        Records are loaded only once this batch has its turn, so a sweep queued behind
        another batch sees what that batch saved.
        """
        async with self._lock:
            records = await self.store.fetch_all()
            if not records:
                logger.info("ℹ️ No businesses to refresh")
            return await self._run_batch(records, now, SyncMode.AUTO, cancel_event)

    async def refresh_all(self, now: Optional[datetime] = None) -> List[BatchResult]:
        """Load all records and refresh every syncable one regardless of age."""
        async with self._lock:
            records = await self.store.fetch_all()
            return await self._run_batch(records, now, SyncMode.MANUAL, None)

    async def refresh_record(self, record: BusinessRecord, now: Optional[datetime] = None) -> BatchResult:
        """
        Manually refresh a single record.

        Raises:
            NoRemoteIdentifier: If the record can never be synchronized.
        """
        if not record.is_syncable:
            raise NoRemoteIdentifier(record.id)
        logger.info(f"🔄 Manual refresh: {record.display_name}")
        results = await self.run_batch([record], now=now, mode=SyncMode.MANUAL)
        return results[0]

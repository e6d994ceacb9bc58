"""
Recurring background refresh on top of a host scheduler that may run us late
and may expire a run at any moment.
"""
import asyncio
from datetime import datetime, timedelta
from enum import Enum
from typing import Awaitable, Callable, Optional, Protocol

from loguru import logger

from hourswatch.config import REFRESH_INTERVAL_HOURS
from hourswatch.models import utcnow
from hourswatch.sync.sync_engine import SyncEngine


class Scheduler(Protocol):
    def register(
        self,
        not_before: datetime,
        on_run: Callable[[], Awaitable[bool]],
        on_expire: Callable[[], None],
    ) -> None:
        """Run `on_run` no earlier than `not_before`; call `on_expire` if the host cuts it short."""

    def deregister(self) -> None:
        """Drop the pending registration, if any."""


class SchedulerState(Enum):
    IDLE = "idle"
    ARMED = "armed"
    CANCELLED = "cancelled"


class RunOutcome(Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"


class RefreshScheduler:
    """
    Keeps exactly one future background refresh registered with the host.

    Every run re-arms itself before doing any work, so a run killed by the host
    still leaves the next one in place.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        engine: SyncEngine,
        interval_hours: float = REFRESH_INTERVAL_HOURS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.scheduler = scheduler
        self.engine = engine
        self.interval_hours = interval_hours
        self.clock = clock
        self.state = SchedulerState.IDLE
        self.next_run_at: Optional[datetime] = None
        self.last_outcome: Optional[RunOutcome] = None
        self._cancel_event: Optional[asyncio.Event] = None

    def arm(self, interval_hours: Optional[float] = None) -> bool:
        """
        Register the next run no earlier than now + interval. The latest call wins.

        Args:
            interval_hours (Optional[float]): New interval; keeps the current one when omitted.

        Returns:
            bool: True if the host accepted the registration.
        """
        if interval_hours is not None:
            self.interval_hours = interval_hours
        if self.state is SchedulerState.ARMED:
            self.scheduler.deregister()

        not_before = self.clock() + timedelta(hours=self.interval_hours)
        try:
            self.scheduler.register(not_before, self._on_run, self._on_expire)
        except Exception as e:
            logger.error(f"❌ Could not schedule background refresh: {e}")
            self.state = SchedulerState.IDLE
            self.next_run_at = None
            return False

        self.state = SchedulerState.ARMED
        self.next_run_at = not_before
        logger.info(f"✅ Background refresh scheduled for {not_before.isoformat()}")
        return True

    def cancel(self) -> None:
        """Drop any pending run. A later `arm` resumes normal operation."""
        self.scheduler.deregister()
        self.state = SchedulerState.CANCELLED
        self.next_run_at = None
        logger.info("🛑 Background refresh cancelled")

    async def _on_run(self) -> bool:
        logger.info("🔄 Background refresh task started")
        self.state = SchedulerState.IDLE
        self.arm()

        cancel_event = asyncio.Event()
        self._cancel_event = cancel_event
        try:
            results = await self.engine.sweep_stale(cancel_event=cancel_event)
        except Exception as e:
            logger.error(f"❌ Background refresh error: {e}")
            self.last_outcome = RunOutcome.FAILED
            return False
        finally:
            self._cancel_event = None

        if cancel_event.is_set():
            self.last_outcome = RunOutcome.EXPIRED
            return False

        success = not results or any(r.succeeded for r in results)
        self.last_outcome = RunOutcome.COMPLETED if success else RunOutcome.FAILED
        return success

    def _on_expire(self) -> None:
        logger.warning("⚠️ Background task expired")
        if self._cancel_event is not None:
            self._cancel_event.set()
        self.last_outcome = RunOutcome.EXPIRED

"""
In-process stand-in for an OS background-task scheduler, built on the asyncio loop.
"""
import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Optional, Set

from loguru import logger

from hourswatch.config import BACKGROUND_RUN_BUDGET_SECONDS
from hourswatch.models import utcnow


class AsyncioScheduler:
    """
    Holds at most one pending registration. Each run gets `budget_seconds` of
    wall time before its expiration callback fires.
    """

    def __init__(
        self,
        budget_seconds: float = BACKGROUND_RUN_BUDGET_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.budget_seconds = budget_seconds
        self.clock = clock
        self._handle: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def has_pending(self) -> bool:
        return self._handle is not None

    def register(
        self,
        not_before: datetime,
        on_run: Callable[[], Awaitable[bool]],
        on_expire: Callable[[], None],
    ) -> None:
        self.deregister()
        loop = asyncio.get_running_loop()
        delay = max(0.0, (not_before - self.clock()).total_seconds())
        self._handle = loop.call_later(delay, self._launch, on_run, on_expire)

    def deregister(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _launch(self, on_run: Callable[[], Awaitable[bool]], on_expire: Callable[[], None]) -> None:
        self._handle = None
        task = asyncio.ensure_future(self._execute(on_run, on_expire))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _execute(self, on_run: Callable[[], Awaitable[bool]], on_expire: Callable[[], None]) -> bool:
        loop = asyncio.get_running_loop()
        expiry = loop.call_later(self.budget_seconds, on_expire)
        try:
            success = await on_run()
        except Exception as e:
            logger.error(f"❌ Background task raised: {e}")
            success = False
        finally:
            expiry.cancel()
        logger.info(f"Background task completed (success={success})")
        return success

    async def wait_idle(self) -> None:
        """Wait for runs already in progress to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        self.deregister()
        for task in list(self._tasks):
            task.cancel()
        await self.wait_idle()

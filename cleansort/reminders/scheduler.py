import asyncio
import logging
from typing import Optional

from .dispatcher import ReminderDispatcher

logger = logging.getLogger(__name__)


class ReminderScheduler:
    """
    Periodic driver for ReminderDispatcher: one cycle after ``startup_delay``,
    then one every ``interval_seconds``. Cycles run in a worker thread so the
    event loop keeps serving requests while the store and FCM are called.
    """

    def __init__(self, dispatcher: ReminderDispatcher, interval_seconds: float = 300, startup_delay: float = 10.0):
        self.dispatcher = dispatcher
        self.interval_seconds = interval_seconds
        self.startup_delay = startup_delay
        self.cycles_run = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def dependencies_ready(self) -> bool:
        try:
            await asyncio.to_thread(self.dispatcher.store.ping)
        except Exception as e:
            logger.error(f"[Scheduler] Reminder store unreachable: {e!r}")
            return False
        try:
            gateway_ok = await asyncio.to_thread(self.dispatcher.gateway.is_available)
        except Exception as e:
            logger.error(f"[Scheduler] Push gateway check failed: {e!r}")
            return False
        if not gateway_ok:
            logger.error("[Scheduler] Push gateway not initialized")
        return gateway_ok

    async def start(self) -> bool:
        """Start the timer. Returns False (and logs once) when dependencies are unavailable."""
        if self.running:
            logger.info("[Scheduler] Already running")
            return True
        if not await self.dependencies_ready():
            logger.warning("[Scheduler] Reminder notifications disabled for this process")
            return False
        self._task = asyncio.create_task(self._run(), name="reminder-scheduler")
        logger.info(
            f"[Scheduler] Started | first cycle in {self.startup_delay}s, then every {self.interval_seconds}s"
        )
        return True

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("[Scheduler] Stopped")

    async def run_once(self, trigger: str = "timer"):
        try:
            summary = await asyncio.to_thread(self.dispatcher.run_cycle, None, trigger)
        except Exception as e:
            # Keep the timer alive; the next tick retries
            logger.exception(f"[Scheduler] Cycle crashed: {e!r}")
            return None
        self.cycles_run += 1
        return summary

    async def _run(self) -> None:
        await asyncio.sleep(self.startup_delay)
        await self.run_once(trigger="startup")
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.run_once(trigger="timer")

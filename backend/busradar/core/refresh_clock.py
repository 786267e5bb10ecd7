"""Process-wide countdown that tells observers when to refetch arrivals."""

import asyncio
import datetime
import logging
from collections.abc import Awaitable, Callable

from busradar.config import settings
from busradar.core.broadcaster import Broadcaster

logger = logging.getLogger(__name__)

RefreshCallback = Callable[[], Awaitable[None]]


class SharedRefreshClock:
    """Counts down once per ``tick()`` and broadcasts a refresh at zero.

    After a broadcast the clock holds at zero with ``just_updated`` set for
    the flash window, then resets the countdown to the full period. The clock
    carries no arrival data; subscribers refetch whatever they display.
    """

    def __init__(
        self,
        period: int | None = None,
        *,
        flash_seconds: float | None = None,
        broadcaster: Broadcaster | None = None,
    ) -> None:
        self.period = period or settings.arrival_refresh_interval
        self.flash_seconds = settings.refresh_flash_seconds if flash_seconds is None else flash_seconds
        self.broadcaster = broadcaster
        self.countdown = self.period
        self.just_updated = False
        self._subscribers: list[RefreshCallback] = []
        self._flash_handle: asyncio.TimerHandle | None = None
        self._subscriber_tasks: set[asyncio.Task] = set()

    def subscribe(self, callback: RefreshCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def reset_countdown(self) -> None:
        self.countdown = self.period

    def snapshot(self) -> dict:
        return {"type": "countdown", "countdown": self.countdown, "just_updated": self.just_updated}

    async def tick(self) -> None:
        """Advance the clock by one second."""
        if self.just_updated:
            return
        if self.countdown > 0:
            self.countdown -= 1
            if self.broadcaster:
                await self.broadcaster.publish(self.snapshot())
            return
        await self._fire()

    async def _fire(self) -> None:
        self.just_updated = True
        loop = asyncio.get_running_loop()
        self._flash_handle = loop.call_later(self.flash_seconds, self._end_flash)

        if self.broadcaster:
            await self.broadcaster.publish({
                "type": "refresh",
                "at": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            })

        # Subscribers refetch over the network; the tick must not wait on them
        for cb in list(self._subscribers):
            task = asyncio.create_task(cb())
            self._subscriber_tasks.add(task)
            task.add_done_callback(self._subscriber_done)
        logger.debug("Refresh broadcast to %d subscribers", len(self._subscribers))

    def _subscriber_done(self, task: asyncio.Task) -> None:
        self._subscriber_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Refresh subscriber failed: %s", exc, exc_info=exc)

    async def wait_idle(self) -> None:
        """Wait until every subscriber started by a broadcast has finished."""
        while self._subscriber_tasks:
            await asyncio.gather(*list(self._subscriber_tasks), return_exceptions=True)

    def _end_flash(self) -> None:
        self._flash_handle = None
        self.just_updated = False
        self.reset_countdown()

    def stop(self) -> None:
        if self._flash_handle is not None:
            self._flash_handle.cancel()
            self._flash_handle = None
        for task in list(self._subscriber_tasks):
            task.cancel()

"""Keeps real-time arrivals fresh for the stops nearest the user."""

import asyncio
import logging
from collections.abc import Iterable

from busradar.config import settings
from busradar.core.errors import BusRadarError
from busradar.core.events import ChangeNotifier
from busradar.core.lta_client import LtaClient
from busradar.schemas.arrival import BusService, sort_services
from busradar.schemas.stop import Stop

logger = logging.getLogger(__name__)


class ArrivalsRefreshEngine:
    """Per-stop arrivals cache with an auto-refresh loop over a working set.

    Submitting a working set fetches each stop once (skipping stops whose
    fetch is already in flight) and replaces the refresh loop. Every tick of
    the loop refetches the whole working set unconditionally. A failed fetch
    keeps the last good data, or records an empty list if there was none.
    """

    def __init__(
        self,
        client: LtaClient,
        *,
        refresh_interval: float | None = None,
        max_working_set: int | None = None,
    ) -> None:
        self.client = client
        self.refresh_interval = refresh_interval or settings.arrival_refresh_interval
        self.max_working_set = max_working_set or settings.max_working_set
        self._arrivals: dict[str, list[BusService]] = {}
        self._in_flight: set[str] = set()
        self._working_set: list[str] = []
        self._fetch_tasks: set[asyncio.Task] = set()
        self._refresh_task: asyncio.Task | None = None
        self._cancel_token: asyncio.Event | None = None
        self.changes = ChangeNotifier()

    @property
    def working_set(self) -> list[str]:
        return list(self._working_set)

    def get_arrivals(self, code: str) -> list[BusService]:
        return list(self._arrivals.get(code, []))

    def has_arrivals(self, code: str) -> bool:
        """True once a fetch for ``code`` has completed, successfully or not."""
        return code in self._arrivals

    def is_fetching(self, code: str) -> bool:
        return code in self._in_flight

    def submit_working_set(self, stops: Iterable[Stop]) -> None:
        """Replace the auto-refresh targets with the first stops of ``stops``."""
        self.stop_refreshing()

        codes: list[str] = []
        for stop in stops:
            if stop.code not in codes:
                codes.append(stop.code)
            if len(codes) >= self.max_working_set:
                break
        self._working_set = codes

        for code in codes:
            if code not in self._in_flight:
                self._start_fetch(code)

        if codes:
            token = asyncio.Event()
            self._cancel_token = token
            self._refresh_task = asyncio.create_task(self._auto_refresh(codes, token))
        logger.debug("Arrivals working set: %s", codes)

    def stop_refreshing(self) -> None:
        """Cancel the refresh loop; fetches already running are left alone."""
        if self._cancel_token is not None:
            self._cancel_token.set()
        self._cancel_token = None
        self._refresh_task = None

    def refresh_stop(self, code: str) -> asyncio.Task:
        """Force a fetch for one stop, e.g. for a detail view on a clock tick."""
        return self._start_fetch(code)

    async def wait_idle(self) -> None:
        """Wait until every outstanding per-stop fetch has finished."""
        while self._fetch_tasks:
            await asyncio.gather(*list(self._fetch_tasks), return_exceptions=True)

    async def close(self) -> None:
        task = self._refresh_task
        self.stop_refreshing()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        await self.wait_idle()

    # ------------------------------------------------------------------

    def _start_fetch(self, code: str) -> asyncio.Task:
        self._in_flight.add(code)
        task = asyncio.create_task(self._fetch(code))
        self._fetch_tasks.add(task)
        task.add_done_callback(self._fetch_tasks.discard)
        return task

    async def _fetch(self, code: str) -> None:
        try:
            services = await self.client.fetch_bus_arrivals(code)
        except BusRadarError as e:
            logger.warning("Arrivals fetch for stop %s failed: %s", code, e)
            self._arrivals.setdefault(code, [])
        except Exception:
            logger.exception("Unexpected error fetching arrivals for stop %s", code)
            self._arrivals.setdefault(code, [])
        else:
            self._arrivals[code] = sort_services(services)
        finally:
            self._in_flight.discard(code)
        self.changes.notify(code)

    async def _auto_refresh(self, codes: list[str], token: asyncio.Event) -> None:
        while not token.is_set():
            try:
                await asyncio.wait_for(token.wait(), timeout=self.refresh_interval)
            except asyncio.TimeoutError:
                pass
            if token.is_set():
                break
            logger.debug("Auto-refreshing arrivals for %d stops", len(codes))
            for code in codes:
                self._start_fetch(code)

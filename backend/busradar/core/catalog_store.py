"""Bus stop catalog: paginated fetch, in-memory TTL cache and disk cache."""

import asyncio
import datetime
import logging
import os
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path

import orjson
from pydantic import ValidationError

from busradar.config import settings
from busradar.core.events import ChangeNotifier
from busradar.core.lta_client import LtaClient
from busradar.schemas.stop import BusStopsResponse, Stop

logger = logging.getLogger(__name__)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass(frozen=True)
class StopCatalog:
    """Immutable snapshot of every known stop, keyed by stop code."""

    stops: dict[str, Stop] = field(default_factory=dict)
    fetched_at: datetime.datetime | None = None

    @classmethod
    def from_stops(cls, stops: list[Stop], fetched_at: datetime.datetime) -> "StopCatalog":
        by_code: dict[str, Stop] = {}
        for stop in stops:
            by_code[stop.code] = stop
        if len(by_code) != len(stops):
            logger.warning("Catalog had %d duplicate stop codes", len(stops) - len(by_code))
        return cls(stops=by_code, fetched_at=fetched_at)

    def __len__(self) -> int:
        return len(self.stops)

    def __iter__(self) -> Iterator[Stop]:
        return iter(self.stops.values())

    def __contains__(self, code: object) -> bool:
        return code in self.stops

    def get(self, code: str) -> Stop | None:
        return self.stops.get(code)


class StopCatalogStore:
    """Serves the stop catalog, refreshing it from disk or the network as needed.

    A cached catalog younger than the TTL is returned without I/O. Otherwise a
    disk copy is adopted if one exists (even a stale one, so the app starts
    warm), and only then is the full catalog paged in from the API. A failed
    page aborts the refresh and leaves the previous catalog untouched.
    """

    def __init__(
        self,
        client: LtaClient,
        cache_path: Path | str | None = None,
        *,
        ttl: datetime.timedelta | None = None,
        page_size: int | None = None,
        now: Callable[[], datetime.datetime] = _utcnow,
    ) -> None:
        self.client = client
        self.cache_path = Path(cache_path or Path(settings.data_dir) / settings.catalog_cache_file)
        self.ttl = ttl or datetime.timedelta(hours=settings.catalog_ttl_hours)
        self.page_size = page_size or settings.catalog_page_size
        self._now = now
        self._catalog: StopCatalog | None = None
        self._refresh_lock = asyncio.Lock()
        self.changes = ChangeNotifier()

    def peek(self) -> StopCatalog | None:
        """Current in-memory catalog, if any, without triggering a load."""
        return self._catalog

    def _is_fresh(self) -> bool:
        if self._catalog is None or not self._catalog.stops or self._catalog.fetched_at is None:
            return False
        return self._now() - self._catalog.fetched_at < self.ttl

    async def get_catalog(self, force_refresh: bool = False) -> StopCatalog:
        if not force_refresh and self._is_fresh():
            return self._catalog

        async with self._refresh_lock:
            # Another caller may have refreshed while we waited on the lock
            if not force_refresh and self._is_fresh():
                return self._catalog

            if not force_refresh:
                stops = await asyncio.to_thread(self._load_from_disk)
                if stops is not None:
                    logger.info("Loaded %d bus stops from %s", len(stops), self.cache_path)
                    self._adopt(StopCatalog.from_stops(stops, self._now()))
                    return self._catalog

            stops = await self._fetch_all()
            catalog = StopCatalog.from_stops(stops, self._now())
            self._adopt(catalog)
            logger.info("Fetched %d bus stops from LTA", len(catalog))
            await asyncio.to_thread(self._save_to_disk, list(catalog))
            return catalog

    async def refresh(self) -> None:
        """Scheduled forced refresh; failures keep the previous catalog."""
        try:
            await self.get_catalog(force_refresh=True)
        except Exception:
            logger.exception("Scheduled bus stop catalog refresh failed")

    def _adopt(self, catalog: StopCatalog) -> None:
        self._catalog = catalog
        self.changes.notify(catalog)

    async def _fetch_all(self) -> list[Stop]:
        all_stops: list[Stop] = []
        skip = 0
        while True:
            page = await self.client.fetch_bus_stops_page(skip)
            all_stops.extend(page)
            if len(page) < self.page_size:
                break
            skip += self.page_size
        return all_stops

    # ------------------------------------------------------------------
    # Disk cache (runs in a worker thread)

    def _save_to_disk(self, stops: list[Stop]) -> None:
        payload = orjson.dumps({"value": [s.model_dump(by_alias=True) for s in stops]})
        tmp = self.cache_path.with_name(self.cache_path.name + ".tmp")
        try:
            self.cache_path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(payload)
            os.replace(tmp, self.cache_path)
        except OSError:
            logger.warning("Failed to save bus stops to %s", self.cache_path, exc_info=True)

    def _load_from_disk(self) -> list[Stop] | None:
        try:
            raw = self.cache_path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError:
            logger.warning("Failed to read bus stop cache %s", self.cache_path, exc_info=True)
            return None
        try:
            stops = BusStopsResponse.model_validate(orjson.loads(raw)).value
        except (orjson.JSONDecodeError, ValidationError):
            logger.warning("Ignoring corrupt bus stop cache %s", self.cache_path)
            return None
        return stops or None

"""User-pinned stops, persisted to the preferences file."""

import asyncio
import logging
import os
from pathlib import Path

import orjson

from busradar.config import settings
from busradar.core.catalog_store import StopCatalog
from busradar.core.events import ChangeNotifier
from busradar.schemas.stop import Stop

logger = logging.getLogger(__name__)

STORAGE_KEY = "pinned_bus_stops"


class PinStore:
    def __init__(self, path: Path | str | None = None) -> None:
        self.path = Path(path or Path(settings.data_dir) / settings.preferences_file)
        self._codes: list[str] = []
        self._save_lock = asyncio.Lock()
        self.changes = ChangeNotifier()

    @property
    def codes(self) -> list[str]:
        return list(self._codes)

    async def load(self) -> None:
        self._codes = await asyncio.to_thread(self._read)

    def is_pinned(self, code: str) -> bool:
        return code in self._codes

    async def pin(self, stop: Stop) -> None:
        if self.is_pinned(stop.code):
            return
        self._codes.append(stop.code)
        await self._save()

    async def unpin(self, stop: Stop) -> None:
        await self.unpin_code(stop.code)

    async def unpin_code(self, code: str) -> None:
        """Remove a pin by code, even if the stop has left the catalog."""
        if not self.is_pinned(code):
            return
        self._codes = [c for c in self._codes if c != code]
        await self._save()

    async def toggle(self, stop: Stop) -> bool:
        """Flip the pin state of ``stop``; returns the new state."""
        if self.is_pinned(stop.code):
            await self.unpin(stop)
            return False
        await self.pin(stop)
        return True

    def pinned_stops(self, catalog: StopCatalog) -> list[Stop]:
        """Pinned stops in pin order, skipping codes the catalog no longer has."""
        return [catalog.stops[c] for c in self._codes if c in catalog]

    async def _save(self) -> None:
        self.changes.notify(self.codes)
        # One write at a time, always of the latest pin list
        async with self._save_lock:
            await asyncio.to_thread(self._write, self.codes)

    # ------------------------------------------------------------------

    def _read_preferences(self) -> dict:
        try:
            data = orjson.loads(self.path.read_bytes())
        except FileNotFoundError:
            return {}
        except (OSError, orjson.JSONDecodeError):
            logger.warning("Ignoring unreadable preferences file %s", self.path, exc_info=True)
            return {}
        return data if isinstance(data, dict) else {}

    def _read(self) -> list[str]:
        codes = self._read_preferences().get(STORAGE_KEY, [])
        if not isinstance(codes, list):
            return []
        # Drop duplicates while keeping pin order
        return list(dict.fromkeys(str(c) for c in codes))

    def _write(self, codes: list[str]) -> None:
        prefs = self._read_preferences()
        prefs[STORAGE_KEY] = codes
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(orjson.dumps(prefs))
            os.replace(tmp, self.path)
        except OSError:
            logger.warning("Failed to save pinned stops to %s", self.path, exc_info=True)

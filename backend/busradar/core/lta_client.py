"""Async client for the LTA DataMall API (bus stops and bus arrivals)."""

import asyncio
import logging

import httpx
import orjson
from pydantic import ValidationError

from busradar.config import settings
from busradar.core.errors import DecodeFailure, NetworkFailure
from busradar.schemas.arrival import BusArrivalResponse, BusService
from busradar.schemas.stop import BusStopsResponse, Stop

logger = logging.getLogger(__name__)

# Seconds to wait before each retry of a transient failure
RETRY_BACKOFF = [2, 4, 8]


class LtaClient:
    """Thin wrapper over the two DataMall endpoints the app needs."""

    def __init__(
        self,
        base_url: str | None = None,
        account_key: str | None = None,
        *,
        timeout: float | None = None,
        max_retries: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.max_retries = settings.http_max_retries if max_retries is None else max_retries
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.lta_base_url,
            timeout=timeout or settings.http_timeout_seconds,
            headers={
                "AccountKey": settings.lta_account_key if account_key is None else account_key,
                "accept": "application/json",
            },
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _get_with_retry(self, path: str, params: dict, label: str) -> httpx.Response:
        """GET with retry on timeouts, connection errors and 5xx responses."""
        for attempt in range(self.max_retries + 1):
            retries_left = attempt < self.max_retries
            wait = RETRY_BACKOFF[min(attempt, len(RETRY_BACKOFF) - 1)]
            try:
                resp = await self._client.get(path, params=params)
            except httpx.TransportError as e:
                if retries_left:
                    logger.warning(
                        "%s attempt %d/%d failed (%s), retrying in %ds",
                        label, attempt + 1, self.max_retries + 1, type(e).__name__, wait,
                    )
                    await asyncio.sleep(wait)
                    continue
                raise NetworkFailure(f"{label} request failed: {type(e).__name__}") from e
            except httpx.HTTPError as e:
                # Not retried, e.g. a body that fails content decoding
                raise NetworkFailure(f"{label} request failed: {type(e).__name__}") from e

            if resp.status_code == 200:
                return resp
            if resp.status_code >= 500 and retries_left:
                logger.warning(
                    "%s attempt %d/%d got HTTP %d, retrying in %ds",
                    label, attempt + 1, self.max_retries + 1, resp.status_code, wait,
                )
                await asyncio.sleep(wait)
                continue
            raise NetworkFailure.from_status(resp.status_code, resp.text)

        raise NetworkFailure(f"{label} request failed")  # pragma: no cover

    @staticmethod
    def _decode(resp: httpx.Response, model, label: str):
        try:
            return model.model_validate(orjson.loads(resp.content))
        except (orjson.JSONDecodeError, ValidationError) as e:
            raise DecodeFailure(f"Failed to decode {label} response: {e}") from e

    async def fetch_bus_stops_page(self, skip: int) -> list[Stop]:
        """Fetch one page of the stop catalog starting at record ``skip``."""
        resp = await self._get_with_retry("/BusStops", {"$skip": skip}, "bus stops")
        page = self._decode(resp, BusStopsResponse, "bus stops")
        logger.debug("Fetched bus stops page skip=%d count=%d", skip, len(page.value))
        return page.value

    async def fetch_bus_arrivals(self, bus_stop_code: str) -> list[BusService]:
        """Fetch real-time arrivals for one stop, in upstream order."""
        resp = await self._get_with_retry(
            "/v3/BusArrival", {"BusStopCode": bus_stop_code}, f"arrivals {bus_stop_code}",
        )
        data = self._decode(resp, BusArrivalResponse, "bus arrival")
        return data.services

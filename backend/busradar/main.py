"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from busradar.api import arrivals, pins, stops, ws
from busradar.config import settings
from busradar.core.arrivals_engine import ArrivalsRefreshEngine
from busradar.core.broadcaster import Broadcaster
from busradar.core.catalog_store import StopCatalogStore
from busradar.core.lta_client import LtaClient
from busradar.core.pin_store import PinStore
from busradar.core.refresh_clock import SharedRefreshClock
from busradar.core.scheduler import create_scheduler
from busradar.core.stop_selector import VisibleStopSelector

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    lta = LtaClient()
    broadcaster = Broadcaster()
    await broadcaster.connect()

    catalog_store = StopCatalogStore(lta)
    selector = VisibleStopSelector()
    engine = ArrivalsRefreshEngine(lta)
    clock = SharedRefreshClock(broadcaster=broadcaster)
    pin_store = PinStore()
    await pin_store.load()

    # Keep the selector in step with catalog replacements
    catalog_store.changes.add_listener(selector.set_catalog)

    # Wire up API modules
    stops.catalog_store = catalog_store
    stops.selector = selector
    stops.engine = engine
    stops.pins = pin_store
    arrivals.catalog_store = catalog_store
    arrivals.engine = engine
    pins.pins = pin_store
    ws.broadcaster = broadcaster
    ws.clock = clock
    ws.engine = engine

    # Load the stop catalog (disk cache first, then LTA)
    try:
        await catalog_store.get_catalog()
    except Exception:
        logger.exception("Failed to load bus stop catalog - will retry on demand")

    scheduler = create_scheduler(clock, catalog_store)
    scheduler.start()
    logger.info(
        "Bus Radar started - arrivals refresh every %ds", settings.arrival_refresh_interval,
    )

    yield

    # Shutdown
    scheduler.shutdown(wait=False)
    clock.stop()
    await engine.close()
    await lta.close()
    await broadcaster.close()
    logger.info("Bus Radar shut down")


app = FastAPI(
    title="Bus Radar",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(stops.router)
app.include_router(arrivals.router)
app.include_router(pins.router)
app.include_router(ws.router)


@app.get("/api/health")
async def health():
    return {"status": "ok"}

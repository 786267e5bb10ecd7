"""Bus arrival endpoints."""

import datetime

from fastapi import APIRouter, HTTPException

from busradar.config import settings
from busradar.schemas.arrival import ArrivalRow, BusService, ServiceArrivals, StopArrivals

router = APIRouter(prefix="/api/stops", tags=["arrivals"])

# Will be set by main.py
catalog_store = None
engine = None


def render_services(services: list[BusService], now: datetime.datetime | None = None) -> list[ServiceArrivals]:
    """Shape cached services for display, honoring the display toggles."""
    now = now or datetime.datetime.now(datetime.timezone.utc)
    rendered = []
    for service in services:
        rows = []
        for bus in service.upcoming:
            rows.append(ArrivalRow(
                minutes=bus.minutes_away(now),
                text=bus.arrival_text(now),
                estimated_arrival=bus.estimated_arrival,
                load=bus.load_description if settings.show_load_indicator else None,
                bus_type=(bus.bus_type or None) if settings.show_bus_type else None,
                wheelchair_accessible=bus.is_wheelchair_accessible if settings.show_wheelchair_accessible else None,
            ))
        rendered.append(ServiceArrivals(
            service_no=service.service_no, operator=service.operator, arrivals=rows,
        ))
    return rendered


def stop_arrivals(code: str) -> StopArrivals:
    return StopArrivals(
        stop_code=code,
        loading=engine.is_fetching(code),
        services=render_services(engine.get_arrivals(code)),
    )


@router.get("/{code}/arrivals", response_model=StopArrivals)
async def get_arrivals(code: str):
    """Cached arrivals for a stop; starts a fetch if none was ever attempted."""
    catalog = catalog_store.peek()
    if catalog is not None and code not in catalog:
        raise HTTPException(status_code=404, detail="Stop not found")
    if not engine.has_arrivals(code) and not engine.is_fetching(code):
        engine.refresh_stop(code)
    return stop_arrivals(code)

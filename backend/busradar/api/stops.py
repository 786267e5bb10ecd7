"""Stop REST API endpoints."""

from fastapi import APIRouter, HTTPException, Query

from busradar.core.errors import BusRadarError, PermissionDenied
from busradar.core.stop_selector import Position, ViewportRegion
from busradar.schemas.stop import Stop, StopView, VisibleStops

router = APIRouter(prefix="/api/stops", tags=["stops"])

# Will be set by main.py
catalog_store = None
selector = None
engine = None
pins = None


def stop_view(stop: Stop, position: Position | None = None, radius: float | None = None) -> StopView:
    distance = position.distance_to(stop) if position else None
    return StopView(
        code=stop.code,
        road_name=stop.road_name,
        description=stop.description,
        lat=stop.lat,
        lon=stop.lon,
        distance_m=round(distance, 1) if distance is not None else None,
        nearby=distance is not None and radius is not None and distance <= radius,
        pinned=pins.is_pinned(stop.code) if pins else False,
    )


async def load_catalog(force_refresh: bool = False):
    try:
        catalog = await catalog_store.get_catalog(force_refresh=force_refresh)
    except BusRadarError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e
    return catalog


@router.get("", response_model=list[StopView])
async def list_stops(force_refresh: bool = False):
    """Get every bus stop in the catalog."""
    catalog = await load_catalog(force_refresh)
    return [stop_view(s) for s in catalog]


@router.get("/search", response_model=list[StopView])
async def search(q: str = Query(min_length=1)):
    """Find stops by description, road name or code."""
    await load_catalog()
    position = selector.position
    return [stop_view(s, position) for s in selector.search(q)]


@router.get("/visible", response_model=VisibleStops)
async def visible_stops(
    lat: float | None = None,
    lon: float | None = None,
    radius: float | None = Query(default=None, gt=0),
    center_lat: float | None = None,
    center_lon: float | None = None,
    lat_span: float | None = Query(default=None, gt=0),
    lon_span: float | None = Query(default=None, gt=0),
    location_allowed: bool = True,
):
    """Nearby stops followed by stops in the map viewport.

    The nearby stops also become the arrivals auto-refresh working set.
    """
    await load_catalog()

    if lat is not None and lon is not None:
        if not location_allowed:
            raise HTTPException(status_code=403, detail=str(PermissionDenied()))
        selector.set_position(Position(lat, lon))
    if radius is not None:
        selector.set_radius(radius)
    if None not in (center_lat, center_lon, lat_span, lon_span):
        selector.set_region(ViewportRegion(center_lat, center_lon, lat_span, lon_span))

    nearby = selector.nearby_stops
    if [s.code for s in nearby[:engine.max_working_set]] != engine.working_set:
        engine.submit_working_set(nearby)

    return VisibleStops(
        stops=[stop_view(s, selector.position, selector.radius_m) for s in selector.visible_stops],
        nearby_count=len(nearby),
    )

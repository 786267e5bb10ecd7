"""Pinned stop endpoints."""

from fastapi import APIRouter, HTTPException

from busradar.api.stops import load_catalog, stop_view
from busradar.schemas.stop import StopView

router = APIRouter(prefix="/api/pins", tags=["pins"])

# Will be set by main.py
pins = None


@router.get("", response_model=list[StopView])
async def list_pins():
    catalog = await load_catalog()
    return [stop_view(s) for s in pins.pinned_stops(catalog)]


@router.put("/{code}", response_model=list[str])
async def pin_stop(code: str):
    catalog = await load_catalog()
    stop = catalog.get(code)
    if stop is None:
        raise HTTPException(status_code=404, detail="Stop not found")
    await pins.pin(stop)
    return pins.codes


@router.delete("/{code}", response_model=list[str])
async def unpin_stop(code: str):
    # Decommissioned stops must stay removable, so no catalog lookup here
    await pins.unpin_code(code)
    return pins.codes

"""WebSocket endpoints for the shared refresh clock and stop detail views."""

import asyncio
import logging

import orjson
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from busradar.api.arrivals import stop_arrivals

logger = logging.getLogger(__name__)

router = APIRouter()

# Will be set by main.py on startup
broadcaster = None
clock = None
engine = None


@router.websocket("/ws/refresh")
async def refresh_ws(websocket: WebSocket) -> None:
    """Stream countdown and refresh events from the shared clock."""
    await websocket.accept()

    if broadcaster is None or clock is None:
        await websocket.close(code=1011, reason="Service not ready")
        return

    await websocket.send_bytes(orjson.dumps(clock.snapshot()))

    queue = broadcaster.subscribe()
    try:
        while True:
            data = await queue.get()
            await websocket.send_bytes(data)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("Refresh WebSocket error")
    finally:
        broadcaster.unsubscribe(queue)


@router.websocket("/ws/stops/{code}/arrivals")
async def stop_detail_ws(websocket: WebSocket, code: str) -> None:
    """Send one stop's arrivals now and again after every clock refresh."""
    await websocket.accept()

    if clock is None or engine is None:
        await websocket.close(code=1011, reason="Service not ready")
        return

    updates: asyncio.Queue = asyncio.Queue(maxsize=1)

    async def on_refresh() -> None:
        await engine.refresh_stop(code)
        if updates.empty():
            updates.put_nowait(None)

    unsubscribe = clock.subscribe(on_refresh)
    try:
        await engine.refresh_stop(code)
        await websocket.send_text(stop_arrivals(code).model_dump_json())
        while True:
            await updates.get()
            await websocket.send_text(stop_arrivals(code).model_dump_json())
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("Stop detail WebSocket error for %s", code)
    finally:
        unsubscribe()

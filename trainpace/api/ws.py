"""WebSocket endpoint for real-time journey updates."""

import asyncio
import logging

import orjson
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter()

# Will be set by main.py on startup
broadcaster = None
manager = None


@router.websocket("/ws/journeys/{session_id}")
async def journey_ws(websocket: WebSocket, session_id: str) -> None:
    """Stream progress, pacing and catch events for one journey."""
    await websocket.accept()

    if broadcaster is None or manager is None:
        await websocket.close(code=1011, reason="Service not ready")
        return

    session = manager.get(session_id)
    if session is None:
        await websocket.close(code=1008, reason="Unknown journey")
        return

    # Send current snapshot first
    await websocket.send_bytes(orjson.dumps(session.snapshot()))

    # Subscribe to updates
    queue = broadcaster.subscribe(session_id)
    try:
        while True:
            data = await queue.get()
            await websocket.send_bytes(data)
    except WebSocketDisconnect:
        pass
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.exception("WebSocket error")
    finally:
        broadcaster.unsubscribe(session_id, queue)

"""Scene activation and event broadcast routes."""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Request, WebSocket, WebSocketDisconnect

from ..storage.models import BroadcastRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["scenes"])


@router.post("/scene/{name}")
async def activate_scene(request: Request, name: str) -> Dict[str, Any]:
    results = await request.app.state.gateway.activate_scene(name)
    if results is None:
        return {"success": False, "error": "Unknown scene"}
    return {"success": True, "scene": name, "results": results}


@router.post("/broadcast")
async def broadcast(request: Request, body: BroadcastRequest) -> Dict[str, Any]:
    """Push an event to every ``/api/events`` subscriber."""
    event = request.app.state.gateway.broadcast(body)
    return {"success": True, "message": "Broadcast sent", "event": event}


@router.websocket("/events")
async def events(websocket: WebSocket) -> None:
    hub = websocket.app.state.gateway.events
    # Subscribe before accepting so nothing published after the handshake is missed
    queue = hub.subscribe()
    try:
        await websocket.accept()
        while True:
            event = await queue.get()
            await websocket.send_json(event)
    except WebSocketDisconnect:
        logger.debug("Event subscriber disconnected")
    finally:
        hub.unsubscribe(queue)

"""Live call events WebSocket."""
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from outreach_voice.core.dependencies import get_broadcaster
from outreach_voice.services.events.broadcaster import EventBroadcaster

logger = logging.getLogger(__name__)

router = APIRouter(tags=["events"])


@router.websocket("/ws/events")
async def events_websocket(
    websocket: WebSocket,
    broadcaster: EventBroadcaster = Depends(get_broadcaster),
):
    """
    Stream call events to a dashboard.

    Observers only listen; anything they send is ignored.
    """
    await websocket.accept()
    client_host = websocket.client.host if websocket.client else "unknown"
    logger.info(f"[EVENTS] WebSocket connection from {client_host}")

    broadcaster.register(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"[EVENTS] WebSocket disconnected - Client: {client_host}")
    finally:
        broadcaster.unregister(websocket)

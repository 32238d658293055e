"""Health check endpoint."""
import logging
from fastapi import APIRouter, Depends, Request

from outreach_voice.core.dependencies import get_broadcaster, get_registry
from outreach_voice.services.call_session.registry import CallRegistry
from outreach_voice.services.events.broadcaster import EventBroadcaster

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(
    request: Request,
    registry: CallRegistry = Depends(get_registry),
    broadcaster: EventBroadcaster = Depends(get_broadcaster),
):
    """Health check endpoint."""
    logger.debug(
        f"[HEALTH] Health check requested - Client: {request.client.host if request.client else 'unknown'}"
    )
    return {
        "status": "healthy",
        "activeCalls": len(await registry.active()),
        "observers": broadcaster.observer_count,
    }

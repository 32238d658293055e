"""Synthesized audio retrieval."""
import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from outreach_voice.core.dependencies import get_audio_store
from outreach_voice.services.speech.audio_store import AudioArtifactStore

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/audio/{artifact_id}")
async def get_audio(
    artifact_id: str,
    store: AudioArtifactStore = Depends(get_audio_store),
):
    """Serve a synthesized line to the telephony provider."""
    path = store.get_path(artifact_id)
    if path is None:
        logger.warning(f"[AUDIO] Artifact not found or expired - Id: {artifact_id}")
        raise HTTPException(status_code=404, detail="Audio not found")
    return FileResponse(path, media_type="audio/mpeg")

"""Short-lived storage for synthesized audio."""
import asyncio
import logging
import time
import uuid
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel

from outreach_voice.core.config import settings

logger = logging.getLogger(__name__)


class AudioArtifact(BaseModel):
    """A synthesized audio file the telephony provider fetches once."""

    artifact_id: str
    path: str
    created_at: float
    ttl_seconds: int
    expires_at: float

    def expired(self, now: Optional[float] = None) -> bool:
        return (now if now is not None else time.time()) >= self.expires_at


class AudioArtifactStore:
    """
    Writes synthesized audio to disk and deletes it once its TTL passes.

    Deletion is idempotent, so the sweeper and an explicit delete may race
    without error.
    """

    def __init__(self, directory: Optional[str] = None, ttl_seconds: Optional[int] = None):
        self.directory = Path(directory or settings.audio_dir)
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.audio_ttl_seconds
        self._artifacts: Dict[str, AudioArtifact] = {}

    async def save(self, audio: bytes, suffix: str = ".mp3") -> AudioArtifact:
        artifact_id = f"{uuid.uuid4().hex}{suffix}"
        path = self.directory / artifact_id
        await asyncio.to_thread(self._write, path, audio)

        now = time.time()
        artifact = AudioArtifact(
            artifact_id=artifact_id,
            path=str(path),
            created_at=now,
            ttl_seconds=self.ttl_seconds,
            expires_at=now + self.ttl_seconds,
        )
        self._artifacts[artifact_id] = artifact
        logger.debug(f"[AUDIO] Saved {artifact_id} ({len(audio)} bytes)")
        return artifact

    def _write(self, path: Path, audio: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(audio)

    def get(self, artifact_id: str) -> Optional[AudioArtifact]:
        artifact = self._artifacts.get(artifact_id)
        if artifact is None or artifact.expired():
            return None
        return artifact

    def get_path(self, artifact_id: str) -> Optional[Path]:
        artifact = self.get(artifact_id)
        if artifact is None:
            return None
        path = Path(artifact.path)
        return path if path.exists() else None

    def delete(self, artifact_id: str) -> bool:
        """Remove an artifact. Returns False when it was already gone."""
        artifact = self._artifacts.pop(artifact_id, None)
        if artifact is None:
            return False
        try:
            Path(artifact.path).unlink()
        except FileNotFoundError:
            pass
        return True

    def sweep_expired(self, now: Optional[float] = None) -> List[str]:
        now = now if now is not None else time.time()
        expired = [a.artifact_id for a in list(self._artifacts.values()) if a.expired(now)]
        for artifact_id in expired:
            self.delete(artifact_id)
        if expired:
            logger.debug(f"[AUDIO] Swept {len(expired)} expired artifact(s)")
        return expired

    async def run_sweeper(self, interval: Optional[float] = None) -> None:
        """Delete expired artifacts until cancelled."""
        interval = interval or settings.audio_sweep_interval_seconds
        while True:
            await asyncio.sleep(interval)
            try:
                self.sweep_expired()
            except OSError as e:
                logger.error(f"[AUDIO] Sweep failed - Error: {type(e).__name__}: {str(e)}")

    def __len__(self) -> int:
        return len(self._artifacts)

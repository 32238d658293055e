"""Campaign lookup service."""
from typing import Any, Dict, Optional
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from outreach_voice.core.config import settings
from outreach_voice.db.models import Campaign


class VoiceSettings(BaseModel):
    """Premium synthesis parameters for one campaign."""

    voice_id: str
    model: str
    stability: float = 0.5
    similarity_boost: float = 0.75
    style: float = 0.0
    use_speaker_boost: bool = True


class CampaignContext(BaseModel):
    """Read-only view of a campaign as consumed by the call pipeline."""

    id: str
    name: str
    prompt: str
    script: Optional[str] = None
    intro_line: str
    agent_name: str
    language: str = "en"
    model: Optional[str] = None
    voice: VoiceSettings
    # Premium voice id per response language ("english", "hindi", "mixed")
    language_voices: Dict[str, str] = {}

    def voice_for(self, language: Optional[str]) -> VoiceSettings:
        """Premium voice for the caller's language, falling back to the campaign voice."""
        voice_id = self.language_voices.get((language or "").lower())
        if not voice_id or voice_id == self.voice.voice_id:
            return self.voice
        return self.voice.model_copy(update={"voice_id": voice_id})

    @classmethod
    def from_record(cls, campaign: Campaign) -> "CampaignContext":
        config: Dict[str, Any] = campaign.voice_config or {}
        voice = VoiceSettings(
            voice_id=campaign.voice_id or settings.default_voice_id,
            model=campaign.elevenlabs_model or settings.default_voice_model,
            stability=config.get("stability", 0.5),
            similarity_boost=config.get("similarity_boost", config.get("similarityBoost", 0.75)),
            style=config.get("style", 0.0),
            use_speaker_boost=config.get("use_speaker_boost", config.get("useSpeakerBoost", True)),
        )
        return cls(
            id=campaign.id,
            name=campaign.name,
            prompt=campaign.ai_prompt,
            script=campaign.script,
            intro_line=campaign.intro_line,
            agent_name=campaign.agent_name,
            language=campaign.language or "en",
            model=campaign.openai_model,
            voice=voice,
            language_voices=config.get("language_voices", config.get("languageVoices")) or {},
        )


class CampaignPersistenceService:
    """Read-only access to campaigns."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_campaign(self, campaign_id: str) -> Optional[CampaignContext]:
        campaign = await self.db.get(Campaign, campaign_id)
        if not campaign:
            return None
        return CampaignContext.from_record(campaign)

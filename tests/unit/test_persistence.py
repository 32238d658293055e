"""Unit tests for persistence services (calls, contacts and campaigns)."""
import pytest
from datetime import datetime

from outreach_voice.services.persistence.calls import CallPersistenceService
from outreach_voice.services.persistence.campaigns import CampaignPersistenceService
from outreach_voice.services.persistence.contacts import ContactPersistenceService


class TestCallPersistence:
    """Test call persistence service."""

    @pytest.mark.asyncio
    async def test_create_call(self, test_db):
        """Test creating a new call record."""
        service = CallPersistenceService(test_db)

        call = await service.create_call("call-abc", phone_number="+919876543210")

        assert call is not None
        assert call.id is not None
        assert call.call_id == "call-abc"
        assert call.status == "in_progress"
        assert call.started_at is not None

    @pytest.mark.asyncio
    async def test_create_call_idempotent(self, test_db):
        """Test that creating same call twice returns existing call."""
        service = CallPersistenceService(test_db)

        call1 = await service.create_call("call-dup")
        call2 = await service.create_call("call-dup")

        assert call1.id == call2.id

    @pytest.mark.asyncio
    async def test_set_provider_call_sid(self, test_db):
        service = CallPersistenceService(test_db)
        await service.create_call("call-sid")

        call = await service.set_provider_call_sid("call-sid", "CA123")

        assert call.provider_call_sid == "CA123"

    @pytest.mark.asyncio
    async def test_update_call_status(self, test_db):
        """Test updating call status."""
        service = CallPersistenceService(test_db)
        await service.create_call("call-status")
        ended_at = datetime.utcnow()

        updated = await service.update_call_status("call-status", "failed", ended_at=ended_at)

        assert updated.status == "failed"
        assert updated.ended_at == ended_at

    @pytest.mark.asyncio
    async def test_unknown_call(self, test_db):
        service = CallPersistenceService(test_db)
        assert await service.get_call("missing") is None
        assert await service.update_call_status("missing", "completed") is None
        assert await service.record_turn("missing", []) is None

    @pytest.mark.asyncio
    async def test_finalize_leaves_unset_fields(self, test_db):
        service = CallPersistenceService(test_db)
        await service.create_call("call-final")
        await service.record_turn(
            "call-final",
            [{"role": "customer", "content": "hi"}],
            collected_data={"email": "a@b.com"},
        )

        call = await service.finalize_call("call-final", status="completed", ended_at=datetime.utcnow())

        assert call.status == "completed"
        assert call.collected_data == {"email": "a@b.com"}
        assert call.extracted_email == "a@b.com"
        assert call.success_score is None


class TestContactPersistence:
    """Test contact persistence service."""

    @pytest.mark.asyncio
    async def test_update_is_non_destructive(self, test_db, contact):
        service = ContactPersistenceService(test_db)

        updated = await service.update_contact(
            contact.id, {"email": "ravi@lab.com", "name": "", "whatsapp_number": None, "unknown": "x"}
        )

        assert updated.email == "ravi@lab.com"
        assert updated.name == "Ravi"
        assert updated.whatsapp_number is None

    @pytest.mark.asyncio
    async def test_create_and_find_by_phone(self, test_db):
        service = ContactPersistenceService(test_db)

        created = await service.create_contact("Asha", "+919800000001", company="Asha Labs")
        found = await service.get_contact_by_phone("+919800000001")

        assert found.id == created.id
        assert found.company == "Asha Labs"


class TestCampaignPersistence:
    """Test campaign lookup."""

    @pytest.mark.asyncio
    async def test_get_campaign_context(self, test_db, campaign):
        context = await CampaignPersistenceService(test_db).get_campaign("camp-1")

        assert context.agent_name == "Anvika"
        assert context.voice.voice_id == "voice-premium"
        assert context.voice.stability == 0.4
        assert context.voice.similarity_boost == 0.8
        assert context.voice.use_speaker_boost is True

    @pytest.mark.asyncio
    async def test_missing_campaign(self, test_db):
        assert await CampaignPersistenceService(test_db).get_campaign("nope") is None

    @pytest.mark.asyncio
    async def test_voice_for_language(self, test_db, campaign):
        campaign.voice_config = {"stability": 0.4, "languageVoices": {"hindi": "voice-hindi"}}
        await test_db.commit()

        context = await CampaignPersistenceService(test_db).get_campaign("camp-1")

        hindi = context.voice_for("hindi")
        assert hindi.voice_id == "voice-hindi"
        assert hindi.stability == 0.4
        assert context.voice_for("english") is context.voice
        assert context.voice_for(None) is context.voice
        assert context.voice.voice_id == "voice-premium"

"""Database models."""
import uuid
from datetime import datetime
from sqlalchemy import Boolean, Column, Integer, String, DateTime, ForeignKey, Text, JSON
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class Contact(Base):
    """Prospect contact model."""

    __tablename__ = "contacts"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=False, index=True)
    email = Column(String, nullable=True)
    whatsapp_number = Column(String, nullable=True)
    company = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    calls = relationship("Call", back_populates="contact")


class Campaign(Base):
    """Outreach campaign model. Read-only for the call pipeline."""

    __tablename__ = "campaigns"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    ai_prompt = Column(Text, nullable=False)  # System prompt and campaign objective
    script = Column(Text, nullable=True)
    intro_line = Column(
        Text,
        nullable=False,
        default="Hi, this is Anvika calling. Am I speaking with the owner or manager?",
    )
    agent_name = Column(String, nullable=False, default="Anvika")
    openai_model = Column(String, nullable=True)
    language = Column(String, nullable=False, default="en")
    elevenlabs_model = Column(String, nullable=False, default="eleven_multilingual_v2")
    voice_id = Column(String, nullable=True)
    voice_config = Column(JSON, nullable=True)  # stability, similarity_boost, style, use_speaker_boost
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    calls = relationship("Call", back_populates="campaign")


class Call(Base):
    """Call metadata model."""

    __tablename__ = "calls"

    id = Column(Integer, primary_key=True, index=True)
    call_id = Column(String, unique=True, index=True, nullable=False)
    provider_call_sid = Column(String, nullable=True, index=True)
    contact_id = Column(String, ForeignKey("contacts.id"), nullable=True)
    campaign_id = Column(String, ForeignKey("campaigns.id"), nullable=True)
    phone_number = Column(String, nullable=False, default="")
    status = Column(String, default="in_progress", nullable=False)  # in_progress, active, completed, failed, busy, no_answer, not_interested
    outcome = Column(String, nullable=True)
    duration = Column(Integer, nullable=True)  # seconds
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    ended_at = Column(DateTime, nullable=True)
    transcript = Column(Text, nullable=True)
    conversation_summary = Column(Text, nullable=True)
    collected_data = Column(JSON, nullable=True)
    extracted_whatsapp = Column(String, nullable=True)
    extracted_email = Column(String, nullable=True)
    ai_response_time = Column(Integer, nullable=True)  # milliseconds
    success_score = Column(Integer, nullable=True)  # 1-100

    contact = relationship("Contact", back_populates="calls")
    campaign = relationship("Campaign", back_populates="calls")
    messages = relationship(
        "CallMessage", back_populates="call", cascade="all, delete-orphan", order_by="CallMessage.id"
    )


class CallMessage(Base):
    """One spoken turn of a call."""

    __tablename__ = "call_messages"

    id = Column(Integer, primary_key=True, index=True)
    call_id = Column(Integer, ForeignKey("calls.id"), nullable=False)
    role = Column(String, nullable=False)  # customer, agent
    content = Column(Text, nullable=False)
    turn_id = Column(String, nullable=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    call = relationship("Call", back_populates="messages")

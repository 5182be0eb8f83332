"""Database models."""
import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    LargeBinary,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class CallStatus(str, Enum):
    """Lifecycle of one outbound call attempt."""

    INITIATED = "Initiated"
    RINGING = "Ringing"
    ANSWERED = "Answered"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    FAILED = "Failed"
    BUSY = "Busy"
    NO_ANSWER = "NoAnswer"
    CANCELED = "Canceled"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_CALL_STATUSES

    @classmethod
    def from_provider(cls, provider_status: Optional[str]) -> Optional["CallStatus"]:
        """Map a Twilio CallStatus value (e.g. ``no-answer``) to a CallStatus."""
        if not provider_status:
            return None
        return _PROVIDER_STATUS_MAP.get(provider_status.strip().lower())


TERMINAL_CALL_STATUSES = frozenset(
    {
        CallStatus.COMPLETED,
        CallStatus.FAILED,
        CallStatus.BUSY,
        CallStatus.NO_ANSWER,
        CallStatus.CANCELED,
    }
)

_PROVIDER_STATUS_MAP = {
    "queued": CallStatus.INITIATED,
    "initiated": CallStatus.INITIATED,
    "ringing": CallStatus.RINGING,
    "answered": CallStatus.ANSWERED,
    "in-progress": CallStatus.IN_PROGRESS,
    "completed": CallStatus.COMPLETED,
    "failed": CallStatus.FAILED,
    "busy": CallStatus.BUSY,
    "no-answer": CallStatus.NO_ANSWER,
    "canceled": CallStatus.CANCELED,
}


class Profile(Base):
    """Dashboard user with their provider credentials."""

    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=_new_id)
    email = Column(String, nullable=False)
    full_name = Column(String, nullable=True)
    twilio_account_sid = Column(String, nullable=True)
    twilio_auth_token = Column(String, nullable=True)
    twilio_phone_number = Column(String, nullable=True)
    elevenlabs_api_key = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Prospect(Base):
    """Person on a prospect list."""

    __tablename__ = "prospects"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    phone_number = Column(String, nullable=True)
    property_address = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(String, default="Pending", nullable=False)  # Pending, Calling, Completed
    last_call_attempted = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    calls = relationship("CallLog", back_populates="prospect")


class AgentConfig(Base):
    """Named bundle of dialog behavior."""

    __tablename__ = "agent_configs"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    config_name = Column(String, default="Default", nullable=False)
    system_prompt = Column(Text, nullable=False, default="")
    goal_extraction_prompt = Column(Text, nullable=True)
    llm_provider = Column(String, default="openai", nullable=False)
    llm_model = Column(String, default="gpt-4o-mini", nullable=False)
    temperature = Column(Float, default=0.7, nullable=False)
    voice_provider = Column(String, default="twilio", nullable=False)  # twilio, elevenlabs
    voice_id = Column(String, nullable=True)
    elevenlabs_agent_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class CallLog(Base):
    """One outbound call attempt."""

    __tablename__ = "call_logs"

    id = Column(String(36), primary_key=True, default=_new_id)
    prospect_id = Column(String(36), ForeignKey("prospects.id"), nullable=True, index=True)
    agent_config_id = Column(String(36), ForeignKey("agent_configs.id"), nullable=True)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    # NULL until Twilio accepts the call, then set once
    twilio_call_sid = Column(String, unique=True, index=True, nullable=True)
    call_status = Column(String, default=CallStatus.INITIATED.value, nullable=False)
    call_duration_seconds = Column(Integer, nullable=True)
    recording_url = Column(String, nullable=True)
    transcript = Column(Text, nullable=True)
    summary = Column(Text, nullable=True)
    extracted_data = Column(JSON, nullable=True)
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    ended_at = Column(DateTime, nullable=True)

    prospect = relationship("Prospect", back_populates="calls")
    clips = relationship("SpeechClip", back_populates="call_log", cascade="all, delete-orphan")


class SpeechClip(Base):
    """Synthesized audio for one agent turn, fetched by Twilio through <Play>."""

    __tablename__ = "speech_clips"

    id = Column(String(36), primary_key=True, default=_new_id)
    call_log_id = Column(String(36), ForeignKey("call_logs.id"), nullable=True, index=True)
    content_type = Column(String, default="audio/mpeg", nullable=False)
    audio = Column(LargeBinary, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    call_log = relationship("CallLog", back_populates="clips")

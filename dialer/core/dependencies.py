"""FastAPI dependencies."""
from typing import Callable

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from dialer.core.config import Settings, settings
from dialer.db.database import get_db
from dialer.services.calls.control import CallControlService
from dialer.services.calls.initiator import OutboundCallInitiator
from dialer.services.dialog.agent import DialogAgent
from dialer.services.speech.tts import TextToSpeechService
from dialer.services.speech.voice_agent import VoiceAgentCallService
from dialer.services.telephony.client import TwilioGateway


def get_settings() -> Settings:
    """Get application settings."""
    return settings


def get_base_url(request: Request, app_settings: Settings) -> str:
    """
    Get the base URL for constructing absolute URLs.

    Uses BASE_URL if set (the origin Twilio was given), otherwise
    constructs it from the request.
    """
    if app_settings.base_url:
        return app_settings.base_url.rstrip("/")
    return str(request.base_url).rstrip("/")


def get_gateway_factory() -> Callable[[str, str], TwilioGateway]:
    """Get the factory that builds a Twilio gateway from account credentials."""
    return TwilioGateway


def get_speech_factory() -> Callable[..., TextToSpeechService]:
    return TextToSpeechService


def get_voice_agent_factory() -> Callable[..., VoiceAgentCallService]:
    return VoiceAgentCallService


def get_dialog_agent(app_settings: Settings = Depends(get_settings)) -> DialogAgent:
    return DialogAgent(settings=app_settings)


def get_call_initiator(
    db: AsyncSession = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
    gateway_factory: Callable[[str, str], TwilioGateway] = Depends(get_gateway_factory),
    voice_agent_factory: Callable[..., VoiceAgentCallService] = Depends(get_voice_agent_factory),
) -> OutboundCallInitiator:
    return OutboundCallInitiator(
        db,
        settings=app_settings,
        gateway_factory=gateway_factory,
        voice_agent_factory=voice_agent_factory,
    )


def get_call_control(
    db: AsyncSession = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
    gateway_factory: Callable[[str, str], TwilioGateway] = Depends(get_gateway_factory),
) -> CallControlService:
    return CallControlService(db, settings=app_settings, gateway_factory=gateway_factory)

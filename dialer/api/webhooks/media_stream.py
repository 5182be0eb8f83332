"""Twilio media stream WebSocket endpoint."""
import asyncio
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket
from sqlalchemy.ext.asyncio import AsyncSession
from websockets.exceptions import WebSocketException

from dialer.core.config import Settings
from dialer.core.dependencies import get_settings
from dialer.db.database import get_db
from dialer.services.media.bridge import BridgeSession
from dialer.services.media.channels import TelephonyChannel, connect_voice_agent
from dialer.services.persistence.calls import CallLogPersistenceService
from dialer.services.persistence.configs import ProfileRepository

router = APIRouter()
logger = logging.getLogger(__name__)

VOICE_CONNECT_TIMEOUT_SECONDS = 10.0
MIN_API_KEY_LENGTH = 32

POLICY_VIOLATION = 1008
INTERNAL_ERROR = 1011


@router.websocket("/voice/media-stream")
async def media_stream(
    websocket: WebSocket,
    agent_id: Optional[str] = Query(default=None),
    voice_id: Optional[str] = Query(default=None),
    user_id: Optional[str] = Query(default=None),
    call_log_id: Optional[str] = Query(default=None),
    debug: bool = Query(default=False),
    db: AsyncSession = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
):
    """Bridge a Twilio media stream to an ElevenLabs conversational agent."""
    connection_id = uuid.uuid4().hex[:8]
    logger.info(
        f"[MEDIA STREAM] [{connection_id}] Upgrade requested - agent: {agent_id}, "
        f"call_log_id: {call_log_id}, debug: {debug}"
    )

    if not agent_id:
        logger.error(f"[MEDIA STREAM] [{connection_id}] Missing agent_id, rejecting")
        await websocket.close(code=POLICY_VIOLATION)
        return

    profile = await ProfileRepository(db).get(user_id)
    api_key = (profile.elevenlabs_api_key if profile else None) or app_settings.elevenlabs_api_key
    if not api_key or len(api_key) < MIN_API_KEY_LENGTH:
        logger.error(f"[MEDIA STREAM] [{connection_id}] ElevenLabs API key missing or malformed, rejecting")
        await websocket.close(code=INTERNAL_ERROR)
        return

    await websocket.accept()

    try:
        voice = await connect_voice_agent(
            app_settings.elevenlabs_ws_url,
            agent_id,
            api_key,
            voice_id=voice_id,
            timeout=VOICE_CONNECT_TIMEOUT_SECONDS,
        )
    except (asyncio.TimeoutError, OSError, WebSocketException) as e:
        logger.error(
            f"[MEDIA STREAM] [{connection_id}] Could not connect to voice agent - "
            f"Error: {type(e).__name__}: {str(e)}"
        )
        await websocket.close(code=INTERNAL_ERROR)
        return

    call_logs = CallLogPersistenceService(db)

    async def append_transcript(speaker: str, text: str) -> None:
        await call_logs.append_transcript(call_log_id, f"{speaker}: {text}")

    session = BridgeSession(
        TelephonyChannel(websocket),
        voice,
        transcript_writer=append_transcript if call_log_id else None,
        keepalive_timeout=app_settings.keepalive_timeout_seconds,
        connection_id=connection_id,
    )
    await session.run()

"""Socket adapters the bridge reads from and writes to."""
import logging
from typing import Optional, Union

import websockets
from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState
from websockets.exceptions import ConnectionClosed

from dialer.services.media.messages import auth_frame
from dialer.services.telephony.twiml import build_callback_url

logger = logging.getLogger(__name__)

TELEPHONY_AUDIO_FORMAT = "mulaw_8000"


def _as_text(message: Union[str, bytes]) -> str:
    return message if isinstance(message, str) else message.decode("utf-8")


class TelephonyChannel:
    """Twilio's side of the bridge: the accepted FastAPI WebSocket."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    async def receive(self) -> Optional[str]:
        """Next frame, or ``None`` once the socket is gone."""
        try:
            return await self.websocket.receive_text()
        except (WebSocketDisconnect, RuntimeError):
            return None

    async def send(self, text: str) -> None:
        await self.websocket.send_text(text)

    async def close(self, code: int = 1000) -> None:
        if self.websocket.application_state == WebSocketState.DISCONNECTED:
            return
        if self.websocket.client_state == WebSocketState.DISCONNECTED:
            return
        await self.websocket.close(code=code)


class VoiceAgentChannel:
    """ElevenLabs' side of the bridge: a client connection from ``websockets``."""

    def __init__(self, connection):
        self.connection = connection

    async def receive(self) -> Optional[str]:
        try:
            return _as_text(await self.connection.recv())
        except ConnectionClosed:
            return None

    async def send(self, text: str) -> None:
        await self.connection.send(text)

    async def close(self, code: int = 1000) -> None:
        await self.connection.close(code=code)


def voice_agent_url(ws_url: str, agent_id: str, voice_id: Optional[str] = None) -> str:
    return build_callback_url(
        ws_url,
        {
            "agent_id": agent_id,
            "voice_id": voice_id,
            "input_format": TELEPHONY_AUDIO_FORMAT,
            "output_format": TELEPHONY_AUDIO_FORMAT,
        },
    )


async def connect_voice_agent(
    ws_url: str,
    agent_id: str,
    api_key: str,
    voice_id: Optional[str] = None,
    timeout: float = 10.0,
) -> VoiceAgentChannel:
    """
    Open the conversational voice socket and authenticate.

    Raises ``asyncio.TimeoutError`` when the handshake takes longer than
    ``timeout``, or a ``websockets``/``OSError`` exception when it fails.
    """
    url = voice_agent_url(ws_url, agent_id, voice_id)
    logger.info(f"[MEDIA STREAM] Connecting to voice agent {agent_id}, voice: {voice_id or 'default'}")
    connection = await websockets.connect(url, open_timeout=timeout)
    await connection.send(auth_frame(api_key))
    logger.info("[MEDIA STREAM] Voice agent connected, authorization sent")
    return VoiceAgentChannel(connection)

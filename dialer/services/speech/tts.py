"""Text-to-speech service."""
import logging
from typing import Optional

import httpx

from dialer.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

DEFAULT_VOICE_ID = "EXAVITQu4vr4xnSDxMaL"


class SpeechSynthesisError(Exception):
    """The voice provider could not synthesize the text."""


class TextToSpeechService:
    """Service for converting text to speech with ElevenLabs."""

    def __init__(
        self,
        api_key: str,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.settings = settings or default_settings
        self._transport = transport

    async def synthesize_speech(
        self,
        text: str,
        voice_id: Optional[str] = None,
        stability: float = 0.5,
        similarity_boost: float = 0.75,
    ) -> bytes:
        """
        Synthesize speech from text using ElevenLabs TTS.

        Args:
            text: Text to convert to speech
            voice_id: ElevenLabs voice; a stock voice when not given
            stability: Voice stability setting
            similarity_boost: Voice similarity setting

        Returns:
            Audio bytes (MP3 format)
        """
        if not text or not text.strip():
            raise SpeechSynthesisError("Nothing to synthesize")

        voice = voice_id or DEFAULT_VOICE_ID
        url = f"{self.settings.elevenlabs_api_url.rstrip('/')}/text-to-speech/{voice}"
        headers = {
            "xi-api-key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "audio/mpeg",
        }
        payload = {
            "text": text,
            "model_id": self.settings.elevenlabs_tts_model,
            "voice_settings": {"stability": stability, "similarity_boost": similarity_boost},
        }

        try:
            async with httpx.AsyncClient(timeout=15.0, transport=self._transport) as client:
                response = await client.post(url, headers=headers, json=payload)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SpeechSynthesisError(
                f"TTS synthesis failed with status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise SpeechSynthesisError(f"TTS synthesis failed: {str(e)}") from e

        logger.info(f"[TTS] Synthesized {len(text)} chars -> {len(response.content)} bytes, voice={voice[:8]}")
        return response.content

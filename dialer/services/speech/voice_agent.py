"""Outbound calls placed by an ElevenLabs conversational agent."""
import logging
from typing import Any, Dict, Optional

import httpx

from dialer.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class VoiceAgentCallError(Exception):
    """The voice provider refused or failed to place the call."""


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text
    if isinstance(data, dict):
        detail = data.get("detail") or data.get("message")
        if isinstance(detail, dict):
            return detail.get("message") or str(detail)
        if detail:
            return str(detail)
    return response.text


class VoiceAgentCallService:
    """
    Places calls through the voice provider's own Twilio integration.

    The provider dials the number and runs the whole conversation; this
    service only starts it and reports the provider's call SID back.
    """

    def __init__(
        self,
        api_key: str,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.settings = settings or default_settings
        self._transport = transport

    async def place_call(
        self,
        agent_id: str,
        to_number: str,
        dynamic_variables: Optional[Dict[str, Any]] = None,
        conversation_config_override: Optional[Dict[str, Any]] = None,
    ) -> Optional[str]:
        """Ask the provider to dial ``to_number``; returns the call SID when the provider reports one."""
        url = f"{self.settings.elevenlabs_api_url.rstrip('/')}/convai/twilio/outbound-call"
        headers = {"xi-api-key": self.api_key, "Content-Type": "application/json"}
        payload = {
            "agent_id": agent_id,
            "to_number": to_number,
            "conversation_initiation_client_data": {
                "dynamic_variables": dynamic_variables or {},
                "conversation_config_override": conversation_config_override or {},
            },
        }

        try:
            async with httpx.AsyncClient(timeout=15.0, transport=self._transport) as client:
                response = await client.post(url, headers=headers, json=payload)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise VoiceAgentCallError(
                f"ElevenLabs API error: {e.response.status_code} {_error_detail(e.response)}"
            ) from e
        except httpx.HTTPError as e:
            raise VoiceAgentCallError(f"ElevenLabs API request failed: {str(e)}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}
        call_sid = data.get("callSid") if isinstance(data, dict) else None
        logger.info(f"[VOICE AGENT] Outbound call started - agent: {agent_id}, To: {to_number}, CallSid: {call_sid}")
        return call_sid

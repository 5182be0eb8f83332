"""Absolute URLs Twilio calls back on."""
from typing import Mapping, Optional

from dialer.services.dialog.state import DialogTurnState
from dialer.services.telephony.twiml import build_callback_url

CALL_WEBHOOK_PATH = "/webhooks/voice/call"
STATUS_CALLBACK_PATH = "/webhooks/voice/call/status"
RESPOND_PATH = "/webhooks/voice/respond"
AUDIO_PATH = "/webhooks/voice/audio"
MEDIA_STREAM_PATH = "/webhooks/voice/media-stream"


def call_webhook_url(base_url: str, state: DialogTurnState) -> str:
    return build_callback_url(f"{base_url}{CALL_WEBHOOK_PATH}", state.to_query())


def status_callback_url(base_url: str, state: DialogTurnState) -> str:
    params = {"call_log_id": state.call_log_id, "user_id": state.user_id}
    if state.bypass_validation:
        params["bypass_validation"] = "true"
    return build_callback_url(f"{base_url}{STATUS_CALLBACK_PATH}", params)


def respond_url(base_url: str, state: DialogTurnState) -> str:
    return build_callback_url(f"{base_url}{RESPOND_PATH}", state.to_query())


def audio_url(base_url: str, clip_id: str) -> str:
    return f"{base_url}{AUDIO_PATH}/{clip_id}"


def media_stream_url(base_url: str, params: Optional[Mapping[str, Optional[str]]] = None) -> str:
    """Media stream WebSocket URL on the same origin, ws(s) scheme."""
    if base_url.startswith("https://"):
        ws_base = "wss://" + base_url[len("https://"):]
    elif base_url.startswith("http://"):
        ws_base = "ws://" + base_url[len("http://"):]
    else:
        ws_base = base_url
    return build_callback_url(f"{ws_base}{MEDIA_STREAM_PATH}", params or {})

"""
Media stream wire messages.

Raw JSON frames from either socket are decoded here into a closed set of
message models before the bridge looks at them. A frame whose ``event``
(Twilio) or ``type`` (ElevenLabs) is not in the set raises
``UnsupportedMessageError``.
"""
import json
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError


class UnsupportedMessageError(ValueError):
    """A frame that is not valid JSON or not one of the known message types."""

    def __init__(self, message_type: Optional[str], detail: str = ""):
        self.message_type = message_type
        super().__init__(f"unsupported message type {message_type!r}" + (f": {detail}" if detail else ""))


class _Frame(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# Twilio -> us

class StreamStart(_Frame):
    stream_sid: str = Field(alias="streamSid")
    call_sid: Optional[str] = Field(default=None, alias="callSid")
    custom_parameters: Dict[str, str] = Field(default_factory=dict, alias="customParameters")


class MediaPayload(_Frame):
    payload: str
    track: Optional[str] = None


class ConnectedEvent(_Frame):
    event: Literal["connected"]


class StartEvent(_Frame):
    event: Literal["start"]
    start: StreamStart


class MediaEvent(_Frame):
    event: Literal["media"]
    media: MediaPayload


class StopEvent(_Frame):
    event: Literal["stop"]


class MarkEvent(_Frame):
    event: Literal["mark"]


class DtmfEvent(_Frame):
    event: Literal["dtmf"]


TelephonyMessage = Annotated[
    Union[ConnectedEvent, StartEvent, MediaEvent, StopEvent, MarkEvent, DtmfEvent],
    Field(discriminator="event"),
]


# ElevenLabs -> us

class AudioEventBody(_Frame):
    audio_base_64: Optional[str] = None
    event_id: Optional[int] = None


class PingEventBody(_Frame):
    event_id: int
    ping_ms: Optional[int] = None


class UserTranscriptBody(_Frame):
    user_transcript: str = ""


class AgentResponseBody(_Frame):
    agent_response: str = ""


class ConversationInitiationMetadata(_Frame):
    type: Literal["conversation_initiation_metadata"]
    conversation_initiation_metadata_event: Dict[str, Any] = Field(default_factory=dict)


class AudioMessage(_Frame):
    type: Literal["audio"]
    audio_event: AudioEventBody = Field(default_factory=AudioEventBody)


class InterruptionMessage(_Frame):
    type: Literal["interruption"]


class PingMessage(_Frame):
    type: Literal["ping"]
    ping_event: PingEventBody


class UserTranscriptMessage(_Frame):
    type: Literal["user_transcript"]
    user_transcription_event: UserTranscriptBody = Field(default_factory=UserTranscriptBody)


class AgentResponseMessage(_Frame):
    type: Literal["agent_response"]
    agent_response_event: AgentResponseBody = Field(default_factory=AgentResponseBody)


class VoiceErrorMessage(_Frame):
    model_config = ConfigDict(extra="allow")

    type: Literal["error"]


VoiceMessage = Annotated[
    Union[
        ConversationInitiationMetadata,
        AudioMessage,
        InterruptionMessage,
        PingMessage,
        UserTranscriptMessage,
        AgentResponseMessage,
        VoiceErrorMessage,
    ],
    Field(discriminator="type"),
]

_TELEPHONY_ADAPTER = TypeAdapter(TelephonyMessage)
_VOICE_ADAPTER = TypeAdapter(VoiceMessage)


def _decode(raw: Union[str, bytes], adapter: TypeAdapter, tag: str):
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise UnsupportedMessageError(None, "invalid JSON") from e
    if not isinstance(data, dict):
        raise UnsupportedMessageError(None, "frame is not a JSON object")
    try:
        return adapter.validate_python(data)
    except ValidationError as e:
        raise UnsupportedMessageError(data.get(tag), e.errors()[0]["msg"]) from e


def decode_telephony_message(raw: Union[str, bytes]) -> TelephonyMessage:
    return _decode(raw, _TELEPHONY_ADAPTER, "event")


def decode_voice_message(raw: Union[str, bytes]) -> VoiceMessage:
    return _decode(raw, _VOICE_ADAPTER, "type")


# us -> either side

def auth_frame(api_key: str) -> str:
    return json.dumps({"xi-api-key": api_key})


def user_audio_chunk(payload: str) -> str:
    return json.dumps({"user_audio_chunk": payload})


def pong_frame(event_id: int) -> str:
    return json.dumps({"type": "pong", "event_id": event_id})


def media_frame(stream_sid: str, payload: str) -> str:
    return json.dumps({"event": "media", "streamSid": stream_sid, "media": {"payload": payload}})


def clear_frame(stream_sid: str) -> str:
    return json.dumps({"event": "clear", "streamSid": stream_sid})

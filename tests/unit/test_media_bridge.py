"""Unit tests for the media stream bridge."""
import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from dialer.core.dependencies import get_settings
from dialer.main import app
from dialer.services.media.bridge import BridgeSession, LegState
from dialer.services.media.channels import voice_agent_url
from dialer.services.media.messages import UnsupportedMessageError, decode_telephony_message, decode_voice_message

STREAM_SID = "MZ" + "a" * 32


class FakeChannel:
    """In-memory socket: frames pushed to ``inbox`` are received, sent frames are kept."""

    def __init__(self):
        self.inbox = asyncio.Queue()
        self.sent = []
        self.closed = False

    async def receive(self):
        return await self.inbox.get()

    async def send(self, text):
        self.sent.append(json.loads(text))

    async def close(self, code=1000):
        self.closed = True
        self.inbox.put_nowait(None)

    def push(self, frame):
        self.inbox.put_nowait(json.dumps(frame) if isinstance(frame, dict) else frame)


async def wait_until(predicate, timeout=1.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout)


def start_frame():
    return {
        "event": "start",
        "sequenceNumber": "1",
        "start": {
            "streamSid": STREAM_SID,
            "callSid": "CA" + "1" * 32,
            "tracks": ["inbound"],
            "customParameters": {"agent_id": "agent_abc"},
        },
        "streamSid": STREAM_SID,
    }


def media(payload):
    return {"event": "media", "streamSid": STREAM_SID, "media": {"track": "inbound", "payload": payload}}


def ping(event_id):
    return {"type": "ping", "ping_event": {"event_id": event_id, "ping_ms": 50}}


METADATA = {
    "type": "conversation_initiation_metadata",
    "conversation_initiation_metadata_event": {"conversation_id": "conv_1"},
}


@pytest.fixture
def telephony():
    return FakeChannel()


@pytest.fixture
def voice():
    return FakeChannel()


@pytest.fixture
async def bridge(telephony, voice):
    """A running bridge; torn down by hanging up the telephony leg."""
    session = BridgeSession(telephony, voice, transcript_writer=AsyncMock(), connection_id="test")
    task = asyncio.create_task(session.run())
    session.task = task
    yield session
    if not task.done():
        telephony.inbox.put_nowait(None)
    await asyncio.wait_for(task, 1.0)


class TestMessageDecoding:
    """Test inbound frame decoding."""

    def test_start_event(self):
        message = decode_telephony_message(json.dumps(start_frame()))

        assert message.start.stream_sid == STREAM_SID
        assert message.start.custom_parameters == {"agent_id": "agent_abc"}

    def test_unknown_event(self):
        with pytest.raises(UnsupportedMessageError) as exc_info:
            decode_telephony_message(json.dumps({"event": "teleport"}))

        assert exc_info.value.message_type == "teleport"

    def test_invalid_json(self):
        with pytest.raises(UnsupportedMessageError):
            decode_voice_message("not json")

    def test_voice_agent_url(self):
        url = voice_agent_url("wss://api.elevenlabs.io/v1/convai/conversation", "agent_abc", "voice-1")

        assert url.startswith("wss://api.elevenlabs.io/v1/convai/conversation?agent_id=agent_abc")
        assert "voice_id=voice-1" in url
        assert "input_format=mulaw_8000" in url
        assert "output_format=mulaw_8000" in url


class TestBridgeSession:
    """Test relaying between the two legs."""

    @pytest.mark.asyncio
    async def test_caller_audio_waits_for_voice_leg(self, bridge, telephony, voice):
        """Test audio before start is dropped and audio before metadata is buffered."""
        telephony.push(media("early"))
        telephony.push(start_frame())
        telephony.push(media("first"))
        await wait_until(lambda: bridge.stream_sid == STREAM_SID and telephony.inbox.empty())
        assert bridge.telephony_state is LegState.STREAMING
        assert voice.sent == []

        voice.push(METADATA)
        await wait_until(lambda: len(voice.sent) == 1)
        assert bridge.is_streaming

        telephony.push(media("second"))
        await wait_until(lambda: len(voice.sent) == 2)
        assert voice.sent == [{"user_audio_chunk": "first"}, {"user_audio_chunk": "second"}]

    @pytest.mark.asyncio
    async def test_agent_audio_reaches_caller(self, bridge, telephony, voice):
        voice.push({"type": "audio", "audio_event": {"audio_base_64": "early", "event_id": 1}})
        await wait_until(voice.inbox.empty)

        telephony.push(start_frame())
        await wait_until(lambda: bridge.stream_sid == STREAM_SID)
        voice.push({"type": "audio", "audio_event": {"audio_base_64": "UklGRg==", "event_id": 2}})
        await wait_until(lambda: len(telephony.sent) == 1)

        assert telephony.sent == [
            {"event": "media", "streamSid": STREAM_SID, "media": {"payload": "UklGRg=="}}
        ]

    @pytest.mark.asyncio
    async def test_interruption_clears_once(self, bridge, telephony, voice):
        telephony.push(start_frame())
        await wait_until(lambda: bridge.stream_sid == STREAM_SID)

        voice.push({"type": "interruption", "interruption_event": {"event_id": 3}})
        voice.push(ping(4))
        await wait_until(lambda: len(voice.sent) == 1 and telephony.sent)

        assert telephony.sent == [{"event": "clear", "streamSid": STREAM_SID}]

    @pytest.mark.asyncio
    async def test_ping_answered_with_pong(self, bridge, voice):
        voice.push(ping(7))
        await wait_until(lambda: len(voice.sent) == 1)

        assert voice.sent == [{"type": "pong", "event_id": 7}]

    @pytest.mark.asyncio
    async def test_unknown_frames_skipped(self, bridge, telephony, voice):
        """Test frames of unknown type are skipped without ending the bridge."""
        telephony.push({"event": "teleport"})
        telephony.push("not json")
        voice.push({"type": "vad_score", "vad_score_event": {"vad_score": 0.9}})
        voice.push(ping(1))
        await wait_until(lambda: len(voice.sent) == 1)

        assert not bridge.task.done()
        assert voice.sent == [{"type": "pong", "event_id": 1}]

    @pytest.mark.asyncio
    async def test_transcript_written_in_order(self, bridge, voice):
        voice.push({"type": "user_transcript", "user_transcription_event": {"user_transcript": "Who is this?"}})
        voice.push({"type": "agent_response", "agent_response_event": {"agent_response": "It's Alex."}})
        await wait_until(lambda: bridge.transcript_writer.await_count == 2)

        assert [call.args for call in bridge.transcript_writer.await_args_list] == [
            ("Prospect", "Who is this?"),
            ("Agent", "It's Alex."),
        ]

    @pytest.mark.asyncio
    async def test_voice_error_closes_both_legs(self, bridge, telephony, voice):
        voice.push({"type": "error", "message": "quota exceeded"})
        await asyncio.wait_for(bridge.task, 1.0)

        assert voice.closed
        assert telephony.closed
        assert bridge.voice_state is LegState.CLOSED
        assert bridge.telephony_state is LegState.CLOSED

    @pytest.mark.asyncio
    async def test_stop_event_ends_bridge(self, bridge, telephony, voice):
        telephony.push(start_frame())
        telephony.push({"event": "stop", "streamSid": STREAM_SID, "stop": {"callSid": "CA1"}})
        await asyncio.wait_for(bridge.task, 1.0)

        assert voice.closed
        assert telephony.closed

    @pytest.mark.asyncio
    async def test_caller_hangup_closes_voice(self, bridge, telephony, voice):
        telephony.inbox.put_nowait(None)
        await asyncio.wait_for(bridge.task, 1.0)

        assert voice.closed
        assert bridge.voice_state is LegState.CLOSED


class TestKeepalive:
    """Test the voice agent keepalive."""

    @pytest.mark.asyncio
    async def test_silence_closes_voice(self, telephony, voice):
        session = BridgeSession(telephony, voice, keepalive_timeout=0.05)

        await asyncio.wait_for(session.run(), 1.0)

        assert voice.closed
        assert telephony.closed

    @pytest.mark.asyncio
    async def test_pings_keep_bridge_open(self, telephony, voice):
        session = BridgeSession(telephony, voice, keepalive_timeout=0.2)
        task = asyncio.create_task(session.run())

        for event_id in range(4):
            voice.push(ping(event_id))
            await asyncio.sleep(0.1)

        assert not task.done()
        assert not voice.closed
        telephony.inbox.put_nowait(None)
        await asyncio.wait_for(task, 1.0)


class TestMediaStreamEndpoint:
    """Test the WebSocket upgrade checks."""

    @pytest.fixture
    def client(self, test_settings):
        app.dependency_overrides[get_settings] = lambda: test_settings
        yield TestClient(app)
        app.dependency_overrides.clear()

    def test_missing_agent_id_rejected(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/webhooks/voice/media-stream"):
                pass

        assert exc_info.value.code == 1008

    def test_short_api_key_rejected(self, client, test_settings):
        test_settings.elevenlabs_api_key = "too-short"

        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/webhooks/voice/media-stream?agent_id=agent_abc"):
                pass

        assert exc_info.value.code == 1011

    def test_voice_agent_unreachable(self, client, test_settings, monkeypatch):
        test_settings.elevenlabs_api_key = "sk_" + "x" * 40
        monkeypatch.setattr(
            "dialer.api.webhooks.media_stream.connect_voice_agent",
            AsyncMock(side_effect=asyncio.TimeoutError()),
        )

        with client.websocket_connect("/webhooks/voice/media-stream?agent_id=agent_abc") as websocket:
            with pytest.raises(WebSocketDisconnect) as exc_info:
                websocket.receive_text()

        assert exc_info.value.code == 1011

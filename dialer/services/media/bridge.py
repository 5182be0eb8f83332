"""Real-time relay between a Twilio media stream and an ElevenLabs voice agent."""
import asyncio
import logging
from collections import deque
from enum import Enum
from typing import Awaitable, Callable, Optional

from dialer.services.media.messages import (
    AgentResponseMessage,
    AudioMessage,
    ConversationInitiationMetadata,
    InterruptionMessage,
    MediaEvent,
    PingMessage,
    StartEvent,
    StopEvent,
    UnsupportedMessageError,
    UserTranscriptMessage,
    VoiceErrorMessage,
    clear_frame,
    decode_telephony_message,
    decode_voice_message,
    media_frame,
    pong_frame,
    user_audio_chunk,
)

logger = logging.getLogger(__name__)

TranscriptWriter = Callable[[str, str], Awaitable[None]]


class LegState(str, Enum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    CLOSING = "closing"
    CLOSED = "closed"


class BridgeSession:
    """
    One live bridge, created per media-stream WebSocket and never persisted.

    Each socket has a reader task and a writer task draining its own send
    queue, so a slow send never stalls the other direction. When any of the
    four tasks finishes, both sockets are closed.
    """

    def __init__(
        self,
        telephony,
        voice,
        transcript_writer: Optional[TranscriptWriter] = None,
        keepalive_timeout: float = 30.0,
        max_pending_audio: int = 200,
        connection_id: str = "-",
    ):
        self.telephony = telephony
        self.voice = voice
        self.transcript_writer = transcript_writer
        self.keepalive_timeout = keepalive_timeout
        self.connection_id = connection_id

        self.stream_sid: Optional[str] = None
        self.call_sid: Optional[str] = None
        # The telephony leg handshakes with its "start" event, the voice leg
        # with its conversation metadata.
        self.telephony_state = LegState.CONNECTING
        self.voice_state = LegState.CONNECTING

        self._telephony_out: asyncio.Queue = asyncio.Queue()
        self._voice_out: asyncio.Queue = asyncio.Queue()
        self._transcript_out: asyncio.Queue = asyncio.Queue()
        self._pending_audio = deque(maxlen=max_pending_audio)
        self._keepalive: Optional[asyncio.TimerHandle] = None
        self._closing_tasks = set()

    @property
    def is_streaming(self) -> bool:
        return self.telephony_state is LegState.STREAMING and self.voice_state is LegState.STREAMING

    def _log(self, level: int, message: str) -> None:
        logger.log(level, f"[MEDIA STREAM] [{self.connection_id}] {message}")

    # keepalive

    def _arm_keepalive(self) -> None:
        if self._keepalive is not None:
            self._keepalive.cancel()
        loop = asyncio.get_running_loop()
        self._keepalive = loop.call_later(self.keepalive_timeout, self._keepalive_expired)

    def _cancel_keepalive(self) -> None:
        if self._keepalive is not None:
            self._keepalive.cancel()
            self._keepalive = None

    def _keepalive_expired(self) -> None:
        self._keepalive = None
        self._log(
            logging.WARNING,
            f"No ping from voice agent in {self.keepalive_timeout:.0f}s, closing voice connection",
        )
        task = asyncio.ensure_future(self.close_voice())
        self._closing_tasks.add(task)
        task.add_done_callback(self._closing_tasks.discard)

    # Twilio -> ElevenLabs

    async def handle_telephony_message(self, raw: str) -> None:
        try:
            message = decode_telephony_message(raw)
        except UnsupportedMessageError as e:
            self._log(logging.INFO, f"Skipping telephony frame: {e}")
            return

        if isinstance(message, MediaEvent):
            if self.stream_sid is None:
                self._log(logging.DEBUG, "Dropping media received before stream start")
                return
            chunk = user_audio_chunk(message.media.payload)
            if self.voice_state is LegState.STREAMING:
                self._voice_out.put_nowait(chunk)
            elif self.voice_state is LegState.CONNECTING:
                self._pending_audio.append(chunk)
            return

        self._log(logging.INFO, f"Telephony event: {message.event}")
        if isinstance(message, StartEvent):
            self.stream_sid = message.start.stream_sid
            self.call_sid = message.start.call_sid
            self.telephony_state = LegState.STREAMING
            self._log(logging.INFO, f"Stream started - StreamSid: {self.stream_sid}, CallSid: {self.call_sid}")
        elif isinstance(message, StopEvent):
            self.stream_sid = None
            await self.close_voice()

    # ElevenLabs -> Twilio

    async def handle_voice_message(self, raw: str) -> None:
        try:
            message = decode_voice_message(raw)
        except UnsupportedMessageError as e:
            self._log(logging.INFO, f"Skipping voice agent frame: {e}")
            return

        if isinstance(message, AudioMessage):
            payload = message.audio_event.audio_base_64
            if not payload:
                return
            if self.stream_sid is None:
                self._log(logging.DEBUG, "Dropping agent audio, no stream SID yet")
                return
            self._telephony_out.put_nowait(media_frame(self.stream_sid, payload))
            return

        self._log(logging.INFO, f"Voice agent message: {message.type}")
        if isinstance(message, ConversationInitiationMetadata):
            self.voice_state = LegState.STREAMING
            while self._pending_audio:
                self._voice_out.put_nowait(self._pending_audio.popleft())
        elif isinstance(message, InterruptionMessage):
            if self.stream_sid is None:
                self._log(logging.DEBUG, "Interruption before stream start, nothing to clear")
                return
            self._telephony_out.put_nowait(clear_frame(self.stream_sid))
        elif isinstance(message, PingMessage):
            self._voice_out.put_nowait(pong_frame(message.ping_event.event_id))
            self._arm_keepalive()
        elif isinstance(message, UserTranscriptMessage):
            self._queue_transcript("Prospect", message.user_transcription_event.user_transcript)
        elif isinstance(message, AgentResponseMessage):
            self._queue_transcript("Agent", message.agent_response_event.agent_response)
        elif isinstance(message, VoiceErrorMessage):
            self._log(logging.ERROR, f"Voice agent error: {message.model_extra}")
            await self.close_voice()

    def _queue_transcript(self, speaker: str, text: str) -> None:
        if self.transcript_writer is not None and text:
            self._transcript_out.put_nowait((speaker, text))

    # tasks

    async def _read(self, channel, handler) -> None:
        while True:
            raw = await channel.receive()
            if raw is None:
                return
            await handler(raw)

    async def _write(self, channel, queue: asyncio.Queue) -> None:
        while True:
            frame = await queue.get()
            await channel.send(frame)

    async def _write_transcript(self) -> None:
        """Transcript lines are appended one at a time, in arrival order."""
        while True:
            item = await self._transcript_out.get()
            if item is None:
                return
            speaker, text = item
            try:
                await self.transcript_writer(speaker, text)
            except Exception as e:
                self._log(logging.ERROR, f"Failed to store transcript line: {type(e).__name__}: {str(e)}")

    async def run(self) -> None:
        """Relay frames until either socket closes, then close both."""
        self._arm_keepalive()
        transcript_task = asyncio.create_task(self._write_transcript())
        tasks = [
            asyncio.create_task(self._read(self.telephony, self.handle_telephony_message)),
            asyncio.create_task(self._read(self.voice, self.handle_voice_message)),
            asyncio.create_task(self._write(self.telephony, self._telephony_out)),
            asyncio.create_task(self._write(self.voice, self._voice_out)),
        ]
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    error = task.exception()
                    self._log(logging.ERROR, f"Bridge task failed: {type(error).__name__}: {str(error)}")
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await self.close()
            self._transcript_out.put_nowait(None)
            await transcript_task
            self._log(logging.INFO, "Bridge closed")

    # teardown

    async def _close_leg(self, channel, leg: str) -> None:
        state_attr = f"{leg}_state"
        if getattr(self, state_attr) in (LegState.CLOSING, LegState.CLOSED):
            return
        setattr(self, state_attr, LegState.CLOSING)
        try:
            await channel.close()
        except Exception as e:
            self._log(logging.DEBUG, f"Error closing {leg} socket: {type(e).__name__}: {str(e)}")
        setattr(self, state_attr, LegState.CLOSED)
        self._log(logging.INFO, f"{leg.capitalize()} socket closed")

    async def close_voice(self) -> None:
        self._cancel_keepalive()
        await self._close_leg(self.voice, "voice")

    async def close(self) -> None:
        await self.close_voice()
        await self._close_leg(self.telephony, "telephony")

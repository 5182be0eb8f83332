"""Multi-turn response processor."""
import logging
from typing import Callable, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from dialer.core.config import Settings, settings as default_settings
from dialer.db.models import AgentConfig
from dialer.services.calls.callbacks import audio_url, respond_url
from dialer.services.dialog.agent import DialogAgent, rule_based_reply
from dialer.services.dialog.classifier import (
    Interest,
    classify_interest,
    extract_caller_input,
    is_closing_statement,
)
from dialer.services.dialog.constants import (
    CLOSING_LINE,
    OUTCOME_NOTE_PREFIXES,
    OUTCOME_SUMMARIES,
    REPROMPT,
)
from dialer.services.dialog.state import DialogTurnState
from dialer.services.persistence.calls import CallLogPersistenceService
from dialer.services.persistence.clips import SpeechClipRepository
from dialer.services.persistence.configs import AgentConfigRepository, ProfileRepository
from dialer.services.persistence.prospects import ProspectPersistenceService
from dialer.services.speech.tts import SpeechSynthesisError, TextToSpeechService
from dialer.services.telephony.twiml import VoiceResponse

logger = logging.getLogger(__name__)


def gather_options(app_settings: Settings) -> dict:
    """Attributes shared by every <Gather> in the dialog."""
    return {
        "timeout": app_settings.gather_timeout_seconds,
        "speech_timeout": "auto",
        "num_digits": 1,
        "language": "en-US",
    }


class ResponseProcessor:
    """
    Runs one turn of the dialog loop.

    Holds no state between requests: everything about the call arrives in
    a ``DialogTurnState`` and the next turn's state is written into the
    URLs of the returned document.
    """

    def __init__(
        self,
        db: AsyncSession,
        agent: DialogAgent,
        settings: Optional[Settings] = None,
        speech_factory: Callable[..., TextToSpeechService] = TextToSpeechService,
    ):
        self.settings = settings or default_settings
        self.agent = agent
        self.speech_factory = speech_factory
        self.call_logs = CallLogPersistenceService(db)
        self.prospects = ProspectPersistenceService(db)
        self.agent_configs = AgentConfigRepository(db)
        self.profiles = ProfileRepository(db)
        self.clips = SpeechClipRepository(db)

    def reprompt_document(self, state: DialogTurnState, base_url: str) -> str:
        """
        Ask again without advancing the turn.

        Silence after the re-prompt falls through to a goodbye, so an empty
        line cannot keep the call alive forever.
        """
        response = VoiceResponse(default_voice=self.settings.say_voice)
        response.gather_input(
            respond_url(base_url, state),
            lambda gather: gather.say(REPROMPT),
            action_on_empty_result=False,
            **gather_options(self.settings),
        )
        response.say(CLOSING_LINE)
        response.hang_up()
        return response.serialize()

    async def process(self, state: DialogTurnState, form: Mapping[str, str], base_url: str) -> str:
        """Turn the caller's input into the next call-control document."""
        call_sid = form.get("CallSid", "unknown")
        caller_input = extract_caller_input(form)
        if caller_input is None:
            logger.warning(
                f"[RESPOND] No speech or digits captured - CallSid: {call_sid}, "
                f"turn: {state.conversation_count}. Re-prompting."
            )
            return self.reprompt_document(state, base_url)

        logger.info(
            f"[RESPOND] Caller input received - CallSid: {call_sid}, "
            f"turn: {state.conversation_count}, input: '{caller_input[:200]}'"
        )

        agent_config = await self.agent_configs.get(state.agent_config_id)
        prospect = await self.prospects.get_prospect(state.prospect_id) if state.prospect_id else None
        if state.call_log_id:
            await self.call_logs.append_transcript(state.call_log_id, f"Prospect: {caller_input}")

        reply = await self.agent.generate_reply(
            caller_input, state.conversation_count, agent_config, prospect
        )
        text = reply.text
        interest = classify_interest(caller_input)
        reply_closes = is_closing_statement(text)
        reached_cap = state.conversation_count + 1 >= self.settings.max_conversation_turns

        if interest is Interest.NEGATIVE and not reply_closes:
            text = rule_based_reply(caller_input, self.settings.brokerage_name)
            reply_closes = is_closing_statement(text)
        ending = interest is Interest.NEGATIVE or reply_closes or reached_cap

        if state.call_log_id:
            await self.call_logs.append_transcript(state.call_log_id, f"Agent: {text}")

        response = VoiceResponse(default_voice=self.settings.say_voice)
        await self._speak(response, text, state, agent_config, base_url)

        if ending:
            logger.info(
                f"[RESPOND] Ending call - CallSid: {call_sid}, interest: {interest.value}, "
                f"closing reply: {reply_closes}, turn cap reached: {reached_cap}"
            )
            if not reply_closes:
                response.pause(1)
                response.say(CLOSING_LINE)
            response.hang_up()
            await self._record_outcome(state, caller_input, interest)
        else:
            next_url = respond_url(base_url, state.next_turn())
            response.pause(1)
            response.gather_input(next_url, **gather_options(self.settings))
            response.redirect(next_url)

        return response.serialize()

    async def _speech_api_key(
        self, state: DialogTurnState, agent_config: Optional[AgentConfig]
    ) -> Optional[str]:
        if agent_config is None or agent_config.voice_provider != "elevenlabs":
            return None
        profile = await self.profiles.get(state.user_id)
        if profile and profile.elevenlabs_api_key:
            return profile.elevenlabs_api_key
        return self.settings.elevenlabs_api_key

    async def _speak(
        self,
        response: VoiceResponse,
        text: str,
        state: DialogTurnState,
        agent_config: Optional[AgentConfig],
        base_url: str,
    ) -> None:
        """Play synthesized speech when a voice is configured, else <Say>."""
        api_key = await self._speech_api_key(state, agent_config)
        if api_key:
            voice_id = state.voice_id or agent_config.voice_id
            try:
                speech = self.speech_factory(api_key, settings=self.settings)
                audio = await speech.synthesize_speech(text, voice_id=voice_id)
                clip = await self.clips.save(audio, call_log_id=state.call_log_id)
                response.play(audio_url(base_url, clip.id))
                return
            except SpeechSynthesisError as e:
                logger.warning(f"[RESPOND] Speech synthesis failed, falling back to <Say>: {str(e)}")
        response.say(text)

    async def _record_outcome(
        self, state: DialogTurnState, caller_input: str, interest: Interest
    ) -> None:
        if state.call_log_id:
            await self.call_logs.record_outcome(
                state.call_log_id,
                OUTCOME_SUMMARIES[interest.value],
                {
                    "interested": interest.interested,
                    "response": caller_input,
                    "turns": state.conversation_count + 1,
                },
            )
        if state.prospect_id:
            await self.prospects.record_outcome(
                state.prospect_id, OUTCOME_NOTE_PREFIXES[interest.value], caller_input
            )

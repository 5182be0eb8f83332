"""Inbound call webhook: the first document of a call and its status callbacks."""
import logging
from typing import Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from dialer.core.config import Settings, settings as default_settings
from dialer.db.models import CallLog, CallStatus
from dialer.services.calls.callbacks import media_stream_url, respond_url
from dialer.services.dialog.classifier import split_sentences
from dialer.services.dialog.constants import DEFAULT_GREETING, TRIAL_ACCOUNT_NOTICE
from dialer.services.dialog.processor import gather_options
from dialer.services.dialog.state import DialogTurnState
from dialer.services.persistence.calls import CallLogPersistenceService
from dialer.services.persistence.configs import AgentConfigRepository, ProfileRepository
from dialer.services.telephony.client import is_trial_account
from dialer.services.telephony.twiml import VoiceResponse, debug_document

logger = logging.getLogger(__name__)


def build_greeting(system_prompt: Optional[str], brokerage_name: str, trial_account: bool = False) -> str:
    """
    Opening line of the call: the first sentence of the agent's prompt.

    On a trial account the trial notice follows the first sentence.
    """
    sentences = split_sentences(system_prompt or "")
    if sentences:
        greeting, rest = sentences[0], []
    else:
        default = split_sentences(DEFAULT_GREETING.format(brokerage=brokerage_name))
        greeting, rest = default[0], default[1:]
    parts = [greeting]
    if trial_account:
        parts.append(TRIAL_ACCOUNT_NOTICE)
    parts.extend(rest)
    return " ".join(parts)


class CallWebhookService:
    """Builds the initial call-control document and applies status callbacks."""

    def __init__(self, db: AsyncSession, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self.call_logs = CallLogPersistenceService(db)
        self.agent_configs = AgentConfigRepository(db)
        self.profiles = ProfileRepository(db)

    async def auth_token_for(self, user_id: Optional[str]) -> Optional[str]:
        """The auth token Twilio signs this user's webhooks with."""
        profile = await self.profiles.get(user_id)
        if profile and profile.twilio_auth_token:
            return profile.twilio_auth_token
        return self.settings.twilio_auth_token

    async def _is_trial(self, user_id: Optional[str], form: Mapping[str, str]) -> bool:
        profile = await self.profiles.get(user_id)
        account_sid = (profile.twilio_account_sid if profile else None) or form.get("AccountSid")
        return is_trial_account(account_sid)

    async def initial_document(
        self, state: DialogTurnState, form: Mapping[str, str], base_url: str
    ) -> str:
        """Document Twilio runs when the prospect answers."""
        call_sid = form.get("CallSid", "unknown")

        if state.debug:
            logger.info(f"[CALL WEBHOOK] Debug mode, speaking parameters back - CallSid: {call_sid}")
            info = {
                "call sid": form.get("CallSid"),
                "call status": form.get("CallStatus"),
                "prospect id": state.prospect_id,
                "agent config id": state.agent_config_id,
                "user id": state.user_id,
                "call log id": state.call_log_id,
                "voice id": state.voice_id,
            }
            return debug_document(info, voice=self.settings.say_voice)

        if state.call_log_id:
            call_log = await self.call_logs.get_call_log(state.call_log_id)
            if call_log and call_log.call_status in (CallStatus.INITIATED.value, CallStatus.RINGING.value):
                await self.call_logs.update_status(call_log, CallStatus.ANSWERED)

        agent_config = await self.agent_configs.get(state.agent_config_id)
        if agent_config is None:
            logger.warning(
                f"[CALL WEBHOOK] Agent config {state.agent_config_id} not found, "
                f"using default greeting - CallSid: {call_sid}"
            )

        response = VoiceResponse(default_voice=self.settings.say_voice)

        if (
            self.settings.conversation_mode == "streaming"
            and agent_config is not None
            and agent_config.elevenlabs_agent_id
        ):
            params = {
                "agent_id": agent_config.elevenlabs_agent_id,
                "voice_id": state.voice_id or agent_config.voice_id,
                "user_id": state.user_id,
                "call_log_id": state.call_log_id,
            }
            logger.info(f"[CALL WEBHOOK] Connecting call to media stream - CallSid: {call_sid}")
            response.connect_stream(media_stream_url(base_url, params), params)
            return response.serialize()

        trial = await self._is_trial(state.user_id, form)
        if trial:
            logger.info(f"[CALL WEBHOOK] Trial account detected - CallSid: {call_sid}")
        greeting = build_greeting(
            agent_config.system_prompt if agent_config else None,
            self.settings.brokerage_name,
            trial_account=trial,
        )
        if state.call_log_id:
            await self.call_logs.append_transcript(state.call_log_id, f"Agent: {greeting}")

        first_turn = state.model_copy(update={"conversation_count": 0})
        action = respond_url(base_url, first_turn)
        response.say(greeting)
        response.pause(1)
        response.gather_input(action, **gather_options(self.settings))
        response.redirect(action)

        logger.info(f"[CALL WEBHOOK] Greeting document built - CallSid: {call_sid}")
        return response.serialize()

    async def apply_status(
        self, form: Mapping[str, str], call_log_id: Optional[str] = None
    ) -> Optional[CallLog]:
        """Record a status callback on the matching call log."""
        call_sid = form.get("CallSid")
        status = CallStatus.from_provider(form.get("CallStatus"))
        if status is None:
            logger.warning(
                f"[CALL STATUS] Unknown status {form.get('CallStatus')!r} - CallSid: {call_sid}"
            )
            return None

        call_log = None
        if call_log_id:
            call_log = await self.call_logs.get_call_log(call_log_id)
        if call_log is None and call_sid:
            call_log = await self.call_logs.get_by_call_sid(call_sid)
        if call_log is None:
            logger.warning(
                f"[CALL STATUS] No call log for CallSid: {call_sid}, call_log_id: {call_log_id}"
            )
            return None

        raw_duration = form.get("CallDuration")
        duration = int(raw_duration) if raw_duration and raw_duration.isdigit() else None
        call_log = await self.call_logs.update_status(
            call_log,
            status,
            duration_seconds=duration,
            recording_url=form.get("RecordingUrl"),
        )
        logger.info(
            f"[CALL STATUS] Call log {call_log.id} -> {status.value} - CallSid: {call_sid}"
        )
        return call_log

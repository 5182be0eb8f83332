"""Outbound call initiator."""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from dialer.core.config import Settings, settings as default_settings
from dialer.db.models import AgentConfig, Prospect
from dialer.services.calls.callbacks import call_webhook_url, status_callback_url
from dialer.services.dialog.state import DialogTurnState
from dialer.services.persistence.calls import CallLogPersistenceService
from dialer.services.persistence.configs import AgentConfigRepository, ProfileRepository
from dialer.services.persistence.prospects import ProspectPersistenceService
from dialer.services.speech.voice_agent import VoiceAgentCallError, VoiceAgentCallService
from dialer.services.telephony.client import TelephonyError, TwilioGateway
from dialer.services.telephony.phone import InvalidPhoneNumberError, format_e164

logger = logging.getLogger(__name__)


class InitiationErrorCode(str, Enum):
    MISSING_PARAMETERS = "MISSING_PARAMETERS"
    PROFILE_NOT_FOUND = "PROFILE_NOT_FOUND"
    TWILIO_CONFIG_INCOMPLETE = "TWILIO_CONFIG_INCOMPLETE"
    PROSPECT_NOT_FOUND = "PROSPECT_NOT_FOUND"
    AGENT_CONFIG_NOT_FOUND = "AGENT_CONFIG_NOT_FOUND"
    MISSING_PHONE_NUMBER = "MISSING_PHONE_NUMBER"
    INVALID_PHONE_NUMBER = "INVALID_PHONE_NUMBER"
    TRIAL_ACCOUNT_RESTRICTION = "TRIAL_ACCOUNT_RESTRICTION"
    TWILIO_API_ERROR = "TWILIO_API_ERROR"
    VOICE_AGENT_CONFIG_INCOMPLETE = "VOICE_AGENT_CONFIG_INCOMPLETE"
    VOICE_AGENT_API_ERROR = "VOICE_AGENT_API_ERROR"


_HTTP_STATUS = {
    InitiationErrorCode.MISSING_PARAMETERS: 400,
    InitiationErrorCode.PROFILE_NOT_FOUND: 400,
    InitiationErrorCode.TWILIO_CONFIG_INCOMPLETE: 400,
    InitiationErrorCode.PROSPECT_NOT_FOUND: 404,
    InitiationErrorCode.AGENT_CONFIG_NOT_FOUND: 404,
    InitiationErrorCode.MISSING_PHONE_NUMBER: 400,
    InitiationErrorCode.INVALID_PHONE_NUMBER: 400,
    InitiationErrorCode.TRIAL_ACCOUNT_RESTRICTION: 403,
    InitiationErrorCode.TWILIO_API_ERROR: 500,
    InitiationErrorCode.VOICE_AGENT_CONFIG_INCOMPLETE: 400,
    InitiationErrorCode.VOICE_AGENT_API_ERROR: 500,
}


@dataclass
class CallInitiationResult:
    success: bool
    call_sid: Optional[str] = None
    call_log_id: Optional[str] = None
    code: Optional[InitiationErrorCode] = None
    message: Optional[str] = None

    @classmethod
    def failure(cls, code: InitiationErrorCode, message: str, call_log_id: Optional[str] = None):
        return cls(success=False, code=code, message=message, call_log_id=call_log_id)

    @property
    def http_status(self) -> int:
        if self.success:
            return 200
        return _HTTP_STATUS.get(self.code, 500)

    def to_response(self) -> Dict[str, Any]:
        if self.success:
            body = {"success": True, "callSid": self.call_sid, "callLogId": self.call_log_id}
            if self.message:
                body["message"] = self.message
            return body
        body = {"success": False, "code": self.code.value, "error": self.message}
        if self.call_log_id:
            body["callLogId"] = self.call_log_id
        return body


class CallMode(str, Enum):
    """Who dials the prospect and runs the conversation."""

    TWILIO = "twilio"
    VOICE_AGENT = "voice_agent"


class OutboundCallInitiator:
    """Places an outbound call for a prospect with the user's own Twilio account."""

    def __init__(
        self,
        db: AsyncSession,
        settings: Optional[Settings] = None,
        gateway_factory: Callable[[str, str], TwilioGateway] = TwilioGateway,
        voice_agent_factory: Callable[..., VoiceAgentCallService] = VoiceAgentCallService,
    ):
        self.settings = settings or default_settings
        self.gateway_factory = gateway_factory
        self.voice_agent_factory = voice_agent_factory
        self.call_logs = CallLogPersistenceService(db)
        self.prospects = ProspectPersistenceService(db)
        self.agent_configs = AgentConfigRepository(db)
        self.profiles = ProfileRepository(db)

    async def initiate_call(
        self,
        prospect_id: Optional[str],
        agent_config_id: Optional[str],
        user_id: Optional[str],
        base_url: str,
        voice_id: Optional[str] = None,
        bypass_validation: bool = False,
        debug_mode: bool = False,
        mode: CallMode = CallMode.TWILIO,
    ) -> CallInitiationResult:
        """
        Place the call and create its call log.

        Every missing precondition gets its own error code. The call log is
        created before the call is placed and receives the provider's call
        SID once the call is accepted. In voice-agent mode the voice
        provider dials through its own Twilio integration and runs the
        conversation, so no Twilio credentials are needed here.
        """
        if not (prospect_id and agent_config_id and user_id):
            return CallInitiationResult.failure(
                InitiationErrorCode.MISSING_PARAMETERS,
                "Missing required parameters: prospectId, agentConfigId and userId are required",
            )

        profile = await self.profiles.get(user_id)
        if profile is None:
            return CallInitiationResult.failure(
                InitiationErrorCode.PROFILE_NOT_FOUND,
                "Profile setup incomplete or database error. Please visit your profile "
                "settings and verify your Twilio credentials.",
            )
        voice_agent_key = profile.elevenlabs_api_key or self.settings.elevenlabs_api_key
        if mode is CallMode.VOICE_AGENT:
            if not voice_agent_key:
                return CallInitiationResult.failure(
                    InitiationErrorCode.VOICE_AGENT_CONFIG_INCOMPLETE,
                    "ElevenLabs API key not configured in your profile",
                )
        elif not (profile.twilio_account_sid and profile.twilio_auth_token and profile.twilio_phone_number):
            return CallInitiationResult.failure(
                InitiationErrorCode.TWILIO_CONFIG_INCOMPLETE,
                "Twilio configuration is incomplete. Please update your profile with your "
                "Twilio Account SID, Auth Token, and Phone Number.",
            )

        prospect = await self.prospects.get_prospect(prospect_id)
        if prospect is None:
            return CallInitiationResult.failure(
                InitiationErrorCode.PROSPECT_NOT_FOUND,
                f"Prospect not found. The prospect with ID {prospect_id} does not exist "
                f"or has been deleted.",
            )

        agent_config = await self.agent_configs.get(agent_config_id)
        if agent_config is None:
            return CallInitiationResult.failure(
                InitiationErrorCode.AGENT_CONFIG_NOT_FOUND,
                f"Agent configuration {agent_config_id} not found.",
            )
        if mode is CallMode.VOICE_AGENT and not agent_config.elevenlabs_agent_id:
            return CallInitiationResult.failure(
                InitiationErrorCode.VOICE_AGENT_CONFIG_INCOMPLETE,
                f"Agent configuration {agent_config_id} has no ElevenLabs agent ID.",
            )

        if not prospect.phone_number:
            return CallInitiationResult.failure(
                InitiationErrorCode.MISSING_PHONE_NUMBER,
                "This prospect has no phone number on file.",
            )
        try:
            to_number = format_e164(prospect.phone_number, self.settings.default_country_code)
        except InvalidPhoneNumberError as e:
            logger.warning(f"[INITIATE] Rejecting call for prospect {prospect_id}: {str(e)}")
            return CallInitiationResult.failure(InitiationErrorCode.INVALID_PHONE_NUMBER, str(e))

        call_log = await self.call_logs.create_call_log(user_id, prospect_id, agent_config_id)

        if mode is CallMode.VOICE_AGENT:
            return await self._place_with_voice_agent(
                voice_agent_key, agent_config, prospect, to_number, call_log.id, voice_id
            )

        state = DialogTurnState(
            prospect_id=prospect_id,
            agent_config_id=agent_config_id,
            user_id=user_id,
            voice_id=voice_id or agent_config.voice_id,
            call_log_id=call_log.id,
            bypass_validation=bypass_validation,
            debug_mode=debug_mode,
        )

        logger.info(
            f"[INITIATE] Placing call - call_log_id: {call_log.id}, prospect: {prospect_id}, "
            f"To: {to_number}, bypass_validation: {bypass_validation}, debug: {debug_mode}"
        )
        gateway = self.gateway_factory(profile.twilio_account_sid, profile.twilio_auth_token)
        try:
            placed = await gateway.place_call(
                to_number=to_number,
                from_number=profile.twilio_phone_number,
                url=call_webhook_url(base_url, state),
                status_callback=status_callback_url(base_url, state),
            )
        except TelephonyError as e:
            await self.call_logs.mark_failed(call_log.id, reason=f"Twilio error: {e.message}")
            if e.is_trial_restriction:
                return CallInitiationResult.failure(
                    InitiationErrorCode.TRIAL_ACCOUNT_RESTRICTION,
                    "Your Twilio trial account can only call verified numbers. Verify this "
                    "number in the Twilio console or upgrade your account.",
                    call_log_id=call_log.id,
                )
            return CallInitiationResult.failure(
                InitiationErrorCode.TWILIO_API_ERROR,
                f"Twilio error: {e.message}",
                call_log_id=call_log.id,
            )
        except Exception as e:
            logger.error(
                f"[INITIATE] Unexpected error placing call - call_log_id: {call_log.id}, "
                f"Error: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )
            await self.call_logs.mark_failed(call_log.id, reason=f"Twilio error: {str(e)}")
            return CallInitiationResult.failure(
                InitiationErrorCode.TWILIO_API_ERROR,
                f"Twilio error: {type(e).__name__}: {str(e)}",
                call_log_id=call_log.id,
            )

        await self.call_logs.assign_call_sid(call_log.id, placed.sid)
        await self.prospects.mark_calling(prospect)

        logger.info(f"[INITIATE] Call placed - CallSid: {placed.sid}, call_log_id: {call_log.id}")
        return CallInitiationResult(success=True, call_sid=placed.sid, call_log_id=call_log.id)

    async def _place_with_voice_agent(
        self,
        api_key: str,
        agent_config: AgentConfig,
        prospect: Prospect,
        to_number: str,
        call_log_id: str,
        voice_id: Optional[str],
    ) -> CallInitiationResult:
        dynamic_variables = {
            "prospect_name": " ".join(filter(None, [prospect.first_name, prospect.last_name])),
            "property_address": prospect.property_address,
            "brokerage_name": self.settings.brokerage_name,
        }
        override = {}
        if voice_id or agent_config.voice_id:
            override["tts"] = {"voice_id": voice_id or agent_config.voice_id}

        logger.info(
            f"[INITIATE] Placing call through voice agent - call_log_id: {call_log_id}, "
            f"agent: {agent_config.elevenlabs_agent_id}, To: {to_number}"
        )
        service = self.voice_agent_factory(api_key, settings=self.settings)
        try:
            call_sid = await service.place_call(
                agent_id=agent_config.elevenlabs_agent_id,
                to_number=to_number,
                dynamic_variables={k: v for k, v in dynamic_variables.items() if v},
                conversation_config_override=override,
            )
        except VoiceAgentCallError as e:
            logger.error(f"[INITIATE] Voice agent call failed - call_log_id: {call_log_id}, Error: {str(e)}")
            await self.call_logs.mark_failed(call_log_id, reason=str(e))
            return CallInitiationResult.failure(
                InitiationErrorCode.VOICE_AGENT_API_ERROR, str(e), call_log_id=call_log_id
            )

        if call_sid:
            await self.call_logs.assign_call_sid(call_log_id, call_sid)
        else:
            logger.warning(f"[INITIATE] Voice agent returned no CallSid - call_log_id: {call_log_id}")
        await self.prospects.mark_calling(prospect)

        logger.info(f"[INITIATE] Voice agent call placed - CallSid: {call_sid}, call_log_id: {call_log_id}")
        return CallInitiationResult(
            success=True,
            call_sid=call_sid,
            call_log_id=call_log_id,
            message="Outbound call initiated",
        )

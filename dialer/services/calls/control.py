"""Control of calls that are already placed."""
import logging
from typing import Any, Callable, Dict, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from dialer.core.config import Settings, settings as default_settings
from dialer.db.models import CallStatus
from dialer.services.persistence.calls import CallLogPersistenceService
from dialer.services.persistence.configs import ProfileRepository
from dialer.services.telephony.client import TelephonyError, TwilioGateway

logger = logging.getLogger(__name__)


class CallControlService:
    """Ends calls and reads their provider-side status."""

    def __init__(
        self,
        db: AsyncSession,
        settings: Optional[Settings] = None,
        gateway_factory: Callable[[str, str], TwilioGateway] = TwilioGateway,
    ):
        self.settings = settings or default_settings
        self.gateway_factory = gateway_factory
        self.call_logs = CallLogPersistenceService(db)
        self.profiles = ProfileRepository(db)

    async def _credentials(self, user_id: Optional[str]) -> Optional[Tuple[str, str]]:
        profile = await self.profiles.get(user_id)
        if profile and profile.twilio_account_sid and profile.twilio_auth_token:
            return profile.twilio_account_sid, profile.twilio_auth_token
        if self.settings.twilio_account_sid and self.settings.twilio_auth_token:
            return self.settings.twilio_account_sid, self.settings.twilio_auth_token
        return None

    async def end_call(self, call_sid: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        """Hang up a live call and close its call log."""
        call_log = await self.call_logs.get_by_call_sid(call_sid)
        owner = user_id or (call_log.user_id if call_log else None)
        credentials = await self._credentials(owner)
        if credentials is None:
            return {"success": False, "message": "No Twilio credentials available to end this call."}

        try:
            await self.gateway_factory(*credentials).end_call(call_sid)
        except TelephonyError as e:
            return {"success": False, "message": f"Failed to end call: {e.message}"}

        if call_log and not CallStatus(call_log.call_status).is_terminal:
            await self.call_logs.update_status(call_log, CallStatus.COMPLETED)
        logger.info(f"[END CALL] Call ended - CallSid: {call_sid}")
        return {"success": True, "message": "Call ended successfully"}

    async def fetch_call_status(self, call_sid: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        """Twilio's current view of a call."""
        credentials = await self._credentials(user_id)
        if credentials is None:
            return {"success": False, "message": "No Twilio credentials available."}

        try:
            snapshot = await self.gateway_factory(*credentials).fetch_call(call_sid)
        except TelephonyError as e:
            return {"success": False, "message": f"Failed to fetch call status: {e.message}"}

        return {
            "success": True,
            "callSid": snapshot.sid,
            "status": snapshot.status,
            "duration": snapshot.duration,
            "direction": snapshot.direction,
            "from": snapshot.from_number,
            "to": snapshot.to_number,
            "price": snapshot.price,
        }

    async def verify_credentials(
        self,
        account_sid: Optional[str],
        auth_token: Optional[str],
        user_id: Optional[str] = None,
    ) -> Tuple[int, Dict[str, Any]]:
        """
        Check Twilio credentials by reading the account they belong to.

        Credentials missing from the request are taken from the user's
        profile when a user is named. Returns the HTTP status and body.
        """
        if user_id and not (account_sid and auth_token):
            profile = await self.profiles.get(user_id)
            if profile:
                account_sid = account_sid or profile.twilio_account_sid
                auth_token = auth_token or profile.twilio_auth_token

        if not (account_sid and auth_token):
            return 400, {"success": False, "error": "Missing required parameters: account_sid or auth_token"}

        try:
            account = await self.gateway_factory(account_sid, auth_token).fetch_account()
        except TelephonyError as e:
            if e.status is None:
                return 500, {"success": False, "error": f"Error verifying Twilio credentials: {e.message}"}
            logger.warning(f"[VERIFY] Twilio rejected credentials - AccountSid: {account_sid}, status: {e.status}")
            return 400, {"success": False, "valid": False, "error": f"Invalid Twilio credentials: {e.message}"}

        logger.info(f"[VERIFY] Twilio credentials valid - AccountSid: {account_sid}")
        return 200, {
            "success": True,
            "message": "Twilio credentials are valid",
            "valid": True,
            "account_info": {"friendly_name": account.friendly_name, "status": account.status},
        }

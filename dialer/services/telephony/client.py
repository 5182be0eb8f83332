"""Twilio REST gateway."""
import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

import requests
from twilio.base.exceptions import TwilioException, TwilioRestException
from twilio.rest import Client

logger = logging.getLogger(__name__)

# "The number is unverified. Trial accounts cannot call unverified numbers."
TRIAL_UNVERIFIED_NUMBER_CODE = 21219

STATUS_CALLBACK_EVENTS: List[str] = ["initiated", "ringing", "answered", "completed"]


class TelephonyError(Exception):
    """A Twilio API call failed."""

    def __init__(self, message: str, code: Optional[int] = None, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status

    @property
    def is_trial_restriction(self) -> bool:
        return self.code == TRIAL_UNVERIFIED_NUMBER_CODE or "trial" in self.message.lower()


def is_trial_account(account_sid: Optional[str]) -> bool:
    """
    Guess whether an account SID belongs to a trial account.

    Heuristic only: Twilio does not expose this in the SID.
    """
    if not account_sid or not account_sid.startswith("AC"):
        return False
    return "trial" in account_sid.lower() or len(account_sid) < 30


@dataclass
class PlacedCall:
    sid: str
    status: Optional[str] = None


@dataclass
class CallSnapshot:
    sid: str
    status: Optional[str]
    duration: Optional[int]
    direction: Optional[str] = None
    from_number: Optional[str] = None
    to_number: Optional[str] = None
    price: Optional[str] = None


@dataclass
class AccountSnapshot:
    sid: str
    friendly_name: Optional[str]
    status: Optional[str]


# Raised by the client for API refusals and for transport failures alike
PROVIDER_ERRORS = (TwilioException, requests.RequestException)


def _to_telephony_error(exc: Exception) -> TelephonyError:
    if isinstance(exc, TwilioRestException):
        return TelephonyError(exc.msg or str(exc), code=exc.code, status=exc.status)
    return TelephonyError(f"{type(exc).__name__}: {exc}")


class TwilioGateway:
    """Thin async wrapper over the blocking Twilio client."""

    def __init__(self, account_sid: str, auth_token: str, client: Optional[Client] = None):
        self.account_sid = account_sid
        self._client = client or Client(account_sid, auth_token)

    async def place_call(
        self,
        to_number: str,
        from_number: str,
        url: str,
        status_callback: Optional[str] = None,
        record: bool = True,
    ) -> PlacedCall:
        """Start an outbound call whose first webhook is ``url``."""
        options = {
            "to": to_number,
            "from_": from_number,
            "url": url,
            "method": "POST",
            "record": record,
        }
        if status_callback:
            options.update(
                status_callback=status_callback,
                status_callback_event=STATUS_CALLBACK_EVENTS,
                status_callback_method="POST",
            )
        try:
            call = await asyncio.to_thread(self._client.calls.create, **options)
        except PROVIDER_ERRORS as e:
            logger.error(f"[TWILIO] Call creation failed - {type(e).__name__}: {e}")
            raise _to_telephony_error(e) from e
        logger.info(f"[TWILIO] Call created - CallSid: {call.sid}, To: {to_number}")
        return PlacedCall(sid=call.sid, status=getattr(call, "status", None))

    async def end_call(self, call_sid: str) -> None:
        """Hang up an in-progress call."""
        try:
            await asyncio.to_thread(self._client.calls(call_sid).update, status="completed")
        except PROVIDER_ERRORS as e:
            logger.error(f"[TWILIO] Ending call failed - CallSid: {call_sid}, {type(e).__name__}: {e}")
            raise _to_telephony_error(e) from e
        logger.info(f"[TWILIO] Call ended - CallSid: {call_sid}")

    async def fetch_call(self, call_sid: str) -> CallSnapshot:
        """Read the provider's current view of a call."""
        try:
            call = await asyncio.to_thread(self._client.calls(call_sid).fetch)
        except PROVIDER_ERRORS as e:
            logger.error(f"[TWILIO] Fetching call failed - CallSid: {call_sid}, {type(e).__name__}: {e}")
            raise _to_telephony_error(e) from e
        duration = int(call.duration) if call.duration else None
        return CallSnapshot(
            sid=call.sid,
            status=call.status,
            duration=duration,
            direction=call.direction,
            from_number=getattr(call, "_from", None),
            to_number=call.to,
            price=call.price,
        )

    async def fetch_account(self) -> AccountSnapshot:
        """Read the account these credentials belong to; fails when Twilio rejects them."""
        try:
            account = await asyncio.to_thread(self._client.api.accounts(self.account_sid).fetch)
        except PROVIDER_ERRORS as e:
            logger.error(f"[TWILIO] Fetching account failed - AccountSid: {self.account_sid}, {type(e).__name__}: {e}")
            raise _to_telephony_error(e) from e
        return AccountSnapshot(sid=account.sid, friendly_name=account.friendly_name, status=account.status)

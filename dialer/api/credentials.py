"""Provider credential checks."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field

from dialer.core.dependencies import get_call_control
from dialer.services.calls.control import CallControlService

router = APIRouter()
logger = logging.getLogger(__name__)


class VerifyCredentialsRequest(BaseModel):
    """Twilio credentials to check; either given directly or looked up for a user."""

    account_sid: Optional[str] = Field(default=None, validation_alias=AliasChoices("account_sid", "accountSid"))
    auth_token: Optional[str] = Field(default=None, validation_alias=AliasChoices("auth_token", "authToken"))
    user_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("user_id", "userId"))


@router.post("/api/twilio/verify")
async def verify_twilio_credentials(
    body: VerifyCredentialsRequest,
    control: CallControlService = Depends(get_call_control),
):
    """Check that Twilio accepts an account SID and auth token."""
    logger.info(f"[VERIFY] Credential check requested - AccountSid: {body.account_sid}, user: {body.user_id}")
    try:
        status_code, result = await control.verify_credentials(body.account_sid, body.auth_token, body.user_id)
    except Exception as e:
        logger.error(f"[VERIFY] Error verifying credentials - Error: {type(e).__name__}: {str(e)}", exc_info=True)
        return JSONResponse(
            {"success": False, "error": f"Error verifying Twilio credentials: {str(e)}"},
            status_code=500,
        )
    return JSONResponse(result, status_code=status_code)

"""Outbound call API endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from dialer.core.config import Settings
from dialer.core.dependencies import get_base_url, get_call_control, get_call_initiator, get_settings
from dialer.services.calls.control import CallControlService
from dialer.services.calls.initiator import CallMode, OutboundCallInitiator

router = APIRouter()
logger = logging.getLogger(__name__)


class InitiateCallRequest(BaseModel):
    """Request body for placing a call."""

    model_config = ConfigDict(populate_by_name=True)

    prospect_id: Optional[str] = Field(default=None, alias="prospectId")
    agent_config_id: Optional[str] = Field(default=None, alias="agentConfigId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    voice_id: Optional[str] = Field(default=None, alias="voiceId")
    bypass_validation: bool = Field(default=False, alias="bypassValidation")
    debug_mode: bool = Field(default=False, alias="debugMode")
    mode: CallMode = CallMode.TWILIO


class CallReferenceRequest(BaseModel):
    """Request body naming an existing call."""

    model_config = ConfigDict(populate_by_name=True)

    call_sid: str = Field(alias="callSid")
    user_id: Optional[str] = Field(default=None, alias="userId")


@router.post("/api/calls")
async def initiate_call(
    body: InitiateCallRequest,
    request: Request,
    initiator: OutboundCallInitiator = Depends(get_call_initiator),
    app_settings: Settings = Depends(get_settings),
):
    """Place an outbound call to a prospect."""
    logger.info(
        f"[INITIATE] Call requested - prospect: {body.prospect_id}, "
        f"agent_config: {body.agent_config_id}, user: {body.user_id}, mode: {body.mode.value}"
    )
    try:
        result = await initiator.initiate_call(
            prospect_id=body.prospect_id,
            agent_config_id=body.agent_config_id,
            user_id=body.user_id,
            base_url=get_base_url(request, app_settings),
            voice_id=body.voice_id,
            bypass_validation=body.bypass_validation,
            debug_mode=body.debug_mode,
            mode=body.mode,
        )
    except Exception as e:
        logger.error(
            f"[INITIATE] Unexpected error placing call - prospect: {body.prospect_id}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
        return JSONResponse(
            {"success": False, "code": "UNKNOWN_ERROR", "error": str(e) or "Unknown error occurred"},
            status_code=500,
        )

    if not result.success:
        logger.warning(f"[INITIATE] Call not placed - code: {result.code.value}, reason: {result.message}")
    return JSONResponse(result.to_response(), status_code=result.http_status)


@router.post("/api/calls/end")
async def end_call(
    body: CallReferenceRequest,
    control: CallControlService = Depends(get_call_control),
):
    """Hang up a live call."""
    logger.info(f"[END CALL] End requested - CallSid: {body.call_sid}")
    try:
        return await control.end_call(body.call_sid, body.user_id)
    except Exception as e:
        logger.error(
            f"[END CALL] Error ending call - CallSid: {body.call_sid}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
        return {"success": False, "message": str(e)}


@router.post("/api/calls/status")
async def call_status(
    body: CallReferenceRequest,
    control: CallControlService = Depends(get_call_control),
):
    """Twilio's current view of a call."""
    try:
        return await control.fetch_call_status(body.call_sid, body.user_id)
    except Exception as e:
        logger.error(
            f"[CALL STATUS] Error fetching call status - CallSid: {body.call_sid}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
        return {"success": False, "message": str(e)}

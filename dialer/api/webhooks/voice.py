"""Twilio voice webhook endpoints."""
import logging
from typing import Callable, Dict

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from dialer.core.config import Settings
from dialer.core.dependencies import get_base_url, get_dialog_agent, get_settings, get_speech_factory
from dialer.db.database import get_db
from dialer.services.calls.webhook import CallWebhookService
from dialer.services.dialog.agent import DialogAgent
from dialer.services.dialog.constants import APOLOGY, CALL_ERROR_MESSAGE
from dialer.services.dialog.processor import ResponseProcessor
from dialer.services.dialog.state import DialogTurnState
from dialer.services.persistence.clips import SpeechClipRepository
from dialer.services.speech.tts import TextToSpeechService
from dialer.services.telephony.signature import validate_twilio_request
from dialer.services.telephony.twiml import error_document

router = APIRouter()
logger = logging.getLogger(__name__)

FORBIDDEN = {"error": "Forbidden - Invalid signature"}


def xml_response(twiml: str) -> Response:
    return Response(content=twiml, media_type="text/xml")


async def read_form(request: Request) -> Dict[str, str]:
    form = await request.form()
    return {key: str(value) for key, value in form.items()}


@router.post("/voice/call")
@router.post("/voice/call/status")
async def handle_call_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
):
    """
    Handle Twilio's call webhooks.

    The ``/status`` suffix marks an asynchronous status callback, which is
    always acknowledged with 200. Otherwise this is the answered call asking
    for its first document.
    """
    state = DialogTurnState.from_query(request.query_params)
    service = CallWebhookService(db, settings=app_settings)

    if request.url.path.endswith("/status"):
        return await _handle_status_callback(request, state, service, app_settings)

    logger.info(
        f"[CALL WEBHOOK] Received call webhook - call_log_id: {state.call_log_id}, "
        f"prospect: {state.prospect_id}, Client: {request.client.host if request.client else 'unknown'}"
    )
    try:
        auth_token = await service.auth_token_for(state.user_id)
        is_valid = await validate_twilio_request(
            request, auth_token, app_settings.base_url, bypass=state.bypass_validation
        )
        if not is_valid:
            return JSONResponse(FORBIDDEN, status_code=403)

        form = await read_form(request)
        twiml = await service.initial_document(state, form, get_base_url(request, app_settings))
        logger.info(
            f"[CALL WEBHOOK] Responding - CallSid: {form.get('CallSid')}, TwiML length: {len(twiml)} bytes"
        )
        return xml_response(twiml)

    except Exception as e:
        logger.error(
            f"[CALL WEBHOOK] Error building call document - call_log_id: {state.call_log_id}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
        return xml_response(error_document(CALL_ERROR_MESSAGE, voice=app_settings.say_voice))


async def _handle_status_callback(
    request: Request,
    state: DialogTurnState,
    service: CallWebhookService,
    app_settings: Settings,
) -> Response:
    try:
        auth_token = await service.auth_token_for(state.user_id)
        is_valid = await validate_twilio_request(
            request, auth_token, app_settings.base_url, bypass=state.bypass_validation
        )
        form = await read_form(request)
        logger.info(
            f"[CALL STATUS] Received status update - CallSid: {form.get('CallSid')}, "
            f"CallStatus: {form.get('CallStatus')}"
        )
        if not is_valid:
            logger.error(
                f"[CALL STATUS] Ignoring status update with invalid signature - "
                f"CallSid: {form.get('CallSid')}"
            )
        else:
            await service.apply_status(form, state.call_log_id)
    except Exception as e:
        logger.error(
            f"[CALL STATUS] Error handling call status update - call_log_id: {state.call_log_id}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
    # Always OK so Twilio does not retry
    return Response(content="OK", media_type="text/plain")


@router.post("/voice/respond")
async def handle_respond(
    request: Request,
    db: AsyncSession = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
    agent: DialogAgent = Depends(get_dialog_agent),
    speech_factory: Callable[..., TextToSpeechService] = Depends(get_speech_factory),
):
    """Handle the caller's speech or keypad input for one dialog turn."""
    state = DialogTurnState.from_query(request.query_params)
    logger.info(
        f"[RESPOND] Received turn {state.conversation_count} - call_log_id: {state.call_log_id}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )
    try:
        auth_token = await CallWebhookService(db, settings=app_settings).auth_token_for(state.user_id)
        is_valid = await validate_twilio_request(
            request, auth_token, app_settings.base_url, bypass=state.bypass_validation
        )
        if not is_valid:
            return JSONResponse(FORBIDDEN, status_code=403)

        form = await read_form(request)
        processor = ResponseProcessor(db, agent, settings=app_settings, speech_factory=speech_factory)
        twiml = await processor.process(state, form, get_base_url(request, app_settings))
        return xml_response(twiml)

    except Exception as e:
        logger.error(
            f"[RESPOND] Error processing response - call_log_id: {state.call_log_id}, "
            f"turn: {state.conversation_count}, Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
        return xml_response(error_document(APOLOGY, voice=app_settings.say_voice))


@router.get("/voice/audio/{clip_id}")
async def get_speech_clip(clip_id: str, db: AsyncSession = Depends(get_db)):
    """Serve a synthesized clip to Twilio's <Play>."""
    clip = await SpeechClipRepository(db).get(clip_id)
    if clip is None:
        raise HTTPException(status_code=404, detail="Clip not found")
    return Response(content=clip.audio, media_type=clip.content_type)

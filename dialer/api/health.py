"""Health check endpoint."""
import logging

from fastapi import APIRouter, Depends, Request

from dialer.core.config import Settings
from dialer.core.dependencies import get_settings

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(request: Request, app_settings: Settings = Depends(get_settings)):
    """Health check endpoint."""
    logger.debug(
        f"[HEALTH] Health check requested - Client: {request.client.host if request.client else 'unknown'}"
    )
    return {"status": "healthy", "conversation_mode": app_settings.conversation_mode}

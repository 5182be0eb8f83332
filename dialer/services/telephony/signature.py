"""Twilio webhook signature validation."""
import logging
from typing import Iterable, Optional, Tuple
from urllib.parse import parse_qsl, urlsplit, urlunsplit

from fastapi import Request
from twilio.request_validator import RequestValidator

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Twilio-Signature"


def strip_query(url: str) -> str:
    """Return the URL without its query string or fragment."""
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def signed_urls(method: str, url: str) -> list:
    """
    URLs a signature may have been computed over.

    POST bodies are signed against the URL without its query string first;
    Twilio also signs POSTs with the query kept, so that form is tried next.
    GET requests are signed against the full URL.
    """
    if method.upper() != "POST":
        return [url]
    candidates = [strip_query(url)]
    if urlsplit(url).query:
        candidates.append(url)
    return candidates


def validate_signature(
    method: str,
    url: str,
    params: Iterable[Tuple[str, str]],
    signature: Optional[str],
    auth_token: Optional[str],
    bypass: bool = False,
) -> bool:
    """
    Check a Twilio signature. Fails closed.

    A missing signature or a missing auth token is a failure, never a skip.
    Only an explicit bypass skips the check.
    """
    if bypass:
        logger.warning(
            f"[SIGNATURE] VALIDATION BYPASSED for {method} {strip_query(url)} - "
            f"this must only be used for controlled testing"
        )
        return True

    if not signature:
        logger.error(f"[SIGNATURE] Missing {SIGNATURE_HEADER} header - validation FAILED")
        return False

    if not auth_token:
        logger.error("[SIGNATURE] No auth token available - validation FAILED")
        return False

    validator = RequestValidator(auth_token)
    form = dict(params) if method.upper() == "POST" else {}
    is_valid = any(validator.validate(candidate, form, signature) for candidate in signed_urls(method, url))
    if is_valid:
        logger.info(f"[SIGNATURE] Signature validation PASSED for {strip_query(url)}")
    else:
        logger.error(f"[SIGNATURE] Signature validation FAILED for {strip_query(url)}")
    return is_valid


def public_request_url(request: Request, base_url: Optional[str] = None) -> str:
    """
    Rebuild the URL Twilio requested.

    Behind a proxy the request's own URL differs from the one Twilio signed,
    so the configured public origin replaces it when given.
    """
    if not base_url:
        return str(request.url)
    url = f"{base_url.rstrip('/')}{request.url.path}"
    if request.url.query:
        url += f"?{request.url.query}"
    return url


async def validate_twilio_request(
    request: Request,
    auth_token: Optional[str],
    base_url: Optional[str] = None,
    bypass: bool = False,
) -> bool:
    """
    Validate a FastAPI request that claims to come from Twilio.

    The body is read through Starlette's cached ``request.body()`` and parsed
    separately, so handlers can still read the form afterwards.
    """
    params = []
    if request.method.upper() == "POST":
        body = await request.body()
        try:
            params = parse_qsl(body.decode("utf-8"), keep_blank_values=True)
        except UnicodeDecodeError:
            if not bypass:
                logger.error("[SIGNATURE] Request body is not valid UTF-8 - validation FAILED")
                return False

    return validate_signature(
        method=request.method,
        url=public_request_url(request, base_url),
        params=params,
        signature=request.headers.get(SIGNATURE_HEADER),
        auth_token=auth_token,
        bypass=bypass,
    )

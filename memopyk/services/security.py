# =============================================================================
# Request Security Helpers — CSRF, Captcha, Client IP, Request IDs
# =============================================================================
#
# CSRF uses the double-submit pattern: GET /api/csrf sets a random
# `csrfToken` cookie, and the partner intake echoes it back in the body
# (`csrfToken`) or the `X-CSRF-Token` header. A cross-site page cannot
# read the cookie, so it cannot produce a matching token. The contact form
# has no CSRF check and relies on its per-IP rate limit.
#
# Captcha verification calls Cloudflare Turnstile when a secret is
# configured and passes otherwise.
# =============================================================================

from __future__ import annotations

import hmac
import logging
import secrets

import httpx
from starlette.requests import Request

from memopyk.config import settings

logger = logging.getLogger(__name__)

CSRF_COOKIE_NAME = "csrfToken"
CSRF_HEADER_NAME = "x-csrf-token"
TURNSTILE_VERIFY_URL = "https://challenges.cloudflare.com/turnstile/v0/siteverify"


def generate_request_id(prefix: str = "req_") -> str:
    """Short correlation id returned in intake responses: req_<16 hex>."""
    return prefix + secrets.token_hex(8)


def generate_csrf_token() -> str:
    return secrets.token_hex(16)


def verify_csrf(cookie_token: object, submitted_token: object) -> bool:
    """
    True when the cookie holds a token longer than 8 characters and the
    submitted token is identical to it.
    """
    if not isinstance(cookie_token, str) or len(cookie_token) <= 8:
        return False
    if not isinstance(submitted_token, str):
        return False
    return hmac.compare_digest(cookie_token.encode(), submitted_token.encode())


def submitted_csrf_token(request: Request, body: dict | None) -> object:
    """Token from the JSON body, falling back to the X-CSRF-Token header."""
    if body and body.get("csrfToken"):
        return body["csrfToken"]
    return request.headers.get(CSRF_HEADER_NAME)


def get_client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, else the socket peer, else "unknown"."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


async def verify_captcha(token: str | None, remote_ip: str | None = None) -> bool:
    """
    Verify a Turnstile token.

    Returns True without a network call when no captcha secret is
    configured. Network errors count as a failed verification.
    """
    if not settings.captcha_secret:
        return True
    if not token:
        return False

    data = {"secret": settings.captcha_secret, "response": token}
    if remote_ip:
        data["remoteip"] = remote_ip

    try:
        async with httpx.AsyncClient(timeout=10) as client:
            response = await client.post(TURNSTILE_VERIFY_URL, data=data)
            response.raise_for_status()
            payload = response.json()
    except httpx.HTTPError as e:
        logger.warning("Captcha verification unavailable: %s", e)
        return False

    return bool(payload.get("success"))

# =============================================================================
# Auth Dependencies — Admin Bearer Keys
# =============================================================================
#
# Public site endpoints (intake, directory, FAQs, blog, tracking) take no
# credentials. Everything the back office uses depends on
# `get_current_api_key`:
#
#   Authorization: Bearer sk-<64 hex>      key from the api_keys table
#   Authorization: Bearer <ADMIN_TOKEN>    bootstrap token from settings
#
# When settings.auth_enabled is False every admin dependency resolves to
# None (anonymous full access) for local development.
#
# Endpoints that are public in one mode and admin-only in another
# (GET /api/partners without `transform=true`) call `authenticate` directly.
# =============================================================================

from __future__ import annotations

import logging
from datetime import UTC, datetime

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from memopyk.config import settings
from memopyk.db.engine import get_async_session
from memopyk.db.models import ApiKey
from memopyk.services.auth import hash_api_key, matches_bootstrap_token
from memopyk.services.rate_limiter import check_rate_limit

logger = logging.getLogger(__name__)

# Shows the "Authorize" button in Swagger UI
_bearer_scheme = HTTPBearer(auto_error=False)


async def authenticate(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None,
    session: AsyncSession,
) -> ApiKey | None:
    """
    Resolve the admin credential on a request.

    Returns None when auth is disabled. The bootstrap token yields a
    transient ApiKey (id None, no scopes) that is never persisted.

    Raises:
        HTTPException 401: Missing or unknown key
        HTTPException 403: Key deactivated or expired
        HTTPException 429: Per-key rate limit exceeded
    """
    if not settings.auth_enabled:
        return None

    if credentials is None:
        raise HTTPException(
            status_code=401,
            detail="Missing API key. Provide "
            "'Authorization: Bearer <key>' header.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    raw_key = credentials.credentials

    if matches_bootstrap_token(raw_key, settings.admin_token):
        api_key = ApiKey(name="bootstrap", key_prefix=raw_key[:8], scopes=None)
        request.state.api_key = api_key
        request.state.audited = True
        return api_key

    result = await session.execute(
        select(ApiKey).where(ApiKey.key_hash == hash_api_key(raw_key)),
    )
    api_key = result.scalar_one_or_none()

    if api_key is None:
        logger.warning("Rejected unknown API key prefix=%s", raw_key[:8])
        raise HTTPException(
            status_code=401,
            detail="Invalid API key.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not api_key.is_active:
        raise HTTPException(
            status_code=403,
            detail="API key has been deactivated.",
        )

    if api_key.expires_at and api_key.expires_at < datetime.now(UTC):
        raise HTTPException(
            status_code=403,
            detail="API key has expired.",
        )

    await check_rate_limit(api_key)

    api_key.last_used_at = datetime.now(UTC)

    # Read by AuditLoggingMiddleware
    request.state.api_key = api_key
    request.state.audited = True

    return api_key


async def get_current_api_key(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    session: AsyncSession = Depends(get_async_session),
) -> ApiKey | None:
    """FastAPI dependency for admin-only endpoints."""
    return await authenticate(request, credentials, session)


def check_scope(api_key: ApiKey | None, required_scope: str) -> None:
    """
    Verify the API key has the required scope.

    No-op when auth is disabled (api_key is None) and for keys with
    null/empty scopes (full access).

    Raises:
        HTTPException 403: scope missing.
    """
    if api_key is None:
        return

    if not api_key.scopes:
        return

    if required_scope not in api_key.scopes:
        raise HTTPException(
            status_code=403,
            detail=f"API key does not have '{required_scope}' scope.",
        )


def require_scope(scope: str):
    """Dependency factory: authenticate, then check_scope(scope)."""

    async def _dependency(
        api_key: ApiKey | None = Depends(get_current_api_key),
    ) -> ApiKey | None:
        check_scope(api_key, scope)
        return api_key

    return _dependency

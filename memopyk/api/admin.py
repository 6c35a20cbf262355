# =============================================================================
# Admin API — API Keys & Audit Trail
# =============================================================================
#
# Key management for the back office. Every endpoint requires the "admin"
# scope so that a key limited to, say, "seo" cannot mint new keys.
#
# The raw key is returned exactly once, by POST /api/admin/keys. Afterwards
# only its 8-character prefix is shown.
#
# PATCH with is_active=false disables a key and keeps its audit history
# attributed; DELETE removes the row (audit rows keep the name snapshot).
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from memopyk.api.deps import require_scope
from memopyk.db.engine import get_async_session
from memopyk.db.models import ApiKey, AuditLog
from memopyk.models.requests import CreateApiKeyRequest, UpdateApiKeyRequest
from memopyk.models.responses import (
    ApiKeyCreatedResponse,
    ApiKeyListResponse,
    ApiKeyResponse,
    AuditLogListResponse,
    AuditLogResponse,
)
from memopyk.services.auth import generate_api_key

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin",
    tags=["Admin"],
    dependencies=[Depends(require_scope("admin"))],
)


# ---------------------------------------------------------------------------
# API keys
# ---------------------------------------------------------------------------


@router.post(
    "/keys",
    response_model=ApiKeyCreatedResponse,
    status_code=201,
    summary="Create a new API key",
    description=(
        "Generate a key with optional scopes, rate limit and expiry. The raw "
        "key is only returned in this response."
    ),
)
async def create_api_key(
    request: CreateApiKeyRequest,
    session: AsyncSession = Depends(get_async_session),
) -> ApiKeyCreatedResponse:
    raw_key, key_prefix, key_hash = generate_api_key()

    new_key = ApiKey(
        name=request.name,
        key_prefix=key_prefix,
        key_hash=key_hash,
        scopes=request.scopes,
        rate_limit_rpm=request.rate_limit_rpm,
        expires_at=request.expires_at,
    )
    session.add(new_key)
    await session.commit()
    await session.refresh(new_key)

    logger.info(
        "API key created: id=%d, name='%s', prefix='%s'",
        new_key.id, new_key.name, new_key.key_prefix,
    )

    return ApiKeyCreatedResponse(
        **ApiKeyResponse.model_validate(new_key).model_dump(),
        raw_key=raw_key,
    )


@router.get(
    "/keys",
    response_model=ApiKeyListResponse,
    summary="List all API keys",
)
async def list_api_keys(
    session: AsyncSession = Depends(get_async_session),
) -> ApiKeyListResponse:
    result = await session.execute(select(ApiKey).order_by(ApiKey.created_at.desc()))
    keys = list(result.scalars().all())
    return ApiKeyListResponse(
        keys=[ApiKeyResponse.model_validate(k) for k in keys],
        total=len(keys),
    )


@router.get(
    "/keys/{key_id}",
    response_model=ApiKeyResponse,
    summary="Get API key details",
)
async def get_api_key(
    key_id: int,
    session: AsyncSession = Depends(get_async_session),
) -> ApiKeyResponse:
    return ApiKeyResponse.model_validate(await _get_key_or_404(session, key_id))


@router.patch(
    "/keys/{key_id}",
    response_model=ApiKeyResponse,
    summary="Update an API key",
)
async def update_api_key(
    key_id: int,
    request: UpdateApiKeyRequest,
    session: AsyncSession = Depends(get_async_session),
) -> ApiKeyResponse:
    target = await _get_key_or_404(session, key_id)

    for field, value in request.model_dump(exclude_unset=True).items():
        setattr(target, field, value)

    await session.commit()
    await session.refresh(target)

    logger.info("API key updated: id=%d, name='%s'", target.id, target.name)
    return ApiKeyResponse.model_validate(target)


@router.delete(
    "/keys/{key_id}",
    status_code=204,
    summary="Delete an API key",
)
async def delete_api_key(
    key_id: int,
    session: AsyncSession = Depends(get_async_session),
) -> None:
    target = await _get_key_or_404(session, key_id)
    await session.delete(target)
    await session.commit()

    logger.info("API key deleted: id=%d, name='%s'", key_id, target.name)


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------


@router.get(
    "/audit",
    response_model=AuditLogListResponse,
    summary="View audit logs",
    description="Most recent admin requests first. Filter by API key.",
)
async def get_audit_logs(
    api_key_id: int | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    session: AsyncSession = Depends(get_async_session),
) -> AuditLogListResponse:
    stmt = select(AuditLog).order_by(AuditLog.created_at.desc())
    count_stmt = select(func.count(AuditLog.id))
    if api_key_id is not None:
        stmt = stmt.where(AuditLog.api_key_id == api_key_id)
        count_stmt = count_stmt.where(AuditLog.api_key_id == api_key_id)

    logs = list((await session.execute(stmt.limit(limit))).scalars().all())
    total = (await session.execute(count_stmt)).scalar() or 0

    return AuditLogListResponse(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        total=total,
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _get_key_or_404(session: AsyncSession, key_id: int) -> ApiKey:
    api_key = await session.get(ApiKey, key_id)
    if api_key is None:
        raise HTTPException(status_code=404, detail=f"API key {key_id} not found.")
    return api_key

# =============================================================================
# SEO API — Page Metadata, Redirects, Sitemap
# =============================================================================
#
# Public:
#   GET /sitemap.xml                       404 when disabled in global settings
#   GET /robots.txt
#   GET /api/seo/page/{page}?language=     localized meta block for <head>
#
# Admin (/api/admin/seo, "seo" scope):
#   settings CRUD (every changed field gets an seo_audit_logs row), redirects
#   CRUD, audit listing, global settings, scoring, validation, report.
#
# SeoRedirectMiddleware answers managed redirects for site pages before
# the SPA fallback sees them.
# =============================================================================

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse, RedirectResponse, Response
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from memopyk.api.deps import require_scope
from memopyk.config import settings
from memopyk.db.engine import async_session_factory, get_async_session
from memopyk.db.models import (
    SeoAuditLog,
    SeoGlobalSettings,
    SeoRedirect,
    SeoSettings,
)
from memopyk.models.requests import (
    SeoGlobalSettingsRequest,
    SeoMetaFields,
    SeoRedirectCreateRequest,
    SeoRedirectUpdateRequest,
    SeoSettingsCreateRequest,
    SeoSettingsUpdateRequest,
)
from memopyk.models.responses import (
    SeoAuditLogResponse,
    SeoGlobalSettingsResponse,
    SeoRedirectResponse,
    SeoSettingsResponse,
    SeoValidationResponse,
)
from memopyk.services.seo import (
    build_report,
    build_robots_txt,
    build_sitemap,
    calculate_seo_score,
    localized_meta,
    row_to_dict,
    validate_meta_tags,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["SEO"])
admin_router = APIRouter(
    prefix="/api/admin/seo",
    tags=["SEO"],
    dependencies=[Depends(require_scope("seo"))],
)


def _admin_user(request: Request) -> str:
    api_key = getattr(request.state, "api_key", None)
    return api_key.name if api_key is not None else "admin"


def _audit_value(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, sort_keys=True)
    return str(value)


async def _global_settings(session: AsyncSession) -> SeoGlobalSettings | None:
    result = await session.execute(
        select(SeoGlobalSettings).order_by(SeoGlobalSettings.id).limit(1),
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------


@router.get("/sitemap.xml", include_in_schema=False)
async def sitemap(session: AsyncSession = Depends(get_async_session)) -> Response:
    global_settings = await _global_settings(session)
    if global_settings is not None and not global_settings.sitemap_enabled:
        raise HTTPException(status_code=404, detail="Sitemap disabled")

    pages = (await session.execute(
        select(SeoSettings).where(SeoSettings.is_active.is_(True)).order_by(SeoSettings.id),
    )).scalars().all()

    xml = build_sitemap([row_to_dict(p) for p in pages], settings.site_base_url)
    return Response(content=xml, media_type="application/xml")


@router.get("/robots.txt", include_in_schema=False)
async def robots_txt(
    session: AsyncSession = Depends(get_async_session),
) -> PlainTextResponse:
    global_settings = await _global_settings(session)
    custom = global_settings.robots_txt if global_settings is not None else None
    return PlainTextResponse(build_robots_txt(custom, settings.site_base_url))


@router.get("/api/seo/page/{page}", summary="Localized meta tags for a page")
async def page_meta(
    page: str,
    language: str = Query(default="en", pattern="^(en|fr)"),
    session: AsyncSession = Depends(get_async_session),
) -> dict[str, Any]:
    row = (await session.execute(
        select(SeoSettings).where(
            SeoSettings.page == page, SeoSettings.is_active.is_(True),
        ),
    )).scalar_one_or_none()
    if row is None:
        raise HTTPException(status_code=404, detail=f"No SEO settings for '{page}'")
    return localized_meta(row_to_dict(row), language)


# ---------------------------------------------------------------------------
# Admin — page settings
# ---------------------------------------------------------------------------


@admin_router.get("/settings", response_model=list[SeoSettingsResponse])
async def list_settings(
    session: AsyncSession = Depends(get_async_session),
) -> list[SeoSettings]:
    result = await session.execute(select(SeoSettings).order_by(SeoSettings.page))
    return list(result.scalars().all())


@admin_router.get("/settings/{page_id}", response_model=SeoSettingsResponse)
async def get_settings(
    page_id: int,
    session: AsyncSession = Depends(get_async_session),
) -> SeoSettings:
    return await _get_or_404(session, SeoSettings, page_id)


@admin_router.post("/settings", response_model=SeoSettingsResponse, status_code=201)
async def create_settings(
    request: Request,
    body: SeoSettingsCreateRequest,
    session: AsyncSession = Depends(get_async_session),
) -> SeoSettings:
    data = body.model_dump(exclude_none=True)
    page = SeoSettings(**data)
    session.add(page)
    await session.flush()
    await session.refresh(page)

    page.seo_score = calculate_seo_score(row_to_dict(page))
    session.add(SeoAuditLog(
        page_id=page.id,
        action="create",
        new_value=page.page,
        admin_user=_admin_user(request),
    ))
    await session.commit()
    await session.refresh(page)

    logger.info("SEO settings created: page='%s', score=%d", page.page, page.seo_score)
    return page


@admin_router.patch("/settings/{page_id}", response_model=SeoSettingsResponse)
async def update_settings(
    page_id: int,
    request: Request,
    body: SeoSettingsUpdateRequest,
    session: AsyncSession = Depends(get_async_session),
) -> SeoSettings:
    page = await _get_or_404(session, SeoSettings, page_id)
    updates = body.model_dump(exclude_unset=True)
    reason = updates.pop("change_reason", None)
    admin_user = _admin_user(request)

    for field, value in updates.items():
        old = getattr(page, field)
        if old == value:
            continue
        session.add(SeoAuditLog(
            page_id=page.id,
            action="update",
            field=field,
            old_value=_audit_value(old),
            new_value=_audit_value(value),
            admin_user=admin_user,
            change_reason=reason,
        ))
        setattr(page, field, value)

    page.updated_at = datetime.now(UTC)
    page.seo_score = calculate_seo_score(row_to_dict(page))
    await session.commit()
    await session.refresh(page)
    return page


@admin_router.delete("/settings/{page_id}", status_code=204)
async def delete_settings(
    page_id: int,
    request: Request,
    session: AsyncSession = Depends(get_async_session),
) -> None:
    page = await _get_or_404(session, SeoSettings, page_id)
    session.add(SeoAuditLog(
        page_id=page.id,
        action="delete",
        old_value=page.page,
        admin_user=_admin_user(request),
    ))
    await session.delete(page)
    await session.commit()
    logger.info("SEO settings deleted: id=%d", page_id)


@admin_router.post("/settings/{page_id}/score", summary="Recalculate a page's score")
async def score_page(
    page_id: int,
    session: AsyncSession = Depends(get_async_session),
) -> dict[str, Any]:
    page = await _get_or_404(session, SeoSettings, page_id)
    page.seo_score = calculate_seo_score(row_to_dict(page))
    await session.commit()
    return {"id": page.id, "page": page.page, "seo_score": page.seo_score}


@admin_router.post(
    "/validate",
    response_model=SeoValidationResponse,
    summary="Check meta tags before saving",
)
async def validate(body: SeoMetaFields) -> dict[str, Any]:
    return validate_meta_tags(body.model_dump())


@admin_router.get("/report", summary="SEO performance report")
async def report(session: AsyncSession = Depends(get_async_session)) -> dict[str, Any]:
    pages = []
    for row in (await session.execute(select(SeoSettings))).scalars().all():
        page = row_to_dict(row)
        page["seo_score"] = calculate_seo_score(page)
        pages.append(page)

    redirects = [
        row_to_dict(r)
        for r in (await session.execute(select(SeoRedirect))).scalars().all()
    ]
    audit_logs = [
        row_to_dict(log)
        for log in (await session.execute(
            select(SeoAuditLog).order_by(SeoAuditLog.created_at.desc()).limit(10),
        )).scalars().all()
    ]
    return build_report(pages, redirects, audit_logs)


# ---------------------------------------------------------------------------
# Admin — redirects
# ---------------------------------------------------------------------------


@admin_router.get("/redirects", response_model=list[SeoRedirectResponse])
async def list_redirects(
    session: AsyncSession = Depends(get_async_session),
) -> list[SeoRedirect]:
    result = await session.execute(
        select(SeoRedirect).order_by(SeoRedirect.created_at.desc()),
    )
    return list(result.scalars().all())


@admin_router.post("/redirects", response_model=SeoRedirectResponse, status_code=201)
async def create_redirect(
    body: SeoRedirectCreateRequest,
    session: AsyncSession = Depends(get_async_session),
) -> SeoRedirect:
    await _ensure_from_path_free(session, body.from_path)
    redirect = SeoRedirect(**body.model_dump())
    session.add(redirect)
    await session.commit()
    await session.refresh(redirect)
    logger.info("Redirect created: %s -> %s", redirect.from_path, redirect.to_path)
    return redirect


@admin_router.patch("/redirects/{redirect_id}", response_model=SeoRedirectResponse)
async def update_redirect(
    redirect_id: int,
    body: SeoRedirectUpdateRequest,
    session: AsyncSession = Depends(get_async_session),
) -> SeoRedirect:
    redirect = await _get_or_404(session, SeoRedirect, redirect_id)
    if body.from_path is not None and body.from_path != redirect.from_path:
        await _ensure_from_path_free(session, body.from_path)
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(redirect, field, value)
    await session.commit()
    await session.refresh(redirect)
    return redirect


async def _ensure_from_path_free(session: AsyncSession, from_path: str) -> None:
    existing = await session.execute(
        select(SeoRedirect.id).where(SeoRedirect.from_path == from_path),
    )
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=409, detail=f"A redirect from {from_path} already exists.",
        )


@admin_router.delete("/redirects/{redirect_id}", status_code=204)
async def delete_redirect(
    redirect_id: int,
    session: AsyncSession = Depends(get_async_session),
) -> None:
    redirect = await _get_or_404(session, SeoRedirect, redirect_id)
    await session.delete(redirect)
    await session.commit()


# ---------------------------------------------------------------------------
# Admin — audit log & global settings
# ---------------------------------------------------------------------------


@admin_router.get("/audit-logs", response_model=list[SeoAuditLogResponse])
async def list_audit_logs(
    page_id: int | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    session: AsyncSession = Depends(get_async_session),
) -> list[SeoAuditLog]:
    stmt = select(SeoAuditLog).order_by(SeoAuditLog.created_at.desc()).limit(limit)
    if page_id is not None:
        stmt = stmt.where(SeoAuditLog.page_id == page_id)
    return list((await session.execute(stmt)).scalars().all())


@admin_router.get("/global", response_model=SeoGlobalSettingsResponse)
async def get_global_settings(
    session: AsyncSession = Depends(get_async_session),
) -> Any:
    return await _global_settings(session) or SeoGlobalSettingsResponse()


@admin_router.put("/global", response_model=SeoGlobalSettingsResponse)
async def put_global_settings(
    body: SeoGlobalSettingsRequest,
    session: AsyncSession = Depends(get_async_session),
) -> SeoGlobalSettings:
    row = await _global_settings(session)
    if row is None:
        row = SeoGlobalSettings()
        session.add(row)

    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(row, field, value)
    row.updated_at = datetime.now(UTC)

    await session.commit()
    await session.refresh(row)
    return row


async def _get_or_404(session: AsyncSession, model, row_id: int):
    row = await session.get(model, row_id)
    if row is None:
        raise HTTPException(
            status_code=404, detail=f"{model.__name__} {row_id} not found.",
        )
    return row


# ---------------------------------------------------------------------------
# Redirect middleware
# ---------------------------------------------------------------------------

SKIP_PREFIXES = ("/api", "/docs", "/redoc", "/openapi.json", "/health")
SKIP_PATHS = {"/sitemap.xml", "/robots.txt"}


def should_check_redirect(method: str, path: str) -> bool:
    if method != "GET":
        return False
    if path in SKIP_PATHS:
        return False
    return not path.startswith(SKIP_PREFIXES)


class SeoRedirectMiddleware(BaseHTTPMiddleware):
    """Serves active seo_redirects rows and counts their hits."""

    def __init__(self, app, session_factory=None):
        super().__init__(app)
        self._session_factory = session_factory or async_session_factory

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        path = request.url.path
        if not should_check_redirect(request.method, path):
            return await call_next(request)

        try:
            redirect = await self._lookup(path)
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Redirect lookup failed for %s: %s", path, e)
            redirect = None

        if redirect is None:
            return await call_next(request)

        logger.info(
            "Redirect %s -> %s (%d)", path, redirect.to_path, redirect.redirect_type,
        )
        return RedirectResponse(redirect.to_path, status_code=redirect.redirect_type)

    async def _lookup(self, path: str) -> SeoRedirect | None:
        async with self._session_factory() as session:
            redirect = (await session.execute(
                select(SeoRedirect).where(
                    SeoRedirect.from_path == path,
                    SeoRedirect.is_active.is_(True),
                ),
            )).scalar_one_or_none()
            if redirect is None:
                return None

            await session.execute(
                update(SeoRedirect)
                .where(SeoRedirect.id == redirect.id)
                .values(
                    hit_count=SeoRedirect.hit_count + 1,
                    last_hit=datetime.now(UTC),
                ),
            )
            await session.commit()
            return redirect

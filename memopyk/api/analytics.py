# =============================================================================
# Analytics API — Events, Web Vitals, Rollups, GA4 Relay, IP Exclusions
# =============================================================================
#
# Public, fire-and-forget (the SPA never waits on these):
#   POST /api/analytics/event         → {success: true}, stored in background
#   POST /api/analytics/performance   → {success: true}, stored in background
#   POST /api/ga4/mp                  → relays video_* events to GA4
#
# Reporting:
#   GET  /api/analytics/conversions?start_date&end_date
#   POST /api/analytics/daily-summary        {date?}
#   POST /api/analytics/performance-summary  {date?}
#   GET  /api/analytics/health
#
# Admin ("analytics" scope):
#   /api/admin/analytics/exclusions[/{id}]   CRUD
#   /api/admin/analytics/exclusions/check?ip=
#
# Background writes open their own session (the request session is closed
# by the time they run). Every write is skipped when analytics_db_enabled
# is False; reads then answer with data: null.
# =============================================================================

from __future__ import annotations

import json
import logging
from datetime import UTC, date, datetime
from typing import Any

import httpx
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from memopyk.api.deps import require_scope
from memopyk.config import settings
from memopyk.db.engine import async_session_factory, get_async_session
from memopyk.db.models import AnalyticsExclusion
from memopyk.models.requests import (
    ExclusionCreateRequest,
    ExclusionUpdateRequest,
    SummaryRequest,
)
from memopyk.models.responses import ExclusionResponse
from memopyk.services.analytics import (
    build_event_row,
    build_performance_row,
    get_conversion_totals,
    is_ip_excluded,
    load_active_exclusions,
    record_event,
    record_performance,
    update_daily_summary,
    update_performance_summary,
)
from memopyk.services.ga4 import (
    EventNotAllowedError,
    build_payload,
    check_relay_events,
    send_events,
    track_conversion,
)
from memopyk.services.security import get_client_ip

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Analytics"])
admin_router = APIRouter(
    prefix="/api/admin/analytics",
    tags=["Analytics"],
    dependencies=[Depends(require_scope("analytics"))],
)

DB_DISABLED_MESSAGE = "Analytics database disabled"


def _fail(status_code: int, error: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": error}, status_code=status_code)


async def _read_object(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


async def is_request_excluded(ip: str, user_agent: str | None) -> bool:
    """Exclusion check with its own session. DB trouble counts as not excluded."""
    if not settings.analytics_db_enabled:
        return False
    try:
        async with async_session_factory() as session:
            exclusions = await load_active_exclusions(session)
    except (SQLAlchemyError, OSError) as e:
        logger.warning("Could not load analytics exclusions: %s", e)
        return False
    return is_ip_excluded(ip, exclusions, user_agent)


# ---------------------------------------------------------------------------
# Background workers
# ---------------------------------------------------------------------------


async def _process_event(row: dict[str, Any], ip: str) -> None:
    """
    Store an event (and its conversion) and send the GA4 conversion.

    Runs after the response; failures are logged and dropped.
    """
    if await is_request_excluded(ip, row.get("user_agent")):
        logger.debug("Analytics event from excluded IP dropped: %s", row["event_name"])
        return

    if settings.analytics_db_enabled:
        try:
            async with async_session_factory() as session:
                event_id = await record_event(session, row)
            logger.debug("Analytics event stored: id=%d, name=%s", event_id, row["event_name"])
        except Exception as e:
            logger.error("Failed to store analytics event %s: %s", row["event_name"], e)

    value = row.get("event_value")
    if value and value > 0:
        await track_conversion(
            row["event_name"],
            value=value,
            currency=row.get("currency") or "EUR",
            client_id=row.get("session_id"),
            user_id=row.get("user_id"),
        )


async def _process_performance(row: dict[str, Any]) -> None:
    try:
        async with async_session_factory() as session:
            await record_performance(session, row)
    except Exception as e:
        logger.error("Failed to store performance metric for %s: %s", row["page_path"], e)


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


@router.post("/api/analytics/event", summary="Record an analytics event")
async def track_event(request: Request, background_tasks: BackgroundTasks) -> Any:
    payload = await _read_object(request)
    if not payload.get("event_name"):
        return _fail(400, "event_name is required")

    if not payload.get("session_id"):
        payload["session_id"] = request.headers.get("x-session-id")

    row = build_event_row(
        payload,
        user_agent=request.headers.get("user-agent"),
        referrer=request.headers.get("referer"),
    )
    background_tasks.add_task(_process_event, row, get_client_ip(request))
    return {"success": True}


@router.post("/api/analytics/performance", summary="Record a Web Vitals sample")
async def track_performance(request: Request, background_tasks: BackgroundTasks) -> Any:
    payload = await _read_object(request)
    if not payload.get("page_path"):
        return _fail(400, "page_path is required")

    if settings.analytics_db_enabled:
        row = build_performance_row(payload, user_agent=request.headers.get("user-agent"))
        background_tasks.add_task(_process_performance, row)
    return {"success": True}


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


@router.get("/api/analytics/conversions", summary="Conversion value per type")
async def conversions(
    start_date: str | None = Query(default=None, examples=["2025-01-01"]),
    end_date: str | None = Query(default=None, examples=["2025-01-31"]),
    session: AsyncSession = Depends(get_async_session),
) -> Any:
    if not start_date or not end_date:
        return _fail(400, "start_date and end_date are required")
    try:
        start, end = date.fromisoformat(start_date), date.fromisoformat(end_date)
    except ValueError:
        return _fail(400, "Dates must be YYYY-MM-DD")

    if not settings.analytics_db_enabled:
        return {"success": True, "data": None}
    return {"success": True, "data": await get_conversion_totals(session, start, end)}


def _summary_day(body: SummaryRequest | None) -> date:
    if body is not None and body.day is not None:
        return body.day
    return datetime.now(UTC).date()


@router.post("/api/analytics/daily-summary", summary="Recompute a day's event summary")
async def daily_summary(
    body: SummaryRequest | None = None,
    session: AsyncSession = Depends(get_async_session),
) -> dict[str, Any]:
    day = _summary_day(body)
    if not settings.analytics_db_enabled:
        return {"success": True, "message": DB_DISABLED_MESSAGE, "data": None}

    data = await update_daily_summary(session, day)
    return {"success": True, "message": f"Daily summary updated for {day}", "data": data}


@router.post(
    "/api/analytics/performance-summary",
    summary="Recompute a day's per-page Web Vitals averages",
)
async def performance_summary(
    body: SummaryRequest | None = None,
    session: AsyncSession = Depends(get_async_session),
) -> dict[str, Any]:
    day = _summary_day(body)
    if not settings.analytics_db_enabled:
        return {"success": True, "message": DB_DISABLED_MESSAGE, "data": None}

    data = await update_performance_summary(session, day)
    return {
        "success": True,
        "message": f"Performance summary updated for {day}",
        "data": data,
    }


@router.get("/api/analytics/health")
async def analytics_health() -> dict[str, Any]:
    enabled = settings.analytics_db_enabled
    return {
        "success": True,
        "analytics_db_enabled": enabled,
        "message": "Analytics database enabled" if enabled else DB_DISABLED_MESSAGE,
    }


# ---------------------------------------------------------------------------
# GA4 Measurement Protocol relay
# ---------------------------------------------------------------------------


@router.post(
    "/api/ga4/mp",
    summary="Relay video events to GA4",
    responses={204: {"description": "Excluded IP; nothing sent"}},
)
async def ga4_relay(
    request: Request,
    debug: str | None = Query(default=None, description="1 = validation endpoint"),
) -> Any:
    if not settings.ga_measurement_id:
        return JSONResponse({"error": "GA4 measurement id not configured"}, status_code=500)

    if await is_request_excluded(get_client_ip(request), request.headers.get("user-agent")):
        return Response(status_code=204)

    body = await _read_object(request)
    events = body.get("events")
    if not isinstance(events, list) or not events:
        return JSONResponse({"error": "events array required"}, status_code=400)

    try:
        check_relay_events(events)
    except EventNotAllowedError as e:
        return JSONResponse({"error": str(e)}, status_code=400)

    use_debug = debug == "1"
    payload = build_payload(events, body.get("client_id"), body.get("user_id"))
    try:
        result = await send_events(payload, debug=use_debug)
    except httpx.HTTPError as e:
        logger.error("GA4 MP unreachable: %s", e)
        return JSONResponse({"error": "GA4 MP error", "body": str(e)}, status_code=502)

    if not result.ok:
        return JSONResponse(
            {"error": "GA4 MP error", "body": result.body},
            status_code=result.status_code,
        )

    response: dict[str, Any] = {"ok": True, "client_id": result.client_id}
    if use_debug:
        try:
            response["debug"] = json.loads(result.body)
        except ValueError:
            response["debug"] = result.body
    return response


# ---------------------------------------------------------------------------
# Admin — IP exclusions
# ---------------------------------------------------------------------------


@admin_router.get("/exclusions", response_model=list[ExclusionResponse])
async def list_exclusions(
    session: AsyncSession = Depends(get_async_session),
) -> list[AnalyticsExclusion]:
    result = await session.execute(
        select(AnalyticsExclusion).order_by(AnalyticsExclusion.created_at.desc()),
    )
    return list(result.scalars().all())


@admin_router.get("/exclusions/check", summary="Would this IP be excluded?")
async def check_exclusion(
    request: Request,
    ip: str | None = Query(default=None, description="Defaults to the caller's IP"),
    session: AsyncSession = Depends(get_async_session),
) -> dict[str, Any]:
    ip = ip or get_client_ip(request)
    user_agent = request.headers.get("user-agent")
    exclusions = await load_active_exclusions(session)
    return {
        "ip": ip,
        "excluded": is_ip_excluded(ip, exclusions, user_agent),
        "user_agent": user_agent,
    }


@admin_router.post(
    "/exclusions", response_model=ExclusionResponse, status_code=201,
)
async def create_exclusion(
    body: ExclusionCreateRequest,
    session: AsyncSession = Depends(get_async_session),
) -> AnalyticsExclusion:
    exclusion = AnalyticsExclusion(**body.model_dump())
    session.add(exclusion)
    await session.commit()
    await session.refresh(exclusion)
    logger.info("Analytics exclusion added: %s (%s)", exclusion.ip_cidr, exclusion.label)
    return exclusion


@admin_router.patch("/exclusions/{exclusion_id}", response_model=ExclusionResponse)
async def update_exclusion(
    exclusion_id: int,
    body: ExclusionUpdateRequest,
    session: AsyncSession = Depends(get_async_session),
) -> AnalyticsExclusion:
    exclusion = await _get_exclusion_or_404(session, exclusion_id)
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(exclusion, field, value)
    await session.commit()
    await session.refresh(exclusion)
    return exclusion


@admin_router.delete("/exclusions/{exclusion_id}", status_code=204)
async def delete_exclusion(
    exclusion_id: int,
    session: AsyncSession = Depends(get_async_session),
) -> None:
    exclusion = await _get_exclusion_or_404(session, exclusion_id)
    await session.delete(exclusion)
    await session.commit()


async def _get_exclusion_or_404(
    session: AsyncSession, exclusion_id: int,
) -> AnalyticsExclusion:
    exclusion = await session.get(AnalyticsExclusion, exclusion_id)
    if exclusion is None:
        raise HTTPException(
            status_code=404, detail=f"Exclusion {exclusion_id} not found.",
        )
    return exclusion

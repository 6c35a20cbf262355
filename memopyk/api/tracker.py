# =============================================================================
# Live View API — Video Heartbeats
# =============================================================================
# POST /api/tracker/heartbeat           public, every 15 s while a video plays
# GET  /api/tracker/currently-watching  admin ("analytics" scope)
# =============================================================================

from typing import Any

from fastapi import APIRouter, Depends, Request

from memopyk.api.deps import require_scope
from memopyk.models.requests import HeartbeatRequest
from memopyk.services.live_view import (
    LiveViewStore,
    country_from_headers,
    get_live_view_store,
)

router = APIRouter(prefix="/api/tracker", tags=["Live View"])


@router.post("/heartbeat", summary="Report that a video is playing")
async def heartbeat(
    beat: HeartbeatRequest,
    request: Request,
    store: LiveViewStore = Depends(get_live_view_store),
) -> dict[str, Any]:
    stored = await store.record(beat, country_from_headers(request.headers))
    return {"ok": True, "stored": stored}


@router.get(
    "/currently-watching",
    summary="Sessions with a heartbeat inside the live window",
    dependencies=[Depends(require_scope("analytics"))],
)
async def currently_watching(
    store: LiveViewStore = Depends(get_live_view_store),
) -> dict[str, Any]:
    viewers = await store.current_viewers()
    return {"success": True, "count": len(viewers), "viewers": viewers}

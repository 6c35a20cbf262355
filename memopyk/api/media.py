# =============================================================================
# Media API — Video & Image Proxies, Disk Caches
# =============================================================================
#
# GET /api/video-proxy?filename=   serve from the disk cache, downloading
# GET /api/image-proxy?filename=   from storage on a miss
#
# Admin ("media" scope):
#   GET  /api/video-cache/stats      GET  /api/image-cache/stats
#   POST /api/video-cache/clear      POST /api/image-cache/clear
#   POST /api/video-cache/cleanup    POST /api/image-cache/cleanup
#
# Responses carry X-Delivery / X-Upstream / X-Storage (and X-Cache-Age on
# hits) so the gallery's diagnostics can tell where a file came from.
# =============================================================================

from __future__ import annotations

import logging
from typing import Any

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse

from memopyk.api.deps import require_scope
from memopyk.services.media_cache import (
    InvalidCacheFilename,
    MediaCache,
    MediaNotFoundError,
    delivery_headers,
    get_image_cache,
    get_video_cache,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Media"])
admin_router = APIRouter(
    prefix="/api/video-cache",
    tags=["Media"],
    dependencies=[Depends(require_scope("media"))],
)
image_admin_router = APIRouter(
    prefix="/api/image-cache",
    tags=["Media"],
    dependencies=[Depends(require_scope("media"))],
)

_PROXY_RESPONSES = {
    400: {"description": "Invalid filename"},
    404: {"description": "Not found in storage"},
    502: {"description": "Storage unreachable"},
}


async def _serve(
    cache: MediaCache,
    filename: str | None,
    media_type: str | None,
) -> FileResponse:
    try:
        cached = cache.cached_path(filename)
        source_url = cache.upstream_url(filename)
    except InvalidCacheFilename as e:
        raise HTTPException(status_code=400, detail=str(e)) from None

    if cached is not None:
        headers = delivery_headers(True, source_url, cache.age_seconds(cached))
        return FileResponse(cached, media_type=media_type, headers=headers)

    try:
        path = await cache.fetch(filename)
    except MediaNotFoundError:
        raise HTTPException(
            status_code=404, detail=f"{cache.label.capitalize()} not found",
        ) from None
    except httpx.HTTPError as e:
        logger.error("%s download failed for %s: %s", cache.label, filename, e)
        raise HTTPException(
            status_code=502,
            detail=f"{cache.label.capitalize()} storage unavailable",
        ) from e

    return FileResponse(
        path, media_type=media_type, headers=delivery_headers(False, source_url),
    )


@router.get(
    "/api/video-proxy",
    summary="Stream a video through the cache",
    response_class=FileResponse,
    responses=_PROXY_RESPONSES,
)
async def video_proxy(
    filename: str | None = Query(default=None, examples=["gallery_intro.mp4"]),
    cache: MediaCache = Depends(get_video_cache),
) -> FileResponse:
    return await _serve(cache, filename, "video/mp4")


@router.get(
    "/api/image-proxy",
    summary="Serve a gallery image through the cache",
    response_class=FileResponse,
    responses=_PROXY_RESPONSES,
)
async def image_proxy(
    filename: str | None = Query(default=None, examples=["static_auto_1.jpg"]),
    cache: MediaCache = Depends(get_image_cache),
) -> FileResponse:
    # Content type is guessed from the file extension
    return await _serve(cache, filename, None)


@admin_router.get("/stats", summary="Cached videos and total size")
async def cache_stats(cache: MediaCache = Depends(get_video_cache)) -> dict[str, Any]:
    return cache.stats()


@admin_router.post("/clear", summary="Delete every cached video")
async def cache_clear(cache: MediaCache = Depends(get_video_cache)) -> dict[str, Any]:
    return {"success": True, "filesRemoved": cache.clear()}


@admin_router.post("/cleanup", summary="Enforce video cache age and size limits")
async def cache_cleanup(cache: MediaCache = Depends(get_video_cache)) -> dict[str, Any]:
    return {"success": True, **cache.cleanup()}


@image_admin_router.get("/stats", summary="Cached images and total size")
async def image_cache_stats(cache: MediaCache = Depends(get_image_cache)) -> dict[str, Any]:
    return cache.stats()


@image_admin_router.post("/clear", summary="Delete every cached image")
async def image_cache_clear(cache: MediaCache = Depends(get_image_cache)) -> dict[str, Any]:
    return {"success": True, "filesRemoved": cache.clear()}


@image_admin_router.post("/cleanup", summary="Enforce image cache age and size limits")
async def image_cache_cleanup(cache: MediaCache = Depends(get_image_cache)) -> dict[str, Any]:
    return {"success": True, **cache.cleanup()}

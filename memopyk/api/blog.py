# =============================================================================
# Blog API — Directus Read Proxy
# =============================================================================
# Published posts only. List endpoints answer
# {success, data, total, limit, offset}; Directus failures become 502.
# =============================================================================

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from memopyk.services.directus import DirectusClient, DirectusError, get_directus_client

router = APIRouter(prefix="/api/blog", tags=["Blog"])

_UPSTREAM_ERROR = {"success": False, "error": "Blog service unavailable"}


@router.get("/posts", summary="Published posts, newest first")
async def list_posts(
    language: str | None = Query(default=None, examples=["fr-FR"]),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    client: DirectusClient = Depends(get_directus_client),
) -> dict[str, Any]:
    try:
        posts, total = await client.list_posts(language, limit, offset)
    except DirectusError:
        raise HTTPException(status_code=502, detail=_UPSTREAM_ERROR) from None
    return {"success": True, "data": posts, "total": total, "limit": limit, "offset": offset}


# Registered before /posts/{slug} so "search" is not taken for a slug
@router.get("/posts/search", summary="Full-text search over published posts")
async def search_posts(
    q: str = Query(..., min_length=1),
    language: str | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    client: DirectusClient = Depends(get_directus_client),
) -> dict[str, Any]:
    try:
        posts, total = await client.list_posts(language, limit, offset, search=q)
    except DirectusError:
        raise HTTPException(status_code=502, detail=_UPSTREAM_ERROR) from None
    return {"success": True, "data": posts, "total": total, "limit": limit, "offset": offset}


@router.get("/posts/{slug}", summary="One post by slug")
async def get_post(
    slug: str,
    language: str | None = Query(default=None),
    client: DirectusClient = Depends(get_directus_client),
) -> dict[str, Any]:
    try:
        post = await client.get_post(slug, language)
    except DirectusError:
        raise HTTPException(status_code=502, detail=_UPSTREAM_ERROR) from None
    if post is None:
        raise HTTPException(
            status_code=404, detail={"success": False, "error": "Post not found"},
        )
    return {"success": True, "data": post}


@router.get("/featured", summary="Featured posts in display order")
async def featured(
    language: str | None = Query(default=None),
    limit: int = Query(default=3, ge=1, le=20),
    client: DirectusClient = Depends(get_directus_client),
) -> dict[str, Any]:
    try:
        posts = await client.featured_posts(language, limit)
    except DirectusError:
        raise HTTPException(status_code=502, detail=_UPSTREAM_ERROR) from None
    return {"success": True, "data": posts}


@router.get("/tags", summary="Tags by number of published posts")
async def tags(
    language: str | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    client: DirectusClient = Depends(get_directus_client),
) -> dict[str, Any]:
    try:
        data = await client.tags(language, limit)
    except DirectusError:
        raise HTTPException(status_code=502, detail=_UPSTREAM_ERROR) from None
    return {"success": True, "data": data}

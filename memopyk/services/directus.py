# =============================================================================
# Directus Blog Client (read-only)
# =============================================================================
#
# Blog posts are authored in Directus; this API only reads published posts
# through the Directus REST API:
#
#   GET {DIRECTUS_URL}/items/posts?filter[...]&sort=...&limit=...&offset=...
#   GET {DIRECTUS_URL}/items/post_tags?fields=tags_id.*,posts_id.language
#
# Image fields hold a Directus file id (or an absolute URL for posts
# migrated from the old CMS); `asset_url()` turns ids into CDN URLs.
# =============================================================================

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlencode

import httpx

from memopyk.config import settings

logger = logging.getLogger(__name__)

POST_FIELDS = (
    "id,title,slug,language,content,description,image,author,"
    "is_featured,featured_order,published_at,status,"
    "tags.tags_id.name,tags.tags_id.slug"
)


class DirectusError(RuntimeError):
    """Directus was unreachable or answered with an error status."""


def asset_url(raw: Any, base_url: str | None = None) -> str:
    """
    Public URL of a Directus asset.

    Absolute URLs pass through. Anything else is served from /assets/,
    converted to WebP unless the file already is one.
    """
    if isinstance(raw, dict):
        raw = raw.get("id") or ""
    if not raw:
        return ""
    if raw.startswith("http"):
        return raw

    base_url = (base_url or settings.directus_url).rstrip("/")
    path = raw if raw.startswith("/assets/") else f"/assets/{raw}"
    if raw.lower().endswith(".webp"):
        return f"{base_url}{path}"
    return f"{base_url}{path}?{urlencode({'format': 'webp'})}"


def _flatten_tags(tags: Any) -> list[dict[str, str]]:
    flat = []
    for entry in tags or []:
        tag = entry.get("tags_id") if isinstance(entry, dict) else None
        if isinstance(tag, dict) and tag.get("name"):
            flat.append({"name": tag["name"], "slug": tag.get("slug") or ""})
    return flat


def transform_post(post: dict[str, Any]) -> dict[str, Any]:
    """Resolve the image to a URL and flatten the M2M tag rows."""
    return {
        **post,
        "image": asset_url(post.get("image")),
        "tags": _flatten_tags(post.get("tags")),
    }


def count_tags(rows: list[dict[str, Any]], limit: int) -> list[dict[str, Any]]:
    """post_tags junction rows → [{name, slug, count}] most used first."""
    counts: dict[str, dict[str, Any]] = {}
    for row in rows:
        tag = row.get("tags_id")
        if not isinstance(tag, dict) or not tag.get("name"):
            continue
        key = tag.get("slug") or tag["name"]
        entry = counts.setdefault(
            key, {"name": tag["name"], "slug": tag.get("slug") or "", "count": 0},
        )
        entry["count"] += 1
    ranked = sorted(counts.values(), key=lambda t: (-t["count"], t["name"]))
    return ranked[:limit]


class DirectusClient:
    """Thin async wrapper over the Directus items endpoints."""

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.directus_url).rstrip("/")
        self.token = token if token is not None else settings.directus_token
        self.timeout = timeout or settings.directus_timeout_seconds
        self._transport = transport

    async def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.get(path, params=params, headers=headers)
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPError as e:
            logger.error("Directus request failed: %s %s", path, e)
            raise DirectusError(f"Directus request failed: {e}") from e
        except ValueError as e:
            # A proxy error page can come back as 200 text/html
            logger.error("Directus returned a non-JSON body for %s: %s", path, e)
            raise DirectusError(f"Directus returned invalid JSON: {e}") from e

        if not isinstance(body, dict):
            raise DirectusError(f"Directus returned unexpected JSON for {path}")
        return body

    @staticmethod
    def _published(language: str | None) -> dict[str, Any]:
        params = {"filter[status][_eq]": "published"}
        if language:
            params["filter[language][_eq]"] = language
        return params

    async def list_posts(
        self,
        language: str | None = None,
        limit: int = 20,
        offset: int = 0,
        search: str | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        """Published posts, newest first, with the filtered total."""
        params = {
            **self._published(language),
            "fields": POST_FIELDS,
            "sort": "-published_at",
            "limit": limit,
            "offset": offset,
            "meta": "filter_count",
        }
        if search:
            params["search"] = search
        payload = await self._get("/items/posts", params)
        posts = [transform_post(p) for p in payload.get("data") or []]
        total = (payload.get("meta") or {}).get("filter_count", len(posts))
        return posts, total

    async def get_post(
        self, slug: str, language: str | None = None,
    ) -> dict[str, Any] | None:
        params = {
            **self._published(language),
            "filter[slug][_eq]": slug,
            "fields": POST_FIELDS,
            "limit": 1,
        }
        payload = await self._get("/items/posts", params)
        data = payload.get("data") or []
        return transform_post(data[0]) if data else None

    async def featured_posts(
        self, language: str | None = None, limit: int = 3,
    ) -> list[dict[str, Any]]:
        params = {
            **self._published(language),
            "filter[is_featured][_eq]": "true",
            "fields": POST_FIELDS,
            "sort": "featured_order,-published_at",
            "limit": limit,
        }
        payload = await self._get("/items/posts", params)
        return [transform_post(p) for p in payload.get("data") or []]

    async def tags(
        self, language: str | None = None, limit: int = 20,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            "fields": "tags_id.name,tags_id.slug",
            "filter[posts_id][status][_eq]": "published",
            "limit": -1,
        }
        if language:
            params["filter[posts_id][language][_eq]"] = language
        payload = await self._get("/items/post_tags", params)
        return count_tags(payload.get("data") or [], limit)


def get_directus_client() -> DirectusClient:
    """FastAPI dependency."""
    return DirectusClient()

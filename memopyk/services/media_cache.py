# =============================================================================
# Media Cache — Disk Cache in Front of Supabase Storage
# =============================================================================
#
# Hero and gallery videos, and the static gallery images, live in a public
# Supabase bucket. Serving them from local disk avoids a storage round trip
# on every play:
#
#   GET /api/video-proxy?filename=X   (videos dir)
#   GET /api/image-proxy?filename=X   (images dir)
#     cached   → serve file                        (X-Delivery: HIT)
#     missing  → download into cache, then serve   (X-Delivery: MISS)
#
# Each directory has its own size budget (videos 1 GB, images 200 MB) and
# both share the file age limit (30 days). cleanup() first drops expired
# files, then the oldest files until the cache fits. It runs nightly from
# Celery beat and after each download; the file just downloaded is never
# evicted by that post-download pass.
# =============================================================================

from __future__ import annotations

import logging
import os
import tempfile
import time
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from urllib.parse import quote

import httpx

from memopyk.config import settings

logger = logging.getLogger(__name__)


class InvalidCacheFilename(ValueError):
    """Empty filename or one that would resolve outside the cache dir."""


class MediaNotFoundError(LookupError):
    """The upstream storage has no such file."""


def upstream_source(url: str) -> str:
    """Classify where a media URL points: supabase, local or other."""
    if "supabase.memopyk.org" in url or "supabase.co" in url:
        return "supabase"
    if url.startswith(("/", "./")) or "localhost" in url:
        return "local"
    return "other"


def delivery_headers(hit: bool, source_url: str, age_seconds: float | None = None) -> dict[str, str]:
    headers = {
        "X-Delivery": "HIT" if hit else "MISS",
        "X-Upstream": upstream_source(source_url),
        "X-Storage": "disk",
    }
    if hit and age_seconds is not None:
        headers["X-Cache-Age"] = str(int(age_seconds))
    return headers


class MediaCache:
    """
    Args:
        cache_dir: Directory for cached files (created on demand).
        max_bytes: Size budget enforced by cleanup().
        max_age_days: Files older than this are dropped by cleanup().
        upstream_base_url: Public bucket URL files are fetched from.
        clock: Time source (epoch seconds), injectable for tests.
        label: "video" or "image", used in log lines.
    """

    def __init__(
        self,
        cache_dir: str | Path,
        max_bytes: int,
        max_age_days: int,
        upstream_base_url: str,
        clock: Callable[[], float] = time.time,
        label: str = "video",
    ):
        self.cache_dir = Path(cache_dir)
        self.max_bytes = max_bytes
        self.max_age_seconds = max_age_days * 86400
        self.upstream_base_url = upstream_base_url.rstrip("/")
        self._clock = clock
        self.label = label

    # -- naming --------------------------------------------------------------

    @staticmethod
    def clean_filename(raw: str | None) -> str:
        """Trim and drop any query string: " a.mp4?v=2 " → "a.mp4"."""
        name = (raw or "").strip().split("?")[0]
        if not name:
            raise InvalidCacheFilename("filename is required")
        return name

    def path_for(self, filename: str) -> Path:
        name = self.clean_filename(filename)
        root = self.cache_dir.resolve()
        path = (root / name).resolve()
        if path.parent != root:
            raise InvalidCacheFilename(f"invalid filename: {filename!r}")
        return path

    def upstream_url(self, filename: str) -> str:
        return f"{self.upstream_base_url}/{quote(self.clean_filename(filename))}"

    # -- lookups -------------------------------------------------------------

    def cached_path(self, filename: str) -> Path | None:
        path = self.path_for(filename)
        return path if path.is_file() else None

    def age_seconds(self, path: Path) -> float:
        return max(0.0, self._clock() - path.stat().st_mtime)

    # -- downloads -----------------------------------------------------------

    async def fetch(
        self,
        filename: str,
        client: httpx.AsyncClient | None = None,
    ) -> Path:
        """
        Download `filename` into the cache, enforce the cache limits and
        return the file's path.

        Raises:
            MediaNotFoundError: upstream answered 404.
            httpx.HTTPError: any other transport or status failure.
        """
        path = self.path_for(filename)
        url = self.upstream_url(filename)
        self.cache_dir.mkdir(parents=True, exist_ok=True)

        async def _download(http: httpx.AsyncClient) -> None:
            async with http.stream("GET", url) as response:
                if response.status_code == 404:
                    raise MediaNotFoundError(filename)
                response.raise_for_status()
                fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, suffix=".part")
                try:
                    with os.fdopen(fd, "wb") as f:
                        async for chunk in response.aiter_bytes():
                            f.write(chunk)
                    os.replace(tmp_name, path)
                except BaseException:
                    Path(tmp_name).unlink(missing_ok=True)
                    raise

        if client is not None:
            await _download(client)
        else:
            async with httpx.AsyncClient(timeout=120, follow_redirects=True) as http:
                await _download(http)

        logger.info(
            "%s cached: %s (%d bytes)",
            self.label.capitalize(), path.name, path.stat().st_size,
        )
        self.cleanup(keep=path.name)
        return path

    # -- maintenance ---------------------------------------------------------

    def _files(self) -> list[Path]:
        if not self.cache_dir.is_dir():
            return []
        return [
            p for p in self.cache_dir.iterdir()
            if p.is_file() and not p.name.endswith(".part")
        ]

    def stats(self) -> dict[str, Any]:
        files = self._files()
        details = []
        total = 0
        for path in files:
            stat = path.stat()
            total += stat.st_size
            details.append({
                "filename": path.name,
                "size": stat.st_size,
                "lastModified": datetime.fromtimestamp(stat.st_mtime, UTC).isoformat(),
            })
        return {
            "fileCount": len(files),
            "totalSize": total,
            "sizeMB": f"{total / 1024 / 1024:.2f}",
            "files": details,
        }

    def clear(self) -> int:
        """Delete every cached file. Returns the number removed."""
        files = self._files()
        for path in files:
            path.unlink(missing_ok=True)
        logger.info("%s cache cleared: %d files", self.label.capitalize(), len(files))
        return len(files)

    def cleanup(self, keep: str | None = None) -> dict[str, Any]:
        """
        Drop expired files, then oldest files until under max_bytes.

        Args:
            keep: File name that must survive the size pass (the download
                that triggered this cleanup). It still counts towards the
                total.
        """
        now = self._clock()
        entries = sorted(
            ((p, p.stat()) for p in self._files()),
            key=lambda entry: entry[1].st_mtime,
        )

        removed: list[str] = []
        freed = 0
        kept = []
        for path, stat in entries:
            if path.name != keep and now - stat.st_mtime > self.max_age_seconds:
                path.unlink(missing_ok=True)
                removed.append(path.name)
                freed += stat.st_size
            else:
                kept.append((path, stat))

        total = sum(stat.st_size for _, stat in kept)
        for path, stat in kept:
            if total <= self.max_bytes:
                break
            if path.name == keep:
                continue
            path.unlink(missing_ok=True)
            removed.append(path.name)
            freed += stat.st_size
            total -= stat.st_size

        if removed:
            logger.info(
                "%s cache cleanup: removed %d files, freed %d bytes",
                self.label.capitalize(), len(removed), freed,
            )
        return {"removed": removed, "freedBytes": freed}


def get_video_cache() -> MediaCache:
    """FastAPI dependency."""
    return MediaCache(
        settings.video_cache_dir,
        settings.video_cache_max_bytes,
        settings.media_cache_max_age_days,
        settings.media_storage_base_url,
    )


def get_image_cache() -> MediaCache:
    """FastAPI dependency."""
    return MediaCache(
        settings.image_cache_dir,
        settings.image_cache_max_bytes,
        settings.media_cache_max_age_days,
        settings.media_storage_base_url,
        label="image",
    )

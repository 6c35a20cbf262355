# =============================================================================
# Unit Tests — Media Disk Cache
# =============================================================================

from __future__ import annotations

import asyncio
import os

import httpx
import pytest

from memopyk.services.media_cache import (
    InvalidCacheFilename,
    MediaCache,
    MediaNotFoundError,
    delivery_headers,
    upstream_source,
)

NOW = 1_700_000_000.0
DAY = 86400
BUCKET = "https://supabase.memopyk.org/storage/v1/object/public/memopyk-videos"


def _cache(tmp_path, max_bytes: int = 1000, max_age_days: int = 30) -> MediaCache:
    return MediaCache(tmp_path, max_bytes, max_age_days, BUCKET + "/", clock=lambda: NOW)


def _put(tmp_path, name: str, size: int, age_seconds: float):
    path = tmp_path / name
    path.write_bytes(b"x" * size)
    mtime = NOW - age_seconds
    os.utime(path, (mtime, mtime))
    return path


class TestNaming:
    def test_query_string_dropped(self, tmp_path):
        assert _cache(tmp_path).path_for(" hero.mp4?v=3 ") == (tmp_path / "hero.mp4").resolve()

    @pytest.mark.parametrize("name", ["", "  ", "../etc/passwd", "sub/dir.mp4"])
    def test_invalid_names(self, tmp_path, name):
        with pytest.raises(InvalidCacheFilename):
            _cache(tmp_path).path_for(name)

    def test_upstream_url_is_quoted(self, tmp_path):
        url = _cache(tmp_path).upstream_url("VideoHero Été.mp4")
        assert url == f"{BUCKET}/VideoHero%20%C3%89t%C3%A9.mp4"


class TestDeliveryHeaders:
    def test_hit_includes_age(self):
        headers = delivery_headers(True, BUCKET + "/a.mp4", 90.7)
        assert headers == {
            "X-Delivery": "HIT",
            "X-Upstream": "supabase",
            "X-Storage": "disk",
            "X-Cache-Age": "90",
        }

    def test_miss(self):
        assert delivery_headers(False, "https://cdn.example.com/a.mp4")["X-Delivery"] == "MISS"

    def test_upstream_source(self):
        assert upstream_source("https://abc.supabase.co/x") == "supabase"
        assert upstream_source("/videos/a.mp4") == "local"
        assert upstream_source("https://cdn.example.com/a.mp4") == "other"


class TestFetch:
    def test_downloads_into_cache(self, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            assert str(request.url) == f"{BUCKET}/hero.mp4"
            return httpx.Response(200, content=b"\x00\x01video")

        async def run():
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                return await _cache(tmp_path).fetch("hero.mp4", client=client)

        path = asyncio.run(run())
        assert path.read_bytes() == b"\x00\x01video"
        assert _cache(tmp_path).cached_path("hero.mp4") == path
        assert not list(tmp_path.glob("*.part"))

    def test_not_found(self, tmp_path):
        async def run():
            transport = httpx.MockTransport(lambda r: httpx.Response(404))
            async with httpx.AsyncClient(transport=transport) as client:
                await _cache(tmp_path).fetch("missing.mp4", client=client)

        with pytest.raises(MediaNotFoundError):
            asyncio.run(run())
        assert _cache(tmp_path).cached_path("missing.mp4") is None

    def test_upstream_error_leaves_no_partial_file(self, tmp_path):
        async def run():
            transport = httpx.MockTransport(lambda r: httpx.Response(503))
            async with httpx.AsyncClient(transport=transport) as client:
                await _cache(tmp_path).fetch("hero.mp4", client=client)

        with pytest.raises(httpx.HTTPStatusError):
            asyncio.run(run())
        assert list(tmp_path.iterdir()) == []


class TestMaintenance:
    def test_stats(self, tmp_path):
        _put(tmp_path, "a.mp4", 100, 10)
        _put(tmp_path, "b.mp4", 50, 10)
        stats = _cache(tmp_path).stats()
        assert stats["fileCount"] == 2
        assert stats["totalSize"] == 150
        assert {f["filename"] for f in stats["files"]} == {"a.mp4", "b.mp4"}

    def test_stats_without_dir(self, tmp_path):
        assert _cache(tmp_path / "absent").stats()["fileCount"] == 0

    def test_clear(self, tmp_path):
        _put(tmp_path, "a.mp4", 10, 0)
        _put(tmp_path, "b.mp4", 10, 0)
        assert _cache(tmp_path).clear() == 2
        assert list(tmp_path.iterdir()) == []

    def test_cleanup_drops_expired_first(self, tmp_path):
        _put(tmp_path, "old.mp4", 100, 31 * DAY)
        _put(tmp_path, "new.mp4", 100, DAY)

        result = _cache(tmp_path).cleanup()

        assert result == {"removed": ["old.mp4"], "freedBytes": 100}
        assert (tmp_path / "new.mp4").exists()

    def test_cleanup_evicts_oldest_until_under_budget(self, tmp_path):
        _put(tmp_path, "a.mp4", 400, 3 * DAY)
        _put(tmp_path, "b.mp4", 400, 2 * DAY)
        _put(tmp_path, "c.mp4", 400, DAY)

        result = _cache(tmp_path, max_bytes=1000).cleanup()

        assert result["removed"] == ["a.mp4"]
        assert sorted(p.name for p in tmp_path.iterdir()) == ["b.mp4", "c.mp4"]


class TestDownloadEnforcesLimits:
    def _fetch(self, cache, name: str, body: bytes):
        async def run():
            transport = httpx.MockTransport(lambda r: httpx.Response(200, content=body))
            async with httpx.AsyncClient(transport=transport) as client:
                return await cache.fetch(name, client=client)

        return asyncio.run(run())

    def test_oldest_evicted_after_download(self, tmp_path):
        _put(tmp_path, "older.mp4", 600, 3 * DAY)
        _put(tmp_path, "old.mp4", 600, 2 * DAY)

        self._fetch(_cache(tmp_path, max_bytes=1000), "hero.mp4", b"x" * 300)

        assert sorted(p.name for p in tmp_path.iterdir()) == ["hero.mp4", "old.mp4"]

    def test_expired_files_dropped_after_download(self, tmp_path):
        _put(tmp_path, "stale.mp4", 10, 31 * DAY)

        self._fetch(_cache(tmp_path), "hero.mp4", b"x" * 10)

        assert [p.name for p in tmp_path.iterdir()] == ["hero.mp4"]

    def test_new_file_survives_even_over_budget(self, tmp_path):
        _put(tmp_path, "a.mp4", 50, DAY)

        path = self._fetch(_cache(tmp_path, max_bytes=100), "big.mp4", b"x" * 300)

        assert path.exists()
        assert not (tmp_path / "a.mp4").exists()

    def test_cleanup_keep(self, tmp_path):
        _put(tmp_path, "a.mp4", 400, 3 * DAY)
        _put(tmp_path, "b.mp4", 400, 2 * DAY)

        result = _cache(tmp_path, max_bytes=500).cleanup(keep="a.mp4")

        assert result["removed"] == ["b.mp4"]


class TestImageProxyRoute:
    @pytest.fixture
    def client(self, tmp_path, monkeypatch):
        from fastapi.testclient import TestClient

        from memopyk.config import settings
        from memopyk.main import app
        from memopyk.services.media_cache import get_image_cache

        monkeypatch.setattr(settings, "audit_logging_enabled", False)
        app.dependency_overrides[get_image_cache] = lambda: MediaCache(
            tmp_path, 1000, 30, BUCKET, clock=lambda: NOW, label="image",
        )
        yield TestClient(app)
        app.dependency_overrides.clear()

    def test_cached_image_served(self, client, tmp_path):
        _put(tmp_path, "static_auto_1.jpg", 20, 120)

        response = client.get("/api/image-proxy", params={"filename": "static_auto_1.jpg"})

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/jpeg"
        assert response.headers["X-Delivery"] == "HIT"
        assert response.headers["X-Cache-Age"] == "120"

    def test_invalid_filename(self, client):
        response = client.get("/api/image-proxy", params={"filename": "../secret.jpg"})
        assert response.status_code == 400

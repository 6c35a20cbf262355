# =============================================================================
# Tests — Directus Blog Client and /api/blog Routes
# =============================================================================

from __future__ import annotations

import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient

from memopyk.config import settings
from memopyk.main import app
from memopyk.services.directus import (
    DirectusClient,
    DirectusError,
    asset_url,
    count_tags,
    get_directus_client,
    transform_post,
)

CMS = "https://cms.example.org"

POST = {
    "id": 7,
    "title": "Numériser ses Super 8",
    "slug": "numeriser-super-8",
    "language": "fr-FR",
    "image": "3b1c-uuid",
    "tags": [
        {"tags_id": {"name": "Film", "slug": "film"}},
        {"tags_id": None},
    ],
}


def _client(handler, token: str = "") -> DirectusClient:
    return DirectusClient(CMS, token=token, transport=httpx.MockTransport(handler))


class TestAssetUrl:
    def test_file_id_served_as_webp(self):
        assert asset_url("3b1c-uuid", CMS) == f"{CMS}/assets/3b1c-uuid?format=webp"

    def test_webp_kept(self):
        assert asset_url("/assets/cover.webp", CMS) == f"{CMS}/assets/cover.webp"

    def test_absolute_url_passthrough(self):
        assert asset_url("https://img.example.com/a.jpg", CMS) == "https://img.example.com/a.jpg"

    def test_file_object_and_empty(self):
        assert asset_url({"id": "abc"}, CMS).startswith(f"{CMS}/assets/abc")
        assert asset_url(None, CMS) == ""


class TestTransforms:
    def test_transform_post(self, monkeypatch):
        monkeypatch.setattr(settings, "directus_url", CMS)
        post = transform_post(POST)
        assert post["image"] == f"{CMS}/assets/3b1c-uuid?format=webp"
        assert post["tags"] == [{"name": "Film", "slug": "film"}]
        assert post["title"] == POST["title"]

    def test_count_tags(self):
        rows = [
            {"tags_id": {"name": "Film", "slug": "film"}},
            {"tags_id": {"name": "Photo", "slug": "photo"}},
            {"tags_id": {"name": "Film", "slug": "film"}},
            {"tags_id": None},
        ]
        assert count_tags(rows, 1) == [{"name": "Film", "slug": "film", "count": 2}]


class TestDirectusClient:
    def test_list_posts_filters_and_total(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"data": [POST], "meta": {"filter_count": 12}})

        posts, total = asyncio.run(
            _client(handler, token="dtok").list_posts("fr-FR", limit=5, offset=10, search="super"),
        )

        assert total == 12
        assert posts[0]["slug"] == "numeriser-super-8"
        assert seen["path"] == "/items/posts"
        assert seen["params"]["filter[status][_eq]"] == "published"
        assert seen["params"]["filter[language][_eq]"] == "fr-FR"
        assert seen["params"]["sort"] == "-published_at"
        assert seen["params"]["offset"] == "10"
        assert seen["params"]["search"] == "super"
        assert seen["auth"] == "Bearer dtok"

    def test_get_post_missing(self):
        client = _client(lambda r: httpx.Response(200, json={"data": []}))
        assert asyncio.run(client.get_post("nope")) is None

    def test_http_error_wrapped(self):
        client = _client(lambda r: httpx.Response(503))
        with pytest.raises(DirectusError):
            asyncio.run(client.featured_posts())

    def test_html_body_wrapped(self):
        client = _client(lambda r: httpx.Response(
            200, text="<html>Bad gateway</html>", headers={"Content-Type": "text/html"},
        ))
        with pytest.raises(DirectusError, match="invalid JSON"):
            asyncio.run(client.list_posts())

    def test_non_object_json_wrapped(self):
        client = _client(lambda r: httpx.Response(200, json=["unexpected"]))
        with pytest.raises(DirectusError):
            asyncio.run(client.get_post("numeriser-super-8"))


class TestBlogRoutes:
    def _app_client(self, monkeypatch, handler) -> TestClient:
        monkeypatch.setattr(settings, "audit_logging_enabled", False)
        app.dependency_overrides[get_directus_client] = lambda: _client(handler)
        return TestClient(app)

    def teardown_method(self):
        app.dependency_overrides.clear()

    def test_list(self, monkeypatch):
        client = self._app_client(
            monkeypatch,
            lambda r: httpx.Response(200, json={"data": [POST], "meta": {"filter_count": 1}}),
        )
        body = client.get("/api/blog/posts", params={"limit": 5}).json()
        assert body["success"] is True
        assert body["total"] == 1
        assert body["limit"] == 5
        assert body["offset"] == 0

    def test_search_is_not_a_slug(self, monkeypatch):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["search"] == "vhs"
            return httpx.Response(200, json={"data": [], "meta": {"filter_count": 0}})

        client = self._app_client(monkeypatch, handler)
        assert client.get("/api/blog/posts/search", params={"q": "vhs"}).json()["total"] == 0

    def test_post_not_found(self, monkeypatch):
        client = self._app_client(monkeypatch, lambda r: httpx.Response(200, json={"data": []}))
        response = client.get("/api/blog/posts/unknown")
        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Post not found"}

    def test_non_json_upstream_is_502(self, monkeypatch):
        client = self._app_client(
            monkeypatch, lambda r: httpx.Response(200, text="<html>maintenance</html>"),
        )
        response = client.get("/api/blog/posts")
        assert response.status_code == 502
        assert response.json() == {"success": False, "error": "Blog service unavailable"}

    def test_upstream_failure(self, monkeypatch):
        client = self._app_client(monkeypatch, lambda r: httpx.Response(500))
        response = client.get("/api/blog/tags")
        assert response.status_code == 502
        assert response.json() == {"success": False, "error": "Blog service unavailable"}

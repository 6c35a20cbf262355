# =============================================================================
# Unit + API Tests — SEO Scoring, Validation, Report, Sitemap, Redirects
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Any
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from memopyk.api.seo import should_check_redirect
from memopyk.config import settings
from memopyk.db.engine import get_async_session
from memopyk.db.models import SeoRedirect
from memopyk.main import app
from memopyk.services.seo import (
    GREAT_JOB,
    build_report,
    build_robots_txt,
    build_sitemap,
    calculate_seo_score,
    generate_recommendations,
    localized_meta,
    validate_meta_tags,
)

TODAY = date(2025, 3, 14)

TITLE_EN = "MEMOPYK | Turn your family videos into films"
TITLE_FR = "MEMOPYK | Vos vidéos de famille en vrais films"
DESC_EN = "x" * 140
DESC_FR = "y" * 150


def _page(**overrides) -> dict:
    page = {
        "id": 1,
        "page": "gallery",
        "url_slug_en": "gallery",
        "url_slug_fr": "galerie",
        "meta_title_en": TITLE_EN,
        "meta_title_fr": TITLE_FR,
        "meta_description_en": DESC_EN,
        "meta_description_fr": DESC_FR,
        "meta_keywords_en": "video, film, family",
        "meta_keywords_fr": "vidéo, film, famille, souvenirs",
        "og_title_en": "Gallery",
        "og_title_fr": "Galerie",
        "og_description_en": "See our films",
        "og_description_fr": "Nos films",
        "og_image_url": "https://memopyk.com/og.jpg",
        "twitter_title_en": "Gallery",
        "twitter_title_fr": "Galerie",
        "twitter_image_url": "https://memopyk.com/tw.jpg",
        "canonical_url": "https://memopyk.com/en-US/gallery",
        "robots_index": True,
        "robots_follow": True,
        "structured_data": {"@type": "WebPage"},
        "is_active": True,
    }
    page.update(overrides)
    return page


class TestSeoScore:
    def test_complete_page_scores_100(self):
        assert calculate_seo_score(_page()) == 100

    def test_empty_page_scores_zero(self):
        assert calculate_seo_score({}) == 0

    def test_one_language_missing_drops_both(self):
        assert calculate_seo_score(_page(meta_title_fr="")) == 80

    def test_short_title_loses_its_points(self):
        assert calculate_seo_score(_page(meta_title_en="Too short")) == 90

    def test_keyword_count_counts_separators(self):
        # "a, b," splits into three items
        assert calculate_seo_score(_page(meta_keywords_en="a, b,")) == 100
        assert calculate_seo_score(_page(meta_keywords_en="a, b")) == 93

    def test_slug_with_space(self):
        assert calculate_seo_score(_page(url_slug_en="our gallery")) == 95

    def test_robots_needs_index_and_follow(self):
        assert calculate_seo_score(_page(robots_follow=False)) == 96

    def test_empty_structured_data_counts_as_present(self):
        assert calculate_seo_score(_page(structured_data={})) == 100
        assert calculate_seo_score(_page(structured_data=None)) == 97


class TestValidateMetaTags:
    def test_clean_page(self):
        assert validate_meta_tags(_page()) == {"score": 100, "issues": []}

    def test_collects_issues(self):
        result = validate_meta_tags(_page(
            meta_description_fr=None,
            url_slug_fr="notre galerie",
            og_image_url="",
        ))
        assert result["score"] == 65
        assert result["issues"] == [
            "Missing meta descriptions for one or both languages",
            "French URL slug should not contain spaces",
            "Missing Open Graph image for social sharing",
        ]

    def test_everything_missing(self):
        result = validate_meta_tags({"url_slug_en": "a b", "url_slug_fr": "c d"})
        assert result["score"] == 40


class TestRecommendations:
    def test_great_job_when_nothing_to_fix(self):
        assert generate_recommendations(95, [_page()], []) == [GREAT_JOB]

    def test_low_score(self):
        recs = generate_recommendations(40, [_page(meta_keywords_fr="")], [])
        assert len(recs) == 3
        assert recs[2] == "Add meta keywords to 1 pages for better targeting"

    def test_empty_structured_data_needs_no_recommendation(self):
        assert generate_recommendations(95, [_page(structured_data={})], []) == [
            GREAT_JOB,
        ]
        recs = generate_recommendations(95, [_page(structured_data=None)], [])
        assert recs == [
            "Add structured data (JSON-LD) to improve rich snippet appearance",
        ]

    def test_many_inactive_redirects(self):
        redirects = [{"is_active": False}] * 6
        recs = generate_recommendations(90, [_page()], redirects)
        assert recs == [
            "Review and clean up inactive redirects to improve site performance",
        ]


class TestBuildReport:
    def test_overview(self):
        pages = [
            _page(id=1, seo_score=90),
            _page(id=2, seo_score=61),
            _page(id=3, seo_score=10, is_active=False),
        ]
        redirects = [
            {"from_path": f"/old-{i}", "to_path": "/", "hit_count": i, "is_active": i % 2 == 0}
            for i in range(7)
        ]
        logs = [{"action": "update", "field": "meta_title_en", "page_id": 1}] * 12

        report = build_report(pages, redirects, logs)

        assert report["overview"] == {
            "totalPages": 3,
            "activePages": 2,
            "averageSeoScore": 76,
            "totalRedirects": 7,
            "activeRedirects": 4,
            "totalRedirectHits": 21,
        }
        assert [r["hits"] for r in report["topRedirects"]] == [6, 5, 4, 3, 2]
        assert len(report["recentActivity"]) == 10
        assert len(report["pageScores"]) == 3

    def test_no_pages(self):
        assert build_report([], [], [])["overview"]["averageSeoScore"] == 0


class TestLocalizedMeta:
    def test_french(self):
        meta = localized_meta(_page(og_title_fr=None), "fr-FR")
        assert meta["language"] == "fr"
        assert meta["slug"] == "galerie"
        assert meta["ogTitle"] == TITLE_FR
        assert meta["robots"] == "index, follow"

    def test_robots_flags(self):
        meta = localized_meta(
            _page(robots_index=False, robots_noarchive=True), "en",
        )
        assert meta["robots"] == "noindex, follow, noarchive"


class TestSitemap:
    def test_home_and_active_pages(self):
        xml = build_sitemap(
            [
                _page(updated_at=datetime(2025, 1, 2, 8, 0, tzinfo=UTC), priority=0.8),
                _page(page="hidden", url_slug_en="hidden", is_active=False),
            ],
            "https://memopyk.com/",
            today=TODAY,
        )

        assert xml.count("<url>") == 4
        assert "<loc>https://memopyk.com/en-US</loc>" in xml
        assert "<loc>https://memopyk.com/fr-FR/galerie</loc>" in xml
        assert "<lastmod>2025-01-02</lastmod>" in xml
        assert "<priority>0.8</priority>" in xml
        assert "hidden" not in xml
        assert 'hreflang="x-default" href="https://memopyk.com/en-US/gallery"' in xml

    def test_slug_falls_back_to_page_key(self):
        xml = build_sitemap([_page(url_slug_en=None)], "https://memopyk.com", TODAY)
        assert "<loc>https://memopyk.com/en-US/gallery</loc>" in xml
        assert "<changefreq>monthly</changefreq>" in xml

    def test_escapes_loc(self):
        xml = build_sitemap([_page(url_slug_en="a&b")], "https://memopyk.com", TODAY)
        assert "/en-US/a&amp;b</loc>" in xml


class TestRobotsTxt:
    def test_default_mentions_sitemap(self):
        text = build_robots_txt(None, "https://memopyk.com/")
        assert "Sitemap: https://memopyk.com/sitemap.xml" in text
        assert "Disallow: /api" in text

    def test_custom_wins(self):
        assert build_robots_txt("User-agent: *\nDisallow: /", "x") == "User-agent: *\nDisallow: /"


class TestRedirectFilter:
    @pytest.mark.parametrize("path", ["/old-page", "/fr-FR/ancienne-page", "/"])
    def test_site_paths_checked(self, path):
        assert should_check_redirect("GET", path)

    @pytest.mark.parametrize(
        "path", ["/api/faqs", "/docs", "/health", "/sitemap.xml", "/robots.txt"],
    )
    def test_skipped_paths(self, path):
        assert not should_check_redirect("GET", path)

    def test_only_get(self):
        assert not should_check_redirect("HEAD", "/old-page")
        assert not should_check_redirect("POST", "/old-page")


# ---------------------------------------------------------------------------
# Admin redirect writes
# ---------------------------------------------------------------------------


@dataclass
class FakeRedirectSession:
    """One stored redirect; `taken_by` is the id found for a from_path lookup."""

    redirect: SeoRedirect
    taken_by: int | None = None
    commits: int = 0

    async def get(self, model: Any, ident: int) -> Any:
        return self.redirect if ident == self.redirect.id else None

    async def execute(self, statement: Any) -> Any:
        result = MagicMock()
        result.scalar_one_or_none.return_value = self.taken_by
        return result

    def add(self, obj: Any) -> None:
        pass

    async def commit(self) -> None:
        self.commits += 1

    async def refresh(self, obj: Any) -> None:
        pass

    async def rollback(self) -> None:
        pass


def _redirect() -> SeoRedirect:
    return SeoRedirect(
        id=1, from_path="/old", to_path="/new", redirect_type=301,
        is_active=True, description=None, hit_count=0, last_hit=None,
        created_at=datetime(2025, 3, 1, tzinfo=UTC),
    )


@pytest.fixture
def seo_client(monkeypatch):
    def _make(session: FakeRedirectSession) -> TestClient:
        async def _session():
            yield session

        monkeypatch.setattr(settings, "auth_enabled", False)
        monkeypatch.setattr(settings, "audit_logging_enabled", False)
        app.dependency_overrides[get_async_session] = _session
        return TestClient(app)

    yield _make
    app.dependency_overrides.clear()


class TestUpdateRedirect:
    def test_null_redirect_type_is_422(self, seo_client):
        session = FakeRedirectSession(redirect=_redirect())
        response = seo_client(session).patch(
            "/api/admin/seo/redirects/1", json={"redirect_type": None},
        )
        assert response.status_code == 422
        assert session.commits == 0
        assert session.redirect.redirect_type == 301

    def test_null_description_clears_it(self, seo_client):
        redirect = _redirect()
        redirect.description = "campaign"
        session = FakeRedirectSession(redirect=redirect)
        response = seo_client(session).patch(
            "/api/admin/seo/redirects/1", json={"description": None},
        )
        assert response.status_code == 200
        assert session.redirect.description is None

    def test_taken_from_path_is_409(self, seo_client):
        session = FakeRedirectSession(redirect=_redirect(), taken_by=2)
        response = seo_client(session).patch(
            "/api/admin/seo/redirects/1", json={"from_path": "/other"},
        )
        assert response.status_code == 409
        assert session.commits == 0

    def test_unknown_redirect_is_404(self, seo_client):
        response = seo_client(FakeRedirectSession(redirect=_redirect())).patch(
            "/api/admin/seo/redirects/7", json={"is_active": False},
        )
        assert response.status_code == 404

    def test_create_with_taken_from_path_is_409(self, seo_client):
        session = FakeRedirectSession(redirect=_redirect(), taken_by=1)
        response = seo_client(session).post(
            "/api/admin/seo/redirects", json={"from_path": "/old", "to_path": "/x"},
        )
        assert response.status_code == 409
        assert session.commits == 0

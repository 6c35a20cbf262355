# =============================================================================
# SEO Service — Scoring, Validation, Sitemap, robots.txt, Report
# =============================================================================
#
# Pure functions over page mappings (the columns of `seo_settings` as dict
# keys). Routers convert ORM rows with `row_to_dict()` and persist whatever
# these functions compute.
#
# SCORE BREAKDOWN (max 100):
#   meta titles 30-60 chars          10 EN + 10 FR   (both present)
#   meta descriptions 120-160 chars  10 EN + 10 FR   (both present)
#   keyword count 3-10                7 EN +  8 FR   (both present)
#   Open Graph title/desc/image       5 +  5 +  5
#   Twitter title/image               5 +  5
#   canonical / robots / JSON-LD      3 +  4 +  3
#   URL slugs <= 60, no spaces        5 EN +  5 FR   (both present)
# =============================================================================

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import UTC, date, datetime
from typing import Any
from xml.sax.saxutils import escape, quoteattr

DEFAULT_ROBOTS_TXT = """User-agent: *
Allow: /
Sitemap: {base_url}/sitemap.xml

# Block admin areas
Disallow: /admin
Disallow: /api

# Allow important directories
Allow: /gallery
Allow: /contact"""

GREAT_JOB = (
    "Great job! Your SEO setup is well-optimized. "
    "Consider regular content updates."
)


def row_to_dict(row: Any) -> dict[str, Any]:
    """ORM row → {column: value}."""
    return {column.key: getattr(row, column.key) for column in row.__table__.columns}


def _both(page: Mapping[str, Any], field: str) -> tuple[str, str] | None:
    en, fr = page.get(f"{field}_en"), page.get(f"{field}_fr")
    if en and fr:
        return en, fr
    return None


def _in_range(text: str, low: int, high: int) -> bool:
    return low <= len(text) <= high


# ---------------------------------------------------------------------------
# Scoring & validation
# ---------------------------------------------------------------------------


def calculate_seo_score(page: Mapping[str, Any]) -> int:
    score = 0

    titles = _both(page, "meta_title")
    if titles:
        score += 10 if _in_range(titles[0], 30, 60) else 0
        score += 10 if _in_range(titles[1], 30, 60) else 0

    descriptions = _both(page, "meta_description")
    if descriptions:
        score += 10 if _in_range(descriptions[0], 120, 160) else 0
        score += 10 if _in_range(descriptions[1], 120, 160) else 0

    keywords = _both(page, "meta_keywords")
    if keywords:
        # Count separators, not non-empty terms: "a, b," is three keywords
        en_count = len(keywords[0].split(","))
        fr_count = len(keywords[1].split(","))
        score += 7 if 3 <= en_count <= 10 else 0
        score += 8 if 3 <= fr_count <= 10 else 0

    if _both(page, "og_title"):
        score += 5
    if _both(page, "og_description"):
        score += 5
    if page.get("og_image_url"):
        score += 5

    if _both(page, "twitter_title"):
        score += 5
    if page.get("twitter_image_url"):
        score += 5

    if page.get("canonical_url"):
        score += 3
    if page.get("robots_index") and page.get("robots_follow"):
        score += 4
    if page.get("structured_data") is not None:
        score += 3

    slugs = _both(page, "url_slug")
    if slugs:
        for slug in slugs:
            if len(slug) <= 60 and " " not in slug:
                score += 5

    return score


def validate_meta_tags(page: Mapping[str, Any]) -> dict[str, Any]:
    """Check a draft page before saving: {score, issues}."""
    issues = []
    score = 100

    titles = _both(page, "meta_title")
    if not titles:
        issues.append("Missing meta titles for one or both languages")
        score -= 20
    else:
        if not _in_range(titles[0], 30, 60):
            issues.append("English meta title should be 30-60 characters")
            score -= 10
        if not _in_range(titles[1], 30, 60):
            issues.append("French meta title should be 30-60 characters")
            score -= 10

    descriptions = _both(page, "meta_description")
    if not descriptions:
        issues.append("Missing meta descriptions for one or both languages")
        score -= 20
    else:
        if not _in_range(descriptions[0], 120, 160):
            issues.append("English meta description should be 120-160 characters")
            score -= 10
        if not _in_range(descriptions[1], 120, 160):
            issues.append("French meta description should be 120-160 characters")
            score -= 10

    if " " in (page.get("url_slug_en") or ""):
        issues.append("English URL slug should not contain spaces")
        score -= 5
    if " " in (page.get("url_slug_fr") or ""):
        issues.append("French URL slug should not contain spaces")
        score -= 5

    if not page.get("og_image_url"):
        issues.append("Missing Open Graph image for social sharing")
        score -= 10

    return {"score": max(0, score), "issues": issues}


def generate_recommendations(
    average_score: int,
    pages: list[Mapping[str, Any]],
    redirects: list[Mapping[str, Any]],
) -> list[str]:
    recommendations = []

    if average_score < 70:
        recommendations.append(
            "Improve meta titles and descriptions across pages for better "
            "search visibility"
        )
    if average_score < 50:
        recommendations.append(
            "Add Open Graph and Twitter Card metadata for social media "
            "optimization"
        )

    missing_keywords = [
        p for p in pages
        if not p.get("meta_keywords_en") or not p.get("meta_keywords_fr")
    ]
    if missing_keywords:
        recommendations.append(
            f"Add meta keywords to {len(missing_keywords)} pages for better "
            "targeting"
        )

    inactive_redirects = [r for r in redirects if not r.get("is_active")]
    if len(inactive_redirects) > 5:
        recommendations.append(
            "Review and clean up inactive redirects to improve site performance"
        )

    if any(p.get("structured_data") is None for p in pages):
        recommendations.append(
            "Add structured data (JSON-LD) to improve rich snippet appearance"
        )

    return recommendations or [GREAT_JOB]


def build_report(
    pages: list[Mapping[str, Any]],
    redirects: list[Mapping[str, Any]],
    audit_logs: list[Mapping[str, Any]],
) -> dict[str, Any]:
    """
    Admin dashboard report.

    `pages` must carry freshly computed `seo_score` values; the average is
    taken over active pages only.
    """
    active_scores = [p.get("seo_score") or 0 for p in pages if p.get("is_active")]
    average = round(sum(active_scores) / len(active_scores)) if active_scores else 0

    top_redirects = sorted(
        redirects, key=lambda r: r.get("hit_count") or 0, reverse=True,
    )[:5]

    return {
        "overview": {
            "totalPages": len(pages),
            "activePages": len(active_scores),
            "averageSeoScore": average,
            "totalRedirects": len(redirects),
            "activeRedirects": sum(1 for r in redirects if r.get("is_active")),
            "totalRedirectHits": sum(r.get("hit_count") or 0 for r in redirects),
        },
        "pageScores": [
            {
                "id": p.get("id"),
                "page": p.get("page"),
                "score": p.get("seo_score") or 0,
                "isActive": p.get("is_active"),
                "lastUpdated": p.get("updated_at"),
            }
            for p in pages
        ],
        "topRedirects": [
            {
                "fromPath": r.get("from_path"),
                "toPath": r.get("to_path"),
                "hits": r.get("hit_count") or 0,
                "lastHit": r.get("last_hit"),
            }
            for r in top_redirects
        ],
        "recentActivity": [
            {
                "action": log.get("action"),
                "field": log.get("field"),
                "page": log.get("page_id"),
                "timestamp": log.get("created_at"),
                "user": log.get("admin_user"),
            }
            for log in audit_logs[:10]
        ],
        "recommendations": generate_recommendations(average, pages, redirects),
    }


def localized_meta(page: Mapping[str, Any], language: str) -> dict[str, Any]:
    """Meta block for one language, as the SPA's <head> manager reads it."""
    lang = "fr" if language.lower().startswith("fr") else "en"
    return {
        "page": page.get("page"),
        "language": lang,
        "slug": page.get(f"url_slug_{lang}"),
        "title": page.get(f"meta_title_{lang}"),
        "description": page.get(f"meta_description_{lang}"),
        "keywords": page.get(f"meta_keywords_{lang}"),
        "ogTitle": page.get(f"og_title_{lang}") or page.get(f"meta_title_{lang}"),
        "ogDescription": (
            page.get(f"og_description_{lang}")
            or page.get(f"meta_description_{lang}")
        ),
        "ogImage": page.get("og_image_url"),
        "ogType": page.get("og_type"),
        "twitterCard": page.get("twitter_card"),
        "twitterTitle": page.get(f"twitter_title_{lang}"),
        "twitterDescription": page.get(f"twitter_description_{lang}"),
        "twitterImage": page.get("twitter_image_url"),
        "canonicalUrl": page.get("canonical_url"),
        "robots": ", ".join([
            "index" if page.get("robots_index", True) else "noindex",
            "follow" if page.get("robots_follow", True) else "nofollow",
            *(["noarchive"] if page.get("robots_noarchive") else []),
            *(["nosnippet"] if page.get("robots_nosnippet") else []),
        ]),
        "customMetaTags": page.get("custom_meta_tags"),
        "structuredData": page.get("structured_data"),
    }


# ---------------------------------------------------------------------------
# sitemap.xml & robots.txt
# ---------------------------------------------------------------------------


def _lastmod(value: Any, today: date) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, str) and value:
        return value.split("T")[0]
    return today.isoformat()


def _url_entry(
    loc: str,
    lastmod: str,
    changefreq: str,
    priority: str,
    fr_url: str,
    en_url: str,
) -> str:
    return (
        "\n  <url>"
        f"\n    <loc>{escape(loc)}</loc>"
        f"\n    <lastmod>{lastmod}</lastmod>"
        f"\n    <changefreq>{changefreq}</changefreq>"
        f"\n    <priority>{priority}</priority>"
        f'\n    <xhtml:link rel="alternate" hreflang="fr-FR" href={quoteattr(fr_url)}/>'
        f'\n    <xhtml:link rel="alternate" hreflang="en-US" href={quoteattr(en_url)}/>'
        f'\n    <xhtml:link rel="alternate" hreflang="x-default" href={quoteattr(en_url)}/>'
        "\n  </url>"
    )


def build_sitemap(
    pages: Iterable[Mapping[str, Any]],
    base_url: str,
    today: date | None = None,
) -> str:
    """
    Sitemap with both homepage locales plus an EN and an FR URL for every
    active page, each listing its hreflang alternates (x-default = EN).
    """
    today = today or datetime.now(UTC).date()
    base_url = base_url.rstrip("/")
    home_en, home_fr = f"{base_url}/en-US", f"{base_url}/fr-FR"

    parts = [
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9" '
        'xmlns:xhtml="http://www.w3.org/1999/xhtml">',
        _url_entry(home_en, today.isoformat(), "weekly", "1.0", home_fr, home_en),
        _url_entry(home_fr, today.isoformat(), "weekly", "1.0", home_fr, home_en),
    ]

    for page in pages:
        if not page.get("is_active"):
            continue
        en_url = f"{home_en}/{page.get('url_slug_en') or page.get('page')}"
        fr_url = f"{home_fr}/{page.get('url_slug_fr') or page.get('page')}"
        lastmod = _lastmod(page.get("updated_at"), today)
        changefreq = page.get("change_freq") or "monthly"
        priority = str(page.get("priority") or 0.5)
        parts.append(_url_entry(en_url, lastmod, changefreq, priority, fr_url, en_url))
        parts.append(_url_entry(fr_url, lastmod, changefreq, priority, fr_url, en_url))

    parts.append("\n</urlset>")
    return "".join(parts)


def build_robots_txt(custom: str | None, base_url: str) -> str:
    if custom:
        return custom
    return DEFAULT_ROBOTS_TXT.format(base_url=base_url.rstrip("/"))

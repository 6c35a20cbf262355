# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# SCHEMA OVERVIEW:
#
#   partners                 directory entries + intake submissions
#   contacts                 contact form leads
#   faq_sections ──1:N──▶ faqs
#   seo_settings             per-page meta (FR/EN), scored 0-100
#   seo_redirects            301/302 rules with hit counters
#   seo_audit_logs           field-level change history for seo_settings
#   seo_global_settings      single row: robots.txt override, defaults
#   analytics_events ──1:N──▶ analytics_conversions
#   analytics_daily_summary  one row per day
#   performance_metrics      Core Web Vitals samples
#   performance_daily_summary  one row per (day, page_path)
#   analytics_exclusions     IP/CIDR ranges never tracked
#   api_keys                 admin bearer keys (SHA-256 hashed)
#   audit_logs               admin request trail
#
# NOTES:
# - Partner list fields (photo_formats, delivery, ...) are ", "-joined
#   strings. The JSON mirror and the xlsx export use the same shape.
# - lat/lng are NUMERIC(10,7) read back as float (asdecimal=False) so rows
#   serialize to JSON without Decimal handling.
# - JSONB columns hold free-form payloads (structured data, extra event
#   params) that have no fixed schema.
# =============================================================================

import enum
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class for all ORM models."""

    pass


class PartnerStatus(str, enum.Enum):
    """
    Moderation state of a partner entry.

    Intake submissions start PENDING; TSV imports are APPROVED directly.
    Only APPROVED + is_active + show_on_map entries appear on the map.
    """

    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


# ---------------------------------------------------------------------------
# Partners
# ---------------------------------------------------------------------------


class Partner(Base):
    """A digitization business listed (or asking to be listed) in the directory."""

    __tablename__ = "partners"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True,
    )

    # Submission time as reported by the source (intake, TSV, manual)
    timestamp: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    partner_type: Mapped[str] = mapped_column(
        String(50), nullable=False, default="digitization",
    )
    partner_name: Mapped[str] = mapped_column(String(200), nullable=False)

    email: Mapped[str] = mapped_column(String(320), nullable=False, default="")
    email_public: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True,
    )
    phone: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    phone_public: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    website: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    address: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    address_line2: Mapped[str] = mapped_column(
        String(300), nullable=False, default="",
    )
    city: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    postal_code: Mapped[str] = mapped_column(
        String(20), nullable=False, default="",
    )
    # ISO 3166-1 alpha-2
    country: Mapped[str] = mapped_column(String(2), nullable=False, default="")

    photo_formats: Mapped[str] = mapped_column(Text, nullable=False, default="")
    other_photo: Mapped[str] = mapped_column(Text, nullable=False, default="")
    film_formats: Mapped[str] = mapped_column(Text, nullable=False, default="")
    other_film: Mapped[str] = mapped_column(Text, nullable=False, default="")
    video_cassettes: Mapped[str] = mapped_column(
        Text, nullable=False, default="",
    )
    other_video: Mapped[str] = mapped_column(Text, nullable=False, default="")
    delivery: Mapped[str] = mapped_column(Text, nullable=False, default="")
    other_delivery: Mapped[str] = mapped_column(
        Text, nullable=False, default="",
    )
    public_description: Mapped[str] = mapped_column(
        Text, nullable=False, default="",
    )

    consent: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PartnerStatus.PENDING.value,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    show_on_map: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )

    lat: Mapped[float | None] = mapped_column(
        Numeric(10, 7, asdecimal=False), nullable=True,
    )
    lng: Mapped[float | None] = mapped_column(
        Numeric(10, 7, asdecimal=False), nullable=True,
    )
    slug: Mapped[str] = mapped_column(String(200), nullable=False, default="")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<Partner(id={self.id}, name='{self.partner_name}', "
            f"status='{self.status}')>"
        )


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------


class Contact(Base):
    """A contact-form lead."""

    __tablename__ = "contacts"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    subject: Mapped[str | None] = mapped_column(String(300), nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    package: Mapped[str | None] = mapped_column(String(100), nullable=True)
    preferred_contact: Mapped[str | None] = mapped_column(
        String(20), nullable=True,
    )
    # new → contacted → closed
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="new",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


# ---------------------------------------------------------------------------
# FAQs
# ---------------------------------------------------------------------------


class FaqSection(Base):
    """A titled group of FAQs (e.g. "pricing", "process")."""

    __tablename__ = "faq_sections"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True,
    )
    key: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    name_en: Mapped[str] = mapped_column(String(200), nullable=False)
    name_fr: Mapped[str] = mapped_column(String(200), nullable=False)
    order_index: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True,
    )

    faqs: Mapped[list["Faq"]] = relationship(
        "Faq",
        back_populates="section",
        cascade="all, delete-orphan",
        order_by="Faq.order_index",
    )


class Faq(Base):
    """A bilingual question/answer pair, ordered within its section."""

    __tablename__ = "faqs"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True,
    )
    section_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("faq_sections.id", ondelete="CASCADE"),
        nullable=False,
    )
    question_en: Mapped[str] = mapped_column(Text, nullable=False)
    question_fr: Mapped[str] = mapped_column(Text, nullable=False)
    answer_en: Mapped[str] = mapped_column(Text, nullable=False)
    answer_fr: Mapped[str] = mapped_column(Text, nullable=False)
    order_index: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True,
    )

    section: Mapped["FaqSection"] = relationship(
        "FaqSection", back_populates="faqs",
    )


# ---------------------------------------------------------------------------
# SEO
# ---------------------------------------------------------------------------


class SeoSettings(Base):
    """Bilingual meta configuration for one site page."""

    __tablename__ = "seo_settings"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True,
    )
    # Page identifier, e.g. "home", "gallery", "contact"
    page: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    url_slug_en: Mapped[str | None] = mapped_column(String(200), nullable=True)
    url_slug_fr: Mapped[str | None] = mapped_column(String(200), nullable=True)

    meta_title_en: Mapped[str | None] = mapped_column(Text, nullable=True)
    meta_title_fr: Mapped[str | None] = mapped_column(Text, nullable=True)
    meta_description_en: Mapped[str | None] = mapped_column(Text, nullable=True)
    meta_description_fr: Mapped[str | None] = mapped_column(Text, nullable=True)
    meta_keywords_en: Mapped[str | None] = mapped_column(Text, nullable=True)
    meta_keywords_fr: Mapped[str | None] = mapped_column(Text, nullable=True)

    og_title_en: Mapped[str | None] = mapped_column(Text, nullable=True)
    og_title_fr: Mapped[str | None] = mapped_column(Text, nullable=True)
    og_description_en: Mapped[str | None] = mapped_column(Text, nullable=True)
    og_description_fr: Mapped[str | None] = mapped_column(Text, nullable=True)
    og_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    og_type: Mapped[str] = mapped_column(
        String(50), nullable=False, default="website",
    )

    twitter_card: Mapped[str] = mapped_column(
        String(50), nullable=False, default="summary_large_image",
    )
    twitter_title_en: Mapped[str | None] = mapped_column(Text, nullable=True)
    twitter_title_fr: Mapped[str | None] = mapped_column(Text, nullable=True)
    twitter_description_en: Mapped[str | None] = mapped_column(
        Text, nullable=True,
    )
    twitter_description_fr: Mapped[str | None] = mapped_column(
        Text, nullable=True,
    )
    twitter_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    canonical_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    robots_index: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True,
    )
    robots_follow: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True,
    )
    robots_noarchive: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    robots_nosnippet: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )

    custom_meta_tags: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    structured_data: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    seo_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    priority: Mapped[float] = mapped_column(Float, nullable=False, default=0.5)
    change_freq: Mapped[str] = mapped_column(
        String(20), nullable=False, default="monthly",
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class SeoRedirect(Base):
    """A path redirect applied by the SEO redirect middleware."""

    __tablename__ = "seo_redirects"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True,
    )
    from_path: Mapped[str] = mapped_column(
        String(500), nullable=False, unique=True,
    )
    to_path: Mapped[str] = mapped_column(String(500), nullable=False)
    redirect_type: Mapped[int] = mapped_column(
        Integer, nullable=False, default=301,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True,
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    hit_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_hit: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class SeoAuditLog(Base):
    """One field change on an seo_settings row."""

    __tablename__ = "seo_audit_logs"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True,
    )
    # No FK: history survives page deletion
    page_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    field: Mapped[str | None] = mapped_column(String(100), nullable=True)
    old_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    admin_user: Mapped[str] = mapped_column(
        String(200), nullable=False, default="admin",
    )
    change_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class SeoGlobalSettings(Base):
    """Site-wide SEO switches. The table holds at most one row."""

    __tablename__ = "seo_global_settings"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True,
    )
    robots_txt: Mapped[str | None] = mapped_column(Text, nullable=True)
    sitemap_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True,
    )
    default_meta_title_en: Mapped[str | None] = mapped_column(
        Text, nullable=True,
    )
    default_meta_title_fr: Mapped[str | None] = mapped_column(
        Text, nullable=True,
    )
    default_meta_description_en: Mapped[str | None] = mapped_column(
        Text, nullable=True,
    )
    default_meta_description_fr: Mapped[str | None] = mapped_column(
        Text, nullable=True,
    )
    google_analytics_id: Mapped[str | None] = mapped_column(
        String(50), nullable=True,
    )
    maintenance_mode: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------


class AnalyticsEvent(Base):
    """
    A frontend analytics event, mirrored from what the SPA sends to GA4.

    Known parameters get their own column for SQL reporting; anything else
    the client sends lands in `extra`.
    """

    __tablename__ = "analytics_events"

    event_id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True,
    )
    event_name: Mapped[str] = mapped_column(String(100), nullable=False)
    event_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    currency: Mapped[str] = mapped_column(
        String(3), nullable=False, default="EUR",
    )

    user_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    session_id: Mapped[str | None] = mapped_column(String(200), nullable=True)

    page_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    page_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    page_title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    page_location: Mapped[str | None] = mapped_column(Text, nullable=True)

    form_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    form_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    form_language: Mapped[str | None] = mapped_column(String(10), nullable=True)

    share_platform: Mapped[str | None] = mapped_column(
        String(50), nullable=True,
    )
    share_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    scroll_percent: Mapped[int | None] = mapped_column(Integer, nullable=True)

    video_title: Mapped[str | None] = mapped_column(String(300), nullable=True)
    video_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    gallery_item_title: Mapped[str | None] = mapped_column(
        String(300), nullable=True,
    )
    item_index: Mapped[int | None] = mapped_column(Integer, nullable=True)

    partner_country: Mapped[str | None] = mapped_column(
        String(2), nullable=True,
    )
    services_selected: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    action: Mapped[str | None] = mapped_column(String(100), nullable=True)
    cta_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    package: Mapped[str | None] = mapped_column(String(100), nullable=True)

    language: Mapped[str | None] = mapped_column(String(10), nullable=True)
    user_language: Mapped[str | None] = mapped_column(String(20), nullable=True)
    user_timezone: Mapped[str | None] = mapped_column(String(60), nullable=True)

    referrer: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)

    extra: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class AnalyticsConversion(Base):
    """A valued event (event_value > 0), kept apart for revenue queries."""

    __tablename__ = "analytics_conversions"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True,
    )
    event_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("analytics_events.event_id", ondelete="SET NULL"),
        nullable=True,
    )
    conversion_type: Mapped[str] = mapped_column(String(100), nullable=False)
    conversion_value: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(
        String(3), nullable=False, default="EUR",
    )
    user_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    session_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    page_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    page_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    conversion_date: Mapped[date] = mapped_column(
        Date, server_default=func.current_date(), nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class AnalyticsDailySummary(Base):
    """Per-day rollup of analytics_events / analytics_conversions."""

    __tablename__ = "analytics_daily_summary"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True,
    )
    summary_date: Mapped[date] = mapped_column(
        Date, nullable=False, unique=True,
    )
    total_events: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unique_sessions: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )
    total_conversions: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )
    conversion_value: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0,
    )
    events_by_name: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class PerformanceMetric(Base):
    """A Core Web Vitals sample reported by a browser."""

    __tablename__ = "performance_metrics"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True,
    )
    page_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    page_path: Mapped[str] = mapped_column(String(500), nullable=False)

    lcp_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    lcp_rating: Mapped[str | None] = mapped_column(String(20), nullable=True)
    cls_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    cls_rating: Mapped[str | None] = mapped_column(String(20), nullable=True)
    inp_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    inp_rating: Mapped[str | None] = mapped_column(String(20), nullable=True)
    fid_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    fid_rating: Mapped[str | None] = mapped_column(String(20), nullable=True)

    dns_time: Mapped[float | None] = mapped_column(Float, nullable=True)
    tcp_time: Mapped[float | None] = mapped_column(Float, nullable=True)
    ttfb: Mapped[float | None] = mapped_column(Float, nullable=True)
    dom_interactive: Mapped[float | None] = mapped_column(Float, nullable=True)
    dom_complete: Mapped[float | None] = mapped_column(Float, nullable=True)
    page_load_time: Mapped[float | None] = mapped_column(Float, nullable=True)
    resource_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    transfer_size: Mapped[int | None] = mapped_column(Integer, nullable=True)

    device_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    browser_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    connection_type: Mapped[str | None] = mapped_column(
        String(20), nullable=True,
    )
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class PerformanceDailySummary(Base):
    """Per-day, per-page averages of performance_metrics."""

    __tablename__ = "performance_daily_summary"
    __table_args__ = (
        UniqueConstraint("summary_date", "page_path", name="uq_perf_day_page"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True,
    )
    summary_date: Mapped[date] = mapped_column(Date, nullable=False)
    page_path: Mapped[str] = mapped_column(String(500), nullable=False)
    samples: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    avg_lcp: Mapped[float | None] = mapped_column(Float, nullable=True)
    avg_cls: Mapped[float | None] = mapped_column(Float, nullable=True)
    avg_inp: Mapped[float | None] = mapped_column(Float, nullable=True)
    avg_ttfb: Mapped[float | None] = mapped_column(Float, nullable=True)
    avg_page_load_time: Mapped[float | None] = mapped_column(
        Float, nullable=True,
    )


class AnalyticsExclusion(Base):
    """An IP, CIDR range or user-agent fragment whose traffic is not tracked."""

    __tablename__ = "analytics_exclusions"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True,
    )
    # "203.0.113.7", "203.0.113.0/24" or an IPv6 equivalent
    ip_cidr: Mapped[str] = mapped_column(String(64), nullable=False)
    label: Mapped[str | None] = mapped_column(String(200), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(300), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # Null = effective immediately
    applies_from: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


# ---------------------------------------------------------------------------
# Admin Authorisation
# ---------------------------------------------------------------------------


class ApiKey(Base):
    """
    A bearer key for the admin API.

    Only the SHA-256 hash is stored; the raw key is shown once at creation.
    """

    __tablename__ = "api_keys"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True,
    )

    # Human-readable label (e.g., "ngoc-laptop", "dashboard")
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # First 8 chars of the key for identification in logs
    key_prefix: Mapped[str] = mapped_column(String(20), nullable=False)

    key_hash: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True,
    )

    # ["partners", "seo", "analytics", "admin", ...]; null/empty = all
    scopes: Mapped[list | None] = mapped_column(
        JSONB, nullable=True, default=list,
    )

    # Null = settings.rate_limit_rpm
    rate_limit_rpm: Mapped[int | None] = mapped_column(
        Integer, nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False,
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    last_used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<ApiKey(id={self.id}, name='{self.name}', "
            f"prefix='{self.key_prefix}', active={self.is_active})>"
        )


class AuditLog(Base):
    """One admin API request."""

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True,
    )
    api_key_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("api_keys.id", ondelete="SET NULL"),
        nullable=True,
    )
    # Snapshot, survives key deletion
    api_key_name: Mapped[str | None] = mapped_column(
        String(200), nullable=True,
    )
    endpoint: Mapped[str] = mapped_column(String(200), nullable=False)
    method: Mapped[str] = mapped_column(String(10), nullable=False)
    path: Mapped[str] = mapped_column(String(500), nullable=False)
    # IPv6-safe: max 45 chars
    client_ip: Mapped[str | None] = mapped_column(String(45), nullable=True)
    status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    response_time_ms: Mapped[int | None] = mapped_column(
        Integer, nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


# ---------------------------------------------------------------------------
# Indexes
# ---------------------------------------------------------------------------

partner_directory_idx = Index(
    "idx_partner_directory",
    Partner.status,
    Partner.is_active,
    Partner.show_on_map,
)

faq_section_order_idx = Index(
    "idx_faq_section_order",
    Faq.section_id,
    Faq.order_index,
)

analytics_event_created_idx = Index(
    "idx_analytics_event_created",
    AnalyticsEvent.created_at,
)

analytics_conversion_date_idx = Index(
    "idx_analytics_conversion_date",
    AnalyticsConversion.conversion_date,
)

performance_metric_created_idx = Index(
    "idx_performance_metric_created",
    PerformanceMetric.created_at,
)

api_key_prefix_idx = Index(
    "idx_api_key_prefix",
    ApiKey.key_prefix,
)

audit_log_api_key_idx = Index(
    "idx_audit_log_api_key_created",
    AuditLog.api_key_id,
    AuditLog.created_at,
)

# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# Typed resources returned by the admin API. Public endpoints that mirror
# the SPA's existing contracts (`{ok, ...}`, `{success, data, ...}`) return
# plain dicts built in the routers so their keys stay exactly as the
# frontend expects.
# =============================================================================

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    """Response for GET /health — confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------


class ContactResponse(BaseModel):
    id: int
    name: str
    email: str
    phone: str | None = None
    subject: str | None = None
    message: str
    package: str | None = None
    preferred_contact: str | None = None
    status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ContactListResponse(BaseModel):
    contacts: list[ContactResponse]
    total: int


# ---------------------------------------------------------------------------
# FAQs
# ---------------------------------------------------------------------------


class FaqSectionResponse(BaseModel):
    id: int
    key: str
    name_en: str
    name_fr: str
    order_index: int
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class FaqResponse(BaseModel):
    id: int
    section_id: int
    question_en: str
    question_fr: str
    answer_en: str
    answer_fr: str
    order_index: int
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# SEO
# ---------------------------------------------------------------------------


class SeoSettingsResponse(BaseModel):
    id: int
    page: str
    url_slug_en: str | None = None
    url_slug_fr: str | None = None
    meta_title_en: str | None = None
    meta_title_fr: str | None = None
    meta_description_en: str | None = None
    meta_description_fr: str | None = None
    meta_keywords_en: str | None = None
    meta_keywords_fr: str | None = None
    og_title_en: str | None = None
    og_title_fr: str | None = None
    og_description_en: str | None = None
    og_description_fr: str | None = None
    og_image_url: str | None = None
    og_type: str
    twitter_card: str
    twitter_title_en: str | None = None
    twitter_title_fr: str | None = None
    twitter_description_en: str | None = None
    twitter_description_fr: str | None = None
    twitter_image_url: str | None = None
    canonical_url: str | None = None
    robots_index: bool
    robots_follow: bool
    robots_noarchive: bool
    robots_nosnippet: bool
    custom_meta_tags: dict[str, Any] | None = None
    structured_data: dict[str, Any] | None = None
    seo_score: int
    priority: float
    change_freq: str
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SeoRedirectResponse(BaseModel):
    id: int
    from_path: str
    to_path: str
    redirect_type: int
    is_active: bool
    description: str | None = None
    hit_count: int
    last_hit: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SeoAuditLogResponse(BaseModel):
    id: int
    page_id: int | None = None
    action: str
    field: str | None = None
    old_value: str | None = None
    new_value: str | None = None
    admin_user: str
    change_reason: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SeoGlobalSettingsResponse(BaseModel):
    robots_txt: str | None = None
    sitemap_enabled: bool = True
    default_meta_title_en: str | None = None
    default_meta_title_fr: str | None = None
    default_meta_description_en: str | None = None
    default_meta_description_fr: str | None = None
    google_analytics_id: str | None = None
    maintenance_mode: bool = False

    model_config = ConfigDict(from_attributes=True)


class SeoValidationResponse(BaseModel):
    score: int = Field(ge=0, le=100)
    issues: list[str]


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------


class ExclusionResponse(BaseModel):
    id: int
    ip_cidr: str
    label: str | None = None
    user_agent: str | None = None
    active: bool
    applies_from: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Admin API Keys & Audit
# ---------------------------------------------------------------------------


class ApiKeyResponse(BaseModel):
    """API key metadata. Never includes the raw key or its hash."""

    id: int
    name: str
    key_prefix: str
    scopes: list[str] | None = None
    rate_limit_rpm: int | None = None
    is_active: bool
    created_at: datetime
    expires_at: datetime | None = None
    last_used_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ApiKeyCreatedResponse(ApiKeyResponse):
    """Returned once, at creation: the only time `raw_key` is visible."""

    raw_key: str = Field(description="Store this now; it cannot be retrieved later")


class ApiKeyListResponse(BaseModel):
    keys: list[ApiKeyResponse]
    total: int


class AuditLogResponse(BaseModel):
    id: int
    api_key_id: int | None = None
    api_key_name: str | None = None
    endpoint: str
    method: str
    path: str
    client_ip: str | None = None
    status_code: int | None = None
    response_time_ms: int | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuditLogListResponse(BaseModel):
    logs: list[AuditLogResponse]
    total: int

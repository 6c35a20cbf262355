# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# Shapes of data coming INTO the API. Public form payloads (partner intake,
# contact) carry their own validation messages in the visitor's language;
# admin payloads use Pydantic's default messages.
#
# Partial-update models (`*Update`) declare every field optional and are
# applied with `model_dump(exclude_unset=True)` so that only the keys the
# client actually sent are written.
# =============================================================================

import re
from datetime import date, datetime
from typing import Any, Literal
from urllib.parse import urlsplit

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic_core import PydanticCustomError

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
DOMAIN_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9-_.]+\.[a-zA-Z]{2,}")

NULLABLE_PARTNER_FIELDS = frozenset({"lat", "lng"})

_MESSAGES = {
    "invalid_email": {
        "fr": "Veuillez entrer une adresse e-mail valide",
        "en": "Please enter a valid email address",
    },
    "missing_format": {
        "fr": "Au moins un format doit être sélectionné (photo, film, ou cassette vidéo)",
        "en": "At least one format must be selected (photo, film, or video cassette)",
    },
    "consent_required": {
        "fr": "Veuillez accepter d'être répertorié dans l'annuaire pour soumettre le formulaire",
        "en": "Please agree to be listed in the directory to submit the form",
    },
}


def _localized(key: str, locale: str | None) -> PydanticCustomError:
    message = _MESSAGES[key].get(locale or "fr", _MESSAGES[key]["fr"])
    return PydanticCustomError(key, message)


def _reject_nulls(model: BaseModel, nullable: frozenset[str] = frozenset()) -> None:
    """Partial updates may omit a NOT NULL column but not send it as null."""
    nulls = sorted(
        name for name in model.model_fields_set
        if getattr(model, name) is None and name not in nullable
    )
    if nulls:
        raise ValueError(f"null is not allowed for: {', '.join(nulls)}")


# ---------------------------------------------------------------------------
# Partner Intake (public form)
# ---------------------------------------------------------------------------


class IntakeAddress(BaseModel):
    street: str = Field(default="", max_length=300)
    line2: str = Field(default="", max_length=300)
    city: str = Field(default="", max_length=120)
    postal_code: str = Field(default="", max_length=20)
    # ISO 3166-1 alpha-2
    country: str = Field(..., min_length=2, max_length=2)


class PartnerIntake(BaseModel):
    """
    Body of POST /api/partners/intake — a business asking to be listed.

    `locale` is declared first so that the field validators below can read
    it from `info.data` and answer in the visitor's language.
    """

    locale: Literal["fr", "en"] = "fr"

    partner_type: str = Field(default="digitization", max_length=50)
    partner_name: str = Field(..., min_length=2, max_length=120)
    email: str = Field(..., max_length=320, description="Contact e-mail (required)")
    email_public: bool = True
    phone: str = Field(..., min_length=1, max_length=50)
    website: str = Field(
        ...,
        max_length=500,
        description="http(s) URL or bare domain such as www.example.com",
        examples=["https://example.com", "example.fr"],
    )
    address: IntakeAddress

    services: list[Literal["Photo", "Film"]] = Field(..., min_length=1)

    photo_formats: list[str] = Field(default_factory=list)
    video_formats: list[str] = Field(default_factory=list)
    film_formats: list[str] = Field(default_factory=list)
    audio_formats: list[str] = Field(default_factory=list)
    video_cassettes: list[str] = Field(default_factory=list)

    other_photo_formats: str = Field(default="", max_length=120)
    other_film_formats: str = Field(default="", max_length=120)
    other_video_formats: str = Field(default="", max_length=120)

    delivery: list[str] = Field(default_factory=list)
    other_delivery: str = Field(default="", max_length=120)
    output: list[str] = Field(default_factory=list)
    turnaround: str = ""
    rush: bool = False
    languages: list[str] = Field(default_factory=list)

    consent_listed: bool
    public_description: str = ""

    csrf_token: str = Field(..., alias="csrfToken", min_length=8)
    captcha_token: str = Field(default="", alias="captchaToken")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "partner_name": "Atelier Mémoire Vive",
                    "email": "contact@memoirevive.fr",
                    "phone": "+33 1 23 45 67 89",
                    "website": "memoirevive.fr",
                    "address": {"city": "Lyon", "country": "FR"},
                    "services": ["Photo", "Film"],
                    "photo_formats": ["Prints", "Slides 35mm"],
                    "film_formats": ["Super 8"],
                    "consent_listed": True,
                    "locale": "fr",
                    "csrfToken": "3f9a0c1e5b7d2a4c",
                }
            ]
        },
    )

    @field_validator("email")
    @classmethod
    def _email_format(cls, value: str, info: ValidationInfo) -> str:
        if not EMAIL_RE.match(value):
            raise _localized("invalid_email", info.data.get("locale"))
        return value

    @field_validator("website")
    @classmethod
    def _website_format(cls, value: str) -> str:
        if not value:
            raise PydanticCustomError("website_required", "Site web requis")
        if value.startswith(("http://", "https://")):
            if not urlsplit(value).netloc:
                raise PydanticCustomError("invalid_url", "URL invalide")
            return value
        if not DOMAIN_RE.match(value):
            raise PydanticCustomError("invalid_url", "URL invalide")
        return value

    @field_validator("consent_listed")
    @classmethod
    def _consent_given(cls, value: bool, info: ValidationInfo) -> bool:
        if value is not True:
            raise _localized("consent_required", info.data.get("locale"))
        return value

    @model_validator(mode="after")
    def _at_least_one_format(self) -> "PartnerIntake":
        if not (self.photo_formats or self.film_formats or self.video_cassettes):
            raise _localized("missing_format", self.locale)
        return self


# ---------------------------------------------------------------------------
# Partner Administration
# ---------------------------------------------------------------------------


class PartnerCreateRequest(BaseModel):
    """Manual partner entry from the admin panel (list fields as strings)."""

    partner_type: str = Field(default="digitization", max_length=50)
    partner_name: str = Field(default="", max_length=200)
    email: str = Field(default="", max_length=320)
    email_public: bool = False
    phone: str = Field(default="", max_length=50)
    phone_public: bool = False
    website: str = Field(default="", max_length=500)
    address: str = Field(default="", max_length=300)
    address_line2: str = Field(default="", max_length=300)
    city: str = Field(default="", max_length=120)
    postal_code: str = Field(default="", max_length=20)
    country: str = Field(default="", max_length=2)
    photo_formats: str = ""
    other_photo: str = ""
    film_formats: str = ""
    other_film: str = ""
    video_cassettes: str = ""
    other_video: str = ""
    delivery: str = ""
    other_delivery: str = ""
    public_description: str = ""
    status: str = Field(default="Pending", max_length=20)
    is_active: bool = False
    show_on_map: bool = False
    lat: float | None = None
    lng: float | None = None
    slug: str = Field(default="", max_length=200)


class PartnerUpdateRequest(BaseModel):
    """
    Partial partner update. Boolean flags accept JSON booleans as well as
    "true"/"false"/1/0 from older admin clients.

    Only `lat` and `lng` may be cleared with an explicit null; every other
    column is NOT NULL.
    """

    partner_type: str | None = Field(default=None, max_length=50)
    partner_name: str | None = Field(default=None, max_length=200)
    email: str | None = Field(default=None, max_length=320)
    email_public: bool | None = None
    phone: str | None = Field(default=None, max_length=50)
    phone_public: bool | None = None
    website: str | None = Field(default=None, max_length=500)
    address: str | None = Field(default=None, max_length=300)
    address_line2: str | None = Field(default=None, max_length=300)
    city: str | None = Field(default=None, max_length=120)
    postal_code: str | None = Field(default=None, max_length=20)
    country: str | None = Field(default=None, max_length=2)
    photo_formats: str | None = None
    other_photo: str | None = None
    film_formats: str | None = None
    other_film: str | None = None
    video_cassettes: str | None = None
    other_video: str | None = None
    delivery: str | None = None
    other_delivery: str | None = None
    public_description: str | None = None
    status: str | None = Field(default=None, max_length=20)
    is_active: bool | None = None
    show_on_map: bool | None = None
    lat: float | None = None
    lng: float | None = None
    slug: str | None = Field(default=None, max_length=200)

    @model_validator(mode="after")
    def _no_null_columns(self) -> "PartnerUpdateRequest":
        _reject_nulls(self, NULLABLE_PARTNER_FIELDS)
        return self


class TsvImportRequest(BaseModel):
    """Spreadsheet rows pasted as tab-separated text, header row first."""

    tsv_text: str = Field(..., alias="tsvText", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------


class ContactCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., max_length=320)
    phone: str | None = Field(default=None, max_length=50)
    subject: str | None = Field(default=None, max_length=300)
    message: str = Field(..., min_length=1, max_length=5000)
    package: str | None = None
    preferred_contact: Literal["email", "phone", "whatsapp"] | None = None

    @field_validator("email")
    @classmethod
    def _email_format(cls, value: str) -> str:
        if not EMAIL_RE.match(value):
            raise PydanticCustomError("invalid_email", "Invalid email address")
        return value


class ContactUpdateRequest(BaseModel):
    status: Literal["new", "contacted", "closed"]


# ---------------------------------------------------------------------------
# FAQs
# ---------------------------------------------------------------------------


class FaqSectionCreateRequest(BaseModel):
    key: str = Field(..., min_length=1, max_length=100)
    name_en: str = Field(..., min_length=1)
    name_fr: str = Field(..., min_length=1)
    order_index: int | None = Field(
        default=None,
        description="Position; appended after the last section when omitted",
    )
    is_active: bool = True


class FaqSectionUpdateRequest(BaseModel):
    key: str | None = None
    name_en: str | None = None
    name_fr: str | None = None
    order_index: int | None = None
    is_active: bool | None = None

    @model_validator(mode="after")
    def _no_null_columns(self) -> "FaqSectionUpdateRequest":
        _reject_nulls(self)
        return self


class FaqCreateRequest(BaseModel):
    section_id: int
    question_en: str = Field(..., min_length=1)
    question_fr: str = Field(..., min_length=1)
    answer_en: str = Field(..., min_length=1)
    answer_fr: str = Field(..., min_length=1)
    order_index: int | None = None
    is_active: bool = True


class FaqUpdateRequest(BaseModel):
    section_id: int | None = None
    question_en: str | None = None
    question_fr: str | None = None
    answer_en: str | None = None
    answer_fr: str | None = None
    order_index: int | None = None
    is_active: bool | None = None

    @model_validator(mode="after")
    def _no_null_columns(self) -> "FaqUpdateRequest":
        _reject_nulls(self)
        return self


# ---------------------------------------------------------------------------
# SEO
# ---------------------------------------------------------------------------


class SeoMetaFields(BaseModel):
    """Fields shared by SEO create/update/validate payloads. All optional."""

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
    og_type: str | None = None
    twitter_card: str | None = None
    twitter_title_en: str | None = None
    twitter_title_fr: str | None = None
    twitter_description_en: str | None = None
    twitter_description_fr: str | None = None
    twitter_image_url: str | None = None
    canonical_url: str | None = None
    robots_index: bool | None = None
    robots_follow: bool | None = None
    robots_noarchive: bool | None = None
    robots_nosnippet: bool | None = None
    custom_meta_tags: dict[str, Any] | None = None
    structured_data: dict[str, Any] | None = None
    priority: float | None = Field(default=None, ge=0.0, le=1.0)
    change_freq: Literal[
        "always", "hourly", "daily", "weekly", "monthly", "yearly", "never",
    ] | None = None
    is_active: bool | None = None


class SeoSettingsCreateRequest(SeoMetaFields):
    page: str = Field(..., min_length=1, max_length=100)


class SeoSettingsUpdateRequest(SeoMetaFields):
    page: str | None = Field(default=None, min_length=1, max_length=100)
    change_reason: str | None = Field(
        default=None, description="Stored with every audit entry of this edit",
    )


class SeoRedirectCreateRequest(BaseModel):
    from_path: str = Field(..., pattern=r"^/")
    to_path: str = Field(..., min_length=1)
    redirect_type: Literal[301, 302, 307, 308] = 301
    is_active: bool = True
    description: str | None = None


class SeoRedirectUpdateRequest(BaseModel):
    from_path: str | None = Field(default=None, pattern=r"^/")
    to_path: str | None = None
    redirect_type: Literal[301, 302, 307, 308] | None = None
    is_active: bool | None = None
    description: str | None = None

    @model_validator(mode="after")
    def _no_null_columns(self) -> "SeoRedirectUpdateRequest":
        _reject_nulls(self, frozenset({"description"}))
        return self


class SeoGlobalSettingsRequest(BaseModel):
    robots_txt: str | None = None
    sitemap_enabled: bool | None = None
    default_meta_title_en: str | None = None
    default_meta_title_fr: str | None = None
    default_meta_description_en: str | None = None
    default_meta_description_fr: str | None = None
    google_analytics_id: str | None = None
    maintenance_mode: bool | None = None


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------


class SummaryRequest(BaseModel):
    """Body of the daily-summary endpoints. Defaults to today (UTC)."""

    day: date | None = Field(default=None, alias="date")

    model_config = ConfigDict(populate_by_name=True)


class ExclusionCreateRequest(BaseModel):
    ip_cidr: str = Field(..., examples=["203.0.113.7", "198.51.100.0/24"])
    label: str | None = None
    user_agent: str | None = None
    active: bool = True
    applies_from: datetime | None = None

    @field_validator("ip_cidr")
    @classmethod
    def _valid_network(cls, value: str) -> str:
        from memopyk.services.analytics import parse_network

        if parse_network(value) is None:
            raise PydanticCustomError(
                "invalid_cidr", "Not an IP address or CIDR range",
            )
        return value.strip()


class ExclusionUpdateRequest(BaseModel):
    label: str | None = None
    user_agent: str | None = None
    active: bool | None = None
    applies_from: datetime | None = None


# ---------------------------------------------------------------------------
# Live View
# ---------------------------------------------------------------------------


class HeartbeatRequest(BaseModel):
    """Sent by the video player every 15 seconds while a video plays."""

    session_id: str = Field(..., alias="sessionId", min_length=1, max_length=200)
    video_id: str = Field(..., alias="videoId", min_length=1, max_length=300)
    video_title: str = Field(default="", alias="videoTitle", max_length=300)
    progress_pct: float = Field(default=0, alias="progressPct", ge=0, le=100)
    current_time: float = Field(default=0, alias="currentTime", ge=0)
    device: str = Field(default="Desktop", max_length=30)
    country: str = Field(default="Unknown", max_length=60)
    ts: int | None = Field(default=None, description="Client epoch millis")

    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Admin API Keys
# ---------------------------------------------------------------------------


class CreateApiKeyRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    scopes: list[str] | None = Field(
        default=None,
        description="Allowed scopes; omit for full access",
        examples=[["partners", "seo"]],
    )
    rate_limit_rpm: int | None = Field(default=None, ge=1)
    expires_at: datetime | None = None


class UpdateApiKeyRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    scopes: list[str] | None = None
    rate_limit_rpm: int | None = Field(default=None, ge=1)
    is_active: bool | None = None
    expires_at: datetime | None = None

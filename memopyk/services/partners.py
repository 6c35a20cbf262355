# =============================================================================
# Partner Service — Record Mapping, Directory Cards, TSV Import, XLSX Export
# =============================================================================
#
# Partners reach the database from three sources, each mapped to the same
# flat record (the column set of the `partners` table):
#
#   intake form  → intake_to_record()   status Pending, hidden from the map
#   admin form   → manual_to_record()   admin chooses status and visibility
#   TSV paste    → tsv_row_to_record()  auto-approved and shown on the map
#
# Multi-value fields (formats, delivery methods) are stored as ", "-joined
# strings. `to_directory_card()` turns a record back into the structure the
# directory map consumes, with parsed lists and derived service badges.
#
# Everything here is pure: no database, no HTTP.
# =============================================================================

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from io import BytesIO
from typing import Any

import openpyxl
from openpyxl.styles import Font

from memopyk.db.models import PartnerStatus
from memopyk.models.requests import PartnerCreateRequest, PartnerIntake

# Columns an API caller may write. id/created_at/updated_at are managed by
# the storage layer.
PARTNER_FIELDS: tuple[str, ...] = (
    "timestamp",
    "partner_type",
    "partner_name",
    "email",
    "email_public",
    "phone",
    "phone_public",
    "website",
    "address",
    "address_line2",
    "city",
    "postal_code",
    "country",
    "photo_formats",
    "other_photo",
    "film_formats",
    "other_film",
    "video_cassettes",
    "other_video",
    "delivery",
    "other_delivery",
    "public_description",
    "consent",
    "status",
    "is_active",
    "show_on_map",
    "lat",
    "lng",
    "slug",
)

BOOLEAN_FIELDS = frozenset(
    {"email_public", "phone_public", "consent", "is_active", "show_on_map"},
)

# (header, record key) in export order
EXPORT_COLUMNS: tuple[tuple[str, str], ...] = (
    ("Timestamp", "timestamp"),
    ("Partner Type", "partner_type"),
    ("Partner Name", "partner_name"),
    ("Email", "email"),
    ("Email Public", "email_public"),
    ("Phone", "phone"),
    ("Phone Public", "phone_public"),
    ("Website", "website"),
    ("Address", "address"),
    ("Address Line 2", "address_line2"),
    ("City", "city"),
    ("Postal Code", "postal_code"),
    ("Country", "country"),
    ("Photo Formats", "photo_formats"),
    ("Other Photo", "other_photo"),
    ("Film Formats", "film_formats"),
    ("Other Film", "other_film"),
    ("Video Cassettes", "video_cassettes"),
    ("Other Video", "other_video"),
    ("Delivery", "delivery"),
    ("Other Delivery", "other_delivery"),
    ("Public Description", "public_description"),
    ("Status", "status"),
    ("Active", "is_active"),
    ("Show on Map", "show_on_map"),
    ("Latitude", "lat"),
    ("Longitude", "lng"),
    ("Slug", "slug"),
)

EXPORT_FILENAME = "partner-submissions.xlsx"
XLSX_MEDIA_TYPE = (
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
)

_TSV_TIMESTAMP_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%d/%m/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M:%S",
    "%d/%m/%Y",
)


class TsvFormatError(ValueError):
    """The pasted text has no header row or no data rows."""


# ---------------------------------------------------------------------------
# List helpers
# ---------------------------------------------------------------------------


def join_list(values: Iterable[str] | str | None) -> str:
    """Store a multi-value field: ["VHS", "Hi8"] → "VHS, Hi8"."""
    if values is None:
        return ""
    if isinstance(values, str):
        return values
    return ", ".join(values)


def parse_list(raw: str | None) -> list[str]:
    """
    Read a stored multi-value field back into a list.

    Splits on commas, trims each item, strips one wrapping quote at either
    end (spreadsheet imports often quote cells) and drops empty items.
    """
    if not raw or not raw.strip():
        return []
    items = []
    for part in raw.split(","):
        item = part.strip()
        if item[:1] in ("'", '"'):
            item = item[1:]
        if item[-1:] in ("'", '"'):
            item = item[:-1]
        if item:
            items.append(item)
    return items


# ---------------------------------------------------------------------------
# Source → record
# ---------------------------------------------------------------------------


def intake_to_record(intake: PartnerIntake, now: datetime | None = None) -> dict[str, Any]:
    """
    Map a validated intake submission to a pending, unlisted partner record.

    The form offers video cassettes under `video_cassettes`; older clients
    send them as `video_formats`.
    """
    cassettes = intake.video_cassettes or intake.video_formats
    return {
        "timestamp": now or datetime.now(UTC),
        "partner_type": intake.partner_type or "digitization",
        "partner_name": intake.partner_name,
        "email": intake.email,
        "email_public": bool(intake.email_public),
        "phone": intake.phone,
        # Visitors never opt in to a public phone on the intake form
        "phone_public": False,
        "website": intake.website,
        "address": intake.address.street,
        "address_line2": intake.address.line2,
        "city": intake.address.city,
        "postal_code": intake.address.postal_code,
        "country": intake.address.country.upper(),
        "photo_formats": join_list(intake.photo_formats),
        "other_photo": intake.other_photo_formats,
        "film_formats": join_list(intake.film_formats),
        "other_film": intake.other_film_formats,
        "video_cassettes": join_list(cassettes),
        "other_video": intake.other_video_formats,
        "delivery": join_list(intake.delivery),
        "other_delivery": intake.other_delivery,
        "public_description": intake.public_description,
        "consent": True,
        "status": PartnerStatus.PENDING.value,
        "is_active": False,
        "show_on_map": False,
        "lat": None,
        "lng": None,
        "slug": "",
    }


def manual_to_record(request: PartnerCreateRequest, now: datetime | None = None) -> dict[str, Any]:
    """Admin-entered partner. Consent is implied by the admin adding it."""
    record = request.model_dump()
    record["timestamp"] = now or datetime.now(UTC)
    record["consent"] = True
    return record


def _is_true(value: str | None) -> bool:
    return (value or "").strip().upper() == "TRUE"


def _parse_coordinate(value: str | None, name: str) -> float | None:
    if not value:
        return None
    try:
        return float(value.replace(",", "."))
    except ValueError:
        raise ValueError(f"invalid {name} '{value}'") from None


def _parse_timestamp(value: str | None, now: datetime) -> datetime:
    if not value:
        return now
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        for fmt in _TSV_TIMESTAMP_FORMATS:
            try:
                parsed = datetime.strptime(value, fmt)
                break
            except ValueError:
                continue
        else:
            return now
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def parse_tsv(text: str) -> list[dict[str, str]]:
    """
    Split pasted spreadsheet text into header-keyed rows.

    Raises:
        TsvFormatError: fewer than two non-empty lines.
    """
    lines = [line.rstrip("\r") for line in text.strip().split("\n")]
    if len(lines) < 2:
        raise TsvFormatError("TSV must include header and at least one data row")

    headers = [h.strip() for h in lines[0].split("\t")]
    rows = []
    for line in lines[1:]:
        values = line.split("\t")
        rows.append({
            header: values[index].strip() if index < len(values) else ""
            for index, header in enumerate(headers)
        })
    return rows


def tsv_row_to_record(row: Mapping[str, str], now: datetime | None = None) -> dict[str, Any]:
    """
    Map one imported spreadsheet row to an approved, visible partner.

    Raises:
        ValueError: the row has no partner name or unreadable coordinates.
    """
    now = now or datetime.now(UTC)
    name = row.get("Partner Name", "")
    if not name:
        raise ValueError("missing Partner Name")

    email_public = _is_true(row.get("Email_Public"))
    return {
        "timestamp": _parse_timestamp(row.get("Timestamp"), now),
        "partner_type": "digitization",
        "partner_name": name,
        "email": row.get("Email", ""),
        "email_public": email_public,
        "phone": row.get("Phone", ""),
        # Older sheets had a single "public contact" flag in Email_Public
        "phone_public": _is_true(row.get("Phone_Public")) or email_public,
        "website": row.get("Website", ""),
        "address": row.get("Address", ""),
        "address_line2": (
            row.get("Complément d'adresse") or row.get("Address Line 2") or ""
        ),
        "city": row.get("City", ""),
        "postal_code": row.get("Postal Code", ""),
        "country": row.get("Country", "")[:2].upper(),
        "photo_formats": row.get("Photo Formats", ""),
        "other_photo": row.get("Other Photo", ""),
        "film_formats": row.get("Film Formats", ""),
        "other_film": row.get("Other Film", ""),
        "video_cassettes": row.get("Video Cassettes", ""),
        "other_video": row.get("Other Video", ""),
        "delivery": row.get("Delivery", ""),
        "other_delivery": row.get("Other Delivery", ""),
        "public_description": row.get("Public Description", ""),
        "consent": True,
        "status": PartnerStatus.APPROVED.value,
        "is_active": True,
        "show_on_map": True,
        "lat": _parse_coordinate(row.get("lat"), "lat"),
        "lng": _parse_coordinate(row.get("lng"), "lng"),
        "slug": row.get("slug", ""),
    }


def clean_updates(updates: Mapping[str, Any]) -> dict[str, Any]:
    """Keep writable columns only and coerce boolean flags."""
    cleaned = {}
    for key, value in updates.items():
        if key not in PARTNER_FIELDS:
            continue
        if key in BOOLEAN_FIELDS:
            value = bool(value)
        cleaned[key] = value
    return cleaned


# ---------------------------------------------------------------------------
# Record → directory card
# ---------------------------------------------------------------------------


def to_directory_card(partner: Mapping[str, Any], public: bool = True) -> dict[str, Any]:
    """
    Build the map/directory representation of a partner.

    Services are derived from which format fields are filled in. With
    `public=True` the e-mail and phone are blanked unless the partner chose
    to publish them.
    """
    photo = parse_list(partner.get("photo_formats"))
    film = parse_list(partner.get("film_formats"))
    video = parse_list(partner.get("video_cassettes"))

    services = []
    if photo or partner.get("other_photo"):
        services.append("Photo")
    if film or partner.get("other_film"):
        services.append("Film")
    if video or partner.get("other_video"):
        services.append("Video")

    email_public = bool(partner.get("email_public"))
    phone_public = bool(partner.get("phone_public"))
    email = partner.get("email") or ""
    phone = partner.get("phone") or ""
    if public:
        email = email if email_public else ""
        phone = phone if phone_public else ""

    return {
        "id": partner.get("id"),
        "name": partner.get("partner_name"),
        "city": partner.get("city") or "",
        "country": partner.get("country") or "",
        "lat": partner.get("lat"),
        "lng": partner.get("lng"),
        "services": services,
        "formats": {"photo": photo, "film": film, "video": video},
        "website": partner.get("website") or "",
        "phone": phone,
        "phone_public": phone_public,
        "email": email,
        "email_public": email_public,
        "public_description": partner.get("public_description") or "",
        "slug": partner.get("slug") or "",
        "address": partner.get("address") or "",
        "address_line2": partner.get("address_line2") or "",
        "postal_code": partner.get("postal_code") or "",
        "delivery": parse_list(partner.get("delivery")),
        "other_photo": partner.get("other_photo") or "",
        "other_film": partner.get("other_film") or "",
        "other_video": partner.get("other_video") or "",
        "other_delivery": partner.get("other_delivery") or "",
        "status": partner.get("status"),
        "is_active": partner.get("is_active"),
        "show_on_map": partner.get("show_on_map"),
    }


def paginate(items: list[Any], page: int, limit: int) -> dict[str, Any]:
    """Slice an already-filtered list: {partners, total, page, limit, totalPages}."""
    page = max(page, 1)
    limit = max(limit, 1)
    start = (page - 1) * limit
    total = len(items)
    return {
        "partners": items[start:start + limit],
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(total / limit),
    }


def summarize(partners: list[Mapping[str, Any]], size: int = 10) -> dict[str, Any]:
    """Latest submissions for the admin overview (newest first)."""
    latest = sorted(partners, key=lambda p: p.get("id") or 0, reverse=True)[:size]
    return {
        "partners": [
            {
                "id": p.get("id"),
                "name": p.get("partner_name") or "",
                "email": p.get("email") or "",
                "phone": p.get("phone") or "",
                "city": p.get("city") or "",
                "country": p.get("country") or "",
                "submitted": _export_value(p.get("timestamp")),
                "status": p.get("status") or PartnerStatus.PENDING.value,
                "is_active": bool(p.get("is_active")),
                "show_on_map": bool(p.get("show_on_map")),
                "lat": p.get("lat"),
                "lng": p.get("lng"),
                "address": p.get("address") or "",
                "address_line2": p.get("address_line2") or "",
                "postal_code": p.get("postal_code") or "",
                "website": p.get("website") or "",
            }
            for p in latest
        ],
        "count": len(partners),
    }


# ---------------------------------------------------------------------------
# XLSX export
# ---------------------------------------------------------------------------


def _export_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, datetime):
        # Excel cells cannot hold timezone-aware datetimes
        return value.isoformat()
    return value


def build_partners_workbook(partners: Iterable[Mapping[str, Any]]) -> bytes:
    """Render partners as an .xlsx file (single "Partners" sheet)."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Partners"

    for column, (header, _) in enumerate(EXPORT_COLUMNS, start=1):
        ws.cell(row=1, column=column, value=header).font = Font(bold=True)

    for row, partner in enumerate(partners, start=2):
        for column, (_, key) in enumerate(EXPORT_COLUMNS, start=1):
            value = partner.get(key)
            if key in BOOLEAN_FIELDS:
                value = bool(value)
            ws.cell(row=row, column=column, value=_export_value(value))

    ws.freeze_panes = "A2"

    output = BytesIO()
    wb.save(output)
    return output.getvalue()

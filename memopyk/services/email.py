# =============================================================================
# Partner Notification Email — Resend REST API
# =============================================================================
#
# Sent after each intake submission so the team can review the new partner.
# Delivery runs in a FastAPI background task: a failure is logged and never
# changes the response the visitor already received.
# =============================================================================

from __future__ import annotations

import html
import logging
from datetime import UTC, datetime
from typing import Any
from zoneinfo import ZoneInfo

import httpx

from memopyk.config import settings
from memopyk.models.requests import PartnerIntake

logger = logging.getLogger(__name__)

PARIS = ZoneInfo("Europe/Paris")

_ROW = (
    '<tr{style}>'
    '<td style="padding: 12px; font-weight: bold; border-bottom: 1px solid #ddd;">{label}</td>'
    '<td style="padding: 12px; border-bottom: 1px solid #ddd;">{value}</td>'
    "</tr>"
)


def format_paris(moment: datetime) -> str:
    """dd/mm/yyyy HH:MM in Paris time, as the team reads it."""
    return moment.astimezone(PARIS).strftime("%d/%m/%Y %H:%M")


def _value(value: Any, missing: str = "Non fourni") -> str:
    if isinstance(value, list):
        value = ", ".join(value)
    return html.escape(str(value)) if value else missing


def build_partner_email(
    intake: PartnerIntake,
    submitted_at: datetime | None = None,
) -> str:
    """HTML body listing the submitted fields (escaped)."""
    submitted_at = submitted_at or datetime.now(UTC)
    base_url = settings.site_base_url.rstrip("/")

    rows = [
        ("Nom", _value(intake.partner_name)),
        ("Email", _value(intake.email)),
        ("Téléphone", _value(intake.phone)),
        ("Site Web", _value(intake.website)),
        ("Pays", _value(intake.address.country)),
        ("Ville", _value(intake.address.city)),
        ("Formats Photos", _value(intake.photo_formats, "Non spécifié")),
    ]
    if intake.other_photo_formats:
        rows.append(("Autres Formats Photos", _value(intake.other_photo_formats)))
    rows.append(("Formats Film", _value(intake.film_formats, "Non spécifié")))
    if intake.other_film_formats:
        rows.append(("Autres Formats Film", _value(intake.other_film_formats)))
    rows.append((
        "Cassettes Vidéo",
        _value(intake.video_cassettes or intake.video_formats, "Non spécifié"),
    ))
    if intake.other_video_formats:
        rows.append(("Autres Formats Vidéo", _value(intake.other_video_formats)))
    rows.append(("Livraison", _value(intake.delivery, "Non spécifié")))
    rows.append(("Date de Soumission", format_paris(submitted_at)))

    table = "".join(
        _ROW.format(
            style=' style="background: #F2EBDC;"' if i % 2 == 0 else "",
            label=label,
            value=value,
        )
        for i, (label, value) in enumerate(rows)
    )

    description = ""
    if intake.public_description:
        description = (
            '<div style="margin-top: 20px; background: white; padding: 15px; '
            'border-left: 4px solid #D67C4A;">'
            '<h3 style="color: #2A4759; margin-top: 0;">Description Publique</h3>'
            f'<p style="color: #333; margin: 0;">{_value(intake.public_description)}</p>'
            "</div>"
        )

    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        '<div style="background: #2A4759; padding: 20px; text-align: center;">'
        '<h1 style="color: #F2EBDC; margin: 0;">🤝 Nouveau Partenaire</h1>'
        "</div>"
        '<div style="padding: 20px; background: #FAF7F2;">'
        f'<table style="width: 100%; border-collapse: collapse;">{table}</table>'
        f"{description}"
        '<p style="margin-top: 30px; text-align: center;">'
        f'<a href="{base_url}/admin">📋 Voir Admin Partenaires</a> · '
        f'<a href="{base_url}/api/partners/download">📥 Télécharger Excel</a>'
        "</p>"
        "</div>"
        f'<p style="text-align: center; font-size: 12px;">© {submitted_at.year} MEMOPYK</p>'
        "</div>"
    )


async def send_partner_notification(intake: PartnerIntake) -> bool:
    """
    Email the team about a new intake. Returns False when skipped or failed.
    """
    if not settings.resend_api_key:
        logger.info(
            "Partner notification skipped (no Resend API key): %s",
            intake.partner_name,
        )
        return False

    message = {
        "from": settings.email_from,
        "to": [settings.partner_notification_email],
        "subject": f"🤝 Nouveau Partenaire: {intake.partner_name}",
        "html": build_partner_email(intake),
    }
    try:
        async with httpx.AsyncClient(timeout=15) as client:
            response = await client.post(
                settings.resend_api_url,
                json=message,
                headers={"Authorization": f"Bearer {settings.resend_api_key}"},
            )
            response.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning(
            "Partner notification email failed for '%s': %s",
            intake.partner_name, e,
        )
        return False

    logger.info("Partner notification sent for '%s'", intake.partner_name)
    return True

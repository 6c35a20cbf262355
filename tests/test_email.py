# =============================================================================
# Unit Tests — Partner Notification Email
# =============================================================================

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime

import httpx

from memopyk.config import settings
from memopyk.models.requests import PartnerIntake
from memopyk.services.email import (
    build_partner_email,
    format_paris,
    send_partner_notification,
)


def _intake(**overrides) -> PartnerIntake:
    payload = {
        "partner_name": "Atelier <Mémoire>",
        "email": "contact@memoirevive.fr",
        "phone": "+33 1 23 45 67 89",
        "website": "memoirevive.fr",
        "address": {"city": "Lyon", "country": "FR"},
        "services": ["Photo"],
        "photo_formats": ["Prints", "Slides 35mm"],
        "consent_listed": True,
        "csrfToken": "3f9a0c1e5b7d2a4c",
    }
    payload.update(overrides)
    return PartnerIntake.model_validate(payload)


def _mock_async_client(monkeypatch, handler) -> None:
    real_client = httpx.AsyncClient

    def factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", factory)


class TestFormatParis:
    def test_summer_time(self):
        assert format_paris(datetime(2025, 7, 1, 10, 5, tzinfo=UTC)) == "01/07/2025 12:05"

    def test_winter_time(self):
        assert format_paris(datetime(2025, 1, 15, 23, 30, tzinfo=UTC)) == "16/01/2025 00:30"


class TestBuildPartnerEmail:
    def test_escapes_and_lists(self):
        body = build_partner_email(_intake(), datetime(2025, 3, 14, 9, 0, tzinfo=UTC))
        assert "Atelier &lt;Mémoire&gt;" in body
        assert "<Mémoire>" not in body
        assert "Prints, Slides 35mm" in body
        assert "14/03/2025 10:00" in body

    def test_missing_values_labelled(self):
        body = build_partner_email(_intake(film_formats=[]))
        assert "Non spécifié" in body

    def test_optional_rows(self):
        assert "Autres Formats Film" not in build_partner_email(_intake())
        body = build_partner_email(_intake(other_film_formats="9.5mm"))
        assert "Autres Formats Film" in body

    def test_public_description_block(self):
        body = build_partner_email(_intake(public_description="Depuis 1998"))
        assert "Description Publique" in body
        assert "Depuis 1998" in body


class TestSendPartnerNotification:
    def test_skipped_without_key(self, monkeypatch):
        monkeypatch.setattr(settings, "resend_api_key", "")
        assert asyncio.run(send_partner_notification(_intake())) is False

    def test_posts_to_resend(self, monkeypatch):
        monkeypatch.setattr(settings, "resend_api_key", "re_test")
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "email_1"})

        _mock_async_client(monkeypatch, handler)

        assert asyncio.run(send_partner_notification(_intake())) is True
        assert seen["auth"] == "Bearer re_test"
        assert seen["body"]["to"] == [settings.partner_notification_email]
        assert seen["body"]["subject"].endswith("Atelier <Mémoire>")

    def test_failure_returns_false(self, monkeypatch):
        monkeypatch.setattr(settings, "resend_api_key", "re_test")
        _mock_async_client(monkeypatch, lambda r: httpx.Response(422, json={"message": "bad from"}))
        assert asyncio.run(send_partner_notification(_intake())) is False

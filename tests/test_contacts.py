# =============================================================================
# API Tests — Contact Form
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pytest
from fastapi.testclient import TestClient

from memopyk.config import settings
from memopyk.db.engine import get_async_session
from memopyk.db.models import Contact
from memopyk.main import app
from memopyk.services.rate_limiter import contact_limiter


@dataclass
class FakeSession:
    """Assigns ids on commit; knows no existing rows."""

    added: list[Any] = field(default_factory=list)
    commits: int = 0

    def add(self, obj: Any) -> None:
        self.added.append(obj)

    async def commit(self) -> None:
        self.commits += 1
        for number, obj in enumerate(self.added, start=1):
            if obj.id is None:
                obj.id = number

    async def rollback(self) -> None:
        pass

    async def get(self, model: Any, ident: int) -> Any:
        return None


@pytest.fixture(autouse=True)
def _reset_app():
    yield
    app.dependency_overrides.clear()
    contact_limiter.reset()


def _client(monkeypatch, session: FakeSession) -> TestClient:
    async def _session():
        yield session

    monkeypatch.setattr(settings, "auth_enabled", False)
    monkeypatch.setattr(settings, "audit_logging_enabled", False)
    app.dependency_overrides[get_async_session] = _session
    contact_limiter.reset()
    return TestClient(app)


CONTACT = {
    "name": "Claire Martin",
    "email": "claire@example.fr",
    "message": "Bonjour, j'ai 12 cassettes VHS à numériser.",
    "package": "essentiel",
    "preferred_contact": "email",
}


class TestCreateContact:
    def test_saved(self, monkeypatch):
        session = FakeSession()
        response = _client(monkeypatch, session).post("/api/contacts", json=CONTACT)

        assert response.status_code == 200
        assert response.json() == {"success": True, "id": 1}
        saved = session.added[0]
        assert isinstance(saved, Contact)
        assert saved.package == "essentiel"

    def test_no_csrf_cookie_or_token_needed(self, monkeypatch):
        client = _client(monkeypatch, FakeSession())
        client.cookies.clear()
        response = client.post("/api/contacts", json=CONTACT)
        assert response.status_code == 200

    def test_invalid_email(self, monkeypatch):
        response = _client(monkeypatch, FakeSession()).post(
            "/api/contacts", json={**CONTACT, "email": "claire"},
        )
        assert response.status_code == 422

    def test_rate_limited(self, monkeypatch):
        client = _client(monkeypatch, FakeSession())
        monkeypatch.setattr(contact_limiter, "max_per_minute", 2)

        assert client.post("/api/contacts", json=CONTACT).status_code == 200
        assert client.post("/api/contacts", json=CONTACT).status_code == 200
        response = client.post("/api/contacts", json=CONTACT)
        assert response.status_code == 429
        assert response.json()["error"] == "rate_limited"


class TestAdminContacts:
    def test_update_missing(self, monkeypatch):
        response = _client(monkeypatch, FakeSession()).patch(
            "/api/admin/contacts/5", json={"status": "closed"},
        )
        assert response.status_code == 404
        assert response.json() == {"detail": "Contact 5 not found."}

    def test_update_rejects_unknown_status(self, monkeypatch):
        response = _client(monkeypatch, FakeSession()).patch(
            "/api/admin/contacts/5", json={"status": "archived"},
        )
        assert response.status_code == 422

    def test_requires_key_when_auth_enabled(self, monkeypatch):
        client = _client(monkeypatch, FakeSession())
        monkeypatch.setattr(settings, "auth_enabled", True)
        assert client.delete("/api/admin/contacts/5").status_code == 401

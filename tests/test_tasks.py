# =============================================================================
# Unit Tests — Celery Tasks
# =============================================================================
#
# Tasks are invoked through `.run()` so they execute in-process without a
# broker. The sync session and external clients are patched.
# =============================================================================

from __future__ import annotations

from contextlib import contextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from celery.exceptions import Retry

from memopyk.config import settings
from memopyk.db.models import Partner
from memopyk.services.zoho import ZohoError
from memopyk.workers.tasks import (
    cleanup_video_cache,
    prune_live_view,
    sync_partner_to_zoho,
    update_daily_summaries,
)


def _fake_sync_session(session):
    @contextmanager
    def _factory():
        yield session
    return _factory


class TestUpdateDailySummaries:
    def test_skipped_when_db_disabled(self, monkeypatch):
        monkeypatch.setattr(settings, "analytics_db_enabled", False)
        assert update_daily_summaries.run("2025-03-13") == {
            "date": "2025-03-13", "skipped": True,
        }

    def test_rolls_up_given_day(self, monkeypatch):
        monkeypatch.setattr(settings, "analytics_db_enabled", True)
        session = MagicMock()
        with (
            patch("memopyk.workers.tasks.get_sync_session", _fake_sync_session(session)),
            patch(
                "memopyk.workers.tasks.update_daily_summary_sync",
                return_value={"total_events": 42},
            ) as daily,
            patch(
                "memopyk.workers.tasks.update_performance_summary_sync",
                return_value=3,
            ),
        ):
            result = update_daily_summaries.run("2025-03-13")

        assert result == {"date": "2025-03-13", "total_events": 42, "performance_pages": 3}
        assert str(daily.call_args.args[1]) == "2025-03-13"


class TestCleanupVideoCache:
    def test_reports_counts_for_both_caches(self):
        videos = MagicMock()
        videos.cleanup.return_value = {"removed": ["a.mp4", "b.mp4"], "freedBytes": 2048}
        images = MagicMock()
        images.cleanup.return_value = {"removed": ["c.jpg"], "freedBytes": 512}
        with (
            patch("memopyk.workers.tasks.get_video_cache", return_value=videos),
            patch("memopyk.workers.tasks.get_image_cache", return_value=images),
        ):
            assert cleanup_video_cache.run() == {"removed": 3, "freedBytes": 2560}


class TestPruneLiveView:
    def test_every_run_gets_its_own_client(self):
        clients = []

        def factory():
            client = MagicMock()
            client.zremrangebyscore = AsyncMock(return_value=2)
            client.aclose = AsyncMock()
            clients.append(client)
            return client

        with patch("memopyk.workers.tasks.create_live_view_redis", side_effect=factory):
            assert prune_live_view.run() == 2
            assert prune_live_view.run() == 2

        assert len(clients) == 2
        for client in clients:
            client.aclose.assert_awaited_once()

    def test_client_closed_when_prune_fails(self):
        client = MagicMock()
        client.zremrangebyscore = AsyncMock(side_effect=ConnectionError("down"))
        client.aclose = AsyncMock()

        with patch("memopyk.workers.tasks.create_live_view_redis", return_value=client):
            assert prune_live_view.run() == 0

        client.aclose.assert_awaited_once()


class TestSyncPartnerToZoho:
    def _session_with(self, partner):
        session = MagicMock()
        session.get.return_value = partner
        return _fake_sync_session(session)

    def test_missing_partner_not_retried(self):
        with patch("memopyk.workers.tasks.get_sync_session", self._session_with(None)):
            assert sync_partner_to_zoho.run(12) == {"partner_id": 12, "status": "missing"}

    def test_synced(self):
        partner = Partner(id=12, partner_name="Studio 8", city="Paris", status="Pending")
        zoho = MagicMock()
        zoho.request.return_value = {"data": [{"code": "SUCCESS", "details": {"id": "z1"}}]}

        with (
            patch("memopyk.workers.tasks.get_sync_session", self._session_with(partner)),
            patch("memopyk.workers.tasks.ZohoClient", return_value=zoho),
        ):
            result = sync_partner_to_zoho.run(12)

        assert result == {"partner_id": 12, "status": "synced", "details": {"id": "z1"}}
        method, path = zoho.request.call_args.args
        assert (method, path) == ("POST", f"/crm/v2/{settings.zoho_module}")
        record = zoho.request.call_args.kwargs["json"]["data"][0]
        assert record["Vendor_Name"] == "Studio 8"

    def test_zoho_error_retries(self):
        partner = Partner(id=12, partner_name="Studio 8")
        zoho = MagicMock()
        zoho.request.side_effect = ZohoError("Zoho API 500")

        with (
            patch("memopyk.workers.tasks.get_sync_session", self._session_with(partner)),
            patch("memopyk.workers.tasks.ZohoClient", return_value=zoho),
            patch.object(sync_partner_to_zoho, "retry", side_effect=Retry()) as retry,
        ):
            with pytest.raises(Retry):
                sync_partner_to_zoho.run(12)

        assert retry.call_args.kwargs["countdown"] == 60

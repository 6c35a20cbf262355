# =============================================================================
# Unit Tests — GA4 Measurement Protocol Client
# =============================================================================
#
# Outbound HTTP is served by httpx.MockTransport; no request leaves the test.
# =============================================================================

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from memopyk.config import settings
from memopyk.services.ga4 import (
    MP_COLLECT_URL,
    MP_DEBUG_URL,
    EventNotAllowedError,
    MpResult,
    build_payload,
    check_relay_events,
    send_events,
    track_conversion,
)


def _mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestCheckRelayEvents:
    def test_video_events_allowed(self):
        check_relay_events([
            {"name": "video_start"},
            {"name": "video_progress", "params": {"percent": 50}},
            {"name": "video_complete"},
        ])

    def test_other_event_rejected(self):
        with pytest.raises(EventNotAllowedError) as exc_info:
            check_relay_events([{"name": "video_start"}, {"name": "purchase"}])
        assert exc_info.value.name == "purchase"
        assert str(exc_info.value) == "event not allowed: purchase"

    def test_non_object_rejected(self):
        with pytest.raises(EventNotAllowedError):
            check_relay_events(["video_start"])


class TestBuildPayload:
    def test_keeps_client_id(self):
        payload = build_payload([{"name": "video_start"}], client_id="123.456")
        assert payload["client_id"] == "123.456"
        assert payload["non_personalized_ads"] is False
        assert payload["events"] == [{"name": "video_start"}]

    def test_generates_client_id(self):
        first = build_payload([])["client_id"]
        second = build_payload([])["client_id"]
        assert len(first) == 36
        assert first != second


class TestMpResult:
    def test_ok_range(self):
        assert MpResult(204, "", "c").ok
        assert not MpResult(400, "bad", "c").ok


class TestSendEvents:
    def test_posts_to_collect_with_params(self, monkeypatch):
        monkeypatch.setattr(settings, "ga_measurement_id", "G-TEST123")
        monkeypatch.setattr(settings, "ga_api_secret", "s3cret")
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = f"{request.url.scheme}://{request.url.host}{request.url.path}"
            seen["params"] = dict(request.url.params)
            seen["body"] = json.loads(request.content)
            return httpx.Response(204)

        async def run():
            async with _mock_client(handler) as client:
                return await send_events(
                    build_payload([{"name": "video_start"}], "c1"), client=client,
                )

        result = asyncio.run(run())

        assert result.ok
        assert result.client_id == "c1"
        assert seen["url"] == MP_COLLECT_URL
        assert seen["params"] == {"measurement_id": "G-TEST123", "api_secret": "s3cret"}
        assert seen["body"]["events"] == [{"name": "video_start"}]

    def test_debug_endpoint_returns_body(self, monkeypatch):
        monkeypatch.setattr(settings, "ga_measurement_id", "G-TEST123")
        monkeypatch.setattr(settings, "ga_api_secret", "")

        def handler(request: httpx.Request) -> httpx.Response:
            assert str(request.url).startswith(MP_DEBUG_URL)
            assert "api_secret" not in request.url.params
            return httpx.Response(200, json={"validationMessages": []})

        async def run():
            async with _mock_client(handler) as client:
                return await send_events(build_payload([]), debug=True, client=client)

        result = asyncio.run(run())
        assert json.loads(result.body) == {"validationMessages": []}

    def test_error_status_passed_through(self):
        async def run():
            async with _mock_client(lambda r: httpx.Response(400, text="bad")) as client:
                return await send_events(build_payload([]), client=client)

        result = asyncio.run(run())
        assert result.status_code == 400
        assert result.body == "bad"


class TestTrackConversion:
    def test_skipped_when_unconfigured(self, monkeypatch):
        monkeypatch.setattr(settings, "ga_measurement_id", "")

        with patch("memopyk.services.ga4.send_events", new_callable=AsyncMock) as send:
            assert asyncio.run(track_conversion("contact_form")) is False
        send.assert_not_awaited()

    def test_sends_conversion_with_value(self, monkeypatch):
        monkeypatch.setattr(settings, "ga_measurement_id", "G-TEST123")
        monkeypatch.setattr(settings, "ga_api_secret", "s3cret")

        with patch(
            "memopyk.services.ga4.send_events",
            new_callable=AsyncMock,
            return_value=MpResult(204, "", "c1"),
        ) as send:
            assert asyncio.run(track_conversion("quote", 149.0, client_id="c1")) is True

        payload = send.await_args.args[0]
        event = payload["events"][0]
        assert event["name"] == "conversion"
        assert event["params"]["conversion_name"] == "quote"
        assert event["params"]["value"] == 149.0
        assert event["params"]["currency"] == "EUR"
        assert payload["client_id"] == "c1"

    def test_transport_error_returns_false(self, monkeypatch):
        monkeypatch.setattr(settings, "ga_measurement_id", "G-TEST123")
        monkeypatch.setattr(settings, "ga_api_secret", "s3cret")

        with patch(
            "memopyk.services.ga4.send_events",
            new_callable=AsyncMock,
            side_effect=httpx.ConnectError("offline"),
        ):
            assert asyncio.run(track_conversion("quote")) is False

# =============================================================================
# GA4 Measurement Protocol Client
# =============================================================================
#
# Two callers:
# - POST /api/ga4/mp relays video player events from browsers whose
#   gtag requests are blocked (ad blockers, strict tracking protection).
#   Only the video_* events below may be relayed.
# - The analytics router sends a server-side `conversion` event for
#   valued events.
#
# The debug endpoint (/debug/mp/collect) validates payloads without
# recording them and answers with a JSON list of validation messages.
# =============================================================================

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any

import httpx

from memopyk.config import settings

logger = logging.getLogger(__name__)

MP_COLLECT_URL = "https://www.google-analytics.com/mp/collect"
MP_DEBUG_URL = "https://www.google-analytics.com/debug/mp/collect"

ALLOWED_RELAY_EVENTS = frozenset({"video_start", "video_progress", "video_complete"})


class EventNotAllowedError(ValueError):
    def __init__(self, name: Any):
        super().__init__(f"event not allowed: {name}")
        self.name = name


@dataclass
class MpResult:
    """Outcome of one Measurement Protocol POST."""

    status_code: int
    body: str
    client_id: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def check_relay_events(events: list[Any]) -> None:
    """
    Raises:
        EventNotAllowedError: for the first event outside the allowlist.
    """
    for event in events:
        name = event.get("name") if isinstance(event, dict) else None
        if name not in ALLOWED_RELAY_EVENTS:
            raise EventNotAllowedError(name)


def build_payload(
    events: list[dict[str, Any]],
    client_id: str | None = None,
    user_id: str | None = None,
) -> dict[str, Any]:
    return {
        "client_id": str(client_id or uuid.uuid4()),
        "user_id": user_id,
        "non_personalized_ads": False,
        "events": events,
    }


def collect_params() -> dict[str, str]:
    params = {"measurement_id": settings.ga_measurement_id}
    if settings.ga_api_secret:
        params["api_secret"] = settings.ga_api_secret
    return params


async def send_events(
    payload: dict[str, Any],
    debug: bool = False,
    client: httpx.AsyncClient | None = None,
) -> MpResult:
    """POST a prepared payload. Transport errors propagate as httpx.HTTPError."""
    url = MP_DEBUG_URL if debug else MP_COLLECT_URL

    async def _post(http: httpx.AsyncClient) -> httpx.Response:
        return await http.post(url, params=collect_params(), json=payload)

    if client is not None:
        response = await _post(client)
    else:
        async with httpx.AsyncClient(timeout=10) as http:
            response = await _post(http)

    if response.is_success:
        logger.info(
            "GA4 MP: %d event(s) sent for client %s",
            len(payload["events"]), payload["client_id"],
        )
    else:
        logger.error("GA4 MP error %d: %s", response.status_code, response.text)

    return MpResult(
        status_code=response.status_code,
        body=response.text,
        client_id=payload["client_id"],
    )


async def track_conversion(
    conversion_name: str,
    value: float | None = None,
    currency: str = "EUR",
    client_id: str | None = None,
    user_id: str | None = None,
) -> bool:
    """
    Server-side `conversion` event. Returns False (and logs) instead of
    raising, since it runs after the response has been sent.
    """
    if not settings.ga_measurement_id or not settings.ga_api_secret:
        logger.info("GA4 conversion skipped (not configured): %s", conversion_name)
        return False

    params: dict[str, Any] = {
        "conversion_name": conversion_name,
        "engagement_time_msec": "100",
        "session_id": str(int(time.time() * 1000)),
    }
    if value is not None:
        params["value"] = value
        params["currency"] = currency

    payload = build_payload(
        [{"name": "conversion", "params": params}], client_id, user_id,
    )
    try:
        result = await send_events(payload)
    except httpx.HTTPError as e:
        logger.warning("GA4 conversion not sent (%s): %s", conversion_name, e)
        return False
    return result.ok

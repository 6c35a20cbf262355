# =============================================================================
# Zoho CRM Client (legacy partner sync)
# =============================================================================
#
# Partners used to be tracked in Zoho CRM. When ZOHO_ENABLED is set, each
# new intake is also pushed there by the `sync_partner_to_zoho` Celery task.
#
# AUTH:
# OAuth refresh-token grant. The access token is cached in-process and
# refreshed when it is within five minutes of its (already shortened)
# expiry.
#
# Synchronous on purpose: the only caller is a Celery worker.
# =============================================================================

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from memopyk.config import settings

logger = logging.getLogger(__name__)

REFRESH_MARGIN_SECONDS = 300


class ZohoError(RuntimeError):
    """Token refresh or API call failed."""


@dataclass
class _TokenState:
    access_token: str
    expiry: float


class ZohoClient:
    """
    Args:
        http: httpx.Client to use (tests pass one with a MockTransport).
        clock: time source in seconds.
    """

    def __init__(
        self,
        base_url: str | None = None,
        auth_url: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        refresh_token: str | None = None,
        http: httpx.Client | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.base_url = base_url if base_url is not None else settings.zoho_base_url
        self.auth_url = auth_url if auth_url is not None else settings.zoho_auth_url
        self.client_id = client_id if client_id is not None else settings.zoho_client_id
        self.client_secret = (
            client_secret if client_secret is not None else settings.zoho_client_secret
        )
        self.refresh_token = (
            refresh_token if refresh_token is not None else settings.zoho_refresh_token
        )
        self._http = http or httpx.Client(timeout=30)
        self._clock = clock
        self._token: _TokenState | None = None

    def _access_token(self) -> str:
        now = self._clock()
        if self._token and now < self._token.expiry - REFRESH_MARGIN_SECONDS:
            return self._token.access_token

        logger.info("Zoho: refreshing access token")
        response = self._http.post(
            self.auth_url,
            params={
                "refresh_token": self.refresh_token,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "refresh_token",
            },
        )
        if not response.is_success:
            logger.error(
                "Zoho token refresh failed: %d %s",
                response.status_code, response.text[:300],
            )
            raise ZohoError(
                f"Zoho token refresh failed: {response.status_code}",
            )

        payload = response.json()
        if not payload.get("access_token"):
            raise ZohoError(
                "Zoho token response missing access_token: "
                f"{payload.get('error', 'Unknown error')}",
            )

        expires_in = payload.get("expires_in") or 3600
        self._token = _TokenState(
            access_token=payload["access_token"],
            expiry=now + expires_in - REFRESH_MARGIN_SECONDS,
        )
        return self._token.access_token

    def request(
        self,
        method: str,
        path: str,
        json: Any = None,
    ) -> Any:
        """
        Call the Zoho API. Relative paths are joined to the base URL.

        Returns decoded JSON for JSON responses, else the response text.

        Raises:
            ZohoError: token refresh failed or non-2xx response.
        """
        token = self._access_token()
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        response = self._http.request(
            method,
            url,
            json=json,
            headers={"Authorization": f"Zoho-oauthtoken {token}"},
        )
        if not response.is_success:
            raise ZohoError(f"Zoho API {response.status_code} {url}: {response.text}")

        if "application/json" in response.headers.get("content-type", ""):
            return response.json()
        return response.text


def partner_to_zoho_record(partner: dict[str, Any]) -> dict[str, Any]:
    """Partner dict → Zoho Vendors record."""
    return {
        "Vendor_Name": partner.get("partner_name"),
        "Email": partner.get("email"),
        "Phone": partner.get("phone"),
        "Website": partner.get("website"),
        "Street": partner.get("address"),
        "City": partner.get("city"),
        "Zip_Code": partner.get("postal_code"),
        "Country": partner.get("country"),
        "Description": partner.get("public_description"),
        "Photo_Formats": partner.get("photo_formats"),
        "Film_Formats": partner.get("film_formats"),
        "Video_Formats": partner.get("video_cassettes"),
        "Delivery": partner.get("delivery"),
        "Status": partner.get("status"),
    }

# =============================================================================
# Unit Tests — Per-IP Form Rate Limiter
# =============================================================================

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException

from memopyk.services.rate_limiter import WINDOW_SECONDS, IpRateLimiter


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _request(ip: str) -> MagicMock:
    request = MagicMock()
    request.headers = {"x-forwarded-for": ip}
    request.url.path = "/api/partners/intake"
    return request


class TestIpRateLimiter:
    def test_allows_up_to_limit(self):
        limiter = IpRateLimiter(3, clock=FakeClock())
        assert [limiter.hit("1.2.3.4") for _ in range(4)] == [True, True, True, False]

    def test_ips_counted_separately(self):
        limiter = IpRateLimiter(1, clock=FakeClock())
        assert limiter.hit("1.2.3.4")
        assert limiter.hit("5.6.7.8")
        assert not limiter.hit("1.2.3.4")

    def test_window_resets_after_a_minute(self):
        clock = FakeClock()
        limiter = IpRateLimiter(1, clock=clock)
        assert limiter.hit("1.2.3.4")
        assert not limiter.hit("1.2.3.4")

        clock.now += WINDOW_SECONDS
        assert not limiter.hit("1.2.3.4")

        clock.now += 1
        assert limiter.hit("1.2.3.4")

    def test_rejected_requests_still_count(self):
        clock = FakeClock()
        limiter = IpRateLimiter(2, clock=clock)
        for _ in range(5):
            limiter.hit("1.2.3.4")
        clock.now += 30
        assert not limiter.hit("1.2.3.4")

    def test_reset(self):
        limiter = IpRateLimiter(1, clock=FakeClock())
        limiter.hit("1.2.3.4")
        limiter.reset()
        assert limiter.hit("1.2.3.4")


class TestDependency:
    def test_raises_429_with_retry_after(self):
        limiter = IpRateLimiter(1, clock=FakeClock())
        asyncio.run(limiter(_request("9.9.9.9")))

        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(limiter(_request("9.9.9.9")))

        assert exc_info.value.status_code == 429
        detail = exc_info.value.detail
        assert (detail["ok"], detail["error"]) == (False, "rate_limited")
        assert detail["reqId"].startswith("req_")
        assert exc_info.value.headers == {"Retry-After": "60"}

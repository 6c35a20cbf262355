# =============================================================================
# Rate Limiters
# =============================================================================
#
# Two limiters with different scopes:
#
# 1. Per admin API key: Redis sorted-set sliding window (60 s). Shared by
#    every API process. If Redis is unavailable the request is allowed and a
#    warning is logged.
#
# 2. Per client IP for public form endpoints (partner intake, contact):
#    in-process fixed window of 60 s. A counter starts at the first request,
#    resets once the window has elapsed, and the request that pushes it past
#    the limit is rejected along with every later one in the same window.
#    State is per process and is lost on restart.
#
# Both raise HTTPException 429 with a Retry-After header.
# =============================================================================

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from fastapi import HTTPException, Request

from memopyk.config import settings
from memopyk.db.models import ApiKey
from memopyk.services.security import generate_request_id, get_client_ip

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60

# ---------------------------------------------------------------------------
# Per-key sliding window (Redis)
# ---------------------------------------------------------------------------

_redis_client = None


def _get_rate_limit_redis():
    """Lazily create and cache the async Redis client for rate limiting."""
    global _redis_client
    if _redis_client is None:
        import redis.asyncio as aioredis
        _redis_client = aioredis.from_url(
            settings.rate_limit_redis_url,
            decode_responses=True,
        )
    return _redis_client


async def check_rate_limit(api_key: ApiKey | None) -> None:
    """
    Check whether an admin key has exceeded its per-minute budget.

    Limit = api_key.rate_limit_rpm or settings.rate_limit_rpm.

    Raises:
        HTTPException 429: Rate limit exceeded (includes Retry-After header).

    No-op when api_key is None or has no id (anonymous/bootstrap access) and
    when Redis is unavailable.
    """
    if api_key is None or api_key.id is None:
        return

    limit = api_key.rate_limit_rpm or settings.rate_limit_rpm
    redis_key = f"ratelimit:apikey:{api_key.id}"

    try:
        r = _get_rate_limit_redis()
        now = time.time()

        pipe = r.pipeline()
        pipe.zremrangebyscore(redis_key, 0, now - WINDOW_SECONDS)
        pipe.zcard(redis_key)
        pipe.zadd(redis_key, {str(now): now})
        pipe.expire(redis_key, WINDOW_SECONDS + 10)
        results = await pipe.execute()

        current_count = results[1]  # zcard result

        if current_count >= limit:
            raise HTTPException(
                status_code=429,
                detail=f"Rate limit exceeded. "
                f"Limit: {limit} requests/minute.",
                headers={"Retry-After": str(WINDOW_SECONDS)},
            )

    except HTTPException:
        raise
    except Exception as e:
        logger.warning(
            "Rate limiter unavailable (Redis error): %s. "
            "Allowing request through.",
            e,
        )


# ---------------------------------------------------------------------------
# Per-IP fixed window (in-process)
# ---------------------------------------------------------------------------


@dataclass
class _Bucket:
    count: int
    started: float


class IpRateLimiter:
    """
    Counts requests per client IP in 60-second windows.

    Args:
        max_per_minute: Requests allowed per window.
        clock: Time source, injectable for tests.
    """

    def __init__(self, max_per_minute: int, clock=time.monotonic):
        self.max_per_minute = max_per_minute
        self._clock = clock
        self._buckets: dict[str, _Bucket] = {}

    def hit(self, key: str) -> bool:
        """Record one request for `key`. Returns False once over the limit."""
        now = self._clock()
        bucket = self._buckets.get(key)
        if bucket is None or now - bucket.started > WINDOW_SECONDS:
            bucket = _Bucket(count=0, started=now)
            self._buckets[key] = bucket

        bucket.count += 1
        self._prune(now)
        return bucket.count <= self.max_per_minute

    def reset(self) -> None:
        self._buckets.clear()

    def _prune(self, now: float) -> None:
        # Drop expired buckets so one-off visitors don't accumulate forever.
        if len(self._buckets) < 10_000:
            return
        expired = [
            key for key, bucket in self._buckets.items()
            if now - bucket.started > WINDOW_SECONDS
        ]
        for key in expired:
            del self._buckets[key]

    async def __call__(self, request: Request) -> None:
        """FastAPI dependency form: `Depends(intake_limiter)`."""
        ip = get_client_ip(request)
        if not self.hit(ip):
            req_id = generate_request_id()
            logger.warning(
                "Rate limit hit [%s]: ip=%s path=%s limit=%d/min",
                req_id, ip, request.url.path, self.max_per_minute,
            )
            raise HTTPException(
                status_code=429,
                detail={"ok": False, "error": "rate_limited", "reqId": req_id},
                headers={"Retry-After": str(WINDOW_SECONDS)},
            )


intake_limiter = IpRateLimiter(settings.intake_rate_limit_per_min)
contact_limiter = IpRateLimiter(settings.contact_rate_limit_per_min)

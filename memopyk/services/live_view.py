# =============================================================================
# Live View — Who Is Watching Right Now
# =============================================================================
#
# Video players POST a heartbeat every 15 seconds. Each heartbeat refreshes
# two Redis keys (db 3):
#
#   live:sessions            ZSET  session_id → last-seen epoch seconds
#   live:session:<id>        HASH  latest heartbeat fields, TTL = live TTL
#
# A session is "live" while its last heartbeat is younger than
# settings.live_view_ttl_seconds (45 s = three missed beats). Reads prune
# older members from the ZSET; the hashes expire on their own.
#
# If Redis is unavailable, writes report stored=False and reads return no
# viewers. The public site never fails because of live view.
# =============================================================================

from __future__ import annotations

import logging
import time
from typing import Any

from memopyk.config import settings
from memopyk.models.requests import HeartbeatRequest

logger = logging.getLogger(__name__)

SESSIONS_KEY = "live:sessions"
SESSION_KEY_PREFIX = "live:session:"

# Country code headers set by the CDN / reverse proxy, in order of trust
COUNTRY_HEADERS = ("cf-ipcountry", "x-vercel-ip-country", "x-country-code")

_redis_client = None


def create_live_view_redis():
    """New async Redis client for live view; the caller owns (and closes) it."""
    import redis.asyncio as aioredis
    return aioredis.from_url(settings.live_view_redis_url, decode_responses=True)


def _get_live_view_redis():
    """Client shared by request handlers, which all run on the server loop."""
    global _redis_client
    if _redis_client is None:
        _redis_client = create_live_view_redis()
    return _redis_client


def country_from_headers(headers: Any) -> str | None:
    for name in COUNTRY_HEADERS:
        value = headers.get(name)
        if value and value.upper() not in ("XX", "T1"):
            return value.upper()
    return None


class LiveViewStore:
    """
    Args:
        redis: redis.asyncio client; defaults to the shared lazy client.
        ttl_seconds: Liveness window.
        clock: Time source (epoch seconds).
    """

    def __init__(self, redis=None, ttl_seconds: int | None = None, clock=time.time):
        self._redis = redis
        self.ttl_seconds = ttl_seconds or settings.live_view_ttl_seconds
        self._clock = clock

    @property
    def redis(self):
        if self._redis is None:
            self._redis = _get_live_view_redis()
        return self._redis

    async def record(self, beat: HeartbeatRequest, country: str | None = None) -> bool:
        """Store one heartbeat. Returns False when Redis is unavailable."""
        now = self._clock()
        fields = {
            "sessionId": beat.session_id,
            "videoId": beat.video_id,
            "videoTitle": beat.video_title,
            "progressPct": beat.progress_pct,
            "currentTime": beat.current_time,
            "device": beat.device,
            "country": country if beat.country == "Unknown" and country else beat.country,
            "ts": beat.ts if beat.ts is not None else int(now * 1000),
            "lastSeen": now,
        }
        key = f"{SESSION_KEY_PREFIX}{beat.session_id}"
        try:
            pipe = self.redis.pipeline()
            pipe.hset(key, mapping={k: str(v) for k, v in fields.items()})
            pipe.expire(key, self.ttl_seconds)
            pipe.zadd(SESSIONS_KEY, {beat.session_id: now})
            await pipe.execute()
        except Exception as e:
            logger.warning("Live view heartbeat not stored (Redis error): %s", e)
            return False
        return True

    async def prune(self) -> int:
        """Remove sessions older than the TTL. Returns how many were removed."""
        cutoff = self._clock() - self.ttl_seconds
        try:
            return await self.redis.zremrangebyscore(SESSIONS_KEY, 0, cutoff)
        except Exception as e:
            logger.warning("Live view prune skipped (Redis error): %s", e)
            return 0

    async def current_viewers(self) -> list[dict[str, Any]]:
        """Live sessions, most recent heartbeat first."""
        await self.prune()
        try:
            session_ids = await self.redis.zrevrange(SESSIONS_KEY, 0, -1)
            if not session_ids:
                return []
            pipe = self.redis.pipeline()
            for session_id in session_ids:
                pipe.hgetall(f"{SESSION_KEY_PREFIX}{session_id}")
            rows = await pipe.execute()
        except Exception as e:
            logger.warning("Live view unavailable (Redis error): %s", e)
            return []

        return [_decode(row) for row in rows if row]


def _decode(row: dict[str, str]) -> dict[str, Any]:
    viewer: dict[str, Any] = dict(row)
    for key in ("progressPct", "currentTime", "lastSeen"):
        if key in viewer:
            viewer[key] = float(viewer[key])
    if "ts" in viewer:
        viewer["ts"] = int(float(viewer["ts"]))
    return viewer


def get_live_view_store() -> LiveViewStore:
    """FastAPI dependency."""
    return LiveViewStore()

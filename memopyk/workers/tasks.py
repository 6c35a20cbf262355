# =============================================================================
# Celery Task Definitions
# =============================================================================
#
#   update_daily_summaries  yesterday's analytics + Web Vitals rollups
#   cleanup_video_cache     enforce video and image cache age and size limits
#   prune_live_view         drop live-view sessions past the TTL
#   sync_partner_to_zoho    push one partner to the legacy CRM
#
# IMPORTANT: Celery workers are SYNCHRONOUS.
# - Use get_sync_session(), never the async engine
# - The one async dependency (redis.asyncio for live view) is driven with
#   asyncio.run() inside the task, on a client created for that run
#
# RETRY STRATEGY:
# sync_partner_to_zoho retries up to 3 times with backoff (60s, 120s, 240s)
# on Zoho or network errors. A partner id that no longer exists is not
# retried.
# =============================================================================

import asyncio
import logging
from datetime import UTC, date, datetime, timedelta

import httpx

from memopyk.config import settings
from memopyk.db.engine import get_sync_session
from memopyk.db.models import Partner
from memopyk.services.analytics import (
    update_daily_summary_sync,
    update_performance_summary_sync,
)
from memopyk.services.hybrid_storage import partner_to_dict
from memopyk.services.live_view import LiveViewStore, create_live_view_redis
from memopyk.services.media_cache import get_image_cache, get_video_cache
from memopyk.services.zoho import ZohoClient, ZohoError, partner_to_zoho_record
from memopyk.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="update_daily_summaries")
def update_daily_summaries(day: str | None = None) -> dict:
    """
    Roll up one day (default: yesterday, UTC) of events and Web Vitals.

    Args:
        day: ISO date, for backfilling a specific day by hand.
    """
    target = (
        date.fromisoformat(day) if day
        else datetime.now(UTC).date() - timedelta(days=1)
    )
    if not settings.analytics_db_enabled:
        logger.info("Analytics DB disabled; summaries for %s skipped", target)
        return {"date": target.isoformat(), "skipped": True}

    with get_sync_session() as session:
        values = update_daily_summary_sync(session, target)
        pages = update_performance_summary_sync(session, target)

    logger.info(
        "Summaries for %s: %d events, %d pages with vitals",
        target, values["total_events"], pages,
    )
    return {
        "date": target.isoformat(),
        "total_events": values["total_events"],
        "performance_pages": pages,
    }


@celery_app.task(name="cleanup_video_cache")
def cleanup_video_cache() -> dict:
    """Enforce the age and size limits of the video and image caches."""
    removed = 0
    freed = 0
    for cache in (get_video_cache(), get_image_cache()):
        result = cache.cleanup()
        removed += len(result["removed"])
        freed += result["freedBytes"]
    return {"removed": removed, "freedBytes": freed}


async def _prune_live_view() -> int:
    # Each asyncio.run() has its own loop, so the client cannot be shared
    # between runs.
    client = create_live_view_redis()
    try:
        return await LiveViewStore(redis=client).prune()
    finally:
        await client.aclose()


@celery_app.task(name="prune_live_view")
def prune_live_view() -> int:
    return asyncio.run(_prune_live_view())


@celery_app.task(
    bind=True,
    name="sync_partner_to_zoho",
    max_retries=3,
    default_retry_delay=60,
)
def sync_partner_to_zoho(self, partner_id: int) -> dict:
    """
    Create the partner as a record in the configured Zoho module.

    Returns:
        dict with partner_id and the Zoho response's first `details` block.
    """
    with get_sync_session() as session:
        partner = session.get(Partner, partner_id)
        if partner is None:
            logger.warning("Zoho sync: partner %d not found, skipping", partner_id)
            return {"partner_id": partner_id, "status": "missing"}
        record = partner_to_zoho_record(partner_to_dict(partner))

    try:
        response = ZohoClient().request(
            "POST",
            f"/crm/v2/{settings.zoho_module}",
            json={"data": [record]},
        )
    except (ZohoError, httpx.HTTPError) as exc:
        logger.warning(
            "Zoho sync failed for partner %d (attempt %d): %s",
            partner_id, self.request.retries + 1, exc,
        )
        raise self.retry(exc=exc, countdown=60 * 2 ** self.request.retries)

    details = None
    if isinstance(response, dict) and response.get("data"):
        details = response["data"][0].get("details")

    logger.info("Partner %d synced to Zoho: %s", partner_id, details)
    return {"partner_id": partner_id, "status": "synced", "details": details}

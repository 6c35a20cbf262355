# =============================================================================
# Celery Application Configuration
# =============================================================================
#
# Workers run the jobs the API must not wait for and the nightly
# housekeeping:
#   - Zoho CRM push for each new partner (retried on failure)
#   - analytics / Web Vitals rollups for the previous day
#   - video cache cleanup
#   - live-view pruning
#
#   Broker  = Redis db 0
#   Results = Redis db 1
#
# Start a worker with the beat scheduler embedded:
#   celery -A memopyk.workers.celery_app worker -B --loglevel=info
# =============================================================================

from celery import Celery
from celery.schedules import crontab

from memopyk.config import settings

celery_app = Celery(
    "memopyk.workers",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    # --- Serialization ---
    # JSON only; task arguments are ids and dates
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # --- Reliability ---
    # Ack after completion so a crashed worker's task is re-queued
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,

    # --- Timeouts ---
    task_soft_time_limit=120,
    task_time_limit=300,

    # --- Results ---
    result_expires=3600,

    timezone="UTC",

    # --- Task Discovery ---
    include=["memopyk.workers.tasks"],

    # --- Schedule ---
    beat_schedule={
        "analytics-daily-summaries": {
            "task": "update_daily_summaries",
            "schedule": crontab(hour=0, minute=15),
        },
        "video-cache-cleanup": {
            "task": "cleanup_video_cache",
            "schedule": crontab(hour=3, minute=0),
        },
        "live-view-prune": {
            "task": "prune_live_view",
            "schedule": 60.0,
        },
    },
)

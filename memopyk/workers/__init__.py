# =============================================================================
# Workers Package — Celery Background Tasks
# =============================================================================
#   - celery_app.py: Celery application configuration and beat schedule
#   - tasks.py: scheduled rollups, cache/live-view housekeeping, Zoho sync
#
# Request-scoped fire-and-forget work (analytics writes, notification
# emails) uses FastAPI BackgroundTasks instead. Celery carries the work
# that must run on a schedule or be retried.
# =============================================================================

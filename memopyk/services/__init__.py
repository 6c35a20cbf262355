# =============================================================================
# Services Package — Business Logic
# =============================================================================
# Framework-light modules used by the routers and the Celery tasks. Pure
# functions where possible so they can be unit tested without a database.
# =============================================================================

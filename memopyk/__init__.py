# =============================================================================
# MEMOPYK Back Office
# =============================================================================
# HTTP back office for the MEMOPYK marketing site (FR/EN): partner directory
# and intake, contact leads, FAQs, SEO metadata, analytics intake, live-view
# tracking, media cache and the read-only blog bridge to Directus.
#
# Package structure:
#   memopyk/
#   ├── api/          → FastAPI routers, auth dependencies, middleware
#   ├── db/           → Database engine, sessions, and ORM models
#   ├── models/       → Pydantic V2 request/response schemas
#   ├── services/     → Business logic and outbound clients (GA4, Resend,
#   │                    Directus, Zoho), hybrid storage, caches
#   └── workers/      → Celery app, beat schedule and tasks
# =============================================================================

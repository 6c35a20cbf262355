# =============================================================================
# MEMOPYK Back Office — FastAPI Application
# =============================================================================
#
# Run locally:
#   uvicorn memopyk.main:app --reload
#
# Middleware (outermost first):
#   CORS → audit logging (admin requests) → SEO redirects → routers
#
# Routers that keep the SPA's historical response shapes raise
# HTTPException with a dict detail; the handler below sends such a dict as
# the whole body ({"error": ...}) instead of wrapping it in {"detail": ...}.
# =============================================================================

import logging

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from memopyk.api import (
    admin,
    analytics,
    blog,
    contacts,
    csrf,
    faqs,
    media,
    partners,
    seo,
    tracker,
)
from memopyk.api.audit import AuditLoggingMiddleware
from memopyk.config import settings
from memopyk.models.responses import HealthResponse

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=(
        "Partner directory and intake, FAQs, SEO, analytics and media "
        "endpoints behind memopyk.com."
    ),
)


@app.exception_handler(StarletteHTTPException)
async def dict_detail_handler(request: Request, exc: StarletteHTTPException):
    if isinstance(exc.detail, dict):
        return JSONResponse(
            exc.detail, status_code=exc.status_code, headers=exc.headers,
        )
    return await http_exception_handler(request, exc)


app.add_middleware(seo.SeoRedirectMiddleware)
app.add_middleware(AuditLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(csrf.router)
app.include_router(partners.router)
app.include_router(contacts.router)
app.include_router(contacts.admin_router)
app.include_router(faqs.router)
app.include_router(faqs.admin_router)
app.include_router(seo.router)
app.include_router(seo.admin_router)
app.include_router(analytics.router)
app.include_router(analytics.admin_router)
app.include_router(tracker.router)
app.include_router(media.router)
app.include_router(media.admin_router)
app.include_router(media.image_admin_router)
app.include_router(blog.router)
app.include_router(admin.router)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health() -> HealthResponse:
    """Liveness check for the container orchestrator."""
    return HealthResponse(version=settings.app_version, service="memopyk-api")

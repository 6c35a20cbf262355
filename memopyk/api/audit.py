# =============================================================================
# Audit Logging Middleware — Admin Request Trail
# =============================================================================
#
# Records admin activity to the audit_logs table: who (key id and name),
# what (method, path), when, from where, with which outcome and how long it
# took.
#
# Only admin traffic is recorded: requests that passed admin
# authentication (request.state.audited, set by `authenticate`) and any
# request under /api/admin, including rejected ones. Public site traffic
# (page views, heartbeats, analytics events) would flood the table.
#
# Writes use their own session after the response is produced. A failed
# write is logged and never affects the response.
# =============================================================================

from __future__ import annotations

import logging
import time

from starlette.middleware.base import (
    BaseHTTPMiddleware,
    RequestResponseEndpoint,
)
from starlette.requests import Request
from starlette.responses import Response

from memopyk.config import settings
from memopyk.db.engine import async_session_factory
from memopyk.db.models import AuditLog
from memopyk.services.security import get_client_ip

logger = logging.getLogger(__name__)

ADMIN_PREFIX = "/api/admin"


def endpoint_name(path: str) -> str:
    """Feature name for grouping: /api/admin/keys/3 → "keys", /api/partners → "partners"."""
    parts = [p for p in path.strip("/").split("/") if p]
    if parts[:2] == ["api", "admin"]:
        parts = parts[2:]
    elif parts[:1] == ["api"]:
        parts = parts[1:]
    return parts[0] if parts else ""


class AuditLoggingMiddleware(BaseHTTPMiddleware):
    """Writes one AuditLog row per admin request."""

    def __init__(self, app, session_factory=None):
        super().__init__(app)
        self._session_factory = session_factory or async_session_factory

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        if not settings.audit_logging_enabled:
            return await call_next(request)

        start_time = time.monotonic()
        response = await call_next(request)
        elapsed_ms = int((time.monotonic() - start_time) * 1000)

        path = request.url.path
        audited = getattr(request.state, "audited", False)
        if not audited and not path.startswith(ADMIN_PREFIX):
            return response

        api_key = getattr(request.state, "api_key", None)

        try:
            async with self._session_factory() as session:
                session.add(AuditLog(
                    api_key_id=api_key.id if api_key else None,
                    api_key_name=api_key.name if api_key else None,
                    endpoint=endpoint_name(path),
                    method=request.method,
                    path=path[:500],
                    client_ip=get_client_ip(request)[:45],
                    status_code=response.status_code,
                    response_time_ms=elapsed_ms,
                ))
                await session.commit()
        except Exception as e:
            logger.warning("Failed to write audit log: %s", e)

        return response

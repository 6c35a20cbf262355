# =============================================================================
# CSRF Token Endpoint
# =============================================================================
# GET /api/csrf — issue a double-submit token for the public forms.
# =============================================================================

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from memopyk.config import settings
from memopyk.services.security import CSRF_COOKIE_NAME, generate_csrf_token

router = APIRouter(tags=["Security"])


@router.get(
    "/api/csrf",
    summary="Issue a CSRF token",
    description=(
        "Sets the `csrfToken` cookie and returns the same value. Forms send "
        "it back as `csrfToken` in the body or the `X-CSRF-Token` header."
    ),
)
async def issue_csrf_token() -> JSONResponse:
    token = generate_csrf_token()
    response = JSONResponse({"csrfToken": token})
    # The SPA reads the token from the JSON body; the cookie is the
    # server-side half of the pair
    response.set_cookie(
        CSRF_COOKIE_NAME,
        token,
        httponly=False,
        samesite="lax",
        secure=settings.csrf_cookie_secure,
        path="/",
    )
    return response

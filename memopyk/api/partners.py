# =============================================================================
# Partners API — Directory, Intake, Administration
# =============================================================================
#
# Public:
#   POST /api/partners/intake          business asks to be listed
#   GET  /api/partners?transform=true  directory cards for the map
#
# Admin (Bearer key, "partners" scope):
#   GET    /api/partners               raw rows for the admin table
#   POST   /api/partners/create        manual entry
#   PATCH  /api/partners/{id}/update
#   DELETE /api/partners/{id}
#   GET    /api/partners/download      partner-submissions.xlsx
#   POST   /api/partners/import-tsv    paste from the legacy spreadsheet
#   GET    /api/partners/summary       latest submissions
#
# Intake responses use the `{ok, error, reqId}` envelope the form expects;
# every envelope carries the request id so a visitor's report can be
# matched to the server log line.
#
# Storage goes through HybridStorage (DB first, JSON mirror fallback).
# =============================================================================

from __future__ import annotations

import logging
from typing import Any

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    HTTPException,
    Query,
    Request,
    Response,
)
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from memopyk.api.deps import (
    _bearer_scheme,
    authenticate,
    check_scope,
    require_scope,
)
from memopyk.config import settings
from memopyk.db.engine import get_async_session
from memopyk.models.requests import (
    PartnerCreateRequest,
    PartnerIntake,
    PartnerUpdateRequest,
    TsvImportRequest,
)
from memopyk.services.email import send_partner_notification
from memopyk.services.hybrid_storage import (
    HybridStorage,
    InvalidPartnerError,
    PartnerNotFoundError,
    get_hybrid_storage,
)
from memopyk.services.partners import (
    EXPORT_FILENAME,
    XLSX_MEDIA_TYPE,
    TsvFormatError,
    build_partners_workbook,
    clean_updates,
    intake_to_record,
    manual_to_record,
    paginate,
    parse_tsv,
    summarize,
    to_directory_card,
    tsv_row_to_record,
)
from memopyk.services.rate_limiter import intake_limiter
from memopyk.services.security import (
    CSRF_COOKIE_NAME,
    generate_request_id,
    get_client_ip,
    submitted_csrf_token,
    verify_captcha,
    verify_csrf,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/partners", tags=["Partners"])

_admin = [Depends(require_scope("partners"))]


def _flag(value: str | None) -> bool | None:
    """Query-string tri-state: "true" / "false" / anything else = no filter."""
    if value == "true":
        return True
    if value == "false":
        return False
    return None


def _int_or(value: str | None, default: int) -> int:
    try:
        parsed = int(value) if value is not None else 0
    except ValueError:
        return default
    return parsed or default


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# POST /api/partners/intake — public form
# ---------------------------------------------------------------------------


@router.post(
    "/intake",
    summary="Submit a partner listing request",
    dependencies=[Depends(intake_limiter)],
    responses={
        400: {"description": "bad_csrf, invalid_payload or captcha_failed"},
        429: {"description": "rate_limited"},
    },
)
async def partner_intake(
    request: Request,
    background_tasks: BackgroundTasks,
    storage: HybridStorage = Depends(get_hybrid_storage),
) -> JSONResponse:
    req_id = generate_request_id()

    def reply(status_code: int, **body: Any) -> JSONResponse:
        return JSONResponse({**body, "reqId": req_id}, status_code=status_code)

    body = await _read_json(request)
    token = submitted_csrf_token(request, body if isinstance(body, dict) else None)
    if not verify_csrf(request.cookies.get(CSRF_COOKIE_NAME), token):
        return reply(400, ok=False, error="bad_csrf")

    try:
        intake = PartnerIntake.model_validate(body)
    except ValidationError as e:
        return reply(
            400,
            ok=False,
            error="invalid_payload",
            details=e.errors(
                include_url=False, include_context=False, include_input=False,
            ),
        )

    if not await verify_captcha(intake.captcha_token, get_client_ip(request)):
        return reply(400, ok=False, error="captcha_failed")

    try:
        partner = await storage.create_partner(intake_to_record(intake))
    except Exception:
        logger.exception("Partner intake failed [%s]", req_id)
        return reply(500, ok=False, error="server_error")

    logger.info(
        "Partner intake saved [%s]: id=%s, name='%s'",
        req_id, partner["id"], partner["partner_name"],
    )

    background_tasks.add_task(send_partner_notification, intake)

    if settings.zoho_enabled:
        from memopyk.workers.tasks import sync_partner_to_zoho
        try:
            sync_partner_to_zoho.delay(partner["id"])
        except Exception:
            logger.exception("Could not queue Zoho sync [%s]", req_id)

    return reply(200, ok=True, saved="supabase", partnerId=partner["id"])


# ---------------------------------------------------------------------------
# GET /api/partners — directory (public) or raw rows (admin)
# ---------------------------------------------------------------------------


@router.get("", summary="List partners")
async def list_partners(
    request: Request,
    page: str | None = Query(default=None),
    limit: str | None = Query(default=None),
    search: str | None = Query(default=None),
    status: str | None = Query(default=None),
    is_active: str | None = Query(default=None),
    show_on_map: str | None = Query(default=None),
    transform: str | None = Query(
        default=None, description='"true" returns public directory cards',
    ),
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    session: AsyncSession = Depends(get_async_session),
    storage: HybridStorage = Depends(get_hybrid_storage),
) -> dict[str, Any]:
    public = transform == "true"
    if not public:
        check_scope(await authenticate(request, credentials, session), "partners")

    partners = await storage.get_partners(
        search=search,
        status=status,
        is_active=_flag(is_active),
        show_on_map=_flag(show_on_map),
    )
    if public:
        partners = [to_directory_card(p) for p in partners]

    return paginate(partners, _int_or(page, 1), _int_or(limit, 1000))


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


@router.post("/create", summary="Create a partner", dependencies=_admin)
async def create_partner(
    request: PartnerCreateRequest,
    storage: HybridStorage = Depends(get_hybrid_storage),
) -> dict[str, Any]:
    try:
        partner = await storage.create_partner(manual_to_record(request))
    except InvalidPartnerError as e:
        raise HTTPException(
            status_code=400, detail={"error": "Invalid partner data", "details": str(e)},
        ) from None
    return {"ok": True, "message": "Partner created successfully", "partner": partner}


@router.patch("/{partner_id}/update", summary="Update a partner", dependencies=_admin)
async def update_partner(
    partner_id: int,
    request: PartnerUpdateRequest,
    storage: HybridStorage = Depends(get_hybrid_storage),
) -> dict[str, Any]:
    updates = clean_updates(request.model_dump(exclude_unset=True))
    try:
        partner = await storage.update_partner(partner_id, updates)
    except PartnerNotFoundError:
        raise HTTPException(
            status_code=404, detail={"error": "Partner not found"},
        ) from None
    except InvalidPartnerError as e:
        raise HTTPException(
            status_code=400, detail={"error": "Invalid partner data", "details": str(e)},
        ) from None
    return {"ok": True, "message": "Partner updated successfully", "partner": partner}


@router.delete("/{partner_id}", summary="Delete a partner", dependencies=_admin)
async def delete_partner(
    partner_id: int,
    storage: HybridStorage = Depends(get_hybrid_storage),
) -> dict[str, Any]:
    try:
        await storage.delete_partner(partner_id)
    except PartnerNotFoundError:
        raise HTTPException(
            status_code=404, detail={"error": "Partner not found"},
        ) from None
    return {"ok": True, "message": "Partner deleted successfully"}


@router.get(
    "/download",
    summary="Download all partners as Excel",
    dependencies=_admin,
    response_class=Response,
)
async def download_partners(
    storage: HybridStorage = Depends(get_hybrid_storage),
) -> Response:
    partners = await storage.get_partners()
    if not partners:
        raise HTTPException(
            status_code=404, detail={"error": "No partner submissions found"},
        )

    content = build_partners_workbook(partners)
    logger.info("Exported %d partners to Excel", len(partners))
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"',
        },
    )


@router.post("/import-tsv", summary="Import partners from TSV", dependencies=_admin)
async def import_tsv(
    request: TsvImportRequest,
    storage: HybridStorage = Depends(get_hybrid_storage),
) -> dict[str, Any]:
    try:
        rows = parse_tsv(request.tsv_text)
    except TsvFormatError as e:
        raise HTTPException(status_code=400, detail={"error": str(e)}) from None

    imported = 0
    errors: list[str] = []
    for number, row in enumerate(rows, start=1):
        try:
            partner = await storage.create_partner(tsv_row_to_record(row))
        except ValueError as e:
            errors.append(f"Row {number}: {e}")
            continue
        imported += 1
        logger.info(
            "Imported partner row %d: %s (id=%s)",
            number, partner["partner_name"], partner["id"],
        )

    if imported == 0:
        raise HTTPException(
            status_code=400,
            detail={"error": "No partners imported", "details": errors},
        )

    result: dict[str, Any] = {"ok": True, "count": imported}
    if errors:
        result["errors"] = errors
    return result


@router.get("/summary", summary="Latest partner submissions", dependencies=_admin)
async def partner_summary(
    storage: HybridStorage = Depends(get_hybrid_storage),
) -> dict[str, Any]:
    return summarize(await storage.get_partners())

# =============================================================================
# Contacts API — Enquiry Form
# =============================================================================
#
# POST /api/contacts                 public, rate limited per IP
# GET  /api/admin/contacts?status=   admin ("contacts" scope)
# PATCH/DELETE /api/admin/contacts/{id}
# =============================================================================

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from memopyk.api.deps import require_scope
from memopyk.db.engine import get_async_session
from memopyk.db.models import Contact
from memopyk.models.requests import ContactCreateRequest, ContactUpdateRequest
from memopyk.models.responses import ContactListResponse, ContactResponse
from memopyk.services.rate_limiter import contact_limiter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Contacts"])
admin_router = APIRouter(
    prefix="/api/admin/contacts",
    tags=["Contacts"],
    dependencies=[Depends(require_scope("contacts"))],
)


@router.post(
    "/api/contacts",
    summary="Submit the contact form",
    dependencies=[Depends(contact_limiter)],
)
async def create_contact(
    request: ContactCreateRequest,
    session: AsyncSession = Depends(get_async_session),
) -> dict[str, Any]:
    contact = Contact(**request.model_dump())
    session.add(contact)
    # Commit early to get the generated id
    await session.commit()

    logger.info("Contact received: id=%d, package=%s", contact.id, contact.package)
    return {"success": True, "id": contact.id}


@admin_router.get("", response_model=ContactListResponse, summary="List contacts")
async def list_contacts(
    status: str | None = Query(default=None, description="new, contacted or closed"),
    session: AsyncSession = Depends(get_async_session),
) -> ContactListResponse:
    stmt = select(Contact).order_by(Contact.created_at.desc())
    if status:
        stmt = stmt.where(Contact.status == status)

    contacts = list((await session.execute(stmt)).scalars().all())
    return ContactListResponse(
        contacts=[ContactResponse.model_validate(c) for c in contacts],
        total=len(contacts),
    )


@admin_router.patch(
    "/{contact_id}", response_model=ContactResponse, summary="Set contact status",
)
async def update_contact(
    contact_id: int,
    request: ContactUpdateRequest,
    session: AsyncSession = Depends(get_async_session),
) -> ContactResponse:
    contact = await _get_contact_or_404(session, contact_id)
    contact.status = request.status
    await session.commit()
    await session.refresh(contact)
    return ContactResponse.model_validate(contact)


@admin_router.delete("/{contact_id}", status_code=204, summary="Delete a contact")
async def delete_contact(
    contact_id: int,
    session: AsyncSession = Depends(get_async_session),
) -> None:
    contact = await _get_contact_or_404(session, contact_id)
    await session.delete(contact)
    await session.commit()
    logger.info("Contact deleted: id=%d", contact_id)


async def _get_contact_or_404(session: AsyncSession, contact_id: int) -> Contact:
    contact = await session.get(Contact, contact_id)
    if contact is None:
        raise HTTPException(status_code=404, detail=f"Contact {contact_id} not found.")
    return contact

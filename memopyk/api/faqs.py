# =============================================================================
# FAQ API — Sections and Questions
# =============================================================================
#
# Public (active rows only):
#   GET /api/faq-sections
#   GET /api/faqs?section_id=
#
# Admin ("faqs" scope):
#   /api/admin/faq-sections[/{id}]   GET, POST, PATCH, DELETE
#   /api/admin/faqs[/{id}]           GET, POST, PATCH, DELETE
#
# PATCHing order_index swaps with the sibling that holds the target index
# (see services/faqs.py). Deleting a section deletes its questions.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from memopyk.api.deps import require_scope
from memopyk.db.engine import get_async_session
from memopyk.db.models import Faq, FaqSection
from memopyk.models.requests import (
    FaqCreateRequest,
    FaqSectionCreateRequest,
    FaqSectionUpdateRequest,
    FaqUpdateRequest,
)
from memopyk.models.responses import FaqResponse, FaqSectionResponse
from memopyk.services.faqs import next_order_index, swap_order_index

logger = logging.getLogger(__name__)

router = APIRouter(tags=["FAQ"])
admin_router = APIRouter(
    prefix="/api/admin",
    tags=["FAQ"],
    dependencies=[Depends(require_scope("faqs"))],
)


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------


@router.get("/api/faq-sections", response_model=list[FaqSectionResponse])
async def public_sections(
    session: AsyncSession = Depends(get_async_session),
) -> list[FaqSection]:
    result = await session.execute(
        select(FaqSection)
        .where(FaqSection.is_active.is_(True))
        .order_by(FaqSection.order_index, FaqSection.id),
    )
    return list(result.scalars().all())


@router.get("/api/faqs", response_model=list[FaqResponse])
async def public_faqs(
    section_id: int | None = Query(default=None),
    session: AsyncSession = Depends(get_async_session),
) -> list[Faq]:
    stmt = (
        select(Faq)
        .where(Faq.is_active.is_(True))
        .order_by(Faq.section_id, Faq.order_index, Faq.id)
    )
    if section_id is not None:
        stmt = stmt.where(Faq.section_id == section_id)
    return list((await session.execute(stmt)).scalars().all())


# ---------------------------------------------------------------------------
# Admin — sections
# ---------------------------------------------------------------------------


@admin_router.get("/faq-sections", response_model=list[FaqSectionResponse])
async def list_sections(
    session: AsyncSession = Depends(get_async_session),
) -> list[FaqSection]:
    result = await session.execute(
        select(FaqSection).order_by(FaqSection.order_index, FaqSection.id),
    )
    return list(result.scalars().all())


@admin_router.post(
    "/faq-sections", response_model=FaqSectionResponse, status_code=201,
)
async def create_section(
    request: FaqSectionCreateRequest,
    session: AsyncSession = Depends(get_async_session),
) -> FaqSection:
    data = request.model_dump()
    if data["order_index"] is None:
        existing = await session.execute(select(FaqSection.order_index))
        data["order_index"] = next_order_index(existing.scalars().all())

    section = FaqSection(**data)
    session.add(section)
    await session.commit()
    await session.refresh(section)

    logger.info("FAQ section created: id=%d, key='%s'", section.id, section.key)
    return section


@admin_router.patch("/faq-sections/{section_id}", response_model=FaqSectionResponse)
async def update_section(
    section_id: int,
    request: FaqSectionUpdateRequest,
    session: AsyncSession = Depends(get_async_session),
) -> FaqSection:
    section = await _get_or_404(session, FaqSection, section_id)
    updates = request.model_dump(exclude_unset=True)

    target_index = updates.pop("order_index", None)
    if target_index is not None:
        siblings = (await session.execute(select(FaqSection))).scalars().all()
        swap_order_index(section, target_index, siblings)

    for field, value in updates.items():
        setattr(section, field, value)

    await session.commit()
    await session.refresh(section)
    return section


@admin_router.delete("/faq-sections/{section_id}", status_code=204)
async def delete_section(
    section_id: int,
    session: AsyncSession = Depends(get_async_session),
) -> None:
    section = await _get_or_404(session, FaqSection, section_id)
    # Questions go with it (relationship cascade)
    await session.delete(section)
    await session.commit()
    logger.info("FAQ section deleted: id=%d", section_id)


# ---------------------------------------------------------------------------
# Admin — questions
# ---------------------------------------------------------------------------


@admin_router.get("/faqs", response_model=list[FaqResponse])
async def list_faqs(
    section_id: int | None = Query(default=None),
    session: AsyncSession = Depends(get_async_session),
) -> list[Faq]:
    stmt = select(Faq).order_by(Faq.section_id, Faq.order_index, Faq.id)
    if section_id is not None:
        stmt = stmt.where(Faq.section_id == section_id)
    return list((await session.execute(stmt)).scalars().all())


@admin_router.post("/faqs", response_model=FaqResponse, status_code=201)
async def create_faq(
    request: FaqCreateRequest,
    session: AsyncSession = Depends(get_async_session),
) -> Faq:
    await _get_or_404(session, FaqSection, request.section_id)

    data = request.model_dump()
    if data["order_index"] is None:
        existing = await session.execute(
            select(Faq.order_index).where(Faq.section_id == request.section_id),
        )
        data["order_index"] = next_order_index(existing.scalars().all())

    faq = Faq(**data)
    session.add(faq)
    await session.commit()
    await session.refresh(faq)

    logger.info("FAQ created: id=%d, section=%d", faq.id, faq.section_id)
    return faq


@admin_router.patch("/faqs/{faq_id}", response_model=FaqResponse)
async def update_faq(
    faq_id: int,
    request: FaqUpdateRequest,
    session: AsyncSession = Depends(get_async_session),
) -> Faq:
    faq = await _get_or_404(session, Faq, faq_id)
    updates = request.model_dump(exclude_unset=True)
    if "section_id" in updates and updates["section_id"] != faq.section_id:
        if await session.get(FaqSection, updates["section_id"]) is None:
            raise HTTPException(
                status_code=400,
                detail=f"FaqSection {updates['section_id']} does not exist.",
            )

    target_index = updates.pop("order_index", None)
    for field, value in updates.items():
        setattr(faq, field, value)

    if target_index is not None:
        siblings = await session.execute(
            select(Faq).where(Faq.section_id == faq.section_id),
        )
        swap_order_index(faq, target_index, siblings.scalars().all())

    await session.commit()
    await session.refresh(faq)
    return faq


@admin_router.delete("/faqs/{faq_id}", status_code=204)
async def delete_faq(
    faq_id: int,
    session: AsyncSession = Depends(get_async_session),
) -> None:
    faq = await _get_or_404(session, Faq, faq_id)
    await session.delete(faq)
    await session.commit()


async def _get_or_404(session: AsyncSession, model, row_id: int):
    row = await session.get(model, row_id)
    if row is None:
        raise HTTPException(
            status_code=404, detail=f"{model.__name__} {row_id} not found.",
        )
    return row

# =============================================================================
# Hybrid Partner Storage — PostgreSQL First, JSON Mirror as Fallback
# =============================================================================
#
# The partner directory must keep working when the hosted database is
# unreachable (pooler restarts, maintenance windows). Every successful
# database write re-exports the whole `partners` table to
# `<data_dir>/partners.json`; when the database is unavailable, reads and
# writes go to that file instead.
#
# READ PATH:   DB ──(unavailable)──▶ partners.json
# WRITE PATH:  DB ──ok──▶ mirror table to partners.json
#                 ├─(unavailable)──▶ edit partners.json
#                 └─(rejected: IntegrityError/DataError)──▶ InvalidPartnerError
#
# "Unavailable" means the database could not be reached or the connection
# dropped: OperationalError, InterfaceError, pool timeouts, OSError, or any
# DBAPIError flagged connection_invalidated. A row the database rejects is
# never written to the JSON file: the next mirror would overwrite it.
#
# Partners are plain dicts at this boundary (datetimes as ISO strings) so
# both paths return the same shape to the routers.
#
# PartnerNotFoundError and InvalidPartnerError are domain errors and
# propagate from both paths; they never trigger the fallback.
# =============================================================================

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import (
    DataError,
    DBAPIError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from memopyk.config import settings
from memopyk.db.models import Partner

logger = logging.getLogger(__name__)

PARTNERS_FILE = "partners.json"


class PartnerNotFoundError(LookupError):
    """No partner with the requested id exists."""

    def __init__(self, partner_id: int):
        super().__init__(f"Partner {partner_id} not found")
        self.partner_id = partner_id


class InvalidPartnerError(ValueError):
    """The database rejected the record (constraint or value too long)."""


def db_unavailable(exc: BaseException) -> bool:
    """True for errors that mean "database unreachable", not "bad row"."""
    if isinstance(exc, (OperationalError, InterfaceError, PoolTimeoutError, OSError)):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


def _raise_unless_unavailable(exc: BaseException) -> None:
    if db_unavailable(exc):
        return
    if isinstance(exc, (IntegrityError, DataError)):
        raise InvalidPartnerError(str(exc.orig)) from exc
    raise exc


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


_COLUMNS = [column.key for column in Partner.__table__.columns]


def partner_to_dict(partner: Partner) -> dict[str, Any]:
    """ORM row → JSON-ready dict (datetimes become ISO strings)."""
    data = {}
    for key in _COLUMNS:
        value = getattr(partner, key)
        if isinstance(value, datetime):
            value = value.isoformat()
        data[key] = value
    return data


def _jsonable(record: dict[str, Any]) -> dict[str, Any]:
    return {
        key: value.isoformat() if isinstance(value, datetime) else value
        for key, value in record.items()
    }


def _to_column_value(key: str, value: Any) -> Any:
    # DateTime columns need datetime objects, the JSON mirror holds strings
    if key in ("timestamp", "created_at", "updated_at") and isinstance(value, str):
        return datetime.fromisoformat(value)
    return value


def matches_filters(
    partner: dict[str, Any],
    search: str | None = None,
    status: str | None = None,
    is_active: bool | None = None,
    show_on_map: bool | None = None,
) -> bool:
    """Directory filters, applied identically to DB rows and JSON entries."""
    if search:
        needle = search.lower()
        name = (partner.get("partner_name") or "").lower()
        city = (partner.get("city") or "").lower()
        if needle not in name and needle not in city:
            return False
    if status and partner.get("status") != status:
        return False
    if is_active is not None and bool(partner.get("is_active")) != is_active:
        return False
    if show_on_map is not None and bool(partner.get("show_on_map")) != show_on_map:
        return False
    return True


# ---------------------------------------------------------------------------
# JSON mirror
# ---------------------------------------------------------------------------


class JsonBackupStore:
    """
    Reads and atomically rewrites `partners.json`.

    A missing file reads as an empty list. Writes go to a temporary file in
    the same directory which then replaces the target, so readers never see
    a partial file.
    """

    def __init__(self, data_dir: str | Path):
        self.path = Path(data_dir) / PARTNERS_FILE

    def load(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        with self.path.open(encoding="utf-8") as f:
            return json.load(f)

    def save(self, partners: list[dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=".partners-", suffix=".json",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(partners, f, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


# ---------------------------------------------------------------------------
# Hybrid storage
# ---------------------------------------------------------------------------


class HybridStorage:
    """
    Partner repository over the database with a JSON fallback.

    Args:
        session_factory: Callable returning an AsyncSession context manager
            (normally `async_session_factory`).
        data_dir: Directory holding the JSON mirror.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        data_dir: str | Path,
    ):
        self._session_factory = session_factory
        self.backup = JsonBackupStore(data_dir)

    # -- reads ---------------------------------------------------------------

    async def get_partners(
        self,
        search: str | None = None,
        status: str | None = None,
        is_active: bool | None = None,
        show_on_map: bool | None = None,
    ) -> list[dict[str, Any]]:
        """All matching partners, newest (highest id) first."""
        try:
            async with self._session_factory() as session:
                stmt = select(Partner).order_by(Partner.id.desc())
                if status:
                    stmt = stmt.where(Partner.status == status)
                if is_active is not None:
                    stmt = stmt.where(Partner.is_active == is_active)
                if show_on_map is not None:
                    stmt = stmt.where(Partner.show_on_map == show_on_map)
                result = await session.execute(stmt)
                partners = [partner_to_dict(p) for p in result.scalars().all()]
        except (SQLAlchemyError, OSError) as e:
            if not db_unavailable(e):
                raise
            logger.warning("Partner DB read failed, using JSON backup: %s", e)
            partners = sorted(
                self.backup.load(), key=lambda p: p.get("id") or 0, reverse=True,
            )

        return [
            p for p in partners
            if matches_filters(p, search, status, is_active, show_on_map)
        ]

    # -- writes --------------------------------------------------------------

    async def create_partner(self, record: dict[str, Any]) -> dict[str, Any]:
        """
        Insert a partner record and return it with its id.

        Raises:
            InvalidPartnerError: the database rejected the record.
        """
        try:
            async with self._session_factory() as session:
                partner = Partner(**{
                    k: _to_column_value(k, v) for k, v in record.items()
                })
                session.add(partner)
                await session.commit()
                await session.refresh(partner)
                created = partner_to_dict(partner)
                await self._mirror(session)
        except (SQLAlchemyError, OSError) as e:
            _raise_unless_unavailable(e)
            logger.warning("Partner DB insert failed, writing JSON backup: %s", e)
            return self._create_in_backup(record)

        logger.info(
            "Partner created: id=%d, name='%s'",
            created["id"], created["partner_name"],
        )
        return created

    async def update_partner(
        self, partner_id: int, updates: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Apply `updates` to one partner.

        Raises:
            PartnerNotFoundError: no partner with that id.
            InvalidPartnerError: the database rejected the new values.
        """
        try:
            async with self._session_factory() as session:
                partner = await session.get(Partner, partner_id)
                if partner is None:
                    raise PartnerNotFoundError(partner_id)
                for key, value in updates.items():
                    setattr(partner, key, _to_column_value(key, value))
                await session.commit()
                await session.refresh(partner)
                updated = partner_to_dict(partner)
                await self._mirror(session)
        except (SQLAlchemyError, OSError) as e:
            _raise_unless_unavailable(e)
            logger.warning("Partner DB update failed, writing JSON backup: %s", e)
            return self._update_in_backup(partner_id, updates)

        logger.info("Partner updated: id=%d", partner_id)
        return updated

    async def delete_partner(self, partner_id: int) -> None:
        """
        Raises:
            PartnerNotFoundError: no partner with that id.
        """
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(Partner).where(Partner.id == partner_id),
                )
                if result.rowcount == 0:
                    raise PartnerNotFoundError(partner_id)
                await session.commit()
                await self._mirror(session)
        except (SQLAlchemyError, OSError) as e:
            _raise_unless_unavailable(e)
            logger.warning("Partner DB delete failed, writing JSON backup: %s", e)
            self._delete_in_backup(partner_id)
            return

        logger.info("Partner deleted: id=%d", partner_id)

    # -- JSON mirror ---------------------------------------------------------

    async def _mirror(self, session: AsyncSession) -> None:
        """Re-export the partners table. A failed export only logs."""
        try:
            result = await session.execute(select(Partner).order_by(Partner.id))
            self.backup.save([partner_to_dict(p) for p in result.scalars().all()])
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Partner JSON mirror not updated: %s", e)

    def _create_in_backup(self, record: dict[str, Any]) -> dict[str, Any]:
        partners = self.backup.load()
        now = datetime.now(UTC).isoformat()
        created = {
            **_jsonable(record),
            "id": max((p.get("id") or 0 for p in partners), default=0) + 1,
            "created_at": now,
            "updated_at": now,
        }
        partners.append(created)
        self.backup.save(partners)
        logger.info(
            "Partner created in JSON backup: id=%d, name='%s'",
            created["id"], created.get("partner_name"),
        )
        return created

    def _update_in_backup(
        self, partner_id: int, updates: dict[str, Any],
    ) -> dict[str, Any]:
        partners = self.backup.load()
        for partner in partners:
            if partner.get("id") == partner_id:
                partner.update(_jsonable(updates))
                partner["updated_at"] = datetime.now(UTC).isoformat()
                self.backup.save(partners)
                return partner
        raise PartnerNotFoundError(partner_id)

    def _delete_in_backup(self, partner_id: int) -> None:
        partners = self.backup.load()
        remaining = [p for p in partners if p.get("id") != partner_id]
        if len(remaining) == len(partners):
            raise PartnerNotFoundError(partner_id)
        self.backup.save(remaining)


def get_hybrid_storage() -> HybridStorage:
    """FastAPI dependency; tests override it with a tmp_path-backed store."""
    from memopyk.db.engine import async_session_factory

    return HybridStorage(async_session_factory, settings.data_dir)

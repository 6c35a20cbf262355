# =============================================================================
# Analytics Service — First-Party Event Store, Rollups, IP Exclusions
# =============================================================================
#
# The SPA reports the same events to GA4 and to POST /api/analytics/event.
# This module owns the database side:
#
#   build_event_row()        payload → analytics_events columns (+ extra)
#   record_event()           insert event, plus a conversion when valued
#   record_performance()     insert a Core Web Vitals sample
#   update_daily_summary()   roll one day of events into a summary row
#   update_performance_summary()  per-page averages for one day
#   get_conversion_totals()  {conversion_type: summed value} for a range
#
# Rollups are written with INSERT ... ON CONFLICT DO UPDATE so they can be
# recomputed any number of times. The SELECT/INSERT statements are built by
# plain functions so the API (async session) and Celery beat (sync session)
# run identical SQL.
#
# IP EXCLUSIONS:
# Office and developer traffic is excluded by IP, CIDR range and optionally
# a user-agent fragment. Exclusions are checked with the stdlib `ipaddress`
# module; IPv4-mapped IPv6 addresses (::ffff:a.b.c.d) are compared as IPv4.
# =============================================================================

from __future__ import annotations

import ipaddress
import logging
from collections.abc import Iterable, Mapping
from datetime import UTC, date, datetime, time, timedelta
from typing import Any

from sqlalchemy import Select, distinct, func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from memopyk.db.models import (
    AnalyticsConversion,
    AnalyticsDailySummary,
    AnalyticsEvent,
    AnalyticsExclusion,
    PerformanceDailySummary,
    PerformanceMetric,
)

logger = logging.getLogger(__name__)

IpNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network

_EVENT_COLUMNS = frozenset(
    c.key for c in AnalyticsEvent.__table__.columns
) - {"event_id", "created_at", "extra"}

_PERFORMANCE_COLUMNS = frozenset(
    c.key for c in PerformanceMetric.__table__.columns
) - {"id", "created_at"}

_INT_COLUMNS = frozenset({
    "scroll_percent", "video_index", "item_index",
    "resource_count", "transfer_size",
})


# ---------------------------------------------------------------------------
# Payload mapping
# ---------------------------------------------------------------------------


def _coerce(key: str, value: Any) -> Any:
    # Falsy values (0, "", false) are stored as NULL, as the SPA treats
    # them as "not reported"
    if value in (None, "", 0, False):
        return None
    if key in _INT_COLUMNS:
        try:
            return int(value)
        except (TypeError, ValueError):
            return None
    return value


def build_event_row(
    payload: Mapping[str, Any],
    user_agent: str | None = None,
    referrer: str | None = None,
) -> dict[str, Any]:
    """
    Map a client event to analytics_events columns.

    Unknown keys are kept in `extra`. The request's User-Agent and Referer
    fill in when the payload does not carry its own.
    """
    row: dict[str, Any] = {}
    extra: dict[str, Any] = {}
    for key, value in payload.items():
        if key in _EVENT_COLUMNS:
            row[key] = _coerce(key, value)
        elif value is not None:
            extra[key] = value

    if row.get("event_value") is not None:
        try:
            row["event_value"] = float(row["event_value"])
        except (TypeError, ValueError):
            row["event_value"] = None

    row["currency"] = row.get("currency") or "EUR"
    row["user_agent"] = row.get("user_agent") or user_agent
    row["referrer"] = row.get("referrer") or referrer
    row["extra"] = extra or None
    return row


def build_performance_row(
    payload: Mapping[str, Any],
    user_agent: str | None = None,
) -> dict[str, Any]:
    row = {
        key: _coerce(key, value)
        for key, value in payload.items()
        if key in _PERFORMANCE_COLUMNS
    }
    row["page_path"] = payload.get("page_path")
    row["user_agent"] = row.get("user_agent") or user_agent
    return row


# ---------------------------------------------------------------------------
# IP exclusions
# ---------------------------------------------------------------------------


def parse_network(value: str | None) -> IpNetwork | None:
    """"203.0.113.7" or "203.0.113.0/24" → network; None when unparseable."""
    if not value or not value.strip():
        return None
    try:
        return ipaddress.ip_network(value.strip(), strict=False)
    except ValueError:
        return None


def _parse_ip(value: str | None):
    if not value:
        return None
    try:
        ip = ipaddress.ip_address(value.strip())
    except ValueError:
        return None
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped:
        return ip.ipv4_mapped
    return ip


def is_ip_excluded(
    ip: str | None,
    exclusions: Iterable[Any],
    user_agent: str | None = None,
    now: datetime | None = None,
) -> bool:
    """
    True when an active exclusion matches `ip`.

    An exclusion with a `user_agent` fragment only matches requests whose
    User-Agent contains it (case-insensitive). Exclusions with a future
    `applies_from` are ignored.
    """
    address = _parse_ip(ip)
    if address is None:
        return False
    now = now or datetime.now(UTC)

    for exclusion in exclusions:
        if not exclusion.active:
            continue
        if exclusion.applies_from and exclusion.applies_from > now:
            continue
        network = parse_network(exclusion.ip_cidr)
        if network is None or address.version != network.version:
            continue
        if address not in network:
            continue
        if exclusion.user_agent:
            if not user_agent or exclusion.user_agent.lower() not in user_agent.lower():
                continue
        return True
    return False


async def load_active_exclusions(session: AsyncSession) -> list[AnalyticsExclusion]:
    result = await session.execute(
        select(AnalyticsExclusion).where(AnalyticsExclusion.active.is_(True)),
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


async def record_event(session: AsyncSession, row: dict[str, Any]) -> int:
    """Insert an event; valued events also get an analytics_conversions row."""
    event = AnalyticsEvent(**row)
    session.add(event)
    await session.flush()

    if event.event_value and event.event_value > 0:
        session.add(AnalyticsConversion(
            event_id=event.event_id,
            conversion_type=event.event_name,
            conversion_value=event.event_value,
            currency=event.currency or "EUR",
            user_id=event.user_id,
            session_id=event.session_id,
            page_name=event.page_name,
            page_path=event.page_path,
        ))

    await session.commit()
    return event.event_id


async def record_performance(session: AsyncSession, row: dict[str, Any]) -> None:
    session.add(PerformanceMetric(**row))
    await session.commit()


# ---------------------------------------------------------------------------
# Daily rollups
# ---------------------------------------------------------------------------


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=UTC)
    return start, start + timedelta(days=1)


def event_totals_query(day: date) -> Select:
    start, end = _day_bounds(day)
    return select(
        func.count(AnalyticsEvent.event_id),
        func.count(distinct(AnalyticsEvent.session_id)),
    ).where(AnalyticsEvent.created_at >= start, AnalyticsEvent.created_at < end)


def events_by_name_query(day: date) -> Select:
    start, end = _day_bounds(day)
    return (
        select(AnalyticsEvent.event_name, func.count(AnalyticsEvent.event_id))
        .where(AnalyticsEvent.created_at >= start, AnalyticsEvent.created_at < end)
        .group_by(AnalyticsEvent.event_name)
    )


def conversion_totals_query(day: date) -> Select:
    return select(
        func.count(AnalyticsConversion.id),
        func.coalesce(func.sum(AnalyticsConversion.conversion_value), 0.0),
    ).where(AnalyticsConversion.conversion_date == day)


def daily_summary_values(
    day: date,
    event_totals: tuple[int, int],
    by_name: Iterable[tuple[str, int]],
    conversion_totals: tuple[int, float],
) -> dict[str, Any]:
    return {
        "summary_date": day,
        "total_events": event_totals[0] or 0,
        "unique_sessions": event_totals[1] or 0,
        "total_conversions": conversion_totals[0] or 0,
        "conversion_value": float(conversion_totals[1] or 0.0),
        "events_by_name": {name: count for name, count in by_name},
    }


def upsert_daily_summary(values: dict[str, Any]):
    stmt = insert(AnalyticsDailySummary).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=[AnalyticsDailySummary.summary_date],
        set_={
            key: stmt.excluded[key]
            for key in values if key != "summary_date"
        } | {"updated_at": func.now()},
    )


def performance_averages_query(day: date) -> Select:
    start, end = _day_bounds(day)
    return (
        select(
            PerformanceMetric.page_path,
            func.count(PerformanceMetric.id),
            func.avg(PerformanceMetric.lcp_value),
            func.avg(PerformanceMetric.cls_value),
            func.avg(PerformanceMetric.inp_value),
            func.avg(PerformanceMetric.ttfb),
            func.avg(PerformanceMetric.page_load_time),
        )
        .where(
            PerformanceMetric.created_at >= start,
            PerformanceMetric.created_at < end,
        )
        .group_by(PerformanceMetric.page_path)
    )


def performance_summary_values(day: date, row: tuple) -> dict[str, Any]:
    def _avg(value):
        return float(value) if value is not None else None

    page_path, samples, lcp, cls, inp, ttfb, load = row
    return {
        "summary_date": day,
        "page_path": page_path,
        "samples": samples,
        "avg_lcp": _avg(lcp),
        "avg_cls": _avg(cls),
        "avg_inp": _avg(inp),
        "avg_ttfb": _avg(ttfb),
        "avg_page_load_time": _avg(load),
    }


def upsert_performance_summary(values: dict[str, Any]):
    stmt = insert(PerformanceDailySummary).values(**values)
    return stmt.on_conflict_do_update(
        constraint="uq_perf_day_page",
        set_={
            key: stmt.excluded[key]
            for key in values if key not in ("summary_date", "page_path")
        },
    )


async def update_daily_summary(session: AsyncSession, day: date) -> dict[str, Any]:
    totals = (await session.execute(event_totals_query(day))).one()
    by_name = (await session.execute(events_by_name_query(day))).all()
    conversions = (await session.execute(conversion_totals_query(day))).one()

    values = daily_summary_values(day, tuple(totals), by_name, tuple(conversions))
    await session.execute(upsert_daily_summary(values))
    await session.commit()

    logger.info("Daily analytics summary updated for %s", day)
    return {**values, "summary_date": day.isoformat()}


async def update_performance_summary(
    session: AsyncSession, day: date,
) -> list[dict[str, Any]]:
    rows = (await session.execute(performance_averages_query(day))).all()
    summaries = [performance_summary_values(day, tuple(row)) for row in rows]
    for values in summaries:
        await session.execute(upsert_performance_summary(values))
    await session.commit()

    logger.info(
        "Daily performance summary updated for %s (%d pages)",
        day, len(summaries),
    )
    return [{**s, "summary_date": day.isoformat()} for s in summaries]


def update_daily_summary_sync(session: Session, day: date) -> dict[str, Any]:
    """Celery variant of update_daily_summary (caller commits)."""
    totals = session.execute(event_totals_query(day)).one()
    by_name = session.execute(events_by_name_query(day)).all()
    conversions = session.execute(conversion_totals_query(day)).one()

    values = daily_summary_values(day, tuple(totals), by_name, tuple(conversions))
    session.execute(upsert_daily_summary(values))
    return values


def update_performance_summary_sync(session: Session, day: date) -> int:
    """Celery variant of update_performance_summary; returns page count."""
    rows = session.execute(performance_averages_query(day)).all()
    for row in rows:
        session.execute(
            upsert_performance_summary(performance_summary_values(day, tuple(row))),
        )
    return len(rows)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def sum_conversions(rows: Iterable[tuple[str, Any]]) -> dict[str, float]:
    totals: dict[str, float] = {}
    for conversion_type, value in rows:
        totals[conversion_type] = totals.get(conversion_type, 0.0) + float(value or 0)
    return totals


async def get_conversion_totals(
    session: AsyncSession, start: date, end: date,
) -> dict[str, float]:
    """Summed conversion value per type, both dates inclusive."""
    result = await session.execute(
        select(
            AnalyticsConversion.conversion_type,
            AnalyticsConversion.conversion_value,
        ).where(
            AnalyticsConversion.conversion_date >= start,
            AnalyticsConversion.conversion_date <= end,
        ),
    )
    return sum_conversions(result.all())

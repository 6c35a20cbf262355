# =============================================================================
# Database Engine & Session Management
# =============================================================================
#
# Two engines share one schema:
# - async engine (asyncpg) for FastAPI request handlers, background tasks
#   and middleware
# - sync engine (psycopg2) for Celery workers, built lazily on first use
#
# SESSION PATTERNS:
#
# 1. Dependency-injected (get_async_session via Depends):
#    Auto-commits when the handler returns, rolls back on exception.
#    Handlers may commit early when they need a generated ID.
#
# 2. Self-managed (async_session_factory() directly):
#    Used by BackgroundTasks (analytics persistence), the audit and
#    redirect middleware, and HybridStorage. These MUST commit explicitly.
# =============================================================================

from collections.abc import AsyncGenerator, Generator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session, sessionmaker

from memopyk.config import settings

# ---------------------------------------------------------------------------
# Async Engine
# ---------------------------------------------------------------------------
# pool_pre_ping: Supabase's pooler drops idle connections; ping before use
# so a stale connection is replaced instead of failing the request.
# ---------------------------------------------------------------------------
async_engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=5,
    max_overflow=10,
    pool_pre_ping=True,
)

# expire_on_commit=False: attributes stay readable after commit without a
# new round trip (which would fail outside the session in async code).
async_session_factory = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ---------------------------------------------------------------------------
# Sync Engine — For Celery Workers (Lazy Initialization)
# ---------------------------------------------------------------------------
# psycopg2 is only imported when a worker first asks for a session, so the
# API process never needs it.
# ---------------------------------------------------------------------------

_sync_engine = None
_sync_session_factory = None


def _get_sync_engine():
    """Lazily create and cache the sync SQLAlchemy engine."""
    global _sync_engine
    if _sync_engine is None:
        _sync_engine = create_engine(
            settings.database_url_sync,
            echo=settings.debug,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
        )
    return _sync_engine


def _get_sync_session_factory():
    """Lazily create and cache the sync session factory."""
    global _sync_session_factory
    if _sync_session_factory is None:
        _sync_session_factory = sessionmaker(
            bind=_get_sync_engine(),
            class_=Session,
            expire_on_commit=False,
        )
    return _sync_session_factory


@contextmanager
def get_sync_session() -> Generator[Session, None, None]:
    """
    Context manager that provides a sync database session for Celery workers.

    Usage in Celery tasks:
        with get_sync_session() as session:
            partner = session.get(Partner, partner_id)
            # Auto-commits on exit, rolls back on exception
    """
    factory = _get_sync_session_factory()
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    The session commits when the handler returns and rolls back if it
    raises.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise

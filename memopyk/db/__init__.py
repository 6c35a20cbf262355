# =============================================================================
# Database Package
# =============================================================================
# Provides async/sync SQLAlchemy engines, session management, and ORM models.
#
# Key exports:
#   - get_async_session: FastAPI dependency for database sessions
#   - async_session_factory: sessions for background work and middleware
#   - Base: SQLAlchemy declarative base for ORM models
# =============================================================================

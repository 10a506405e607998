"""
Database connection and session management for SQLAlchemy 2.0.
Configured for async operations with Supabase PostgreSQL.

Two engines wrap the same store:
  - the public engine connects with the restricted role, so row-level
    security policies apply (visitor read paths);
  - the service engine connects with the privileged role and bypasses
    them (admin back-office).
"""
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.engine import make_url
from sqlalchemy.orm import declarative_base
from sqlalchemy import text
from urllib.parse import urlparse
from typing import Optional
import logging
import socket

from nightlife.config import settings

logger = logging.getLogger(__name__)

# Create declarative base for models
Base = declarative_base()

FALLBACK_URL = "sqlite+aiosqlite:///:memory:"


def build_database_url(user: str = "", password: str = "") -> str:
    """
    Build a connection URL for one credential tier.

    Args:
        user: Role name to connect as (blank keeps the URL's own credentials)
        password: Password for that role

    Returns:
        str: Connection URL, or the in-memory SQLite fallback when
        DATABASE_URL is not configured
    """
    if not settings.DATABASE_URL:
        return FALLBACK_URL

    url = make_url(settings.DATABASE_URL)
    if url.drivername == "postgresql":
        url = url.set(drivername="postgresql+asyncpg")
    if user:
        url = url.set(username=user, password=password or None)
    return url.render_as_string(hide_password=False)


def _engine_args(application_name: str) -> dict:
    args = {
        "echo": False,  # Set to True for SQL query logging in development
    }
    # Pool settings only apply to PostgreSQL (not SQLite)
    if settings.DATABASE_URL and settings.DATABASE_URL.startswith("postgresql"):
        args.update({
            "pool_size": 10,
            "max_overflow": 20,
            "pool_pre_ping": True,  # Verify connections before using (handles stale connections)
            "pool_recycle": 3600,
            "connect_args": {
                "server_settings": {
                    "application_name": application_name
                }
            }
        })
    return args


engine = create_async_engine(
    build_database_url(settings.DB_ANON_USER, settings.DB_ANON_PASSWORD),
    **_engine_args("nightlife-public")
)

service_engine = create_async_engine(
    build_database_url(settings.DB_SERVICE_USER, settings.DB_SERVICE_PASSWORD),
    **_engine_args("nightlife-admin")
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

ServiceSessionLocal = async_sessionmaker(
    service_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncSession:
    """
    FastAPI dependency for public (policy-restricted) database sessions.

    Usage:
        @router.get("/endpoint")
        async def my_endpoint(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            await session.rollback()
            logger.error(f"Database session error: {str(e)}", exc_info=True)
            raise
        finally:
            await session.close()


async def get_admin_db() -> AsyncSession:
    """
    FastAPI dependency for privileged database sessions.
    Only admin routes (already gated by the session cookie) use it.
    Write paths commit step by step, so nothing is committed here.
    """
    async with ServiceSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            await session.rollback()
            logger.error(f"Admin database session error: {str(e)}", exc_info=True)
            raise
        finally:
            await session.close()


def _validate_database_url(url: str) -> tuple[bool, str]:
    """
    Validate database URL and provide diagnostic information.
    Returns (is_valid, diagnostic_message)
    """
    if not url:
        return False, "DATABASE_URL is empty"

    try:
        parsed = urlparse(url)

        if not url.startswith(("postgresql://", "postgresql+asyncpg://")):
            return False, f"Invalid database URL scheme. Expected postgresql:// or postgresql+asyncpg://, got: {parsed.scheme}"

        hostname = parsed.hostname
        if not hostname:
            return False, "No hostname found in DATABASE_URL"

        try:
            socket.getaddrinfo(hostname, None)
            dns_status = "DNS resolution successful"
        except socket.gaierror as e:
            dns_status = f"DNS resolution failed: {str(e)}"

        return True, f"URL format valid. Hostname: {hostname}, Port: {parsed.port or 5432}, Database: {parsed.path or '/postgres'}. {dns_status}"

    except Exception as e:
        return False, f"Error parsing DATABASE_URL: {str(e)}"


async def init_db(url: Optional[str] = None):
    """
    Verify both connection tiers on startup.
    """
    url = url if url is not None else settings.DATABASE_URL
    if not url:
        logger.warning("DATABASE_URL not set, skipping database initialization")
        return

    is_valid, diagnostic = _validate_database_url(url)
    if not is_valid:
        logger.error(f"Invalid DATABASE_URL: {diagnostic}")
        raise ValueError(f"Invalid DATABASE_URL: {diagnostic}")

    logger.info(f"Database URL validation: {diagnostic}")

    tiers = (
        ("public", "DB_ANON", engine),
        ("service", "DB_SERVICE", service_engine),
    )
    for name, prefix, tier_engine in tiers:
        try:
            async with tier_engine.begin() as conn:
                await conn.execute(text("SELECT 1"))
            logger.info(f"Database connection initialized successfully ({name} tier)")
        except Exception as e:
            error_msg = str(e)
            if "authentication failed" in error_msg.lower() or "password" in error_msg.lower():
                logger.error(
                    f"Database connection failed for the {name} tier - authentication error: {error_msg}\n"
                    f"Check the {prefix}_USER / {prefix}_PASSWORD settings.\n"
                    f"Diagnostic: {diagnostic}"
                )
            else:
                logger.error(
                    f"Database connection failed for the {name} tier ({type(e).__name__}): {error_msg}\n"
                    f"Diagnostic: {diagnostic}"
                )
            raise


async def close_db():
    """
    Close database connections.
    Can be used for shutdown events.
    """
    await engine.dispose()
    await service_engine.dispose()
    logger.info("Database connections closed")

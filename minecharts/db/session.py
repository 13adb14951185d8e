"""Database session management using SQLModel async."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

# Import all models so they are registered with SQLModel metadata
import minecharts.models  # noqa: F401
from minecharts.auth.passwords import hash_password
from minecharts.auth.permissions import Permission
from minecharts.config import SecurityConfig, get_settings
from minecharts.db.store import SQLCredentialStore
from minecharts.models.user import User

logger = structlog.get_logger()

# Lazy initialization - engine created on first use
_engine = None
_async_session_factory = None


def _get_engine():
    """Get or create the async engine."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.database.url,
            echo=settings.database.echo,
            future=True,
        )
    return _engine


def _get_session_factory():
    """Get or create the async session factory."""
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = sessionmaker(
            _get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _async_session_factory


async def seed_admin(session: AsyncSession, security: SecurityConfig) -> User | None:
    """Create the bootstrap admin when the user table is empty.

    Returns the created user, or None if users already exist.
    """
    store = SQLCredentialStore(session)
    if await store.count_users() > 0:
        return None

    admin = await store.create_user(
        User(
            username=security.admin_username,
            email=security.admin_email,
            password_hash=hash_password(security.admin_password),
            permissions=int(Permission.ALL),
            active=True,
        )
    )
    logger.warning(
        "db.seed.admin_created",
        username=admin.username,
        msg="Bootstrap admin created; change its password",
    )
    return admin


async def init_db() -> None:
    """Create tables and seed the bootstrap admin.

    Note: In production, use Alembic migrations instead.
    """
    engine = _get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    async with get_async_session() as session:
        await seed_admin(session, get_settings().security)


async def close_db() -> None:
    """Close database connection."""
    global _engine, _async_session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Get async database session as context manager.

    Usage:
        async with get_async_session() as session:
            store = SQLCredentialStore(session)
    """
    session_factory = _get_session_factory()
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_session_dependency() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for getting database session."""
    async with get_async_session() as session:
        yield session

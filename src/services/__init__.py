"""Database connection and session management."""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from src.services.config import get_settings


def to_async_url(database_url: str) -> str:
    """Map a sync SQLAlchemy URL to its async driver form."""
    if database_url.startswith("sqlite:///"):
        return database_url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return database_url


def create_engine_from_settings() -> AsyncEngine:
    """Create the async engine for the configured database."""
    settings = get_settings()
    async_database_url = to_async_url(settings.database_url)

    # SQLite uses StaticPool for simplicity in dev/test
    if async_database_url.startswith("sqlite"):
        return create_async_engine(
            async_database_url,
            echo=settings.database_echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(async_database_url, echo=settings.database_echo, pool_pre_ping=True)


_async_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the session factory bound to the configured engine."""
    global _async_engine, _session_factory
    if _session_factory is None:
        _async_engine = create_engine_from_settings()
        _session_factory = async_sessionmaker(
            _async_engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Get async database session."""
    async with get_session_factory()() as session:
        yield session


async def dispose_engine() -> None:
    """Close pooled connections (application shutdown)."""
    global _async_engine, _session_factory
    if _async_engine is not None:
        await _async_engine.dispose()
    _async_engine = None
    _session_factory = None


__all__ = [
    "create_engine_from_settings",
    "dispose_engine",
    "get_async_session",
    "get_session_factory",
    "to_async_url",
]

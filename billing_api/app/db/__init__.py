"""Async engine and session factory for the billing database.

The URL comes from :func:`config.get_settings` (``DATABASE_URL``). Tests call
:func:`configure` to point the module at a throwaway database.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from config import get_settings

from ..models import Base
from ..obs import add_query_logger

_engine: AsyncEngine | None = None
_sessionmaker: async_sessionmaker[AsyncSession] | None = None
_url: str | None = None


def _create_engine(url: str) -> AsyncEngine:
    kwargs = {}
    if url.startswith("sqlite"):
        # aiosqlite connections belong to the event loop that opened them
        kwargs["poolclass"] = NullPool
    engine = create_async_engine(url, future=True, **kwargs)
    add_query_logger(engine, "billing")
    return engine


def configure(url: str | None = None) -> AsyncEngine:
    """(Re)create the engine for ``url`` or the configured database URL."""
    global _engine, _sessionmaker, _url
    _url = url or get_settings().database_url
    _engine = _create_engine(_url)
    _sessionmaker = async_sessionmaker(
        _engine, expire_on_commit=False, class_=AsyncSession
    )
    return _engine


def get_engine() -> AsyncEngine:
    """Return a singleton async engine for the billing database."""
    if _engine is None:
        configure(_url)
    assert _engine is not None  # for type checkers
    return _engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    if _sessionmaker is None:
        configure(_url)
    assert _sessionmaker is not None  # for type checkers
    return _sessionmaker


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session and ensure it is closed afterwards."""
    session = get_sessionmaker()()
    try:
        yield session
    finally:
        await session.close()


async def session_dependency() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a request-scoped session."""
    async with get_session() as session:
        yield session


async def create_all(engine: AsyncEngine | None = None) -> None:
    """Create all tables on ``engine`` (dev bootstrap and tests only)."""
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose() -> None:
    if _engine is not None:
        await _engine.dispose()


__all__ = [
    "configure",
    "create_all",
    "dispose",
    "get_engine",
    "get_session",
    "get_sessionmaker",
    "session_dependency",
]

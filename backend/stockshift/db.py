"""Async SQLAlchemy engine + session factory.

The API process shares the module-level `engine`. Celery tasks run each
job in a fresh event loop through `asyncio.run`, so they build a
throwaway engine with `NullPool` instead of reusing pooled connections
bound to a closed loop.
"""
from __future__ import annotations

from typing import Any, AsyncIterator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool, StaticPool

from stockshift.config import settings


def build_engine(url: str | None = None, *, pooled: bool = True) -> AsyncEngine:
    """Engine for `url` (defaults to DATABASE_URL).

    In-memory SQLite gets a single shared connection, otherwise every
    session would see its own empty database.
    """
    url = url or settings.DATABASE_URL
    kwargs: dict[str, Any] = {"echo": settings.APP_ENV == "development"}
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        if parsed.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        kwargs["echo"] = False
    elif pooled:
        kwargs.update(pool_size=10, max_overflow=20, pool_pre_ping=True)
    else:
        kwargs["poolclass"] = NullPool
    return create_async_engine(url, **kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine()
async_session_factory = build_session_factory(engine)


class Base(DeclarativeBase):
    """Declarative base used by all ORM models."""


async def create_all(bind: AsyncEngine, *, drop: bool = False) -> list[str]:
    """Create every stockshift table on `bind`; returns the table names."""
    import stockshift.models  # noqa: F401  (registers tables on Base.metadata)

    async with bind.begin() as conn:
        if drop:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    return sorted(Base.metadata.tables)


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency — yields an async session."""
    async with async_session_factory() as session:
        yield session

"""Async SQLAlchemy engine and session helpers."""

from __future__ import annotations

from typing import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

# ``Base`` is the parent class for every SQLAlchemy model defined in coursegate/models.
Base = declarative_base()


def build_engine(db_url: str) -> AsyncEngine:
    # The engine manages the connection pool; create one per application.
    return create_async_engine(db_url)


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False keeps loaded rows readable after the commit that
    # created them, which the bootstrap and upsert paths rely on.
    return async_sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


async def init_models(engine: AsyncEngine) -> None:
    """Create missing tables and apply the additive migrations."""

    from ..models import entitlement, profile, progress  # noqa: F401
    from .migrate import run_migrations

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.run_sync(run_migrations)


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """FastAPI dependency that yields a session and guarantees cleanup."""

    session_factory: async_sessionmaker[AsyncSession] = request.app.state.sessionmaker
    async with session_factory() as db:
        yield db

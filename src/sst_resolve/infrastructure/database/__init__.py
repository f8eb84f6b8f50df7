"""
Database Infrastructure
=======================

Async SQLAlchemy engine and sessions for tickets, users, escalation rules
and the notification outbox.

One session is one unit of work. A ticket mutation, its row lock and the
outbox event it emits either commit together or roll back together, so a
notification is never sent for a change that did not persist.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from sst_resolve.config import settings


class Base(DeclarativeBase):
    pass


_engine: Optional[AsyncEngine] = None
_sessions: Optional[async_sessionmaker[AsyncSession]] = None


def _engine_options(url: str) -> dict:
    options = {"echo": settings.debug, "pool_pre_ping": True}
    # SQLite (tests, local runs) has no connection pool to size
    if url.startswith("postgresql"):
        options["pool_size"] = settings.db_pool_size
        options["max_overflow"] = settings.db_max_overflow
    return options


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("init_database() has not been called")
    return _engine


def init_database(database_url: Optional[str] = None) -> AsyncEngine:
    """Create the engine and session factory. Called once from the app lifespan."""
    global _engine, _sessions

    # asyncpg takes ssl=, not libpq's sslmode=
    url = (database_url or settings.database_url).replace("sslmode=", "ssl=")

    _engine = create_async_engine(url, **_engine_options(url))
    _sessions = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return _engine


async def close_database() -> None:
    global _engine, _sessions

    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _sessions = None


@asynccontextmanager
async def _unit_of_work() -> AsyncIterator[AsyncSession]:
    if _sessions is None:
        raise RuntimeError("init_database() has not been called")

    async with _sessions() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        await session.commit()


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency: one transaction per request.

    Committed after the route returns, rolled back if it raises, so a
    rejected transition leaves neither a ticket change nor an outbox row.
    """
    async with _unit_of_work() as session:
        yield session


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """Same transaction scope for scheduler jobs (breach sweep, outbox batches)."""
    async with _unit_of_work() as session:
        yield session


async def create_tables() -> None:
    """Create missing tables on startup; migrations own the production schema."""
    # Registers the mapped classes on Base.metadata
    from sst_resolve.sla.infrastructure import models as _sla_models  # noqa: F401
    from sst_resolve.tickets.infrastructure import models as _ticket_models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

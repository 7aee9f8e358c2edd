"""
Database engine and session factory construction.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from app.core.config import Settings

import app.models  # noqa: F401  (populates SQLModel.metadata)


def create_engine(settings: Settings) -> AsyncEngine:
    """Build the async engine; the driver timeout bounds every storage call."""
    url = settings.database_url
    kwargs: dict = {"echo": settings.debug, "future": True}
    if url.startswith("sqlite"):
        # One shared connection so in-memory databases survive across sessions
        kwargs["poolclass"] = StaticPool
        kwargs["connect_args"] = {
            "check_same_thread": False,
            "timeout": settings.storage_timeout_seconds,
        }
    else:
        kwargs["pool_pre_ping"] = True
        kwargs["connect_args"] = {"timeout": settings.storage_timeout_seconds}
    return create_async_engine(url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables (development and tests; production schemas are provisioned ahead)."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

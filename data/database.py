from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from config.settings import settings
from core.models import HarvestReport
from data.repositories import HarvestRunRepository
from data.schema import Base

log = logging.getLogger(__name__)


def make_engine(url: str) -> AsyncEngine:
    """Async engine for ``url``. In-memory SQLite shares one connection."""
    if url.startswith("sqlite") and ":memory:" in url:
        return create_async_engine(
            url,
            echo=False,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(url, echo=False)


engine = make_engine(settings.DATABASE_URL)
async_session_factory = async_sessionmaker(engine, expire_on_commit=False)


async def init_db(db_engine: AsyncEngine | None = None) -> None:
    """Create the run log table (idempotent)."""
    db_engine = db_engine or engine
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        if db_engine.dialect.name == "sqlite" and ":memory:" not in str(db_engine.url):
            await conn.execute(text("PRAGMA journal_mode=WAL"))
    log.info("Harvest run log ready at %s", db_engine.url.render_as_string(hide_password=True))


@asynccontextmanager
async def get_session(
    factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[AsyncSession]:
    """Session that commits on success and rolls back on any error."""
    async with (factory or async_session_factory)() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def record_harvest_run(
    report: HarvestReport,
    factory: async_sessionmaker[AsyncSession] | None = None,
) -> None:
    async with get_session(factory) as session:
        await HarvestRunRepository(session).log_run(report)
    log.debug("Recorded harvest run for '%s' (%s)", report.query, report.status)

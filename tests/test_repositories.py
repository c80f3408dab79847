"""
Tests for harvest run persistence against an in-memory SQLite database.
"""
from datetime import datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.models import HarvestReport, Item
from data.database import get_session, init_db, make_engine, record_harvest_run
from data.repositories import HarvestRunRepository

T0 = datetime(2026, 3, 2, 14, 0)


async def _session_factory():
    engine = make_engine("sqlite+aiosqlite:///:memory:")
    await init_db(engine)
    return engine, async_sessionmaker(engine, expire_on_commit=False)


def _report(query, found, target=5, minutes=0, **kwargs):
    items = [
        Item(id=f"browser_1_{i}", text=f"{query} item {i}", author="someone", timestamp=None)
        for i in range(found)
    ]
    return HarvestReport(
        query=query,
        target_count=target,
        items=items,
        started_at=T0 + timedelta(minutes=minutes),
        duration_seconds=12.3456,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_log_and_list_recent_runs():
    engine, factory = await _session_factory()
    try:
        async with factory() as session:
            repo = HarvestRunRepository(session)
            await repo.log_run(_report("first", 5, minutes=0))
            await repo.log_run(_report("second", 2, minutes=5, errors=["screenshot failed", "scroll failed"]))
            await repo.log_run(_report("third", 0, minutes=10, fallback="snapshot"))
            await session.commit()

        async with factory() as session:
            runs = await HarvestRunRepository(session).recent_runs(limit=2)

        assert [r.query for r in runs] == ["third", "second"]
        assert runs[0].status == "empty"
        assert runs[0].fallback == "snapshot"
        assert runs[1].status == "partial"
        assert runs[1].items_found == 2
        assert runs[1].error_message == "screenshot failed; scroll failed"
        assert runs[1].duration_seconds == pytest.approx(12.35)
        assert runs[1].finished_at is not None
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_stats():
    engine, factory = await _session_factory()
    try:
        async with factory() as session:
            repo = HarvestRunRepository(session)
            assert (await repo.stats())["total_runs"] == 0

            await repo.log_run(_report("a", 5, minutes=0))
            await repo.log_run(_report("b", 5, minutes=1, fallback="single_shot"))
            await repo.log_run(_report("c", 1, minutes=2))
            await repo.log_run(_report("d", 3, minutes=3))
            await session.commit()

            stats = await repo.stats()

        assert stats["total_runs"] == 4
        assert stats["success_rate"] == 50
        assert stats["avg_items"] == 3.5
        assert stats["fallback_runs"] == 1
        assert stats["last_run"] == (T0 + timedelta(minutes=3)).isoformat()
    finally:
        await engine.dispose()


def test_report_status():
    assert _report("x", 5).status == "success"
    assert _report("x", 2).status == "partial"
    assert _report("x", 0).status == "empty"


# ============================================
# SESSION HANDLING
# ============================================

@pytest.mark.asyncio
async def test_record_harvest_run_commits():
    engine, factory = await _session_factory()
    try:
        await record_harvest_run(_report("committed", 5), factory)
        async with factory() as session:
            runs = await HarvestRunRepository(session).recent_runs()
        assert [r.query for r in runs] == ["committed"]
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_get_session_rolls_back_on_error():
    engine, factory = await _session_factory()
    try:
        with pytest.raises(RuntimeError):
            async with get_session(factory) as session:
                await HarvestRunRepository(session).log_run(_report("discarded", 1))
                await session.flush()
                raise RuntimeError("disk full")
        async with factory() as session:
            assert await HarvestRunRepository(session).recent_runs() == []
    finally:
        await engine.dispose()

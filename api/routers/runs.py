from __future__ import annotations

from fastapi import APIRouter, Query

from data.database import get_session
from data.repositories import HarvestRunRepository

router = APIRouter(prefix="/api/runs", tags=["runs"])


def _run_to_dict(r) -> dict:
    return {
        "id": r.id,
        "query": r.query,
        "target_count": r.target_count,
        "items_found": r.items_found,
        "status": r.status,
        "iterations": r.iterations,
        "recoveries": r.recoveries,
        "rescan_passes": r.rescan_passes,
        "fallback": r.fallback,
        "cancelled": r.cancelled,
        "timed_out": r.timed_out,
        "error_message": r.error_message,
        "duration_seconds": r.duration_seconds,
        "started_at": r.started_at.isoformat() if r.started_at else None,
        "finished_at": r.finished_at.isoformat() if r.finished_at else None,
    }


@router.get("")
async def recent_runs(limit: int = Query(20, ge=1, le=100)):
    async with get_session() as session:
        repo = HarvestRunRepository(session)
        return [_run_to_dict(r) for r in await repo.recent_runs(limit=limit)]


@router.get("/stats")
async def run_stats():
    async with get_session() as session:
        return await HarvestRunRepository(session).stats()

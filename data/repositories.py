from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.models import HarvestReport
from data.schema import DBHarvestRun


class HarvestRunRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._s = session

    async def log_run(self, report: HarvestReport) -> None:
        run = DBHarvestRun(
            query=report.query,
            target_count=report.target_count,
            items_found=len(report.items),
            status=report.status,
            iterations=report.iterations,
            recoveries=report.recoveries,
            rescan_passes=report.rescan_passes,
            fallback=report.fallback,
            cancelled=report.cancelled,
            timed_out=report.timed_out,
            error_message="; ".join(report.errors)[:500],
            duration_seconds=round(report.duration_seconds, 2),
            started_at=report.started_at,
            finished_at=datetime.now(timezone.utc),
        )
        self._s.add(run)

    async def recent_runs(self, limit: int = 20) -> list[DBHarvestRun]:
        q = (
            select(DBHarvestRun)
            .order_by(DBHarvestRun.started_at.desc(), DBHarvestRun.id.desc())
            .limit(limit)
        )
        result = await self._s.execute(q)
        return list(result.scalars().all())

    async def stats(self) -> dict:
        """Totals across all runs: count, success rate, average yield, last run."""
        q = select(
            func.count(DBHarvestRun.id),
            func.sum(case((DBHarvestRun.status == "success", 1), else_=0)),
            func.avg(DBHarvestRun.items_found),
            func.sum(case((DBHarvestRun.fallback != "none", 1), else_=0)),
            func.max(DBHarvestRun.started_at),
        )
        total, successes, avg_items, fallbacks, last_run = (await self._s.execute(q)).one()
        total = total or 0
        return {
            "total_runs": total,
            "success_rate": round((successes or 0) / max(total, 1) * 100, 0),
            "avg_items": round(float(avg_items or 0.0), 1),
            "fallback_runs": fallbacks or 0,
            "last_run": last_run.isoformat() if last_run else None,
        }

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from urllib.parse import quote

from config.settings import Settings
from config.settings import settings as default_settings
from core.errors import (
    BrowserCommandError,
    ConnectivityError,
    ExtractionError,
    NavigationError,
)
from core.models import CandidateItem, HarvestReport, HarvestRequest, Item
from scrapers.artifacts import ScreenshotArtifacts
from scrapers.base import BrowserSession, ExtractionOracle, Screenshot
from scrapers.phases import Phase, next_phase
from scrapers.recovery import RecoveryAction, select_recovery
from scrapers.tracker import ConvergenceTracker

log = logging.getLogger(__name__)


def build_search_url(base_url: str, query: str) -> str:
    return f"{base_url.rstrip('/')}/search?q={quote(query, safe='')}"


@dataclass
class HarvestSession:
    """Mutable state of one in-flight harvest. Never shared between calls."""

    request: HarvestRequest
    tracker: ConvergenceTracker
    artifacts: ScreenshotArtifacts
    cancel: asyncio.Event | None = None
    deadline: float | None = None
    iterations: int = 0
    scroll_attempts: int = 0
    recoveries: int = 0
    rescan_passes: int = 0
    fallback: str = "none"
    cancelled: bool = False
    timed_out: bool = False
    phases: list[Phase] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def aborted(self) -> bool:
        return self.cancelled or self.timed_out

    def check_abort(self) -> bool:
        if not self.cancelled and self.cancel is not None and self.cancel.is_set():
            self.cancelled = True
            log.info("Harvest for '%s' cancelled", self.request.query)
        if (
            not self.timed_out
            and self.deadline is not None
            and time.monotonic() >= self.deadline
        ):
            self.timed_out = True
            log.warning("Harvest for '%s' hit its deadline", self.request.query)
        return self.aborted


class HarvestOrchestrator:
    """Drives a browser tab and a vision oracle to collect unique posts.

    Each call runs the phase machine in :mod:`scrapers.phases`. Calls are
    serialized on ``lock`` because they all drive the same browser tab.
    """

    def __init__(
        self,
        browser: BrowserSession,
        oracle: ExtractionOracle,
        config: Settings | None = None,
        lock: asyncio.Lock | None = None,
    ) -> None:
        self._browser = browser
        self._oracle = oracle
        self._cfg = config or default_settings
        self._lock = lock or asyncio.Lock()
        self._handlers = {
            Phase.NAVIGATE: self._navigate,
            Phase.PREFETCH: self._prefetch,
            Phase.RESET_TOP: self._reset_top,
            Phase.EXTRACT: self._extract,
            Phase.RESCAN: self._rescan,
            Phase.FALLBACK: self._fallback,
            Phase.CLEANUP: self._cleanup,
        }

    async def harvest(
        self, query: str, target_count: int, *, cancel: asyncio.Event | None = None
    ) -> list[Item]:
        report = await self.run(HarvestRequest(query, target_count), cancel=cancel)
        return report.items

    async def run(
        self, request: HarvestRequest, *, cancel: asyncio.Event | None = None
    ) -> HarvestReport:
        async with self._lock:
            return await self._run_locked(request, cancel)

    async def _run_locked(
        self, request: HarvestRequest, cancel: asyncio.Event | None
    ) -> HarvestReport:
        cfg = self._cfg
        if not await self._browser.is_connected():
            raise ConnectivityError("Browser is not reachable, harvest not started")

        started_at = datetime.now(timezone.utc)
        t0 = time.monotonic()
        tracker = ConvergenceTracker(
            request.target_count,
            key_length=cfg.DEDUP_KEY_LENGTH,
            min_key_length=cfg.DEDUP_MIN_KEY_LENGTH,
        )
        deadline = None
        if cfg.HARVEST_DEADLINE_SECONDS > 0:
            deadline = t0 + cfg.HARVEST_DEADLINE_SECONDS

        log.info(
            "Starting harvest for: %s (target: %d)", request.query, request.target_count
        )
        with ScreenshotArtifacts() as artifacts:
            session = HarvestSession(
                request=request,
                tracker=tracker,
                artifacts=artifacts,
                cancel=cancel,
                deadline=deadline,
            )
            phase = Phase.NAVIGATE
            while phase is not Phase.DONE:
                session.phases.append(phase)
                log.debug("Entering phase %s", phase.value)
                await self._handlers[phase](session)
                phase = next_phase(
                    phase,
                    complete=tracker.is_complete,
                    has_items=bool(tracker.items),
                    aborted=session.check_abort(),
                )

        items = tracker.items[: request.target_count]
        duration = time.monotonic() - t0
        log.info(
            "Harvest finished: %d/%d unique items | %d iterations | %d recoveries | fallback=%s | %.1fs",
            len(items),
            request.target_count,
            session.iterations,
            session.recoveries,
            session.fallback,
            duration,
        )
        return HarvestReport(
            query=request.query,
            target_count=request.target_count,
            items=items,
            started_at=started_at,
            duration_seconds=duration,
            iterations=session.iterations,
            scroll_attempts=session.scroll_attempts,
            recoveries=session.recoveries,
            rescan_passes=session.rescan_passes,
            fallback=session.fallback,
            cancelled=session.cancelled,
            timed_out=session.timed_out,
            phases=[p.value for p in session.phases],
            errors=session.errors,
        )

    # ── phases ───────────────────────────────────────────────────────

    async def _navigate(self, session: HarvestSession) -> None:
        cfg = self._cfg
        url = build_search_url(cfg.TWITTER_BASE_URL, session.request.query)
        log.info("Navigating to: %s", url)
        try:
            await self._open(url)
        except NavigationError as e:
            if not await self._browser.is_connected():
                raise ConnectivityError(f"Browser went away while navigating: {e}") from e
            log.warning("Navigation failed, continuing best-effort: %s", e)
            session.errors.append(str(e))
            return

        await self._settle(cfg.INITIAL_LOAD_DELAY)
        if not await self._await_results(session):
            log.warning(
                "Search results not confirmed after %d attempts, proceeding anyway",
                cfg.VERIFY_MAX_ATTEMPTS,
            )

    async def _prefetch(self, session: HarvestSession) -> None:
        cfg = self._cfg
        count = max(cfg.PREFETCH_MIN_SCROLLS, math.ceil(session.request.target_count / 2))
        log.info("Prefetching: %d scrolls to load up to %d items", count, session.request.target_count)
        for i in range(count):
            if session.check_abort():
                return
            await self._scroll(session, "down", cfg.PREFETCH_SCROLL_PIXELS)
            await self._settle(cfg.PREFETCH_SETTLE)
            log.debug("Prefetch scroll %d/%d completed", i + 1, count)

    async def _reset_top(self, session: HarvestSession) -> None:
        cfg = self._cfg
        log.info("Scrolling to top to start extraction...")
        for _ in range(cfg.RESET_TOP_SCROLLS):
            if session.check_abort():
                return
            await self._scroll(session, "up", cfg.RESET_TOP_PIXELS)
            await self._settle(cfg.RESET_TOP_SETTLE)
        await self._settle(cfg.RESET_TOP_FINAL_SETTLE)

        if await self._verify_loaded(session):
            return
        log.warning("Posts may not be loaded, waiting a bit more...")
        await self._settle(cfg.RESET_TOP_REVERIFY_DELAY)
        if not await self._verify_loaded(session):
            log.warning("Could not verify posts are loaded, proceeding anyway")

    async def _extract(self, session: HarvestSession) -> None:
        cfg = self._cfg
        tracker = session.tracker
        while not tracker.is_complete and session.iterations < cfg.MAX_EXTRACT_ITERATIONS:
            if session.check_abort():
                return
            session.iterations += 1
            new, found = await self._extract_once(
                session, tracker.remaining * cfg.SURPLUS_MULTIPLIER
            )
            tracker.record_iteration_outcome(new, oracle_empty=found == 0)
            if tracker.is_complete:
                log.info("Reached target of %d items", tracker.target)
                return

            action = select_recovery(
                tracker.stuck_count,
                tracker.consecutive_empty_count,
                iteration=session.iterations,
                max_iterations=cfg.MAX_EXTRACT_ITERATIONS,
                stuck_threshold=cfg.STUCK_THRESHOLD,
                empty_threshold=cfg.EMPTY_THRESHOLD,
            )
            if action is RecoveryAction.STOP_AND_RESCAN:
                break
            if action is RecoveryAction.AGGRESSIVE_RECOVERY:
                log.info(
                    "Stuck at %d items (stuck=%d, empty=%d), trying aggressive scroll...",
                    len(tracker.items),
                    tracker.stuck_count,
                    tracker.consecutive_empty_count,
                )
                await self._scroll(session, "down", cfg.AGGRESSIVE_SCROLL_PIXELS)
                await self._settle(cfg.AGGRESSIVE_SETTLE)
                tracker.reset_counters()
                session.recoveries += 1
            else:
                await self._scroll(session, "down", cfg.SCROLL_PIXELS)
                await self._settle(cfg.SCROLL_SETTLE)
            session.scroll_attempts += 1

        log.info(
            "Extraction budget spent after %d iterations with %d/%d items",
            session.iterations,
            len(tracker.items),
            tracker.target,
        )

    async def _rescan(self, session: HarvestSession) -> None:
        cfg = self._cfg
        tracker = session.tracker
        log.info(
            "Only found %d/%d items, re-scanning from different positions...",
            len(tracker.items),
            tracker.target,
        )
        await self._scroll(session, "up", cfg.RESCAN_BACKTRACK_PIXELS)
        await self._settle(cfg.RESCAN_BACKTRACK_SETTLE)

        for attempt in range(cfg.RESCAN_PASSES):
            if tracker.is_complete or session.check_abort():
                return
            session.rescan_passes += 1
            await self._extract_once(session, tracker.remaining * cfg.RESCAN_SURPLUS_MULTIPLIER)
            log.info(
                "Rescan %d: now have %d/%d items", attempt + 1, len(tracker.items), tracker.target
            )
            if not tracker.is_complete:
                await self._scroll(session, "down", cfg.RESCAN_SCROLL_PIXELS)
                await self._settle(cfg.RESCAN_SETTLE)

    async def _fallback(self, session: HarvestSession) -> None:
        tracker = session.tracker
        if tracker.items:
            return

        log.info("No items found, trying final extraction...")
        session.fallback = "single_shot"
        await self._extract_once(session, tracker.target)
        if tracker.items:
            return

        log.warning("All extraction methods failed, trying snapshot fallback")
        session.fallback = "snapshot"
        try:
            elements = await self._browser.snapshot()
        except BrowserCommandError as e:
            log.error("Snapshot fallback failed: %s", e)
            session.errors.append(str(e))
            return

        posts = [
            CandidateItem(text=el.text.strip())
            for el in elements
            if (el.tag == "article" or el.attributes.get("testid") == "tweet")
            and el.text
            and el.text.strip()
        ]
        new = tracker.merge(posts[: tracker.target], origin="snapshot")
        log.info("Snapshot fallback recovered %d items", new)

    async def _cleanup(self, session: HarvestSession) -> None:
        removed = session.artifacts.release()
        log.debug("Removed %d screenshot artifact(s)", removed)

    # ── helpers ──────────────────────────────────────────────────────

    async def _extract_once(self, session: HarvestSession, max_items: int) -> tuple[int, int]:
        """One screenshot + oracle call merged into the tracker.

        Returns ``(new_items, candidates_returned)``. Failures count as an
        empty call.
        """
        tracker = session.tracker
        try:
            shot = await self._capture(session)
            result = await self._oracle.extract_items(shot.image, max_items)
            candidates = result.items
        except (BrowserCommandError, ExtractionError) as e:
            log.warning("Extraction failed at position %d: %s", session.iterations, e)
            session.errors.append(str(e))
            candidates = []

        new = tracker.merge(candidates)
        log.info(
            "Position %d: oracle found %d items, %d were new, total unique: %d/%d",
            session.iterations,
            len(candidates),
            new,
            len(tracker.items),
            tracker.target,
        )
        return new, len(candidates)

    async def _await_results(self, session: HarvestSession) -> bool:
        cfg = self._cfg
        for attempt in range(cfg.VERIFY_MAX_ATTEMPTS):
            if session.check_abort():
                return False
            if await self._verify_loaded(session):
                log.info("Search results confirmed loaded")
                return True
            log.info("Verify attempt %d/%d: waiting...", attempt + 1, cfg.VERIFY_MAX_ATTEMPTS)
            if attempt < cfg.VERIFY_MAX_ATTEMPTS - 1:
                await self._settle(cfg.VERIFY_DELAY)
        return False

    async def _verify_loaded(self, session: HarvestSession) -> bool:
        try:
            shot = await self._capture(session)
            return await self._oracle.results_loaded(shot.image)
        except (BrowserCommandError, ExtractionError) as e:
            log.debug("Results check failed: %s", e)
            return False

    async def _capture(self, session: HarvestSession) -> Screenshot:
        shot = await self._browser.screenshot()
        return session.artifacts.track(shot)

    async def _open(self, url: str) -> None:
        try:
            await self._browser.open(url)
        except BrowserCommandError as e:
            raise NavigationError(f"Could not open {url}: {e}") from e

    async def _scroll(self, session: HarvestSession, direction: str, pixels: int) -> bool:
        try:
            await self._browser.scroll(direction, pixels)
            return True
        except BrowserCommandError as e:
            log.warning("Scroll %s %dpx failed: %s", direction, pixels, e)
            session.errors.append(str(e))
            return False

    @staticmethod
    async def _settle(seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence

from config.settings import Settings
from config.settings import settings as default_settings
from core.errors import (
    BrowserCommandError,
    ConnectivityError,
    ExtractionError,
    InvalidRequestError,
)
from core.models import BreakingNewsItem, HarvestReport, HarvestRequest, Item
from scrapers.artifacts import ScreenshotArtifacts
from scrapers.base import BrowserSession, ExtractionOracle
from scrapers.breaking_news import BreakingNewsClassifier
from scrapers.harvester import HarvestOrchestrator

log = logging.getLogger(__name__)

HarvestCallback = Callable[[HarvestReport], Awaitable[None]]


class TwitterAgent:
    """Searches Twitter/X through a logged-in browser and a vision model.

    Every harvest is reported to ``on_harvest`` (if given) once it returns.
    """

    source_name = "twitter"

    def __init__(
        self,
        browser: BrowserSession,
        oracle: ExtractionOracle,
        config: Settings | None = None,
        on_harvest: HarvestCallback | None = None,
    ) -> None:
        self._cfg = config or default_settings
        self._browser = browser
        self._oracle = oracle
        self._on_harvest = on_harvest
        self._harvester = HarvestOrchestrator(browser, oracle, self._cfg)
        self._news = BreakingNewsClassifier(self, self._cfg)
        self.initialized = False

    async def init(self) -> None:
        """Attach to the browser and check the Twitter session looks logged in."""
        if self.initialized:
            return
        if not await self._browser.is_connected():
            raise ConnectivityError(
                f"Chrome is not running with remote debugging on port {self._cfg.CHROME_DEBUG_PORT}. "
                "Start it with --remote-debugging-port and a logged-in profile."
            )

        home = f"{self._cfg.TWITTER_BASE_URL.rstrip('/')}/home"
        with ScreenshotArtifacts() as artifacts:
            try:
                if "/home" not in await self._browser.current_url():
                    await self._browser.open(home)
                shot = artifacts.track(await self._browser.screenshot())
                if await self._oracle.is_authenticated(shot.image):
                    log.info("Authentication verified via LLM")
                else:
                    log.warning(
                        "Could not verify authentication via LLM, continuing anyway"
                    )
            except (BrowserCommandError, ExtractionError) as e:
                log.warning("Authentication check failed, continuing anyway: %s", e)

        self.initialized = True
        log.info("Twitter agent initialized")

    async def search(self, query: str, max_results: int = 10) -> list[Item]:
        report = await self.search_report(query, max_results)
        return report.items

    async def search_report(self, query: str, max_results: int = 10) -> HarvestReport:
        self._validate_search(query, max_results)
        if not self.initialized:
            await self.init()

        report = await self._harvester.run(HarvestRequest(query.strip(), max_results))
        if self._on_harvest is not None:
            try:
                await self._on_harvest(report)
            except Exception as e:
                log.error("Failed to record harvest for '%s': %s", query, e)
        return report

    # Used by the breaking news classifier so runs are reported like any search.
    async def harvest(self, query: str, target_count: int) -> list[Item]:
        return await self.search(query, target_count)

    async def breaking_news(self, symbols: Sequence[str]) -> list[BreakingNewsItem]:
        if not isinstance(symbols, (list, tuple)) or not symbols:
            raise InvalidRequestError("symbols must be a non-empty array")
        cleaned = [s.strip().lstrip("$") for s in symbols if isinstance(s, str) and s.strip()]
        if not cleaned:
            raise InvalidRequestError("symbols must contain at least one non-empty string")
        log.info("Checking breaking news for: %s", ", ".join(cleaned))
        return await self._news.check(cleaned)

    async def health_check(self) -> dict:
        try:
            if not await self._browser.is_connected():
                return {"healthy": False, "message": "Chrome not connected"}
            if not self.initialized:
                await self.init()
            return {"healthy": True, "message": "Agent is ready"}
        except ConnectivityError as e:
            return {"healthy": False, "message": str(e)}

    async def close(self) -> None:
        await self._browser.close()

    def _validate_search(self, query: str, max_results: int) -> None:
        if not isinstance(query, str) or not query.strip():
            raise InvalidRequestError("Query is required and must be a string")
        if (
            isinstance(max_results, bool)
            or not isinstance(max_results, int)
            or not 1 <= max_results <= self._cfg.MAX_TARGET_COUNT
        ):
            raise InvalidRequestError(
                f"maxResults must be a number between 1 and {self._cfg.MAX_TARGET_COUNT}"
            )

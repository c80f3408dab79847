from __future__ import annotations

import logging
import time
import uuid
from pathlib import Path

import httpx
from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from config.settings import Settings
from config.settings import settings as default_settings
from core.errors import BrowserCommandError
from scrapers.base import BrowserSession, Screenshot, SnapshotElement

log = logging.getLogger(__name__)

SCREENSHOT_PREFIX = "twitter-screenshot-"
POST_SELECTOR = "article, [data-testid='tweet']"


class PlaywrightBrowserSession(BrowserSession):
    """Attaches to a running Chrome over CDP and drives a single tab.

    Chrome must already be started with ``--remote-debugging-port`` and a
    logged-in profile. An open Twitter/X tab is reused when there is one.
    """

    def __init__(self, config: Settings | None = None) -> None:
        cfg = config or default_settings
        self._port = cfg.CHROME_DEBUG_PORT
        self._endpoint = f"http://localhost:{self._port}"
        self._timeout_ms = cfg.BROWSER_COMMAND_TIMEOUT * 1000
        self._screenshot_timeout_ms = cfg.SCREENSHOT_TIMEOUT * 1000
        self._screenshot_dir = Path(cfg.SCREENSHOT_DIR)
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._page: Page | None = None

    async def is_connected(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                resp = await client.get(f"{self._endpoint}/json/version")
            return resp.status_code == 200
        except httpx.HTTPError as e:
            log.debug("Chrome debug endpoint %s unreachable: %s", self._endpoint, e)
            return False

    async def _ensure_page(self) -> Page:
        if self._page is not None and not self._page.is_closed():
            return self._page
        try:
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            if self._browser is None or not self._browser.is_connected():
                self._browser = await self._playwright.chromium.connect_over_cdp(self._endpoint)
                log.info("Connected to Chrome on port %d", self._port)

            context = (
                self._browser.contexts[0]
                if self._browser.contexts
                else await self._browser.new_context()
            )
            page = next(
                (p for p in context.pages if "twitter.com" in p.url or "x.com" in p.url),
                None,
            )
            if page is not None:
                log.info("Found existing Twitter tab: %s", page.url)
            else:
                page = await context.new_page()
            self._page = page
            return page
        except PlaywrightError as e:
            raise BrowserCommandError(f"Could not attach to Chrome at {self._endpoint}: {e}") from e

    async def open(self, url: str) -> None:
        page = await self._ensure_page()
        try:
            await page.goto(url, timeout=self._timeout_ms, wait_until="domcontentloaded")
        except PlaywrightError as e:
            raise BrowserCommandError(f"open {url} failed: {e}") from e

    async def scroll(self, direction: str, pixels: int) -> None:
        if direction not in ("up", "down"):
            raise ValueError(f"direction must be 'up' or 'down', got {direction!r}")
        page = await self._ensure_page()
        delta = pixels if direction == "down" else -pixels
        log.debug("Executing scroll: %s %dpx", direction, pixels)
        try:
            await page.mouse.wheel(0, delta)
        except PlaywrightError as e:
            raise BrowserCommandError(f"scroll {direction} {pixels} failed: {e}") from e

    async def screenshot(self) -> Screenshot:
        page = await self._ensure_page()
        self._screenshot_dir.mkdir(parents=True, exist_ok=True)
        path = self._screenshot_dir / (
            f"{SCREENSHOT_PREFIX}{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}.png"
        )
        try:
            image = await page.screenshot(path=str(path), timeout=self._screenshot_timeout_ms)
        except PlaywrightError as e:
            path.unlink(missing_ok=True)
            raise BrowserCommandError(f"Failed to take screenshot: {e}") from e
        return Screenshot(image=image, path=path)

    async def snapshot(self) -> list[SnapshotElement]:
        page = await self._ensure_page()
        elements: list[SnapshotElement] = []
        try:
            for i, locator in enumerate(await page.locator(POST_SELECTOR).all()):
                tag = await locator.evaluate("el => el.tagName.toLowerCase()")
                testid = await locator.get_attribute("data-testid")
                text = await locator.inner_text(timeout=self._timeout_ms)
                elements.append(
                    SnapshotElement(
                        ref=f"@e{i + 1}",
                        tag=tag,
                        text=text.strip(),
                        attributes={"testid": testid} if testid else {},
                    )
                )
        except PlaywrightError as e:
            raise BrowserCommandError(f"snapshot failed: {e}") from e
        return elements

    async def current_url(self) -> str:
        page = await self._ensure_page()
        return page.url

    async def close(self) -> None:
        # Only drops our CDP connection; the user's Chrome keeps running.
        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError as e:
                log.debug("Error while disconnecting from Chrome: %s", e)
            self._browser = None
            self._page = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

"""
Shared test configuration.

- Path setup so the flat packages import without installation
- Deterministic fakes for the browser and the vision oracle
- Settings with every settle delay set to zero
"""
import asyncio
import os
import sys
from pathlib import Path
from typing import Callable, List, Optional, Union

import pytest

project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from config.settings import Settings  # noqa: E402
from core.models import CandidateItem  # noqa: E402
from scrapers.base import (  # noqa: E402
    BrowserSession,
    ExtractionOracle,
    OracleResult,
    Screenshot,
    SnapshotElement,
)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests across several components")


# ============================================
# SETTINGS
# ============================================

ZERO_DELAYS = {
    "INITIAL_LOAD_DELAY": 0,
    "VERIFY_DELAY": 0,
    "PREFETCH_SETTLE": 0,
    "RESET_TOP_SETTLE": 0,
    "RESET_TOP_FINAL_SETTLE": 0,
    "RESET_TOP_REVERIFY_DELAY": 0,
    "SCROLL_SETTLE": 0,
    "AGGRESSIVE_SETTLE": 0,
    "RESCAN_BACKTRACK_SETTLE": 0,
    "RESCAN_SETTLE": 0,
}


def make_settings(**overrides) -> Settings:
    values = {**ZERO_DELAYS, "DATABASE_URL": "sqlite+aiosqlite:///:memory:"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def fast_settings() -> Settings:
    return make_settings()


# ============================================
# FAKES
# ============================================

def post(text: str, author: str = "someone", **kwargs) -> CandidateItem:
    return CandidateItem(text=text, author=author, **kwargs)


def posts(prefix: str, n: int, start: int = 0) -> List[CandidateItem]:
    """``n`` distinct candidates long enough to pass the noise filter."""
    return [post(f"{prefix} post number {i} with enough text") for i in range(start, start + n)]


class FakeBrowser(BrowserSession):
    """In-memory browser that writes real screenshot files under ``tmp_dir``."""

    def __init__(self, tmp_dir: Path, connected: bool = True) -> None:
        self.tmp_dir = tmp_dir
        self.connected = connected
        self.url = "about:blank"
        self.opened: List[str] = []
        self.scrolls: List[tuple] = []
        self.events: List[tuple] = []
        self.screenshots = 0
        self.snapshot_elements: List[SnapshotElement] = []
        self.open_error: Optional[Exception] = None
        self.screenshot_error: Optional[Exception] = None
        self.closed = False

    async def is_connected(self) -> bool:
        return self.connected

    async def open(self, url: str) -> None:
        self.events.append(("open", url))
        if self.open_error is not None:
            raise self.open_error
        self.url = url
        self.opened.append(url)

    async def scroll(self, direction: str, pixels: int) -> None:
        self.events.append(("scroll", self.url))
        self.scrolls.append((direction, pixels))
        await asyncio.sleep(0)

    async def screenshot(self) -> Screenshot:
        self.events.append(("screenshot", self.url))
        if self.screenshot_error is not None:
            raise self.screenshot_error
        self.screenshots += 1
        path = self.tmp_dir / f"twitter-screenshot-{self.screenshots}.png"
        path.write_bytes(b"\x89PNG fake")
        await asyncio.sleep(0)
        return Screenshot(image=b"\x89PNG fake", path=path)

    async def snapshot(self) -> List[SnapshotElement]:
        return list(self.snapshot_elements)

    async def current_url(self) -> str:
        return self.url

    async def close(self) -> None:
        self.closed = True

    def leftover_screenshots(self) -> List[Path]:
        return sorted(self.tmp_dir.glob("twitter-screenshot-*.png"))


Batch = Union[List[CandidateItem], Exception]


class FakeOracle(ExtractionOracle):
    """Replays scripted batches; once exhausted, returns ``default`` forever."""

    def __init__(
        self,
        batches: Optional[List[Batch]] = None,
        default: Optional[List[CandidateItem]] = None,
        loaded: bool = True,
        authenticated: bool = True,
        on_extract: Optional[Callable[[int], None]] = None,
    ) -> None:
        self.batches = list(batches or [])
        self.default = default or []
        self.loaded = loaded
        self.authenticated = authenticated
        self.on_extract = on_extract
        self.extract_calls: List[int] = []
        self.loaded_calls = 0

    async def extract_items(self, image: bytes, max_items: int) -> OracleResult:
        self.extract_calls.append(max_items)
        if self.on_extract is not None:
            self.on_extract(len(self.extract_calls))
        batch = self.batches.pop(0) if self.batches else self.default
        if isinstance(batch, Exception):
            raise batch
        return OracleResult(items=list(batch), total_found=len(batch))

    async def results_loaded(self, image: bytes) -> bool:
        self.loaded_calls += 1
        return self.loaded

    async def is_authenticated(self, image: bytes) -> bool:
        return self.authenticated


@pytest.fixture
def browser(tmp_path) -> FakeBrowser:
    return FakeBrowser(tmp_path)

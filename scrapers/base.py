from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path

from core.models import CandidateItem


@dataclass
class Screenshot:
    image: bytes  # PNG
    path: Path | None = None  # on-disk copy, owned by the caller until released


@dataclass
class SnapshotElement:
    ref: str
    tag: str
    text: str = ""
    attributes: dict[str, str] = field(default_factory=dict)


@dataclass
class OracleResult:
    items: list[CandidateItem]
    total_found: int = 0


class BrowserSession(ABC):
    """Control channel to a live, already-authenticated browser tab."""

    @abstractmethod
    async def is_connected(self) -> bool: ...

    @abstractmethod
    async def open(self, url: str) -> None: ...

    @abstractmethod
    async def scroll(self, direction: str, pixels: int) -> None:
        """Scroll the feed "up" or "down" by ``pixels``."""
        ...

    @abstractmethod
    async def screenshot(self) -> Screenshot: ...

    @abstractmethod
    async def snapshot(self) -> list[SnapshotElement]:
        """Structural dump of the post containers currently on the page."""
        ...

    @abstractmethod
    async def current_url(self) -> str: ...

    async def close(self) -> None:
        return None


class ExtractionOracle(ABC):
    """Vision model that turns a screenshot into structured data."""

    @abstractmethod
    async def extract_items(self, image: bytes, max_items: int) -> OracleResult:
        """Raise ExtractionError on failure or unparseable output."""
        ...

    @abstractmethod
    async def results_loaded(self, image: bytes) -> bool: ...

    @abstractmethod
    async def is_authenticated(self, image: bytes) -> bool: ...

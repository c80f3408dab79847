from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class HarvestRequest:
    query: str
    target_count: int


@dataclass
class CandidateItem:
    """One post as reported by a single oracle call."""

    text: str
    author: str = "unknown"
    timestamp: datetime | None = None
    like_count: int = 0
    repost_count: int = 0


@dataclass
class Item:
    """A deduplicated post held by a harvest session."""

    id: str  # synthetic, only used for downstream correlation
    text: str
    author: str
    timestamp: datetime | None
    like_count: int = 0
    repost_count: int = 0
    origin: str = "vision"  # "vision" or "snapshot"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "author": self.author,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "like_count": self.like_count,
            "repost_count": self.repost_count,
            "origin": self.origin,
        }


@dataclass
class BreakingNewsItem:
    symbol: str
    headline: str
    author: str
    age_minutes: int
    is_breaking: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "headline": self.headline,
            "author": self.author,
            "age_minutes": self.age_minutes,
            "is_breaking": self.is_breaking,
        }


@dataclass
class HarvestReport:
    """Outcome of a single harvest session."""

    query: str
    target_count: int
    items: list[Item]
    started_at: datetime
    duration_seconds: float = 0.0
    iterations: int = 0
    scroll_attempts: int = 0
    recoveries: int = 0
    rescan_passes: int = 0
    fallback: str = "none"  # "none", "single_shot" or "snapshot"
    cancelled: bool = False
    timed_out: bool = False
    phases: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        if len(self.items) >= self.target_count:
            return "success"
        return "partial" if self.items else "empty"

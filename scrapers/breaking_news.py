"""Breaking-news filter on top of the harvester.

Only posts from a fixed allow-list of squawk accounts count. A post is kept
when it mentions one of the requested symbols, is at most 30 minutes old,
and is flagged as breaking below 10 minutes.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Protocol

from config.settings import Settings
from config.settings import settings as default_settings
from core.models import BreakingNewsItem, Item

log = logging.getLogger(__name__)


class Harvester(Protocol):
    async def harvest(self, query: str, target_count: int) -> list[Item]: ...


def build_news_query(symbols: Sequence[str], accounts: Sequence[str]) -> str:
    cashtags = " OR ".join(f"${s}" for s in symbols)
    sources = " OR ".join(f"from:{a}" for a in accounts)
    return f"({cashtags}) ({sources}) -is:retweet"


def mentioned_symbol(text: str, symbols: Sequence[str]) -> str | None:
    """First symbol found as ``$SYM`` or a space-padded ``SYM`` in ``text``."""
    upper = text.upper()
    for symbol in symbols:
        if f"${symbol}" in upper or f" {symbol} " in upper:
            return symbol
    return None


def is_news_account(author: str, accounts: Sequence[str]) -> bool:
    author = author.lower()
    return any(a.lower() in author for a in accounts)


def classify(
    symbols: Sequence[str],
    items: Sequence[Item],
    *,
    now: datetime | None = None,
    config: Settings | None = None,
) -> list[BreakingNewsItem]:
    cfg = config or default_settings
    now = now or datetime.now(timezone.utc)
    symbols = [s.upper() for s in symbols[: cfg.BREAKING_NEWS_MAX_SYMBOLS]]
    accounts = cfg.breaking_news_accounts
    max_age = cfg.BREAKING_NEWS_WINDOW_MINUTES * 60
    breaking_age = cfg.BREAKING_THRESHOLD_MINUTES * 60

    results: list[BreakingNewsItem] = []
    for item in items:
        if item.timestamp is None:
            log.debug("Skipping item %s without a usable timestamp", item.id)
            continue
        ts = item.timestamp
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        age = (now - ts).total_seconds()
        if age > max_age:
            continue

        symbol = mentioned_symbol(item.text, symbols)
        if symbol is None or not is_news_account(item.author, accounts):
            continue

        results.append(
            BreakingNewsItem(
                symbol=symbol,
                headline=item.text[: cfg.HEADLINE_MAX_CHARS],
                author=item.author,
                age_minutes=math.floor(age / 60 + 0.5),
                is_breaking=age < breaking_age,
            )
        )
    return results


class BreakingNewsClassifier:
    def __init__(self, harvester: Harvester, config: Settings | None = None) -> None:
        self._harvester = harvester
        self._cfg = config or default_settings

    async def check(self, symbols: Sequence[str]) -> list[BreakingNewsItem]:
        if not symbols:
            return []
        cfg = self._cfg
        to_check = [s.upper() for s in symbols[: cfg.BREAKING_NEWS_MAX_SYMBOLS]]
        query = build_news_query(to_check, cfg.breaking_news_accounts)
        items = await self._harvester.harvest(query, cfg.BREAKING_NEWS_TARGET)
        news = classify(to_check, items, config=cfg)
        log.info(
            "Breaking news for %s: %d of %d harvested items qualified",
            ", ".join(to_check),
            len(news),
            len(items),
        )
        return news

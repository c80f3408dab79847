from __future__ import annotations

import logging
import time

from core.models import CandidateItem, Item

log = logging.getLogger(__name__)


def dedup_key(text: str | None, length: int = 150) -> str:
    return (text or "")[:length].lower().strip()


class ConvergenceTracker:
    """Accumulates unique items for one session and tracks stalls.

    Invariants: ``len(items) <= target``, and every key in ``seen_keys`` maps
    to exactly one accepted item.
    """

    def __init__(
        self,
        target: int,
        *,
        key_length: int = 150,
        min_key_length: int = 11,
    ) -> None:
        self.target = target
        self.key_length = key_length
        self.min_key_length = min_key_length
        self.seen_keys: set[str] = set()
        self.items: list[Item] = []
        self.stuck_count = 0
        self.consecutive_empty_count = 0
        self._last_count = 0
        self._stamp = int(time.time() * 1000)

    @property
    def is_complete(self) -> bool:
        return len(self.items) >= self.target

    @property
    def remaining(self) -> int:
        return max(self.target - len(self.items), 0)

    def accept(self, candidate: CandidateItem, *, origin: str = "vision") -> bool:
        """Add ``candidate`` if it is new. First occurrence wins."""
        if self.is_complete:
            return False

        key = dedup_key(candidate.text, self.key_length)
        # snapshot text is already structural, only vision output is noise-filtered
        min_length = self.min_key_length if origin == "vision" else 1
        if len(key) < min_length:
            log.debug("Skipped item: text too short (%d chars)", len(key))
            return False
        if key in self.seen_keys:
            log.debug("Skipped item: duplicate (key: %s...)", key[:50])
            return False

        self.seen_keys.add(key)
        prefix = "browser" if origin == "vision" else "fallback"
        self.items.append(
            Item(
                id=f"{prefix}_{self._stamp}_{len(self.items)}",
                text=candidate.text,
                author=candidate.author,
                timestamp=candidate.timestamp,
                like_count=candidate.like_count,
                repost_count=candidate.repost_count,
                origin=origin,
            )
        )
        return True

    def merge(self, candidates: list[CandidateItem], *, origin: str = "vision") -> int:
        """Accept a batch in order; returns how many were new."""
        new = 0
        for candidate in candidates:
            if self.is_complete:
                break
            if self.accept(candidate, origin=origin):
                new += 1
        return new

    def record_iteration_outcome(self, new_count: int, *, oracle_empty: bool = False) -> None:
        total = len(self.items)
        if new_count > 0 and total > self._last_count:
            self.stuck_count = 0
            self.consecutive_empty_count = 0
        else:
            if new_count == 0 and total == self._last_count:
                self.stuck_count += 1
            if oracle_empty:
                self.consecutive_empty_count += 1
        self._last_count = total

    def reset_counters(self) -> None:
        self.stuck_count = 0
        self.consecutive_empty_count = 0

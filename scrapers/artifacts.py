from __future__ import annotations

import logging
from pathlib import Path

from scrapers.base import Screenshot

log = logging.getLogger(__name__)


class ScreenshotArtifacts:
    """Screenshot files produced during one harvest, removed on exit.

    Use as a context manager; ``release()`` may also be called early and is
    idempotent.
    """

    def __init__(self) -> None:
        self._paths: list[Path] = []

    def __enter__(self) -> ScreenshotArtifacts:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def __len__(self) -> int:
        return len(self._paths)

    @property
    def paths(self) -> list[Path]:
        return list(self._paths)

    def track(self, shot: Screenshot) -> Screenshot:
        if shot.path is not None:
            self._paths.append(Path(shot.path))
        return shot

    def release(self) -> int:
        """Delete every tracked file. Returns how many were removed."""
        removed = 0
        paths, self._paths = self._paths, []
        for path in paths:
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                log.warning("Could not delete screenshot %s: %s", path, e)
        if removed:
            log.debug("Cleaned up %d screenshot(s)", removed)
        return removed

from __future__ import annotations

from enum import Enum


class RecoveryAction(str, Enum):
    CONTINUE = "continue"
    AGGRESSIVE_RECOVERY = "aggressive_recovery"
    STOP_AND_RESCAN = "stop_and_rescan"


def select_recovery(
    stuck_count: int,
    consecutive_empty_count: int,
    *,
    iteration: int = 0,
    max_iterations: int = 50,
    stuck_threshold: int = 3,
    empty_threshold: int = 5,
) -> RecoveryAction:
    """Decide what the extraction loop does after an iteration.

    ``iteration`` is the number of extraction iterations already spent.
    Budget exhaustion wins over the stall thresholds: there is no point
    scrolling aggressively when no iteration is left to look at the result.
    """
    if iteration >= max_iterations:
        return RecoveryAction.STOP_AND_RESCAN
    if stuck_count >= stuck_threshold or consecutive_empty_count >= empty_threshold:
        return RecoveryAction.AGGRESSIVE_RECOVERY
    return RecoveryAction.CONTINUE

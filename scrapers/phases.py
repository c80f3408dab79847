"""Phase graph of a harvest session.

    NAVIGATE -> PREFETCH -> RESET_TOP -> EXTRACT -> RESCAN -> FALLBACK -> CLEANUP -> DONE

EXTRACT jumps straight to CLEANUP once the target is reached, RESCAN skips
FALLBACK when anything was collected, and an aborted session (cancelled or
past its deadline) goes to CLEANUP from wherever it is.
"""

from __future__ import annotations

from enum import Enum


class Phase(str, Enum):
    NAVIGATE = "navigate"
    PREFETCH = "prefetch"
    RESET_TOP = "reset_top"
    EXTRACT = "extract"
    RESCAN = "rescan"
    FALLBACK = "fallback"
    CLEANUP = "cleanup"
    DONE = "done"


def next_phase(phase: Phase, *, complete: bool, has_items: bool, aborted: bool) -> Phase:
    if phase is Phase.DONE:
        return Phase.DONE
    if phase is Phase.CLEANUP:
        return Phase.DONE
    if aborted:
        return Phase.CLEANUP

    if phase is Phase.NAVIGATE:
        return Phase.PREFETCH
    if phase is Phase.PREFETCH:
        return Phase.RESET_TOP
    if phase is Phase.RESET_TOP:
        return Phase.EXTRACT
    if phase is Phase.EXTRACT:
        return Phase.CLEANUP if complete else Phase.RESCAN
    if phase is Phase.RESCAN:
        return Phase.CLEANUP if has_items else Phase.FALLBACK
    return Phase.CLEANUP

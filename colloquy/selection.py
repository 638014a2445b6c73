"""Confidence-based winner selection."""
from __future__ import annotations

from typing import Optional, Tuple

from colloquy.results import Fulfilled, PhaseBatch


def rank_key(result: Fulfilled) -> Tuple[float, str]:
    """Sort key for confidence order: highest confidence first, then persona id."""
    return (-result.confidence_score, result.persona_id)


def select_best(batch: PhaseBatch) -> Optional[Fulfilled]:
    """Highest confidence wins; on a tie the earlier phase position is kept."""
    best: Optional[Fulfilled] = None
    for entry in sorted(batch.entries, key=lambda item: item.phase_position):
        result = entry.result
        if not isinstance(result, Fulfilled):
            continue
        if best is None or result.confidence_score > best.confidence_score:
            best = result
    return best


class WinnerTracker:
    """Running best-so-far while a confidence-ordered phase settles.

    ``offer`` answers True only when the candidate outranks the current
    winner, so a stream can report improvements without repeating itself.
    """

    def __init__(self) -> None:
        self.best: Optional[Fulfilled] = None

    def offer(self, result: Fulfilled) -> bool:
        if self.best is None or rank_key(result) < rank_key(self.best):
            self.best = result
            return True
        return False

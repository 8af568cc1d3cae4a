from __future__ import annotations

from dataclasses import dataclass

from .ranks import RankTable

POINTS_CORRECT = 10
FAST_BONUS = 5
FAST_BONUS_MS = 600.0


@dataclass(frozen=True, slots=True)
class ScoreResult:
    points_awarded: int
    total_points: int
    previous_rank: str
    rank: str

    @property
    def ranked_up(self) -> bool:
        return self.rank != self.previous_rank


class ScoringEngine:
    """Points for one trial plus the rank transition it causes.

    Totals only ever grow: an incorrect trial awards zero.
    """

    def __init__(self, ranks: RankTable | None = None) -> None:
        self._ranks = ranks or RankTable()

    @property
    def ranks(self) -> RankTable:
        return self._ranks

    @staticmethod
    def points_for(*, correct: bool, rt_ms: float) -> int:
        if not correct:
            return 0
        return POINTS_CORRECT + (FAST_BONUS if rt_ms <= FAST_BONUS_MS else 0)

    def score(self, *, points_before: int, correct: bool, rt_ms: float) -> ScoreResult:
        awarded = self.points_for(correct=correct, rt_ms=rt_ms)
        total = max(0, int(points_before)) + awarded
        return ScoreResult(
            points_awarded=awarded,
            total_points=total,
            previous_rank=self._ranks.rank_for(points_before),
            rank=self._ranks.rank_for(total),
        )

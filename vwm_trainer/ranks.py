from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Rank:
    name: str
    min_points: int


DEFAULT_RANKS: tuple[Rank, ...] = (
    Rank("Beginner", 0),
    Rank("Novice", 200),
    Rank("Competent", 600),
    Rank("Proficient", 1200),
    Rank("Expert", 2200),
)


class RankTable:
    """Ordered point thresholds mapped to rank names."""

    def __init__(self, ranks: tuple[Rank, ...] = DEFAULT_RANKS) -> None:
        if not ranks:
            raise ValueError("ranks must not be empty")
        thresholds = [r.min_points for r in ranks]
        if thresholds != sorted(thresholds):
            raise ValueError("rank thresholds must be ascending")
        self._ranks = tuple(ranks)

    @property
    def ranks(self) -> tuple[Rank, ...]:
        return self._ranks

    def rank_for(self, points: int) -> str:
        name = self._ranks[0].name
        for rank in self._ranks:
            if points >= rank.min_points:
                name = rank.name
        return name

    def next_rank(self, points: int) -> tuple[str, int | None]:
        """Next rank above ``points`` and its threshold; ``None`` at the top."""

        for rank in self._ranks:
            if points < rank.min_points:
                return rank.name, rank.min_points
        return self._ranks[-1].name, None

from __future__ import annotations

import pytest

from vwm_trainer.ranks import DEFAULT_RANKS, Rank, RankTable
from vwm_trainer.scoring import ScoringEngine


@pytest.mark.parametrize(
    ("points", "rank"),
    [(0, "Beginner"), (199, "Beginner"), (200, "Novice"), (599, "Novice"), (600, "Competent"),
     (1200, "Proficient"), (2199, "Proficient"), (2200, "Expert"), (99999, "Expert")],
)
def test_rank_for_thresholds(points: int, rank: str) -> None:
    assert RankTable().rank_for(points) == rank


def test_next_rank_and_top_of_table() -> None:
    table = RankTable()
    assert table.next_rank(0) == ("Novice", 200)
    assert table.next_rank(650) == ("Proficient", 1200)
    assert table.next_rank(2200) == ("Expert", None)
    assert table.ranks == DEFAULT_RANKS


def test_rank_table_rejects_bad_tables() -> None:
    with pytest.raises(ValueError):
        RankTable(())
    with pytest.raises(ValueError):
        RankTable((Rank("A", 10), Rank("B", 5)))


@pytest.mark.parametrize(
    ("correct", "rt_ms", "points"),
    [(True, 400.0, 15), (True, 600.0, 15), (True, 600.5, 10), (True, 2400.0, 10), (False, 100.0, 0)],
)
def test_points_for_correctness_and_speed(correct: bool, rt_ms: float, points: int) -> None:
    assert ScoringEngine.points_for(correct=correct, rt_ms=rt_ms) == points


def test_score_reports_rank_transition() -> None:
    scoring = ScoringEngine()
    result = scoring.score(points_before=195, correct=True, rt_ms=300.0)
    assert result.points_awarded == 15
    assert result.total_points == 210
    assert (result.previous_rank, result.rank) == ("Beginner", "Novice")
    assert result.ranked_up is True

    flat = scoring.score(points_before=210, correct=False, rt_ms=300.0)
    assert flat.total_points == 210
    assert flat.ranked_up is False


def test_custom_rank_table_is_used_for_scoring() -> None:
    scoring = ScoringEngine(RankTable((Rank("Low", 0), Rank("High", 10))))
    result = scoring.score(points_before=0, correct=True, rt_ms=900.0)
    assert result.rank == "High"
    assert scoring.ranks.rank_for(5) == "Low"

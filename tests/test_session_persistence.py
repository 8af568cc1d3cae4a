from __future__ import annotations

import logging
from pathlib import Path

import pytest

from vwm_trainer.persistence import (
    DB_PATH_ENV,
    SCHEMA_VERSION,
    MemorySettingsStore,
    SqliteSettingsStore,
    default_db_path,
    open_db,
    record_trial_outcomes,
)
from vwm_trainer.results import TrialOutcome, summarize_outcomes
from vwm_trainer.session import (
    BLOCK_SIZE,
    ContrastCondition,
    NumerositySubmode,
    Session,
    TrainingMode,
)


def test_empty_store_loads_defaults() -> None:
    s = Session.load(MemorySettingsStore())
    assert (s.points, s.trial_index, s.block_correct, s.block_total) == (0, 0, 0, 0)
    assert s.set_size == 2
    assert s.mode is TrainingMode.ORIENTATION
    assert s.numerosity_submode is NumerositySubmode.ENUMERATE
    assert s.contrast is ContrastCondition.BLURRED
    p = s.numerosity
    assert (p.exposure_ms, p.min_separation_px, p.anchor_set_size, p.compare_delta) == (200, 28, 5, 2)
    assert p.similarity == pytest.approx(0.2)


def test_save_then_load_round_trip() -> None:
    store = MemorySettingsStore()
    s = Session.load(store)
    s.points = 615
    s.trial_index = 42
    s.block_total = 2
    s.block_correct = 1
    s.set_size = 6
    s.mode = TrainingMode.NUMEROSITY
    s.numerosity_submode = NumerositySubmode.COMPARE
    s.contrast = ContrastCondition.SHARP
    s.numerosity.exposure_ms = 160
    s.numerosity.similarity = 0.38
    s.saccade_total = 9
    s.saccade_hits = 7
    s.save()

    values = store.as_dict()
    assert values["blur_on"] == "0"
    assert values["set_trial"] == "42"
    assert values["num_similarity01"] == "0.38"

    again = Session.load(store)
    assert (again.points, again.trial_index, again.set_size) == (615, 42, 6)
    assert again.mode is TrainingMode.NUMEROSITY
    assert again.numerosity_submode is NumerositySubmode.COMPARE
    assert again.contrast is ContrastCondition.SHARP
    assert again.numerosity.exposure_ms == 160
    assert again.numerosity.similarity == pytest.approx(0.38)
    assert (again.saccade_total, again.saccade_hits) == (9, 7)


def test_load_clamps_out_of_range_and_ignores_malformed(caplog: pytest.LogCaptureFixture) -> None:
    store = MemorySettingsStore(
        {
            "set_size": "99",
            "points": "-5",
            "bar_total": "45",
            "bar_correct": "30",
            "mode": "juggling",
            "num_exposure_ms": "5",
            "num_min_sep": "1000",
            "num_similarity01": "1.7",
            "num_anchor_setsize": "2",
            "num_compare_delta": "banana",
            "sac_total": "3",
            "sac_hits": "8",
            "blur_on": "maybe",
        }
    )
    with caplog.at_level(logging.WARNING, logger="vwm_trainer.session"):
        s = Session.load(store)

    assert s.set_size == 10
    assert s.points == 0
    assert s.block_total == BLOCK_SIZE - 1
    assert s.block_correct == BLOCK_SIZE - 1
    assert s.mode is TrainingMode.ORIENTATION
    assert s.numerosity.exposure_ms == 120
    assert s.numerosity.min_separation_px == 48
    assert s.numerosity.similarity == pytest.approx(1.0)
    assert s.numerosity.anchor_set_size == 5
    assert s.numerosity.compare_delta == 2
    assert s.saccade_hits == 3
    assert s.contrast is ContrastCondition.BLURRED
    assert "juggling" in caplog.text
    assert "banana" in caplog.text


def test_reset_stats_keeps_mode_and_difficulty() -> None:
    store = MemorySettingsStore()
    s = Session.load(store)
    s.mode = TrainingMode.COLOR
    s.points = 300
    s.trial_index = 12
    s.block_total = 12
    s.block_correct = 10
    s.set_size = 7
    s.correct_streak = 2
    s.numerosity.exposure_ms = 140
    s.reset_stats()

    assert (s.points, s.trial_index, s.block_total, s.block_correct, s.correct_streak) == (0, 0, 0, 0, 0)
    assert s.set_size == 2
    assert s.mode is TrainingMode.COLOR
    assert s.numerosity.exposure_ms == 140
    assert store.load("points") == "0"


@pytest.mark.parametrize(
    ("mode", "set_size", "effective"),
    [
        (TrainingMode.ORIENTATION, 1, 2),
        (TrainingMode.SACCADE, 10, 10),
        (TrainingMode.SPATIAL, 10, 7),
        (TrainingMode.SPATIAL, 1, 1),
        (TrainingMode.NUMEROSITY, 2, 4),
    ],
)
def test_effective_set_size_per_mode(mode: TrainingMode, set_size: int, effective: int) -> None:
    assert Session(mode=mode, set_size=set_size).effective_set_size() == effective


def test_block_progress_fraction() -> None:
    assert Session(trial_index=0).block_progress() == 0.0
    assert Session(trial_index=25).block_progress() == pytest.approx(0.25)


def test_default_db_path_honours_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    target = tmp_path / "custom.sqlite3"
    monkeypatch.setenv(DB_PATH_ENV, str(target))
    assert default_db_path() == target
    monkeypatch.delenv(DB_PATH_ENV)
    assert default_db_path().name == ".vwm_trainer.sqlite3"


def test_sqlite_store_persists_across_connections(tmp_path: Path) -> None:
    path = tmp_path / "trainer.sqlite3"
    store = SqliteSettingsStore.open(path)
    s = Session.load(store)
    s.points = 1234
    s.mode = TrainingMode.SPATIAL
    s.save()
    s.points = 1250
    s.save()
    store.close()

    reopened = SqliteSettingsStore.open(path)
    try:
        again = Session.load(reopened)
        assert again.points == 1250
        assert again.mode is TrainingMode.SPATIAL
        assert reopened.load("missing", "fallback") == "fallback"
        version = reopened.connection.execute("PRAGMA user_version;").fetchone()[0]
        assert version == SCHEMA_VERSION
    finally:
        reopened.close()


def test_sqlite_store_swallows_write_failures(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    store = SqliteSettingsStore.open(tmp_path / "t.sqlite3")
    store.connection.execute("DROP TABLE setting;")
    with caplog.at_level(logging.WARNING, logger="vwm_trainer.persistence"):
        store.save("points", "10")
        assert store.load("points", "7") == "7"
    assert "settings write failed" in caplog.text
    store.close()


def _outcome(index: int, *, correct: bool, timed_out: bool = False, rt_ms: float = 500.0) -> TrialOutcome:
    return TrialOutcome(
        index=index,
        mode=TrainingMode.ORIENTATION,
        submode=None,
        set_size=3,
        expected="different",
        response="" if timed_out else ("different" if correct else "same"),
        is_correct=correct,
        timed_out=timed_out,
        rt_ms=2500.0 if timed_out else rt_ms,
        points_awarded=15 if correct and rt_ms <= 600 else (10 if correct else 0),
        total_points=0,
        rank="Beginner",
    )


def test_record_trial_outcomes_appends_rows(tmp_path: Path) -> None:
    conn = open_db(tmp_path / "log.sqlite3")
    try:
        assert record_trial_outcomes(conn, []) == 0
        written = record_trial_outcomes(conn, [_outcome(0, correct=True), _outcome(1, correct=False, timed_out=True)])
        assert written == 2
        rows = conn.execute("SELECT seq, mode, is_correct, timed_out, rt_ms FROM trial_event ORDER BY seq").fetchall()
        assert rows == [(0, "orientation", 1, 0, 500.0), (1, "orientation", 0, 1, 2500.0)]
    finally:
        conn.close()


def test_open_db_is_idempotent(tmp_path: Path) -> None:
    path = tmp_path / "x.sqlite3"
    open_db(path).close()
    conn = open_db(path)
    try:
        tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        assert {"setting", "trial_event"} <= tables
    finally:
        conn.close()


def test_summarize_outcomes_excludes_timeouts_from_rt() -> None:
    outcomes = [
        _outcome(0, correct=True, rt_ms=400.0),
        _outcome(1, correct=False, rt_ms=800.0),
        _outcome(2, correct=False, timed_out=True),
        _outcome(3, correct=True, rt_ms=900.0),
    ]
    summary = summarize_outcomes(outcomes)
    assert summary.attempted == 4
    assert summary.correct == 2
    assert summary.accuracy == pytest.approx(0.5)
    assert summary.timeouts == 1
    assert summary.points_awarded == 25
    assert summary.mean_rt_ms == pytest.approx(700.0)
    assert summary.median_rt_ms == pytest.approx(800.0)

    empty = summarize_outcomes([])
    assert empty.accuracy == 0.0
    assert empty.mean_rt_ms is None
    assert empty.median_rt_ms is None

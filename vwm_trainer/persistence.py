from __future__ import annotations

import logging
import os
import sqlite3
import time
from pathlib import Path

from .results import TrialOutcome

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
DB_PATH_ENV = "VWM_TRAINER_DB_PATH"


def default_db_path() -> Path:
    explicit = os.environ.get(DB_PATH_ENV)
    if explicit:
        return Path(explicit).expanduser()
    return Path.home() / ".vwm_trainer.sqlite3"


def open_db(path: Path | str) -> sqlite3.Connection:
    conn = sqlite3.connect(str(path))
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    _migrate(conn)
    return conn


def _utc_now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(time.time()))


def _migrate(conn: sqlite3.Connection) -> None:
    row = conn.execute("PRAGMA user_version;").fetchone()
    ver = int(row[0]) if row else 0
    if ver >= SCHEMA_VERSION:
        return

    with conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS setting (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at_utc TEXT NOT NULL
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS trial_event (
                id INTEGER PRIMARY KEY,
                seq INTEGER NOT NULL,
                mode TEXT NOT NULL,
                submode TEXT,
                set_size INTEGER NOT NULL,
                expected TEXT NOT NULL,
                response TEXT NOT NULL,
                is_correct INTEGER NOT NULL,
                timed_out INTEGER NOT NULL,
                rt_ms REAL NOT NULL,
                points_awarded INTEGER NOT NULL,
                total_points INTEGER NOT NULL,
                rank TEXT NOT NULL,
                saccade_hit INTEGER,
                recorded_at_utc TEXT NOT NULL
            );
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_trial_event_seq ON trial_event(seq);")
        conn.execute(f"PRAGMA user_version={SCHEMA_VERSION};")


class MemorySettingsStore:
    """Dict-backed settings store for tests and throwaway sessions."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(initial or {})

    def load(self, key: str, default: str | None = None) -> str | None:
        return self._values.get(key, default)

    def save(self, key: str, value: str) -> None:
        self._values[key] = str(value)

    def as_dict(self) -> dict[str, str]:
        return dict(self._values)


class SqliteSettingsStore:
    """Settings store on the ``setting`` table.

    Storage errors are logged and swallowed: a failed write must never stall
    trial timing.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    @classmethod
    def open(cls, path: Path | str) -> "SqliteSettingsStore":
        return cls(open_db(path))

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def load(self, key: str, default: str | None = None) -> str | None:
        try:
            row = self._conn.execute("SELECT value FROM setting WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as exc:
            logger.warning("settings read failed for %s: %s", key, exc)
            return default
        return default if row is None else str(row[0])

    def save(self, key: str, value: str) -> None:
        try:
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO setting(key, value, updated_at_utc) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at_utc = excluded.updated_at_utc
                    """,
                    (key, str(value), _utc_now_iso()),
                )
        except sqlite3.Error as exc:
            logger.warning("settings write failed for %s: %s", key, exc)

    def close(self) -> None:
        self._conn.close()


def record_trial_outcomes(conn: sqlite3.Connection, outcomes: list[TrialOutcome]) -> int:
    """Append completed trials to ``trial_event``; returns rows written."""

    if not outcomes:
        return 0
    now = _utc_now_iso()
    with conn:
        for o in outcomes:
            conn.execute(
                """
                INSERT INTO trial_event(
                    seq, mode, submode, set_size, expected, response, is_correct,
                    timed_out, rt_ms, points_awarded, total_points, rank,
                    saccade_hit, recorded_at_utc
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    int(o.index),
                    o.mode.value,
                    None if o.submode is None else o.submode.value,
                    int(o.set_size),
                    str(o.expected),
                    str(o.response),
                    1 if o.is_correct else 0,
                    1 if o.timed_out else 0,
                    float(o.rt_ms),
                    int(o.points_awarded),
                    int(o.total_points),
                    str(o.rank),
                    None if o.saccade_hit is None else (1 if o.saccade_hit else 0),
                    now,
                ),
            )
    return len(outcomes)

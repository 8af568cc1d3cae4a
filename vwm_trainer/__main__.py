from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

if __package__ in (None, ""):
    # Run as ``python vwm_trainer/__main__.py``: make the package importable.
    sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from vwm_trainer.app import LOG_LEVEL_ENV, run
from vwm_trainer.persistence import DB_PATH_ENV


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="vwm-trainer", description="Visual working memory trainer.")
    parser.add_argument("--db", type=Path, help=f"settings database (overrides ${DB_PATH_ENV})")
    parser.add_argument("--log-level", help=f"logging level (overrides ${LOG_LEVEL_ENV})")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    if args.db is not None:
        os.environ[DB_PATH_ENV] = str(args.db)
    if args.log_level:
        os.environ[LOG_LEVEL_ENV] = args.log_level
    return run()


if __name__ == "__main__":
    raise SystemExit(main())

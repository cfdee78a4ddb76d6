"""Filesystem locations and logging setup for the CubeClock shells."""
from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable, Optional

BASE_DIR = Path(__file__).resolve().parents[1]
LOG_DIR = BASE_DIR / "logs"
LOG_FILE = LOG_DIR / "cubeclock.log"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _ensure_directories(paths: Iterable[Path]) -> None:
    for path in paths:
        path.mkdir(parents=True, exist_ok=True)


def setup_logging(level: int | str = logging.INFO, log_file: Optional[Path] = None) -> None:
    """Configure a rotating file logger plus console echo."""
    target = Path(log_file) if log_file else LOG_FILE
    _ensure_directories((target.parent,))

    handler = RotatingFileHandler(
        target,
        maxBytes=1_000_000,
        backupCount=3,
        encoding="utf-8",
    )
    console_handler = logging.StreamHandler()
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[handler, console_handler],
        force=True,
    )

from __future__ import annotations

import logging
from typing import Optional

from rich.console import Console

from app.settings import setup_logging

from . import APP_ROOT

_CONSOLE = Console()
LOG_DIR = APP_ROOT / "logs" / "cli"


def console() -> Console:
    return _CONSOLE


def configure_logging(name: str, level: int | str = logging.INFO) -> None:
    setup_logging(level=level, log_file=LOG_DIR / f"{name}.log")


def format_ms(value: Optional[float]) -> str:
    if value is None:
        return "-"
    return f"{value:+.3f} ms"

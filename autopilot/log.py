"""Logging setup shared by every autopilot module.

Console output goes to stdout at ``LOG_LEVEL``; a per-day file under
``AUTOPILOT_LOG_DIR`` (default ``logs/``) keeps DEBUG detail unless
``AUTOPILOT_LOG_FILE`` is 0/false/no.
"""
from __future__ import annotations

import logging
import os
import sys
from datetime import date
from pathlib import Path

LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_LOG_DIR = Path(__file__).resolve().parent.parent / "logs"

_state: dict[str, object] = {"ready": False, "file": None}


def _file_logging_enabled() -> bool:
    return os.environ.get("AUTOPILOT_LOG_FILE", "1").strip().lower() not in ("0", "false", "no")


def setup_logging(level: str | None = None, log_dir: Path | None = None) -> Path | None:
    """Install the stdout and daily-file handlers once; returns the log file path."""
    if _state["ready"]:
        return _state["file"]  # type: ignore[return-value]
    _state["ready"] = True

    name = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    console_level = logging.getLevelName(name)
    if not isinstance(console_level, int):
        console_level = logging.INFO

    root = logging.getLogger()
    if root.handlers:
        root.setLevel(console_level)
        return None
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(console_level)
    console.setFormatter(formatter)
    root.addHandler(console)
    root.setLevel(console_level)

    if not _file_logging_enabled():
        return None
    directory = Path(log_dir or os.environ.get("AUTOPILOT_LOG_DIR") or DEFAULT_LOG_DIR)
    path = directory / f"autopilot_{date.today():%Y-%m-%d}.log"
    try:
        directory.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8")
    except OSError as exc:
        root.warning("File logging disabled (%s): %s", path, exc)
        return None
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter)
    root.addHandler(handler)
    root.setLevel(min(console_level, logging.DEBUG))
    _state["file"] = path
    return path


def get_logger(name: str) -> logging.Logger:
    setup_logging()
    return logging.getLogger(name)

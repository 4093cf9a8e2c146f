"""Load autopilot settings from config/autopilot.yaml and the environment."""
from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from autopilot.log import get_logger
from autopilot.models import Preferences

log = get_logger(__name__)

load_dotenv()

ROOT: Path = Path(__file__).resolve().parent.parent
CONFIG_DIR: Path = ROOT / "config"
SETTINGS_PATH: Path = CONFIG_DIR / "autopilot.yaml"
PROFILE_PATH: Path = CONFIG_DIR / "profile.yaml"

SUPPORTED_JOB_BOARDS: tuple[str, ...] = (
    "linkedin.com", "indeed.com", "glassdoor.com", "ziprecruiter.com",
    "monster.com", "dice.com", "greenhouse.io", "lever.co", "workday.com",
)


def get_env(key: str, default: str = "") -> str:
    return os.environ.get(key, default).strip()


@dataclass
class Settings:
    send_timeout: float = 10.0
    max_retries: int = 3
    retry_base_delay: float = 1.0
    probe_interval: float = 5.0
    deferred_ttl: float = 300.0
    batch_size: int = 5
    job_delay: float = 5.0
    batch_delay: float = 10.0
    poll_interval: float = 60.0
    supported_job_boards: list[str] = field(default_factory=lambda: list(SUPPORTED_JOB_BOARDS))
    default_preferences: Preferences = field(default_factory=Preferences)
    api_url: str = ""
    channel_url: str = ""
    page_url: str = ""
    data_dir: Path = ROOT / "data"


def load_settings(path: Path | None = None) -> Settings:
    path = path or SETTINGS_PATH
    data: dict[str, Any] = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    else:
        log.warning("No settings file at %s — using built-in defaults", path)

    settings = Settings()
    timings = data.get("timings") or {}
    for f in fields(Settings):
        if f.name in timings:
            setattr(settings, f.name, type(getattr(settings, f.name))(timings[f.name]))

    boards = data.get("supported_job_boards")
    if boards:
        settings.supported_job_boards = [str(b).lower() for b in boards]
    settings.default_preferences = Preferences.from_dict(data.get("preferences"))

    settings.api_url = get_env("AUTOPILOT_API_URL")
    settings.channel_url = get_env("CHANNEL_URL")
    settings.page_url = get_env("PAGE_URL")
    data_dir = get_env("AUTOPILOT_DATA_DIR")
    if data_dir:
        settings.data_dir = Path(data_dir)
    return settings

#!/usr/bin/env python3
"""Entry point to run the job application autopilot."""
from __future__ import annotations

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

from autopilot.config import PROFILE_PATH, get_env
from autopilot.log import get_logger

log = get_logger(__name__)


def _check_setup() -> bool:
    """Return True if first-run setup is needed."""
    if not get_env("AUTOPILOT_API_URL") and not PROFILE_PATH.exists():
        print()
        print("  No profile found. Either set AUTOPILOT_API_URL in .env or create one:")
        print("    cp config/profile.example.yaml config/profile.yaml")
        print()
        return True
    return False


if __name__ == "__main__":
    if _check_setup():
        sys.exit(1)

    from autopilot.runner import main

    sys.exit(main())

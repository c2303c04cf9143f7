"""
Configuration module for streamstats.

All environment variables and configuration constants are defined here.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

from .error_handling import ConfigurationError


def _parse_int_env(key: str, default: int) -> int:
    """Parse integer environment variable."""
    value = os.environ.get(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer, got {value!r}")


# Project root (assumes this file is at streamstats/config.py)
PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Load .env file early so environment variables are available
_env_path = PROJECT_ROOT / ".env"
if _env_path.exists():
    load_dotenv(_env_path)

# ============================================================================
# PLAY THRESHOLDS
# ============================================================================
# Plays shorter than this are skips: counted, never aggregated
MIN_PLAY_MS = _parse_int_env("STREAMSTATS_MIN_PLAY_MS", 30000)

# Apple Music exports carry no play duration, so plays are estimated
FULL_PLAY_MS = _parse_int_env("STREAMSTATS_FULL_PLAY_MS", 240000)
PARTIAL_PLAY_MS = _parse_int_env("STREAMSTATS_PARTIAL_PLAY_MS", 30000)

# ============================================================================
# RANKING LIMITS
# ============================================================================
TOP_TRACKS = _parse_int_env("STREAMSTATS_TOP_TRACKS", 250)
TOP_PER_YEAR = _parse_int_env("STREAMSTATS_TOP_PER_YEAR", 100)
TOP_OBSESSIONS = _parse_int_env("STREAMSTATS_TOP_OBSESSIONS", 100)

# Brief obsessions: low-play tracks with a concentrated 7-day burst
OBSESSION_MAX_PLAYS = _parse_int_env("STREAMSTATS_OBSESSION_MAX_PLAYS", 50)
OBSESSION_MIN_PLAYS = _parse_int_env("STREAMSTATS_OBSESSION_MIN_PLAYS", 5)
OBSESSION_WINDOW_DAYS = 7

# Query layer bounds for top-N
QUERY_TOP_MIN = 1
QUERY_TOP_MAX = 999

# ============================================================================
# LOGGING
# ============================================================================
LOG_LEVEL = os.environ.get("STREAMSTATS_LOG_LEVEL", "INFO")
LOG_DIR = Path(os.environ["STREAMSTATS_LOG_DIR"]) if os.environ.get("STREAMSTATS_LOG_DIR") else None

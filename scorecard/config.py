"""
Central configuration for the scorecard engine.

Settings come from environment variables (optionally loaded from a .env file
at the project root). Database connection settings live in db/client.py:
  - DOLT_HOST (default: 127.0.0.1)
  - DOLT_PORT (default: 3306)
  - DOLT_USER (default: root)
  - DOLT_DATABASE (default: vendor_scorecard)
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .constants import DEFAULT_IMPORT_SENTINEL, DEFAULT_IMPORT_WINDOW_SECONDS, DEFAULT_MAX_WORKERS

PACKAGE_ROOT = Path(__file__).parent
PROJECT_ROOT = PACKAGE_ROOT.parent

load_dotenv(PROJECT_ROOT / ".env")


@dataclass(frozen=True)
class EngineSettings:
    """Tunables for a reconciliation / aggregation pass."""

    import_sentinel: str = DEFAULT_IMPORT_SENTINEL
    import_window_seconds: int = DEFAULT_IMPORT_WINDOW_SECONDS
    max_workers: int = DEFAULT_MAX_WORKERS


def get_settings() -> EngineSettings:
    """
    Build engine settings from the environment.

    Environment variables:
        SCORECARD_IMPORT_SENTINEL: Rater identity marking bulk-imported ratings
        SCORECARD_IMPORT_WINDOW_SECONDS: Import batch window for duplicate ties
        SCORECARD_MAX_WORKERS: Parallel vendor units per pass

    Returns:
        EngineSettings instance
    """
    return EngineSettings(
        import_sentinel=os.environ.get("SCORECARD_IMPORT_SENTINEL", DEFAULT_IMPORT_SENTINEL),
        import_window_seconds=int(
            os.environ.get("SCORECARD_IMPORT_WINDOW_SECONDS", str(DEFAULT_IMPORT_WINDOW_SECONDS))
        ),
        max_workers=int(os.environ.get("SCORECARD_MAX_WORKERS", str(DEFAULT_MAX_WORKERS))),
    )


def get_tiers_path() -> Path:
    """
    Get the performance tier threshold file.

    Uses SCORECARD_TIERS_PATH if set, otherwise the performance_tiers.yaml
    shipped inside the package.
    """
    env_path = os.environ.get("SCORECARD_TIERS_PATH")
    if env_path:
        return Path(env_path).expanduser().resolve()
    return PACKAGE_ROOT / "performance_tiers.yaml"


def get_log_dir() -> Path:
    """Get the log directory (SCORECARD_LOG_DIR or <project>/logs)."""
    env_path = os.environ.get("SCORECARD_LOG_DIR")
    if env_path:
        return Path(env_path).expanduser().resolve()
    return PROJECT_ROOT / "logs"

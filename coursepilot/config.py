"""
Runtime settings for CoursePilot.

Values come from the environment (optionally a .env file):
- COURSEPILOT_CONTENT_DB: compiled course catalog database
- COURSEPILOT_PROGRESS_DB: learner progress database
- COURSEPILOT_LOG_LEVEL: logging level name
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


DEFAULT_PROGRESS_DIR = Path.home() / ".coursepilot"
DEFAULT_PROGRESS_DB = DEFAULT_PROGRESS_DIR / "progress.db"
DEFAULT_CONTENT_DB = Path("data") / "catalog.db"


@dataclass
class Settings:
    content_db: Path = DEFAULT_CONTENT_DB
    progress_db: Path = DEFAULT_PROGRESS_DB
    log_level: str = "INFO"


def load_settings(env_file: str | Path | None = None) -> Settings:
    """
    Load settings from environment variables.

    Args:
        env_file: Optional .env file; default lets python-dotenv search upwards

    Returns:
        Settings with defaults filled in for anything unset
    """
    load_dotenv(env_file)

    content_db = os.getenv("COURSEPILOT_CONTENT_DB")
    progress_db = os.getenv("COURSEPILOT_PROGRESS_DB")

    return Settings(
        content_db=Path(content_db).expanduser() if content_db else DEFAULT_CONTENT_DB,
        progress_db=Path(progress_db).expanduser() if progress_db else DEFAULT_PROGRESS_DB,
        log_level=os.getenv("COURSEPILOT_LOG_LEVEL", "INFO").upper(),
    )

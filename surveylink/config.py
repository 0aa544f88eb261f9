"""
Runtime settings read from the environment.

Settings are built once by the CLI and passed down explicitly; nothing in the
engine reads the environment on its own.
"""

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_DB_PATH = "data/surveys.db"
DEFAULT_MANUAL_OVERRIDES_PATH = "data/manual_matches.properties"
DEFAULT_DATA_DIR = "data"
DEFAULT_LOG_DIR = "logs"


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    db_path: Path
    manual_overrides_path: Path
    data_dir: Path
    log_level: str = "INFO"
    log_dir: Path = Path(DEFAULT_LOG_DIR)
    log_to_file: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            db_path=Path(os.getenv("SURVEYLINK_DB", DEFAULT_DB_PATH)),
            manual_overrides_path=Path(
                os.getenv("SURVEYLINK_MANUAL_OVERRIDES", DEFAULT_MANUAL_OVERRIDES_PATH)
            ),
            data_dir=Path(os.getenv("SURVEYLINK_DATA_DIR", DEFAULT_DATA_DIR)),
            log_level=os.getenv("SURVEYLINK_LOG_LEVEL", "INFO").strip().upper() or "INFO",
            log_dir=Path(os.getenv("SURVEYLINK_LOG_DIR", DEFAULT_LOG_DIR)),
            log_to_file=_env_flag("SURVEYLINK_LOG_TO_FILE", True),
        )

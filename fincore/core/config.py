"""
fincore configuration

Settings for:
- categorization fallback category and feedback window
- minimum training-data volumes for the heuristic and the training summary
- state database location for the SQLite stores

Values come from the environment; defaults reproduce the documented
behaviour of the categorization core.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class CategorizationSettings:
    """
    - fallback_category: category returned when no tier produces a suggestion
    - feedback_window: how many recent feedback records the heuristic reads
    - min_feedback_records: below this the heuristic tier does not run
    - min_training_records: below this the training summary is refused
    """
    fallback_category: str = "other"
    feedback_window: int = 100
    min_feedback_records: int = 10
    min_training_records: int = 50

    def __post_init__(self):
        if not self.fallback_category:
            raise ValueError("fallback_category cannot be empty")
        if self.feedback_window < 1:
            raise ValueError("feedback_window must be at least 1")
        if not (0 < self.min_feedback_records <= self.feedback_window):
            raise ValueError("min_feedback_records must be between 1 and feedback_window")
        if self.min_training_records < 1:
            raise ValueError("min_training_records must be at least 1")


@dataclass
class Settings:
    state_db_path: str = field(
        default_factory=lambda: os.path.join(os.getcwd(), "fincore_state.sqlite3")
    )
    categorization: CategorizationSettings = field(default_factory=CategorizationSettings)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}, using {default}")
        return default


def load_settings() -> Settings:
    """Build settings from FINCORE_* environment variables."""
    defaults = CategorizationSettings()
    categorization = CategorizationSettings(
        fallback_category=os.getenv("FINCORE_FALLBACK_CATEGORY", defaults.fallback_category).strip(),
        feedback_window=_env_int("FINCORE_FEEDBACK_WINDOW", defaults.feedback_window),
        min_feedback_records=_env_int("FINCORE_MIN_FEEDBACK_RECORDS", defaults.min_feedback_records),
        min_training_records=_env_int("FINCORE_MIN_TRAINING_RECORDS", defaults.min_training_records),
    )
    state_db = os.getenv("FINCORE_STATE_DB") or os.path.join(os.getcwd(), "fincore_state.sqlite3")
    return Settings(state_db_path=state_db, categorization=categorization)


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Drop cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None

"""Engine configuration — reads settings from environment variables.

All settings have sensible defaults for local development.  Values that
change questionnaire conventions (the "other" sentinel, block defaults)
live in :mod:`survey_engine.constants` instead, since they are read at
import time.
"""

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class EngineSettings:
    """Immutable engine configuration read from environment at startup."""

    # Questionnaire directory (None → registry default, which is
    # v1/questionnaires/ from repo root)
    questionnaire_dir: str | None = None

    # Logging
    log_level: str = "INFO"


def load_settings() -> EngineSettings:
    """Build settings from ``SURVEY_*`` environment variables."""
    return EngineSettings(
        questionnaire_dir=os.getenv("SURVEY_QUESTIONNAIRE_DIR") or None,
        log_level=os.getenv("SURVEY_LOG_LEVEL", "INFO").upper(),
    )

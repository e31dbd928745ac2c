from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from helpers.builders import train_like_questionnaire
from survey_engine.evaluator import VisibilityEvaluator
from survey_engine.registry import QuestionnaireRegistry, load_questionnaire
from survey_engine.validation import ValidationEngine

QUESTIONNAIRE_DIR = Path(__file__).resolve().parent.parent / "v1" / "questionnaires"


class FakeClock:
    """Deterministic clock; ``tick`` moves time forward."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def tick(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def evaluator():
    return VisibilityEvaluator()


@pytest.fixture
def validator(evaluator):
    return ValidationEngine(evaluator)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def train_like():
    return load_questionnaire(train_like_questionnaire())


@pytest.fixture(scope="session")
def registry():
    """Registry loaded once from the shipped v1/questionnaires/ files."""
    reg = QuestionnaireRegistry(QUESTIONNAIRE_DIR)
    reg.load()
    return reg

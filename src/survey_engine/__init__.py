"""survey_engine — Schema-driven questionnaire response SDK.

Public API:
    QuestionnaireEngine   — facade: start, answer, advance, retreat, submit
    QuestionnaireRegistry — loads questionnaire YAML into typed schemas
    load_questionnaire    — validate a questionnaire given as a dict
    load_questionnaire_json — validate a questionnaire given as JSON text
    StepResult            — union type returned by engine step methods
    SectionStep           — step: render the current section
    SubmittedStep         — step: response persisted
    SubmissionFailedStep  — step: persistence failed, retry allowed
    ResponseState         — the explicit per-respondent session state

Building blocks (usable on their own):
    VisibilityEvaluator   — conditional visibility, sweeps, early-exit predicates
    ValidationEngine      — per-question-type answer validation
    SectionNavigator      — section state machine and progress totals
    ResponseNormalizer    — raw answers -> canonical persistence payload

Collaborator interfaces:
    PersistenceBackend    — ABC storing a canonical payload
    StatisticsSink        — ABC receiving successful submissions

Errors:
    SchemaError, NavigationError, SubmissionError
"""

from survey_engine.engine import QuestionnaireEngine
from survey_engine.errors import NavigationError, SchemaError, SubmissionError
from survey_engine.evaluator import VisibilityEvaluator
from survey_engine.interfaces import PersistenceBackend, StatisticsSink
from survey_engine.models.schema import QuestionnaireSchema
from survey_engine.models.session import (
    ResponseState,
    SectionStep,
    SessionStatus,
    StepResult,
    SubmissionFailedStep,
    SubmittedStep,
)
from survey_engine.models.submission import SubmissionMetadata
from survey_engine.navigator import SectionNavigator
from survey_engine.normalizer import ResponseNormalizer
from survey_engine.registry import (
    QuestionnaireRegistry,
    load_questionnaire,
    load_questionnaire_json,
)
from survey_engine.validation import ValidationEngine

__all__ = [
    # Engine & registry
    "QuestionnaireEngine",
    "QuestionnaireRegistry",
    "QuestionnaireSchema",
    "load_questionnaire",
    "load_questionnaire_json",
    # Session / step
    "ResponseState",
    "SessionStatus",
    "SectionStep",
    "StepResult",
    "SubmissionFailedStep",
    "SubmittedStep",
    "SubmissionMetadata",
    # Building blocks
    "ResponseNormalizer",
    "SectionNavigator",
    "ValidationEngine",
    "VisibilityEvaluator",
    # Collaborator interfaces
    "PersistenceBackend",
    "StatisticsSink",
    # Errors
    "NavigationError",
    "SchemaError",
    "SubmissionError",
]

"""Public model re-exports for survey_engine.

Consumers should import from ``survey_engine.models`` rather than
reaching into sub-modules directly.
"""

# --- Questions ---
from survey_engine.models.question import (
    BaseQuestion,
    CheckboxQuestion,
    CheckboxTextQuestion,
    ChoiceQuestion,
    ConditionalRule,
    EmailQuestion,
    KMLFile,
    MapOption,
    MapQuestion,
    MatrixQuestion,
    NumberOption,
    NumberQuestion,
    Question,
    QuestionValidation,
    RadioNumberQuestion,
    RadioTextQuestion,
    RegionLongAnswerQuestion,
    SelectTextQuestion,
    TextOption,
    TextQuestion,
    TimeQuestion,
    TrainScheduleRequestQuestion,
)

# --- Questionnaire structure ---
from survey_engine.models.schema import (
    EarlyExitRule,
    Predicate,
    QuestionnaireSchema,
    SectionSchema,
)

# --- Session / step ---
from survey_engine.models.session import (
    NavigationOutcome,
    ResponseState,
    SectionStep,
    SessionStatus,
    StepResult,
    SubmissionFailedStep,
    SubmittedStep,
)
from survey_engine.models.submission import SubmissionMetadata

__all__ = [
    # Questions
    "BaseQuestion",
    "CheckboxQuestion",
    "CheckboxTextQuestion",
    "ChoiceQuestion",
    "ConditionalRule",
    "EmailQuestion",
    "KMLFile",
    "MapOption",
    "MapQuestion",
    "MatrixQuestion",
    "NumberOption",
    "NumberQuestion",
    "Question",
    "QuestionValidation",
    "RadioNumberQuestion",
    "RadioTextQuestion",
    "RegionLongAnswerQuestion",
    "SelectTextQuestion",
    "TextOption",
    "TextQuestion",
    "TimeQuestion",
    "TrainScheduleRequestQuestion",
    # Structure
    "EarlyExitRule",
    "Predicate",
    "QuestionnaireSchema",
    "SectionSchema",
    # Session
    "NavigationOutcome",
    "ResponseState",
    "SectionStep",
    "SessionStatus",
    "StepResult",
    "SubmissionFailedStep",
    "SubmittedStep",
    "SubmissionMetadata",
]

"""Session and step models — the contract between the engine and its callers.

``ResponseState`` is the one mutable object in the engine: it is created
when a respondent starts a questionnaire, passed explicitly into every
engine call, and discarded after submission.  It serialises with
``model_dump_json()`` so an external draft-save collaborator can snapshot it.

Step types returned by :class:`~survey_engine.engine.QuestionnaireEngine`:
  - SectionStep: present the current section (visible questions only)
  - SubmittedStep: the response was handed to persistence successfully
  - SubmissionFailedStep: persistence failed; the session is editable again

The ``StepResult`` union covers all cases so callers can dispatch on ``type``.
"""

import enum
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from survey_engine.models.question import Question
from survey_engine.models.submission import SubmissionMetadata


class SessionStatus(str, enum.Enum):
    """Lifecycle states for a response session.

    Transitions:
        editing -> submitting  (submit passed validation, backend call pending)
        submitting -> submitted (backend returned a submission id)
        submitting -> editing   (backend failed; answers preserved)
    """

    EDITING = "editing"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"


class ResponseState(BaseModel):
    """Mutable, session-scoped answer set plus navigation position.

    Timing counters (``started_at``, ``section_started_at``,
    ``revisit_count``) are written only by the section navigator.
    """

    questionnaire_id: str
    # {qid: raw answer}; an absent key means unanswered
    answers: dict[str, Any] = Field(default_factory=dict)
    current_section_index: int = 0
    # {qid: message}; recomputed on advance/submit, cleared per question on edit
    errors: dict[str, str] = Field(default_factory=dict)
    status: SessionStatus = SessionStatus.EDITING
    started_at: datetime
    section_started_at: datetime
    revisit_count: int = 0
    submission_id: str | None = None

    @property
    def is_submitting(self) -> bool:
        """True while a submission is awaiting the persistence backend."""
        return self.status == SessionStatus.SUBMITTING

    @property
    def is_submitted(self) -> bool:
        return self.status == SessionStatus.SUBMITTED


class NavigationOutcome(BaseModel):
    """Result of a navigator ``advance`` attempt.

    ``type`` is "moved" when the current section changed, "invalid" when
    validation kept the respondent in place, or "submit" when there is
    nothing left to show (``reason`` is "early_exit" or "last_section").
    """

    type: Literal["moved", "invalid", "submit"]
    section_index: int
    errors: dict[str, str] = Field(default_factory=dict)
    reason: Literal["early_exit", "last_section"] | None = None


class SectionStep(BaseModel):
    """Engine step: render the current section and wait for edits."""

    type: Literal["section"] = "section"
    questionnaire_id: str
    section_id: str
    title: str
    description: str | None = None
    # 0-based schema index and 1-based position among counted sections
    index: int
    position: int
    total: int
    progress: int
    # Only the questions currently visible, in schema order
    questions: list[Question]
    errors: dict[str, str] = Field(default_factory=dict)
    has_previous: bool
    is_last: bool
    will_end_early: bool = False
    early_exit_reason: str | None = None


class SubmittedStep(BaseModel):
    """Engine step: the canonical payload was persisted."""

    type: Literal["submitted"] = "submitted"
    questionnaire_id: str
    submission_id: str
    end_reason: Literal["early_exit", "last_section"]
    payload: dict[str, Any]
    metadata: SubmissionMetadata


class SubmissionFailedStep(BaseModel):
    """Engine step: persistence failed, the respondent may submit again."""

    type: Literal["submission_failed"] = "submission_failed"
    questionnaire_id: str
    section_id: str
    reason: str
    retryable: bool = True


# Callers can match on step.type to dispatch rendering logic.
StepResult = SectionStep | SubmittedStep | SubmissionFailedStep

"""Session metrics attached to every submission.

These are the raw inputs the statistics collaborator ranks respondents
by; the engine itself never aggregates across sessions.
"""

from __future__ import annotations

import json
import math
import re
from datetime import datetime
from typing import Any, Iterable, Literal

from survey_engine.constants import TEXT_RESPONSE_TYPES
from survey_engine.evaluator import is_blank
from survey_engine.models.schema import QuestionnaireSchema
from survey_engine.models.submission import SubmissionMetadata
from survey_engine.normalizer import ResponseNormalizer

DeviceType = Literal["desktop", "mobile", "tablet"]

# Tablet is checked first: many tablet user agents also contain "android".
_TABLET_RE = re.compile(r"tablet|ipad|playbook|silk", re.IGNORECASE)
_MOBILE_RE = re.compile(
    r"mobile|iphone|ipod|android|blackberry|opera|mini|windows\sce|palm|smartphone|iemobile",
    re.IGNORECASE,
)


def classify_device(user_agent: str | None) -> DeviceType:
    """Classify a user-agent string; unknown or missing means desktop."""
    if not user_agent:
        return "desktop"
    if _TABLET_RE.search(user_agent):
        return "tablet"
    if _MOBILE_RE.search(user_agent):
        return "mobile"
    return "desktop"


def count_characters(answers: Iterable[Any]) -> int:
    """Total characters written across answers.

    Strings count by length; structured answers count by the length of
    their compact JSON form.  Numbers and booleans are not writing.
    """
    total = 0
    for value in answers:
        if isinstance(value, str):
            total += len(value)
        elif isinstance(value, (dict, list)):
            total += len(json.dumps(value, ensure_ascii=False, separators=(",", ":")))
    return total


def _round_half_up(x: float) -> int:
    return math.floor(x + 0.5)


def build_submission_metadata(
    schema: QuestionnaireSchema,
    answers: dict[str, Any],
    *,
    payload: dict[str, Any] | None = None,
    started_at: datetime,
    submitted_at: datetime,
    revisit_count: int,
    completed_sections: list[str],
    end_reason: Literal["early_exit", "last_section"],
    user_agent: str | None = None,
) -> SubmissionMetadata:
    """Compute the metadata for one submission from its final answers.

    Characters are counted on the canonical ``payload`` (normalised from
    ``answers`` when not given), so an "other" choice without text counts
    as the bare selection.
    """
    if payload is None:
        payload = ResponseNormalizer().normalize_all(schema, answers)
    questions = list(schema.iter_questions())
    answered = [q for q in questions if not is_blank(answers.get(q.id))]
    total = len(questions)
    time_spent = max(0, math.floor((submitted_at - started_at).total_seconds()))

    completion = _round_half_up(len(answered) * 100 / total) if total else 0
    average = _round_half_up(time_spent / len(answered)) if answered else 0

    return SubmissionMetadata(
        questionnaire_id=schema.id,
        started_at=started_at,
        submitted_at=submitted_at,
        time_spent_seconds=time_spent,
        total_questions=total,
        answered_questions=len(answered),
        completion_percentage=completion,
        average_time_per_question=average,
        total_characters_written=count_characters(
            payload[q.id] for q in answered if q.id in payload
        ),
        text_responses_count=sum(1 for q in answered if q.type in TEXT_RESPONSE_TYPES),
        map_selections_count=sum(1 for q in answered if q.type == "map"),
        revisit_count=revisit_count,
        device_type=classify_device(user_agent),
        completed_sections=completed_sections,
        end_reason=end_reason,
    )

"""ResponseNormalizer — converts raw answers into the canonical payload.

The canonical payload is what the persistence collaborator receives:

  - region-long-answer: ``[{Region, Location, Reason}]``; missing fields
    become ""
  - select-text: the bare selection unless the "other" option was picked
    *and* text was entered, in which case ``{selected, text}``
  - checkbox-text: the selection list, or ``{selected, text}`` under the
    same rule
  - every other type: unchanged
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from survey_engine.constants import OTHER_OPTION, QUESTION_TYPES
from survey_engine.evaluator import is_blank
from survey_engine.models.schema import QuestionnaireSchema

logger = logging.getLogger(__name__)


def _passthrough(raw: Any) -> Any:
    return raw


def _normalize_region(raw: Any) -> Any:
    if not isinstance(raw, list):
        return raw
    return [
        {
            "Region": block.get("region") or "",
            "Location": block.get("location") or "",
            "Reason": block.get("reason") or "",
        }
        for block in raw
        if isinstance(block, dict)
    ]


def _normalize_other_text(raw: Any) -> Any:
    if not isinstance(raw, dict):
        return raw
    selected = raw.get("selected")
    text = raw.get("text")
    if isinstance(selected, list):
        picked_other = OTHER_OPTION in selected
    else:
        picked_other = selected == OTHER_OPTION
    if picked_other and not is_blank(text):
        return {"selected": selected, "text": text}
    return selected


_NORMALIZERS: dict[str, Callable[[Any], Any]] = {
    "text": _passthrough,
    "email": _passthrough,
    "number": _passthrough,
    "textarea": _passthrough,
    "select": _passthrough,
    "radio": _passthrough,
    "checkbox": _passthrough,
    "matrix": _passthrough,
    "map": _passthrough,
    "time": _passthrough,
    "radio-number": _passthrough,
    "radio-text": _passthrough,
    "select-text": _normalize_other_text,
    "checkbox-text": _normalize_other_text,
    "region-long-answer": _normalize_region,
    "train-schedule-request": _passthrough,
}

_missing = set(QUESTION_TYPES) - set(_NORMALIZERS)
if _missing:
    raise RuntimeError(f"No normalizer registered for question types: {sorted(_missing)}")


class ResponseNormalizer:
    """Builds the persistence payload from a session's answers."""

    def normalize(self, question_id: str, raw: Any, question_type: str) -> Any:
        """Normalise one answer according to its question type.

        Raises:
            KeyError: if ``question_type`` is not a known type.
        """
        try:
            normalizer = _NORMALIZERS[question_type]
        except KeyError:
            raise KeyError(
                f"unknown question type {question_type!r} for {question_id!r}"
            ) from None
        return normalizer(raw)

    def normalize_all(
        self, schema: QuestionnaireSchema, answers: dict[str, Any]
    ) -> dict[str, Any]:
        """Normalise every answered question, in schema order.

        Answers for qids that are not in the schema are dropped.
        """
        payload: dict[str, Any] = {}
        for q in schema.iter_questions():
            if q.id in answers:
                payload[q.id] = self.normalize(q.id, answers[q.id], q.type)
        dropped = set(answers) - set(payload)
        if dropped:
            logger.warning("Dropping answers for unknown questions: %s", sorted(dropped))
        return payload

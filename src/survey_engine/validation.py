"""ValidationEngine — per-question-type answer checks for one section.

Only questions the :class:`VisibilityEvaluator` reports as visible take
part; a hidden ``required`` question never produces an error.  Each
question type has one validator function returning the first applicable
message (or ``None``).  The dispatch table is checked against
``QUESTION_TYPES`` at import time, so adding a type without a validator
fails immediately.

Rules by type:

  - generic required: absent, blank string, or empty list
  - text / textarea / email / select / radio: ``validation.min``/``max``
    are *length* bounds for string answers; ``validation.pattern`` must
    match (``re.search``)
  - number: ``validation.min``/``max`` bound the numeric value
  - matrix: every row must be rated; missing rows listed in one message
  - region-long-answer: at least ``min_blocks`` blocks, each with region,
    location and reason; incomplete blocks listed 1-based
  - radio-number / radio-text: the selected option's number/text sub-field
  - select-text / checkbox-text: length bounds on the "other" text
  - train-schedule-request: schedule blocks when the trigger option is picked
  - time: shape regex per ``time_format``, then lexicographic min/max

Validation never mutates the answers it is given.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Optional

from survey_engine.constants import (
    DEFAULT_NUMBER_LABEL,
    DEFAULT_TEXT_LABEL,
    EMAIL_PATTERN,
    MESSAGES,
    OTHER_OPTION,
    QUESTION_TYPES,
    REGION_BLOCK_FIELDS,
    SCHEDULE_FIELDS,
    TIME_FORMAT_PATTERNS,
)
from survey_engine.evaluator import VisibilityEvaluator, is_blank
from survey_engine.models.question import (
    CheckboxQuestion,
    CheckboxTextQuestion,
    ChoiceQuestion,
    EmailQuestion,
    MapQuestion,
    MatrixQuestion,
    NumberQuestion,
    Question,
    RadioNumberQuestion,
    RadioTextQuestion,
    RegionLongAnswerQuestion,
    SelectTextQuestion,
    TextQuestion,
    TimeQuestion,
    TrainScheduleRequestQuestion,
)
from survey_engine.models.schema import SectionSchema

logger = logging.getLogger(__name__)

Validator = Callable[[Any, Any], Optional[str]]


class ValidationEngine:
    """Validates the visible questions of a section against the answers."""

    def __init__(self, evaluator: VisibilityEvaluator | None = None) -> None:
        self._evaluator = evaluator or VisibilityEvaluator()

    def validate_section(
        self, section: SectionSchema, answers: dict[str, Any]
    ) -> dict[str, str]:
        """Return ``{qid: message}`` for every visible question that fails."""
        errors: dict[str, str] = {}
        for question in self._evaluator.visible_questions(section, answers):
            message = self.validate_question(question, answers.get(question.id))
            if message is not None:
                errors[question.id] = message
        if errors:
            logger.debug("Section %s failed validation: %s", section.id, sorted(errors))
        return errors

    def validate_question(self, question: Question, value: Any) -> str | None:
        """Validate one answer (``None`` = unanswered) against its question."""
        return _VALIDATORS[question.type](question, value)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _msg(key: str, **kwargs: Any) -> str:
    return MESSAGES[key].format(**kwargs)


def _fmt(num: int | float) -> str:
    """Render 5.0 as "5" so bounds read naturally in messages."""
    if isinstance(num, float) and num.is_integer():
        return str(int(num))
    return str(num)


def _required(question: Question) -> str | None:
    return _msg("required") if question.required else None


def _to_number(value: Any) -> float | None:
    # bool is a subclass of int in Python, so reject it explicitly
    if isinstance(value, bool) or is_blank(value):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _selection(value: Any) -> dict[str, Any]:
    """Coerce compound answers to their dict shape.

    A bare string or list is accepted as the ``selected`` part.
    """
    if isinstance(value, dict):
        return value
    if isinstance(value, (str, list)):
        return {"selected": value}
    return {}


def _check_string(question: Question, value: str) -> str | None:
    """Length bounds and pattern from ``question.validation``."""
    rules = question.validation
    if rules is None:
        return None
    if rules.min is not None and len(value) < rules.min:
        return _msg("length_min", min=_fmt(rules.min))
    if rules.max is not None and len(value) > rules.max:
        return _msg("length_max", max=_fmt(rules.max))
    if rules.pattern and not re.search(rules.pattern, value):
        return _msg("pattern")
    return None


def _check_sub_text(
    text: Any,
    *,
    label: str | None,
    min_length: int | None,
    max_length: int | None,
) -> str | None:
    """A mandatory free-text sub-field with optional length bounds."""
    if is_blank(text):
        return _msg("text_input", label=label or DEFAULT_TEXT_LABEL)
    text = str(text)
    if min_length and len(text) < min_length:
        return _msg("text_min_length", min=min_length)
    if max_length and len(text) > max_length:
        return _msg("text_max_length", max=max_length)
    return None


def _check_length(text: str, min_length: int | None, max_length: int | None) -> str | None:
    if min_length and len(text) < min_length:
        return _msg("text_min_length", min=min_length)
    if max_length and len(text) > max_length:
        return _msg("text_max_length", max=max_length)
    return None


def _incomplete_blocks(blocks: list, fields: tuple[str, ...]) -> list[int]:
    """1-based indices of blocks missing any of ``fields``."""
    return [
        pos
        for pos, block in enumerate(blocks, start=1)
        if not isinstance(block, dict) or any(is_blank(block.get(f)) for f in fields)
    ]


# ---------------------------------------------------------------------------
# Scalar types
# ---------------------------------------------------------------------------

def _validate_text(q: TextQuestion, value: Any) -> str | None:
    if is_blank(value):
        return _required(q)
    return _check_string(q, str(value))


def _validate_email(q: EmailQuestion, value: Any) -> str | None:
    if is_blank(value):
        return _required(q)
    text = str(value)
    error = _check_string(q, text)
    if error is not None:
        return error
    if not re.match(EMAIL_PATTERN, text):
        return _msg("email")
    return None


def _validate_number(q: NumberQuestion, value: Any) -> str | None:
    if is_blank(value):
        return _required(q)
    num = _to_number(value)
    if num is None:
        return _msg("number_invalid")
    rules = q.validation
    if rules is None:
        return None
    if rules.min is not None and num < rules.min:
        return _msg("number_min", min=_fmt(rules.min))
    if rules.max is not None and num > rules.max:
        return _msg("number_max", max=_fmt(rules.max))
    if rules.pattern and isinstance(value, str) and not re.search(rules.pattern, value):
        return _msg("pattern")
    return None


def _validate_choice(q: ChoiceQuestion, value: Any) -> str | None:
    if is_blank(value):
        return _required(q)
    if not isinstance(value, str) or value not in q.options:
        return _msg("invalid_option", value=value)
    return _check_string(q, value)


def _validate_checkbox(q: CheckboxQuestion, value: Any) -> str | None:
    if is_blank(value):
        return _required(q)
    if not isinstance(value, list):
        return _msg("invalid_option", value=value)
    unknown = [v for v in value if v not in q.options]
    if unknown:
        return _msg("invalid_option", value=", ".join(map(str, unknown)))
    return None


def _validate_map(q: MapQuestion, value: Any) -> str | None:
    if is_blank(value):
        return _required(q)
    values = value if isinstance(value, list) else [value]
    if len(values) > 1 and not q.allow_multiple_selection:
        return _msg("invalid_option", value=", ".join(map(str, values)))
    if q.options:
        known = {opt.value for opt in q.options}
        unknown = [v for v in values if v not in known]
        if unknown:
            return _msg("invalid_option", value=", ".join(map(str, unknown)))
    return None


def _validate_time(q: TimeQuestion, value: Any) -> str | None:
    if is_blank(value):
        return _required(q)
    fmt = q.time_format
    if not isinstance(value, str) or not re.match(TIME_FORMAT_PATTERNS[fmt], value):
        return _msg("time_format", format=fmt)
    # Shape-only check: "2024-13" passes for YYYY-MM.  Bounds rely on the
    # formats being lexicographically order-preserving.
    compare = value.replace("T", " ")
    if q.min_date and compare < q.min_date.replace("T", " "):
        return _msg("time_min", min_date=q.min_date)
    if q.max_date and compare > q.max_date.replace("T", " "):
        return _msg("time_max", max_date=q.max_date)
    return None


# ---------------------------------------------------------------------------
# Collection types
# ---------------------------------------------------------------------------

def _validate_matrix(q: MatrixQuestion, value: Any) -> str | None:
    if value is not None and not isinstance(value, dict):
        return _msg("invalid_option", value=value)
    rated = value or {}
    if q.required:
        missing = [row for row in q.options if is_blank(rated.get(row))]
        if missing:
            return _msg("matrix_incomplete", rows=", ".join(missing))
    unknown = [v for v in rated.values() if not is_blank(v) and v not in q.scale]
    if unknown:
        return _msg("invalid_option", value=", ".join(map(str, unknown)))
    return None


def _validate_region(q: RegionLongAnswerQuestion, value: Any) -> str | None:
    blocks = value if isinstance(value, list) else []
    if q.required and len(blocks) < q.min_blocks:
        return _msg("blocks_min", min_blocks=q.min_blocks)
    if not blocks:
        return _required(q)
    incomplete = _incomplete_blocks(blocks, REGION_BLOCK_FIELDS)
    if incomplete:
        return _msg("blocks_incomplete", indices=", ".join(map(str, incomplete)))
    return None


# ---------------------------------------------------------------------------
# Compound types
# ---------------------------------------------------------------------------

def _validate_radio_number(q: RadioNumberQuestion, value: Any) -> str | None:
    answer = _selection(value)
    selected = answer.get("selected")
    if is_blank(selected):
        return _required(q)
    option = next((o for o in q.options if o.value == selected), None)
    if option is None:
        return _msg("invalid_option", value=selected)

    if option.has_number_input:
        num = _to_number((answer.get("numbers") or {}).get(selected))
        label = option.number_label or DEFAULT_NUMBER_LABEL
        minimum = option.number_min if option.number_min is not None else 1
        if num is None or num < minimum:
            return _msg("number_input", label=label)
        if option.number_max is not None and num > option.number_max:
            return _msg("number_input_max", label=label, max=_fmt(option.number_max))

    if option.has_text_input:
        return _check_sub_text(
            (answer.get("texts") or {}).get(selected),
            label=option.text_label,
            min_length=option.text_min_length,
            max_length=option.text_max_length,
        )
    return None


def _validate_radio_text(q: RadioTextQuestion, value: Any) -> str | None:
    answer = _selection(value)
    selected = answer.get("selected")
    if is_blank(selected):
        return _required(q)
    option = next((o for o in q.options if o.value == selected), None)
    if option is None:
        return _msg("invalid_option", value=selected)
    if option.has_text_input:
        return _check_sub_text(
            (answer.get("texts") or {}).get(selected),
            label=option.text_label,
            min_length=option.text_min_length,
            max_length=option.text_max_length,
        )
    return None


def _validate_select_text(q: SelectTextQuestion, value: Any) -> str | None:
    answer = _selection(value)
    selected = answer.get("selected")
    if is_blank(selected):
        return _required(q)
    if not isinstance(selected, str) or selected not in q.options:
        return _msg("invalid_option", value=selected)
    text = answer.get("text")
    if selected == OTHER_OPTION and not is_blank(text):
        return _check_length(str(text), q.text_min_length, q.text_max_length)
    return None


def _validate_checkbox_text(q: CheckboxTextQuestion, value: Any) -> str | None:
    answer = _selection(value)
    selected = answer.get("selected")
    if is_blank(selected):
        return _required(q)
    if not isinstance(selected, list):
        return _msg("invalid_option", value=selected)
    unknown = [v for v in selected if v not in q.options]
    if unknown:
        return _msg("invalid_option", value=", ".join(map(str, unknown)))
    text = answer.get("text")
    if OTHER_OPTION in selected and not is_blank(text):
        return _check_length(str(text), q.text_min_length, q.text_max_length)
    return None


def _validate_schedule(q: TrainScheduleRequestQuestion, value: Any) -> str | None:
    answer = _selection(value)
    selected = answer.get("selected")
    if is_blank(selected):
        return _required(q)
    if selected not in q.options:
        return _msg("invalid_option", value=selected)
    if selected != q.show_schedule_when:
        return None
    schedules = answer.get("schedules") or []
    if len(schedules) < q.min_blocks:
        return _msg("blocks_min", min_blocks=q.min_blocks)
    incomplete = _incomplete_blocks(schedules, SCHEDULE_FIELDS)
    if incomplete:
        return _msg("schedule_incomplete", indices=", ".join(map(str, incomplete)))
    return None


# Type string → validator.  Must cover QUESTION_TYPES exactly.
_VALIDATORS: dict[str, Validator] = {
    "text": _validate_text,
    "textarea": _validate_text,
    "email": _validate_email,
    "number": _validate_number,
    "select": _validate_choice,
    "radio": _validate_choice,
    "checkbox": _validate_checkbox,
    "matrix": _validate_matrix,
    "map": _validate_map,
    "time": _validate_time,
    "radio-number": _validate_radio_number,
    "radio-text": _validate_radio_text,
    "select-text": _validate_select_text,
    "checkbox-text": _validate_checkbox_text,
    "region-long-answer": _validate_region,
    "train-schedule-request": _validate_schedule,
}

_missing = set(QUESTION_TYPES) - set(_VALIDATORS)
if _missing:
    raise RuntimeError(f"No validator registered for question types: {sorted(_missing)}")

"""Question type models for schema-driven questionnaires.

Each question type maps to a specific input widget and answer shape:

  Scalar answers:
    - text / textarea: free text (str)
    - email: email address (str)
    - number: numeric input (int | float | numeric str)
    - select / radio: pick one of ``options`` (str)
    - time: date/time string shaped by ``time_format`` (str)
    - map: one or more map option values (str | list[str])

  Collection answers:
    - checkbox: pick any of ``options`` (list[str])
    - matrix: rate every row in ``options`` on ``scale`` ({row: scale value})
    - region-long-answer: ordered blocks ([{region, location, reason}])

  Compound answers:
    - radio-number: {selected, numbers: {option: n}, texts: {option: str}}
    - radio-text: {selected, texts: {option: str}}
    - select-text: {selected, text}; ``text`` only meaningful for "其他"
    - checkbox-text: {selected: [...], text}
    - train-schedule-request: {selected, schedules: [{startStation,
      endStation, schedule}]}

Schema files written for the web client use camelCase keys (``minBlocks``,
``dependsOn``); every model accepts both camelCase and snake_case.

The discriminated ``Question`` union uses ``type`` as its discriminator.
"""

from __future__ import annotations

import re
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from survey_engine.constants import (
    DEFAULT_MAX_BLOCKS,
    DEFAULT_MIN_BLOCKS,
    DEFAULT_SHOW_SCHEDULE_WHEN,
    DEFAULT_TIME_FORMAT,
    TIME_FORMAT_PATTERNS,
)


class SchemaModel(BaseModel):
    """Base for all schema models: immutable, camelCase or snake_case input."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


# --- Shared sub-models ---

class QuestionValidation(SchemaModel):
    """Optional bounds for scalar answers.

    ``min``/``max`` bound the value for number questions and the *length*
    for string answers.  ``pattern`` is a regex applied with ``re.search``.
    """

    min: Optional[Union[int, float]] = None
    max: Optional[Union[int, float]] = None
    pattern: Optional[str] = None

    @field_validator("pattern")
    @classmethod
    def _compile(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            try:
                re.compile(v)
            except re.error as exc:
                raise ValueError(f"invalid regex pattern {v!r}: {exc}") from exc
        return v


class ConditionalRule(SchemaModel):
    """Show the question only when ``depends_on`` is answered with ``show_when``.

    ``show_when`` is a scalar (equality) or a list (membership).
    """

    depends_on: str
    show_when: Any


class BaseQuestion(SchemaModel):
    """Fields shared by all question types."""

    id: str = Field(min_length=1)
    label: str = Field(min_length=1)
    required: bool = False
    placeholder: Optional[str] = None
    validation: Optional[QuestionValidation] = None
    conditional: Optional[ConditionalRule] = None


def _check_block_bounds(min_blocks: int, max_blocks: int) -> None:
    if min_blocks < 0:
        raise ValueError("min_blocks must be >= 0")
    if min_blocks > max_blocks:
        raise ValueError(f"min_blocks ({min_blocks}) must be <= max_blocks ({max_blocks})")


# --- Scalar question types ---

class TextQuestion(BaseQuestion):
    """Single-line or multi-line free text."""

    type: Literal["text", "textarea"]


class EmailQuestion(BaseQuestion):
    """Email address input."""

    type: Literal["email"] = "email"


class NumberQuestion(BaseQuestion):
    """Numeric input; ``validation.min``/``max`` bound the value."""

    type: Literal["number"] = "number"


class ChoiceQuestion(BaseQuestion):
    """Pick one option, as a dropdown (select) or radio group (radio)."""

    type: Literal["select", "radio"]
    options: List[str]


class CheckboxQuestion(BaseQuestion):
    """Pick any number of options."""

    type: Literal["checkbox"] = "checkbox"
    options: List[str]


class MatrixQuestion(BaseQuestion):
    """Rate every row (``options``) on a shared column ``scale``."""

    type: Literal["matrix"] = "matrix"
    options: List[str]
    scale: List[str]


class KMLFile(SchemaModel):
    """A map overlay layer."""

    id: str
    name: str
    url: str
    visible: bool = True
    color: Optional[str] = None


class MapOption(SchemaModel):
    """A selectable map feature (route, stop, area)."""

    value: str
    label: str
    coordinates: Optional[tuple[float, float]] = None
    description: Optional[str] = None


class MapQuestion(BaseQuestion):
    """Select one or more features on a map.

    ``options`` may be empty when the features are injected from KML at
    render time; in that case any value is accepted.
    """

    type: Literal["map"] = "map"
    options: List[MapOption] = []
    kml_files: List[KMLFile] = []
    allow_multiple_selection: bool = False
    default_center: Optional[tuple[float, float]] = None
    default_zoom: Optional[int] = None
    show_layer_control: bool = True


class TimeQuestion(BaseQuestion):
    """Date/time string in one of the supported ``time_format`` shapes.

    ``min_date``/``max_date`` are compared lexicographically against the
    answer, so they must use the same format.
    """

    type: Literal["time"] = "time"
    time_format: str = DEFAULT_TIME_FORMAT
    min_date: Optional[str] = None
    max_date: Optional[str] = None

    @model_validator(mode="after")
    def _chk(self):
        if self.time_format not in TIME_FORMAT_PATTERNS:
            raise ValueError(
                f"time_format must be one of {list(TIME_FORMAT_PATTERNS)}, "
                f"got {self.time_format!r}"
            )
        return self


# --- Compound question types ---

class NumberOption(SchemaModel):
    """A radio-number option, optionally unlocking a number and/or text field."""

    value: str
    label: str
    has_number_input: bool = False
    number_label: Optional[str] = None
    number_placeholder: Optional[str] = None
    number_min: Optional[Union[int, float]] = None
    number_max: Optional[Union[int, float]] = None
    has_text_input: bool = False
    text_label: Optional[str] = None
    text_placeholder: Optional[str] = None
    text_min_length: Optional[int] = None
    text_max_length: Optional[int] = None


class TextOption(SchemaModel):
    """A radio-text option, optionally unlocking a text field."""

    value: str
    label: str
    has_text_input: bool = False
    text_label: Optional[str] = None
    text_placeholder: Optional[str] = None
    text_min_length: Optional[int] = None
    text_max_length: Optional[int] = None


class RadioNumberQuestion(BaseQuestion):
    """Single choice where some options ask for a number (e.g. "how many times")."""

    type: Literal["radio-number"] = "radio-number"
    options: List[NumberOption]


class RadioTextQuestion(BaseQuestion):
    """Single choice where some options ask for free text."""

    type: Literal["radio-text"] = "radio-text"
    options: List[TextOption]


class OtherTextQuestion(BaseQuestion):
    """Shared fields for choice questions with an "other" free-text box."""

    options: List[str]
    text_label: Optional[str] = None
    text_placeholder: Optional[str] = None
    text_min_length: Optional[int] = None
    text_max_length: Optional[int] = None


class SelectTextQuestion(OtherTextQuestion):
    """Single select; choosing the "other" option unlocks a text box."""

    type: Literal["select-text"] = "select-text"


class CheckboxTextQuestion(OtherTextQuestion):
    """Multi select; including the "other" option unlocks a text box."""

    type: Literal["checkbox-text"] = "checkbox-text"


class RegionLongAnswerQuestion(BaseQuestion):
    """Repeatable blocks of {region, location, reason}."""

    type: Literal["region-long-answer"] = "region-long-answer"
    regions: List[str]
    min_blocks: int = DEFAULT_MIN_BLOCKS
    max_blocks: int = DEFAULT_MAX_BLOCKS
    location_label: Optional[str] = None
    location_placeholder: Optional[str] = None
    reason_placeholder: Optional[str] = None

    @model_validator(mode="after")
    def _chk(self):
        _check_block_bounds(self.min_blocks, self.max_blocks)
        return self


class TrainScheduleRequestQuestion(BaseQuestion):
    """Radio choice that, when ``show_schedule_when`` is picked, asks for
    repeatable {start_station, end_station, schedule} requests."""

    type: Literal["train-schedule-request"] = "train-schedule-request"
    options: List[str]
    min_blocks: int = DEFAULT_MIN_BLOCKS
    max_blocks: int = DEFAULT_MAX_BLOCKS
    show_schedule_when: str = DEFAULT_SHOW_SCHEDULE_WHEN
    start_station_label: Optional[str] = None
    end_station_label: Optional[str] = None
    schedule_label: Optional[str] = None

    @model_validator(mode="after")
    def _chk(self):
        _check_block_bounds(self.min_blocks, self.max_blocks)
        return self


# --- Discriminated union of all question types ---

Question = Annotated[
    Union[
        TextQuestion,
        EmailQuestion,
        NumberQuestion,
        ChoiceQuestion,
        CheckboxQuestion,
        MatrixQuestion,
        MapQuestion,
        TimeQuestion,
        RadioNumberQuestion,
        RadioTextQuestion,
        SelectTextQuestion,
        CheckboxTextQuestion,
        RegionLongAnswerQuestion,
        TrainScheduleRequestQuestion,
    ],
    Field(discriminator="type"),
]

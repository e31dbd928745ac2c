"""Pydantic models for questionnaire structure.

These models mirror the YAML files in ``v1/questionnaires/``:

    QuestionnaireSchema
      ├── sections: [SectionSchema]
      │     └── questions: [Question]   (discriminated on ``type``)
      └── early_exit_rules: [EarlyExitRule]
            └── when: [Predicate]       (AND-ed)

Structural validation runs at construction time so a malformed file fails
fast with a message naming the offending section/question instead of
producing a half-usable questionnaire.  Checks, in order:

  - every section has a non-empty ``id`` and ``title`` and a ``questions`` list
  - every question has ``id``, ``type``, ``label``; ``type`` is known
  - section ids and question ids are unique across the questionnaire
  - conditionals reference existing questions and never form a cycle
  - early-exit rules reference existing sections and questions
"""

from __future__ import annotations

from typing import Any, Iterator, List, Literal, Optional

from pydantic import Field, model_validator

from survey_engine.constants import QUESTION_TYPES
from survey_engine.models.question import Question, SchemaModel


class Predicate(SchemaModel):
    """A single condition over the current answers.

    Operators:
      - eq, ne: equality / inequality
      - in, not_in: membership of the answer in ``value`` (a list)
      - answered: answer is present and non-empty (``value`` ignored)
      - contains, contains_any: element / substring membership
      - lt, le, gt, ge: numeric comparisons
      - matches: regex match
    """

    qid: str
    op: Literal[
        "eq", "ne", "in", "not_in", "answered",
        "contains", "contains_any",
        "lt", "le", "gt", "ge", "matches",
    ]
    value: Any = None


class EarlyExitRule(SchemaModel):
    """End the questionnaire after ``after_section_id`` when ALL ``when`` hold.

    ``reason`` is shown to the respondent as the early-completion notice.
    """

    after_section_id: str
    when: List[Predicate] = Field(min_length=1)
    reason: Optional[str] = None


class SectionSchema(SchemaModel):
    """An ordered group of questions presented as one navigation step."""

    id: str
    title: str
    description: Optional[str] = None
    questions: List[Question]

    @model_validator(mode="before")
    @classmethod
    def _check_shape(cls, data: Any) -> Any:
        """Check raw section shape before pydantic parses the question union."""
        if not isinstance(data, dict):
            return data
        sid = data.get("id")
        if not sid:
            raise ValueError("section is missing a non-empty 'id'")
        if not data.get("title"):
            raise ValueError(f"section {sid!r} is missing a non-empty 'title'")
        questions = data.get("questions")
        if not isinstance(questions, list):
            raise ValueError(f"section {sid!r}: 'questions' must be a list")
        for pos, raw in enumerate(questions, start=1):
            if not isinstance(raw, dict):
                continue
            for key in ("id", "type", "label"):
                if not raw.get(key):
                    raise ValueError(
                        f"section {sid!r}: question #{pos} is missing '{key}'"
                    )
            if raw["type"] not in QUESTION_TYPES:
                raise ValueError(
                    f"section {sid!r}: question {raw['id']!r} has unknown "
                    f"type {raw['type']!r}"
                )
        return data


class QuestionnaireSchema(SchemaModel):
    """A complete questionnaire.  Immutable once loaded."""

    id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: str = ""
    version: str = "1.0.0"
    organize: str = ""
    banner: Optional[str] = None
    is_repeatable: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    sections: List[SectionSchema] = Field(min_length=1)
    early_exit_rules: List[EarlyExitRule] = []

    @model_validator(mode="after")
    def _check_references(self):
        section_ids: set[str] = set()
        for section in self.sections:
            if section.id in section_ids:
                raise ValueError(f"duplicate section id {section.id!r}")
            section_ids.add(section.id)

        index: dict[str, Question] = {}
        for section in self.sections:
            for q in section.questions:
                if q.id in index:
                    raise ValueError(
                        f"duplicate question id {q.id!r} (section {section.id!r})"
                    )
                index[q.id] = q

        for q in index.values():
            if q.conditional is not None and q.conditional.depends_on not in index:
                raise ValueError(
                    f"question {q.id!r} depends on unknown question "
                    f"{q.conditional.depends_on!r}"
                )

        for q in index.values():
            if q.conditional is None:
                continue
            # Walk the dependency chain; every question has at most one parent
            seen = {q.id}
            parent = index[q.conditional.depends_on]
            while parent.conditional is not None:
                if parent.id in seen:
                    raise ValueError(f"conditional cycle through question {q.id!r}")
                seen.add(parent.id)
                parent = index[parent.conditional.depends_on]

        for rule in self.early_exit_rules:
            if rule.after_section_id not in section_ids:
                raise ValueError(
                    f"early-exit rule references unknown section "
                    f"{rule.after_section_id!r}"
                )
            for pred in rule.when:
                if pred.qid not in index:
                    raise ValueError(
                        f"early-exit rule after {rule.after_section_id!r} "
                        f"references unknown question {pred.qid!r}"
                    )
        return self

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------

    def iter_questions(self) -> Iterator[Question]:
        """Yield every question in schema order, across all sections."""
        for section in self.sections:
            yield from section.questions

    def question_index(self) -> dict[str, Question]:
        """Return ``{qid: Question}`` for the whole questionnaire."""
        return {q.id: q for q in self.iter_questions()}

    def get_question(self, qid: str) -> Question:
        """Look up a question by id.

        Raises:
            KeyError: if no section contains ``qid``.
        """
        for q in self.iter_questions():
            if q.id == qid:
                return q
        raise KeyError(qid)

    def section_position(self, section_id: str) -> int:
        """Return the 0-based index of a section.

        Raises:
            KeyError: if the section id is unknown.
        """
        for i, section in enumerate(self.sections):
            if section.id == section_id:
                return i
        raise KeyError(section_id)

    def exit_rules_after(self, section_id: str) -> list[EarlyExitRule]:
        """Early-exit rules evaluated when leaving ``section_id``, in schema order."""
        return [r for r in self.early_exit_rules if r.after_section_id == section_id]

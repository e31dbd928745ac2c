"""VisibilityEvaluator — decides which questions and sections are shown.

Visibility is driven entirely by each question's ``conditional`` rule:

  - no conditional: always visible
  - ``{depends_on, show_when}``: visible iff the dependency is answered AND
    the answer equals ``show_when`` (scalar) or is in it (list)

An unanswered dependency always hides the question, even when
``show_when`` would accept an empty value.  A section is visible iff at
least one of its questions is.

The evaluator also resolves early-exit predicates, because both read the
same answer map and must agree on what "answered" means.  Every method is
a pure function of its arguments except :meth:`sweep_hidden_answers`,
which prunes the answer map in place.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from survey_engine.models.question import Question
from survey_engine.models.schema import (
    EarlyExitRule,
    Predicate,
    QuestionnaireSchema,
    SectionSchema,
)

logger = logging.getLogger(__name__)


def is_blank(value: Any) -> bool:
    """True for values that count as "not answered": None, "", [], {}."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


class VisibilityEvaluator:
    """Evaluates conditional visibility and early-exit predicates."""

    # ------------------------------------------------------------------
    # Questions and sections
    # ------------------------------------------------------------------

    def is_question_visible(self, question: Question, answers: dict[str, Any]) -> bool:
        cond = question.conditional
        if cond is None:
            return True
        if cond.depends_on not in answers:
            return False
        return self._matches_show_when(cond.show_when, answers[cond.depends_on])

    def is_section_visible(self, section: SectionSchema, answers: dict[str, Any]) -> bool:
        return any(self.is_question_visible(q, answers) for q in section.questions)

    def visible_questions(
        self, section: SectionSchema, answers: dict[str, Any]
    ) -> list[Question]:
        """Return the section's visible questions in schema order."""
        return [q for q in section.questions if self.is_question_visible(q, answers)]

    def sweep_hidden_answers(
        self, schema: QuestionnaireSchema, answers: dict[str, Any]
    ) -> list[str]:
        """Delete every stored answer whose question is no longer visible.

        Sweeps the whole questionnaire, not just the current section.
        Removing one answer can hide questions that depend on it, so the
        sweep repeats until nothing changes.

        Returns:
            The removed qids, in removal order.
        """
        removed: list[str] = []
        changed = True
        while changed:
            changed = False
            for q in schema.iter_questions():
                if q.id in answers and not self.is_question_visible(q, answers):
                    del answers[q.id]
                    removed.append(q.id)
                    changed = True
        if removed:
            logger.debug("Swept hidden answers: %s", removed)
        return removed

    # ------------------------------------------------------------------
    # Permanent exclusion (progress denominator)
    # ------------------------------------------------------------------

    def is_question_excluded(
        self,
        question: Question,
        answers: dict[str, Any],
        index: dict[str, Question],
    ) -> bool:
        """True if the question cannot become visible without changing an
        answer that has already been given.

        Unlike "not visible", an unanswered dependency is *undecided*, not
        excluded: the respondent may still answer it.  Exclusion propagates
        down dependency chains.
        """
        cond = question.conditional
        if cond is None:
            return False
        dependency = index.get(cond.depends_on)
        if dependency is None:
            return True
        if self.is_question_excluded(dependency, answers, index):
            return True
        if cond.depends_on not in answers:
            return False
        return not self._matches_show_when(cond.show_when, answers[cond.depends_on])

    def is_section_excluded(
        self,
        section: SectionSchema,
        answers: dict[str, Any],
        index: dict[str, Question],
    ) -> bool:
        """True if every question in the section is excluded.

        Sections with no questions at all are excluded too: they can never
        be shown.
        """
        return all(self.is_question_excluded(q, answers, index) for q in section.questions)

    # ------------------------------------------------------------------
    # Early-exit rules
    # ------------------------------------------------------------------

    def rule_matches(self, rule: EarlyExitRule, answers: dict[str, Any]) -> bool:
        """True if ALL predicates in ``rule.when`` hold for ``answers``."""
        return all(self._eval_predicate(pred, answers) for pred in rule.when)

    def _eval_predicate(self, pred: Predicate, answers: dict[str, Any]) -> bool:
        """Evaluate a single predicate against the answers dict.

        If the referenced qid has not been answered, the predicate is False
        for every operator (including ``ne`` / ``not_in``).
        """
        answer = answers.get(pred.qid)
        if is_blank(answer):
            return False
        if pred.op == "answered":
            return True
        return self._compare(pred.op, answer, pred.value)

    @staticmethod
    def _compare(op: str, answer: Any, value: Any) -> bool:
        """Apply an operator to an answer and an expected value."""
        if op == "eq":
            return answer == value

        if op == "ne":
            return answer != value

        if op == "in":
            return answer in (value or [])

        if op == "not_in":
            return answer not in (value or [])

        # --- Numeric comparisons ---
        if op in ("lt", "le", "gt", "ge"):
            try:
                ans_num = float(answer)
                val_num = float(value)
            except (TypeError, ValueError):
                return False
            if op == "lt":
                return ans_num < val_num
            if op == "le":
                return ans_num <= val_num
            if op == "gt":
                return ans_num > val_num
            return ans_num >= val_num

        # --- Collection / string membership ---
        if op == "contains":
            if isinstance(answer, list):
                return value in answer
            return str(value) in str(answer)

        if op == "contains_any":
            if isinstance(answer, list):
                return any(v in answer for v in value)
            ans_str = str(answer)
            return any(str(v) in ans_str for v in value)

        if op == "matches":
            return bool(re.search(str(value), str(answer)))

        logger.warning("Unknown predicate operator: %s", op)
        return False

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _matches_show_when(show_when: Any, value: Any) -> bool:
        if isinstance(show_when, (list, tuple)):
            return value in show_when
        return value == show_when

"""SectionNavigator — the section-level state machine of a response session.

Explicit-state pattern: the navigator holds only the immutable schema and
its collaborators.  Every call receives the session's ``ResponseState`` and
mutates it in place; nothing is cached between calls.

Transitions:
    advance   validate current section -> early-exit rules -> next visible
              section, or "submit" when nothing is left to show
    retreat   nearest visible previous section (counts a revisit)
    submit    begin_submit -> complete_submit | fail_submit

Progress is computed against the *effective* section total: sections that
can no longer become visible are not counted, and a satisfied early-exit
rule caps the total at the current section.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from survey_engine.errors import NavigationError
from survey_engine.evaluator import VisibilityEvaluator
from survey_engine.models.schema import EarlyExitRule, QuestionnaireSchema, SectionSchema
from survey_engine.models.session import NavigationOutcome, ResponseState, SessionStatus
from survey_engine.validation import ValidationEngine

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SectionNavigator:
    """Moves a ``ResponseState`` through the sections of one questionnaire.

    Args:
        schema: the questionnaire being answered.
        evaluator: visibility evaluator; a fresh one is created if omitted.
        validator: validation engine sharing ``evaluator``.
        clock: returns the current time; injectable for tests.
    """

    def __init__(
        self,
        schema: QuestionnaireSchema,
        evaluator: VisibilityEvaluator | None = None,
        validator: ValidationEngine | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.schema = schema
        self.evaluator = evaluator or VisibilityEvaluator()
        self.validator = validator or ValidationEngine(self.evaluator)
        self._clock = clock or utcnow
        self._index = schema.question_index()

    # ------------------------------------------------------------------
    # Position lookups
    # ------------------------------------------------------------------

    def first_visible_index(self, answers: dict[str, Any]) -> int:
        """Index of the first visible section, or 0 if none is visible."""
        for i, section in enumerate(self.schema.sections):
            if self.evaluator.is_section_visible(section, answers):
                return i
        return 0

    def current_section(self, state: ResponseState) -> SectionSchema:
        return self.schema.sections[state.current_section_index]

    def next_visible_index(self, state: ResponseState) -> int | None:
        """Index of the nearest visible section after the current one."""
        sections = self.schema.sections
        for i in range(state.current_section_index + 1, len(sections)):
            if self.evaluator.is_section_visible(sections[i], state.answers):
                return i
        return None

    def previous_visible_index(self, state: ResponseState) -> int | None:
        """Index of the nearest visible section before the current one."""
        sections = self.schema.sections
        for i in range(state.current_section_index - 1, -1, -1):
            if self.evaluator.is_section_visible(sections[i], state.answers):
                return i
        return None

    # ------------------------------------------------------------------
    # Early exit
    # ------------------------------------------------------------------

    def matching_exit_rule(self, state: ResponseState) -> EarlyExitRule | None:
        """First early-exit rule for the current section whose predicates all hold."""
        section = self.current_section(state)
        for rule in self.schema.exit_rules_after(section.id):
            if self.evaluator.rule_matches(rule, state.answers):
                return rule
        return None

    def will_end_early(self, state: ResponseState) -> bool:
        return self.matching_exit_rule(state) is not None

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    def section_position(self, state: ResponseState) -> int:
        """1-based ordinal of the current section among counted sections."""
        position = 0
        for i, section in enumerate(self.schema.sections):
            if i > state.current_section_index:
                break
            if i == state.current_section_index or not self._excluded(section, state):
                position += 1
        return position

    def effective_total_sections(self, state: ResponseState) -> int:
        """Number of sections the respondent will go through.

        A satisfied early-exit rule on the current section caps the total at
        the current position.  Otherwise every section that can still become
        visible is counted, including sections whose dependency has not been
        answered yet.
        """
        if self.will_end_early(state):
            return self.section_position(state)
        counted = sum(
            1
            for i, section in enumerate(self.schema.sections)
            if i == state.current_section_index or not self._excluded(section, state)
        )
        return max(counted, 1)

    def progress_percentage(self, state: ResponseState) -> int:
        total = self.effective_total_sections(state)
        return min(100, round(self.section_position(state) * 100 / total))

    def is_last_section(self, state: ResponseState) -> bool:
        """True when advancing from here would submit."""
        return self.will_end_early(state) or self.next_visible_index(state) is None

    def completed_section_ids(self, state: ResponseState) -> list[str]:
        """Ids of visible sections up to and including the current one."""
        return [
            section.id
            for section in self.schema.sections[: state.current_section_index + 1]
            if self.evaluator.is_section_visible(section, state.answers)
        ]

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def advance(self, state: ResponseState) -> NavigationOutcome:
        """Validate the current section and move forward.

        Returns:
            "invalid" with the errors (also stored on ``state.errors``);
            "submit" with reason "early_exit" or "last_section";
            otherwise "moved" with the new section index.
        """
        self.ensure_editing(state)
        section = self.current_section(state)
        errors = self.validator.validate_section(section, state.answers)
        state.errors = errors
        if errors:
            return NavigationOutcome(
                type="invalid",
                section_index=state.current_section_index,
                errors=errors,
            )

        rule = self.matching_exit_rule(state)
        if rule is not None:
            logger.debug(
                "Early exit after section %s (%s)", section.id, rule.reason or "no reason"
            )
            return NavigationOutcome(
                type="submit",
                section_index=state.current_section_index,
                reason="early_exit",
            )

        next_index = self.next_visible_index(state)
        if next_index is None:
            return NavigationOutcome(
                type="submit",
                section_index=state.current_section_index,
                reason="last_section",
            )

        logger.debug(
            "Advance %s -> %s", section.id, self.schema.sections[next_index].id
        )
        self._move_to(state, next_index)
        return NavigationOutcome(type="moved", section_index=next_index)

    def retreat(self, state: ResponseState) -> bool:
        """Go back to the nearest visible previous section.

        Returns False (and changes nothing) at the first visible section.
        """
        self.ensure_editing(state)
        prev_index = self.previous_visible_index(state)
        if prev_index is None:
            return False
        logger.debug(
            "Retreat %s -> %s",
            self.current_section(state).id,
            self.schema.sections[prev_index].id,
        )
        self._move_to(state, prev_index)
        state.revisit_count += 1
        return True

    def begin_submit(self, state: ResponseState) -> dict[str, str]:
        """Re-validate the current section and enter the submitting state.

        Returns the validation errors; the status only changes when there
        are none.

        Raises:
            NavigationError: when a submission is already pending or done,
                or when the current section is not the last one.
        """
        if state.status == SessionStatus.SUBMITTING:
            raise NavigationError("a submission is already in progress")
        self.ensure_editing(state)
        if not self.is_last_section(state):
            raise NavigationError(
                f"cannot submit from section {self.current_section(state).id!r}: "
                f"it is not the last section"
            )
        errors = self.validator.validate_section(self.current_section(state), state.answers)
        state.errors = errors
        if not errors:
            state.status = SessionStatus.SUBMITTING
        return errors

    def complete_submit(self, state: ResponseState, submission_id: str) -> None:
        if state.status != SessionStatus.SUBMITTING:
            raise NavigationError(f"no submission in progress (status={state.status.value})")
        state.status = SessionStatus.SUBMITTED
        state.submission_id = submission_id

    def fail_submit(self, state: ResponseState) -> None:
        """Return to editing; answers and section index stay as they were."""
        if state.status != SessionStatus.SUBMITTING:
            raise NavigationError(f"no submission in progress (status={state.status.value})")
        state.status = SessionStatus.EDITING

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _excluded(self, section: SectionSchema, state: ResponseState) -> bool:
        return self.evaluator.is_section_excluded(section, state.answers, self._index)

    def _move_to(self, state: ResponseState, index: int) -> None:
        state.current_section_index = index
        state.section_started_at = self._clock()
        state.errors = {}

    @staticmethod
    def ensure_editing(state: ResponseState) -> None:
        if state.status == SessionStatus.SUBMITTED:
            raise NavigationError("response has already been submitted")
        if state.status == SessionStatus.SUBMITTING:
            raise NavigationError("a submission is in progress")

"""QuestionnaireEngine — the facade the rendering layer talks to.

Explicit-state engine pattern: the engine holds only immutable schemas and
its collaborators.  Each call receives the respondent's ``ResponseState``,
applies one operation, and returns a step model describing what to show
next.  Callers keep the state (in memory, in a draft store) between calls.

Operations:
    start             new ResponseState on the first visible section
    set_answer        write, sweep hidden answers, clear that error
    advance           validate -> move / early exit / submit
    retreat           previous visible section
    submit            validate -> normalise -> persist -> statistics

The only awaitable is the persistence call inside :meth:`submit`.
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from survey_engine.errors import NavigationError, SubmissionError
from survey_engine.evaluator import VisibilityEvaluator, is_blank
from survey_engine.interfaces import PersistenceBackend, StatisticsSink
from survey_engine.metrics import build_submission_metadata
from survey_engine.models.schema import QuestionnaireSchema
from survey_engine.models.session import (
    ResponseState,
    SectionStep,
    StepResult,
    SubmissionFailedStep,
    SubmittedStep,
)
from survey_engine.models.submission import SubmissionMetadata
from survey_engine.navigator import Clock, SectionNavigator, utcnow
from survey_engine.normalizer import ResponseNormalizer
from survey_engine.registry import QuestionnaireRegistry
from survey_engine.validation import ValidationEngine

logger = logging.getLogger(__name__)


class QuestionnaireEngine:
    """Drives response sessions for every questionnaire in a registry.

    Args:
        registry: loaded questionnaire registry.
        backend: persistence collaborator receiving the canonical payload.
        stats_sink: optional statistics collaborator, called after a
            successful submission.
        clock: returns the current time; injectable for tests.
    """

    def __init__(
        self,
        registry: QuestionnaireRegistry,
        backend: PersistenceBackend,
        stats_sink: StatisticsSink | None = None,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._registry = registry
        self._backend = backend
        self._stats_sink = stats_sink
        self._clock = clock or utcnow
        self._evaluator = VisibilityEvaluator()
        self._validator = ValidationEngine(self._evaluator)
        self._normalizer = ResponseNormalizer()
        self._navigators: dict[str, SectionNavigator] = {}

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def start(self, questionnaire_id: str) -> ResponseState:
        """Create a fresh response session.

        Raises:
            NavigationError: if the questionnaire id is unknown.
        """
        navigator = self._navigator(questionnaire_id)
        now = self._clock()
        state = ResponseState(
            questionnaire_id=questionnaire_id,
            current_section_index=navigator.first_visible_index({}),
            started_at=now,
            section_started_at=now,
        )
        logger.debug("Started response for %s", questionnaire_id)
        return state

    def get_current_step(self, state: ResponseState) -> SectionStep:
        """Describe the section the respondent is on.

        Raises:
            NavigationError: if the response has already been submitted.
        """
        navigator = self._navigator(state.questionnaire_id)
        if state.is_submitted:
            raise NavigationError(
                f"response {state.submission_id} has already been submitted"
            )
        return self._section_step(state, navigator)

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def set_answer(self, state: ResponseState, qid: str, value: Any) -> list[str]:
        """Record an answer and prune answers that are no longer visible.

        A blank value (None, "", [], {}) removes the answer.

        Returns:
            The qids whose answers were removed by the visibility sweep.

        Only questions of the current section can be edited; answers in
        sections already passed change by retreating to them first.

        Raises:
            NavigationError: if the question does not exist, is not in the
                current section, is not currently visible, or the session is
                not editable.
        """
        navigator = self._navigator(state.questionnaire_id)
        navigator.ensure_editing(state)
        try:
            question = navigator.schema.get_question(qid)
        except KeyError:
            raise NavigationError(
                f"question {qid!r} not found in {state.questionnaire_id!r}"
            ) from None
        section = navigator.current_section(state)
        if all(q.id != qid for q in section.questions):
            raise NavigationError(
                f"question {qid!r} is not in the current section {section.id!r}"
            )
        if not self._evaluator.is_question_visible(question, state.answers):
            raise NavigationError(f"question {qid!r} is not visible")

        if is_blank(value):
            state.answers.pop(qid, None)
        else:
            state.answers[qid] = value
        swept = self._evaluator.sweep_hidden_answers(navigator.schema, state.answers)
        state.errors.pop(qid, None)
        for swept_qid in swept:
            state.errors.pop(swept_qid, None)
        return swept

    def clear_answer(self, state: ResponseState, qid: str) -> list[str]:
        """Remove an answer; same sweep semantics as :meth:`set_answer`."""
        return self.set_answer(state, qid, None)

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    async def advance(
        self, state: ResponseState, *, user_agent: str | None = None
    ) -> StepResult:
        """Validate the current section and move on.

        Returns the next ``SectionStep``, the same section with errors, or,
        when nothing is left to show, the result of :meth:`submit`.
        """
        navigator = self._navigator(state.questionnaire_id)
        outcome = navigator.advance(state)
        if outcome.type == "submit":
            return await self.submit(state, user_agent=user_agent)
        return self._section_step(state, navigator)

    def retreat(self, state: ResponseState) -> SectionStep:
        """Go back one visible section; stays put on the first one."""
        navigator = self._navigator(state.questionnaire_id)
        navigator.retreat(state)
        return self._section_step(state, navigator)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(
        self, state: ResponseState, *, user_agent: str | None = None
    ) -> SectionStep | SubmittedStep | SubmissionFailedStep:
        """Validate, normalise, and persist the response.

        Returns:
            SectionStep: the current section with errors when validation fails.
            SubmittedStep: the backend accepted the payload.
            SubmissionFailedStep: the backend failed; the session is
                editable again with answers and position intact.

        Raises:
            NavigationError: if a submission is already pending, the
                response was already submitted, or the current section is
                not the last one.
        """
        navigator = self._navigator(state.questionnaire_id)
        errors = navigator.begin_submit(state)
        if errors:
            return self._section_step(state, navigator)

        schema = navigator.schema
        section_id = navigator.current_section(state).id
        end_reason = "early_exit" if navigator.will_end_early(state) else "last_section"
        try:
            payload = self._normalizer.normalize_all(schema, state.answers)
            metadata = self._metadata(navigator, state, payload, user_agent, end_reason)
        except Exception:
            navigator.fail_submit(state)
            raise

        try:
            submission_id = await self._backend.submit(payload, metadata)
        except SubmissionError as exc:
            navigator.fail_submit(state)
            logger.warning("Submission of %s failed: %s", schema.id, exc)
            return SubmissionFailedStep(
                questionnaire_id=schema.id,
                section_id=section_id,
                reason=str(exc),
                retryable=exc.retryable,
            )
        except Exception as exc:
            navigator.fail_submit(state)
            logger.exception("Persistence backend raised while submitting %s", schema.id)
            return SubmissionFailedStep(
                questionnaire_id=schema.id,
                section_id=section_id,
                reason=str(exc) or type(exc).__name__,
            )

        navigator.complete_submit(state, submission_id)
        logger.info(
            "Submitted %s as %s (%s, %d answers)",
            schema.id,
            submission_id,
            end_reason,
            len(payload),
        )

        if self._stats_sink is not None:
            try:
                await self._stats_sink.record(payload, metadata)
            except Exception:
                logger.warning(
                    "Statistics sink failed for submission %s", submission_id, exc_info=True
                )

        return SubmittedStep(
            questionnaire_id=schema.id,
            submission_id=submission_id,
            end_reason=end_reason,
            payload=payload,
            metadata=metadata,
        )

    def build_metadata(
        self,
        state: ResponseState,
        *,
        user_agent: str | None = None,
        end_reason: Literal["early_exit", "last_section"] = "last_section",
    ) -> SubmissionMetadata:
        """Session metrics for the response as it stands now."""
        navigator = self._navigator(state.questionnaire_id)
        payload = self._normalizer.normalize_all(navigator.schema, state.answers)
        return self._metadata(navigator, state, payload, user_agent, end_reason)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _metadata(
        self,
        navigator: SectionNavigator,
        state: ResponseState,
        payload: dict[str, Any],
        user_agent: str | None,
        end_reason: Literal["early_exit", "last_section"],
    ) -> SubmissionMetadata:
        return build_submission_metadata(
            navigator.schema,
            state.answers,
            payload=payload,
            started_at=state.started_at,
            submitted_at=self._clock(),
            revisit_count=state.revisit_count,
            completed_sections=navigator.completed_section_ids(state),
            end_reason=end_reason,
            user_agent=user_agent,
        )

    def _navigator(self, questionnaire_id: str) -> SectionNavigator:
        try:
            schema: QuestionnaireSchema = self._registry.get(questionnaire_id)
        except KeyError:
            raise NavigationError(f"unknown questionnaire {questionnaire_id!r}") from None
        navigator = self._navigators.get(questionnaire_id)
        # A re-registered questionnaire gets a fresh navigator
        if navigator is None or navigator.schema is not schema:
            navigator = SectionNavigator(
                schema, self._evaluator, self._validator, clock=self._clock
            )
            self._navigators[questionnaire_id] = navigator
        return navigator

    def _section_step(self, state: ResponseState, navigator: SectionNavigator) -> SectionStep:
        section = navigator.current_section(state)
        rule = navigator.matching_exit_rule(state)
        return SectionStep(
            questionnaire_id=state.questionnaire_id,
            section_id=section.id,
            title=section.title,
            description=section.description,
            index=state.current_section_index,
            position=navigator.section_position(state),
            total=navigator.effective_total_sections(state),
            progress=navigator.progress_percentage(state),
            questions=self._evaluator.visible_questions(section, state.answers),
            errors=dict(state.errors),
            has_previous=navigator.previous_visible_index(state) is not None,
            is_last=navigator.is_last_section(state),
            will_end_early=rule is not None,
            early_exit_reason=rule.reason if rule is not None else None,
        )

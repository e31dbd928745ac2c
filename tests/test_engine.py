"""QuestionnaireEngine tests with in-memory collaborators.

Mock strategy:
  - RecordingBackend implements PersistenceBackend, keeping every payload
    in a list; ``fail_with`` makes the next call raise.
  - BlockingBackend parks inside ``submit`` until released, so tests can
    observe the session while a submission is pending.
  - A StatisticsSink AsyncMock stands in for the stats collaborator.
  - FakeClock (conftest) makes timing metadata deterministic.
"""

import asyncio
from typing import Any
from unittest.mock import AsyncMock

import pytest

from helpers.builders import build, question, section, train_like_questionnaire
from survey_engine.engine import QuestionnaireEngine
from survey_engine.errors import NavigationError, SubmissionError
from survey_engine.interfaces import PersistenceBackend, StatisticsSink
from survey_engine.models.session import (
    SectionStep,
    SessionStatus,
    SubmissionFailedStep,
    SubmittedStep,
)
from survey_engine.models.submission import SubmissionMetadata
from survey_engine.registry import QuestionnaireRegistry, load_questionnaire

IPHONE_UA = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile/15E148"


# =====================================================================
# Mock infrastructure
# =====================================================================


class RecordingBackend(PersistenceBackend):
    """In-memory persistence; raises ``fail_with`` once if set."""

    def __init__(self):
        self.submissions: list[tuple[dict[str, Any], SubmissionMetadata]] = []
        self.fail_with: Exception | None = None

    async def submit(self, payload, metadata):
        if self.fail_with is not None:
            exc, self.fail_with = self.fail_with, None
            raise exc
        self.submissions.append((payload, metadata))
        return f"sub-{len(self.submissions)}"


class BlockingBackend(PersistenceBackend):
    """Waits on an event before accepting the payload."""

    def __init__(self):
        self.release = asyncio.Event()

    async def submit(self, payload, metadata):
        await self.release.wait()
        return "sub-blocked"


@pytest.fixture
def registry_in_memory():
    reg = QuestionnaireRegistry()
    reg.register(load_questionnaire(train_like_questionnaire()))
    return reg


@pytest.fixture
def backend():
    return RecordingBackend()


@pytest.fixture
def stats():
    return AsyncMock(spec=StatisticsSink)


@pytest.fixture
def engine(registry_in_memory, backend, stats, clock):
    return QuestionnaireEngine(registry_in_memory, backend, stats, clock=clock)


async def _walk_to_b(engine, state, used):
    """Answer basic and a, landing on section b."""
    engine.set_answer(state, "name", "小明")
    await engine.advance(state)
    engine.set_answer(state, "used", used)
    return await engine.advance(state)


# =====================================================================
# start / get_current_step
# =====================================================================


class TestStart:
    def test_start_positions_on_first_section(self, engine, clock):
        state = engine.start("train-like")
        assert state.current_section_index == 0
        assert state.started_at == clock()
        assert state.status == SessionStatus.EDITING

    def test_unknown_questionnaire(self, engine):
        with pytest.raises(NavigationError, match="unknown questionnaire"):
            engine.start("nope")

    def test_first_step(self, engine):
        step = engine.get_current_step(engine.start("train-like"))
        assert isinstance(step, SectionStep)
        assert step.section_id == "basic"
        assert (step.position, step.total, step.progress) == (1, 5, 20)
        assert [q.id for q in step.questions] == ["name"]
        assert step.has_previous is False
        assert step.is_last is False


# =====================================================================
# set_answer
# =====================================================================


class TestSetAnswer:
    def test_unknown_question(self, engine):
        state = engine.start("train-like")
        with pytest.raises(NavigationError, match="not found"):
            engine.set_answer(state, "ghost", "x")

    @pytest.mark.asyncio
    async def test_hidden_question(self, engine):
        state = engine.start("train-like")
        await _walk_to_b(engine, state, "是")
        with pytest.raises(NavigationError, match="not visible"):
            engine.set_answer(state, "reason", {"selected": ["太遠"]})

    def test_question_outside_current_section(self, engine):
        state = engine.start("train-like")
        with pytest.raises(NavigationError, match="not in the current section 'basic'"):
            engine.set_answer(state, "used", "是")
        assert state.answers == {}

    def test_blank_value_deletes(self, engine):
        state = engine.start("train-like")
        engine.set_answer(state, "name", "小明")
        engine.set_answer(state, "name", "")
        assert "name" not in state.answers

    @pytest.mark.asyncio
    async def test_changing_dependency_sweeps_hidden_answers(self, engine):
        state = engine.start("train-like")
        await _walk_to_b(engine, state, "是")
        engine.set_answer(state, "purpose", "通勤")
        await engine.advance(state)
        engine.set_answer(state, "rating", "3")
        engine.retreat(state)
        engine.retreat(state)
        assert engine.get_current_step(state).section_id == "a"

        swept = engine.set_answer(state, "used", "否")

        assert swept == ["purpose", "rating"]
        assert state.answers == {"name": "小明", "used": "否"}

    @pytest.mark.asyncio
    async def test_clear_answer_sweeps_dependants(self, engine):
        state = engine.start("train-like")
        await _walk_to_b(engine, state, "是")
        engine.set_answer(state, "purpose", "通勤")
        engine.retreat(state)
        assert engine.clear_answer(state, "used") == ["purpose"]
        assert state.answers == {"name": "小明"}

    @pytest.mark.asyncio
    async def test_passed_section_cannot_be_emptied_before_submit(self, engine, backend):
        state = engine.start("train-like")
        await _walk_to_b(engine, state, "否")
        engine.set_answer(state, "reason", {"selected": ["太遠"]})

        with pytest.raises(NavigationError, match="not in the current section"):
            engine.set_answer(state, "name", None)

        step = await engine.advance(state)
        assert isinstance(step, SubmittedStep)
        assert step.payload["name"] == "小明"

    @pytest.mark.asyncio
    async def test_current_section_cannot_be_hidden_by_earlier_answer(self, engine):
        state = engine.start("train-like")
        await _walk_to_b(engine, state, "是")
        engine.set_answer(state, "purpose", "通勤")
        step = await engine.advance(state)
        assert step.section_id == "c"

        with pytest.raises(NavigationError):
            engine.set_answer(state, "used", "否")

        step = engine.get_current_step(state)
        assert step.section_id == "c"
        assert [q.id for q in step.questions] == ["rating"]

    @pytest.mark.asyncio
    async def test_edit_clears_only_that_error(self, registry_in_memory, backend, clock):
        registry_in_memory.register(
            build(
                section("s1", question("a", required=True), question("b", required=True)),
                section("s2", question("c")),
                qid="two-required",
            )
        )
        engine = QuestionnaireEngine(registry_in_memory, backend, clock=clock)
        state = engine.start("two-required")
        step = await engine.advance(state)
        assert set(step.errors) == {"a", "b"}
        engine.set_answer(state, "a", "filled")
        assert set(state.errors) == {"b"}
        assert set(engine.get_current_step(state).errors) == {"b"}


# =====================================================================
# advance / retreat
# =====================================================================


class TestNavigation:
    @pytest.mark.asyncio
    async def test_invalid_advance_returns_errors(self, engine):
        state = engine.start("train-like")
        step = await engine.advance(state)
        assert isinstance(step, SectionStep)
        assert step.section_id == "basic"
        assert step.errors == {"name": "此欄位為必填"}

    @pytest.mark.asyncio
    async def test_conditional_questions_follow_answers(self, engine):
        state = engine.start("train-like")
        step = await _walk_to_b(engine, state, "是")
        assert step.section_id == "b"
        assert [q.id for q in step.questions] == ["purpose"]
        assert step.has_previous is True

    @pytest.mark.asyncio
    async def test_early_exit_step_flags(self, engine):
        state = engine.start("train-like")
        step = await _walk_to_b(engine, state, "否")
        assert step.will_end_early is False
        assert step.total == 4

        engine.set_answer(state, "reason", {"selected": ["太遠"]})
        step = engine.get_current_step(state)
        assert step.will_end_early is True
        assert step.early_exit_reason == "done early"
        assert step.is_last is True
        assert (step.position, step.total, step.progress) == (3, 3, 100)

    @pytest.mark.asyncio
    async def test_retreat(self, engine):
        state = engine.start("train-like")
        await _walk_to_b(engine, state, "是")
        step = engine.retreat(state)
        assert step.section_id == "a"
        assert state.revisit_count == 1
        # the answer that led to b is still there
        assert state.answers["used"] == "是"

    def test_retreat_at_first_section(self, engine):
        state = engine.start("train-like")
        step = engine.retreat(state)
        assert step.section_id == "basic"
        assert state.revisit_count == 0


# =====================================================================
# submit
# =====================================================================


class TestSubmit:
    @pytest.mark.asyncio
    async def test_early_exit_submits(self, engine, backend, stats, clock):
        state = engine.start("train-like")
        await _walk_to_b(engine, state, "否")
        engine.set_answer(state, "reason", {"selected": ["太遠"]})
        clock.tick(42)

        step = await engine.advance(state, user_agent=IPHONE_UA)

        assert isinstance(step, SubmittedStep)
        assert step.submission_id == "sub-1"
        assert step.end_reason == "early_exit"
        # checkbox-text without "other" collapses to the selection list
        assert step.payload == {"name": "小明", "used": "否", "reason": ["太遠"]}
        assert step.metadata.time_spent_seconds == 42
        assert step.metadata.device_type == "mobile"
        assert step.metadata.completed_sections == ["basic", "a", "b"]
        assert step.metadata.end_reason == "early_exit"
        assert state.is_submitted is True
        assert state.submission_id == "sub-1"
        assert len(backend.submissions) == 1
        stats.record.assert_awaited_once_with(step.payload, step.metadata)

    @pytest.mark.asyncio
    async def test_full_path_submits_at_last_section(self, engine, backend):
        state = engine.start("train-like")
        await _walk_to_b(engine, state, "是")
        engine.set_answer(state, "purpose", "通勤")
        step = await engine.advance(state)
        assert step.section_id == "c"
        step = await engine.advance(state)
        assert step.section_id == "end"
        assert step.is_last is True
        engine.set_answer(state, "comments", "很好")

        step = await engine.advance(state)

        assert isinstance(step, SubmittedStep)
        assert step.end_reason == "last_section"
        assert list(step.payload) == ["name", "used", "purpose", "comments"]
        assert step.metadata.device_type == "desktop"

    @pytest.mark.asyncio
    async def test_submit_before_last_section(self, engine):
        state = engine.start("train-like")
        with pytest.raises(NavigationError, match="not the last section"):
            await engine.submit(state)

    @pytest.mark.asyncio
    async def test_submit_with_errors_returns_section(self, registry_in_memory, backend, clock):
        registry_in_memory.register(
            build(section("only", question("must", required=True)), qid="single")
        )
        engine = QuestionnaireEngine(registry_in_memory, backend, clock=clock)
        state = engine.start("single")
        step = await engine.submit(state)
        assert isinstance(step, SectionStep)
        assert step.errors == {"must": "此欄位為必填"}
        assert state.status == SessionStatus.EDITING
        assert backend.submissions == []

    @pytest.mark.asyncio
    async def test_nothing_allowed_after_submission(self, engine):
        state = engine.start("train-like")
        await _walk_to_b(engine, state, "否")
        engine.set_answer(state, "reason", {"selected": ["太遠"]})
        await engine.advance(state)

        with pytest.raises(NavigationError):
            engine.set_answer(state, "name", "again")
        with pytest.raises(NavigationError):
            await engine.submit(state)
        with pytest.raises(NavigationError, match="already been submitted"):
            engine.get_current_step(state)


class TestSubmissionFailures:
    async def _ready_to_submit(self, engine):
        state = engine.start("train-like")
        await _walk_to_b(engine, state, "否")
        engine.set_answer(state, "reason", {"selected": ["太遠", "其他"], "text": "沒有車站"})
        return state

    @pytest.mark.asyncio
    async def test_backend_failure_is_retryable(self, engine, backend, stats):
        state = await self._ready_to_submit(engine)
        backend.fail_with = RuntimeError("network down")

        step = await engine.advance(state)

        assert isinstance(step, SubmissionFailedStep)
        assert step.retryable is True
        assert step.reason == "network down"
        assert step.section_id == "b"
        assert state.status == SessionStatus.EDITING
        assert state.current_section_index == 2
        assert state.answers["reason"]["text"] == "沒有車站"
        stats.record.assert_not_awaited()

        # retry succeeds with answers intact
        step = await engine.submit(state)
        assert isinstance(step, SubmittedStep)
        assert step.payload["reason"] == {"selected": ["太遠", "其他"], "text": "沒有車站"}

    @pytest.mark.asyncio
    async def test_non_retryable_submission_error(self, engine, backend):
        state = await self._ready_to_submit(engine)
        backend.fail_with = SubmissionError("payload rejected", retryable=False)
        step = await engine.submit(state)
        assert isinstance(step, SubmissionFailedStep)
        assert step.retryable is False
        assert step.reason == "payload rejected"

    @pytest.mark.asyncio
    async def test_stats_failure_does_not_undo_submission(self, engine, stats):
        stats.record.side_effect = RuntimeError("stats offline")
        state = await self._ready_to_submit(engine)
        step = await engine.submit(state)
        assert isinstance(step, SubmittedStep)
        assert state.is_submitted is True

    @pytest.mark.asyncio
    async def test_reentrant_submit_while_pending(self, registry_in_memory, clock):
        backend = BlockingBackend()
        engine = QuestionnaireEngine(registry_in_memory, backend, clock=clock)
        state = await self._ready_to_submit(engine)

        task = asyncio.create_task(engine.submit(state))
        await asyncio.sleep(0)
        assert state.is_submitting is True

        with pytest.raises(NavigationError, match="already in progress"):
            await engine.submit(state)
        with pytest.raises(NavigationError):
            engine.set_answer(state, "name", "changed")

        backend.release.set()
        step = await task
        assert isinstance(step, SubmittedStep)
        assert step.submission_id == "sub-blocked"


class TestMetadata:
    @pytest.mark.asyncio
    async def test_revisits_and_timing(self, engine, clock):
        state = engine.start("train-like")
        await _walk_to_b(engine, state, "是")
        engine.retreat(state)
        await engine.advance(state)
        clock.tick(90)
        meta = engine.build_metadata(state)
        assert meta.revisit_count == 1
        assert meta.time_spent_seconds == 90
        assert meta.total_questions == 6
        assert meta.answered_questions == 2
        assert meta.completion_percentage == 33

    @pytest.mark.asyncio
    async def test_characters_counted_on_payload(self, registry_in_memory, backend, clock):
        registry_in_memory.register(
            build(
                section("only", question("how", "select-text", options=["公車", "其他"])),
                qid="other-text",
            )
        )
        engine = QuestionnaireEngine(registry_in_memory, backend, clock=clock)
        state = engine.start("other-text")
        engine.set_answer(state, "how", {"selected": "其他"})

        step = await engine.submit(state)

        # "other" without text is sent as the bare "其他"
        assert step.payload == {"how": "其他"}
        assert step.metadata.total_characters_written == 2


class TestRegistryChanges:
    def test_reregistered_questionnaire_is_served(self, registry_in_memory, backend, clock):
        registry_in_memory.register(build(section("s", question("a")), qid="x"))
        engine = QuestionnaireEngine(registry_in_memory, backend, clock=clock)
        engine.start("x")

        registry_in_memory.register(
            build(section("s", question("a"), question("b", required=True)), qid="x")
        )

        step = engine.get_current_step(engine.start("x"))
        assert [q.id for q in step.questions] == ["a", "b"]


class TestPayloadFailures:
    @pytest.mark.asyncio
    async def test_unserialisable_answer_leaves_session_editable(
        self, registry_in_memory, backend, clock
    ):
        registry_in_memory.register(build(section("only", question("pick", "map")), qid="map"))
        engine = QuestionnaireEngine(registry_in_memory, backend, clock=clock)
        state = engine.start("map")
        engine.set_answer(state, "pick", {"pick": {1, 2}})

        with pytest.raises(TypeError):
            await engine.submit(state)

        assert state.status == SessionStatus.EDITING
        assert backend.submissions == []
        engine.set_answer(state, "pick", "taipei")
        step = await engine.submit(state)
        assert isinstance(step, SubmittedStep)

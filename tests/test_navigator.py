"""SectionNavigator tests — transitions, early exit, progress totals.

Uses the ``train_like`` questionnaire from conftest:

    basic -> a (used: 是/否) -> b -> c -> end
    b shows ``reason`` when used=否, ``purpose`` when used=是
    c shows ``rating`` only when used=是
    early exit after b when used=否 and reason answered
"""

import pytest

from helpers.builders import build, question, section, when
from survey_engine.errors import NavigationError
from survey_engine.models.session import ResponseState, SessionStatus
from survey_engine.navigator import SectionNavigator


@pytest.fixture
def nav(train_like, evaluator, validator, clock):
    return SectionNavigator(train_like, evaluator, validator, clock=clock)


def _state(nav: SectionNavigator, clock, **answers) -> ResponseState:
    now = clock()
    return ResponseState(
        questionnaire_id=nav.schema.id,
        answers=dict(answers),
        current_section_index=nav.first_visible_index(answers),
        started_at=now,
        section_started_at=now,
    )


def _at(nav, clock, section_id: str, **answers) -> ResponseState:
    state = _state(nav, clock, **answers)
    state.current_section_index = nav.schema.section_position(section_id)
    return state


# =====================================================================
# advance
# =====================================================================


class TestAdvance:
    def test_invalid_stays_and_stores_errors(self, nav, clock):
        state = _state(nav, clock)
        outcome = nav.advance(state)
        assert outcome.type == "invalid"
        assert outcome.errors == {"name": "此欄位為必填"}
        assert state.errors == {"name": "此欄位為必填"}
        assert state.current_section_index == 0

    def test_moves_and_resets_section_timer(self, nav, clock):
        state = _state(nav, clock, name="小明")
        state.errors = {"stale": "x"}
        clock.tick(30)
        outcome = nav.advance(state)
        assert outcome.type == "moved"
        assert outcome.section_index == 1
        assert state.current_section_index == 1
        assert state.section_started_at == clock()
        assert state.errors == {}

    def test_early_exit(self, nav, clock):
        state = _at(nav, clock, "b", name="x", used="否", reason={"selected": ["太遠"]})
        outcome = nav.advance(state)
        assert outcome.type == "submit"
        assert outcome.reason == "early_exit"
        assert state.current_section_index == 2

    def test_exit_rule_needs_every_predicate(self, nav, clock):
        """used=否 alone does not end early; b then fails validation on reason."""
        state = _at(nav, clock, "b", name="x", used="否")
        assert nav.will_end_early(state) is False
        outcome = nav.advance(state)
        assert outcome.type == "invalid"
        assert set(outcome.errors) == {"reason"}

    def test_no_exit_continues_to_next_section(self, nav, clock):
        state = _at(nav, clock, "b", name="x", used="是", purpose="通勤")
        outcome = nav.advance(state)
        assert outcome.type == "moved"
        assert nav.current_section(state).id == "c"

    def test_last_section(self, nav, clock):
        state = _at(nav, clock, "end", name="x", used="是", purpose="通勤")
        outcome = nav.advance(state)
        assert outcome.type == "submit"
        assert outcome.reason == "last_section"

    def test_skips_invisible_sections(self, evaluator, validator, clock):
        schema = build(
            section("s0", question("p", "radio", options=["x", "y"], required=True)),
            section("s1", question("q", conditional=when("p", "x"))),
            section("s2", question("r")),
        )
        nav = SectionNavigator(schema, evaluator, validator, clock=clock)
        state = _state(nav, clock, p="y")
        assert nav.advance(state).section_index == 2


# =====================================================================
# retreat
# =====================================================================


class TestRetreat:
    def test_counts_revisit(self, nav, clock):
        state = _at(nav, clock, "b", name="x", used="是")
        clock.tick(5)
        assert nav.retreat(state) is True
        assert nav.current_section(state).id == "a"
        assert state.revisit_count == 1
        assert state.section_started_at == clock()

    def test_noop_at_first_section(self, nav, clock):
        state = _state(nav, clock)
        assert nav.retreat(state) is False
        assert state.current_section_index == 0
        assert state.revisit_count == 0

    def test_skips_invisible_sections(self, evaluator, validator, clock):
        schema = build(
            section("s0", question("p", "radio", options=["x", "y"])),
            section("s1", question("q", conditional=when("p", "x"))),
            section("s2", question("r")),
        )
        nav = SectionNavigator(schema, evaluator, validator, clock=clock)
        state = _state(nav, clock, p="y")
        state.current_section_index = 2
        nav.retreat(state)
        assert state.current_section_index == 0

    def test_answers_are_kept(self, nav, clock):
        state = _at(nav, clock, "b", name="x", used="是", purpose="通勤")
        nav.retreat(state)
        assert state.answers == {"name": "x", "used": "是", "purpose": "通勤"}


# =====================================================================
# Progress totals
# =====================================================================


class TestProgress:
    def test_undecided_sections_are_counted(self, nav, clock):
        state = _state(nav, clock)
        assert nav.section_position(state) == 1
        assert nav.effective_total_sections(state) == 5
        assert nav.progress_percentage(state) == 20

    def test_excluded_section_not_counted(self, nav, clock):
        """used=否 can never show c, so it leaves the total."""
        state = _at(nav, clock, "b", name="x", used="否")
        assert nav.effective_total_sections(state) == 4
        assert nav.section_position(state) == 3

    def test_early_exit_caps_total_at_current_section(self, nav, clock):
        state = _at(nav, clock, "b", name="x", used="否", reason={"selected": ["太遠"]})
        assert nav.effective_total_sections(state) == 3
        assert nav.progress_percentage(state) == 100
        assert nav.is_last_section(state) is True

    def test_position_after_excluded_section(self, nav, clock):
        state = _at(nav, clock, "end", name="x", used="否")
        assert nav.section_position(state) == 4
        assert nav.effective_total_sections(state) == 4

    def test_is_last_section(self, nav, clock):
        assert nav.is_last_section(_at(nav, clock, "c", used="是")) is False
        assert nav.is_last_section(_at(nav, clock, "end", used="是")) is True

    def test_completed_section_ids(self, nav, clock):
        state = _at(nav, clock, "b", name="x", used="否", reason={"selected": ["太遠"]})
        assert nav.completed_section_ids(state) == ["basic", "a", "b"]

    def test_early_exit_total_skips_excluded_earlier_section(self, evaluator, validator, clock):
        schema = build(
            section("s0", question("p", "radio", options=["x", "y"])),
            section("s1", question("q", conditional=when("p", "x"))),
            section("s2", question("r")),
            section("s3", question("s")),
            early_exit_rules=[
                {"after_section_id": "s2", "when": [{"qid": "p", "op": "eq", "value": "y"}]}
            ],
        )
        nav = SectionNavigator(schema, evaluator, validator, clock=clock)
        state = _state(nav, clock, p="y")
        state.current_section_index = 2
        # s1 can never show, so s2 is the second section the respondent sees
        assert nav.section_position(state) == 2
        assert nav.effective_total_sections(state) == 2
        assert nav.progress_percentage(state) == 100

    def test_first_visible_index(self, evaluator, validator, clock):
        schema = build(
            section("intro", question("bonus", conditional=when("consent", "yes"))),
            section("main", question("consent", "radio", options=["yes", "no"])),
        )
        nav = SectionNavigator(schema, evaluator, validator, clock=clock)
        assert nav.first_visible_index({}) == 1


# =====================================================================
# Submission lifecycle
# =====================================================================


class TestSubmitLifecycle:
    def test_begin_submit_requires_last_section(self, nav, clock):
        state = _at(nav, clock, "a", name="x", used="是")
        with pytest.raises(NavigationError, match="not the last section"):
            nav.begin_submit(state)

    def test_begin_complete(self, nav, clock):
        state = _at(nav, clock, "end", name="x", used="是", purpose="通勤")
        assert nav.begin_submit(state) == {}
        assert state.status == SessionStatus.SUBMITTING
        assert state.is_submitting is True
        nav.complete_submit(state, "sub-1")
        assert state.is_submitted is True
        assert state.submission_id == "sub-1"

    def test_reentrant_submit_refused(self, nav, clock):
        state = _at(nav, clock, "end", name="x", used="是")
        nav.begin_submit(state)
        with pytest.raises(NavigationError, match="already in progress"):
            nav.begin_submit(state)

    def test_fail_returns_to_editing(self, nav, clock):
        state = _at(nav, clock, "end", name="x", used="是", comments="hi")
        nav.begin_submit(state)
        nav.fail_submit(state)
        assert state.status == SessionStatus.EDITING
        assert state.current_section_index == 4
        assert state.answers["comments"] == "hi"

    def test_validation_errors_block_submit(self, evaluator, validator, clock):
        schema = build(section("only", question("must", required=True)))
        nav = SectionNavigator(schema, evaluator, validator, clock=clock)
        state = _state(nav, clock)
        assert nav.begin_submit(state) == {"must": "此欄位為必填"}
        assert state.status == SessionStatus.EDITING

    def test_nothing_allowed_after_submitted(self, nav, clock):
        state = _at(nav, clock, "end", name="x", used="是")
        nav.begin_submit(state)
        nav.complete_submit(state, "sub-1")
        with pytest.raises(NavigationError, match="already been submitted"):
            nav.advance(state)
        with pytest.raises(NavigationError):
            nav.retreat(state)
        with pytest.raises(NavigationError):
            nav.begin_submit(state)

    def test_complete_without_begin(self, nav, clock):
        with pytest.raises(NavigationError, match="no submission in progress"):
            nav.complete_submit(_state(nav, clock), "sub-1")

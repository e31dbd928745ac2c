#!/usr/bin/env python3
"""Simulate respondents filling in a questionnaire end-to-end.

Drives the QuestionnaireEngine through every section with generated
answers, printing a rich audit log of each section, the answers chosen,
validation errors, and the final canonical payload and metadata.
Persistence is an in-memory backend; ``--flaky`` makes the first
submission of each run fail so the retry path is exercised.

By default answers are **randomised** (``--random``, on by default) so each
run explores a different path through the conditionals.  Use
``--no-random`` to always pick the first option.

Usage::

    # One random run of the train-service questionnaire
    python scripts/simulate_survey.py

    # Ten runs of a specific questionnaire, reproducible
    python scripts/simulate_survey.py -i taxi-service-survey-2025 -n 10 --seed 7

    # List available questionnaires
    python scripts/simulate_survey.py --list

    # Show every answer (-v) and the payload JSON (-vv)
    python scripts/simulate_survey.py -vv
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import random
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

# ---------------------------------------------------------------------------
# Ensure src/ is on sys.path so the script runs from a plain checkout.
# ---------------------------------------------------------------------------
_SCRIPT_DIR = Path(__file__).resolve().parent
_REPO_ROOT = _SCRIPT_DIR.parent
sys.path.insert(0, str(_REPO_ROOT / "src"))

from survey_engine.config import load_settings  # noqa: E402
from survey_engine.constants import OTHER_OPTION, SCHEDULE_FIELDS  # noqa: E402
from survey_engine.engine import QuestionnaireEngine  # noqa: E402
from survey_engine.errors import SubmissionError  # noqa: E402
from survey_engine.interfaces import PersistenceBackend, StatisticsSink  # noqa: E402
from survey_engine.models.session import SectionStep  # noqa: E402
from survey_engine.models.submission import SubmissionMetadata  # noqa: E402
from survey_engine.registry import QuestionnaireRegistry  # noqa: E402

logger = logging.getLogger("simulate_survey")

_DEFAULT_QUESTIONNAIRE = "train-service-usage-survey-2025"

# Sample values per time format; all fall inside the shipped bounds.
_TIME_SAMPLES = {
    "YYYY": "2024",
    "YYYY-MM": "2024-05",
    "YYYY-MM-DD": "2024-05-17",
    "MM-DD": "05-17",
    "HH:mm": "08:30",
    "YYYY-MM-DD HH:mm": "2024-05-17 08:30",
}

# Pool of free-text answers for --random mode.
_RANDOM_TEXT_POOL = [
    "希望尖峰時段能增加班次",
    "車站指標不夠清楚，轉乘時常找不到月台",
    "整體而言服務良好，謝謝",
    "晚上最後一班車太早",
    "候車時間過長，希望改善",
]

_STATIONS = ["臺北", "板橋", "桃園", "中壢", "新竹", "基隆", "七堵"]


# ---------------------------------------------------------------------------
# In-memory collaborators
# ---------------------------------------------------------------------------

class InMemoryBackend(PersistenceBackend):
    """Stores payloads in a list; optionally fails the first attempt."""

    def __init__(self, *, flaky: bool = False) -> None:
        self.submissions: list[tuple[str, dict[str, Any], SubmissionMetadata]] = []
        self._flaky = flaky
        self._failed_once = False

    async def submit(self, payload: dict[str, Any], metadata: SubmissionMetadata) -> str:
        if self._flaky and not self._failed_once:
            self._failed_once = True
            raise SubmissionError("simulated network timeout")
        submission_id = f"sim-{len(self.submissions) + 1:04d}"
        self.submissions.append((submission_id, payload, metadata))
        return submission_id


class CountingStatsSink(StatisticsSink):
    """Counts recorded submissions per device type."""

    def __init__(self) -> None:
        self.by_device: dict[str, int] = {}

    async def record(self, payload: dict[str, Any], metadata: SubmissionMetadata) -> None:
        self.by_device[metadata.device_type] = self.by_device.get(metadata.device_type, 0) + 1


# ---------------------------------------------------------------------------
# Answer generation
# ---------------------------------------------------------------------------

class AnswerGenerator:
    """Produces a valid answer for any question type."""

    def __init__(self, rng: random.Random, *, randomise: bool) -> None:
        self.rng = rng
        self.randomise = randomise

    def choose(self, seq: list) -> Any:
        return self.rng.choice(seq) if self.randomise else seq[0]

    def some(self, seq: list) -> list:
        if not self.randomise:
            return [seq[0]]
        return self.rng.sample(seq, k=self.rng.randint(1, min(2, len(seq))))

    def text(self, min_length: int | None = None, max_length: int | None = None) -> str:
        value = self.choose(_RANDOM_TEXT_POOL)
        if min_length and len(value) < min_length:
            value = value + "。" * (min_length - len(value))
        if max_length:
            value = value[:max_length]
        return value

    def answer(self, q) -> Any:
        """Return an answer for ``q``, or None to leave it blank."""
        if not q.required:
            if q.validation is not None and q.validation.pattern:
                return None
            if self.randomise and self.rng.random() < 0.3:
                return None

        qtype = q.type
        if qtype in ("text", "textarea"):
            rules = q.validation
            return self.text(
                int(rules.min) if rules and rules.min is not None else None,
                int(rules.max) if rules and rules.max is not None else None,
            )
        if qtype == "email":
            return "rider@example.com"
        if qtype == "number":
            rules = q.validation
            low = int(rules.min) if rules and rules.min is not None else 0
            high = int(rules.max) if rules and rules.max is not None else low + 10
            return self.rng.randint(low, high) if self.randomise else low
        if qtype in ("select", "radio"):
            return self.choose(q.options)
        if qtype == "checkbox":
            return self.some(q.options)
        if qtype == "matrix":
            return {row: self.choose(q.scale) for row in q.options}
        if qtype == "map":
            values = [opt.value for opt in q.options] or ["custom-feature"]
            if q.allow_multiple_selection:
                return self.some(values)
            return self.choose(values)
        if qtype == "time":
            return _TIME_SAMPLES[q.time_format]
        if qtype in ("radio-number", "radio-text"):
            return self._option_with_inputs(q)
        if qtype == "select-text":
            selected = self.choose(q.options)
            answer: dict[str, Any] = {"selected": selected}
            if selected == OTHER_OPTION:
                answer["text"] = self.text(q.text_min_length, q.text_max_length)
            return answer
        if qtype == "checkbox-text":
            selected = self.some(q.options)
            answer = {"selected": selected}
            if OTHER_OPTION in selected:
                answer["text"] = self.text(q.text_min_length, q.text_max_length)
            return answer
        if qtype == "region-long-answer":
            count = max(q.min_blocks, 1)
            return [
                {
                    "region": self.choose(q.regions),
                    "location": self.choose(_STATIONS) + "車站",
                    "reason": self.text(),
                }
                for _ in range(count)
            ]
        if qtype == "train-schedule-request":
            selected = self.choose(q.options)
            answer = {"selected": selected, "schedules": []}
            if selected == q.show_schedule_when:
                answer["schedules"] = [
                    dict(zip(SCHEDULE_FIELDS, (self.choose(_STATIONS), self.choose(_STATIONS), "07:00-09:00")))
                    for _ in range(max(q.min_blocks, 1))
                ]
            return answer
        raise ValueError(f"No answer generator for question type {qtype!r}")

    def _option_with_inputs(self, q) -> dict[str, Any]:
        option = self.choose(q.options)
        answer: dict[str, Any] = {"selected": option.value, "texts": {}}
        if getattr(option, "has_number_input", False):
            low = int(option.number_min) if option.number_min is not None else 1
            high = int(option.number_max) if option.number_max is not None else low + 5
            answer["numbers"] = {option.value: self.rng.randint(low, high) if self.randomise else low}
        if option.has_text_input:
            answer["texts"][option.value] = self.text(option.text_min_length, option.text_max_length)
        return answer


# ---------------------------------------------------------------------------
# Simulation
# ---------------------------------------------------------------------------

@dataclass
class RunResult:
    run_index: int
    status: str = "incomplete"
    end_reason: str | None = None
    sections: list[str] = field(default_factory=list)
    attempts: int = 0
    answered: int = 0
    error: str | None = None


class RichPrinter:
    """Verbosity-aware console output using rich."""

    def __init__(self, verbosity: int = 0) -> None:
        self.console = Console()
        self.verbosity = verbosity

    def section(self, step: SectionStep) -> None:
        flag = " [yellow](ends here)[/]" if step.will_end_early else ""
        self.console.print(
            f"  [bold cyan][{step.position}/{step.total}][/] {step.title} "
            f"({step.section_id}) {step.progress}%{flag}"
        )

    def answer(self, q, value: Any) -> None:
        if self.verbosity < 1:
            return
        shown = "[dim](blank)[/]" if value is None else json.dumps(value, ensure_ascii=False)
        self.console.print(f"    [dim]Q:[/] {q.label} ({q.id}) [{q.type}]")
        self.console.print(f"    [dim]A:[/] {shown}")

    def errors(self, errors: dict[str, str]) -> None:
        for qid, message in errors.items():
            self.console.print(f"    [red]✗[/] {qid}: {message}")

    def json_payload(self, label: str, data: Any) -> None:
        if self.verbosity < 2:
            return
        self.console.print(f"    [dim]{label}:[/]")
        self.console.print_json(json.dumps(data, ensure_ascii=False, default=str))


async def run_once(
    engine: QuestionnaireEngine,
    questionnaire_id: str,
    generator: AnswerGenerator,
    printer: RichPrinter,
    run_index: int,
    user_agent: str,
) -> RunResult:
    result = RunResult(run_index=run_index)
    state = engine.start(questionnaire_id)

    # Generous upper bound so a misbehaving schema cannot loop forever
    for _ in range(100):
        step = engine.get_current_step(state)
        printer.section(step)
        result.sections.append(step.section_id)

        asked: set[str] = set()
        while True:
            pending = [
                q for q in engine.get_current_step(state).questions if q.id not in asked
            ]
            if not pending:
                break
            q = pending[0]
            asked.add(q.id)
            value = generator.answer(q)
            printer.answer(q, value)
            if value is not None:
                engine.set_answer(state, q.id, value)
                result.answered += 1

        outcome = await engine.advance(state, user_agent=user_agent)
        result.attempts += outcome.type in ("submitted", "submission_failed")
        while outcome.type == "submission_failed" and outcome.retryable and result.attempts < 3:
            printer.console.print(f"    [yellow]submission failed:[/] {outcome.reason}; retrying")
            outcome = await engine.submit(state, user_agent=user_agent)
            result.attempts += 1

        if outcome.type == "section":
            if outcome.section_id == step.section_id and outcome.errors:
                printer.errors(outcome.errors)
                result.status = "failed"
                result.error = f"validation failed in {step.section_id}"
                return result
            continue
        if outcome.type == "submitted":
            result.status = "success"
            result.end_reason = outcome.end_reason
            printer.console.print(
                f"  [green]✓[/] submitted as {outcome.submission_id} ({outcome.end_reason})"
            )
            printer.json_payload("payload", outcome.payload)
            printer.json_payload("metadata", outcome.metadata.model_dump(mode="json"))
            return result
        result.status = "failed"
        result.error = outcome.reason
        return result

    result.error = "section limit reached"
    return result


def print_summary(console: Console, results: list[RunResult], stats: CountingStatsSink) -> None:
    """Print a rich summary table of all runs."""
    console.print()
    console.rule("[bold]Run Summary")

    table = Table(show_lines=False)
    table.add_column("#", style="dim", width=4)
    table.add_column("Status", width=10)
    table.add_column("End", width=14)
    table.add_column("Sections", min_width=30)
    table.add_column("Answered", width=9)
    table.add_column("Attempts", width=9)

    for r in results:
        status_str = {
            "success": "[green]OK[/]",
            "failed": "[red]FAIL[/]",
            "incomplete": "[yellow]INC[/]",
        }.get(r.status, r.status)
        table.add_row(
            str(r.run_index),
            status_str,
            r.end_reason or "-",
            " > ".join(r.sections),
            str(r.answered),
            str(r.attempts),
        )
    console.print(table)

    if stats.by_device:
        devices = ", ".join(f"{k}={v}" for k, v in sorted(stats.by_device.items()))
        console.print(f"  Recorded by device: {devices}")

    for r in results:
        if r.status == "failed":
            console.print(f"  [red]run {r.run_index}:[/] {r.error}")


async def run_simulation(args: argparse.Namespace, registry: QuestionnaireRegistry) -> bool:
    rng = random.Random(args.seed)
    generator = AnswerGenerator(rng, randomise=args.random)
    printer = RichPrinter(args.verbose)
    backend = InMemoryBackend(flaky=args.flaky)
    stats = CountingStatsSink()
    engine = QuestionnaireEngine(registry, backend, stats)

    user_agents = [
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64)",
        "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile/15E148",
        "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X)",
    ]

    results: list[RunResult] = []
    for i in range(1, args.runs + 1):
        printer.console.print(f"\n[bold]Run {i}/{args.runs}[/] {args.questionnaire}")
        ua = generator.choose(user_agents)
        results.append(await run_once(engine, args.questionnaire, generator, printer, i, ua))

    print_summary(printer.console, results, stats)
    return all(r.status == "success" for r in results)


def list_questionnaires(registry: QuestionnaireRegistry) -> None:
    """Print all loaded questionnaires and exit."""
    print("Available questionnaires:")
    print()
    for i, schema in enumerate(registry.list_questionnaires(), 1):
        print(f"  {i:2d}. {schema.id:<36s} {schema.title} ({len(schema.sections)} sections)")


def main() -> None:
    settings = load_settings()
    parser = argparse.ArgumentParser(
        description="Simulate respondents answering a questionnaire end-to-end.",
    )
    parser.add_argument(
        "-i", "--questionnaire",
        default=_DEFAULT_QUESTIONNAIRE,
        help=f"Questionnaire id to simulate (default: {_DEFAULT_QUESTIONNAIRE})",
    )
    parser.add_argument(
        "-d", "--dir",
        default=settings.questionnaire_dir,
        help="Questionnaire directory (default: SURVEY_QUESTIONNAIRE_DIR or v1/questionnaires)",
    )
    parser.add_argument("--list", action="store_true", help="List questionnaires and exit")
    parser.add_argument("-n", "--runs", type=int, default=1, help="Number of respondents")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument(
        "--random",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Randomise answers (default: on). Use --no-random to pick first options.",
    )
    parser.add_argument(
        "--flaky",
        action="store_true",
        help="Fail the first submission to exercise the retry path",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="-v prints answers, -vv also prints payload and metadata",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    registry = QuestionnaireRegistry(args.dir)
    registry.load()

    if args.list:
        list_questionnaires(registry)
        sys.exit(0)

    if args.questionnaire not in registry:
        logger.error("Unknown questionnaire %s", args.questionnaire)
        sys.exit(2)

    ok = asyncio.run(run_simulation(args, registry))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()

"""QuestionnaireRegistry — loads questionnaire YAML files into typed schemas.

This is the schema source for the engine.  The registry is loaded once at
startup and provides lookup by questionnaire id.

Usage::

    registry = QuestionnaireRegistry()   # defaults to v1/questionnaires/
    registry.load()                      # parse every *.yaml / *.yml file

    schema = registry.get("train-service-survey")

Questionnaires that arrive from elsewhere (an admin upload, a JSON export
from the web client) go through :func:`load_questionnaire` or
:func:`load_questionnaire_json` and can be added with :meth:`register`.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from survey_engine.errors import SchemaError
from survey_engine.models.schema import QuestionnaireSchema

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Utility helpers
# ---------------------------------------------------------------------------

def find_repo_root(start: Optional[Path] = None) -> Path:
    """Walk upwards from *start* to find the repo root (dir with pyproject.toml or .git).

    Falls back to cwd if no marker is found.
    """
    p = (start or Path(__file__).resolve()).parent
    for parent in [p, *p.parents]:
        if (parent / "pyproject.toml").exists() or (parent / ".git").exists():
            return parent
    return Path.cwd()


def load_yaml(path: Path | str) -> Any:
    """Load a single YAML file and return the parsed contents."""
    if isinstance(path, str):
        path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing YAML file: {path}")
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def _describe(exc: ValidationError) -> str:
    """Flatten pydantic errors into "path: message" lines."""
    lines = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"])
        lines.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(lines)


def load_questionnaire(data: Any, *, source: str = "<dict>") -> QuestionnaireSchema:
    """Validate a parsed questionnaire definition.

    Raises:
        SchemaError: if the definition is not a mapping or fails validation.
    """
    if not isinstance(data, dict):
        raise SchemaError(f"{source}: questionnaire must be a mapping, got {type(data).__name__}")
    try:
        return QuestionnaireSchema.model_validate(data)
    except ValidationError as exc:
        raise SchemaError(f"{source}: {_describe(exc)}") from exc


def load_questionnaire_json(text: str, *, source: str = "<json>") -> QuestionnaireSchema:
    """Parse and validate a questionnaire exported as JSON."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SchemaError(f"{source}: invalid JSON: {exc}") from exc
    return load_questionnaire(data, source=source)


# ---------------------------------------------------------------------------
# QuestionnaireRegistry
# ---------------------------------------------------------------------------

class QuestionnaireRegistry:
    """Loads questionnaire YAML from a directory and provides lookup by id."""

    def __init__(self, questionnaire_dir: str | Path | None = None) -> None:
        if questionnaire_dir is None:
            questionnaire_dir = find_repo_root() / "v1" / "questionnaires"
        self._base = Path(questionnaire_dir)
        self._schemas: dict[str, QuestionnaireSchema] = {}

    def load(self) -> None:
        """Parse every questionnaire file in the directory.

        Call this once at startup.

        Raises:
            FileNotFoundError: if the directory does not exist.
            SchemaError: if any file is malformed or two files share an id.
        """
        if not self._base.is_dir():
            raise FileNotFoundError(f"Missing questionnaire directory: {self._base}")
        paths = sorted(
            p for p in self._base.iterdir() if p.suffix in (".yaml", ".yml")
        )
        for path in paths:
            schema = load_questionnaire(load_yaml(path), source=path.name)
            if schema.id in self._schemas:
                raise SchemaError(f"{path.name}: duplicate questionnaire id {schema.id!r}")
            self._schemas[schema.id] = schema
        logger.info(
            "QuestionnaireRegistry loaded %d questionnaires from %s",
            len(self._schemas),
            self._base,
        )

    def register(self, schema: QuestionnaireSchema) -> None:
        """Add a questionnaire, replacing any existing one with the same id."""
        if schema.id in self._schemas:
            logger.info("Replacing questionnaire %s", schema.id)
        self._schemas[schema.id] = schema

    def get(self, questionnaire_id: str) -> QuestionnaireSchema:
        """Look up a questionnaire by id.

        Raises:
            KeyError: if no questionnaire with that id is loaded.
        """
        return self._schemas[questionnaire_id]

    def list_questionnaires(self) -> list[QuestionnaireSchema]:
        """All loaded questionnaires, sorted by id."""
        return [self._schemas[k] for k in sorted(self._schemas)]

    def __contains__(self, questionnaire_id: object) -> bool:
        return questionnaire_id in self._schemas

    def __len__(self) -> int:
        return len(self._schemas)

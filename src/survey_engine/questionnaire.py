"""Questionnaire — sorted, immutable snapshot of the active questions.

The engine re-reads the question table for every inbound message (the
dashboard may edit definitions at any time) and wraps the rows in a
``Questionnaire`` so that resolution within one message sees a consistent
view.

Also hosts the YAML seed loader used by ``survey-seed`` and the tests.

Usage::

    questionnaire = Questionnaire.from_records(await repo.list_active(db))
    first = questionnaire.first()
    for q in questionnaire.after(current.sort_key):
        ...
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Optional

import yaml
from pydantic import BaseModel

from survey_engine.models.endpoint import ApiEndpoint
from survey_engine.models.question import QuestionDefinition
from survey_engine.models.welcome import WelcomeMessage

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


# ---------------------------------------------------------------------------
# Questionnaire snapshot
# ---------------------------------------------------------------------------

class Questionnaire:
    """Active questions sorted by ``(order, id)``.

    Inactive questions passed to the constructor are dropped, so a snapshot
    only ever yields questions the user may be asked.
    """

    def __init__(self, questions: Iterable[QuestionDefinition]) -> None:
        self._questions: list[QuestionDefinition] = sorted(
            (q for q in questions if q.active), key=lambda q: q.sort_key
        )
        self._by_id: dict[str, QuestionDefinition] = {q.id: q for q in self._questions}

    @classmethod
    def from_records(cls, rows: Iterable[Any]) -> Questionnaire:
        """Build a snapshot from ORM rows (or anything with matching attributes)."""
        return cls(QuestionDefinition.model_validate(r, from_attributes=True) for r in rows)

    @property
    def questions(self) -> list[QuestionDefinition]:
        return list(self._questions)

    def __len__(self) -> int:
        return len(self._questions)

    def __iter__(self) -> Iterator[QuestionDefinition]:
        return iter(self._questions)

    def get(self, question_id: str | None) -> QuestionDefinition | None:
        """Return the active question with this id, or None if absent/inactive."""
        if question_id is None:
            return None
        return self._by_id.get(question_id)

    def first(self) -> QuestionDefinition | None:
        return self._questions[0] if self._questions else None

    def after(self, sort_key: tuple[int, str]) -> Iterator[QuestionDefinition]:
        """Yield questions whose sort key is strictly greater than ``sort_key``.

        Works from a key rather than a question so callers can resume after
        a question that has since been deactivated or deleted.
        """
        for q in self._questions:
            if q.sort_key > sort_key:
                yield q


# ---------------------------------------------------------------------------
# YAML seed files
# ---------------------------------------------------------------------------

class QuestionnaireSeed(BaseModel):
    """Contents of a questionnaire seed file.

    Layout::

        endpoints:
          - {id, name, url, description?, active?}
        welcome_messages:
          - {id, text, active?, conditions: [{field, operator, value, value2?}]}
        questions:
          - {id, text, order, response_kind, choices?, branch_conditions?,
             external_check?, is_required?, active?}
    """

    endpoints: List[ApiEndpoint] = []
    welcome_messages: List[WelcomeMessage] = []
    questions: List[QuestionDefinition] = []


def load_seed(path: Path | str | None = None) -> QuestionnaireSeed:
    """Parse a questionnaire seed YAML into typed models.

    Defaults to ``questionnaires/default.yaml`` under the repo root.
    Raises ``FileNotFoundError`` if the file is missing and pydantic's
    ``ValidationError`` if a definition is malformed.
    """
    if path is None:
        path = find_repo_root() / "questionnaires" / "default.yaml"
    raw = load_yaml(path) or {}
    seed = QuestionnaireSeed.model_validate(raw)

    ids = [q.id for q in seed.questions]
    dupes = {qid for qid in ids if ids.count(qid) > 1}
    if dupes:
        raise ValueError(f"Duplicate question ids in {path}: {sorted(dupes)}")

    logger.info(
        "Questionnaire seed loaded from %s: %d questions, %d endpoints, %d welcome messages",
        path, len(seed.questions), len(seed.endpoints), len(seed.welcome_messages),
    )
    return seed

"""Session models — the engine's view of one user's progress.

These models are intentionally decoupled from the ORM models in
``survey_db``: the engine builds a fresh ``SurveySession`` from the stored
row, produces a *new* session on every change (``model_copy``), and hands
the result to the repository.  The object passed into ``advance`` is never
mutated, so a failed save leaves nothing half-applied.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from survey_engine.models.question import QuestionDefinition


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Answer(BaseModel):
    """A recorded answer to one question."""

    model_config = ConfigDict(frozen=True)

    question_id: str
    raw_answer: str
    normalized_answer: str
    media_ref: Optional[str] = None
    answered_at: datetime = Field(default_factory=_now)


class SurveySession(BaseModel):
    """One user's attempt at the questionnaire.

    ``answers`` is ordered by answer time and never holds two entries for
    the same question.
    """

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    user_id: str
    current_question_id: Optional[str] = None
    answers: List[Answer] = []
    is_completed: bool = False
    started_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    completed_at: Optional[datetime] = None

    def answer_for(self, question_id: str) -> Answer | None:
        for answer in self.answers:
            if answer.question_id == question_id:
                return answer
        return None

    @property
    def answered_ids(self) -> set[str]:
        return {a.question_id for a in self.answers}

    def with_answer(self, answer: Answer) -> SurveySession:
        """Return a copy with ``answer`` appended (replacing any prior one)."""
        kept = [a for a in self.answers if a.question_id != answer.question_id]
        return self.model_copy(update={"answers": kept + [answer], "updated_at": _now()})

    def pointed_at(self, question_id: str) -> SurveySession:
        return self.model_copy(
            update={"current_question_id": question_id, "updated_at": _now()}
        )

    def completed(self) -> SurveySession:
        now = _now()
        return self.model_copy(
            update={
                "current_question_id": None,
                "is_completed": True,
                "completed_at": now,
                "updated_at": now,
            }
        )

    def to_record(self) -> dict[str, Any]:
        """Keyword arguments for ``SessionRepository.save``."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "current_question_id": self.current_question_id,
            "answers": [a.model_dump(mode="json") for a in self.answers],
            "is_completed": self.is_completed,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }


class AdvanceResult(BaseModel):
    """What the engine produced for one inbound message.

    ``messages`` are the outbound texts in send order.  ``dispatch_calls``
    holds ids of external check calls created in this unit of work; the
    caller dispatches them only after committing.
    """

    session: SurveySession
    next_question: Optional[QuestionDefinition] = None
    messages: List[str] = []
    dispatch_calls: List[uuid.UUID] = []
    accepted: bool = True


class SessionSummary(BaseModel):
    """Public view of a session for dashboard consumers."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: str
    current_question_id: Optional[str] = None
    answers: List[Answer] = []
    is_completed: bool
    started_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None

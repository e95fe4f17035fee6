"""Question definition models.

A question has exactly one primary response kind, which decides how the
validator treats the user's reply:

    - free_text: any text (empty rejected only when ``is_required``)
    - single_choice: one of ``choices``, by text or 1-based number
    - image: an attached photo, stored through the MediaStore
    - external_check: a yes/no confirmation that triggers an HTTP call to a
      configured endpoint (handled by the engine, not the validator)

Questions may carry ``branch_conditions``: all of them must hold (AND) for
the question to be asked.  A condition on a question the user has not
answered fails.
"""

from __future__ import annotations

import enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, model_validator


class ResponseKind(str, enum.Enum):
    FREE_TEXT = "free_text"
    SINGLE_CHOICE = "single_choice"
    IMAGE = "image"
    EXTERNAL_CHECK = "external_check"


class ConditionOperator(str, enum.Enum):
    """Closed set of branch operators.

    All of them compare the referenced question's normalized answer to the
    condition value as exact, case-sensitive strings.
    """

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"


class MappingSource(str, enum.Enum):
    """Where an external check request field takes its value from."""

    QUESTION = "question"  # normalized answer to another question
    STATIC = "static"      # a literal value
    PHONE = "phone"        # the user's phone number


# --- Branching ---

class BranchCondition(BaseModel):
    """Ask the owning question only if ``question_id``'s answer satisfies ``operator``/``value``."""

    model_config = ConfigDict(frozen=True)

    question_id: str
    operator: ConditionOperator
    value: str


# --- External check ---

class FieldMapping(BaseModel):
    """One key of the external check request body.

    ``source_value`` is the referenced question id for ``question`` mappings,
    the literal for ``static`` mappings, and ignored for ``phone``.
    """

    model_config = ConfigDict(frozen=True)

    output_key: str
    source: MappingSource
    source_value: str = ""


class ExternalCheckConfig(BaseModel):
    """Configuration of an external check question.

    Empty message strings fall back to the defaults in
    :mod:`survey_engine.constants`.
    """

    model_config = ConfigDict(frozen=True)

    endpoint_id: str
    confirmation_prompt: str = ""
    processing_message: str = ""
    decline_message: str = ""
    field_mappings: List[FieldMapping] = []


# --- Question ---

class QuestionDefinition(BaseModel):
    """One question of the questionnaire.

    ``(order, id)`` is the total sort order used for traversal.  Built from a
    ``QuestionRecord`` row (``from_attributes``) or a YAML seed entry.
    """

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    text: str
    order: int = 0
    active: bool = True
    is_required: bool = False
    response_kind: ResponseKind = ResponseKind.FREE_TEXT
    choices: List[str] = []
    branch_conditions: List[BranchCondition] = []
    external_check: Optional[ExternalCheckConfig] = None

    @model_validator(mode="after")
    def _chk(self):
        if self.response_kind == ResponseKind.SINGLE_CHOICE and not self.choices:
            raise ValueError(f"question {self.id}: single_choice requires choices")
        if self.response_kind != ResponseKind.SINGLE_CHOICE and self.choices:
            raise ValueError(
                f"question {self.id}: choices are only valid for single_choice"
            )
        if (self.response_kind == ResponseKind.EXTERNAL_CHECK) != (
            self.external_check is not None
        ):
            raise ValueError(
                f"question {self.id}: external_check config is required for "
                f"(and only valid for) external_check questions"
            )
        return self

    @property
    def sort_key(self) -> tuple[int, str]:
        return (self.order, self.id)

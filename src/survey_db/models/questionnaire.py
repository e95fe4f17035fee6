"""Questionnaire configuration tables — questions, API endpoints, welcome messages.

These rows are written by the admin dashboard (or ``survey-seed``) and are
read-only to the survey engine.  Nested structures (choices, branch
conditions, external check configuration) live in JSONB columns so a single
row carries everything the engine needs to evaluate one question.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, String, Text
from sqlalchemy import text as sql_text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from survey_db.models.base import Base


def _new_id() -> str:
    return uuid.uuid4().hex


class QuestionRecord(Base):
    """One survey question definition."""

    __tablename__ = "questions"

    id: Mapped[str] = mapped_column(Text, primary_key=True, default=_new_id)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    # "order" is a reserved word, so the column is named sort_order
    order: Mapped[int] = mapped_column(
        "sort_order", Integer, nullable=False, default=0
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # One of free_text / single_choice / image / external_check
    response_kind: Mapped[str] = mapped_column(
        String(20), nullable=False, default="free_text"
    )
    # ["Yes", "No", ...] — only meaningful for single_choice
    choices: Mapped[list] = mapped_column(
        JSONB, nullable=False, server_default=sql_text("'[]'::jsonb"), default=list
    )
    # [{"question_id": ..., "operator": ..., "value": ...}, ...]
    branch_conditions: Mapped[list] = mapped_column(
        JSONB, nullable=False, server_default=sql_text("'[]'::jsonb"), default=list
    )
    # {"endpoint_id": ..., "confirmation_prompt": ..., "field_mappings": [...]}
    external_check: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint(
            "response_kind IN ('free_text', 'single_choice', 'image', 'external_check')",
            name="ck_question_response_kind",
        ),
        # Hot path: list_active() ordered by (order, id)
        Index(
            "ix_questions_active_order",
            "sort_order",
            "id",
            postgresql_where=sql_text("active"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<QuestionRecord(id={self.id!r}, order={self.order}, "
            f"kind={self.response_kind!r}, active={self.active})>"
        )


class ApiEndpointRecord(Base):
    """An external HTTP endpoint that external-check questions call."""

    __tablename__ = "api_endpoints"

    id: Mapped[str] = mapped_column(Text, primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<ApiEndpointRecord(id={self.id!r}, name={self.name!r})>"


class WelcomeMessageRecord(Base):
    """Greeting prefixed to the first question, selected by time/day rules."""

    __tablename__ = "welcome_messages"

    id: Mapped[str] = mapped_column(Text, primary_key=True, default=_new_id)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # [{"field": "time", "operator": "between", "value": "8-12", "value2": null}]
    conditions: Mapped[list] = mapped_column(
        JSONB, nullable=False, server_default=sql_text("'[]'::jsonb"), default=list
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

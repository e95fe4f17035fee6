"""SurveySessionRecord ORM model — one row per survey attempt.

Answers are stored inline as an ordered JSONB list so the engine can load a
single row and evaluate branching without touching other tables.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, Index, Text, text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from survey_db.models.base import Base


class SurveySessionRecord(Base):
    """One row per survey session.

    A user (channel address) may have many completed sessions over time
    but at most one that is not completed.
    """

    __tablename__ = "survey_sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    # Channel address, e.g. "972501234567" or "972501234567@c.us"
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    # Null only before the first question has been sent
    current_question_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    # [{"question_id", "raw_answer", "normalized_answer", "media_ref", "answered_at"}]
    answers: Mapped[list] = mapped_column(
        JSONB,
        nullable=False,
        server_default=text("'[]'::jsonb"),
        default=list,
    )
    is_completed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, index=True
    )

    started_at: Mapped[datetime] = mapped_column(
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
    completed_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    __table_args__ = (
        CheckConstraint(
            "is_completed = (completed_at IS NOT NULL)",
            name="ck_completed_has_timestamp",
        ),
        # At most one non-completed session per user
        Index(
            "ux_active_session_per_user",
            "user_id",
            unique=True,
            postgresql_where=text("NOT is_completed"),
        ),
        Index("ix_answers_gin", "answers", postgresql_using="gin"),
    )

    def __repr__(self) -> str:
        return (
            f"<SurveySessionRecord(id={self.id!s}, user={self.user_id!r}, "
            f"current={self.current_question_id!r}, completed={self.is_completed})>"
        )

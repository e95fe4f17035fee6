"""ExternalCheckCallRecord ORM model — durable record of one external check.

The dashboard reads these rows to show pending/successful/failed checks and
to offer a retry button for failed ones.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    SmallInteger,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from survey_db.models.base import Base
from survey_db.models.enums import CallStatus


class ExternalCheckCallRecord(Base):
    """One external check invocation (possibly retried)."""

    __tablename__ = "external_check_calls"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    # Kept nullable so retention cleanup of sessions does not drop call history
    session_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("survey_sessions.id", ondelete="SET NULL"),
        nullable=True,
    )
    question_id: Mapped[str] = mapped_column(Text, nullable=False)
    endpoint_id: Mapped[str] = mapped_column(Text, nullable=False)

    request_payload: Mapped[dict] = mapped_column(
        JSONB, nullable=False, server_default=text("'{}'::jsonb"), default=dict
    )
    response_payload: Mapped[dict | list | None] = mapped_column(JSONB, nullable=True)

    status: Mapped[CallStatus] = mapped_column(
        String(20),
        nullable=False,
        default=CallStatus.PENDING,
        index=True,
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Number of invocations issued so far (1 after the first dispatch)
    attempts: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    # Stamped each time the call enters pending; staleness is measured from it
    dispatched_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    __table_args__ = (
        # completed_at is set iff the call has left the pending state
        CheckConstraint(
            "(status = 'pending') = (completed_at IS NULL)",
            name="ck_completed_iff_not_pending",
        ),
        CheckConstraint(
            "status IN ('pending', 'success', 'failed')",
            name="ck_call_status",
        ),
        # Sweep lookups: stale pending calls and retryable failures
        Index("ix_calls_status_dispatched", "status", "dispatched_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<ExternalCheckCallRecord(id={self.id!s}, user={self.user_id!r}, "
            f"status={self.status!r}, attempts={self.attempts})>"
        )

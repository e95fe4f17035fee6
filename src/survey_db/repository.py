"""Async repositories for the survey tables.

All public methods accept an ``AsyncSession`` so the caller controls
transaction boundaries: repositories ``flush()`` but never ``commit()``.

The repositories deliberately avoid business-logic validation — that belongs
in ``survey_engine``.  They *do* keep structural invariants that the DB
constraints also enforce (e.g. ``completed_at`` is stamped exactly when a
call leaves the pending state).
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from survey_db.models.conversation import ConversationMessage
from survey_db.models.enums import CallStatus, MessageDirection
from survey_db.models.external_call import ExternalCheckCallRecord
from survey_db.models.questionnaire import (
    ApiEndpointRecord,
    QuestionRecord,
    WelcomeMessageRecord,
)
from survey_db.models.session import SurveySessionRecord


def _now() -> datetime:
    return datetime.now(timezone.utc)


class QuestionRepository:
    """Read access to question definitions (plus upsert for seeding)."""

    async def list_active(self, db: AsyncSession) -> list[QuestionRecord]:
        """Active questions sorted by ``(order, id)``."""
        stmt = (
            select(QuestionRecord)
            .where(QuestionRecord.active.is_(True))
            .order_by(QuestionRecord.order, QuestionRecord.id)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def get_by_id(
        self, db: AsyncSession, question_id: str
    ) -> QuestionRecord | None:
        return await db.get(QuestionRecord, question_id)

    async def upsert(self, db: AsyncSession, **fields: Any) -> QuestionRecord:
        """Insert or replace a question by ``id``."""
        row = await db.get(QuestionRecord, fields["id"])
        if row is None:
            row = QuestionRecord(**fields)
            db.add(row)
        else:
            for key, value in fields.items():
                setattr(row, key, value)
        await db.flush()
        return row


class EndpointRepository:
    """Read access to external API endpoints."""

    async def get(self, db: AsyncSession, endpoint_id: str) -> ApiEndpointRecord | None:
        return await db.get(ApiEndpointRecord, endpoint_id)

    async def upsert(self, db: AsyncSession, **fields: Any) -> ApiEndpointRecord:
        row = await db.get(ApiEndpointRecord, fields["id"])
        if row is None:
            row = ApiEndpointRecord(**fields)
            db.add(row)
        else:
            for key, value in fields.items():
                setattr(row, key, value)
        await db.flush()
        return row


class WelcomeRepository:
    """Read access to welcome messages."""

    async def list_active(self, db: AsyncSession) -> list[WelcomeMessageRecord]:
        """Active welcome messages, oldest first (first match wins)."""
        stmt = (
            select(WelcomeMessageRecord)
            .where(WelcomeMessageRecord.active.is_(True))
            .order_by(WelcomeMessageRecord.created_at, WelcomeMessageRecord.id)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def upsert(self, db: AsyncSession, **fields: Any) -> WelcomeMessageRecord:
        row = await db.get(WelcomeMessageRecord, fields["id"])
        if row is None:
            row = WelcomeMessageRecord(**fields)
            db.add(row)
        else:
            for key, value in fields.items():
                setattr(row, key, value)
        await db.flush()
        return row


class SessionRepository:
    """Async read/write operations on the ``survey_sessions`` table."""

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def find_active_by_user(
        self, db: AsyncSession, user_id: str, *, for_update: bool = False
    ) -> SurveySessionRecord | None:
        """Return the user's non-completed session, if any.

        With ``for_update`` the row is locked until the surrounding
        transaction ends, serialising writers across processes.
        """
        stmt = (
            select(SurveySessionRecord)
            .where(
                SurveySessionRecord.user_id == user_id,
                SurveySessionRecord.is_completed.is_(False),
            )
            .order_by(SurveySessionRecord.started_at.desc())
            .limit(1)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_id(
        self, db: AsyncSession, session_id: uuid.UUID
    ) -> SurveySessionRecord | None:
        return await db.get(SurveySessionRecord, session_id)

    async def list_by_user(
        self,
        db: AsyncSession,
        user_id: str,
        *,
        limit: int = 20,
        offset: int = 0,
    ) -> list[SurveySessionRecord]:
        """List sessions for a user, most recent first."""
        stmt = (
            select(SurveySessionRecord)
            .where(SurveySessionRecord.user_id == user_id)
            .order_by(SurveySessionRecord.started_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def save(
        self,
        db: AsyncSession,
        *,
        id: uuid.UUID,
        user_id: str,
        current_question_id: str | None,
        answers: list[dict[str, Any]],
        is_completed: bool,
        started_at: datetime,
        completed_at: datetime | None,
    ) -> SurveySessionRecord:
        """Upsert a session by primary key.

        ``answers`` replaces the stored list wholesale; a new list object is
        assigned so SQLAlchemy detects the JSONB change.
        """
        row = await db.get(SurveySessionRecord, id)
        if row is None:
            row = SurveySessionRecord(id=id, user_id=user_id, started_at=started_at)
            db.add(row)
        row.current_question_id = current_question_id
        row.answers = list(answers)
        row.is_completed = is_completed
        row.completed_at = completed_at
        row.updated_at = _now()
        await db.flush()
        return row

    async def purge_completed(
        self, db: AsyncSession, *, older_than_days: int
    ) -> int:
        """Delete completed sessions finished more than N days ago."""
        stmt = delete(SurveySessionRecord).where(
            SurveySessionRecord.is_completed.is_(True)
        )
        if older_than_days > 0:
            cutoff = _now() - timedelta(days=older_than_days)
            stmt = stmt.where(SurveySessionRecord.completed_at < cutoff)
        result = await db.execute(stmt)
        return result.rowcount or 0


class CallRepository:
    """Async read/write operations on ``external_check_calls``."""

    async def create(
        self,
        db: AsyncSession,
        *,
        user_id: str,
        session_id: uuid.UUID | None,
        question_id: str,
        endpoint_id: str,
        request_payload: dict[str, Any],
    ) -> ExternalCheckCallRecord:
        """Insert a new pending call and return it (id populated)."""
        now = _now()
        row = ExternalCheckCallRecord(
            id=uuid.uuid4(),
            user_id=user_id,
            session_id=session_id,
            question_id=question_id,
            endpoint_id=endpoint_id,
            request_payload=request_payload,
            status=CallStatus.PENDING,
            attempts=1,
            created_at=now,
            dispatched_at=now,
        )
        db.add(row)
        await db.flush()
        return row

    async def get(
        self, db: AsyncSession, call_id: uuid.UUID, *, for_update: bool = False
    ) -> ExternalCheckCallRecord | None:
        if for_update:
            stmt = (
                select(ExternalCheckCallRecord)
                .where(ExternalCheckCallRecord.id == call_id)
                .with_for_update()
            )
            result = await db.execute(stmt)
            return result.scalar_one_or_none()
        return await db.get(ExternalCheckCallRecord, call_id)

    async def list_calls(
        self,
        db: AsyncSession,
        *,
        status: CallStatus | None = None,
        user_id: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[ExternalCheckCallRecord]:
        """List calls, most recent first."""
        stmt = select(ExternalCheckCallRecord)
        if status is not None:
            stmt = stmt.where(ExternalCheckCallRecord.status == status)
        if user_id is not None:
            stmt = stmt.where(ExternalCheckCallRecord.user_id == user_id)
        stmt = (
            stmt.order_by(ExternalCheckCallRecord.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def list_stale_pending(
        self, db: AsyncSession, *, dispatched_before: datetime
    ) -> list[ExternalCheckCallRecord]:
        """Pending calls last dispatched before the cutoff (locked for update)."""
        stmt = (
            select(ExternalCheckCallRecord)
            .where(
                ExternalCheckCallRecord.status == CallStatus.PENDING,
                ExternalCheckCallRecord.dispatched_at < dispatched_before,
            )
            .order_by(ExternalCheckCallRecord.dispatched_at)
            .with_for_update(skip_locked=True)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def list_retryable(
        self, db: AsyncSession, *, max_attempts: int
    ) -> list[ExternalCheckCallRecord]:
        """Failed calls that have been invoked fewer than ``max_attempts`` times."""
        stmt = (
            select(ExternalCheckCallRecord)
            .where(
                ExternalCheckCallRecord.status == CallStatus.FAILED,
                ExternalCheckCallRecord.attempts < max_attempts,
            )
            .order_by(ExternalCheckCallRecord.created_at)
            .with_for_update(skip_locked=True)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def mark_success(
        self,
        db: AsyncSession,
        call: ExternalCheckCallRecord,
        response_payload: Any,
    ) -> ExternalCheckCallRecord:
        call.status = CallStatus.SUCCESS
        call.response_payload = response_payload
        call.error_message = None
        call.completed_at = _now()
        await db.flush()
        return call

    async def mark_failed(
        self,
        db: AsyncSession,
        call: ExternalCheckCallRecord,
        error_message: str,
        response_payload: Any = None,
    ) -> ExternalCheckCallRecord:
        call.status = CallStatus.FAILED
        call.error_message = error_message
        call.response_payload = response_payload
        call.completed_at = _now()
        await db.flush()
        return call

    async def reset_for_retry(
        self, db: AsyncSession, call: ExternalCheckCallRecord
    ) -> ExternalCheckCallRecord:
        """Move a failed call back to pending and count the new attempt."""
        call.status = CallStatus.PENDING
        call.error_message = None
        call.completed_at = None
        call.attempts = (call.attempts or 0) + 1
        call.dispatched_at = _now()
        await db.flush()
        return call


class LedgerRepository:
    """Append-only conversation ledger."""

    async def append(
        self,
        db: AsyncSession,
        *,
        user_id: str,
        direction: MessageDirection,
        text: str,
        media_ref: str | None = None,
    ) -> ConversationMessage:
        row = ConversationMessage(
            user_id=user_id,
            direction=direction,
            text=text,
            media_ref=media_ref,
            timestamp=_now(),
        )
        db.add(row)
        await db.flush()
        return row

    async def list_by_user(
        self,
        db: AsyncSession,
        user_id: str,
        *,
        limit: int = 100,
        offset: int = 0,
    ) -> list[ConversationMessage]:
        """Conversation for one user in chronological order."""
        stmt = (
            select(ConversationMessage)
            .where(ConversationMessage.user_id == user_id)
            .order_by(ConversationMessage.timestamp, ConversationMessage.id)
            .limit(limit)
            .offset(offset)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def purge(self, db: AsyncSession, *, older_than_days: int) -> int:
        """Delete ledger entries older than N days (0 = everything)."""
        stmt = delete(ConversationMessage)
        if older_than_days > 0:
            cutoff = _now() - timedelta(days=older_than_days)
            stmt = stmt.where(ConversationMessage.timestamp < cutoff)
        result = await db.execute(stmt)
        return result.rowcount or 0

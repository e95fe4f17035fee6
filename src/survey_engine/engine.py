"""SurveyEngine — the session state machine for the conversational survey.

Stateless engine pattern: each call loads what it needs from the database,
computes the next step, persists changes, and returns the result.  No
in-memory state is kept between calls.

The engine accepts an ``AsyncSession`` from the caller so that the caller
(the inbound dispatcher) controls transaction boundaries.  Sessions are
immutable pydantic models: :meth:`SurveyEngine.advance` builds a new
session and saves it, so if the save or the commit fails the caller's
session object and the stored row are both unchanged.

Session states::

    NotStarted --start_session--> InProgress --advance*--> Completed

External check questions add a confirmation sub-flow::

    AwaitingConfirmation --yes--> Processing (pending call, session moves on)
    AwaitingConfirmation --no---> Declined   (session moves on)
    AwaitingConfirmation --else-> re-prompt  (no change)
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from survey_db.repository import (
    CallRepository,
    QuestionRepository,
    SessionRepository,
    WelcomeRepository,
)

from survey_engine import constants
from survey_engine.errors import NoActiveQuestions, SessionCompleted
from survey_engine.interfaces import MediaStore
from survey_engine.invoker import build_request_payload
from survey_engine.models.message import MediaPayload
from survey_engine.models.question import QuestionDefinition, ResponseKind
from survey_engine.models.session import (
    AdvanceResult,
    Answer,
    SessionSummary,
    SurveySession,
)
from survey_engine.models.validation import Rejected
from survey_engine.models.welcome import WelcomeMessage
from survey_engine.questionnaire import Questionnaire
from survey_engine.render import MessageRenderer
from survey_engine.resolver import BranchingResolver
from survey_engine.validator import ResponseValidator
from survey_engine.welcome import WelcomeSelector

logger = logging.getLogger(__name__)


class SurveyEngine:
    """Drives one user's session through the questionnaire.

    Args:
        media_store: persists image answers (passed to the default validator)
        validator / resolver / renderer / welcome: optional overrides
    """

    def __init__(
        self,
        *,
        media_store: MediaStore | None = None,
        validator: ResponseValidator | None = None,
        resolver: BranchingResolver | None = None,
        renderer: MessageRenderer | None = None,
        welcome: WelcomeSelector | None = None,
    ) -> None:
        self._renderer = renderer or MessageRenderer()
        self._validator = validator or ResponseValidator(media_store, self._renderer)
        self._resolver = resolver or BranchingResolver()
        self._welcome = welcome or WelcomeSelector()
        self._questions = QuestionRepository()
        self._sessions = SessionRepository()
        self._calls = CallRepository()
        self._welcome_messages = WelcomeRepository()

    # ==================================================================
    # Queries
    # ==================================================================

    async def load_questionnaire(self, db: AsyncSession) -> Questionnaire:
        """Snapshot of the active questions, re-read on every call."""
        return Questionnaire.from_records(await self._questions.list_active(db))

    async def find_active_session(
        self, db: AsyncSession, user_id: str, *, for_update: bool = False
    ) -> SurveySession | None:
        """The user's non-completed session, or None."""
        row = await self._sessions.find_active_by_user(db, user_id, for_update=for_update)
        if row is None:
            return None
        return SurveySession.model_validate(row, from_attributes=True)

    async def list_sessions(
        self,
        db: AsyncSession,
        *,
        user_id: str,
        limit: int = 20,
        offset: int = 0,
    ) -> list[SessionSummary]:
        """List sessions for a user, most recent first."""
        rows = await self._sessions.list_by_user(db, user_id, limit=limit, offset=offset)
        return [SessionSummary.model_validate(r, from_attributes=True) for r in rows]

    # ==================================================================
    # Session lifecycle
    # ==================================================================

    async def start_session(self, db: AsyncSession, user_id: str) -> AdvanceResult:
        """Create a session pointed at the first eligible question.

        The returned result carries exactly one message: the first question,
        prefixed with the matching welcome message (or the default
        greeting).  The caller must ``await db.commit()`` to persist.

        Raises:
            NoActiveQuestions: the questionnaire has nothing to ask
        """
        questionnaire = await self.load_questionnaire(db)
        session = SurveySession(user_id=user_id)
        first = self._resolver.first_question(questionnaire, session)
        if first is None:
            raise NoActiveQuestions()

        session = session.pointed_at(first.id)
        await self._save(db, session)
        logger.info("Started session %s for %s at question %s", session.id, user_id, first.id)

        text = self._renderer.render_question(first)
        welcome = await self._select_welcome(db)
        text = self._renderer.render_welcome(welcome, text)
        return AdvanceResult(session=session, next_question=first, messages=[text])

    async def advance(
        self,
        db: AsyncSession,
        session: SurveySession,
        raw_input: str,
        media: MediaPayload | None = None,
    ) -> AdvanceResult:
        """Apply one inbound reply to ``session``.

        On rejection the result has ``accepted=False``, one correction
        message, and nothing is persisted.  On acceptance the answer is
        appended, the next question resolved, and the new session saved.
        The caller must ``await db.commit()``; pending external calls listed
        in ``dispatch_calls`` must be dispatched only after the commit.

        Raises:
            SessionCompleted: ``session`` is already completed
        """
        if session.is_completed:
            raise SessionCompleted(session.id)

        questionnaire = await self.load_questionnaire(db)
        current = questionnaire.get(session.current_question_id)
        if current is None:
            return await self._recover_stale(db, questionnaire, session)

        if current.response_kind == ResponseKind.EXTERNAL_CHECK:
            return await self._advance_external_check(
                db, questionnaire, session, current, raw_input,
            )

        result = await self._validator.validate(
            current, raw_input, media, user_id=session.user_id,
        )
        if isinstance(result, Rejected):
            return AdvanceResult(
                session=session,
                next_question=current,
                messages=[result.correction_text],
                accepted=False,
            )

        answer = Answer(
            question_id=current.id,
            raw_answer=raw_input or "",
            normalized_answer=result.normalized_answer,
            media_ref=result.media_ref,
        )
        return await self._move_on(db, questionnaire, session.with_answer(answer), current)

    # ==================================================================
    # External check sub-flow
    # ==================================================================

    async def _advance_external_check(
        self,
        db: AsyncSession,
        questionnaire: Questionnaire,
        session: SurveySession,
        current: QuestionDefinition,
        raw_input: str,
    ) -> AdvanceResult:
        config = current.external_check
        reply = (raw_input or "").strip().lower()

        if reply in constants.AFFIRMATIVE_WORDS:
            payload = build_request_payload(config.field_mappings, session, session.user_id)
            call = await self._calls.create(
                db,
                user_id=session.user_id,
                session_id=session.id,
                question_id=current.id,
                endpoint_id=config.endpoint_id,
                request_payload=payload,
            )
            logger.info(
                "Session %s confirmed external check %s (call %s)",
                session.id, current.id, call.id,
            )
            answer = Answer(
                question_id=current.id,
                raw_answer=raw_input,
                normalized_answer=constants.CONFIRMED_ANSWER,
            )
            return await self._move_on(
                db,
                questionnaire,
                session.with_answer(answer),
                current,
                messages=[config.processing_message or constants.DEFAULT_PROCESSING_MESSAGE],
                dispatch_calls=[call.id],
            )

        if reply in constants.NEGATIVE_WORDS:
            answer = Answer(
                question_id=current.id,
                raw_answer=raw_input,
                normalized_answer=constants.DECLINED_ANSWER,
            )
            return await self._move_on(
                db,
                questionnaire,
                session.with_answer(answer),
                current,
                messages=[config.decline_message or constants.DEFAULT_DECLINE_MESSAGE],
            )

        return AdvanceResult(
            session=session,
            next_question=current,
            messages=[self._renderer.render_confirmation(current)],
            accepted=False,
        )

    # ==================================================================
    # Internal helpers
    # ==================================================================

    async def _move_on(
        self,
        db: AsyncSession,
        questionnaire: Questionnaire,
        session: SurveySession,
        current: QuestionDefinition,
        *,
        messages: list[str] | None = None,
        dispatch_calls: list[uuid.UUID] | None = None,
    ) -> AdvanceResult:
        """Resolve the successor of ``current``, save, and build the result."""
        messages = list(messages or [])
        nxt = self._resolver.next_question(questionnaire, current, session)
        session = self._point_or_complete(session, nxt, messages)
        await self._save(db, session)
        return AdvanceResult(
            session=session,
            next_question=nxt,
            messages=messages,
            dispatch_calls=list(dispatch_calls or []),
        )

    async def _recover_stale(
        self,
        db: AsyncSession,
        questionnaire: Questionnaire,
        session: SurveySession,
    ) -> AdvanceResult:
        """Repoint a session whose current question was deleted or deactivated.

        The inbound reply is not consumed.  Resolution restarts after the
        latest (by sort key) answered question that is still active, or from
        the beginning when there is none.
        """
        logger.warning(
            "Session %s points at missing/inactive question %r, re-resolving",
            session.id, session.current_question_id,
        )
        answered = [
            q for q in (questionnaire.get(a.question_id) for a in session.answers)
            if q is not None
        ]
        anchor = max(answered, key=lambda q: q.sort_key, default=None)
        if anchor is None:
            nxt = self._resolver.first_question(questionnaire, session)
        else:
            nxt = self._resolver.next_question(questionnaire, anchor, session)

        messages: list[str] = []
        session = self._point_or_complete(session, nxt, messages)
        await self._save(db, session)
        return AdvanceResult(
            session=session, next_question=nxt, messages=messages, accepted=False,
        )

    def _point_or_complete(
        self,
        session: SurveySession,
        nxt: QuestionDefinition | None,
        messages: list[str],
    ) -> SurveySession:
        if nxt is None:
            logger.info("Session %s completed (%d answers)", session.id, len(session.answers))
            messages.append(constants.COMPLETION_MESSAGE)
            return session.completed()
        messages.append(self._renderer.render_question(nxt))
        return session.pointed_at(nxt.id)

    async def _select_welcome(self, db: AsyncSession) -> str:
        rows = await self._welcome_messages.list_active(db)
        messages = [WelcomeMessage.model_validate(r, from_attributes=True) for r in rows]
        return self._welcome.text_for(messages)

    async def _save(self, db: AsyncSession, session: SurveySession) -> Any:
        return await self._sessions.save(db, **session.to_record())

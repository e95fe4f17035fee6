"""Dashboard endpoints — survey sessions and conversations (read-only)."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from survey_engine.engine import SurveyEngine
from survey_engine.messenger import Messenger
from survey_engine.models.message import LedgerEntry
from survey_engine.models.session import SessionSummary

from survey_server.config import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from survey_server.dependencies import get_db, get_messenger, get_survey_engine

router = APIRouter(tags=["sessions"])


@router.get("/sessions/{user_id}/active")
async def get_active_session(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    engine: SurveyEngine = Depends(get_survey_engine),
) -> SessionSummary:
    """The user's in-progress session.  404 if there is none."""
    session = await engine.find_active_session(db, user_id)
    if session is None:
        raise ValueError(f"Active session not found for user {user_id}")
    return SessionSummary.model_validate(session, from_attributes=True)


@router.get("/users/{user_id}/sessions")
async def list_user_sessions(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    engine: SurveyEngine = Depends(get_survey_engine),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    offset: int = Query(0, ge=0),
) -> list[SessionSummary]:
    """All sessions for a user, most recent first."""
    return await engine.list_sessions(db, user_id=user_id, limit=limit, offset=offset)


@router.get("/conversations/{user_id}")
async def get_conversation(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    messenger: Messenger = Depends(get_messenger),
    limit: int = Query(MAX_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    offset: int = Query(0, ge=0),
) -> list[LedgerEntry]:
    """Conversation ledger for a user, oldest first."""
    return await messenger.history(db, user_id, limit=limit, offset=offset)

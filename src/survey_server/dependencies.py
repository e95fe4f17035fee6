"""FastAPI dependency injection — DB sessions and the survey components.

Each request that touches the database gets a fresh ``AsyncSession`` via
``get_db()``.  The session is committed on success and rolled back on error,
matching the SDK convention where engine/repository call ``flush()`` but
never ``commit()``.

The survey components are built once in the lifespan handler and stashed on
``app.state``.
"""

from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from survey_db.engine import get_session_factory
from survey_engine.channel import ChannelSession
from survey_engine.dispatcher import InboundDispatcher
from survey_engine.engine import SurveyEngine
from survey_engine.invoker import ExternalCheckInvoker
from survey_engine.messenger import Messenger

from survey_server.config import ServerSettings


# ------------------------------------------------------------------
# Database session — transaction boundary lives here
# ------------------------------------------------------------------

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async DB session; commit on success, rollback on error."""
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ------------------------------------------------------------------
# Survey components — stashed on app.state during lifespan
# ------------------------------------------------------------------

def get_settings(request: Request) -> ServerSettings:
    return request.app.state.settings


def get_survey_engine(request: Request) -> SurveyEngine:
    return request.app.state.engine


def get_invoker(request: Request) -> ExternalCheckInvoker:
    return request.app.state.invoker


def get_dispatcher(request: Request) -> InboundDispatcher:
    return request.app.state.dispatcher


def get_channel(request: Request) -> ChannelSession:
    return request.app.state.channel


def get_messenger(request: Request) -> Messenger:
    return request.app.state.messenger

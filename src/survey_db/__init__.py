"""survey_db — PostgreSQL persistence layer for the survey bot.

This package provides the ORM models, async engine factory, and
repositories for questions, survey sessions, external check calls and the
conversation ledger.  It is consumed by ``survey_engine`` and
``survey_server``.
"""

from survey_db.engine import dispose_engine, get_engine, get_session_factory
from survey_db.models.enums import CallStatus, MessageDirection
from survey_db.repository import (
    CallRepository,
    EndpointRepository,
    LedgerRepository,
    QuestionRepository,
    SessionRepository,
    WelcomeRepository,
)

__all__ = [
    "CallStatus",
    "MessageDirection",
    "dispose_engine",
    "get_engine",
    "get_session_factory",
    "CallRepository",
    "EndpointRepository",
    "LedgerRepository",
    "QuestionRepository",
    "SessionRepository",
    "WelcomeRepository",
]

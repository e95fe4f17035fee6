from datetime import timezone
from unittest.mock import AsyncMock

import pytest

from helpers.mocks import (
    FakeMediaStore,
    MockCallRepository,
    MockQuestionRepository,
    MockSessionRepository,
    MockWelcomeRepository,
    build_questions,
)
from survey_engine.engine import SurveyEngine
from survey_engine.render import MessageRenderer
from survey_engine.welcome import WelcomeSelector


@pytest.fixture(scope="session")
def renderer():
    return MessageRenderer()


@pytest.fixture
def questions():
    return build_questions()


@pytest.fixture
def mock_db():
    """AsyncMock standing in for AsyncSession — flush/commit are no-ops."""
    return AsyncMock()


@pytest.fixture
def media_store():
    return FakeMediaStore()


@pytest.fixture
def question_repo(questions):
    return MockQuestionRepository(questions)


@pytest.fixture
def session_repo():
    return MockSessionRepository()


@pytest.fixture
def call_repo():
    return MockCallRepository()


@pytest.fixture
def welcome_repo():
    return MockWelcomeRepository()


@pytest.fixture
def engine(media_store, question_repo, session_repo, call_repo, welcome_repo):
    """SurveyEngine with every repository swapped for an in-memory mock.

    The default greeting is disabled so first questions compare verbatim.
    """
    eng = SurveyEngine(
        media_store=media_store,
        welcome=WelcomeSelector(tz=timezone.utc, default_text=""),
    )
    eng._questions = question_repo
    eng._sessions = session_repo
    eng._calls = call_repo
    eng._welcome_messages = welcome_repo
    return eng

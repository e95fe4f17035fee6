"""InboundDispatcher tests — end-to-end message handling with mocked I/O.

The engine uses the in-memory repositories from ``conftest``; the
dispatcher gets a ``FakeSessionFactory``, a ``FakeChannel`` and a
``MagicMock`` invoker so that dispatched call ids can be asserted.
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from helpers.mocks import FakeChannel, FakeSessionFactory, MockLedgerRepository
from survey_db.models.enums import MessageDirection
from survey_engine import constants
from survey_engine.dispatcher import InboundDispatcher
from survey_engine.locks import UserLocks
from survey_engine.messenger import Messenger
from survey_engine.models.message import MediaPayload

USER = "972501234567@c.us"
PHOTO = MediaPayload(data=b"\xff\xd8jpeg", mime_type="image/jpeg")


@pytest.fixture
def factory():
    return FakeSessionFactory()


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def ledger():
    return MockLedgerRepository()


@pytest.fixture
def messenger(channel, factory, ledger):
    m = Messenger(channel, factory)
    m._ledger = ledger
    return m


@pytest.fixture
def invoker():
    return MagicMock()


@pytest.fixture
def dispatcher(engine, messenger, invoker, factory):
    return InboundDispatcher(engine, messenger, invoker, factory, locks=UserLocks())


async def _photo():
    return PHOTO


async def _broken_download():
    raise ConnectionError("media server unreachable")


async def _walk_to_check(dispatcher):
    await dispatcher.on_message(USER, "hi")
    await dispatcher.on_message(USER, "Alice")
    await dispatcher.on_message(USER, "1")
    await dispatcher.on_message(USER, "", True, _photo, media_id="m1")


# =====================================================================
# Happy path
# =====================================================================


class TestOnMessage:

    @pytest.mark.asyncio
    async def test_first_message_starts_session(
        self, dispatcher, channel, session_repo, ledger,
    ):
        """A fresh user gets exactly one outbound message: the first question."""
        sent = await dispatcher.on_message(USER, "start")
        assert sent == ["What is your name?"]
        assert channel.sent == [(USER, "What is your name?")]
        assert session_repo.only_row().current_question_id == "name"

        assert [(r.direction, r.text) for r in ledger.rows] == [
            (MessageDirection.INBOUND, "start"),
            (MessageDirection.OUTBOUND, "What is your name?"),
        ]

    @pytest.mark.asyncio
    async def test_replies_advance_the_session(self, dispatcher, channel, session_repo):
        await dispatcher.on_message(USER, "start")
        await dispatcher.on_message(USER, "Alice")
        await dispatcher.on_message(USER, "2")
        texts = channel.texts_for(USER)
        assert "Do you like surveys?" in texts[1]
        assert texts[2] == "Why not?"
        row = session_repo.only_row()
        assert [a["normalized_answer"] for a in row.answers] == ["Alice", "No"]

    @pytest.mark.asyncio
    async def test_media_is_fetched_and_stored(
        self, dispatcher, media_store, session_repo, ledger,
    ):
        await dispatcher.on_message(USER, "start")
        await dispatcher.on_message(USER, "Alice")
        await dispatcher.on_message(USER, "1")
        await dispatcher.on_message(USER, "", True, _photo, media_id="m1")

        assert media_store.saved == [(USER, PHOTO)]
        assert session_repo.only_row().current_question_id == "check"
        inbound = [r for r in ledger.rows if r.direction == MessageDirection.INBOUND]
        assert inbound[-1].media_ref == "m1"

    @pytest.mark.asyncio
    async def test_confirmed_check_dispatched_after_commit(
        self, dispatcher, invoker, factory, call_repo, channel,
    ):
        await _walk_to_check(dispatcher)

        commits_at_dispatch = []
        invoker.dispatch.side_effect = lambda call_id: commits_at_dispatch.append(
            factory.sessions[-1].commit.await_count
        )
        sent = await dispatcher.on_message(USER, "yes")

        call = next(iter(call_repo.rows.values()))
        invoker.dispatch.assert_called_once_with(call.id)
        assert commits_at_dispatch == [1], "Dispatch must happen after commit"
        assert sent == ["Checking, please wait...", "Any comments?"]
        assert channel.texts_for(USER)[-2:] == sent

    @pytest.mark.asyncio
    async def test_completed_user_starts_again(self, dispatcher, session_repo):
        await _walk_to_check(dispatcher)
        await dispatcher.on_message(USER, "no")
        sent = await dispatcher.on_message(USER, "bye")
        assert sent == [constants.COMPLETION_MESSAGE]

        sent = await dispatcher.on_message(USER, "hello again")
        assert sent == ["What is your name?"]
        assert len(session_repo.rows) == 2


# =====================================================================
# Failure paths — exactly one outbound message, no partial state
# =====================================================================


class TestFailures:

    @pytest.mark.asyncio
    async def test_no_active_questions(self, dispatcher, question_repo, channel, session_repo):
        question_repo.questions = []
        sent = await dispatcher.on_message(USER, "start")
        assert sent == [constants.NO_QUESTIONS_MESSAGE]
        assert channel.sent == [(USER, constants.NO_QUESTIONS_MESSAGE)]
        assert session_repo.rows == {}

    @pytest.mark.asyncio
    async def test_persistence_failure_rolls_back(
        self, dispatcher, session_repo, channel, factory,
    ):
        await dispatcher.on_message(USER, "start")
        session_repo.fail_on_save = True

        sent = await dispatcher.on_message(USER, "Alice")

        assert sent == [constants.GENERIC_ERROR_MESSAGE]
        assert channel.texts_for(USER)[-1] == constants.GENERIC_ERROR_MESSAGE
        assert factory.rollbacks == 1
        row = session_repo.only_row()
        assert row.current_question_id == "name"
        assert row.answers == []

    @pytest.mark.asyncio
    async def test_failed_check_creation_not_dispatched(
        self, dispatcher, session_repo, invoker,
    ):
        await _walk_to_check(dispatcher)
        session_repo.fail_on_save = True
        sent = await dispatcher.on_message(USER, "yes")
        assert sent == [constants.GENERIC_ERROR_MESSAGE]
        invoker.dispatch.assert_not_called()

    @pytest.mark.asyncio
    async def test_media_download_failure_treated_as_no_media(
        self, dispatcher, media_store,
    ):
        await dispatcher.on_message(USER, "start")
        await dispatcher.on_message(USER, "Alice")
        await dispatcher.on_message(USER, "1")
        sent = await dispatcher.on_message(USER, "", True, _broken_download, media_id="m1")
        assert sent == [constants.IMAGE_REQUIRED_MESSAGE]
        assert media_store.saved == []

    @pytest.mark.asyncio
    async def test_media_without_fetcher(self, dispatcher):
        await dispatcher.on_message(USER, "start")
        await dispatcher.on_message(USER, "Alice")
        await dispatcher.on_message(USER, "1")
        sent = await dispatcher.on_message(USER, "", True, None, media_id="m1")
        assert sent == [constants.IMAGE_REQUIRED_MESSAGE]

    @pytest.mark.asyncio
    async def test_send_failure_does_not_undo_progress(
        self, dispatcher, channel, session_repo, ledger,
    ):
        channel.fail_sends = True
        sent = await dispatcher.on_message(USER, "start")
        assert sent == ["What is your name?"], "Generated texts are still returned"
        assert session_repo.only_row().current_question_id == "name"
        assert all(r.direction == MessageDirection.INBOUND for r in ledger.rows)

    @pytest.mark.asyncio
    async def test_ledger_failure_is_ignored(self, dispatcher, ledger, channel):
        ledger.fail = True
        sent = await dispatcher.on_message(USER, "start")
        assert sent == ["What is your name?"]
        assert channel.sent == [(USER, "What is your name?")]


# =====================================================================
# Concurrency
# =====================================================================


class TestSerialization:

    @pytest.mark.asyncio
    async def test_concurrent_messages_for_one_user_are_serialized(
        self, dispatcher, channel, session_repo,
    ):
        """Two deliveries for the same user never create two sessions."""
        channel.send_delay = 0.01
        await asyncio.gather(
            dispatcher.on_message(USER, "start"),
            dispatcher.on_message(USER, "Alice"),
        )
        assert len(session_repo.rows) == 1
        texts = channel.texts_for(USER)
        assert texts[0] == "What is your name?"
        assert "Do you like surveys?" in texts[1]

    @pytest.mark.asyncio
    async def test_users_are_independent(self, dispatcher, channel, session_repo):
        channel.send_delay = 0.01
        await asyncio.gather(
            dispatcher.on_message("111@c.us", "hi"),
            dispatcher.on_message("222@c.us", "hi"),
        )
        assert len(session_repo.rows) == 2
        assert channel.texts_for("111@c.us") == ["What is your name?"]
        assert channel.texts_for("222@c.us") == ["What is your name?"]

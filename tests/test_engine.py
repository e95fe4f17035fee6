"""SurveyEngine tests with mocked DB layer.

Uses the in-memory repositories from ``helpers.mocks`` (swapped onto the
engine's private attributes by the ``engine`` fixture) to test session
orchestration without a real database.

Questionnaire (see ``build_questions``)::

    name (free_text, required) -> likes (Yes/No) -> why_not (only if No)
    -> photo (image) -> check (external_check) -> comments
"""

from datetime import timezone

import pytest

from helpers.mocks import MockQuestionRepository
from survey_db.models.enums import CallStatus
from survey_engine import constants
from survey_engine.errors import NoActiveQuestions, SessionCompleted
from survey_engine.models.message import MediaPayload
from survey_engine.models.welcome import WelcomeMessage
from survey_engine.welcome import WelcomeSelector

USER = "972501234567@c.us"
PHOTO = MediaPayload(data=b"\xff\xd8jpeg", mime_type="image/jpeg")


async def _reply(engine, mock_db, text, media=None, user=USER):
    """Advance the user's active session with one reply."""
    session = await engine.find_active_session(mock_db, user)
    assert session is not None, "Expected an active session"
    return await engine.advance(mock_db, session, text, media)


async def _advance_to(engine, mock_db, question_id):
    """Start a session and answer until ``question_id`` is current."""
    await engine.start_session(mock_db, USER)
    script = [("Alice", None), ("1", None), ("", PHOTO), ("no", None)]
    for text, media in script:
        session = await engine.find_active_session(mock_db, USER)
        if session.current_question_id == question_id:
            return session
        await engine.advance(mock_db, session, text, media)
    session = await engine.find_active_session(mock_db, USER)
    assert session.current_question_id == question_id, (
        f"Could not reach {question_id}, stuck at {session.current_question_id}"
    )
    return session


# =====================================================================
# start_session
# =====================================================================


class TestStartSession:
    """Tests for session creation."""

    @pytest.mark.asyncio
    async def test_returns_first_question_as_single_message(
        self, engine, mock_db, session_repo,
    ):
        """A fresh user gets exactly one message containing the first question."""
        result = await engine.start_session(mock_db, USER)
        assert result.next_question.id == "name"
        assert result.messages == ["What is your name?"], (
            f"Unexpected messages: {result.messages}"
        )
        row = session_repo.only_row()
        assert row.current_question_id == "name"
        assert row.answers == []
        assert row.is_completed is False

    @pytest.mark.asyncio
    async def test_welcome_prefixes_first_question(
        self, engine, mock_db, welcome_repo,
    ):
        """A matching welcome message is prepended in the same message."""
        welcome_repo.messages = [WelcomeMessage(id="w1", text="Hello!")]
        result = await engine.start_session(mock_db, USER)
        assert result.messages == ["Hello!\n\nWhat is your name?"]

    @pytest.mark.asyncio
    async def test_inactive_welcome_is_ignored(self, engine, mock_db, welcome_repo):
        welcome_repo.messages = [WelcomeMessage(id="w1", text="Hello!", active=False)]
        result = await engine.start_session(mock_db, USER)
        assert result.messages == ["What is your name?"]

    @pytest.mark.asyncio
    async def test_default_greeting_when_nothing_matches(
        self, engine, mock_db, welcome_repo,
    ):
        engine._welcome = WelcomeSelector(tz=timezone.utc)
        welcome_repo.messages = [WelcomeMessage(id="w1", text="Hello!", active=False)]
        result = await engine.start_session(mock_db, USER)
        assert result.messages == [
            f"{constants.DEFAULT_WELCOME_MESSAGE}\n\nWhat is your name?"
        ]

    @pytest.mark.asyncio
    async def test_skips_inactive_first_question(
        self, engine, mock_db, question_repo,
    ):
        """Inactive questions are never offered; the choice list is rendered."""
        question_repo.deactivate("name")
        result = await engine.start_session(mock_db, USER)
        assert result.next_question.id == "likes"
        assert "Do you like surveys?" in result.messages[0]
        assert "1. Yes" in result.messages[0]
        assert "2. No" in result.messages[0]

    @pytest.mark.asyncio
    async def test_no_active_questions_raises(self, engine, mock_db, session_repo):
        """An empty questionnaire raises and persists nothing."""
        engine._questions = MockQuestionRepository([])
        with pytest.raises(NoActiveQuestions):
            await engine.start_session(mock_db, USER)
        assert session_repo.rows == {}, "No session should be created"


# =====================================================================
# advance — free text and single choice
# =====================================================================


class TestAdvanceAnswers:
    """Tests for validated answers and default ordering."""

    @pytest.mark.asyncio
    async def test_free_text_is_trimmed_and_stored(
        self, engine, mock_db, session_repo,
    ):
        await engine.start_session(mock_db, USER)
        result = await _reply(engine, mock_db, "  Alice  ")
        assert result.accepted is True
        assert result.next_question.id == "likes"
        assert "Do you like surveys?" in result.messages[0]

        row = session_repo.only_row()
        assert row.current_question_id == "likes"
        assert row.answers[0]["question_id"] == "name"
        assert row.answers[0]["raw_answer"] == "  Alice  "
        assert row.answers[0]["normalized_answer"] == "Alice"

    @pytest.mark.asyncio
    async def test_required_free_text_rejects_blank(
        self, engine, mock_db, session_repo,
    ):
        """A blank reply to a required question is rejected without saving."""
        await engine.start_session(mock_db, USER)
        saves_before = session_repo.save_count
        result = await _reply(engine, mock_db, "   ")
        assert result.accepted is False
        assert result.messages == [constants.REQUIRED_TEXT_MESSAGE]
        assert session_repo.save_count == saves_before, "Rejection must not persist"
        assert session_repo.only_row().current_question_id == "name"

    @pytest.mark.asyncio
    async def test_choice_by_number_normalizes_to_text(
        self, engine, mock_db, session_repo,
    ):
        """Replying "1" stores "Yes"; the No-only branch is skipped."""
        await engine.start_session(mock_db, USER)
        await _reply(engine, mock_db, "Alice")
        result = await _reply(engine, mock_db, "1")
        assert result.session.answer_for("likes").normalized_answer == "Yes"
        assert result.next_question.id == "photo", (
            "why_not requires likes == No and must be skipped"
        )
        assert "Send a photo of your ID" in result.messages[0]
        assert session_repo.only_row().answers[-1]["normalized_answer"] == "Yes"

    @pytest.mark.asyncio
    async def test_choice_by_text_is_case_insensitive_and_takes_branch(
        self, engine, mock_db,
    ):
        await engine.start_session(mock_db, USER)
        await _reply(engine, mock_db, "Alice")
        result = await _reply(engine, mock_db, " no ")
        assert result.session.answer_for("likes").normalized_answer == "No"
        assert result.next_question.id == "why_not"
        assert result.messages == ["Why not?"]

    @pytest.mark.asyncio
    async def test_unrecognized_choice_leaves_session_unchanged(
        self, engine, mock_db, session_repo,
    ):
        """Unrecognized input re-states the choices and changes nothing."""
        await engine.start_session(mock_db, USER)
        await _reply(engine, mock_db, "Alice")
        before = await engine.find_active_session(mock_db, USER)

        result = await _reply(engine, mock_db, "banana")
        assert result.accepted is False
        assert len(result.messages) == 1
        assert constants.CHOICE_CORRECTION_HEADING in result.messages[0]
        assert "Yes" in result.messages[0] and "No" in result.messages[0]

        after = await engine.find_active_session(mock_db, USER)
        assert after.current_question_id == "likes"
        assert after.answers == before.answers

    @pytest.mark.asyncio
    async def test_out_of_range_number_is_rejected(self, engine, mock_db):
        await engine.start_session(mock_db, USER)
        await _reply(engine, mock_db, "Alice")
        result = await _reply(engine, mock_db, "3")
        assert result.accepted is False


# =====================================================================
# advance — image
# =====================================================================


class TestAdvanceImage:

    @pytest.mark.asyncio
    async def test_image_question_requires_media(self, engine, mock_db):
        await _advance_to(engine, mock_db, "photo")
        result = await _reply(engine, mock_db, "here you go")
        assert result.accepted is False
        assert result.messages == [constants.IMAGE_REQUIRED_MESSAGE]

    @pytest.mark.asyncio
    async def test_image_is_stored_and_referenced(
        self, engine, mock_db, media_store, session_repo,
    ):
        await _advance_to(engine, mock_db, "photo")
        result = await _reply(engine, mock_db, "", media=PHOTO)
        assert result.accepted is True
        assert media_store.saved == [(USER, PHOTO)]

        answer = session_repo.only_row().answers[-1]
        assert answer["question_id"] == "photo"
        assert answer["normalized_answer"] == constants.IMAGE_ANSWER
        assert answer["media_ref"] == "/uploads/1.jpeg"

        # Next is the external check: question text plus its confirmation prompt
        assert result.next_question.id == "check"
        assert "Run the eligibility check? (yes/no)" in result.messages[0]


# =====================================================================
# advance — external check confirmation sub-flow
# =====================================================================


class TestExternalCheck:

    @pytest.mark.asyncio
    async def test_confirm_creates_pending_call_and_moves_on(
        self, engine, mock_db, call_repo, session_repo,
    ):
        """Confirming creates a pending call; the survey does not wait for it."""
        await _advance_to(engine, mock_db, "check")
        result = await _reply(engine, mock_db, "כן")

        assert len(call_repo.rows) == 1
        call = next(iter(call_repo.rows.values()))
        assert call.status == CallStatus.PENDING
        assert call.endpoint_id == "ep1"
        assert call.question_id == "check"
        assert call.session_id == result.session.id
        assert call.request_payload == {
            "full_name": "Alice",
            "phone": "972501234567",
            "campaign": "2026",
        }

        assert result.dispatch_calls == [call.id]
        assert result.messages[0] == "Checking, please wait..."
        assert result.messages[1] == "Any comments?"
        assert result.next_question.id == "comments"
        assert session_repo.only_row().answers[-1]["normalized_answer"] == (
            constants.CONFIRMED_ANSWER
        )

    @pytest.mark.asyncio
    async def test_confirm_is_case_insensitive(self, engine, mock_db, call_repo):
        await _advance_to(engine, mock_db, "check")
        result = await _reply(engine, mock_db, "  YES ")
        assert len(call_repo.rows) == 1
        assert result.accepted is True

    @pytest.mark.asyncio
    async def test_decline_records_answer_without_call(
        self, engine, mock_db, call_repo, session_repo,
    ):
        await _advance_to(engine, mock_db, "check")
        result = await _reply(engine, mock_db, "לא")
        assert call_repo.rows == {}
        assert result.dispatch_calls == []
        assert result.messages == ["Check skipped.", "Any comments?"]
        assert session_repo.only_row().answers[-1]["normalized_answer"] == (
            constants.DECLINED_ANSWER
        )

    @pytest.mark.asyncio
    async def test_unclear_reply_reprompts(self, engine, mock_db, call_repo):
        await _advance_to(engine, mock_db, "check")
        result = await _reply(engine, mock_db, "maybe")
        assert result.accepted is False
        assert result.messages == ["Run the eligibility check? (yes/no)"]
        assert call_repo.rows == {}

    @pytest.mark.asyncio
    async def test_default_messages_when_config_is_blank(
        self, engine, mock_db, question_repo,
    ):
        """Empty processing/decline texts fall back to the defaults."""
        question_repo.questions = [
            q if q.id != "check" else q.model_copy(
                update={
                    "external_check": q.external_check.model_copy(
                        update={"processing_message": "", "decline_message": ""}
                    )
                }
            )
            for q in question_repo.questions
        ]
        await _advance_to(engine, mock_db, "check")
        result = await _reply(engine, mock_db, "yes")
        assert result.messages[0] == constants.DEFAULT_PROCESSING_MESSAGE


# =====================================================================
# Completion and invariants
# =====================================================================


class TestCompletion:

    @pytest.mark.asyncio
    async def test_last_answer_completes_session(
        self, engine, mock_db, session_repo,
    ):
        await _advance_to(engine, mock_db, "check")
        await _reply(engine, mock_db, "no")
        result = await _reply(engine, mock_db, "Great survey")

        assert result.next_question is None
        assert result.messages == [constants.COMPLETION_MESSAGE]
        row = session_repo.only_row()
        assert row.is_completed is True
        assert row.current_question_id is None
        assert row.completed_at is not None
        assert await engine.find_active_session(mock_db, USER) is None

    @pytest.mark.asyncio
    async def test_optional_blank_answer_is_accepted(self, engine, mock_db):
        await _advance_to(engine, mock_db, "check")
        await _reply(engine, mock_db, "no")
        result = await _reply(engine, mock_db, "")
        assert result.accepted is True
        assert result.session.answer_for("comments").normalized_answer == ""

    @pytest.mark.asyncio
    async def test_advance_on_completed_session_raises(self, engine, mock_db):
        await _advance_to(engine, mock_db, "check")
        await _reply(engine, mock_db, "no")
        result = await _reply(engine, mock_db, "done")
        with pytest.raises(SessionCompleted):
            await engine.advance(mock_db, result.session, "again")

    @pytest.mark.asyncio
    async def test_each_question_answered_at_most_once(self, engine, mock_db):
        await _advance_to(engine, mock_db, "check")
        await _reply(engine, mock_db, "no")
        result = await _reply(engine, mock_db, "done")
        ids = [a.question_id for a in result.session.answers]
        assert ids == ["name", "likes", "photo", "check", "comments"]
        assert len(ids) == len(set(ids))

    @pytest.mark.asyncio
    async def test_new_session_after_completion(self, engine, mock_db, session_repo):
        """A completed user who writes again starts over in a new session."""
        await _advance_to(engine, mock_db, "check")
        await _reply(engine, mock_db, "no")
        await _reply(engine, mock_db, "done")
        result = await engine.start_session(mock_db, USER)
        assert result.next_question.id == "name"
        assert len(session_repo.rows) == 2

    @pytest.mark.asyncio
    async def test_list_sessions_most_recent_first(self, engine, mock_db):
        await engine.start_session(mock_db, USER)
        summaries = await engine.list_sessions(mock_db, user_id=USER)
        assert len(summaries) == 1
        assert summaries[0].current_question_id == "name"
        assert await engine.list_sessions(mock_db, user_id="someone-else") == []


# =====================================================================
# Atomicity and stale references
# =====================================================================


class TestFailureModes:

    @pytest.mark.asyncio
    async def test_failed_save_leaves_session_untouched(
        self, engine, mock_db, session_repo,
    ):
        """If persistence fails the caller's session and the stored row are unchanged."""
        await engine.start_session(mock_db, USER)
        session = await engine.find_active_session(mock_db, USER)
        session_repo.fail_on_save = True

        with pytest.raises(RuntimeError):
            await engine.advance(mock_db, session, "Alice")

        assert session.answers == [], "Input session must never be mutated"
        assert session.current_question_id == "name"
        row = session_repo.only_row()
        assert row.answers == []
        assert row.current_question_id == "name"

    @pytest.mark.asyncio
    async def test_stale_question_is_recovered_without_consuming_input(
        self, engine, mock_db, question_repo, session_repo,
    ):
        """A deactivated current question re-resolves from the last answer."""
        await engine.start_session(mock_db, USER)
        await _reply(engine, mock_db, "Alice")
        question_repo.deactivate("likes")

        result = await _reply(engine, mock_db, "Yes")
        assert result.accepted is False
        # why_not depends on the (never answered) likes question, so it fails
        assert result.next_question.id == "photo"
        assert "Send a photo of your ID" in result.messages[0]

        row = session_repo.only_row()
        assert row.current_question_id == "photo"
        assert [a["question_id"] for a in row.answers] == ["name"]

    @pytest.mark.asyncio
    async def test_stale_question_without_answers_restarts(
        self, engine, mock_db, question_repo,
    ):
        await engine.start_session(mock_db, USER)
        question_repo.deactivate("name")
        result = await _reply(engine, mock_db, "Alice")
        assert result.next_question.id == "likes"
        assert result.session.answers == []

    @pytest.mark.asyncio
    async def test_stale_question_completes_when_nothing_is_left(
        self, engine, mock_db, question_repo, session_repo,
    ):
        await engine.start_session(mock_db, USER)
        question_repo.questions = [q for q in question_repo.questions if q.id == "photo"]
        question_repo.deactivate("photo")
        result = await _reply(engine, mock_db, "Alice")
        assert result.next_question is None
        assert result.messages == [constants.COMPLETION_MESSAGE]
        assert session_repo.only_row().is_completed is True

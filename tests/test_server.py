"""HTTP layer tests — webhook, dashboard routes and error mapping.

The app is built with ``create_app`` and exercised through ``TestClient``
without running the lifespan; survey components are placed on
``app.state`` directly and the DB dependency is overridden with an
``AsyncMock`` session.
"""

import asyncio
import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from helpers.mocks import (
    FakeChannel,
    FakeSessionFactory,
    MockCallRepository,
    MockLedgerRepository,
    StubTransport,
)
from survey_db.models.enums import CallStatus, MessageDirection
from survey_engine.channel import ChannelSession
from survey_engine.errors import CallAlreadyPending, ChannelUnavailable
from survey_engine.messenger import Messenger
from survey_engine.models.external_call import ExternalCheckCall
from survey_server.app import create_app
from survey_server.config import ServerSettings
from survey_server.dependencies import get_db
from survey_server.routes import calls as calls_routes
from survey_server.routes.webhook import extract_inbound_messages

USER = "972501234567"


def _text_payload(*messages):
    return {
        "object": "whatsapp_business_account",
        "entry": [{
            "id": "waba-1",
            "changes": [{
                "field": "messages",
                "value": {"messaging_product": "whatsapp", "messages": list(messages)},
            }],
        }],
    }


class RecordingDispatcher:
    def __init__(self):
        self.calls = []

    async def on_message(self, user_id, raw_text, has_media=False, media_fetcher=None,
                         *, media_id=None):
        self.calls.append((user_id, raw_text, has_media, media_fetcher, media_id))
        return []


@pytest.fixture
def ledger():
    return MockLedgerRepository()


@pytest.fixture
def app(engine, ledger):
    settings = ServerSettings(whatsapp_verify_token="verify-me", channel_autostart=False)
    application = create_app(settings)

    async def _fake_db():
        yield AsyncMock()

    application.dependency_overrides[get_db] = _fake_db

    messenger = Messenger(FakeChannel(), FakeSessionFactory())
    messenger._ledger = ledger
    application.state.engine = engine
    application.state.messenger = messenger
    application.state.channel = ChannelSession(StubTransport())
    application.state.dispatcher = RecordingDispatcher()
    application.state.invoker = MagicMock()
    return application


@pytest.fixture
def client(app):
    return TestClient(app)


# =====================================================================
# Webhook
# =====================================================================


class TestWebhook:

    def test_verification_handshake(self, client):
        resp = client.get(
            "/webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": "verify-me",
                    "hub.challenge": "1158201444"},
        )
        assert resp.status_code == 200
        assert resp.text == "1158201444"

    def test_verification_rejects_wrong_token(self, client):
        resp = client.get(
            "/webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": "nope",
                    "hub.challenge": "1"},
        )
        assert resp.status_code == 403

    def test_inbound_messages_queued_in_order(self, client, app):
        payload = _text_payload(
            {"from": USER, "id": "wamid.1", "timestamp": "1760000000",
             "type": "text", "text": {"body": "hello"}},
            {"from": USER, "id": "wamid.2", "timestamp": "1760000001",
             "type": "image", "image": {"id": "media-1", "mime_type": "image/jpeg"}},
        )
        resp = client.post("/webhook", json=payload)
        assert resp.status_code == 200
        assert resp.json() == {"received": 2}

        calls = app.state.dispatcher.calls
        assert [(c[0], c[1], c[2], c[4]) for c in calls] == [
            (USER, "hello", False, None),
            (USER, "", True, "media-1"),
        ]
        assert calls[0][3] is None
        assert calls[1][3].args == ("media-1",), "Fetcher downloads the attachment"

    def test_status_callbacks_ignored(self, client, app):
        payload = {"entry": [{"changes": [{"value": {"statuses": [{"id": "x"}]}}]}]}
        resp = client.post("/webhook", json=payload)
        assert resp.json() == {"received": 0}
        assert app.state.dispatcher.calls == []


class TestExtractInbound:

    def test_interactive_and_button_replies(self):
        payload = _text_payload(
            {"from": USER, "id": "a", "type": "interactive",
             "interactive": {"type": "button_reply",
                             "button_reply": {"id": "b1", "title": "Yes"}}},
            {"from": USER, "id": "b", "type": "button", "button": {"text": "No"}},
        )
        texts = [m.text for m in extract_inbound_messages(payload)]
        assert texts == ["Yes", "No"]

    def test_image_caption_and_timestamp(self):
        payload = _text_payload(
            {"from": USER, "id": "c", "timestamp": "1760000000", "type": "image",
             "image": {"id": "m9", "caption": "my id"}},
        )
        [msg] = extract_inbound_messages(payload)
        assert msg.text == "my id"
        assert msg.media_id == "m9"
        assert msg.has_media
        assert msg.timestamp == datetime.fromtimestamp(1760000000, tz=timezone.utc)

    def test_sender_required(self):
        payload = _text_payload({"id": "d", "type": "text", "text": {"body": "x"}})
        assert extract_inbound_messages(payload) == []

    def test_empty_payload(self):
        assert extract_inbound_messages({}) == []


# =====================================================================
# Dashboard routes
# =====================================================================


class TestSessionRoutes:

    def test_active_session_not_found(self, client):
        resp = client.get(f"/api/v1/sessions/{USER}/active")
        assert resp.status_code == 404
        assert resp.json() == {"detail": "Resource not found"}

    def test_active_session_and_history(self, client, engine):
        asyncio.run(engine.start_session(AsyncMock(), USER))

        resp = client.get(f"/api/v1/sessions/{USER}/active")
        assert resp.status_code == 200
        body = resp.json()
        assert body["user_id"] == USER
        assert body["current_question_id"] == "name"
        assert body["is_completed"] is False

        resp = client.get(f"/api/v1/users/{USER}/sessions")
        assert resp.status_code == 200
        assert len(resp.json()) == 1

    def test_pagination_bounds(self, client):
        resp = client.get(f"/api/v1/users/{USER}/sessions", params={"limit": 0})
        assert resp.status_code == 422

    def test_conversation(self, client, app, ledger):
        asyncio.run(app.state.messenger.record(USER, MessageDirection.INBOUND, "hi"))
        resp = client.get(f"/api/v1/conversations/{USER}")
        assert resp.status_code == 200
        [entry] = resp.json()
        assert entry["direction"] == "inbound"
        assert entry["text"] == "hi"


class TestCallRoutes:

    @pytest.fixture
    def calls(self, monkeypatch):
        repo = MockCallRepository()
        monkeypatch.setattr(calls_routes, "_repo", repo)
        return repo

    def test_list_and_filter(self, client, calls):
        calls.add(user_id=USER, question_id="q", endpoint_id="e")
        calls.add(user_id=USER, question_id="q", endpoint_id="e", status=CallStatus.FAILED)
        resp = client.get("/api/v1/calls", params={"status": "failed"})
        assert resp.status_code == 200
        assert [c["status"] for c in resp.json()] == ["failed"]

    def test_get_unknown_call(self, client, calls):
        resp = client.get(f"/api/v1/calls/{uuid.uuid4()}")
        assert resp.status_code == 404

    def test_get_call(self, client, calls):
        row = calls.add(user_id=USER, question_id="q", endpoint_id="e")
        resp = client.get(f"/api/v1/calls/{row.id}")
        assert resp.status_code == 200
        assert resp.json()["id"] == str(row.id)

    def test_retry(self, client, app, calls):
        row = calls.add(user_id=USER, question_id="q", endpoint_id="e", attempts=2)
        app.state.invoker.retry = AsyncMock(
            return_value=ExternalCheckCall.model_validate(row, from_attributes=True)
        )
        resp = client.post(f"/api/v1/calls/{row.id}/retry")
        assert resp.status_code == 200
        assert resp.json()["attempts"] == 2
        app.state.invoker.retry.assert_awaited_once_with(row.id)

    def test_retry_pending_conflict(self, client, app):
        call_id = uuid.uuid4()
        app.state.invoker.retry = AsyncMock(side_effect=CallAlreadyPending(call_id))
        resp = client.post(f"/api/v1/calls/{call_id}/retry")
        assert resp.status_code == 409


class TestBotRoutes:

    def test_status_start_stop(self, client):
        assert client.get("/api/v1/bot/status").json()["state"] == "disconnected"

        resp = client.post("/api/v1/bot/start")
        assert resp.status_code == 200
        assert resp.json()["state"] == "connected"
        assert resp.json()["connected_phone"] == "972500000000"

        resp = client.post("/api/v1/bot/stop")
        assert resp.json()["state"] == "disconnected"


# =====================================================================
# Error mapping
# =====================================================================


class TestErrorHandlers:

    def test_channel_unavailable_maps_to_503(self, app):
        @app.get("/boom-channel")
        async def boom_channel():
            raise ChannelUnavailable("disconnected")

        resp = TestClient(app).get("/boom-channel")
        assert resp.status_code == 503
        assert "disconnected" not in resp.json()["detail"]

    def test_plain_value_error_maps_to_400(self, app):
        @app.get("/boom-value")
        async def boom_value():
            raise ValueError("bad input for user 123")

        resp = TestClient(app).get("/boom-value")
        assert resp.status_code == 400
        assert resp.json() == {"detail": "Invalid request"}

    def test_unhandled_error_maps_to_500(self, app):
        @app.get("/boom")
        async def boom():
            raise RuntimeError("secret internals")

        resp = TestClient(app, raise_server_exceptions=False).get("/boom")
        assert resp.status_code == 500
        assert resp.json() == {"detail": "Internal server error"}

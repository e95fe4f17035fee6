"""WhatsApp Cloud API webhook — subscription verification and inbound messages.

Meta expects a fast 200, so inbound messages are handed to the dispatcher
as background tasks that run after the response is sent, in payload order.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import partial
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Body, Depends, HTTPException, Query
from fastapi.responses import PlainTextResponse

from survey_engine.channel import ChannelSession
from survey_engine.dispatcher import InboundDispatcher
from survey_engine.models.message import InboundMessage

from survey_server.config import ServerSettings
from survey_server.dependencies import get_channel, get_dispatcher, get_settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhook"])

# Message types that carry a downloadable attachment
_MEDIA_TYPES = ("image", "document", "video", "audio", "sticker")


def _message_text(message: dict[str, Any]) -> str:
    mtype = message.get("type")
    if mtype == "text":
        return message.get("text", {}).get("body", "")
    if mtype == "interactive":
        interactive = message.get("interactive", {})
        reply = interactive.get("button_reply") or interactive.get("list_reply") or {}
        return reply.get("title", "")
    if mtype == "button":
        return message.get("button", {}).get("text", "")
    if mtype in _MEDIA_TYPES:
        return message.get(mtype, {}).get("caption", "")
    return ""


def extract_inbound_messages(payload: dict[str, Any]) -> list[InboundMessage]:
    """Flatten a webhook payload into inbound messages.

    Walks ``entry[].changes[].value.messages[]``; status callbacks and
    other change types carry no ``messages`` and are ignored.
    """
    inbound: list[InboundMessage] = []
    for entry in payload.get("entry", []):
        for change in entry.get("changes", []):
            for message in change.get("value", {}).get("messages", []):
                sender = message.get("from")
                if not sender:
                    continue
                mtype = message.get("type")
                media_id = None
                if mtype in _MEDIA_TYPES:
                    media_id = message.get(mtype, {}).get("id")
                timestamp = None
                if message.get("timestamp"):
                    timestamp = datetime.fromtimestamp(
                        int(message["timestamp"]), tz=timezone.utc
                    )
                inbound.append(
                    InboundMessage(
                        message_id=message.get("id", ""),
                        user_id=sender,
                        text=_message_text(message),
                        media_id=media_id,
                        timestamp=timestamp,
                    )
                )
    return inbound


@router.get("/webhook", response_class=PlainTextResponse)
async def verify_webhook(
    hub_mode: str | None = Query(None, alias="hub.mode"),
    hub_verify_token: str | None = Query(None, alias="hub.verify_token"),
    hub_challenge: str | None = Query(None, alias="hub.challenge"),
    settings: ServerSettings = Depends(get_settings),
) -> str:
    """Answer Meta's subscription handshake with the challenge."""
    expected = settings.whatsapp_verify_token
    if hub_mode == "subscribe" and expected and hub_verify_token == expected:
        return hub_challenge or ""
    raise HTTPException(status_code=403, detail="Webhook verification failed")


@router.post("/webhook")
async def receive_webhook(
    background_tasks: BackgroundTasks,
    payload: dict[str, Any] = Body(...),
    dispatcher: InboundDispatcher = Depends(get_dispatcher),
    channel: ChannelSession = Depends(get_channel),
) -> dict:
    """Queue each inbound message for the dispatcher."""
    messages = extract_inbound_messages(payload)
    for msg in messages:
        fetcher = partial(channel.download_media, msg.media_id) if msg.has_media else None
        background_tasks.add_task(
            dispatcher.on_message,
            msg.user_id,
            msg.text,
            msg.has_media,
            fetcher,
            media_id=msg.media_id,
        )
    logger.info("Webhook received %d message(s)", len(messages))
    return {"received": len(messages)}

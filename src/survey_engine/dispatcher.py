"""InboundDispatcher — entry point for every inbound user message.

For each message::

    record inbound in ledger (best effort)
    with the user's lock:
        download media (failure -> treated as no media)
        BEGIN
            load active session FOR UPDATE
            start_session | advance
        COMMIT (ROLLBACK on any error)
        dispatch pending external calls
        send outbound texts in order (each recorded in the ledger)

Any failure yields exactly one outbound message and leaves no partial
state: ``NoActiveQuestions`` gets an apology, everything else a generic
"try again".
"""

from __future__ import annotations

import logging
import uuid
from typing import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from survey_db.models.enums import MessageDirection

from survey_engine import constants
from survey_engine.engine import SurveyEngine
from survey_engine.errors import NoActiveQuestions
from survey_engine.invoker import ExternalCheckInvoker
from survey_engine.locks import UserLocks
from survey_engine.messenger import Messenger
from survey_engine.models.message import MediaPayload

logger = logging.getLogger(__name__)

MediaFetcher = Callable[[], Awaitable[MediaPayload]]


class InboundDispatcher:
    """Serializes and processes inbound messages per user.

    Args:
        engine: the survey session engine
        messenger: outbound sends + ledger
        invoker: receives pending external calls after commit
        session_factory: opens one ``AsyncSession`` per message
        locks: per-user locks (share with the invoker)
    """

    def __init__(
        self,
        engine: SurveyEngine,
        messenger: Messenger,
        invoker: ExternalCheckInvoker,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        locks: UserLocks | None = None,
    ) -> None:
        self._engine = engine
        self._messenger = messenger
        self._invoker = invoker
        self._session_factory = session_factory
        self._locks = locks or UserLocks()

    async def on_message(
        self,
        user_id: str,
        raw_text: str,
        has_media: bool = False,
        media_fetcher: MediaFetcher | None = None,
        *,
        media_id: str | None = None,
    ) -> list[str]:
        """Process one inbound message and send the replies.

        Returns the outbound texts that were generated (sent or not).
        """
        await self._messenger.record(
            user_id, MessageDirection.INBOUND, raw_text or "", media_id,
        )

        async with self._locks.hold(user_id):
            media = None
            if has_media:
                media = await self._fetch_media(user_id, media_fetcher)

            messages, dispatch_calls = await self._process(user_id, raw_text or "", media)

            for call_id in dispatch_calls:
                self._invoker.dispatch(call_id)
            for text in messages:
                await self._messenger.send(user_id, text)

        return messages

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _process(
        self, user_id: str, raw_text: str, media: MediaPayload | None
    ) -> tuple[list[str], list[uuid.UUID]]:
        try:
            async with self._session_factory() as db:
                try:
                    session = await self._engine.find_active_session(
                        db, user_id, for_update=True,
                    )
                    if session is None:
                        result = await self._engine.start_session(db, user_id)
                    else:
                        result = await self._engine.advance(db, session, raw_text, media)
                    await db.commit()
                except BaseException:
                    await db.rollback()
                    raise
        except NoActiveQuestions:
            logger.warning("No active questions; cannot start a session for %s", user_id)
            return [constants.NO_QUESTIONS_MESSAGE], []
        except Exception:
            logger.exception("Failed to process message from %s", user_id)
            return [constants.GENERIC_ERROR_MESSAGE], []
        return result.messages, result.dispatch_calls

    async def _fetch_media(
        self, user_id: str, media_fetcher: MediaFetcher | None
    ) -> MediaPayload | None:
        if media_fetcher is None:
            logger.warning("Message from %s has media but no fetcher", user_id)
            return None
        try:
            return await media_fetcher()
        except Exception:
            logger.exception("Media download failed for %s, treating as no media", user_id)
            return None

"""Messenger — outbound sends plus the conversation ledger.

Every message that goes through the bot is recorded in the ledger for the
dashboard.  Ledger writes are best effort: they run in their own
transaction and a failure is logged, never propagated, so bookkeeping can
never break or roll back a survey step.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from survey_db.models.enums import MessageDirection
from survey_db.repository import LedgerRepository

from survey_engine.interfaces import MessageChannel
from survey_engine.models.message import LedgerEntry

logger = logging.getLogger(__name__)


class Messenger:
    """Sends texts through a channel and records them in the ledger."""

    def __init__(
        self,
        channel: MessageChannel,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._channel = channel
        self._session_factory = session_factory
        self._ledger = LedgerRepository()

    async def record(
        self,
        user_id: str,
        direction: MessageDirection,
        text: str,
        media_ref: str | None = None,
    ) -> None:
        """Append a ledger entry in its own transaction (best effort)."""
        try:
            async with self._session_factory() as db:
                await self._ledger.append(
                    db,
                    user_id=user_id,
                    direction=direction,
                    text=text or "",
                    media_ref=media_ref,
                )
                await db.commit()
        except Exception:
            logger.exception("Failed to record %s message for %s", direction.value, user_id)

    async def send(self, user_id: str, text: str) -> bool:
        """Send one text; returns False (after logging) if delivery failed."""
        try:
            await self._channel.send_message(user_id, text)
        except Exception:
            logger.exception("Failed to send message to %s", user_id)
            return False
        await self.record(user_id, MessageDirection.OUTBOUND, text)
        return True

    async def history(
        self,
        db: AsyncSession,
        user_id: str,
        *,
        limit: int = 100,
        offset: int = 0,
    ) -> list[LedgerEntry]:
        """Conversation for the dashboard, oldest first."""
        rows = await self._ledger.list_by_user(db, user_id, limit=limit, offset=offset)
        return [LedgerEntry.model_validate(r, from_attributes=True) for r in rows]

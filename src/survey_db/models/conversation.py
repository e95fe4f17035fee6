"""ConversationMessage ORM model — append-only conversation ledger.

Used by the dashboard to display conversations.  The survey engine writes
here but never reads it back; session state lives in ``survey_sessions``.
"""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, Index, String, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from survey_db.models.base import Base
from survey_db.models.enums import MessageDirection


class ConversationMessage(Base):
    """One inbound or outbound message."""

    __tablename__ = "conversation_messages"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    direction: Mapped[MessageDirection] = mapped_column(String(10), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    # Transport media id (inbound) or media store locator
    media_ref: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("ix_conversation_user_ts", "user_id", "timestamp"),
    )

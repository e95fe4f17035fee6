"""Message-level models: inbound messages, media payloads, ledger entries."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from survey_db.models.enums import MessageDirection


class MediaPayload(BaseModel):
    """Downloaded media bytes plus the transport's MIME type."""

    data: bytes
    mime_type: str = "application/octet-stream"
    filename: Optional[str] = None

    @property
    def extension(self) -> str:
        """File extension derived from the MIME subtype (``image/jpeg`` -> ``jpeg``)."""
        subtype = self.mime_type.split("/")[-1].split(";")[0].strip()
        return subtype or "bin"


class InboundMessage(BaseModel):
    """One message extracted from a transport webhook."""

    message_id: str
    user_id: str
    text: str = ""
    media_id: Optional[str] = None
    timestamp: Optional[datetime] = None

    @property
    def has_media(self) -> bool:
        return self.media_id is not None


class LedgerEntry(BaseModel):
    """One row of the conversation ledger (display only)."""

    model_config = ConfigDict(from_attributes=True)

    user_id: str
    direction: MessageDirection
    text: str
    media_ref: Optional[str] = None
    timestamp: datetime

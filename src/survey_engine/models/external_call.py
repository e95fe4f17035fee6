"""External check call models."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict

from survey_db.models.enums import CallStatus


class ExternalCheckCall(BaseModel):
    """Durable record of one external check invocation.

    ``completed_at`` is set iff ``status`` is not ``pending``.
    """

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: str
    session_id: Optional[uuid.UUID] = None
    question_id: str
    endpoint_id: str
    request_payload: dict[str, Any] = {}
    response_payload: Any = None
    status: CallStatus
    error_message: Optional[str] = None
    attempts: int = 1
    created_at: datetime
    dispatched_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class SweepReport(BaseModel):
    """Outcome of one sweep pass."""

    expired: List[uuid.UUID] = []
    retried: List[uuid.UUID] = []

"""External check call endpoints — list, inspect, retry."""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from survey_db.models.enums import CallStatus
from survey_db.repository import CallRepository
from survey_engine.invoker import ExternalCheckInvoker
from survey_engine.models.external_call import ExternalCheckCall

from survey_server.config import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from survey_server.dependencies import get_db, get_invoker

router = APIRouter(prefix="/calls", tags=["calls"])

_repo = CallRepository()


@router.get("")
async def list_calls(
    status: CallStatus | None = Query(None),
    user_id: str | None = Query(None),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
) -> list[ExternalCheckCall]:
    """List calls, most recent first, optionally filtered by status/user."""
    rows = await _repo.list_calls(db, status=status, user_id=user_id, limit=limit, offset=offset)
    return [ExternalCheckCall.model_validate(r, from_attributes=True) for r in rows]


@router.get("/{call_id}")
async def get_call(
    call_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> ExternalCheckCall:
    row = await _repo.get(db, call_id)
    if row is None:
        raise ValueError(f"External check call {call_id} not found")
    return ExternalCheckCall.model_validate(row, from_attributes=True)


@router.post("/{call_id}/retry")
async def retry_call(
    call_id: uuid.UUID,
    invoker: ExternalCheckInvoker = Depends(get_invoker),
) -> ExternalCheckCall:
    """Reset a failed call to pending and re-dispatch it.

    404 if unknown, 409 if the call is already pending, 400 if it succeeded.
    """
    return await invoker.retry(call_id)

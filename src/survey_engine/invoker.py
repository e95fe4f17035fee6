"""ExternalCheckInvoker — runs external check calls against configured endpoints.

Call lifecycle (see ``CallStatus``)::

    pending --invoke--> success | failed
    failed  --retry-->  pending (attempts += 1)

The engine creates the ``pending`` row inside the message transaction; the
dispatcher hands the id to :meth:`ExternalCheckInvoker.dispatch` only after
commit, so the background task always sees the row.  The HTTP request runs
outside any DB transaction; the outcome is written in a short second
transaction that re-checks the call is still pending.

Within one process at most one invocation per call id is in flight.
:meth:`sweep` is the periodic entry point that expires calls stuck in
``pending`` and re-dispatches failed calls that have attempts left.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from survey_db.models.enums import CallStatus
from survey_db.repository import CallRepository, EndpointRepository

from survey_engine import constants
from survey_engine.errors import CallAlreadyPending, CallNotFound, InvalidCallTransition
from survey_engine.locks import UserLocks
from survey_engine.messenger import Messenger
from survey_engine.models.external_call import ExternalCheckCall, SweepReport
from survey_engine.models.question import FieldMapping, MappingSource
from survey_engine.models.session import SurveySession

logger = logging.getLogger(__name__)


def phone_from_user_id(user_id: str) -> str:
    """Strip the transport suffix (``972501234567@c.us`` -> ``972501234567``)."""
    return user_id.split("@", 1)[0]


def build_request_payload(
    mappings: Iterable[FieldMapping], session: SurveySession, user_id: str
) -> dict[str, str]:
    """Build the JSON body for an external check from its field mappings.

    - ``question``: the normalized answer to ``source_value`` ("" if unanswered)
    - ``static``: ``source_value`` verbatim
    - ``phone``: the user's phone number
    """
    payload: dict[str, str] = {}
    for mapping in mappings:
        if mapping.source == MappingSource.QUESTION:
            answer = session.answer_for(mapping.source_value)
            payload[mapping.output_key] = answer.normalized_answer if answer else ""
        elif mapping.source == MappingSource.STATIC:
            payload[mapping.output_key] = mapping.source_value
        elif mapping.source == MappingSource.PHONE:
            payload[mapping.output_key] = phone_from_user_id(user_id)
    return payload


def _response_body(response: httpx.Response) -> Any:
    """Parsed JSON body, falling back to the raw text (None if empty)."""
    try:
        return response.json()
    except ValueError:
        return response.text or None


class ExternalCheckInvoker:
    """Executes external check calls and keeps their records current.

    Args:
        session_factory: opens a fresh ``AsyncSession`` per unit of work
        messenger: used for the best-effort failure notification; optional
        locks: the per-user locks shared with the dispatcher, so that a
            notification never interleaves with another reply to the user
        http_transport: optional ``httpx`` transport (tests inject a
            ``MockTransport``)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        messenger: Messenger | None = None,
        locks: UserLocks | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = constants.EXTERNAL_CHECK_TIMEOUT_SECONDS,
        stale_minutes: int = constants.STALE_CALL_MINUTES,
        max_attempts: int = constants.MAX_CALL_ATTEMPTS,
    ) -> None:
        self._session_factory = session_factory
        self._messenger = messenger
        self._locks = locks or UserLocks()
        self._http_transport = http_transport
        self._timeout = timeout
        self._stale_minutes = stale_minutes
        self._max_attempts = max_attempts
        self._calls = CallRepository()
        self._endpoints = EndpointRepository()
        # Call ids with an invocation running in this process
        self._in_flight: set[uuid.UUID] = set()
        self._tasks: set[asyncio.Task] = set()

    # ==================================================================
    # Background dispatch
    # ==================================================================

    def dispatch(self, call_id: uuid.UUID) -> None:
        """Schedule :meth:`invoke` without awaiting it."""
        task = asyncio.create_task(self._run(call_id), name=f"external-check-{call_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for every dispatched invocation to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def in_flight(self) -> frozenset[uuid.UUID]:
        return frozenset(self._in_flight)

    async def _run(self, call_id: uuid.UUID) -> None:
        try:
            await self.invoke(call_id)
        except Exception:
            logger.exception("External check %s crashed", call_id)

    # ==================================================================
    # Invocation
    # ==================================================================

    async def invoke(self, call_id: uuid.UUID) -> ExternalCheckCall | None:
        """Invoke a pending call and record its outcome.

        No-op (returns the call unchanged) unless the call is ``pending``;
        returns None if the call does not exist or is already in flight in
        this process.
        """
        if call_id in self._in_flight:
            logger.info("External check %s already in flight, skipping", call_id)
            return None
        self._in_flight.add(call_id)
        try:
            return await self._invoke(call_id)
        finally:
            self._in_flight.discard(call_id)

    async def _invoke(self, call_id: uuid.UUID) -> ExternalCheckCall | None:
        # --- Load the call and its endpoint (short read transaction) ---
        async with self._session_factory() as db:
            row = await self._calls.get(db, call_id)
            if row is None:
                logger.warning("External check %s not found", call_id)
                return None
            if row.status != CallStatus.PENDING:
                logger.info("External check %s is %s, nothing to do", call_id, row.status)
                return ExternalCheckCall.model_validate(row, from_attributes=True)
            endpoint = await self._endpoints.get(db, row.endpoint_id)
            url = endpoint.url if endpoint is not None and endpoint.active else None
            endpoint_id = row.endpoint_id
            payload = dict(row.request_payload or {})
            user_id = row.user_id

        # --- Call the endpoint (no transaction held) ---
        response_payload: Any = None
        error: str | None = None
        if url is None:
            error = f"API endpoint {endpoint_id} not found or inactive"
        else:
            response_payload, error = await self._post(url, payload)

        # --- Record the outcome ---
        async with self._session_factory() as db:
            row = await self._calls.get(db, call_id, for_update=True)
            if row is None or row.status != CallStatus.PENDING:
                # Expired by a sweep (or retried elsewhere) while we were waiting
                logger.warning(
                    "External check %s left pending during invocation, discarding result",
                    call_id,
                )
                return (
                    ExternalCheckCall.model_validate(row, from_attributes=True)
                    if row is not None else None
                )
            if error is None:
                await self._calls.mark_success(db, row, response_payload)
            else:
                await self._calls.mark_failed(db, row, error, response_payload)
            call = ExternalCheckCall.model_validate(row, from_attributes=True)
            await db.commit()

        if error is None:
            logger.info("External check %s succeeded", call_id)
        else:
            logger.warning("External check %s failed: %s", call_id, error)
            await self._notify_failure(user_id)
        return call

    async def _post(self, url: str, payload: dict[str, Any]) -> tuple[Any, str | None]:
        """POST ``payload`` as JSON; returns ``(response_body, error_or_None)``."""
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._http_transport
            ) as client:
                response = await client.post(url, json=payload)
        except httpx.TimeoutException:
            return None, f"Request timed out after {self._timeout:g}s"
        except httpx.HTTPError as exc:
            return None, f"Request failed: {exc.__class__.__name__}: {exc}"

        body = _response_body(response)
        if response.is_success:
            return body, None
        return body, f"Endpoint returned HTTP {response.status_code}"

    async def _notify_failure(self, user_id: str) -> None:
        if self._messenger is None:
            return
        async with self._locks.hold(user_id):
            await self._messenger.send(user_id, constants.CALL_FAILED_MESSAGE)

    # ==================================================================
    # Retry
    # ==================================================================

    async def retry_call(
        self, db: AsyncSession, call_id: uuid.UUID
    ) -> ExternalCheckCall:
        """Move a failed call back to ``pending`` within the caller's transaction.

        Raises:
            CallNotFound: no call with this id
            CallAlreadyPending: the call is pending (possibly in flight)
            InvalidCallTransition: the call already succeeded
        """
        row = await self._calls.get(db, call_id, for_update=True)
        if row is None:
            raise CallNotFound(call_id)
        if row.status == CallStatus.PENDING:
            raise CallAlreadyPending(call_id)
        if row.status != CallStatus.FAILED:
            raise InvalidCallTransition(call_id, CallStatus(row.status).value)
        await self._calls.reset_for_retry(db, row)
        return ExternalCheckCall.model_validate(row, from_attributes=True)

    async def retry(self, call_id: uuid.UUID) -> ExternalCheckCall:
        """Reset a failed call in its own transaction and dispatch it."""
        async with self._session_factory() as db:
            call = await self.retry_call(db, call_id)
            await db.commit()
        logger.info("External check %s reset for retry (attempt %d)", call_id, call.attempts)
        self.dispatch(call_id)
        return call

    # ==================================================================
    # Sweep
    # ==================================================================

    async def sweep(self, now: datetime | None = None) -> SweepReport:
        """Expire stale pending calls and re-dispatch retryable failures.

        1. ``pending`` calls dispatched more than ``stale_minutes`` ago that are
           not in flight here are marked ``failed`` ("no result received").
        2. ``failed`` calls with fewer than ``max_attempts`` attempts are
           reset to ``pending`` and dispatched.

        Users whose expired call will not be retried get the failure
        notification.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        cutoff = now - timedelta(minutes=self._stale_minutes)
        expired: dict[uuid.UUID, str] = {}
        retried: list[uuid.UUID] = []

        async with self._session_factory() as db:
            for row in await self._calls.list_stale_pending(db, dispatched_before=cutoff):
                if row.id in self._in_flight:
                    continue
                await self._calls.mark_failed(db, row, constants.STALE_CALL_ERROR)
                expired[row.id] = row.user_id
            for row in await self._calls.list_retryable(db, max_attempts=self._max_attempts):
                await self._calls.reset_for_retry(db, row)
                retried.append(row.id)
            await db.commit()

        for call_id in retried:
            self.dispatch(call_id)
        for call_id, user_id in expired.items():
            if call_id not in retried:
                await self._notify_failure(user_id)

        if expired or retried:
            logger.info(
                "Sweep: expired %d stale call(s), retried %d failed call(s)",
                len(expired), len(retried),
            )
        return SweepReport(expired=list(expired), retried=retried)

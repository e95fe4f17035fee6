"""ChannelSession — owns the messaging transport's connection lifecycle.

One ``ChannelSession`` exists per process; the server lifespan creates it
and injects it wherever a :class:`MessageChannel` is needed.  It tracks
the connection status shown on the dashboard and refuses to send while
the transport is not connected.

State transitions::

    disconnected --start()--> connecting --on_ready--> connected
    connecting   --on_qr_code--> awaiting_qr --on_ready--> connected
    connecting   --connect error--> failed
    connected    --on_disconnected / stop()--> disconnected
"""

from __future__ import annotations

import asyncio
import enum
import logging
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel

from survey_engine.errors import ChannelUnavailable
from survey_engine.interfaces import ChannelTransport, MessageChannel
from survey_engine.models.message import MediaPayload

logger = logging.getLogger(__name__)


class ChannelState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_QR = "awaiting_qr"
    CONNECTED = "connected"
    FAILED = "failed"


class ChannelStatus(BaseModel):
    """Connection status for the dashboard."""

    state: ChannelState = ChannelState.DISCONNECTED
    active: bool = False
    connected_phone: Optional[str] = None
    qr_code: Optional[str] = None
    error: Optional[str] = None
    last_connection: Optional[datetime] = None
    last_disconnection: Optional[datetime] = None


class ChannelSession(MessageChannel):
    """Supervises one transport connection.

    Args:
        transport: the concrete transport (e.g. ``CloudApiTransport``)
    """

    def __init__(self, transport: ChannelTransport) -> None:
        self._transport = transport
        self._status = ChannelStatus()
        self._start_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> ChannelStatus:
        """Connect the transport.  Idempotent while connected.

        A connection error is recorded on the status (state ``failed``)
        rather than raised, so the dashboard can display it.
        """
        async with self._start_lock:
            if self._status.state == ChannelState.CONNECTED:
                return self.get_status()
            self._update(state=ChannelState.CONNECTING, error=None)
            try:
                phone = await self._transport.connect()
            except Exception as exc:
                logger.exception("Channel connection failed")
                self._update(state=ChannelState.FAILED, active=False, error=str(exc))
                return self.get_status()
            self.on_ready(phone)
            return self.get_status()

    async def stop(self) -> ChannelStatus:
        try:
            await self._transport.disconnect()
        finally:
            self.on_disconnected("stopped")
        return self.get_status()

    def get_status(self) -> ChannelStatus:
        return self._status.model_copy()

    @property
    def is_connected(self) -> bool:
        return self._status.state == ChannelState.CONNECTED

    # ------------------------------------------------------------------
    # Transport events
    # ------------------------------------------------------------------

    def on_ready(self, phone: str) -> None:
        logger.info("Channel connected as %s", phone)
        self._update(
            state=ChannelState.CONNECTED,
            active=True,
            connected_phone=phone,
            qr_code=None,
            error=None,
            last_connection=datetime.now(timezone.utc),
        )

    def on_disconnected(self, reason: str) -> None:
        logger.warning("Channel disconnected: %s", reason)
        self._update(
            state=ChannelState.DISCONNECTED,
            active=False,
            qr_code=None,
            error=None if reason == "stopped" else reason,
            last_disconnection=datetime.now(timezone.utc),
        )

    def on_qr_code(self, data: str) -> None:
        logger.info("Channel awaiting QR pairing")
        self._update(state=ChannelState.AWAITING_QR, qr_code=data)

    # ------------------------------------------------------------------
    # MessageChannel
    # ------------------------------------------------------------------

    async def send_message(self, user_id: str, text: str) -> None:
        self._require_connected()
        await self._transport.send_message(user_id, text)

    async def download_media(self, media_id: str) -> MediaPayload:
        self._require_connected()
        return await self._transport.download_media(media_id)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_connected(self) -> None:
        if self._status.state != ChannelState.CONNECTED:
            raise ChannelUnavailable(self._status.state.value)

    def _update(self, **changes) -> None:
        self._status = self._status.model_copy(update=changes)

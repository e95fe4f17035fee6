"""WhatsApp Cloud API transport.

Implements :class:`ChannelTransport` over the Graph API with ``httpx``:

  - ``connect()`` looks up the configured phone number (validates the token)
  - ``send_message()`` POSTs a text message to ``/{phone_number_id}/messages``
  - ``download_media()`` resolves a media id to its URL, then fetches it

Inbound messages do not flow through the transport; Meta delivers them to
the ``/webhook`` route.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from survey_engine.errors import ChannelUnavailable
from survey_engine.interfaces import ChannelTransport
from survey_engine.invoker import phone_from_user_id
from survey_engine.models.message import MediaPayload

from survey_server.config import ServerSettings

logger = logging.getLogger(__name__)

_REQUEST_TIMEOUT_SECONDS = 15.0


class CloudApiTransport(ChannelTransport):
    """Small wrapper around the WhatsApp Cloud API.

    Args:
        settings: server settings carrying the token and phone number id
        http_transport: optional ``httpx`` transport (tests inject a
            ``MockTransport``)
    """

    def __init__(
        self,
        settings: ServerSettings,
        *,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token = settings.whatsapp_token
        self._phone_number_id = settings.whatsapp_phone_number_id
        self._base_url = (
            f"{settings.graph_api_base_url.rstrip('/')}/{settings.graph_api_version}"
        )
        self._http_transport = http_transport
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> str:
        if not self._token or not self._phone_number_id:
            raise RuntimeError("WhatsApp Cloud API credentials are not configured")
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={"Authorization": f"Bearer {self._token}"},
                timeout=_REQUEST_TIMEOUT_SECONDS,
                transport=self._http_transport,
            )
        response = await self._client.get(
            f"/{self._phone_number_id}", params={"fields": "display_phone_number"},
        )
        self._raise_for_status(response)
        data = response.json()
        return data.get("display_phone_number") or self._phone_number_id

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send_message(self, user_id: str, text: str) -> None:
        payload: dict[str, Any] = {
            "messaging_product": "whatsapp",
            "to": phone_from_user_id(user_id),
            "type": "text",
            "text": {"preview_url": False, "body": text},
        }
        logger.debug("Sending WhatsApp payload: %s", payload)
        response = await self._http.post(f"/{self._phone_number_id}/messages", json=payload)
        self._raise_for_status(response)

    async def download_media(self, media_id: str) -> MediaPayload:
        meta = await self._http.get(f"/{media_id}")
        self._raise_for_status(meta)
        info = meta.json()
        content = await self._http.get(info["url"])
        self._raise_for_status(content)
        return MediaPayload(
            data=content.content,
            mime_type=info.get("mime_type")
            or content.headers.get("content-type", "application/octet-stream"),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @property
    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            raise ChannelUnavailable("disconnected")
        return self._client

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError:
            logger.error(
                "WhatsApp API error: HTTP %d | Response: %s",
                response.status_code, response.text,
            )
            raise

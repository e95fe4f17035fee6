"""Abstract interfaces for the collaborators the survey engine talks to.

These ABCs define the contract that concrete implementations must fulfil.
The SDK ships a local filesystem :class:`MediaStore`
(``survey_engine.media``); the WhatsApp Cloud API transport lives in
``survey_server.transport``.

Typical wiring::

    transport = CloudApiTransport(settings)
    channel = ChannelSession(transport)       # implements MessageChannel
    messenger = Messenger(channel, session_factory)
    dispatcher = InboundDispatcher(engine, messenger, invoker, session_factory)

    await channel.start()
    # webhook handler:
    await dispatcher.on_message(user_id, text, has_media, channel.download_media)
"""

from abc import ABC, abstractmethod

from survey_engine.models.message import MediaPayload


class MessageChannel(ABC):
    """Outbound side of the messaging transport."""

    @abstractmethod
    async def send_message(self, user_id: str, text: str) -> None:
        """Deliver one text message to ``user_id``.

        Raises on delivery failure; callers log and carry on.
        """
        ...

    @abstractmethod
    async def download_media(self, media_id: str) -> MediaPayload:
        """Fetch the bytes of an inbound media attachment."""
        ...


class ChannelTransport(MessageChannel):
    """A connectable transport (one WhatsApp number)."""

    @abstractmethod
    async def connect(self) -> str:
        """Open the connection and return the connected phone number.

        Implementations that need an interactive pairing step may call the
        ``on_qr_code`` callback of the owning session before returning.
        """
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        ...


class MediaStore(ABC):
    """Durable storage for inbound media."""

    @abstractmethod
    async def save(self, user_id: str, media: MediaPayload) -> str:
        """Persist ``media`` and return a locator (e.g. ``/uploads/<file>``)."""
        ...

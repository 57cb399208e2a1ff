"""AI Session Connector: one outbound realtime speech AI connection.

The connector opens the socket with the configured credential, sends the
one-time ``session.update``, forwards caller audio as
``input_audio_buffer.append`` commands, and classifies everything the
service sends back. It never retries: if the connection fails, the call
ends.
"""

from __future__ import annotations

from typing import AsyncIterator, Callable

from loguru import logger
from websockets.exceptions import ConnectionClosed

from voxrelay.config import AIConfig
from voxrelay.core.events import AIEvent
from voxrelay.core.session_config import GreetingConfig, SessionConfiguration
from voxrelay.serializers.realtime import RealtimeSerializer
from voxrelay.transports.base import BaseTransport
from voxrelay.transports.websocket import WebSocketClientTransport

TransportFactory = Callable[[AIConfig], BaseTransport]


def realtime_transport(config: AIConfig) -> BaseTransport:
    """Build the client transport for the realtime API endpoint."""
    return WebSocketClientTransport(
        url=config.endpoint,
        headers={
            "Authorization": f"Bearer {config.api_key}",
            "OpenAI-Beta": config.beta_header,
        },
        open_timeout=config.handshake_timeout,
        ping_interval=20,
        ping_timeout=20,
    )


class AISessionConnector:
    """Owns exactly one connection to the speech AI service for a call.

    Args:
        config: AI connection settings (endpoint, credential, timeouts).
        serializer: Wire codec, defaults to :class:`RealtimeSerializer`.
        transport_factory: Builds the transport on :meth:`open`. Tests pass
            a factory returning an in-memory fake.
    """

    def __init__(
        self,
        config: AIConfig,
        serializer: RealtimeSerializer | None = None,
        transport_factory: TransportFactory = realtime_transport,
    ) -> None:
        self._config = config
        self._serializer = serializer or RealtimeSerializer()
        self._transport_factory = transport_factory
        self._transport: BaseTransport | None = None
        self._configured = False
        self._closed = False
        self.call_context: dict[str, str] = {}

    @property
    def is_open(self) -> bool:
        return (
            not self._closed
            and self._transport is not None
            and self._transport.is_connected()
        )

    @property
    def is_configured(self) -> bool:
        return self._configured

    async def open(self, call_context: dict[str, str] | None = None) -> None:
        """Connect to the AI service.

        Raises:
            RuntimeError: If the connector was already opened or closed.
            OSError, WebSocketException, TimeoutError: If the connection
                cannot be established.
        """
        if self._transport is not None or self._closed:
            raise RuntimeError("AI session connector can only be opened once")
        self.call_context = dict(call_context or {})
        self._transport = self._transport_factory(self._config)
        logger.info(
            f"Connecting to realtime AI (model={self._config.model}, "
            f"call={self.call_context.get('call_id', '')})"
        )
        await self._transport.connect()
        if self._closed:
            # close() ran while the handshake was in flight
            await self._transport.disconnect()

    async def send_configuration(self, config: SessionConfiguration) -> bool:
        """Send ``session.update``. Only the first call per connection sends."""
        if self._configured:
            logger.warning("Session configuration already sent; ignoring re-send")
            return False
        sent = await self._send(self._serializer.build_session_update(config))
        if sent:
            self._configured = True
        return sent

    async def send_audio(self, payload: str) -> bool:
        """Append one caller audio token to the AI input buffer.

        Readiness is the caller's concern; this only checks the socket.
        """
        return await self._send(self._serializer.build_audio_append(payload))

    async def send_greeting(self, greeting: GreetingConfig) -> bool:
        """Ask the agent to speak first (``response.create``)."""
        return await self._send(self._serializer.build_response_create(greeting))

    async def events(self) -> AsyncIterator[AIEvent]:
        """Yield classified AI events until the socket closes.

        Socket errors other than a close propagate to the owner.
        """
        if self._transport is None:
            return
        async for raw in self._transport:
            if self._closed:
                break
            try:
                event = await self._serializer.deserialize(raw)
            except (ValueError, UnicodeDecodeError) as e:
                logger.warning(f"Dropping malformed AI message: {e}")
                continue
            yield event

    async def close(self) -> None:
        """Close the AI connection. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._transport is not None:
            await self._transport.disconnect()

    async def _send(self, message: str) -> bool:
        if not self.is_open:
            return False
        try:
            await self._transport.send(message)
        except ConnectionClosed as e:
            logger.debug(f"AI socket closed while sending: {e}")
            return False
        return True

"""Telephony Session Connector: one inbound Twilio Media Stream."""

from __future__ import annotations

from typing import AsyncIterator

from loguru import logger
from websockets.exceptions import ConnectionClosed

from voxrelay.core.events import TelephonyEvent
from voxrelay.serializers.twilio import TwilioSerializer
from voxrelay.transports.base import BaseTransport


class TelephonySessionConnector:
    """Owns exactly one accepted telephony WebSocket.

    Inbound frames are parsed into telephony events; malformed frames are
    logged and dropped. Outbound audio is wrapped in Twilio's ``media``
    envelope. Sending on a closed socket is a silent no-op.
    """

    def __init__(
        self,
        transport: BaseTransport,
        serializer: TwilioSerializer | None = None,
    ) -> None:
        self._transport = transport
        self._serializer = serializer or TwilioSerializer()
        self._closed = False

    @property
    def is_open(self) -> bool:
        return not self._closed and self._transport.is_connected()

    async def on_message(self, raw: bytes | str | dict) -> TelephonyEvent | None:
        """Parse one raw frame. Returns None for frames that cannot be parsed."""
        try:
            return await self._serializer.deserialize(raw)
        except (ValueError, UnicodeDecodeError) as e:
            preview = raw[:100] if isinstance(raw, (str, bytes)) else raw
            logger.warning(f"Dropping malformed telephony frame: {e} ({preview!r})")
            return None

    async def events(self) -> AsyncIterator[TelephonyEvent]:
        """Yield parsed events until the socket closes or the connector is closed."""
        async for raw in self._transport:
            if self._closed:
                break
            event = await self.on_message(raw)
            if event is not None:
                yield event

    async def send_audio(self, stream_id: str, payload: str) -> bool:
        """Send one audio token to the caller. Returns False if nothing was sent."""
        if not self.is_open:
            return False
        message = self._serializer.build_media_message(stream_id, payload)
        try:
            await self._transport.send(message)
        except ConnectionClosed as e:
            logger.debug(f"Telephony socket closed while sending audio: {e}")
            return False
        return True

    async def close(self) -> None:
        """Close the telephony socket. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        await self._transport.disconnect()

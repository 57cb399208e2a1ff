"""Twilio Media Streams WebSocket serializer.

Translates between Twilio's Media Streams WebSocket protocol and VoxRelay's
telephony events. Audio payloads are base64-encoded mu-law at 8kHz; the
relay never decodes them; the token is passed through as a string.

Protocol reference:
    https://www.twilio.com/docs/voice/media-streams/websocket-messages
"""

from __future__ import annotations

import json

from voxrelay.core.events import (
    MediaReceived,
    StreamStarted,
    StreamStopped,
    TelephonyConnected,
    TelephonyEvent,
    TelephonyUnknown,
)
from voxrelay.serializers.base import BaseSerializer


class TwilioSerializer(BaseSerializer):
    """Serializer for the Twilio Media Streams WebSocket protocol.

    Twilio sends JSON messages with an ``event`` field that indicates the
    message type. Outbound audio is wrapped in a ``media`` message tagged
    with the stream SID.
    """

    @property
    def name(self) -> str:
        return "twilio"

    # ------------------------------------------------------------------
    # Deserialization (Twilio -> VoxRelay events)
    # ------------------------------------------------------------------

    async def deserialize(self, raw: bytes | str | dict) -> TelephonyEvent:
        """Parse a Twilio Media Streams message into a telephony event.

        Message types handled:
            * ``connected`` -- initial handshake acknowledgement.
            * ``start``     -- stream metadata; produces :class:`StreamStarted`.
            * ``media``     -- audio payload; produces :class:`MediaReceived`.
            * ``stop``      -- stream ended; produces :class:`StreamStopped`.

        Anything else (``dtmf``, ``mark``, future events) is surfaced as
        :class:`TelephonyUnknown`.
        """
        msg = self._parse_message(raw)
        event_name = msg.get("event", "")

        if event_name == "connected":
            return TelephonyConnected(
                protocol=str(msg.get("protocol", "")),
                version=str(msg.get("version", "")),
            )

        if event_name == "start":
            start_data = self._sub_object(msg, "start")
            return StreamStarted(
                stream_id=start_data.get("streamSid") or msg.get("streamSid", ""),
                call_id=start_data.get("callSid", ""),
                account_id=start_data.get("accountSid", ""),
                custom_parameters=start_data.get("customParameters") or {},
                media_format=start_data.get("mediaFormat") or {},
            )

        if event_name == "media":
            media_data = self._sub_object(msg, "media")
            return MediaReceived(
                payload=media_data.get("payload", ""),
                stream_id=msg.get("streamSid", ""),
            )

        if event_name == "stop":
            return StreamStopped(stream_id=msg.get("streamSid", ""))

        return TelephonyUnknown(name=str(event_name), payload=msg)

    # ------------------------------------------------------------------
    # Serialization (VoxRelay -> Twilio wire format)
    # ------------------------------------------------------------------

    def build_media_message(self, stream_id: str, payload: str) -> str:
        """Build an outbound ``media`` message carrying one audio token."""
        return json.dumps(
            {
                "event": "media",
                "streamSid": stream_id,
                "media": {
                    "payload": payload,
                },
            }
        )

    @staticmethod
    def _sub_object(msg: dict, key: str) -> dict:
        value = msg.get(key)
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ValueError(f"Twilio '{key}' field must be an object, got {type(value).__name__}")
        return value

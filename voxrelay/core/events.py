"""Event model for VoxRelay.

Both wire protocols are translated into these typed events before they
reach the call bridge. Telephony events come from the Twilio Media Streams
socket; AI events come from the realtime speech service socket. The bridge
dispatches on the event class. ``event_type`` carries the wire name where
the event has one.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class CallState(str, Enum):
    """Lifecycle of a single bridged call."""

    AWAITING_START = "awaiting_start"
    AI_CONNECTING = "ai_connecting"
    AI_HANDSHAKING = "ai_handshaking"
    ACTIVE = "active"
    TERMINATED = "terminated"


class EventType(str, Enum):
    # Telephony side
    CONNECTED = "connected"
    STREAM_STARTED = "start"
    MEDIA = "media"
    STREAM_STOPPED = "stop"
    TELEPHONY_UNKNOWN = "telephony_unknown"

    # AI side
    TRANSPORT_OPENED = "transport_opened"
    TRANSPORT_CLOSED = "transport_closed"
    SESSION_CREATED = "session.created"
    AUDIO_DELTA = "response.audio.delta"
    RESPONSE_DONE = "response.done"
    ITEM_CREATED = "conversation.item.created"
    AI_ERROR = "error"
    INFORMATIONAL = "informational"


class Event(BaseModel):
    """Base event that all VoxRelay events inherit from."""

    event_type: EventType
    timestamp: float = Field(default_factory=time.time)


# ---------------------------------------------------------------------------
# Telephony events
# ---------------------------------------------------------------------------


class TelephonyConnected(Event):
    """Twilio's initial handshake frame. Informational only."""

    event_type: EventType = EventType.CONNECTED
    protocol: str = ""
    version: str = ""


class StreamStarted(Event):
    """The media stream is live and its identifiers are known."""

    event_type: EventType = EventType.STREAM_STARTED
    stream_id: str = ""
    call_id: str = ""
    account_id: str = ""
    custom_parameters: dict[str, Any] = Field(default_factory=dict)
    media_format: dict[str, Any] = Field(default_factory=dict)


class MediaReceived(Event):
    """One frame of caller audio.

    ``payload`` is the base64 token exactly as it arrived on the wire.
    """

    event_type: EventType = EventType.MEDIA
    payload: str = ""
    stream_id: str = ""


class StreamStopped(Event):
    event_type: EventType = EventType.STREAM_STOPPED
    stream_id: str = ""


class TelephonyUnknown(Event):
    """A telephony frame with an event name the bridge does not handle."""

    event_type: EventType = EventType.TELEPHONY_UNKNOWN
    name: str = ""
    payload: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# AI events
# ---------------------------------------------------------------------------


class TransportOpened(Event):
    """The AI socket finished its transport-level handshake."""

    event_type: EventType = EventType.TRANSPORT_OPENED


class TransportClosed(Event):
    """The AI socket closed, failed to open, or errored."""

    event_type: EventType = EventType.TRANSPORT_CLOSED
    reason: str = "closed"
    error: str = ""


class SessionCreated(Event):
    event_type: EventType = EventType.SESSION_CREATED
    session: dict[str, Any] = Field(default_factory=dict)


class AudioDelta(Event):
    """An increment of synthesized audio, as an opaque base64 token."""

    event_type: EventType = EventType.AUDIO_DELTA
    delta: str = ""
    response_id: str = ""


class ResponseDone(Event):
    event_type: EventType = EventType.RESPONSE_DONE
    response: dict[str, Any] = Field(default_factory=dict)


class ConversationItemCreated(Event):
    event_type: EventType = EventType.ITEM_CREATED
    item: dict[str, Any] = Field(default_factory=dict)

    @property
    def text(self) -> str:
        """Text of the item's ``input_text``/``text`` content parts, space-joined."""
        contents = self.item.get("content")
        if not isinstance(contents, list):
            return ""
        parts = []
        for content in contents:
            if not isinstance(content, dict):
                continue
            if content.get("type") not in ("input_text", "text"):
                continue
            value = content.get("text") or content.get("transcript")
            if value and isinstance(value, str):
                parts.append(value)
        return " ".join(parts)


class AIError(Event):
    """An application-level error reported by the AI service."""

    event_type: EventType = EventType.AI_ERROR
    error: dict[str, Any] | str | None = None

    @property
    def message(self) -> str:
        if isinstance(self.error, dict):
            return str(self.error.get("message") or self.error)
        return str(self.error or "")


class AIInformational(Event):
    """Any AI event kind the bridge does not act on."""

    event_type: EventType = EventType.INFORMATIONAL
    kind: str = ""
    payload: dict[str, Any] = Field(default_factory=dict)


TelephonyEvent = (
    TelephonyConnected
    | StreamStarted
    | MediaReceived
    | StreamStopped
    | TelephonyUnknown
)

AIEvent = (
    TransportOpened
    | TransportClosed
    | SessionCreated
    | AudioDelta
    | ResponseDone
    | ConversationItemCreated
    | AIError
    | AIInformational
)

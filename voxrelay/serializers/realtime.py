"""Realtime speech AI WebSocket serializer.

Translates between the OpenAI Realtime API event protocol and VoxRelay's AI
events. Every message is a JSON object with a ``type`` discriminant.

Protocol reference:
    https://platform.openai.com/docs/api-reference/realtime
"""

from __future__ import annotations

import json

from voxrelay.core.events import (
    AIError,
    AIEvent,
    AIInformational,
    AudioDelta,
    ConversationItemCreated,
    ResponseDone,
    SessionCreated,
)
from voxrelay.core.session_config import GreetingConfig, SessionConfiguration
from voxrelay.serializers.base import BaseSerializer


class RealtimeSerializer(BaseSerializer):
    """Serializer for the realtime speech AI protocol."""

    @property
    def name(self) -> str:
        return "openai_realtime"

    # ------------------------------------------------------------------
    # Deserialization (AI service -> VoxRelay events)
    # ------------------------------------------------------------------

    async def deserialize(self, raw: bytes | str | dict) -> AIEvent:
        """Classify an AI service message by its ``type`` field.

        Message types handled:
            * ``session.created``           -> :class:`SessionCreated`
            * ``response.audio.delta``      -> :class:`AudioDelta`
            * ``response.done``             -> :class:`ResponseDone`
            * ``conversation.item.created`` -> :class:`ConversationItemCreated`
            * ``error``                     -> :class:`AIError`

        Every other type becomes :class:`AIInformational` so that new
        server events never break the relay.
        """
        msg = self._parse_message(raw)
        msg_type = msg.get("type", "")

        if msg_type == "session.created":
            return SessionCreated(session=msg.get("session") or {})

        if msg_type == "response.audio.delta":
            return AudioDelta(
                delta=msg.get("delta", ""),
                response_id=msg.get("response_id", ""),
            )

        if msg_type == "response.done":
            return ResponseDone(response=msg.get("response") or {})

        if msg_type == "conversation.item.created":
            return ConversationItemCreated(item=msg.get("item") or {})

        if msg_type == "error":
            error = msg.get("error")
            if error is not None and not isinstance(error, (dict, str)):
                error = str(error)
            return AIError(error=error)

        return AIInformational(kind=str(msg_type), payload=msg)

    # ------------------------------------------------------------------
    # Client commands (VoxRelay -> AI service)
    # ------------------------------------------------------------------

    def build_session_update(self, config: SessionConfiguration) -> str:
        return json.dumps({"type": "session.update", "session": config.to_wire()})

    def build_audio_append(self, payload: str) -> str:
        return json.dumps({"type": "input_audio_buffer.append", "audio": payload})

    def build_response_create(self, greeting: GreetingConfig) -> str:
        """Build the ``response.create`` that asks the agent to speak first."""
        return json.dumps({"type": "response.create", "response": greeting.to_wire()})

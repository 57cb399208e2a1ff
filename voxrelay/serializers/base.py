"""Base serializer interface for VoxRelay.

Serializers are pure message translators with no I/O - they convert between
a peer's wire format and VoxRelay's typed events. Each side of the relay
(telephony and AI) has exactly one serializer.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any

from voxrelay.core.events import Event


class BaseSerializer(ABC):
    """Abstract base class for wire protocol serializers.

    Key principles:
    - Serializers do NO I/O (no network calls, no file access)
    - They keep no call state (that lives in the CallBridge)
    - Unknown message kinds map to an informational event, never an error
    """

    @abstractmethod
    async def deserialize(self, raw: bytes | str | dict) -> Event:
        """Parse one raw frame into a VoxRelay event.

        Args:
            raw: The raw WebSocket frame. Could be:
                - bytes: UTF-8 encoded JSON
                - str: JSON text message
                - dict: already-parsed JSON

        Raises:
            ValueError: If the frame is not a JSON object.
        """
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name of this serializer (e.g., 'twilio')."""
        ...

    @staticmethod
    def _parse_message(raw: bytes | str | dict) -> dict[str, Any]:
        """Normalise the raw WebSocket frame into a dict."""
        if isinstance(raw, dict):
            return raw
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        msg = json.loads(raw)
        if not isinstance(msg, dict):
            raise ValueError(f"Expected a JSON object, got {type(msg).__name__}")
        return msg

"""Realtime AI session settings.

``SessionConfiguration`` is the payload of the one ``session.update`` sent
on every AI connection. ``GreetingConfig`` describes the ``response.create``
that makes the agent speak first, so the caller does not sit in silence.
Both are frozen: a call never mutates the settings it was opened with.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


DEFAULT_INSTRUCTIONS = (
    "You are a friendly voice assistant answering a phone call. "
    "Greet the caller as soon as the call connects, keep your answers short "
    "and conversational, and confirm important details back to the caller."
)

DEFAULT_GREETING = (
    'Say the greeting immediately: "Hi! Thanks for calling. How can I help you today?"'
)


class TurnDetection(BaseModel):
    """Server-side voice activity detection parameters."""

    model_config = ConfigDict(frozen=True)

    type: str = "server_vad"
    threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    prefix_padding_ms: int = Field(default=300, ge=0)
    silence_duration_ms: int = Field(default=500, ge=0)


class SessionConfiguration(BaseModel):
    """How the AI service should behave for a call.

    Field names follow the realtime API's ``session`` object so the model
    serializes straight onto the wire.
    """

    model_config = ConfigDict(frozen=True)

    modalities: tuple[Literal["audio", "text"], ...] = ("audio", "text")
    instructions: str = DEFAULT_INSTRUCTIONS
    voice: str = "alloy"
    input_audio_format: str = "g711_ulaw"
    output_audio_format: str = "g711_ulaw"
    turn_detection: TurnDetection = Field(default_factory=TurnDetection)
    tool_choice: str = "none"
    temperature: float = Field(default=0.8, ge=0.0, le=2.0)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class GreetingConfig(BaseModel):
    """The synthetic first turn issued once the AI session is ready."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    modalities: tuple[Literal["audio", "text"], ...] = ("audio", "text")
    instructions: str = DEFAULT_GREETING

    def to_wire(self) -> dict[str, Any]:
        return {
            "modalities": list(self.modalities),
            "instructions": self.instructions,
        }

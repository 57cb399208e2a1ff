"""CallBridge - the per-call coordinator.

One CallBridge exists per accepted telephony connection. It owns the
Telephony Session Connector from the start and, once Twilio sends the
``start`` event, exactly one AI Session Connector. It runs up to three
tasks per call:

1. telephony loop (``run``): Twilio socket -> events -> bridge
2. AI loop: AI socket -> events -> bridge
3. handshake watchdog: ends the call if the AI session is not ready in time

Every state transition happens under one per-bridge lock, so events from
the two sockets never interleave inside a transition. Any terminal
transition goes through ``terminate``, which closes both connectors.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import Any, Awaitable, Callable

from loguru import logger
from websockets.exceptions import WebSocketException

from voxrelay.config import RelayConfig
from voxrelay.connectors.ai import AISessionConnector
from voxrelay.connectors.telephony import TelephonySessionConnector
from voxrelay.core.events import (
    AIError,
    AIEvent,
    AIInformational,
    AudioDelta,
    CallState,
    ConversationItemCreated,
    MediaReceived,
    ResponseDone,
    SessionCreated,
    StreamStarted,
    StreamStopped,
    TelephonyConnected,
    TelephonyEvent,
    TransportClosed,
    TransportOpened,
)

# Type for hook callbacks; each receives the bridge first
EventHandler = Callable[..., Awaitable[Any]]
AIConnectorFactory = Callable[[RelayConfig], AISessionConnector]


def default_ai_connector(config: RelayConfig) -> AISessionConnector:
    return AISessionConnector(config.ai)


class CallBridge:
    """Couples one telephony stream to one realtime AI session.

    Args:
        telephony: Connector for the already-accepted telephony socket.
        config: Relay configuration; ``session``, ``greeting`` and
            ``ai.handshake_timeout`` are read per call.
        ai_connector_factory: Creates the AI connector on stream start.
        hooks: Observer callbacks keyed by hook name (``on_call_start``,
            ``on_call_end``, ``on_transcript``). Hooks run inside the
            bridge's critical section and must not call back into it.
    """

    def __init__(
        self,
        telephony: TelephonySessionConnector,
        config: RelayConfig,
        ai_connector_factory: AIConnectorFactory = default_ai_connector,
        hooks: dict[str, list[EventHandler]] | None = None,
    ) -> None:
        self.bridge_id = str(uuid.uuid4())
        self.stream_id = ""
        self.call_id = ""
        self.state = CallState.AWAITING_START
        self.telephony = telephony
        self.ai: AISessionConnector | None = None

        self._config = config
        self._ai_connector_factory = ai_connector_factory
        self._hooks = hooks or {}
        self._lock = asyncio.Lock()
        self._ready = asyncio.Event()
        self._ai_task: asyncio.Task | None = None
        self._watchdog: asyncio.Task | None = None

        # Call stats
        self.frames_in = 0
        self.frames_out = 0
        self.frames_dropped = 0
        self.started_at = time.time()
        self.ended_at: float | None = None
        self.end_reason = ""

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self.state is not CallState.TERMINATED

    @property
    def duration_ms(self) -> int:
        """Call duration in milliseconds."""
        end = self.ended_at or time.time()
        return int((end - self.started_at) * 1000)

    def snapshot(self) -> dict[str, Any]:
        """Plain-dict view of the call for status reporting."""
        return {
            "bridge_id": self.bridge_id,
            "stream_id": self.stream_id,
            "call_id": self.call_id,
            "state": self.state.value,
            "frames_in": self.frames_in,
            "frames_out": self.frames_out,
            "frames_dropped": self.frames_dropped,
            "duration_ms": self.duration_ms,
            "end_reason": self.end_reason,
        }

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Serve the call until either side ends it."""
        logger.info(f"Call bridge created: {self.bridge_id}")
        reason = "telephony_closed"
        try:
            async for event in self.telephony.events():
                await self.on_telephony_event(event)
                if self.state is CallState.TERMINATED:
                    break
        except (OSError, WebSocketException) as e:
            logger.error(f"Telephony socket error on {self.bridge_id}: {e}")
            reason = "telephony_error"
        finally:
            await self.terminate(reason)
            await self._cancel_tasks()
            await self._fire("on_call_end")
            logger.info(
                f"Call bridge ended: {self.bridge_id} stream={self.stream_id} "
                f"reason={self.end_reason} (duration: {self.duration_ms}ms, "
                f"in={self.frames_in}, out={self.frames_out}, "
                f"dropped={self.frames_dropped})"
            )

    # ------------------------------------------------------------------
    # Telephony side
    # ------------------------------------------------------------------

    async def on_telephony_event(self, event: TelephonyEvent) -> None:
        """Apply one telephony event to the call."""
        async with self._lock:
            if isinstance(event, MediaReceived):
                await self._forward_caller_audio(event)

            elif isinstance(event, StreamStarted):
                await self._start_stream(event)

            elif isinstance(event, StreamStopped):
                logger.info(f"Stream stopped: {self.stream_id}")
                await self._terminate_locked("stream_stopped")

            elif isinstance(event, TelephonyConnected):
                logger.info(f"Telephony stream connected: {self.bridge_id}")

            else:
                logger.debug(f"Ignoring telephony event: {getattr(event, 'name', event)}")

    async def _start_stream(self, event: StreamStarted) -> None:
        if self.state is not CallState.AWAITING_START:
            logger.warning(
                f"Ignoring start for stream {event.stream_id!r}: bridge "
                f"{self.bridge_id} is already {self.state.value}"
            )
            return

        self.stream_id = event.stream_id
        self.call_id = event.call_id
        self.state = CallState.AI_CONNECTING
        logger.info(f"Stream started: {self.stream_id} for call: {self.call_id}")

        self.ai = self._ai_connector_factory(self._config)
        self._ai_task = asyncio.create_task(self._run_ai(self.ai))
        self._watchdog = asyncio.create_task(self._handshake_watchdog())
        await self._fire("on_call_start")

    async def _forward_caller_audio(self, event: MediaReceived) -> None:
        # Audio that arrives before the AI session is ready is dropped, not queued
        if self.state is not CallState.ACTIVE or self.ai is None:
            self.frames_dropped += 1
            return
        if await self.ai.send_audio(event.payload):
            self.frames_in += 1
        else:
            self.frames_dropped += 1

    # ------------------------------------------------------------------
    # AI side
    # ------------------------------------------------------------------

    async def _run_ai(self, ai: AISessionConnector) -> None:
        """Open the AI connection and feed its events into the bridge."""
        try:
            await ai.open({"call_id": self.call_id, "stream_id": self.stream_id})
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            logger.error(f"Failed to connect to realtime AI for {self.stream_id}: {e}")
            await self.on_ai_event(TransportClosed(reason="connect_failed", error=str(e)))
            return

        await self.on_ai_event(TransportOpened())

        closed = TransportClosed(reason="closed")
        try:
            async for event in ai.events():
                await self.on_ai_event(event)
                if self.state is CallState.TERMINATED:
                    return
        except (OSError, WebSocketException) as e:
            logger.error(f"Realtime AI socket error for {self.stream_id}: {e}")
            closed = TransportClosed(reason="error", error=str(e))
        except Exception as e:
            # Any handler failure ends the call
            logger.exception(f"Error handling realtime AI event for {self.stream_id}: {e}")
            closed = TransportClosed(reason="error", error=str(e))
        await self.on_ai_event(closed)

    async def on_ai_event(self, event: AIEvent) -> None:
        """Apply one AI-side event to the call."""
        async with self._lock:
            if isinstance(event, AudioDelta):
                await self._forward_ai_audio(event)

            elif isinstance(event, TransportOpened):
                await self._configure_session()

            elif isinstance(event, SessionCreated):
                await self._activate()

            elif isinstance(event, ResponseDone):
                logger.info(f"AI response completed: {self.stream_id}")

            elif isinstance(event, ConversationItemCreated):
                text = event.text
                if text:
                    logger.info(f"Caller said ({self.stream_id}): {text}")
                    await self._fire("on_transcript", text)

            elif isinstance(event, AIError):
                logger.error(f"Realtime AI error on {self.stream_id}: {event.message}")

            elif isinstance(event, TransportClosed):
                if self.state is not CallState.TERMINATED:
                    logger.info(
                        f"Realtime AI connection {event.reason} for {self.stream_id}"
                        + (f": {event.error}" if event.error else "")
                    )
                    await self._terminate_locked(f"ai_{event.reason}")

            elif isinstance(event, AIInformational):
                logger.debug(f"Realtime AI event: {event.kind}")

    async def _configure_session(self) -> None:
        if self.state is not CallState.AI_CONNECTING or self.ai is None:
            return
        await self.ai.send_configuration(self._config.session)
        self.state = CallState.AI_HANDSHAKING
        logger.info(f"Realtime AI connected, session configured: {self.stream_id}")

    async def _activate(self) -> None:
        if self.state is not CallState.AI_HANDSHAKING or self.ai is None:
            logger.warning(
                f"Unexpected session.created on {self.bridge_id} in state {self.state.value}"
            )
            return
        self.state = CallState.ACTIVE
        self._ready.set()
        logger.info(f"Realtime AI session ready: {self.stream_id}")

        if self._config.greeting.enabled:
            await self.ai.send_greeting(self._config.greeting)
            logger.debug(f"Greeting requested: {self.stream_id}")

    async def _forward_ai_audio(self, event: AudioDelta) -> None:
        if not self.stream_id or not self.telephony.is_open:
            self.frames_dropped += 1
            return
        if await self.telephony.send_audio(self.stream_id, event.delta):
            self.frames_out += 1
        else:
            self.frames_dropped += 1

    async def _handshake_watchdog(self) -> None:
        timeout = self._config.ai.handshake_timeout
        try:
            await asyncio.wait_for(self._ready.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            async with self._lock:
                if self.state is CallState.TERMINATED:
                    return
                logger.error(
                    f"Realtime AI session not ready after {timeout}s: {self.stream_id}"
                )
                await self._terminate_locked("handshake_timeout")

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def terminate(self, reason: str = "terminated") -> None:
        """End the call and close both connections. Idempotent."""
        async with self._lock:
            await self._terminate_locked(reason)

    async def _terminate_locked(self, reason: str) -> None:
        if self.state is CallState.TERMINATED:
            return
        self.state = CallState.TERMINATED
        self.end_reason = reason
        self.ended_at = time.time()

        watchdog = self._watchdog
        if watchdog is not None and watchdog is not asyncio.current_task():
            watchdog.cancel()

        if self.ai is not None:
            await self.ai.close()
        await self.telephony.close()

    async def _cancel_tasks(self) -> None:
        current = asyncio.current_task()
        tasks = [
            t for t in (self._ai_task, self._watchdog)
            if t is not None and t is not current and not t.done()
        ]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    async def _fire(self, name: str, *args: Any) -> None:
        for handler in self._hooks.get(name, []):
            try:
                await handler(self, *args)
            except Exception as e:
                logger.error(f"{name} handler error: {e}")

"""VoxRelay - listener and per-call bridge factory.

The VoxRelay class accepts Twilio Media Stream connections and gives
each one its own CallBridge. It also carries the decorator API for call
lifecycle hooks.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

from loguru import logger

from voxrelay.bridge import AIConnectorFactory, CallBridge, EventHandler, default_ai_connector
from voxrelay.config import RelayConfig, load_config
from voxrelay.connectors.telephony import TelephonySessionConnector
from voxrelay.session import BridgeStore
from voxrelay.transports.base import BaseTransport
from voxrelay.transports.websocket import WebSocketServer


class VoxRelay:
    """Telephony to realtime-AI voice relay.

    Usage (config-driven):
        relay = VoxRelay("relay.yaml")
        relay.run()

    Usage (programmatic):
        relay = VoxRelay({"api_key": "sk-...", "listen_port": 8080})

        @relay.on_call_start
        async def handle_call(bridge):
            print(f"Call {bridge.call_id} on stream {bridge.stream_id}")

        @relay.on_transcript
        async def handle_text(bridge, text):
            print(f"Caller said: {text}")

        relay.run()
    """

    def __init__(
        self,
        config: RelayConfig | dict | str | Path | None = None,
        ai_connector_factory: AIConnectorFactory = default_ai_connector,
    ) -> None:
        self.config = load_config(config)
        self.bridges = BridgeStore()
        self._ai_connector_factory = ai_connector_factory

        # Event handlers
        self._handlers: dict[str, list[EventHandler]] = {
            "on_call_start": [],
            "on_call_end": [],
            "on_transcript": [],
        }

        self._server: WebSocketServer | None = None

    # ------------------------------------------------------------------
    # Decorator API for event handlers
    # ------------------------------------------------------------------

    def on_call_start(self, fn: EventHandler) -> EventHandler:
        """Register a handler for stream start.

        The handler receives (bridge: CallBridge).
        """
        self._handlers["on_call_start"].append(fn)
        return fn

    def on_call_end(self, fn: EventHandler) -> EventHandler:
        """Register a handler for call end.

        The handler receives (bridge: CallBridge) after both sockets closed.
        """
        self._handlers["on_call_end"].append(fn)
        return fn

    def on_transcript(self, fn: EventHandler) -> EventHandler:
        """Register a handler for conversation text.

        The handler receives (bridge: CallBridge, text: str).
        """
        self._handlers["on_transcript"].append(fn)
        return fn

    # ------------------------------------------------------------------
    # Main run loop
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Start the relay (blocking). Runs the asyncio event loop."""
        self.config.validate_for_run()
        logger.info(f"VoxRelay starting: AI key {self.config.ai.masked_api_key}")
        try:
            asyncio.run(self.run_async())
        except KeyboardInterrupt:
            logger.info("VoxRelay stopped by user")

    async def run_async(self) -> None:
        """Start the relay (async). Use this if you manage your own event loop."""
        listener = self.config.listener
        self._server = WebSocketServer(
            host=listener.host,
            port=listener.port,
            path=listener.path,
            handler=self.handle_telephony_connection,
        )
        try:
            await self._server.serve_forever()
        finally:
            await self.bridges.terminate_all()

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    def create_bridge(self, transport: BaseTransport) -> CallBridge:
        """Build the CallBridge for a newly accepted telephony connection."""
        return CallBridge(
            TelephonySessionConnector(transport),
            self.config,
            ai_connector_factory=self._ai_connector_factory,
            hooks=self._handlers,
        )

    async def handle_telephony_connection(self, transport: BaseTransport) -> None:
        """Serve one inbound Twilio Media Stream until the call ends."""
        logger.info("New Twilio Media Stream connection established")
        bridge = self.bridges.add(self.create_bridge(transport))
        try:
            await bridge.run()
        finally:
            self.bridges.remove(bridge.bridge_id)

    def status(self) -> dict[str, Any]:
        return {
            "active_calls": self.bridges.active_count,
            "calls": [b.snapshot() for b in self.bridges.all_bridges],
        }

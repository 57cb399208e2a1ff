"""Registry of live call bridges.

The store exists for status reporting and shutdown only; a CallBridge
never looks up another call through it.
"""

from __future__ import annotations

from loguru import logger

from voxrelay.bridge import CallBridge


class BridgeStore:
    """Store for the call bridges of one relay process."""

    def __init__(self) -> None:
        self._bridges: dict[str, CallBridge] = {}

    def add(self, bridge: CallBridge) -> CallBridge:
        self._bridges[bridge.bridge_id] = bridge
        logger.debug(f"Bridge registered: {bridge.bridge_id}")
        return bridge

    def remove(self, bridge_id: str) -> None:
        """Forget a bridge once its call has ended."""
        bridge = self._bridges.pop(bridge_id, None)
        if bridge:
            logger.debug(f"Bridge removed: {bridge_id} (duration: {bridge.duration_ms}ms)")

    @property
    def active_count(self) -> int:
        """Number of calls that have not terminated."""
        return sum(1 for b in self._bridges.values() if b.is_active)

    @property
    def all_bridges(self) -> list[CallBridge]:
        return list(self._bridges.values())

    async def terminate_all(self, reason: str = "shutdown") -> None:
        """End every call, e.g. on process shutdown."""
        for bridge in self.all_bridges:
            await bridge.terminate(reason)

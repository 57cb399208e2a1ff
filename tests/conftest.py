"""Shared fakes for VoxRelay tests.

FakeTransport stands in for a WebSocket: tests push inbound frames with
``feed`` and read what the code under test sent from ``sent``.
"""

import asyncio
import json

import pytest
from websockets.exceptions import ConnectionClosed

from voxrelay.config import AIConfig, RelayConfig
from voxrelay.connectors.ai import AISessionConnector
from voxrelay.transports.base import BaseTransport

_CLOSE = object()


class FakeTransport(BaseTransport):

    def __init__(self, connected: bool = False, connect_error: Exception | None = None):
        self.sent: list[str] = []
        self.inbox: asyncio.Queue = asyncio.Queue()
        self.connected = connected
        self.connect_error = connect_error
        self.connect_gate: asyncio.Event | None = None
        self.connect_calls = 0
        self.disconnect_calls = 0

    async def connect(self, **kwargs) -> None:
        self.connect_calls += 1
        if self.connect_gate is not None:
            await self.connect_gate.wait()
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    async def send(self, data: bytes | str) -> None:
        if not self.connected:
            raise ConnectionClosed(None, None)
        self.sent.append(data)

    async def recv(self) -> bytes | str:
        item = await self.inbox.get()
        if item is _CLOSE:
            self.connected = False
            raise ConnectionClosed(None, None)
        return item

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        if self.connected:
            self.connected = False
            self.inbox.put_nowait(_CLOSE)

    def is_connected(self) -> bool:
        return self.connected

    # Test helpers

    def feed(self, msg: dict | str | bytes) -> None:
        self.inbox.put_nowait(json.dumps(msg) if isinstance(msg, dict) else msg)

    def close_from_peer(self) -> None:
        self.inbox.put_nowait(_CLOSE)

    @property
    def sent_json(self) -> list[dict]:
        return [json.loads(m) for m in self.sent]

    def sent_types(self, key: str = "type") -> list[str]:
        return [m.get(key) for m in self.sent_json]


async def wait_until(predicate, timeout: float = 1.0) -> None:
    """Yield to the event loop until ``predicate()`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.001)


class ConnectorFactory:
    """AI connector factory that records every connector it builds."""

    def __init__(self, transport: FakeTransport | None = None):
        self.transport = transport or FakeTransport()
        self.created: list[AISessionConnector] = []

    def __call__(self, config: RelayConfig) -> AISessionConnector:
        connector = AISessionConnector(config.ai, transport_factory=lambda _: self.transport)
        self.created.append(connector)
        return connector


@pytest.fixture
def relay_config():
    return RelayConfig(ai=AIConfig(api_key="sk-test-0123456789", handshake_timeout=2.0))


@pytest.fixture
def telephony_transport():
    return FakeTransport(connected=True)


@pytest.fixture
def ai_factory():
    return ConnectorFactory()

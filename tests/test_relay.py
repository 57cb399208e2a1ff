"""Tests for the VoxRelay listener, bridge store, server and CLI."""

import asyncio
import json
import sys
from http import HTTPStatus
from types import SimpleNamespace

import pytest
from loguru import logger

from conftest import ConnectorFactory, FakeTransport, wait_until
from voxrelay.cli import main
from voxrelay.config import DEFAULT_CONFIG_YAML
from voxrelay.core.events import CallState
from voxrelay.relay import VoxRelay
from voxrelay.session import BridgeStore
from voxrelay.transports.websocket import WebSocketServer


START = {"event": "start", "start": {"streamSid": "S1", "callSid": "CA1"}}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("PORT", raising=False)


@pytest.fixture
def factory():
    return ConnectorFactory()


@pytest.fixture
def relay(factory):
    return VoxRelay({"api_key": "sk-test-0123456789"}, ai_connector_factory=factory)


class TestVoxRelay:

    def test_handler_registration(self, relay):
        @relay.on_call_start
        async def started(bridge):
            pass

        @relay.on_transcript
        async def text(bridge, value):
            pass

        assert relay._handlers["on_call_start"] == [started]
        assert relay._handlers["on_transcript"] == [text]
        assert relay._handlers["on_call_end"] == []

    def test_each_connection_gets_its_own_bridge(self, relay):
        first = relay.create_bridge(FakeTransport(connected=True))
        second = relay.create_bridge(FakeTransport(connected=True))
        assert first is not second
        assert first.bridge_id != second.bridge_id
        assert first.telephony is not second.telephony

    @pytest.mark.asyncio
    async def test_call_lifecycle(self, relay, factory):
        events = []

        @relay.on_call_start
        async def started(bridge):
            events.append(("start", bridge.call_id))

        @relay.on_call_end
        async def ended(bridge):
            events.append(("end", bridge.end_reason))

        telephony = FakeTransport(connected=True)
        task = asyncio.create_task(relay.handle_telephony_connection(telephony))
        telephony.feed(START)
        await wait_until(lambda: factory.transport.connected)
        factory.transport.feed({"type": "session.created"})

        await wait_until(lambda: relay.status()["calls"] and relay.status()["calls"][0]["state"] == "active")
        assert relay.bridges.active_count == 1
        assert [b.stream_id for b in relay.bridges.all_bridges] == ["S1"]

        telephony.close_from_peer()
        await asyncio.wait_for(task, timeout=1.0)

        assert events == [("start", "CA1"), ("end", "telephony_closed")]
        assert relay.bridges.all_bridges == []
        assert factory.transport.disconnect_calls == 1

    def test_run_requires_api_key(self, factory):
        relay = VoxRelay({}, ai_connector_factory=factory)
        with pytest.raises(ValueError):
            relay.run()


class TestBridgeStore:

    @pytest.mark.asyncio
    async def test_add_remove(self, relay):
        store = BridgeStore()
        bridge = store.add(relay.create_bridge(FakeTransport(connected=True)))
        assert store.all_bridges == [bridge]
        assert store.active_count == 1
        store.remove(bridge.bridge_id)
        store.remove(bridge.bridge_id)
        assert store.all_bridges == []
        assert store.active_count == 0

    @pytest.mark.asyncio
    async def test_terminate_all(self, relay):
        store = BridgeStore()
        transports = [FakeTransport(connected=True) for _ in range(2)]
        for transport in transports:
            store.add(relay.create_bridge(transport))
        await store.terminate_all()
        assert store.active_count == 0
        assert all(b.state is CallState.TERMINATED for b in store.all_bridges)
        assert [t.disconnect_calls for t in transports] == [1, 1]


class TestWebSocketServer:

    def test_accepts_configured_path(self):
        server = WebSocketServer(path="/twilio-stream")
        assert server.accepts_path("/twilio-stream")
        assert server.accepts_path("/twilio-stream/")
        assert server.accepts_path("/twilio-stream?token=abc")
        assert not server.accepts_path("/other")
        assert not server.accepts_path("/twilio-stream-2")

    def test_root_path_accepts_everything(self):
        server = WebSocketServer(path="/")
        assert server.accepts_path("/anything")

    def test_unknown_path_rejected_before_upgrade(self):
        class Connection:
            def __init__(self):
                self.responses = []

            def respond(self, status, text):
                self.responses.append((status, text))
                return "404 response"

        server = WebSocketServer(path="/twilio-stream")
        connection = Connection()

        assert server._process_request(connection, SimpleNamespace(path="/twilio-stream")) is None
        assert connection.responses == []

        assert server._process_request(connection, SimpleNamespace(path="/other")) == "404 response"
        assert connection.responses == [(HTTPStatus.NOT_FOUND, "Not Found\n")]


class TestServer:

    @pytest.fixture
    def client(self, relay):
        pytest.importorskip("fastapi")
        pytest.importorskip("httpx")
        from fastapi.testclient import TestClient

        from voxrelay.server import create_app

        with TestClient(create_app(relay=relay)) as client:
            yield client

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "active_calls": 0}

    def test_status(self, client):
        body = client.get("/status").json()
        assert body["listen_path"] == "/twilio-stream"
        assert body["calls"] == []

    def test_stop_closes_media_stream(self, client):
        from starlette.websockets import WebSocketDisconnect

        with client.websocket_connect("/twilio-stream") as ws:
            ws.send_text(json.dumps({"event": "connected", "protocol": "Call"}))
            ws.send_text(json.dumps({"event": "stop", "streamSid": "S1"}))
            with pytest.raises(WebSocketDisconnect):
                ws.receive_text()
        assert client.get("/health").json()["active_calls"] == 0


class TestCLI:

    def test_init_writes_template(self, tmp_path):
        output = tmp_path / "relay.yaml"
        main(["init", "--output", str(output)])
        assert output.read_text() == DEFAULT_CONFIG_YAML

    def test_init_refuses_overwrite(self, tmp_path):
        output = tmp_path / "relay.yaml"
        output.write_text("keep")
        with pytest.raises(SystemExit):
            main(["init", "--output", str(output)])
        assert output.read_text() == "keep"
        main(["init", "--output", str(output), "--force"])
        assert output.read_text() == DEFAULT_CONFIG_YAML

    def test_check_masks_key(self, tmp_path, capsys):
        path = tmp_path / "relay.yaml"
        path.write_text("ai:\n  api_key: sk-1234567890secret\n")
        main(["check", "--config", str(path)])
        out = capsys.readouterr().out
        assert "sk-1234567..." in out
        assert "secret" not in out

    def test_check_without_key_exits(self):
        with pytest.raises(SystemExit) as exc:
            main(["check"])
        assert exc.value.code == 1

    @pytest.fixture
    def restore_logging(self):
        yield
        logger.remove()
        logger.add(sys.__stderr__)

    def test_run_without_fastapi_uses_plain_server(self, monkeypatch, restore_logging):
        from voxrelay import server

        served = []
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test-0123456789")
        monkeypatch.setattr(server, "_fastapi_available", lambda: False)
        monkeypatch.setattr(VoxRelay, "run", lambda self: served.append(self.config.listener.port))
        main(["run"])
        assert served == [8080]

    def test_run_does_not_fall_back_when_server_fails(self, monkeypatch, restore_logging):
        from voxrelay import server

        def failing_server(config):
            raise ImportError("broken import while serving")

        fallback = []
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test-0123456789")
        monkeypatch.setattr(server, "_fastapi_available", lambda: True)
        monkeypatch.setattr(server, "run_server", failing_server)
        monkeypatch.setattr(VoxRelay, "run", lambda self: fallback.append(self))
        with pytest.raises(ImportError):
            main(["run"])
        assert fallback == []

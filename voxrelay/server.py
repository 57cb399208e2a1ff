"""Built-in HTTP/WebSocket server for VoxRelay.

Provides a FastAPI-based server that accepts the Twilio Media Stream
WebSocket on the configured path and hands each connection to the relay.
Also exposes health check and status endpoints.

Requires: pip install voxrelay[server]
"""

from contextlib import asynccontextmanager
from typing import Any

from loguru import logger
from websockets.exceptions import ConnectionClosed

from voxrelay.config import RelayConfig, load_config
from voxrelay.relay import VoxRelay
from voxrelay.transports.base import BaseTransport


def _fastapi_available() -> bool:
    try:
        import fastapi  # noqa: F401
        import uvicorn  # noqa: F401
        return True
    except ImportError:
        return False


def create_app(config: RelayConfig | dict | str | None = None, relay: VoxRelay | None = None) -> Any:
    """Create a FastAPI application with the VoxRelay WebSocket endpoint.

    Args:
        config: Relay configuration (YAML path, dict, or RelayConfig).
        relay: An existing relay to serve; its config wins over ``config``.

    Returns:
        A FastAPI application instance.

    Requires: pip install voxrelay[server]
    """
    if not _fastapi_available():
        raise ImportError(
            "FastAPI server requires fastapi and uvicorn. "
            "Install with: pip install voxrelay[server]"
        )

    from fastapi import FastAPI, WebSocket
    from fastapi.responses import JSONResponse

    relay = relay or VoxRelay(load_config(config))
    relay_config = relay.config

    @asynccontextmanager
    async def lifespan(app):
        yield
        await relay.bridges.terminate_all()

    app = FastAPI(
        title="VoxRelay",
        description="Twilio Media Streams to realtime speech AI relay",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.relay = relay

    @app.get("/health")
    async def health():
        return JSONResponse({"status": "ok", "active_calls": relay.bridges.active_count})

    @app.get("/status")
    async def status():
        return JSONResponse({
            "listen_path": relay_config.listener.path,
            "model": relay_config.ai.model,
            **relay.status(),
        })

    @app.websocket(relay_config.listener.path)
    async def websocket_endpoint(websocket: WebSocket):
        await websocket.accept()
        logger.info(f"Telephony WebSocket connected: {websocket.client}")
        await relay.handle_telephony_connection(_FastAPIWebSocketAdapter(websocket))

    return app


class _FastAPIWebSocketAdapter(BaseTransport):
    """Adapter to make FastAPI's WebSocket work with VoxRelay's transport interface."""

    def __init__(self, ws) -> None:
        self._ws = ws
        self._connected = True

    async def connect(self, **kwargs) -> None:
        pass  # Already accepted by FastAPI

    async def send(self, data: bytes | str) -> None:
        from starlette.websockets import WebSocketDisconnect

        try:
            if isinstance(data, bytes):
                await self._ws.send_bytes(data)
            else:
                await self._ws.send_text(data)
        except (WebSocketDisconnect, RuntimeError) as e:
            self._connected = False
            raise ConnectionClosed(None, None) from e

    async def recv(self) -> bytes | str:
        msg = await self._ws.receive()
        if msg["type"] == "websocket.disconnect":
            self._connected = False
            raise ConnectionClosed(None, None)
        if msg.get("text") is not None:
            return msg["text"]
        if msg.get("bytes") is not None:
            return msg["bytes"]
        raise RuntimeError(f"Unexpected WebSocket message type: {msg['type']}")

    async def disconnect(self) -> None:
        if not self._connected:
            return
        self._connected = False
        try:
            await self._ws.close()
        except RuntimeError as e:
            # Starlette refuses to close a socket the peer already closed
            logger.debug(f"Telephony WebSocket close error: {e}")

    def is_connected(self) -> bool:
        return self._connected


def run_server(config: RelayConfig | dict | str | None = None, host: str | None = None, port: int | None = None):
    """Run the VoxRelay server with uvicorn.

    Args:
        config: Relay configuration.
        host: Override the listen host.
        port: Override the listen port.
    """
    if not _fastapi_available():
        raise ImportError(
            "FastAPI server requires fastapi and uvicorn. "
            "Install with: pip install voxrelay[server]"
        )

    import uvicorn

    relay_config = load_config(config)
    relay_config.validate_for_run()
    app = create_app(relay_config)

    uvicorn.run(
        app,
        host=host or relay_config.listener.host,
        port=port or relay_config.listener.port,
    )

"""WebSocket transport for VoxRelay.

Provides both client (outbound, AI side) and server (inbound, telephony
side) WebSocket transports using the ``websockets`` library with asyncio.
"""

from __future__ import annotations

import asyncio
from http import HTTPStatus
from typing import Any

import websockets.asyncio.client
import websockets.asyncio.server
from loguru import logger
from websockets.exceptions import WebSocketException
from websockets.protocol import State

from voxrelay.transports.base import BaseTransport


def _is_open(ws: Any) -> bool:
    state = getattr(ws, "state", None)
    if state is not None:
        return state is State.OPEN
    # Adapters that are not websockets connections expose a plain flag
    return bool(getattr(ws, "open", False))


class WebSocketClientTransport(BaseTransport):
    """WebSocket client transport for connecting to a remote endpoint.

    Used for the AI-side connection: VoxRelay connects as a client to the
    realtime speech service.
    """

    def __init__(
        self,
        url: str | None = None,
        headers: dict[str, str] | None = None,
        **ws_kwargs: Any,
    ) -> None:
        self._url = url
        self._headers = headers or {}
        self._ws: Any | None = None
        self._ws_kwargs = ws_kwargs

    async def connect(self, **kwargs) -> None:
        url = kwargs.get("url", self._url)
        if not url:
            raise ValueError("WebSocket URL is required")
        self._url = url
        logger.info(f"Connecting to WebSocket: {url}")
        self._ws = await websockets.asyncio.client.connect(
            url,
            additional_headers=self._headers,
            **self._ws_kwargs,
        )
        logger.info(f"Connected to {url}")

    async def send(self, data: bytes | str) -> None:
        if not self._ws:
            raise RuntimeError("Not connected")
        await self._ws.send(data)

    async def recv(self) -> bytes | str:
        if not self._ws:
            raise RuntimeError("Not connected")
        return await self._ws.recv()

    async def disconnect(self) -> None:
        if self._ws:
            ws, self._ws = self._ws, None
            try:
                await ws.close()
            except WebSocketException as e:
                logger.debug(f"WebSocket client close error: {e}")
            logger.info("WebSocket client disconnected")

    def is_connected(self) -> bool:
        return self._ws is not None and _is_open(self._ws)


class WebSocketServerTransport(BaseTransport):
    """WebSocket server transport that wraps an already-accepted connection.

    Used for the telephony-side connection: Twilio connects to VoxRelay's
    server, and this transport wraps that accepted WebSocket.
    """

    def __init__(self, websocket: Any = None) -> None:
        self._ws = websocket

    async def connect(self, **kwargs) -> None:
        ws = kwargs.get("websocket")
        if ws:
            self._ws = ws
        if not self._ws:
            raise ValueError("An accepted WebSocket connection is required")
        logger.info("Telephony WebSocket connection accepted")

    async def send(self, data: bytes | str) -> None:
        if not self._ws:
            raise RuntimeError("Not connected")
        await self._ws.send(data)

    async def recv(self) -> bytes | str:
        if not self._ws:
            raise RuntimeError("Not connected")
        return await self._ws.recv()

    async def disconnect(self) -> None:
        if self._ws:
            ws, self._ws = self._ws, None
            try:
                await ws.close()
            except WebSocketException as e:
                logger.debug(f"Telephony WebSocket close error: {e}")
            logger.info("Telephony WebSocket disconnected")

    def is_connected(self) -> bool:
        return self._ws is not None and _is_open(self._ws)


class WebSocketServer:
    """Standalone WebSocket server that accepts telephony connections.

    Runs a ``websockets`` server and dispatches each new connection on the
    configured path to a handler callback. The callback receives a
    ``WebSocketServerTransport`` wrapping the accepted connection.

    Usage:
        async def on_connection(transport: WebSocketServerTransport):
            # handle the connection
            ...

        server = WebSocketServer(host="0.0.0.0", port=8080, handler=on_connection)
        await server.start()
        # ... later
        await server.stop()
    """

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = 8080,
        path: str = "/",
        handler=None,
    ) -> None:
        self.host = host
        self.port = port
        self.path = path
        self._handler = handler
        self._server: Any = None

    def accepts_path(self, request_path: str) -> bool:
        if not self.path or self.path == "/":
            return True
        # Ignore any query string Twilio appends
        return request_path.split("?", 1)[0].rstrip("/") == self.path.rstrip("/")

    def _process_request(self, connection, request):
        """Answer 404 for unknown paths before the WebSocket upgrade."""
        if self.accepts_path(request.path):
            return None
        logger.warning(f"Rejected connection to {request.path} (expected {self.path})")
        return connection.respond(HTTPStatus.NOT_FOUND, "Not Found\n")

    async def _ws_handler(self, websocket) -> None:
        """Internal handler for each accepted WebSocket connection."""
        transport = WebSocketServerTransport(websocket=websocket)
        if self._handler:
            try:
                await self._handler(transport)
            except Exception as e:
                logger.exception(f"Handler error: {e}")
        else:
            logger.warning("No handler registered for incoming connections")

    async def start(self) -> None:
        """Start the WebSocket server."""
        logger.info(f"Starting WebSocket server on {self.host}:{self.port}{self.path}")
        self._server = await websockets.asyncio.server.serve(
            self._ws_handler,
            self.host,
            self.port,
            process_request=self._process_request,
        )
        logger.info(f"WebSocket server listening on ws://{self.host}:{self.port}{self.path}")

    async def stop(self) -> None:
        """Stop the WebSocket server."""
        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
            logger.info("WebSocket server stopped")

    async def serve_forever(self) -> None:
        """Start and run the server until cancelled."""
        await self.start()
        try:
            await asyncio.Future()  # Run forever
        finally:
            await self.stop()

"""
Transparent websocket relay to the backend.

The client handshake is only accepted once the backend connection is up, so
a dead backend rejects the upgrade instead of leaving a half-open socket.
"""

import asyncio
import logging
import ssl
from typing import Callable, Dict, List, Optional, Pattern

from opentelemetry import trace
from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState
from websockets.asyncio.client import connect as websockets_connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from devserver.config import BackendTarget

from .headers import HOP_BY_HOP_HEADERS

tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

# Negotiated by the websocket client library itself
HANDSHAKE_HEADERS = HOP_BY_HOP_HEADERS | {
    "host",
    "origin",
    "sec-websocket-key",
    "sec-websocket-version",
    "sec-websocket-extensions",
    "sec-websocket-protocol",
    "sec-websocket-accept",
    "content-length",
}

BACKEND_UNAVAILABLE = 1011
# Reserved codes that must never be sent in a close frame
_UNSENDABLE_CLOSE_CODES = {1005, 1006, 1015}


def insecure_ssl_context() -> ssl.SSLContext:
    """Backend certificates in local development are usually self-signed."""
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def get_websocket_url(backend: BackendTarget, path: str, query: str) -> str:
    url = f"{backend.websocket_origin}{path or '/'}"
    if query:
        url = f"{url}?{query}"
    return url


def prepare_websocket_headers(websocket: WebSocket) -> Dict[str, str]:
    return {
        name: value
        for name, value in websocket.headers.items()
        if name.lower() not in HANDSHAKE_HEADERS
    }


class WebSocketBridge:
    def __init__(
        self,
        backend: BackendTarget,
        path_filter: Optional[Pattern[str]] = None,
        connect: Callable = websockets_connect,
    ):
        self.backend = backend
        self.path_filter = path_filter
        self._connect = connect
        self._ssl = insecure_ssl_context() if backend.secure else None

    def accepts(self, path: str) -> bool:
        return self.path_filter is None or bool(self.path_filter.search(path))

    async def relay(self, websocket: WebSocket) -> None:
        path = websocket.url.path
        url = get_websocket_url(self.backend, path, websocket.url.query)
        subprotocols: List[str] = list(websocket.scope.get("subprotocols") or [])

        with tracer.start_as_current_span("websocket_relay") as span:
            span.set_attribute("websocket.target_url", url)
            logger.info(f"[WebSocket] Proxying {path} -> {url}")
            try:
                async with self._connect(
                    url,
                    additional_headers=prepare_websocket_headers(websocket),
                    origin=self.backend.origin,
                    subprotocols=subprotocols or None,
                    ssl=self._ssl,
                    max_size=None,
                ) as backend_ws:
                    await websocket.accept(subprotocol=backend_ws.subprotocol)
                    close_code = await self._pipe(websocket, backend_ws)
            except (OSError, InvalidHandshake, InvalidURI, asyncio.TimeoutError) as e:
                logger.error(f"[WebSocket] Backend unavailable for {url}: {e}")
                span.set_attribute("websocket.error", str(e))
                await self._close_client(websocket, BACKEND_UNAVAILABLE)
                return

            span.set_attribute("websocket.close_code", close_code)
            await self._close_client(websocket, close_code)
            logger.info(f"[WebSocket] Closed {path} ({close_code})")

    async def _pipe(self, websocket: WebSocket, backend_ws) -> int:
        """
        Relay messages both ways until either side closes. Returns the close
        code to report to the client.
        """
        upstream = asyncio.create_task(self._client_to_backend(websocket, backend_ws))
        downstream = asyncio.create_task(self._backend_to_client(websocket, backend_ws))
        tasks = {upstream, downstream}
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            # Also runs when the handler itself is cancelled.
            for task in tasks:
                task.cancel()
        for task in done:
            if task.cancelled():
                continue
            exc = task.exception()
            if exc is not None and not isinstance(
                exc, (ConnectionClosed, WebSocketDisconnect)
            ):
                logger.warning(f"[WebSocket] Relay stopped: {exc}")
        close_code = getattr(backend_ws, "close_code", None)
        if not close_code or close_code in _UNSENDABLE_CLOSE_CODES:
            return 1000
        return close_code

    async def _client_to_backend(self, websocket: WebSocket, backend_ws) -> None:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return
            if message.get("text") is not None:
                await backend_ws.send(message["text"])
            elif message.get("bytes") is not None:
                await backend_ws.send(message["bytes"])

    async def _backend_to_client(self, websocket: WebSocket, backend_ws) -> None:
        async for message in backend_ws:
            if isinstance(message, bytes):
                await websocket.send_bytes(message)
            else:
                await websocket.send_text(message)

    async def _close_client(self, websocket: WebSocket, code: int) -> None:
        if websocket.client_state == WebSocketState.DISCONNECTED:
            return
        if websocket.application_state == WebSocketState.DISCONNECTED:
            return
        try:
            await websocket.close(code=code)
        except RuntimeError:
            # The client closed between the state check and the send.
            logger.debug("[WebSocket] Client already closed")

import asyncio
from contextlib import asynccontextmanager
from typing import Dict, List, Optional, Sequence, Tuple, Union

import anyio
import httpx
from starlette.requests import Request

LOCAL_PAGE = (
    "<!DOCTYPE html><html><head>"
    '<meta name="grv_csrf_token" content="{{ .XCSRF }}"/>'
    '<meta name="grv_bearer_token" content="{{ .Session }}"/>'
    '<script src="/web/app/main.js"></script>'
    "</head><body><div id=\"app\"></div></body></html>"
)

CSRF_META = '<meta name="grv_csrf_token" content="csrf-from-backend"/>'
BEARER_META = '<meta name="grv_bearer_token" content="eyJhbGciOi.backend"/>'

BACKEND_PAGE = (
    "<!DOCTYPE html><html><head>"
    f"{CSRF_META}"
    f"{BEARER_META}"
    '<script src="/web/app/vendor.3f2a.js"></script>'
    "</head><body>backend</body></html>"
)


def make_request(
    path: str = "/web/",
    query: str = "",
    method: str = "GET",
    headers: Union[Dict[str, str], Sequence[Tuple[str, str]], None] = None,
    body: bytes = b"",
    client: Optional[Tuple[str, int]] = ("192.168.1.100", 51000),
    scheme: str = "https",
    disconnected: bool = False,
) -> Request:
    """Build a real Starlette request from an ASGI scope."""
    defaults = {"host": "localhost:8080", "user-agent": "test-agent"}
    if isinstance(headers, dict) or headers is None:
        headers = list({**defaults, **(headers or {})}.items())
    else:
        headers = list(defaults.items()) + list(headers)
    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": method,
        "scheme": scheme,
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": query.encode(),
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers],
        "client": client,
        "server": ("localhost", 8080),
    }
    sent_body = False

    async def receive():
        nonlocal sent_body
        if disconnected:
            return {"type": "http.disconnect"}
        if sent_body:
            # A live client: nothing more arrives until it goes away.
            await anyio.sleep_forever()
        sent_body = True
        return {"type": "http.request", "body": body, "more_body": False}

    return Request(scope, receive)


def backend_response(
    status_code: int = 200,
    headers: Optional[Union[Dict[str, str], Sequence[Tuple[str, str]]]] = None,
    body: bytes = b"",
    chunks: Optional[List[bytes]] = None,
) -> httpx.Response:
    """
    A streamable httpx response. Passing ``stream`` keeps httpx from reading
    the body up front, so ``aiter_raw`` behaves as with a real backend.
    """
    if chunks is not None:
        stream = ChunkedStream(chunks)
    else:
        stream = httpx.ByteStream(body)
    return httpx.Response(status_code, headers=headers or {}, stream=stream)


class ChunkedStream(httpx.AsyncByteStream):
    def __init__(self, chunks: List[bytes]):
        self.chunks = chunks
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk

    async def aclose(self):
        self.closed = True


async def read_body(response) -> bytes:
    """Drain a Starlette response body, streaming or not."""
    if hasattr(response, "body_iterator"):
        body = b""
        async for chunk in response.body_iterator:
            body += chunk if isinstance(chunk, bytes) else chunk.encode()
        if response.background is not None:
            await response.background()
        return body
    return response.body


class FakeBackendWebSocket:
    """
    Echoing stand-in for a ``websockets`` client connection. Sending
    ``"close:<code>"`` makes the backend close with that code.
    """

    def __init__(self, subprotocol: Optional[str] = None):
        self.subprotocol = subprotocol
        self.sent: list = []
        self.close_code: Optional[int] = None
        self._queue: asyncio.Queue = asyncio.Queue()

    async def send(self, message):
        self.sent.append(message)
        if isinstance(message, str) and message.startswith("close:"):
            self.close_code = int(message.split(":", 1)[1])
            await self._queue.put(None)
            return
        await self._queue.put(message)

    def __aiter__(self):
        return self

    async def __anext__(self):
        message = await self._queue.get()
        if message is None:
            raise StopAsyncIteration
        return message


class FakeWebSocketConnector:
    """Records ``connect`` calls and hands out ``FakeBackendWebSocket``s."""

    def __init__(self, error: Optional[BaseException] = None, subprotocol=None):
        self.error = error
        self.subprotocol = subprotocol
        self.calls: list = []
        self.sockets: List[FakeBackendWebSocket] = []

    def __call__(self, url, **kwargs):
        self.calls.append((url, kwargs))
        return self._open()

    @asynccontextmanager
    async def _open(self):
        if self.error is not None:
            raise self.error
        socket = FakeBackendWebSocket(self.subprotocol)
        self.sockets.append(socket)
        yield socket

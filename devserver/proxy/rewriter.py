"""
Response interception for proxied pages.

HTML pages coming back from the backend are replaced by the locally built
page, with the backend's token markers spliced in. Everything else streams
through untouched.
"""

import logging
from enum import Enum
from typing import AsyncIterator, Iterable, List, Optional, Sequence

import httpx
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import Response, StreamingResponse

from .headers import copy_response_headers
from .token_extractor import TokenPattern, splice_tokens

logger = logging.getLogger("uvicorn.error")

HTML_CONTENT_TYPE = "text/html"
# Recomputed for every buffered body, or dropped because httpx already
# decoded the stream.
_BUFFERED_DROP_HEADERS = ("content-length", "content-encoding", "content-type")


class RewriteDecision(str, Enum):
    PASSTHROUGH = "passthrough"
    BACKEND_BODY = "backend_body"
    SPLICE = "splice"


class ClientDisconnected(Exception):
    """The client went away while a backend page was being buffered."""


class BodyTooLarge(Exception):
    """Carries what was read so far and the rest of the decoded stream."""

    def __init__(self, chunks: List[bytes], rest: AsyncIterator[bytes], limit: int):
        super().__init__(f"response body exceeds {limit} bytes")
        self.chunks = chunks
        self.rest = rest
        self.limit = limit


def should_rewrite(content_type: Optional[str]) -> bool:
    return bool(content_type) and content_type.lower().startswith(HTML_CONTENT_TYPE)


def decide_rewrite(
    path: str, content_type: Optional[str], complete_suffix: str
) -> RewriteDecision:
    """
    Decide what happens to a backend response body.

    Inputs are the response Content-Type and the request path:

    * not ``text/html``: ``PASSTHROUGH``
    * path ends with ``complete_suffix``: ``BACKEND_BODY`` (the backend page
      is already complete and is returned as is)
    * otherwise: ``SPLICE``
    """
    if not should_rewrite(content_type):
        return RewriteDecision.PASSTHROUGH
    if complete_suffix and path.endswith(complete_suffix):
        return RewriteDecision.BACKEND_BODY
    return RewriteDecision.SPLICE


def _status_allows_body(status_code: int) -> bool:
    return status_code >= 200 and status_code not in (204, 304)


class ResponseRewriter:
    def __init__(
        self,
        local_page: str,
        token_patterns: Sequence[TokenPattern],
        complete_suffix: str,
        max_body_bytes: int,
    ):
        self.local_page = local_page
        self.token_patterns = tuple(token_patterns)
        self.complete_suffix = complete_suffix
        self.max_body_bytes = max_body_bytes

    async def intercept(
        self, request: Request, backend_response: httpx.Response
    ) -> Response:
        content_type = backend_response.headers.get("content-type")
        decision = decide_rewrite(
            request.url.path, content_type, self.complete_suffix
        )
        if decision is RewriteDecision.PASSTHROUGH or not _status_allows_body(
            backend_response.status_code
        ):
            return self.passthrough(backend_response)

        try:
            body = await self.buffer_body(request, backend_response)
        except BodyTooLarge as exc:
            logger.warning(
                f"[Rewrite] {request.url.path}: {exc}, passing backend page through"
            )
            return self._passthrough_decoded(backend_response, exc.chunks, exc.rest)
        except BaseException:
            await backend_response.aclose()
            raise

        if decision is RewriteDecision.BACKEND_BODY:
            logger.debug(f"[Rewrite] {request.url.path} is complete, not splicing")
            return self._buffered_response(backend_response, body)

        html = splice_tokens(
            body.decode("utf-8", errors="replace"),
            self.local_page,
            self.token_patterns,
        )
        return self._buffered_response(backend_response, html.encode("utf-8"))

    async def buffer_body(
        self, request: Request, backend_response: httpx.Response
    ) -> bytes:
        """
        Read the decoded backend body into memory, up to ``max_body_bytes``.
        The backend response is closed once fully read.
        """
        chunks: List[bytes] = []
        size = 0
        stream = backend_response.aiter_bytes()
        async for chunk in stream:
            if await request.is_disconnected():
                logger.debug(
                    f"[Rewrite] Client disconnected while buffering {request.url.path}"
                )
                raise ClientDisconnected(request.url.path)
            chunks.append(chunk)
            size += len(chunk)
            if size > self.max_body_bytes:
                raise BodyTooLarge(chunks, stream, self.max_body_bytes)
        await backend_response.aclose()
        return b"".join(chunks)

    def passthrough(self, backend_response: httpx.Response) -> Response:
        response = StreamingResponse(
            backend_response.aiter_raw(),
            status_code=backend_response.status_code,
            background=BackgroundTask(backend_response.aclose),
        )
        # No media_type here: the backend Content-Type is the only one sent.
        return copy_response_headers(response, backend_response.headers.multi_items())

    def _passthrough_decoded(
        self,
        backend_response: httpx.Response,
        buffered: Iterable[bytes],
        rest: AsyncIterator[bytes],
    ) -> Response:
        async def body() -> AsyncIterator[bytes]:
            for chunk in buffered:
                yield chunk
            async for chunk in rest:
                yield chunk

        response = StreamingResponse(
            body(),
            status_code=backend_response.status_code,
            background=BackgroundTask(backend_response.aclose),
        )
        return copy_response_headers(
            response,
            backend_response.headers.multi_items(),
            exclude=("content-length", "content-encoding"),
        )

    def _buffered_response(
        self, backend_response: httpx.Response, body: bytes
    ) -> Response:
        response = Response(
            content=body,
            status_code=backend_response.status_code,
            media_type="text/html; charset=utf-8",
        )
        return copy_response_headers(
            response,
            backend_response.headers.multi_items(),
            exclude=_BUFFERED_DROP_HEADERS + ("content-security-policy",),
        )

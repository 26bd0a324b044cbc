import logging
from urllib.parse import urlsplit

import httpx
from fastapi import HTTPException
from opentelemetry import trace
from starlette.requests import Request
from starlette.responses import Response

from devserver.config import BackendTarget

from .headers import HOP_BY_HOP_HEADERS
from .rewriter import ClientDisconnected, ResponseRewriter

tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

# Recomputed by httpx for the outbound request
_REQUEST_DROP_HEADERS = HOP_BY_HOP_HEADERS | {"host", "content-length"}


def get_target_url(backend: BackendTarget, request: Request) -> str:
    """Backend URL for ``request``: same path, same raw query string."""
    path = request.url.path or "/"
    query_string = str(request.url.query)
    if query_string:
        path = f"{path}?{query_string}"
    return f"{backend.origin}{path}"


def prepare_headers(request: Request) -> httpx.Headers:
    """
    Prepare headers for forwarding to the backend.
    Removes hop-by-hop headers and the original Host (httpx sets the backend
    host from the URL) and adds the X-Forwarded-* set. Repeated headers keep
    every value.
    """
    headers = httpx.Headers(
        [
            (name, value)
            for name, value in request.headers.items()
            if name.lower() not in _REQUEST_DROP_HEADERS
        ]
    )

    client_ip = request.client.host if request.client else "unknown"
    existing_xff = headers.get("x-forwarded-for", "")
    headers["x-forwarded-for"] = f"{existing_xff}, {client_ip}".strip(", ")
    headers["x-forwarded-host"] = request.headers.get("host", "")
    headers["x-forwarded-proto"] = request.url.scheme
    port = request.url.port or (443 if request.url.scheme == "https" else 80)
    headers["x-forwarded-port"] = str(port)
    headers["x-real-ip"] = client_ip
    return headers


def rewrite_location_header(
    backend: BackendTarget, location: str, request: Request
) -> str:
    """
    Point redirects that target the backend origin back at the dev server.
    Relative and external locations are returned as-is.
    """
    if not location:
        return location
    parsed = urlsplit(location)
    if parsed.netloc != backend.netloc:
        return location
    base = f"{request.url.scheme}://{request.headers.get('host', request.url.netloc)}"
    query = f"?{parsed.query}" if parsed.query else ""
    fragment = f"#{parsed.fragment}" if parsed.fragment else ""
    return f"{base}{parsed.path}{query}{fragment}"


class ProxyRouter:
    def __init__(
        self,
        backend: BackendTarget,
        client: httpx.AsyncClient,
        rewriter: ResponseRewriter,
    ):
        self.backend = backend
        self.client = client
        self.rewriter = rewriter

    async def forward(self, request: Request) -> Response:
        """
        Forward ``request`` to the backend and hand the streamed response to
        the rewriter. Transport failures become 502/504 for this request only.
        """
        with tracer.start_as_current_span("proxy_request") as span:
            target_url = get_target_url(self.backend, request)
            span.set_attribute("proxy.target_url", target_url)
            span.set_attribute("proxy.method", request.method)

            logger.debug(f"[Proxy] {request.method} {request.url.path} -> {target_url}")

            headers = prepare_headers(request)
            body = await request.body()

            backend_request = self.client.build_request(
                method=request.method,
                url=target_url,
                headers=headers,
                content=body or None,
            )
            try:
                backend_response = await self.client.send(backend_request, stream=True)
            except httpx.TimeoutException as e:
                logger.error(f"[Proxy] Timeout for {target_url}: {e}")
                span.set_attribute("proxy.error", "timeout")
                raise HTTPException(status_code=504, detail="Gateway timeout")
            except httpx.ConnectError as e:
                logger.error(f"[Proxy] Failed to connect to backend {target_url}: {e}")
                span.set_attribute("proxy.error", "connection_failed")
                raise HTTPException(
                    status_code=502, detail="Bad gateway - cannot connect to backend"
                )
            except httpx.HTTPError as e:
                logger.error(f"[Proxy] Error for {target_url}: {e}", exc_info=True)
                span.set_attribute("proxy.error", str(e))
                raise HTTPException(status_code=502, detail=f"Bad gateway: {e}")

            span.set_attribute("proxy.status_code", backend_response.status_code)
            self._rewrite_location(backend_response, request)

            try:
                return await self.rewriter.intercept(request, backend_response)
            except ClientDisconnected:
                span.set_attribute("proxy.error", "client_disconnected")
                return Response(status_code=499)
            except httpx.HTTPError as e:
                logger.error(f"[Proxy] Backend stream failed for {target_url}: {e}")
                span.set_attribute("proxy.error", str(e))
                raise HTTPException(status_code=502, detail=f"Bad gateway: {e}")

    def _rewrite_location(self, backend_response: httpx.Response, request: Request):
        location = backend_response.headers.get("location")
        if location:
            rewritten = rewrite_location_header(self.backend, location, request)
            if rewritten != location:
                backend_response.headers["location"] = rewritten

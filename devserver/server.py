"""
Composition root: wires the route table, proxy, rewriter, websocket bridge
and local assets into one FastAPI application.
"""

import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional, Sequence

import httpx
from fastapi import FastAPI, HTTPException, Request, WebSocket
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from prometheus_client import REGISTRY, CollectorRegistry, Info
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.responses import Response

from devserver.config import DevServerConfig
from devserver.local_assets import LocalAssets
from devserver.proxy.rewriter import ResponseRewriter
from devserver.proxy.router import ProxyRouter
from devserver.proxy.websocket_bridge import WebSocketBridge, websockets_connect
from devserver.routes import router
from devserver.routing import RouteMode
from devserver.vars import OTLP_ENDPOINT, OTLP_HEADERS, SERVICE_NAME

logger = logging.getLogger("uvicorn.error")

# ASGI events emitted once per streamed chunk or websocket message
NOISY_ASGI_EVENTS = {
    "http.response.body",
    "websocket.send",
    "websocket.receive",
}

POLICY_VIOLATION = 1008


class FilteringSpanExporter(SpanExporter):
    """
    Wrapper exporter that drops per-chunk ASGI spans. A proxied bundle or a
    long websocket session would otherwise produce thousands of tiny spans.
    """

    def __init__(self, exporter: SpanExporter):
        self.exporter = exporter

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        filtered_spans = [
            span
            for span in spans
            if not (
                span.attributes
                and span.attributes.get("asgi.event.type") in NOISY_ASGI_EVENTS
            )
        ]
        if filtered_spans:
            return self.exporter.export(filtered_spans)
        return SpanExportResult.SUCCESS

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


def configure_tracing(app: FastAPI) -> None:
    """Export spans over OTLP when an endpoint is configured."""
    if not OTLP_ENDPOINT:
        return
    trace.set_tracer_provider(
        TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
    )
    otlp_exporter = OTLPSpanExporter(
        endpoint=OTLP_ENDPOINT,
        headers=OTLP_HEADERS or None,
    )
    trace.get_tracer_provider().add_span_processor(
        BatchSpanProcessor(FilteringSpanExporter(otlp_exporter))
    )
    FastAPIInstrumentor.instrument_app(app)


class DevServer:
    """Per-process request dispatch; owns no mutable state after construction."""

    def __init__(
        self,
        config: DevServerConfig,
        client: httpx.AsyncClient,
        websocket_connect: Callable = websockets_connect,
    ):
        self.config = config
        self.route_table = config.route_table
        self.assets = LocalAssets(config.build_dir, config.asset_prefix)
        rewriter = ResponseRewriter(
            local_page=config.local_page,
            token_patterns=config.token_patterns,
            complete_suffix=config.complete_suffix,
            max_body_bytes=config.max_rewrite_bytes,
        )
        self.proxy = ProxyRouter(config.backend, client, rewriter)
        self.bridge = WebSocketBridge(
            config.backend,
            path_filter=config.websocket_path_filter,
            connect=websocket_connect,
        )

    async def handle_http(self, request: Request) -> Response:
        mode = self.route_table.classify(request.url.path)
        if mode is RouteMode.FORWARD:
            return await self.proxy.forward(request)
        if mode is RouteMode.SERVE_LOCAL:
            asset = await self.assets.get_response(request)
            if asset is not None:
                return asset
            if request.method not in ("GET", "HEAD"):
                raise HTTPException(status_code=405, detail="Method not allowed")
            # Page shell: the backend page, replaced by the local one.
            return await self.proxy.forward(request)
        raise HTTPException(status_code=404, detail="Not found")

    async def handle_websocket(self, websocket: WebSocket) -> None:
        path = websocket.url.path
        mode = self.route_table.classify(path)
        if mode is not RouteMode.FORWARD or not self.bridge.accepts(path):
            logger.info(f"[WebSocket] Rejecting upgrade for {path}")
            await websocket.close(code=POLICY_VIOLATION)
            return
        await self.bridge.relay(websocket)


def create_app(
    config: DevServerConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    websocket_connect: Callable = websockets_connect,
    registry: Optional[CollectorRegistry] = None,
) -> FastAPI:
    if registry is None:
        registry = REGISTRY

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if config.backend.secure:
            logger.warning(
                f"[DevServer] TLS verification is disabled for backend {config.backend.origin}"
            )
        async with httpx.AsyncClient(
            verify=False,
            timeout=httpx.Timeout(config.proxy_timeout),
            follow_redirects=False,
            transport=transport,
        ) as client:
            app.state.devserver = DevServer(config, client, websocket_connect)
            yield

    app = FastAPI(lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

    instrumentator = Instrumentator(registry=registry)
    instrumentator.instrument(app).expose(app, include_in_schema=False)
    app_info = Info("devserver_app_info", "Application Info", registry=registry)
    app_info.info({"app_name": SERVICE_NAME, "backend": config.backend.origin})

    configure_tracing(app)
    app.include_router(router)
    return app

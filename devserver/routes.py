from fastapi import APIRouter, Request, WebSocket

router = APIRouter()

PROXY_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]


@router.api_route("/{path:path}", methods=PROXY_METHODS, include_in_schema=False)
async def dispatch_http(request: Request, path: str):
    """Catch-all route: forward to the backend or answer from the local build."""
    return await request.app.state.devserver.handle_http(request)


@router.websocket("/{path:path}")
async def dispatch_websocket(websocket: WebSocket, path: str):
    await websocket.app.state.devserver.handle_websocket(websocket)

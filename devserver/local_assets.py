import logging
from typing import Optional

from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import Response
from starlette.staticfiles import StaticFiles

logger = logging.getLogger("uvicorn.error")


class LocalAssets:
    """
    Files of the local build output, served under ``prefix``. Serving itself
    is delegated to Starlette's ``StaticFiles``.
    """

    def __init__(self, build_dir: str, prefix: str):
        self.prefix = prefix.rstrip("/")
        self.files = StaticFiles(directory=build_dir, check_dir=False)

    def relative_path(self, path: str) -> Optional[str]:
        if not path.startswith(self.prefix + "/"):
            return None
        relative = path[len(self.prefix) + 1 :]
        return relative or None

    async def get_response(self, request: Request) -> Optional[Response]:
        """The built file for ``request``, or None when there is no such file."""
        relative = self.relative_path(request.url.path)
        if relative is None:
            return None
        try:
            return await self.files.get_response(relative, request.scope)
        except HTTPException as e:
            if e.status_code == 404:
                return None
            raise

"""
Ordered path-glob rules deciding whether a request goes to the backend or is
answered from the local build.
"""

from dataclasses import dataclass
from enum import Enum
from fnmatch import fnmatchcase
from typing import Iterable, Optional, Tuple


class RouteMode(str, Enum):
    FORWARD = "forward"
    SERVE_LOCAL = "serve_local"


# Backend API and auxiliary services. Order matters: the first match wins.
DEFAULT_FORWARD_PATTERNS: Tuple[str, ...] = (
    "/web/grafana/*",
    "/web/config.*",
    "/pack/v1/*",
    "/portalapi/*",
    "/portal*",
    "/proxy/*",
    "/v1/*",
    "/app/*",
    "/sites/v1/*",
)


@dataclass(frozen=True)
class Route:
    pattern: str
    mode: RouteMode

    def matches(self, path: str) -> bool:
        return fnmatchcase(path, self.pattern)


@dataclass(frozen=True)
class RouteTable:
    """
    Forward rules are checked in the order they were configured; paths that
    match none of them and sit under ``root`` are served locally. Everything
    else is unrouted.
    """

    routes: Tuple[Route, ...]
    root: str

    @classmethod
    def from_patterns(
        cls, forward_patterns: Iterable[str], root: str
    ) -> "RouteTable":
        routes = tuple(Route(p, RouteMode.FORWARD) for p in forward_patterns)
        return cls(routes=routes, root=root.rstrip("/"))

    def classify(self, path: str) -> Optional[RouteMode]:
        for route in self.routes:
            if route.matches(path):
                return route.mode
        if self._under_root(path):
            return RouteMode.SERVE_LOCAL
        return None

    def _under_root(self, path: str) -> bool:
        if not self.root:
            return path.startswith("/")
        return path == self.root or path.startswith(self.root + "/")

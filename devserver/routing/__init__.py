from .route_table import (
    DEFAULT_FORWARD_PATTERNS,
    Route,
    RouteMode,
    RouteTable,
)

__all__ = ["DEFAULT_FORWARD_PATTERNS", "Route", "RouteMode", "RouteTable"]

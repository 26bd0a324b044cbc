"""
Startup configuration.

Everything here is resolved once before the server binds its socket and is
read-only afterwards. Failures raise ``DevServerConfigError`` subclasses,
which the command line entry point turns into a non-zero exit.
"""

import os
import re
from dataclasses import dataclass, field
from typing import Optional, Pattern, Sequence, Tuple
from urllib.parse import urlsplit

from devserver.vars import (
    DEV_SERVER_ASSET_PREFIX,
    DEV_SERVER_BUILD_DIR,
    DEV_SERVER_COMPLETE_SUFFIX,
    DEV_SERVER_EXTRA_FORWARD_PATTERNS,
    DEV_SERVER_HOST,
    DEV_SERVER_INDEX_FILE,
    DEV_SERVER_MAX_REWRITE_BYTES,
    DEV_SERVER_PORT,
    DEV_SERVER_ROOT,
    DEV_SERVER_WEBSOCKET_PATH_FILTER,
    PROXY_TIMEOUT,
)
from devserver.proxy.token_extractor import DEFAULT_TOKEN_PATTERNS, TokenPattern
from devserver.routing import DEFAULT_FORWARD_PATTERNS, RouteTable


class DevServerConfigError(Exception):
    """Base class for fatal startup errors."""


class InvalidBackendTargetError(DevServerConfigError):
    pass


class LocalPageError(DevServerConfigError):
    pass


class TlsConfigError(DevServerConfigError):
    pass


_SECURE_SCHEMES = {"https", "wss"}
_KNOWN_SCHEMES = _SECURE_SCHEMES | {"http", "ws"}


@dataclass(frozen=True)
class BackendTarget:
    scheme: str
    netloc: str

    @property
    def secure(self) -> bool:
        return self.scheme == "https"

    @property
    def origin(self) -> str:
        return f"{self.scheme}://{self.netloc}"

    @property
    def websocket_origin(self) -> str:
        return f"{'wss' if self.secure else 'ws'}://{self.netloc}"


def parse_backend_target(raw: Optional[str]) -> BackendTarget:
    """
    Parse the ``--proxy`` value. A bare ``host[:port]`` is accepted and
    targets ``https``; only the scheme and network location are kept.
    """
    if not raw or not raw.strip():
        raise InvalidBackendTargetError("missing proxy target URL")
    value = raw.strip()
    if "://" not in value:
        value = "https://" + value
    try:
        parts = urlsplit(value)
        # Accessing the port validates it.
        parts.port
    except ValueError as e:
        raise InvalidBackendTargetError(f"invalid URL: {raw} ({e})") from e
    scheme = parts.scheme.lower()
    if scheme not in _KNOWN_SCHEMES:
        raise InvalidBackendTargetError(f"invalid URL: {raw} (unsupported scheme)")
    if not parts.hostname:
        raise InvalidBackendTargetError(f"invalid URL: {raw}")
    return BackendTarget(
        scheme="https" if scheme in _SECURE_SCHEMES else "http",
        netloc=parts.netloc.rsplit("@", 1)[-1],
    )


def load_local_page(path: str) -> str:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise LocalPageError(f"cannot read local page {path}: {e}") from e


def compile_websocket_filter(raw: str) -> Optional[Pattern[str]]:
    if not raw:
        return None
    try:
        return re.compile(raw)
    except re.error as e:
        raise DevServerConfigError(f"invalid websocket path filter {raw!r}: {e}") from e


@dataclass(frozen=True)
class TlsFiles:
    certfile: str
    keyfile: str


def resolve_tls(
    certfile: Optional[str], keyfile: Optional[str], enabled: bool = True
) -> Optional[TlsFiles]:
    if not enabled:
        return None
    if not certfile or not keyfile:
        raise TlsConfigError(
            "TLS certificate and key are required (--ssl-certfile/--ssl-keyfile), "
            "or pass --no-tls to serve plain HTTP"
        )
    for f in (certfile, keyfile):
        if not os.path.isfile(f):
            raise TlsConfigError(f"TLS file not found: {f}")
    return TlsFiles(certfile=certfile, keyfile=keyfile)


@dataclass(frozen=True)
class DevServerConfig:
    backend: BackendTarget
    local_page: str
    route_table: RouteTable
    build_dir: str = DEV_SERVER_BUILD_DIR
    asset_prefix: str = DEV_SERVER_ASSET_PREFIX
    token_patterns: Tuple[TokenPattern, ...] = DEFAULT_TOKEN_PATTERNS
    complete_suffix: str = DEV_SERVER_COMPLETE_SUFFIX
    max_rewrite_bytes: int = DEV_SERVER_MAX_REWRITE_BYTES
    proxy_timeout: float = PROXY_TIMEOUT
    websocket_path_filter: Optional[Pattern[str]] = None
    host: str = DEV_SERVER_HOST
    port: int = DEV_SERVER_PORT
    tls: Optional[TlsFiles] = field(default=None)


def build_config(
    proxy: Optional[str],
    build_dir: str = DEV_SERVER_BUILD_DIR,
    host: str = DEV_SERVER_HOST,
    port: int = DEV_SERVER_PORT,
    ssl_certfile: Optional[str] = None,
    ssl_keyfile: Optional[str] = None,
    tls_enabled: bool = False,
    root: str = DEV_SERVER_ROOT,
    forward_patterns: Sequence[str] = DEFAULT_FORWARD_PATTERNS
    + tuple(DEV_SERVER_EXTRA_FORWARD_PATTERNS),
) -> DevServerConfig:
    """Resolve the backend first so a bad target fails before any file access."""
    backend = parse_backend_target(proxy)
    tls = resolve_tls(ssl_certfile, ssl_keyfile, enabled=tls_enabled)
    local_page = load_local_page(os.path.join(build_dir, DEV_SERVER_INDEX_FILE))
    return DevServerConfig(
        backend=backend,
        local_page=local_page,
        route_table=RouteTable.from_patterns(forward_patterns, root),
        build_dir=build_dir,
        websocket_path_filter=compile_websocket_filter(
            DEV_SERVER_WEBSOCKET_PATH_FILTER
        ),
        host=host,
        port=port,
        tls=tls,
    )

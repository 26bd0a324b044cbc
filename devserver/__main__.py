"""
Command line entry point.

    python -m devserver --proxy https://backend.example.com:3009

Startup errors are reported before any socket is bound.
"""

import argparse
import sys
from typing import Optional, Sequence

import uvicorn

from devserver.config import DevServerConfigError, build_config
from devserver.server import create_app
from devserver.vars import (
    DEV_SERVER_BUILD_DIR,
    DEV_SERVER_HOST,
    DEV_SERVER_PORT,
    DEV_SERVER_ROOT,
    DEV_SERVER_SSL_CERTFILE,
    DEV_SERVER_SSL_KEYFILE,
    LOG_LEVEL,
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="devserver",
        description="Serve the local frontend build against a remote backend",
    )
    parser.add_argument(
        "--proxy",
        required=True,
        help="Backend URL, e.g. https://backend.example.com:3009",
    )
    parser.add_argument("--host", default=DEV_SERVER_HOST)
    parser.add_argument("--port", type=int, default=DEV_SERVER_PORT)
    parser.add_argument(
        "--build-dir",
        default=DEV_SERVER_BUILD_DIR,
        help="Directory holding the built index.html and bundle",
    )
    parser.add_argument("--ssl-certfile", default=DEV_SERVER_SSL_CERTFILE)
    parser.add_argument("--ssl-keyfile", default=DEV_SERVER_SSL_KEYFILE)
    parser.add_argument(
        "--no-tls",
        action="store_true",
        help="Serve plain HTTP instead of HTTPS",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = build_config(
            args.proxy,
            build_dir=args.build_dir,
            host=args.host,
            port=args.port,
            ssl_certfile=args.ssl_certfile,
            ssl_keyfile=args.ssl_keyfile,
            tls_enabled=not args.no_tls,
        )
    except DevServerConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    app = create_app(config)
    scheme = "https" if config.tls else "http"
    print(
        f"Dev Server is up and running: {scheme}://localhost:{config.port}{DEV_SERVER_ROOT}/"
        f" (backend {config.backend.origin})"
    )
    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        ssl_certfile=config.tls.certfile if config.tls else None,
        ssl_keyfile=config.tls.keyfile if config.tls else None,
        log_level=LOG_LEVEL,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())

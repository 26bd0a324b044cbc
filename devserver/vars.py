import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "web-devserver")

DEV_SERVER_HOST = os.environ.get("DEV_SERVER_HOST", "0.0.0.0")
DEV_SERVER_PORT = int(os.environ.get("DEV_SERVER_PORT", "8080"))

# Application root served by the local build; everything below it that is
# not a forward rule belongs to the local bundle.
DEV_SERVER_ROOT = os.environ.get("DEV_SERVER_ROOT", "/web").rstrip("/")
DEV_SERVER_ASSET_PREFIX = os.environ.get(
    "DEV_SERVER_ASSET_PREFIX", DEV_SERVER_ROOT + "/app"
).rstrip("/")
DEV_SERVER_BUILD_DIR = os.environ.get("DEV_SERVER_BUILD_DIR", "dist")
DEV_SERVER_INDEX_FILE = os.environ.get("DEV_SERVER_INDEX_FILE", "index.html")

# Backend pages ending with this suffix are already complete and are returned
# without splicing.
DEV_SERVER_COMPLETE_SUFFIX = os.environ.get("DEV_SERVER_COMPLETE_SUFFIX", "/complete/")
DEV_SERVER_MAX_REWRITE_BYTES = int(
    os.environ.get("DEV_SERVER_MAX_REWRITE_BYTES", str(10 * 1024 * 1024))
)
PROXY_TIMEOUT = int(os.environ.get("PROXY_TIMEOUT", "300"))

DEV_SERVER_EXTRA_FORWARD_PATTERNS = [
    p.strip()
    for p in os.environ.get("DEV_SERVER_EXTRA_FORWARD_PATTERNS", "").split(",")
    if p.strip()
]
DEV_SERVER_WEBSOCKET_PATH_FILTER = os.environ.get("DEV_SERVER_WEBSOCKET_PATH_FILTER", "")

DEV_SERVER_SSL_CERTFILE = os.environ.get("DEV_SERVER_SSL_CERTFILE", "")
DEV_SERVER_SSL_KEYFILE = os.environ.get("DEV_SERVER_SSL_KEYFILE", "")

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")

LOG_LEVEL = os.getenv("LOG_LEVEL", "info").lower()

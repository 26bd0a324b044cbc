from typing import Iterable, Tuple

from starlette.responses import Response

# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}


def copy_response_headers(
    response: Response,
    headers: Iterable[Tuple[str, str]],
    exclude: Iterable[str] = (),
) -> Response:
    """
    Append backend headers to ``response``, skipping hop-by-hop headers and
    ``exclude``. Repeated headers such as ``Set-Cookie`` are kept.
    """
    skip = HOP_BY_HOP_HEADERS | {name.lower() for name in exclude}
    for name, value in headers:
        if name.lower() in skip:
            continue
        response.headers.append(name, value)
    return response

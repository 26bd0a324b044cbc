"""
Textual extraction and splicing of backend-issued token markers.

Each ``TokenPattern`` targets one complete marker tag. The matched text is
copied verbatim from the backend page into the local page; the token value is
never parsed or validated.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Pattern, Tuple

from devserver.utils import fragment_fingerprint

logger = logging.getLogger("uvicorn.error")


@dataclass(frozen=True)
class TokenPattern:
    name: str
    # Literal marker text the matcher targets, for documentation and logs.
    marker: str
    matcher: Pattern[str]


def meta_token_pattern(name: str, meta_name: str) -> TokenPattern:
    """Build a pattern matching a whole ``<meta name="...">`` tag."""
    return TokenPattern(
        name=name,
        marker=f'<meta name="{meta_name}" ...>',
        matcher=re.compile(f'<meta name="{re.escape(meta_name)}" [^>]*>'),
    )


CSRF_TOKEN = meta_token_pattern("csrf token", "grv_csrf_token")
BEARER_TOKEN = meta_token_pattern("bearer token", "grv_bearer_token")

DEFAULT_TOKEN_PATTERNS: Tuple[TokenPattern, ...] = (CSRF_TOKEN, BEARER_TOKEN)


def extract(pattern: TokenPattern, document: str) -> Optional[str]:
    match = pattern.matcher.search(document)
    return match.group(0) if match else None


def splice(pattern: TokenPattern, source: str, target: str) -> str:
    """
    Replace the first occurrence of ``pattern`` in ``target`` with the
    fragment found in ``source``. ``target`` is returned unchanged when the
    source has no such marker.
    """
    fragment = extract(pattern, source)
    if fragment is None:
        logger.debug(f"[Rewrite] No {pattern.name} marker in backend page")
        return target
    logger.debug(
        f"[Rewrite] Splicing {pattern.name} ({fragment_fingerprint(fragment)})"
    )
    # A callable replacement keeps backslashes in the fragment literal.
    return pattern.matcher.sub(lambda _m: fragment, target, count=1)


def splice_tokens(
    backend_html: str, local_page: str, patterns: Iterable[TokenPattern]
) -> str:
    document = local_page
    for pattern in patterns:
        document = splice(pattern, backend_html, document)
    return document

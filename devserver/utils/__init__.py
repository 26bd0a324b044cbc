import hashlib
from typing import Optional


def fragment_fingerprint(fragment: Optional[str]) -> str:
    """Provide a stable, low-leak identifier for token fragments in logs."""
    if not fragment:
        return "<empty>"
    digest = hashlib.sha256(fragment.encode("utf-8")).hexdigest()[:12]
    return f"len={len(fragment)} sha256={digest}"

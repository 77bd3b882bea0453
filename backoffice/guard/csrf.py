"""
csrf.py — Double-submit CSRF tokens
===================================
The token lives in an HttpOnly ``csrf-token`` cookie and must be echoed in
the ``X-CSRF-Token`` header on state-changing requests. Nothing is stored
server-side.
"""
from __future__ import annotations

import hmac
import secrets
from typing import Iterable, Optional

CSRF_COOKIE = "csrf-token"
CSRF_HEADER = "x-csrf-token"
TOKEN_BYTES = 32

MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def generate_token() -> str:
    """32 random bytes as 64 lowercase hex characters."""
    return secrets.token_hex(TOKEN_BYTES)


def tokens_match(header_token: Optional[str], cookie_token: Optional[str]) -> bool:
    if not header_token or not cookie_token:
        return False
    return hmac.compare_digest(header_token.encode(), cookie_token.encode())


def requires_check(
    method: str,
    path: str,
    exempt_paths: Iterable[str],
    static_prefixes: Iterable[str],
) -> bool:
    """True when a request must present a matching token pair.

    Exemptions are exact path matches; static assets are matched by prefix.
    """
    if method.upper() not in MUTATING_METHODS:
        return False
    if any(path.startswith(prefix) for prefix in static_prefixes):
        return False
    return path not in set(exempt_paths)

"""
rate_limit.py — Request rate limiting for back-office data routes
=================================================================
Uses slowapi to cap read/update traffic per client. Login throttling is
not done here; the edge guard owns it (fixed window + lockout).

Keys by the client id the edge guard already resolved for the request,
so both layers agree on who the client is.
"""
from __future__ import annotations

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from .config import settings


def guard_client_key(request: Request) -> str:
    return getattr(request.state, "client_id", None) or get_remote_address(request)


limiter = Limiter(key_func=guard_client_key, default_limits=[])

API_LIMIT = settings.api_rate_limit

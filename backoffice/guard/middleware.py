"""
middleware.py — Edge request guard
==================================
Runs in front of every route. Steps, in order:

  1. Re-assert the ``session`` cookie with hardened attributes.
  2. Login path only: lockout check, then fixed-window rate limit.
  3. CSRF validation for state-changing requests.
  4. Issue a ``csrf-token`` cookie when the client has none.
  5. Stamp security headers.

A rejection in step 2 or 3 returns immediately; the rejection response
carries none of the cookies or headers from the other steps.

Client ids come from the connection address, or from X-Forwarded-For
when ``trust_forwarded_for`` is set. Either can be spoofed, so the id is
an abuse-mitigation key only and never an authentication boundary.
"""
from __future__ import annotations

import logging
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from ..config import Settings
from ..errors import BackofficeError, CsrfRejected, LockedOut, RateLimited
from . import csrf
from .store import GuardStore

log = logging.getLogger("backoffice.guard")

SESSION_COOKIE = "session"

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "no-referrer",
}


def client_id(request: Request, trust_forwarded_for: bool = False) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    first_hop = forwarded.split(",")[0].strip()
    if trust_forwarded_for and first_hop:
        return first_hop
    if request.client and request.client.host:
        return request.client.host
    return first_hop or "unknown"


def _sets_cookie(response: Response, name: str) -> bool:
    prefix = f"{name}="
    return any(
        value.lstrip().startswith(prefix)
        for value in response.headers.getlist("set-cookie")
    )


class EdgeGuardMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, store: GuardStore, settings: Settings) -> None:
        super().__init__(app)
        self.store = store
        self.settings = settings

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        client = client_id(request, self.settings.trust_forwarded_for)
        request.state.client_id = client
        path = request.url.path

        try:
            if path == self.settings.login_path:
                self._check_login_limits(client)
            self._check_csrf(request)
        except BackofficeError as exc:
            log.warning(
                "Guard rejected %s %s from %s: %s",
                request.method, path, client, exc.message,
            )
            return exc.to_response()

        cookie_token = request.cookies.get(csrf.CSRF_COOKIE)
        issued_token: Optional[str] = None
        if not cookie_token:
            issued_token = csrf.generate_token()
        request.state.csrf_token = cookie_token or issued_token

        response = await call_next(request)

        self._reassert_session(request, response)
        if issued_token is not None:
            response.set_cookie(
                csrf.CSRF_COOKIE,
                issued_token,
                httponly=True,
                secure=self.settings.is_production,
                samesite="strict",
                path="/",
            )
        for name, value in SECURITY_HEADERS.items():
            response.headers[name] = value
        return response

    def _check_login_limits(self, client: str) -> None:
        locked_until = self.store.locked_until(client)
        if locked_until is not None:
            raise LockedOut(locked_until)
        if not self.store.hit_window(client).allowed:
            raise RateLimited()

    def _check_csrf(self, request: Request) -> None:
        needs_check = csrf.requires_check(
            request.method,
            request.url.path,
            self.settings.csrf_exempt_paths,
            self.settings.static_path_prefixes,
        )
        if needs_check and not csrf.tokens_match(
            request.headers.get(csrf.CSRF_HEADER),
            request.cookies.get(csrf.CSRF_COOKIE),
        ):
            raise CsrfRejected()

    def _reassert_session(self, request: Request, response: Response) -> None:
        session = request.cookies.get(SESSION_COOKIE)
        # Handlers that set the session themselves (login/logout) win.
        if session is None or _sets_cookie(response, SESSION_COOKIE):
            return
        response.set_cookie(
            SESSION_COOKIE,
            session,
            max_age=self.settings.session_idle_timeout_seconds,
            httponly=True,
            secure=self.settings.is_production,
            samesite="strict",
            path="/",
        )

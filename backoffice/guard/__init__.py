from .middleware import EdgeGuardMiddleware, SECURITY_HEADERS, SESSION_COOKIE, client_id
from .store import FailureOutcome, GuardStore, LoginAttemptState, RateWindow
from .sweeper import StoreSweeper

__all__ = [
    "EdgeGuardMiddleware",
    "FailureOutcome",
    "GuardStore",
    "LoginAttemptState",
    "RateWindow",
    "SECURITY_HEADERS",
    "SESSION_COOKIE",
    "StoreSweeper",
    "client_id",
]

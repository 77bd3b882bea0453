from __future__ import annotations

from fastapi import Cookie, Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select

from .core import decode_session_token
from ..config import Settings
from ..database import db_session
from ..guard import GuardStore, SESSION_COOKIE
from ..models import User

bearer_scheme = HTTPBearer(auto_error=False)


def get_app_settings(request: Request) -> Settings:
    """Settings the running app was built with (see ``create_app``)."""
    return request.app.state.settings


# ---------------------------------------------------------------------------
# Resolve current user from the session cookie or a bearer token
# ---------------------------------------------------------------------------

def get_current_user(
    bearer: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
    session: str | None = Cookie(None, alias=SESSION_COOKIE),
    settings: Settings = Depends(get_app_settings),
) -> User:
    """
    Accepts either:
      - the ``session`` cookie set by /api/auth/login
      - Authorization: Bearer <token>  (scripts and tests)
    Returns the matching active User or raises 401.
    """
    token = (bearer.credentials if bearer and bearer.credentials else None) or session
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        email: str = decode_session_token(token, settings).get("sub", "")
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
                            detail="Invalid or expired session.")
    with db_session() as db:
        user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
                            detail="User not found or inactive.")
    return user


# ---------------------------------------------------------------------------
# Role guards
# ---------------------------------------------------------------------------

def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN,
                            detail="Admin access required.")
    return current_user


def require_staff(current_user: User = Depends(get_current_user)) -> User:
    """Admins and support agents (read-only back-office access)."""
    if current_user.role not in ("admin", "support"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN,
                            detail="Back-office access required.")
    return current_user


# ---------------------------------------------------------------------------
# Guard state for the running app
# ---------------------------------------------------------------------------

def get_guard_store(request: Request) -> GuardStore:
    return request.app.state.guard_store


def get_client_id(request: Request) -> str:
    """Client id computed by the edge guard for this request."""
    return getattr(request.state, "client_id", None) or "unknown"

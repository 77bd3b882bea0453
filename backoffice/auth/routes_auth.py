from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy import select

from .core import create_session_token, verify_password
from . import two_factor
from .dependencies import (
    get_app_settings,
    get_client_id,
    get_current_user,
    get_guard_store,
    require_admin,
)
from ..config import Settings
from ..database import db_session
from ..errors import InvalidQuery, LockedOut
from ..guard import GuardStore, SESSION_COOKIE
from ..models import LoginHistory, User
from ..telemetry.logger import log_change
from ..schemas import (
    CsrfTokenResponse,
    LoginHistoryRead,
    LoginRequest,
    SessionUser,
    TwoFactorCode,
    TwoFactorSetupResponse,
    TwoFactorStatus,
)

log = logging.getLogger("backoffice.auth")

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _session_user(user: User) -> SessionUser:
    return SessionUser(email=user.email, name=user.name, role=user.role)


# ---------------------------------------------------------------------------
# Login / logout
# ---------------------------------------------------------------------------

@router.post("/login", response_model=SessionUser)
def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    store: GuardStore = Depends(get_guard_store),
    client: str = Depends(get_client_id),
    settings: Settings = Depends(get_app_settings),
):
    """
    Check credentials for a back-office account.

    The edge guard has already rejected locked-out and rate-limited
    clients before this runs. Every failed check, password or second
    factor, counts towards the client's lockout; reaching the threshold
    answers 429 with the lock expiry.
    """
    with db_session() as db:
        user = db.execute(
            select(User).where(User.email == body.email.strip().lower())
        ).scalar_one_or_none()

    password_ok = bool(
        user and user.is_active and verify_password(body.password, user.password_hash)
    )
    if password_ok and user.two_factor_enabled and not body.otp:
        return JSONResponse(
            {"error": "Two-factor code required.", "twoFactorRequired": True},
            status_code=status.HTTP_401_UNAUTHORIZED,
        )

    if not password_ok or (user.two_factor_enabled and not _second_factor_ok(user, body.otp)):
        outcome = store.record_failure(client)
        log.info("Failed login for %s from %s (%d failures)", body.email, client, outcome.failures)
        if outcome.locked:
            payload = LockedOut(outcome.locked_until).to_payload()
            payload["locked"] = True
            return JSONResponse(payload, status_code=LockedOut.status_code)
        return JSONResponse(
            {
                "error": "Invalid credentials.",
                "locked": False,
                "attemptsRemaining": outcome.attempts_remaining,
            },
            status_code=status.HTTP_401_UNAUTHORIZED,
        )

    store.record_success(client)

    with db_session() as db:
        user_row = db.get(User, user.id)
        if user_row:
            user_row.last_login_at = datetime.now(timezone.utc)
            user_row.login_count = (user_row.login_count or 0) + 1
        db.add(
            LoginHistory(
                user_id=user.id,
                email=user.email,
                ip_address=client,
                user_agent=request.headers.get("user-agent", "")[:512],
            )
        )

    response.set_cookie(
        SESSION_COOKIE,
        create_session_token(user.email, user.role, settings),
        max_age=settings.session_idle_timeout_seconds,
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
        path="/",
    )
    log.info("Login for %s from %s", user.email, client)
    return _session_user(user)


def _second_factor_ok(user: User, code: str) -> bool:
    if two_factor.verify_code(code, user.two_factor_secret):
        return True
    with db_session() as db:
        row = db.get(User, user.id)
        remaining = two_factor.consume_backup_code(code, row.backup_codes if row else None)
        if remaining is None:
            return False
        row.backup_codes = remaining
    log.warning("Backup code used for %s", user.email)
    return True


@router.post("/logout", status_code=204)
def logout(settings: Settings = Depends(get_app_settings)) -> Response:
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    response.delete_cookie(
        SESSION_COOKIE,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )
    return response


# ---------------------------------------------------------------------------
# Session helpers
# ---------------------------------------------------------------------------

@router.get("/me", response_model=SessionUser)
def me(current_user: User = Depends(get_current_user)) -> SessionUser:
    return _session_user(current_user)


@router.get("/csrf", response_model=CsrfTokenResponse)
def csrf_token(request: Request) -> CsrfTokenResponse:
    """Echo the CSRF token so clients can send it back in X-CSRF-Token.

    The cookie itself is HttpOnly; on a first visit this returns the token
    the guard is issuing on this same response.
    """
    token = getattr(request.state, "csrf_token", None)
    if not token:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                            detail="CSRF protection is not active.")
    return CsrfTokenResponse(csrfToken=token)


# ---------------------------------------------------------------------------
# Login history — admin only
# ---------------------------------------------------------------------------

@router.get("/login-history", response_model=List[LoginHistoryRead])
def login_history(
    limit: int = 100,
    admin: User = Depends(require_admin),
) -> List[LoginHistoryRead]:
    """Return recent successful logins across all accounts."""
    with db_session() as db:
        rows = (
            db.execute(
                select(LoginHistory)
                .order_by(LoginHistory.created_at.desc())
                .limit(min(max(limit, 1), 500))
            )
            .scalars()
            .all()
        )
        return [LoginHistoryRead.model_validate(r) for r in rows]


# ---------------------------------------------------------------------------
# Two-factor authentication (TOTP)
# ---------------------------------------------------------------------------

@router.get("/2fa", response_model=TwoFactorStatus)
def two_factor_status(current_user: User = Depends(get_current_user)) -> TwoFactorStatus:
    return TwoFactorStatus(
        enabled=current_user.two_factor_enabled,
        verified_at=current_user.two_factor_verified_at,
    )


@router.post("/2fa/setup", response_model=TwoFactorSetupResponse)
def two_factor_setup(current_user: User = Depends(get_current_user)) -> TwoFactorSetupResponse:
    """
    Start enrolment: issue a fresh secret and backup codes.

    The secret is stored but not enforced until ``/2fa/enable`` confirms a
    code from the authenticator app. Backup codes are only ever shown here.
    """
    if current_user.two_factor_enabled:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT,
                            detail="Two-factor authentication is already enabled.")
    setup = two_factor.new_setup(current_user.email)
    with db_session() as db:
        row = db.get(User, current_user.id)
        row.two_factor_secret = setup.secret
        row.backup_codes = two_factor.dump_backup_codes(setup.backup_codes)
    return TwoFactorSetupResponse(
        secret=setup.secret,
        otpauth_url=setup.otpauth_url,
        backup_codes=setup.backup_codes,
    )


@router.post("/2fa/enable", response_model=TwoFactorStatus)
def two_factor_enable(
    body: TwoFactorCode,
    current_user: User = Depends(get_current_user),
    client: str = Depends(get_client_id),
) -> TwoFactorStatus:
    if not current_user.two_factor_secret:
        raise InvalidQuery("Start two-factor setup first.")
    if not two_factor.verify_code(body.code, current_user.two_factor_secret):
        raise InvalidQuery("Invalid two-factor code.")
    with db_session() as db:
        row = db.get(User, current_user.id)
        log_change(db, "users", str(row.id), {"two_factor_enabled": row.two_factor_enabled},
                   {"two_factor_enabled": True}, user_email=row.email, client_id=client)
        row.two_factor_enabled = True
        row.two_factor_verified_at = datetime.now(timezone.utc)
        verified_at = row.two_factor_verified_at
    log.info("Two-factor authentication enabled for %s", current_user.email)
    return TwoFactorStatus(enabled=True, verified_at=verified_at)


@router.post("/2fa/disable", response_model=TwoFactorStatus)
def two_factor_disable(
    body: TwoFactorCode,
    current_user: User = Depends(get_current_user),
    client: str = Depends(get_client_id),
) -> TwoFactorStatus:
    """Turn the second factor off; needs a current TOTP code or a backup code."""
    if not current_user.two_factor_enabled:
        raise InvalidQuery("Two-factor authentication is not enabled.")
    code_ok = two_factor.verify_code(body.code, current_user.two_factor_secret) or (
        two_factor.consume_backup_code(body.code, current_user.backup_codes) is not None
    )
    if not code_ok:
        raise InvalidQuery("Invalid two-factor code.")
    with db_session() as db:
        row = db.get(User, current_user.id)
        log_change(db, "users", str(row.id), {"two_factor_enabled": True},
                   {"two_factor_enabled": False}, user_email=row.email, client_id=client)
        row.two_factor_enabled = False
        row.two_factor_secret = None
        row.two_factor_verified_at = None
        row.backup_codes = None
    log.info("Two-factor authentication disabled for %s", current_user.email)
    return TwoFactorStatus(enabled=False)

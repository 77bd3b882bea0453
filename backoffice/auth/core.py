from __future__ import annotations

from datetime import datetime, timedelta, timezone

import bcrypt
from jose import jwt

from ..config import Settings

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(plain: str) -> str:
    return bcrypt.hashpw(plain.encode(), bcrypt.gensalt()).decode()


def verify_password(plain: str, hashed: str) -> bool:
    """Check a password; a malformed stored hash never matches."""
    try:
        return bcrypt.checkpw(plain.encode(), hashed.encode())
    except ValueError:
        return False


# ---------------------------------------------------------------------------
# Session tokens (carried in the ``session`` cookie)
# ---------------------------------------------------------------------------

ALGORITHM = "HS256"


def create_session_token(user_email: str, role: str, settings: Settings) -> str:
    """Sign a session for ``user_email``, valid for ``jwt_expire_minutes``."""
    issued = datetime.now(timezone.utc)
    claims = {
        "sub": user_email,
        "role": role,
        "iat": issued,
        "exp": issued + timedelta(minutes=settings.jwt_expire_minutes),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=ALGORITHM)


def decode_session_token(token: str, settings: Settings) -> dict:
    """Raises JWTError when the token is forged, malformed or expired."""
    return jwt.decode(token, settings.jwt_secret, algorithms=[ALGORITHM])

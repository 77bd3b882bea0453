"""
two_factor.py — TOTP second factor for back-office accounts
============================================================
Standard RFC 6238 codes (30 s step, 6 digits) as produced by Google
Authenticator, Authy, 1Password and similar apps. One step of clock drift
either side is accepted.

Each account also gets single-use backup codes at setup. Only their
SHA-256 digests are stored; a code is removed once it has been used.
"""
from __future__ import annotations

import hashlib
import json
import secrets
from dataclasses import dataclass
from typing import List, Optional

import pyotp

ISSUER = "Marketplace Back-office"
BACKUP_CODE_COUNT = 10


@dataclass
class TwoFactorSetup:
    secret: str
    otpauth_url: str
    backup_codes: List[str]


def new_setup(email: str, issuer: str = ISSUER) -> TwoFactorSetup:
    secret = pyotp.random_base32()
    return TwoFactorSetup(
        secret=secret,
        otpauth_url=pyotp.TOTP(secret).provisioning_uri(name=email, issuer_name=issuer),
        backup_codes=generate_backup_codes(),
    )


def verify_code(code: str, secret: Optional[str]) -> bool:
    if not secret:
        return False
    code = code.replace(" ", "")
    if not code.isdigit():
        return False
    return pyotp.TOTP(secret).verify(code, valid_window=1)


# ---------------------------------------------------------------------------
# Backup codes
# ---------------------------------------------------------------------------

def generate_backup_codes(count: int = BACKUP_CODE_COUNT) -> List[str]:
    return [secrets.token_hex(4).upper() for _ in range(count)]


def hash_backup_code(code: str) -> str:
    return hashlib.sha256(code.strip().upper().encode()).hexdigest()


def dump_backup_codes(codes: List[str]) -> str:
    return json.dumps([hash_backup_code(c) for c in codes])


def consume_backup_code(code: str, stored: Optional[str]) -> Optional[str]:
    """Return the stored digests minus ``code``, or None when it does not match."""
    digests = json.loads(stored) if stored else []
    digest = hash_backup_code(code)
    if digest not in digests:
        return None
    digests.remove(digest)
    return json.dumps(digests)

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Collection queries
# ---------------------------------------------------------------------------

class ListParams(BaseModel):
    """Filtered, paginated, sorted query over one collection."""

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)
    search: Optional[str] = None
    sort_by: str = "created_at"
    sort_order: str = Field(default="desc", pattern="^(asc|desc)$")
    filters: Dict[str, Any] = Field(default_factory=dict)


class Page(BaseModel):
    """Paginated result; key names match what the dashboard front-end reads."""

    model_config = ConfigDict(populate_by_name=True)

    items: List[Dict[str, Any]]
    total: int
    page: int
    limit: int
    total_pages: int = Field(..., alias="totalPages")


# ---------------------------------------------------------------------------
# Partial updates
# ---------------------------------------------------------------------------

class BookingUpdate(BaseModel):
    status: Optional[str] = Field(
        default=None, pattern="^(pending|confirmed|in_progress|completed|cancelled)$"
    )
    payment_status: Optional[str] = Field(default=None, pattern="^(pending|paid|refunded)$")
    escrow_released: Optional[bool] = None


class ProviderUpdate(BaseModel):
    is_active: Optional[bool] = None
    cni_verified: Optional[bool] = None
    category: Optional[str] = Field(default=None, min_length=1, max_length=64)


class TransactionUpdate(BaseModel):
    status: Optional[str] = Field(default=None, pattern="^(pending|completed|failed)$")
    external_reference: Optional[str] = Field(default=None, max_length=128)


class DisputeUpdate(BaseModel):
    status: Optional[str] = Field(default=None, pattern="^(open|investigating|resolved|closed)$")
    admin_notes: Optional[str] = None
    resolution: Optional[str] = None


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1)
    otp: Optional[str] = Field(default=None, max_length=32)  # TOTP or backup code


class TwoFactorCode(BaseModel):
    code: str = Field(..., min_length=6, max_length=32)


class TwoFactorStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enabled: bool
    verified_at: Optional[datetime] = Field(default=None, alias="verifiedAt")


class TwoFactorSetupResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    secret: str
    otpauth_url: str = Field(..., alias="otpauthUrl")
    backup_codes: List[str] = Field(..., alias="backupCodes")


class SessionUser(BaseModel):
    email: str
    name: str
    role: str


class CsrfTokenResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    csrf_token: str = Field(..., alias="csrfToken")


class LoginHistoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    email: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime


# ---------------------------------------------------------------------------
# Guard administration
# ---------------------------------------------------------------------------

class GuardStatus(BaseModel):
    rate_windows: int
    login_states: int
    locked_clients: int
    sweeper_running: bool

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request

from .common import get_or_404, list_params, patch_or_404
from ..auth.dependencies import get_client_id, require_admin, require_staff
from ..models import User
from ..rate_limit import API_LIMIT, limiter
from ..schemas import BookingUpdate, Page
from ..services import records

router = APIRouter(prefix="/api/bookings", tags=["bookings"])


@router.get("", response_model=Page)
@limiter.limit(API_LIMIT)
def list_bookings(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    payment_method: Optional[str] = None,
    provider_id: Optional[str] = None,
    customer_id: Optional[str] = None,
    _user: User = Depends(require_staff),
) -> Dict[str, Any]:
    params = list_params(
        page, limit, search, sort_by, sort_order,
        status=status,
        payment_status=payment_status,
        payment_method=payment_method,
        provider_id=provider_id,
        customer_id=customer_id,
    )
    return records.list_records("bookings", params)


@router.get("/{booking_id}")
def get_booking(booking_id: str, _user: User = Depends(require_staff)) -> Dict[str, Any]:
    return get_or_404("bookings", booking_id)


@router.patch("/{booking_id}")
def update_booking(
    booking_id: str,
    body: BookingUpdate,
    admin: User = Depends(require_admin),
    client: str = Depends(get_client_id),
) -> Dict[str, Any]:
    """Change booking / payment status or release escrow."""
    return patch_or_404("bookings", booking_id, body, admin, client)

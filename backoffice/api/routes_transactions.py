from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request

from .common import get_or_404, list_params, patch_or_404
from ..auth.dependencies import get_client_id, require_admin, require_staff
from ..models import User
from ..rate_limit import API_LIMIT, limiter
from ..schemas import Page, TransactionUpdate
from ..services import records

router = APIRouter(prefix="/api/transactions", tags=["payments"])


@router.get("", response_model=Page)
@limiter.limit(API_LIMIT)
def list_transactions(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    status: Optional[str] = None,
    transaction_type: Optional[str] = None,
    payment_method: Optional[str] = None,
    booking_id: Optional[str] = None,
    _user: User = Depends(require_staff),
) -> Dict[str, Any]:
    params = list_params(
        page, limit, search, sort_by, sort_order,
        status=status,
        transaction_type=transaction_type,
        payment_method=payment_method,
        booking_id=booking_id,
    )
    return records.list_records("transactions", params)


@router.get("/{transaction_id}")
def get_transaction(transaction_id: str, _user: User = Depends(require_staff)) -> Dict[str, Any]:
    return get_or_404("transactions", transaction_id)


@router.patch("/{transaction_id}")
def update_transaction(
    transaction_id: str,
    body: TransactionUpdate,
    admin: User = Depends(require_admin),
    client: str = Depends(get_client_id),
) -> Dict[str, Any]:
    return patch_or_404("transactions", transaction_id, body, admin, client)

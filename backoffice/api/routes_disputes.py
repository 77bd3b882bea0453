from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request

from .common import get_or_404, list_params, patch_or_404
from ..auth.dependencies import get_client_id, require_admin, require_staff
from ..models import User
from ..rate_limit import API_LIMIT, limiter
from ..schemas import DisputeUpdate, Page
from ..services import records

router = APIRouter(prefix="/api/disputes", tags=["disputes"])


@router.get("", response_model=Page)
@limiter.limit(API_LIMIT)
def list_disputes(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    status: Optional[str] = None,
    reporter_id: Optional[str] = None,
    reported_id: Optional[str] = None,
    booking_id: Optional[str] = None,
    _user: User = Depends(require_staff),
) -> Dict[str, Any]:
    params = list_params(
        page, limit, search, sort_by, sort_order,
        status=status,
        reporter_id=reporter_id,
        reported_id=reported_id,
        booking_id=booking_id,
    )
    return records.list_records("disputes", params)


@router.get("/{dispute_id}")
def get_dispute(dispute_id: str, _user: User = Depends(require_staff)) -> Dict[str, Any]:
    return get_or_404("disputes", dispute_id)


@router.patch("/{dispute_id}")
def update_dispute(
    dispute_id: str,
    body: DisputeUpdate,
    admin: User = Depends(require_admin),
    client: str = Depends(get_client_id),
) -> Dict[str, Any]:
    """Move a dispute through open → investigating → resolved / closed."""
    return patch_or_404("disputes", dispute_id, body, admin, client)

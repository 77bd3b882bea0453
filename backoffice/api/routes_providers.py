from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request

from .common import get_or_404, list_params, patch_or_404
from ..auth.dependencies import get_client_id, require_admin, require_staff
from ..models import User
from ..rate_limit import API_LIMIT, limiter
from ..schemas import Page, ProviderUpdate
from ..services import records

router = APIRouter(prefix="/api/providers", tags=["providers"])


@router.get("", response_model=Page)
@limiter.limit(API_LIMIT)
def list_providers(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    category: Optional[str] = None,
    is_active: Optional[bool] = None,
    cni_verified: Optional[bool] = None,
    _user: User = Depends(require_staff),
) -> Dict[str, Any]:
    params = list_params(
        page, limit, search, sort_by, sort_order,
        category=category,
        is_active=is_active,
        cni_verified=cni_verified,
    )
    return records.list_records("providers", params)


@router.get("/{provider_id}")
def get_provider(provider_id: str, _user: User = Depends(require_staff)) -> Dict[str, Any]:
    return get_or_404("providers", provider_id)


@router.patch("/{provider_id}")
def update_provider(
    provider_id: str,
    body: ProviderUpdate,
    admin: User = Depends(require_admin),
    client: str = Depends(get_client_id),
) -> Dict[str, Any]:
    """Activate / suspend a provider or mark their ID document verified."""
    return patch_or_404("providers", provider_id, body, admin, client)

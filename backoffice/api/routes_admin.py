from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request

from .common import list_params
from ..auth.dependencies import get_guard_store, require_admin
from ..guard import GuardStore
from ..models import User
from ..schemas import GuardStatus, Page
from ..services import records

log = logging.getLogger("backoffice.guard")

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/guard", response_model=GuardStatus)
def guard_status(
    request: Request,
    store: GuardStore = Depends(get_guard_store),
    _admin: User = Depends(require_admin),
) -> GuardStatus:
    """Return how many clients the edge guard is currently tracking."""
    sweeper = getattr(request.app.state, "guard_sweeper", None)
    return GuardStatus(
        **store.stats(),
        sweeper_running=bool(sweeper and sweeper.running),
    )


@router.delete("/guard/lockouts/{client_id}", status_code=204)
def clear_lockout(
    client_id: str,
    store: GuardStore = Depends(get_guard_store),
    admin: User = Depends(require_admin),
) -> None:
    """Forget a client's failed logins, lifting any active lockout."""
    store.record_success(client_id)
    log.info("Lockout for %s cleared by %s", client_id, admin.email)


@router.get("/audit-logs", response_model=Page)
def list_audit_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    search: Optional[str] = None,
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    table_name: Optional[str] = None,
    user_email: Optional[str] = None,
    _admin: User = Depends(require_admin),
) -> Dict[str, Any]:
    params = list_params(
        page, limit, search, "created_at", sort_order,
        table_name=table_name,
        user_email=user_email,
    )
    return records.list_records("audit_logs", params)

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel

from ..errors import NotFound
from ..models import User
from ..schemas import ListParams
from ..services import records


def list_params(
    page: int,
    limit: int,
    search: Optional[str],
    sort_by: str,
    sort_order: str,
    **filters: Any,
) -> ListParams:
    return ListParams(
        page=page,
        limit=limit,
        search=search or None,
        sort_by=sort_by,
        sort_order=sort_order,
        filters={k: v for k, v in filters.items() if v is not None},
    )


def get_or_404(collection: str, record_id: str) -> Dict[str, Any]:
    record = records.get_record(collection, record_id)
    if record is None:
        raise NotFound(f"{collection[:-1].capitalize()} {record_id} not found.")
    return record


def patch_or_404(
    collection: str,
    record_id: str,
    body: BaseModel,
    user: User,
    client_id: str,
) -> Dict[str, Any]:
    updates = body.model_dump(exclude_unset=True)
    if not updates:
        return get_or_404(collection, record_id)
    record = records.update_record(
        collection, record_id, updates, user_email=user.email, client_id=client_id
    )
    if record is None:
        raise NotFound(f"{collection[:-1].capitalize()} {record_id} not found.")
    return record

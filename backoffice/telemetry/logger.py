from __future__ import annotations

import json
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..models import AuditLog


def log_change(
    session: Session,
    table_name: str,
    record_id: str,
    old_data: Dict[str, Any],
    new_data: Dict[str, Any],
    user_email: Optional[str] = None,
    client_id: Optional[str] = None,
    action: str = "UPDATE",
) -> None:
    """
    Append an audit row for a back-office change.

    Runs inside the caller's session so the audit row commits (or rolls
    back) together with the change it describes. Only the fields that
    actually changed are stored on either side.
    """
    changed = [k for k, v in new_data.items() if old_data.get(k) != v]
    if not changed:
        return
    session.add(
        AuditLog(
            table_name=table_name,
            record_id=str(record_id),
            action=action,
            old_data=json.dumps({k: old_data.get(k) for k in changed}, default=str),
            new_data=json.dumps({k: new_data[k] for k in changed}, default=str),
            user_email=user_email,
            client_id=client_id,
        )
    )

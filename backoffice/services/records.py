"""
records.py — Data-store access for back-office collections
==========================================================
Thin query layer over the relational store, shared by every collection
route:

  * ``list_records``  — equality / IN filters, text search, sort, paging;
                        returns ``{items, total, page, limit, totalPages}``
  * ``get_record``    — one row by id, or ``None`` when it does not exist
  * ``update_record`` — partial update of whitelisted fields plus an audit row

A miss is never an error here; routes decide whether ``None`` means 404.
Data-store errors are logged and re-raised unchanged.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Type

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError

from ..database import Base, db_session
from ..errors import InvalidQuery
from ..models import AuditLog, Booking, Dispute, Provider, Transaction
from ..schemas import ListParams
from ..telemetry.logger import log_change

log = logging.getLogger("backoffice.records")


@dataclass(frozen=True)
class Collection:
    name: str
    model: Type[Base]
    search_fields: Tuple[str, ...] = ()
    filter_fields: Tuple[str, ...] = ()
    updatable_fields: Tuple[str, ...] = ()

    def columns(self) -> set:
        return set(self.model.__table__.columns.keys())


COLLECTIONS: Dict[str, Collection] = {
    c.name: c
    for c in (
        Collection(
            "bookings",
            Booking,
            search_fields=("service_name", "description"),
            filter_fields=("status", "payment_status", "payment_method", "provider_id", "customer_id"),
            updatable_fields=("status", "payment_status", "escrow_released"),
        ),
        Collection(
            "providers",
            Provider,
            search_fields=("business_name", "description"),
            filter_fields=("category", "is_active", "cni_verified"),
            updatable_fields=("is_active", "cni_verified", "category"),
        ),
        Collection(
            "transactions",
            Transaction,
            search_fields=("external_reference",),
            filter_fields=("status", "transaction_type", "payment_method", "booking_id"),
            updatable_fields=("status", "external_reference"),
        ),
        Collection(
            "disputes",
            Dispute,
            search_fields=("reason", "description"),
            filter_fields=("status", "reporter_id", "reported_id", "booking_id"),
            updatable_fields=("status", "admin_notes", "resolution"),
        ),
        Collection(
            "audit_logs",
            AuditLog,
            search_fields=("record_id", "user_email"),
            filter_fields=("table_name", "action", "user_email"),
        ),
    )
}


def get_collection(name: str) -> Collection:
    try:
        return COLLECTIONS[name]
    except KeyError:
        raise InvalidQuery(f"Unknown collection {name!r}.") from None


def to_dict(row: Base) -> Dict[str, Any]:
    return {key: getattr(row, key) for key in row.__table__.columns.keys()}


def _is_blank(value: Any) -> bool:
    return value is None or value == "" or (isinstance(value, (list, tuple, set)) and not value)


def list_records(name: str, params: Optional[ListParams] = None) -> Dict[str, Any]:
    coll = get_collection(name)
    params = params or ListParams()
    model = coll.model

    stmt = select(model)
    for key, value in params.filters.items():
        if _is_blank(value):
            continue
        if key not in coll.filter_fields:
            raise InvalidQuery(f"Cannot filter {coll.name} by {key!r}.")
        column = getattr(model, key)
        if isinstance(value, (list, tuple, set)):
            stmt = stmt.where(column.in_(list(value)))
        else:
            stmt = stmt.where(column == value)

    if params.search and coll.search_fields:
        pattern = f"%{params.search}%"
        stmt = stmt.where(or_(*(getattr(model, f).ilike(pattern) for f in coll.search_fields)))

    if params.sort_by not in coll.columns():
        raise InvalidQuery(f"Cannot sort {coll.name} by {params.sort_by!r}.")
    sort_column = getattr(model, params.sort_by)
    order = sort_column.asc() if params.sort_order == "asc" else sort_column.desc()
    offset = (params.page - 1) * params.limit

    try:
        with db_session() as session:
            total = session.execute(
                select(func.count()).select_from(stmt.subquery())
            ).scalar_one()
            rows = (
                session.execute(stmt.order_by(order).offset(offset).limit(params.limit))
                .scalars()
                .all()
            )
            items = [to_dict(r) for r in rows]
    except SQLAlchemyError:
        log.exception("Error fetching from %s", coll.name)
        raise

    return {
        "items": items,
        "total": total,
        "page": params.page,
        "limit": params.limit,
        "totalPages": math.ceil(total / params.limit),
    }


def get_record(name: str, record_id: str) -> Optional[Dict[str, Any]]:
    coll = get_collection(name)
    try:
        with db_session() as session:
            row = session.get(coll.model, record_id)
            return to_dict(row) if row is not None else None
    except SQLAlchemyError:
        log.exception("Error fetching %s by ID %s", coll.name, record_id)
        raise


def update_record(
    name: str,
    record_id: str,
    updates: Dict[str, Any],
    user_email: Optional[str] = None,
    client_id: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """Apply a partial update; returns the updated record or ``None`` if missing."""
    coll = get_collection(name)
    unknown = set(updates) - set(coll.updatable_fields)
    if unknown:
        raise InvalidQuery(f"Cannot update {', '.join(sorted(unknown))} on {coll.name}.")
    columns = coll.model.__table__.columns
    not_nullable = sorted(k for k, v in updates.items() if v is None and not columns[k].nullable)
    if not_nullable:
        raise InvalidQuery(f"{', '.join(not_nullable)} cannot be null on {coll.name}.")

    try:
        with db_session() as session:
            row = session.get(coll.model, record_id)
            if row is None:
                return None
            before = to_dict(row)
            for key, value in updates.items():
                setattr(row, key, value)
            log_change(
                session,
                coll.name,
                record_id,
                before,
                updates,
                user_email=user_email,
                client_id=client_id,
            )
            session.flush()
            session.refresh(row)
            return to_dict(row)
    except SQLAlchemyError:
        log.exception("Error updating %s %s", coll.name, record_id)
        raise

"""
Tests for the data-store collaborator (filtered / paginated / sorted
queries, not-found handling, audited partial updates) and the back-office
routes built on it.

Run with: pytest tests/test_records.py -v
"""
from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import delete, select
from sqlalchemy.exc import OperationalError

from backoffice.database import db_session
from backoffice.errors import InvalidQuery
from backoffice.guard import GuardStore
from backoffice.main import create_app
from backoffice.models import AuditLog, Booking, Dispute, Provider, Transaction
from backoffice.schemas import ListParams
from backoffice.services import records

ADMIN = {"email": "admin@backoffice.local", "password": "changeme"}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def marketplace():
    """Fresh marketplace rows for every test: 2 providers, 5 bookings, 1 dispute, 1 payment."""
    with db_session() as session:
        for model in (AuditLog, Dispute, Transaction, Booking, Provider):
            session.execute(delete(model))

    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    with db_session() as session:
        session.add_all([
            Provider(id="prov-1", business_name="Clean Homes", category="cleaning", rating=4.5),
            Provider(id="prov-2", business_name="Fix It Fast", category="plumbing", is_active=False),
        ])
        session.flush()
        statuses = ["pending", "confirmed", "completed", "completed", "cancelled"]
        for i, status in enumerate(statuses):
            session.add(
                Booking(
                    id=f"book-{i}",
                    customer_id=f"cust-{i}",
                    provider_id="prov-1" if i < 3 else "prov-2",
                    service_name="Deep clean" if i % 2 == 0 else "Pipe repair",
                    status=status,
                    total_amount=100.0 * (i + 1),
                    created_at=base + timedelta(days=i),
                )
            )
        session.flush()
        session.add(
            Dispute(
                id="disp-1", booking_id="book-2", reporter_id="cust-2",
                reported_id="prov-1", reason="No show", description="Provider never arrived",
            )
        )
        session.add(Transaction(id="txn-1", booking_id="book-2", amount=300.0, status="pending"))
    yield


@pytest.fixture
def client() -> TestClient:
    client = TestClient(create_app(store=GuardStore()))
    token = client.get("/api/auth/csrf").json()["csrfToken"]
    resp = client.post("/api/auth/login", json=ADMIN, headers={"X-CSRF-Token": token})
    assert resp.status_code == 200, resp.text
    client.headers["X-CSRF-Token"] = token
    return client


# ---------------------------------------------------------------------------
# Collaborator — list / get / update
# ---------------------------------------------------------------------------

class TestListRecords:
    def test_page_shape(self):
        page = records.list_records("bookings", ListParams(limit=2))
        assert set(page) == {"items", "total", "page", "limit", "totalPages"}
        assert page["total"] == 5
        assert page["page"] == 1
        assert page["limit"] == 2
        assert page["totalPages"] == 3
        assert len(page["items"]) == 2

    def test_default_sort_is_newest_first(self):
        page = records.list_records("bookings")
        assert [b["id"] for b in page["items"]] == ["book-4", "book-3", "book-2", "book-1", "book-0"]

    def test_sort_ascending_by_amount(self):
        page = records.list_records("bookings", ListParams(sort_by="total_amount", sort_order="asc"))
        assert page["items"][0]["id"] == "book-0"

    def test_last_page(self):
        page = records.list_records("bookings", ListParams(page=3, limit=2))
        assert [b["id"] for b in page["items"]] == ["book-0"]

    def test_page_past_end_is_empty(self):
        page = records.list_records("bookings", ListParams(page=10, limit=2))
        assert page["items"] == []
        assert page["total"] == 5

    def test_equality_filter(self):
        page = records.list_records("bookings", ListParams(filters={"status": "completed"}))
        assert page["total"] == 2

    def test_in_filter(self):
        page = records.list_records(
            "bookings", ListParams(filters={"status": ["pending", "cancelled"]})
        )
        assert {b["id"] for b in page["items"]} == {"book-0", "book-4"}

    def test_blank_filters_ignored(self):
        page = records.list_records("bookings", ListParams(filters={"status": "", "provider_id": None}))
        assert page["total"] == 5

    def test_search(self):
        page = records.list_records("disputes", ListParams(search="never arrived"))
        assert page["total"] == 1

    def test_unknown_filter_rejected(self):
        with pytest.raises(InvalidQuery):
            records.list_records("bookings", ListParams(filters={"password": "x"}))

    def test_unknown_sort_rejected(self):
        with pytest.raises(InvalidQuery):
            records.list_records("bookings", ListParams(sort_by="nope"))

    def test_unknown_collection_rejected(self):
        with pytest.raises(InvalidQuery):
            records.list_records("users")

    def test_empty_collection(self):
        with db_session() as session:
            session.execute(delete(Dispute))
        page = records.list_records("disputes")
        assert page == {"items": [], "total": 0, "page": 1, "limit": 20, "totalPages": 0}


class TestGetAndUpdate:
    def test_get_missing_is_none(self):
        assert records.get_record("bookings", "nope") is None

    def test_get_existing(self):
        assert records.get_record("providers", "prov-1")["business_name"] == "Clean Homes"

    def test_update_missing_is_none(self):
        assert records.update_record("bookings", "nope", {"status": "cancelled"}) is None

    def test_update_writes_audit_row(self):
        updated = records.update_record(
            "bookings", "book-0", {"status": "confirmed"},
            user_email="ops@example.com", client_id="1.2.3.4",
        )
        assert updated["status"] == "confirmed"
        with db_session() as session:
            rows = session.execute(select(AuditLog)).scalars().all()
        assert len(rows) == 1
        assert rows[0].table_name == "bookings"
        assert rows[0].record_id == "book-0"
        assert json.loads(rows[0].old_data) == {"status": "pending"}
        assert json.loads(rows[0].new_data) == {"status": "confirmed"}
        assert rows[0].client_id == "1.2.3.4"

    def test_noop_update_writes_no_audit_row(self):
        records.update_record("bookings", "book-0", {"status": "pending"})
        with db_session() as session:
            assert session.execute(select(AuditLog)).scalars().all() == []

    def test_non_updatable_field_rejected(self):
        with pytest.raises(InvalidQuery):
            records.update_record("bookings", "book-0", {"total_amount": 0})

    def test_null_for_required_column_rejected(self):
        with pytest.raises(InvalidQuery):
            records.update_record("bookings", "book-0", {"status": None})
        assert records.get_record("bookings", "book-0")["status"] == "pending"


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

class TestRoutes:
    def test_list_requires_login(self):
        anon = TestClient(create_app(store=GuardStore()))
        assert anon.get("/api/bookings").status_code == 401

    def test_list_bookings_with_filters(self, client):
        resp = client.get("/api/bookings", params={"provider_id": "prov-1", "limit": 2})
        assert resp.status_code == 200
        body = resp.json()
        assert body["total"] == 3
        assert body["totalPages"] == 2
        assert len(body["items"]) == 2

    def test_list_providers_bool_filter(self, client):
        resp = client.get("/api/providers", params={"is_active": "false"})
        assert [p["id"] for p in resp.json()["items"]] == ["prov-2"]

    def test_bad_sort_column_is_400(self, client):
        resp = client.get("/api/bookings", params={"sort_by": "password_hash"})
        assert resp.status_code == 400
        assert "error" in resp.json()

    def test_get_not_found(self, client):
        resp = client.get("/api/disputes/missing")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Dispute missing not found."}

    def test_patch_dispute(self, client):
        resp = client.patch(
            "/api/disputes/disp-1",
            json={"status": "resolved", "resolution": "Refund issued"},
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["status"] == "resolved"

        audit = client.get("/api/admin/audit-logs", params={"table_name": "disputes"}).json()
        assert audit["total"] == 1
        assert audit["items"][0]["user_email"] == ADMIN["email"]

    def test_patch_invalid_status_is_422(self, client):
        resp = client.patch("/api/bookings/book-0", json={"status": "teleported"})
        assert resp.status_code == 422

    @pytest.mark.parametrize(
        "path, body",
        [
            ("/api/bookings/book-0", {"status": None}),
            ("/api/transactions/txn-1", {"status": None}),
            ("/api/disputes/disp-1", {"status": None}),
            ("/api/providers/prov-1", {"is_active": None}),
            ("/api/providers/prov-1", {"cni_verified": None}),
        ],
    )
    def test_patch_null_for_required_column_is_400(self, client, path, body):
        resp = client.patch(path, json=body)
        assert resp.status_code == 400, resp.text
        assert "cannot be null" in resp.json()["error"]

    def test_patch_null_clears_optional_text(self, client):
        assert client.patch("/api/disputes/disp-1", json={"admin_notes": "Called provider"}).status_code == 200
        resp = client.patch("/api/disputes/disp-1", json={"admin_notes": None})
        assert resp.status_code == 200, resp.text
        assert resp.json()["admin_notes"] is None

    def test_patch_missing_record_is_404(self, client):
        resp = client.patch("/api/transactions/missing", json={"status": "completed"})
        assert resp.status_code == 404

    def test_patch_without_csrf_header_is_403(self, client):
        del client.headers["X-CSRF-Token"]
        resp = client.patch("/api/providers/prov-2", json={"is_active": True})
        assert resp.status_code == 403
        assert records.get_record("providers", "prov-2")["is_active"] is False

    def test_data_store_failure_is_503(self, client, monkeypatch):
        def broken_session():
            raise OperationalError("SELECT 1", {}, Exception("database is gone"))

        monkeypatch.setattr(records, "db_session", broken_session)
        resp = client.get("/api/transactions")
        assert resp.status_code == 503
        assert resp.json() == {"error": "Upstream data store failure."}

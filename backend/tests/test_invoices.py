"""Invoice routes: credit-backed creation with rollback, duplication, status moves, public PDF access."""
from datetime import datetime, timezone

import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from fastapi.testclient import TestClient

from middleware import get_current_company
from invoicing.routes.invoices import router as invoices_router
from invoicing.routes.public import router as public_router
from invoicing.services.invoice_service import (
    generate_pdf_token,
    INVOICE_NOT_FOUND,
    DELETE_NOT_ALLOWED,
    EDIT_NOT_ALLOWED,
    DUPLICATE_CREDITS,
    PUBLIC_NOT_FOUND,
)
from invoicing.services.credit_service import INSUFFICIENT_CREDITS
from tests.conftest import make_app, make_client, cursor, TEST_COMPANY, TEST_USER

DB_PATH = "invoicing.services.invoice_service.database.get_db"
RENDER_PATH = "invoicing.routes.invoices.pdf_renderer.render"

CLIENT = {
    "client_id": "CLI-AAA",
    "name": "შპს კლიენტი",
    "type": "company",
    "tax_id": "401000001",
    "email": "client@example.ge",
}


def _invoice(**overrides):
    doc = {
        "invoice_id": "IVC-AAA",
        "company_id": TEST_COMPANY["company_id"],
        "client_id": CLIENT["client_id"],
        "invoice_number": "INV-2026-0001",
        "issue_date": "2026-03-01",
        "due_date": "2026-03-15",
        "status": "draft",
        "currency": "GEL",
        "subtotal": 100.0,
        "vat_rate": 18,
        "vat_amount": 18.0,
        "total": 118.0,
        "public_token": "a" * 32,
        "public_enabled": True,
        "public_expires_at": None,
        "bank_account_ids": [],
    }
    doc.update(overrides)
    return doc


def _item(**overrides):
    doc = {
        "item_id": "ITM-AAA",
        "invoice_id": "IVC-AAA",
        "service_id": None,
        "description": "კონსულტაცია",
        "quantity": 2,
        "unit_price": 50,
        "line_total": 100.0,
        "sort_order": 0,
    }
    doc.update(overrides)
    return doc


def _write_db():
    """DB mock for the create/duplicate unit of work."""
    db = MagicMock()
    db.clients.find_one = AsyncMock(return_value=dict(CLIENT))
    db.user_credits.find_one_and_update = AsyncMock(return_value={"user_id": TEST_USER["user_id"], "used_credits": 1})
    db.user_credits.update_one = AsyncMock(return_value=MagicMock(modified_count=1))
    db.companies.find_one_and_update = AsyncMock(return_value={"invoice_counter": 7, "invoice_prefix": "INV"})
    db.invoices.insert_one = AsyncMock()
    db.invoices.delete_one = AsyncMock()
    db.invoice_items.insert_many = AsyncMock()
    db.invoice_items.delete_many = AsyncMock()
    db.user_subscriptions.find_one = AsyncMock(return_value=None)
    db.usage_logs.insert_one = AsyncMock()
    return db


CREATE_BODY = {
    "client_id": "CLI-AAA",
    "issue_date": "2026-03-01",
    "due_days": 10,
    "items": [
        {"description": "კონსულტაცია", "quantity": 2, "unit_price": 50},
        {"description": "დიზაინი", "quantity": 1, "unit_price": 19.99},
    ],
}


class TestCreate:
    def test_create_consumes_credit_and_numbers_invoice(self):
        client = make_client(invoices_router)
        db = _write_db()
        with patch(DB_PATH, return_value=db):
            response = client.post("/api/invoices", json=CREATE_BODY)

        assert response.status_code == 201
        data = response.json()
        assert data["invoice_number"] == "INV-2026-0007"
        assert data["status"] == "draft"
        assert data["due_date"] == "2026-03-11"
        assert data["vat_rate"] == 18
        assert data["subtotal"] == 119.99
        assert data["vat_amount"] == 21.6
        assert data["total"] == 141.59
        assert data["client"]["name"] == CLIENT["name"]
        assert [i["sort_order"] for i in data["items"]] == [0, 1]
        assert all(i["invoice_id"] == data["invoice_id"] for i in data["items"])
        db.user_credits.find_one_and_update.assert_awaited_once()
        db.invoices.insert_one.assert_awaited_once()
        db.invoice_items.insert_many.assert_awaited_once()

    def test_create_uses_company_default_vat(self):
        app = make_app(invoices_router)
        app.dependency_overrides[get_current_company] = lambda: {**TEST_COMPANY, "default_vat_rate": 0}
        client = TestClient(app)
        db = _write_db()
        body = {**CREATE_BODY, "items": [{"description": "x", "quantity": 1, "unit_price": 100}]}
        with patch(DB_PATH, return_value=db):
            response = client.post("/api/invoices", json=body)

        assert response.status_code == 201
        assert response.json()["vat_amount"] == 0
        assert response.json()["total"] == 100

    def test_create_without_credits_is_forbidden(self):
        client = make_client(invoices_router)
        db = _write_db()
        db.user_credits.find_one_and_update = AsyncMock(return_value=None)
        db.user_credits.find_one = AsyncMock(return_value={"user_id": TEST_USER["user_id"], "total_credits": 5, "used_credits": 5})
        with patch(DB_PATH, return_value=db):
            response = client.post("/api/invoices", json=CREATE_BODY)

        assert response.status_code == 403
        assert response.json()["detail"] == INSUFFICIENT_CREDITS
        db.companies.find_one_and_update.assert_not_called()
        db.invoices.insert_one.assert_not_called()

    def test_create_without_credit_record_is_not_found(self):
        client = make_client(invoices_router)
        db = _write_db()
        db.user_credits.find_one_and_update = AsyncMock(return_value=None)
        db.user_credits.find_one = AsyncMock(return_value=None)
        with patch(DB_PATH, return_value=db):
            response = client.post("/api/invoices", json=CREATE_BODY)
        assert response.status_code == 404

    def test_create_for_foreign_client_is_not_found(self):
        client = make_client(invoices_router)
        db = _write_db()
        db.clients.find_one = AsyncMock(return_value=None)
        with patch(DB_PATH, return_value=db):
            response = client.post("/api/invoices", json=CREATE_BODY)

        assert response.status_code == 404
        db.user_credits.find_one_and_update.assert_not_called()

    def test_items_failure_rolls_back_invoice_and_credit(self):
        client = make_client(invoices_router)
        db = _write_db()
        db.invoice_items.insert_many = AsyncMock(side_effect=RuntimeError("write failed"))
        with patch(DB_PATH, return_value=db):
            response = client.post("/api/invoices", json=CREATE_BODY)

        assert response.status_code == 500
        assert response.json()["detail"] == "მოხდა შეცდომა"
        db.invoice_items.delete_many.assert_awaited_once()
        db.invoices.delete_one.assert_awaited_once()
        db.user_credits.update_one.assert_awaited_once()
        refund_query = db.user_credits.update_one.call_args[0][0]
        assert refund_query == {"user_id": TEST_USER["user_id"], "used_credits": {"$gt": 0}}

    @pytest.mark.parametrize("body", [
        {**CREATE_BODY, "items": []},
        {**CREATE_BODY, "items": [{"description": "", "quantity": 1, "unit_price": 1}]},
        {**CREATE_BODY, "items": [{"description": "x", "quantity": 0, "unit_price": 1}]},
        {**CREATE_BODY, "currency": "GBP"},
        {**CREATE_BODY, "due_days": 400},
        {**CREATE_BODY, "vat_rate": 120},
    ])
    def test_invalid_bodies_are_rejected(self, body):
        client = make_client(invoices_router)
        response = client.post("/api/invoices", json=body)
        assert response.status_code == 400


class TestDuplicate:
    def test_duplicate_creates_draft_copy(self):
        client = make_client(invoices_router)
        db = _write_db()
        db.invoices.find_one = AsyncMock(return_value=_invoice(status="paid"))
        db.invoice_items.find = MagicMock(return_value=cursor([_item(), _item(item_id="ITM-BBB", sort_order=1)]))
        with patch(DB_PATH, return_value=db):
            response = client.post("/api/invoices/IVC-AAA/duplicate")

        assert response.status_code == 201
        data = response.json()
        assert data["originalInvoiceId"] == "IVC-AAA"
        copy = data["invoice"]
        assert copy["invoice_id"] != "IVC-AAA"
        assert copy["invoice_number"].endswith("-0007")
        assert copy["status"] == "draft"
        assert copy["total"] == 118.0
        assert len(copy["items"]) == 2
        assert all(item["invoice_id"] == copy["invoice_id"] for item in copy["items"])
        assert copy["public_token"] != "a" * 32

    def test_items_failure_rolls_back_copy_and_credit(self):
        client = make_client(invoices_router)
        db = _write_db()
        db.invoices.find_one = AsyncMock(return_value=_invoice(status="paid"))
        db.invoice_items.find = MagicMock(return_value=cursor([_item()]))
        db.invoice_items.insert_many = AsyncMock(side_effect=RuntimeError("write failed"))
        with patch(DB_PATH, return_value=db):
            response = client.post("/api/invoices/IVC-AAA/duplicate")

        assert response.status_code == 500
        copy_id = db.invoices.insert_one.call_args[0][0]["invoice_id"]
        assert copy_id != "IVC-AAA"
        db.invoice_items.delete_many.assert_awaited_once_with({"invoice_id": copy_id})
        db.invoices.delete_one.assert_awaited_once_with({"invoice_id": copy_id})
        db.user_credits.update_one.assert_awaited_once()
        refund_query = db.user_credits.update_one.call_args[0][0]
        assert refund_query == {"user_id": TEST_USER["user_id"], "used_credits": {"$gt": 0}}

    def test_duplicate_without_credits_is_forbidden(self):
        client = make_client(invoices_router)
        db = _write_db()
        db.invoices.find_one = AsyncMock(return_value=_invoice())
        db.invoice_items.find = MagicMock(return_value=cursor([_item()]))
        db.user_credits.find_one_and_update = AsyncMock(return_value=None)
        db.user_credits.find_one = AsyncMock(return_value={"user_id": TEST_USER["user_id"], "total_credits": 5, "used_credits": 5})
        with patch(DB_PATH, return_value=db):
            response = client.post("/api/invoices/IVC-AAA/duplicate")

        assert response.status_code == 403
        assert response.json()["detail"] == DUPLICATE_CREDITS
        db.invoices.insert_one.assert_not_called()


class TestStatusAndLifecycle:
    @pytest.mark.parametrize("status", ["draft", "sent", "paid", "overdue", "cancelled"])
    def test_any_status_is_accepted(self, status):
        client = make_client(invoices_router)
        db = MagicMock()
        db.invoices.find_one = AsyncMock(return_value=_invoice(status="sent"))
        db.invoices.find_one_and_update = AsyncMock(return_value=_invoice(status=status))
        db.clients.find_one = AsyncMock(return_value=dict(CLIENT))
        with patch(DB_PATH, return_value=db):
            response = client.patch("/api/invoices/IVC-AAA/status", json={"status": status})

        assert response.status_code == 200
        data = response.json()
        assert data["invoice"]["status"] == status
        assert data["notification"]["new_status"] == status
        assert data["notification"]["old_status"] == "sent"
        assert data["message"]

    def test_paid_stamps_paid_at(self):
        client = make_client(invoices_router)
        db = MagicMock()
        db.invoices.find_one = AsyncMock(return_value=_invoice(status="sent"))
        db.invoices.find_one_and_update = AsyncMock(return_value=_invoice(status="paid"))
        db.clients.find_one = AsyncMock(return_value=dict(CLIENT))
        with patch(DB_PATH, return_value=db):
            client.patch("/api/invoices/IVC-AAA/status", json={"status": "paid"})

        update = db.invoices.find_one_and_update.call_args[0][1]["$set"]
        assert update["status"] == "paid"
        assert update["paid_at"] is not None

    def test_unknown_status_is_rejected(self):
        client = make_client(invoices_router)
        response = client.patch("/api/invoices/IVC-AAA/status", json={"status": "archived"})
        assert response.status_code == 400

    def test_other_company_invoice_is_not_found(self):
        client = make_client(invoices_router)
        db = MagicMock()
        db.invoices.find_one = AsyncMock(return_value=None)
        with patch(DB_PATH, return_value=db):
            response = client.get("/api/invoices/IVC-FOREIGN")

        assert response.status_code == 404
        assert response.json()["detail"] == INVOICE_NOT_FOUND
        query = db.invoices.find_one.call_args[0][0]
        assert query["company_id"] == TEST_COMPANY["company_id"]

    def test_delete_only_drafts(self):
        client = make_client(invoices_router)
        db = MagicMock()
        db.invoices.find_one = AsyncMock(return_value=_invoice(status="sent"))
        with patch(DB_PATH, return_value=db):
            response = client.delete("/api/invoices/IVC-AAA")
        assert response.status_code == 403
        assert response.json()["detail"] == DELETE_NOT_ALLOWED

    def test_delete_draft_cancels_and_refunds(self):
        client = make_client(invoices_router)
        db = MagicMock()
        db.invoices.find_one = AsyncMock(return_value=_invoice(status="draft"))
        db.invoices.update_one = AsyncMock(return_value=MagicMock(modified_count=1))
        db.user_credits.update_one = AsyncMock(return_value=MagicMock(modified_count=1))
        db.user_subscriptions.find_one = AsyncMock(return_value=None)
        db.usage_logs.insert_one = AsyncMock()
        with patch(DB_PATH, return_value=db):
            response = client.delete("/api/invoices/IVC-AAA")

        assert response.status_code == 200
        update = db.invoices.update_one.call_args[0][1]["$set"]
        assert update["status"] == "cancelled"
        db.user_credits.update_one.assert_awaited_once()

    def test_refund_failure_restores_draft(self):
        client = make_client(invoices_router)
        db = MagicMock()
        db.invoices.find_one = AsyncMock(return_value=_invoice(status="draft"))
        db.invoices.update_one = AsyncMock(return_value=MagicMock(modified_count=1))
        db.user_credits.update_one = AsyncMock(side_effect=RuntimeError("write failed"))
        with patch(DB_PATH, return_value=db):
            response = client.delete("/api/invoices/IVC-AAA")

        assert response.status_code == 500
        assert db.invoices.update_one.await_count == 2
        restored = db.invoices.update_one.call_args[0][1]["$set"]
        assert restored["status"] == "draft"

    def test_paid_invoice_cannot_be_edited(self):
        client = make_client(invoices_router)
        db = MagicMock()
        db.invoices.find_one = AsyncMock(return_value=_invoice(status="paid"))
        with patch(DB_PATH, return_value=db):
            response = client.put("/api/invoices/IVC-AAA", json={"notes": "x"})
        assert response.status_code == 403
        assert response.json()["detail"] == EDIT_NOT_ALLOWED

    def test_revenue_trends_rejects_unknown_period(self):
        client = make_client(invoices_router)
        response = client.get("/api/invoices/revenue-trends", params={"period": 5})
        assert response.status_code == 400


class TestPublicPdf:
    def _public_db(self, invoice):
        db = MagicMock()
        db.invoices.find_one = AsyncMock(return_value=invoice)
        db.companies.find_one = AsyncMock(return_value={**TEST_COMPANY})
        db.clients.find_one = AsyncMock(return_value=dict(CLIENT))
        db.invoice_items.find = MagicMock(return_value=cursor([_item()]))
        db.company_bank_accounts.find = MagicMock(return_value=cursor([]))
        return db

    def test_missing_token_is_bad_request(self):
        client = make_client(invoices_router)
        response = client.get("/api/invoices/IVC-AAA/pdf/public")
        assert response.status_code == 400

    def test_wrong_token_is_not_found(self):
        client = make_client(invoices_router)
        db = self._public_db(_invoice())
        with patch(DB_PATH, return_value=db):
            response = client.get("/api/invoices/IVC-AAA/pdf/public", params={"token": "b" * 32})
        assert response.status_code == 404

    def test_disabled_link_is_not_found_even_with_valid_token(self):
        client = make_client(invoices_router)
        db = self._public_db(_invoice(public_enabled=False))
        token = generate_pdf_token("IVC-AAA", TEST_USER["user_id"])
        with patch(DB_PATH, return_value=db):
            response = client.get("/api/invoices/IVC-AAA/pdf/public", params={"token": token})
        assert response.status_code == 404

    def test_expired_link_is_gone_even_with_valid_token(self):
        client = make_client(invoices_router)
        db = self._public_db(_invoice(public_expires_at=datetime(2020, 1, 1, tzinfo=timezone.utc)))
        token = generate_pdf_token("IVC-AAA", TEST_USER["user_id"])
        with patch(DB_PATH, return_value=db):
            response = client.get("/api/invoices/IVC-AAA/pdf/public", params={"token": token})
        assert response.status_code == 410

    @pytest.mark.parametrize("use_public_token", [False, True])
    def test_valid_token_serves_uncached_pdf(self, use_public_token):
        client = make_client(invoices_router)
        db = self._public_db(_invoice())
        token = "a" * 32 if use_public_token else generate_pdf_token("IVC-AAA", TEST_USER["user_id"])
        with patch(DB_PATH, return_value=db), patch(RENDER_PATH, return_value=b"%PDF-1.4 test"):
            response = client.get("/api/invoices/IVC-AAA/pdf/public", params={"token": token})

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.content.startswith(b"%PDF")
        assert "no-store" in response.headers["cache-control"]
        assert response.headers["x-robots-tag"] == "noindex, nofollow"

    def test_pdf_url_contains_derived_token(self):
        client = make_client(invoices_router)
        db = MagicMock()
        db.invoices.find_one = AsyncMock(return_value=_invoice())
        with patch(DB_PATH, return_value=db):
            response = client.get("/api/invoices/IVC-AAA/pdf-url")

        assert response.status_code == 200
        data = response.json()
        assert data["public_pdf_url"].endswith(f"token={generate_pdf_token('IVC-AAA', TEST_USER['user_id'])}")
        assert data["expires_in"] == "24 hours"


class TestPublicInvoice:
    def test_unknown_token_is_not_found(self):
        client = make_client(public_router)
        db = MagicMock()
        db.invoices.find_one = AsyncMock(return_value=None)
        with patch(DB_PATH, return_value=db):
            response = client.get("/api/public/invoices/unknown")
        assert response.status_code == 404
        assert response.json()["detail"] == PUBLIC_NOT_FOUND

    def test_expired_link_is_gone(self):
        client = make_client(public_router)
        db = MagicMock()
        db.invoices.find_one = AsyncMock(return_value=_invoice(
            public_expires_at=datetime(2020, 1, 1, tzinfo=timezone.utc)
        ))
        with patch(DB_PATH, return_value=db):
            response = client.get(f"/api/public/invoices/{'a' * 32}")
        assert response.status_code == 410

    def test_public_view_hides_internal_fields(self):
        client = make_client(public_router)
        db = MagicMock()
        db.invoices.find_one = AsyncMock(return_value=_invoice())
        db.companies.find_one = AsyncMock(return_value={**TEST_COMPANY})
        db.clients.find_one = AsyncMock(return_value=dict(CLIENT))
        db.invoice_items.find = MagicMock(return_value=cursor([_item()]))
        db.company_bank_accounts.find = MagicMock(return_value=cursor([]))
        with patch(DB_PATH, return_value=db):
            response = client.get(f"/api/public/invoices/{'a' * 32}")

        assert response.status_code == 200
        data = response.json()
        assert "company_id" not in data
        assert "public_token" not in data
        assert data["company"]["name"] == TEST_COMPANY["name"]
        assert "invoice_counter" not in data["company"]
        assert data["items"][0]["line_total"] == 100.0

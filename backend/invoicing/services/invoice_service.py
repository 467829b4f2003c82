"""Invoice Service

Invoice lifecycle for a company:
- Creation and duplication consume a credit inside a UnitOfWork
- Edits are limited to draft/sent invoices; deletion cancels a draft and
  refunds its credit
- Status moves freely between the five statuses
- Public access through a per-invoice token (JSON view) or a derived PDF token
"""

from datetime import datetime, date, timedelta, timezone
from typing import Dict, Any, List, Optional
import hashlib
import hmac
import logging
import os
import re
import uuid

from pymongo import ReturnDocument

from database import database
from invoicing.errors import (
    InvoicingError,
    NotFoundError,
    ForbiddenError,
    ConflictError,
    LinkExpiredError,
)
from invoicing.models.invoice import (
    Invoice,
    InvoiceItem,
    InvoiceCreate,
    InvoiceUpdate,
    InvoiceItemInput,
    InvoiceStatus,
    PublicLinkRequest,
    EDITABLE_STATUSES,
    STATUS_CHANGE_MESSAGES,
)
from invoicing.models.company import DEFAULT_VAT_RATE, DEFAULT_DUE_DAYS
from invoicing.services.calculations import (
    build_pagination,
    calculate_invoice_totals,
    calculate_line_total,
    is_overdue,
    last_months,
    month_key,
    revenue_trends,
    round_money,
    sum_totals,
    today_iso,
)
from invoicing.services.client_service import CLIENT_NOT_FOUND
from invoicing.services.company_service import company_service
from invoicing.services.credit_service import credit_service, INSUFFICIENT_CREDITS
from invoicing.services.unit_of_work import UnitOfWork
from utils.public_app_url import public_link

logger = logging.getLogger(__name__)

INVOICE_NOT_FOUND = "ინვოისი ვერ მოიძებნა"
EDIT_NOT_ALLOWED = "ინვოისის რედაქტირება შეუძლებელია ამ სტატუსში"
DELETE_NOT_ALLOWED = "მხოლოდ მონახაზის სტატუსის ინვოისის წაშლა შეიძლება"
DUPLICATE_CREDITS = "არასაკმარისი კრედიტები ინვოისის დუბლირებისთვის"
TOKEN_REQUIRED = "აუცილებელია ტოკენი"
PUBLIC_NOT_FOUND = "პუბლიკური ინვოისი ვერ მოიძებნა"
PUBLIC_EXPIRED = "პუბლიკური ლინკის ვადა გადის"
TOKEN_IN_USE = "ეს ტოკენი უკვე გამოყენებულია"
INVALID_PERIOD = "არასწორი პერიოდი. მხოლოდ 1, 3, 6, ან 12 თვე"

TREND_PERIODS = (1, 3, 6, 12)
SORT_FIELDS = {
    "issue_date": "issue_date",
    "due_date": "due_date",
    "total": "total",
    "status": "status",
    "client": "client.name",
}
EXPORT_LIMIT = 1000

PDF_TOKEN_SECRET = os.getenv("PDF_TOKEN_SECRET") or os.getenv("JWT_SECRET", "your-secret-key-change-in-production")

PUBLIC_COMPANY_FIELDS = (
    "name", "tax_id", "address_line1", "address_line2", "city", "postal_code", "phone", "email", "website",
)
PUBLIC_CLIENT_FIELDS = (
    "name", "type", "tax_id", "email", "phone", "address_line1", "address_line2", "city",
    "postal_code", "contact_person",
)


def generate_pdf_token(invoice_id: str, user_id: str) -> str:
    """Deterministic token for the public PDF URL of one invoice."""
    return hashlib.sha256(f"{invoice_id}-{user_id}-{PDF_TOKEN_SECRET}".encode()).hexdigest()[:32]


def public_invoice_url(token: str) -> str:
    return public_link(f"i/{token}")


def _as_aware(value: Optional[datetime]) -> Optional[datetime]:
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def build_items(invoice_id: str, items: List[InvoiceItemInput]) -> List[Dict[str, Any]]:
    docs = []
    for index, item in enumerate(items):
        docs.append(InvoiceItem(
            invoice_id=invoice_id,
            service_id=item.service_id,
            description=item.description.strip(),
            quantity=item.quantity,
            unit_price=item.unit_price,
            line_total=calculate_line_total(item.quantity, item.unit_price),
            sort_order=item.sort_order if item.sort_order is not None else index,
        ).model_dump())
    return docs


class InvoiceService:

    def _get_db(self):
        return database.get_db()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get(self, company_id: str, invoice_id: str) -> Dict[str, Any]:
        db = self._get_db()
        invoice = await db.invoices.find_one(
            {"invoice_id": invoice_id, "company_id": company_id}, {"_id": 0}
        )
        if not invoice:
            raise NotFoundError(INVOICE_NOT_FOUND)
        return invoice

    async def get_items(self, invoice_id: str) -> List[Dict[str, Any]]:
        db = self._get_db()
        return await db.invoice_items.find(
            {"invoice_id": invoice_id}, {"_id": 0}
        ).sort("sort_order", 1).to_list(100)

    async def _client_summary(self, company_id: str, client_id: str) -> Optional[Dict[str, Any]]:
        db = self._get_db()
        return await db.clients.find_one(
            {"client_id": client_id, "company_id": company_id},
            {"_id": 0, "client_id": 1, "name": 1, "type": 1, "tax_id": 1, "email": 1},
        )

    async def get_detail(self, company: Dict[str, Any], invoice_id: str) -> Dict[str, Any]:
        """Invoice with its client, company, sorted items and bank accounts."""
        invoice = await self.get(company["company_id"], invoice_id)
        return await self._expand(invoice, company)

    async def _expand(self, invoice: Dict[str, Any], company: Dict[str, Any]) -> Dict[str, Any]:
        db = self._get_db()
        client = await db.clients.find_one(
            {"client_id": invoice["client_id"], "company_id": invoice["company_id"]}, {"_id": 0}
        )
        return {
            **invoice,
            "is_overdue": is_overdue(invoice),
            "client": client,
            "company": company,
            "items": await self.get_items(invoice["invoice_id"]),
            "bank_accounts": await company_service.bank_accounts_for_invoice(invoice),
        }

    async def _owned_bank_accounts(self, company_id: str, account_ids: List[str]) -> List[str]:
        if not account_ids:
            return []
        db = self._get_db()
        accounts = await db.company_bank_accounts.find(
            {"company_id": company_id, "account_id": {"$in": account_ids}, "is_active": True},
            {"_id": 0, "account_id": 1},
        ).to_list(len(account_ids))
        owned = {a["account_id"] for a in accounts}
        return [account_id for account_id in account_ids if account_id in owned]

    # ------------------------------------------------------------------
    # Listing and export
    # ------------------------------------------------------------------

    def _filter_pipeline(
        self,
        company_id: str,
        status: Optional[str] = None,
        client_id: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        search: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        match: Dict[str, Any] = {"company_id": company_id}
        if status and status != "all":
            match["status"] = status
        if client_id:
            match["client_id"] = client_id
        if date_from or date_to:
            match["issue_date"] = {}
            if date_from:
                match["issue_date"]["$gte"] = str(date_from)
            if date_to:
                match["issue_date"]["$lte"] = str(date_to)

        pipeline: List[Dict[str, Any]] = [
            {"$match": match},
            {"$lookup": {
                "from": "clients",
                "let": {"cid": "$client_id"},
                "pipeline": [
                    {"$match": {"$expr": {"$and": [
                        {"$eq": ["$client_id", "$$cid"]},
                        {"$eq": ["$company_id", company_id]},
                    ]}}},
                    {"$project": {"_id": 0, "client_id": 1, "name": 1, "type": 1, "tax_id": 1, "email": 1}},
                ],
                "as": "client",
            }},
            {"$unwind": {"path": "$client", "preserveNullAndEmptyArrays": True}},
        ]
        if search and search.strip():
            pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
            pipeline.append({"$match": {"$or": [{"invoice_number": pattern}, {"client.name": pattern}]}})
        return pipeline

    async def list_invoices(
        self,
        company_id: str,
        status: Optional[str] = None,
        client_id: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        search: Optional[str] = None,
        limit: int = 10,
        offset: int = 0,
        sort_by: str = "issue_date",
        sort_order: str = "desc",
    ) -> Dict[str, Any]:
        db = self._get_db()
        pipeline = self._filter_pipeline(company_id, status, client_id, date_from, date_to, search)

        counted = await db.invoices.aggregate(pipeline + [{"$count": "total"}]).to_list(1)
        total = counted[0]["total"] if counted else 0

        sort_field = SORT_FIELDS.get(sort_by, "issue_date")
        direction = 1 if sort_order == "asc" else -1
        invoices = await db.invoices.aggregate(pipeline + [
            {"$sort": {sort_field: direction, "invoice_number": direction}},
            {"$skip": offset},
            {"$limit": limit},
            {"$project": {"_id": 0}},
        ]).to_list(limit)

        today = today_iso()
        for invoice in invoices:
            invoice["is_overdue"] = is_overdue(invoice, today)

        return {"invoices": invoices, "pagination": build_pagination(total, limit, offset)}

    async def export_rows(self, company_id: str, **filters) -> List[Dict[str, Any]]:
        """Flat rows for CSV/XLSX export, newest first."""
        db = self._get_db()
        pipeline = self._filter_pipeline(company_id, **filters) + [
            {"$sort": {"issue_date": -1, "invoice_number": -1}},
            {"$limit": EXPORT_LIMIT},
            {"$project": {"_id": 0}},
        ]
        invoices = await db.invoices.aggregate(pipeline).to_list(EXPORT_LIMIT)
        today = today_iso()
        return [
            {
                "invoice_number": inv.get("invoice_number"),
                "client_name": (inv.get("client") or {}).get("name", ""),
                "client_tax_id": (inv.get("client") or {}).get("tax_id") or "",
                "issue_date": inv.get("issue_date"),
                "due_date": inv.get("due_date"),
                "status": InvoiceStatus.OVERDUE.value if is_overdue(inv, today) else inv.get("status"),
                "currency": inv.get("currency"),
                "subtotal": inv.get("subtotal"),
                "vat_rate": inv.get("vat_rate"),
                "vat_amount": inv.get("vat_amount"),
                "total": inv.get("total"),
                "paid_at": inv.get("paid_at").isoformat() if isinstance(inv.get("paid_at"), datetime) else "",
            }
            for inv in invoices
        ]

    # ------------------------------------------------------------------
    # Create / update / delete
    # ------------------------------------------------------------------

    async def create(self, user_id: str, company: Dict[str, Any], data: InvoiceCreate) -> Dict[str, Any]:
        """Create an invoice, consuming one credit.

        Order: reserve credit, allocate number, insert invoice, insert items.
        Any failure undoes the earlier steps; the number is not reused.
        """
        db = self._get_db()
        company_id = company["company_id"]

        client = await self._client_summary(company_id, data.client_id)
        if not client:
            raise NotFoundError(CLIENT_NOT_FOUND)

        issue_date = data.issue_date or date.fromisoformat(today_iso())
        due_date = issue_date + timedelta(days=data.due_days)
        vat_rate = data.vat_rate
        if vat_rate is None:
            vat_rate = company.get("default_vat_rate", DEFAULT_VAT_RATE)
        if vat_rate is None:
            vat_rate = DEFAULT_VAT_RATE
        bank_account_ids = await self._owned_bank_accounts(company_id, data.bank_account_ids)

        async with UnitOfWork("create invoice") as uow:
            await credit_service.reserve(user_id, INSUFFICIENT_CREDITS, session=uow.session)
            uow.on_rollback("refund credit", lambda: credit_service.refund(user_id))

            invoice_number = await company_service.allocate_invoice_number(
                company, issue_date.year, session=uow.session
            )
            invoice = Invoice(
                company_id=company_id,
                client_id=data.client_id,
                invoice_number=invoice_number,
                issue_date=issue_date.isoformat(),
                due_date=due_date.isoformat(),
                currency=data.currency,
                vat_rate=vat_rate,
                notes=data.notes,
                bank_account_ids=bank_account_ids,
                public_enabled=data.public_enabled,
            )
            items = build_items(invoice.invoice_id, data.items)
            for key, value in calculate_invoice_totals(items, vat_rate).items():
                setattr(invoice, key, value)

            doc = invoice.model_dump()
            uow.on_rollback("delete invoice", lambda: db.invoices.delete_one({"invoice_id": invoice.invoice_id}))
            await db.invoices.insert_one(doc, session=uow.session)

            uow.on_rollback("delete items", lambda: db.invoice_items.delete_many({"invoice_id": invoice.invoice_id}))
            await db.invoice_items.insert_many(items, session=uow.session)

        doc.pop("_id", None)
        for item in items:
            item.pop("_id", None)
        logger.info(f"Invoice created: {invoice_number} ({invoice.invoice_id}) for company {company_id}")
        return {**doc, "client": client, "items": items}

    async def update(self, company: Dict[str, Any], invoice_id: str, data: InvoiceUpdate) -> Dict[str, Any]:
        db = self._get_db()
        company_id = company["company_id"]
        invoice = await self.get(company_id, invoice_id)

        if invoice.get("status") not in EDITABLE_STATUSES:
            raise ForbiddenError(EDIT_NOT_ALLOWED)

        updates = data.model_dump(exclude_unset=True, exclude={"items"})
        if updates.get("client_id") and updates["client_id"] != invoice["client_id"]:
            if not await self._client_summary(company_id, updates["client_id"]):
                raise NotFoundError(CLIENT_NOT_FOUND)
        for key in ("issue_date", "due_date"):
            if updates.get(key) is not None:
                updates[key] = updates[key].isoformat()
        if "bank_account_ids" in updates:
            updates["bank_account_ids"] = await self._owned_bank_accounts(
                company_id, updates["bank_account_ids"] or []
            )
        updates = {k: v for k, v in updates.items() if v is not None or k == "notes"}

        new_items = build_items(invoice_id, data.items) if data.items is not None else None
        vat_rate = updates.get("vat_rate", invoice.get("vat_rate", DEFAULT_VAT_RATE))
        if new_items is not None or "vat_rate" in updates:
            basis = new_items if new_items is not None else await self.get_items(invoice_id)
            updates.update(calculate_invoice_totals(basis, vat_rate))

        updates["updated_at"] = datetime.now(timezone.utc)

        async with UnitOfWork("update invoice") as uow:
            if new_items is not None:
                previous = await self.get_items(invoice_id)

                async def restore_items():
                    await db.invoice_items.delete_many({"invoice_id": invoice_id})
                    if previous:
                        await db.invoice_items.insert_many(previous)

                uow.on_rollback("restore items", restore_items)
                await db.invoice_items.delete_many({"invoice_id": invoice_id}, session=uow.session)
                await db.invoice_items.insert_many(new_items, session=uow.session)

            await db.invoices.update_one(
                {"invoice_id": invoice_id, "company_id": company_id},
                {"$set": updates},
                session=uow.session,
            )

        return await self.get_detail(company, invoice_id)

    async def delete(self, user_id: str, company_id: str, invoice_id: str) -> Dict[str, Any]:
        """Cancel a draft and give its credit back, as one unit."""
        db = self._get_db()
        invoice = await self.get(company_id, invoice_id)
        if invoice.get("status") != InvoiceStatus.DRAFT.value:
            raise ForbiddenError(DELETE_NOT_ALLOWED)

        async with UnitOfWork("delete invoice") as uow:
            result = await db.invoices.update_one(
                {"invoice_id": invoice_id, "company_id": company_id, "status": InvoiceStatus.DRAFT.value},
                {"$set": {"status": InvoiceStatus.CANCELLED.value, "updated_at": datetime.now(timezone.utc)}},
                session=uow.session,
            )
            if result.modified_count == 0:
                raise ForbiddenError(DELETE_NOT_ALLOWED)
            uow.on_rollback("restore draft", lambda: db.invoices.update_one(
                {"invoice_id": invoice_id, "company_id": company_id},
                {"$set": {"status": InvoiceStatus.DRAFT.value, "updated_at": datetime.now(timezone.utc)}},
            ))

            refunded = await credit_service.refund(user_id, session=uow.session)

        logger.info(f"Invoice {invoice_id} cancelled (credit refunded: {refunded})")
        return {"message": "ინვოისი წარმატებით წაიშალა"}

    async def change_status(self, company_id: str, invoice_id: str, status: InvoiceStatus) -> Dict[str, Any]:
        """Move to any status; stamps sent_at/paid_at and builds a notification."""
        db = self._get_db()
        invoice = await self.get(company_id, invoice_id)
        new_status = InvoiceStatus(status).value
        now = datetime.now(timezone.utc)

        updates: Dict[str, Any] = {"status": new_status, "updated_at": now}
        if new_status == InvoiceStatus.SENT.value and not invoice.get("sent_at"):
            updates["sent_at"] = now
        if new_status == InvoiceStatus.PAID.value:
            updates["paid_at"] = now
        elif invoice.get("paid_at"):
            updates["paid_at"] = None

        updated = await db.invoices.find_one_and_update(
            {"invoice_id": invoice_id, "company_id": company_id},
            {"$set": updates},
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER,
        )
        client = await self._client_summary(company_id, invoice["client_id"])

        logger.info(f"Invoice {invoice_id} status {invoice.get('status')} -> {new_status}")
        return {
            "invoice": updated,
            "message": STATUS_CHANGE_MESSAGES[new_status],
            "notification": {
                "type": "invoice_status_changed",
                "invoice_id": invoice_id,
                "old_status": invoice.get("status"),
                "new_status": new_status,
                "client_name": (client or {}).get("name"),
                "timestamp": now.isoformat(),
            },
        }

    async def duplicate(self, user_id: str, company: Dict[str, Any], invoice_id: str) -> Dict[str, Any]:
        """Copy an invoice and its items as a new draft dated today."""
        db = self._get_db()
        company_id = company["company_id"]
        original = await self.get(company_id, invoice_id)
        original_items = await self.get_items(invoice_id)

        issue_date = date.fromisoformat(today_iso())
        due_days = company.get("default_due_days") or DEFAULT_DUE_DAYS

        async with UnitOfWork("duplicate invoice") as uow:
            await credit_service.reserve(user_id, DUPLICATE_CREDITS, session=uow.session)
            uow.on_rollback("refund credit", lambda: credit_service.refund(user_id))

            invoice_number = await company_service.allocate_invoice_number(
                company, issue_date.year, session=uow.session
            )
            copy = Invoice(
                company_id=company_id,
                client_id=original["client_id"],
                invoice_number=invoice_number,
                issue_date=issue_date.isoformat(),
                due_date=(issue_date + timedelta(days=due_days)).isoformat(),
                status=InvoiceStatus.DRAFT,
                currency=original.get("currency", "GEL"),
                subtotal=original.get("subtotal", 0),
                vat_rate=original.get("vat_rate", DEFAULT_VAT_RATE),
                vat_amount=original.get("vat_amount", 0),
                total=original.get("total", 0),
                notes=original.get("notes"),
                bank_account_ids=original.get("bank_account_ids") or [],
                public_enabled=original.get("public_enabled", True),
            )
            doc = copy.model_dump()
            uow.on_rollback("delete invoice", lambda: db.invoices.delete_one({"invoice_id": copy.invoice_id}))
            await db.invoices.insert_one(doc, session=uow.session)

            items = [
                InvoiceItem(
                    invoice_id=copy.invoice_id,
                    service_id=item.get("service_id"),
                    description=item["description"],
                    quantity=item["quantity"],
                    unit_price=item["unit_price"],
                    line_total=item["line_total"],
                    sort_order=item.get("sort_order", 0),
                ).model_dump()
                for item in original_items
            ]
            if items:
                uow.on_rollback("delete items", lambda: db.invoice_items.delete_many({"invoice_id": copy.invoice_id}))
                await db.invoice_items.insert_many(items, session=uow.session)

        doc.pop("_id", None)
        for item in items:
            item.pop("_id", None)
        logger.info(f"Invoice {invoice_id} duplicated as {invoice_number} ({copy.invoice_id})")
        return {
            "invoice": {**doc, "client": await self._client_summary(company_id, doc["client_id"]), "items": items},
            "message": "ინვოისი წარმატებით დუბლირდა",
            "originalInvoiceId": invoice_id,
        }

    async def mark_sent(self, company_id: str, invoice_id: str) -> None:
        """A draft becomes sent once it has been emailed."""
        db = self._get_db()
        now = datetime.now(timezone.utc)
        await db.invoices.update_one(
            {"invoice_id": invoice_id, "company_id": company_id, "status": InvoiceStatus.DRAFT.value},
            {"$set": {"status": InvoiceStatus.SENT.value, "sent_at": now, "updated_at": now}},
        )

    # ------------------------------------------------------------------
    # Public access
    # ------------------------------------------------------------------

    def pdf_url(self, invoice_id: str, user_id: str) -> Dict[str, Any]:
        token = generate_pdf_token(invoice_id, user_id)
        return {
            "public_pdf_url": public_link(f"api/invoices/{invoice_id}/pdf/public?token={token}"),
            "expires_in": "24 hours",
        }

    def _check_public(self, invoice: Optional[Dict[str, Any]], message: str) -> Dict[str, Any]:
        if not invoice or not invoice.get("public_enabled"):
            raise NotFoundError(message)
        expires_at = _as_aware(invoice.get("public_expires_at"))
        if expires_at and expires_at < datetime.now(timezone.utc):
            raise LinkExpiredError(PUBLIC_EXPIRED)
        return invoice

    async def resolve_public_pdf(self, invoice_id: str, token: Optional[str]) -> Dict[str, Any]:
        """Invoice detail for the public PDF.

        The token may be the derived PDF token or the invoice's public token.
        A wrong token and a disabled link are both reported as not found.
        """
        if not token:
            raise InvoicingError(TOKEN_REQUIRED)

        db = self._get_db()
        invoice = await db.invoices.find_one({"invoice_id": invoice_id}, {"_id": 0})
        self._check_public(invoice, INVOICE_NOT_FOUND)

        company = await db.companies.find_one({"company_id": invoice["company_id"]}, {"_id": 0})
        if not company:
            raise NotFoundError(INVOICE_NOT_FOUND)

        expected = generate_pdf_token(invoice_id, company["user_id"])
        valid = hmac.compare_digest(token, expected) or hmac.compare_digest(
            token, invoice.get("public_token") or ""
        )
        if not valid:
            logger.warning(f"Public PDF token mismatch for invoice {invoice_id}")
            raise NotFoundError(INVOICE_NOT_FOUND)

        return await self._expand(invoice, company)

    async def enable_public_link(
        self, company_id: str, invoice_id: str, data: PublicLinkRequest
    ) -> Dict[str, Any]:
        db = self._get_db()
        invoice = await self.get(company_id, invoice_id)

        token = uuid.uuid4().hex if data.rotate or not data.token else data.token
        if token != invoice.get("public_token"):
            taken = await db.invoices.find_one(
                {"public_token": token, "invoice_id": {"$ne": invoice_id}}, {"_id": 0, "invoice_id": 1}
            )
            if taken:
                raise ConflictError(TOKEN_IN_USE)

        updates: Dict[str, Any] = {
            "public_enabled": True,
            "public_token": token,
            "updated_at": datetime.now(timezone.utc),
        }
        if data.expires_at:
            updates["public_expires_at"] = _as_aware(data.expires_at)

        await db.invoices.update_one({"invoice_id": invoice_id, "company_id": company_id}, {"$set": updates})
        return {"token": token, "url": public_invoice_url(token)}

    async def disable_public_link(self, company_id: str, invoice_id: str) -> Dict[str, Any]:
        db = self._get_db()
        await self.get(company_id, invoice_id)
        await db.invoices.update_one(
            {"invoice_id": invoice_id, "company_id": company_id},
            {"$set": {"public_enabled": False, "updated_at": datetime.now(timezone.utc)}},
        )
        return {"ok": True}

    async def get_public_invoice(self, token: str) -> Dict[str, Any]:
        """Read-only invoice view for anyone holding the public token."""
        db = self._get_db()
        invoice = await db.invoices.find_one({"public_token": token}, {"_id": 0})
        self._check_public(invoice, PUBLIC_NOT_FOUND)

        company = await db.companies.find_one({"company_id": invoice["company_id"]}, {"_id": 0}) or {}
        client = await db.clients.find_one(
            {"client_id": invoice["client_id"], "company_id": invoice["company_id"]}, {"_id": 0}
        ) or {}
        accounts = await company_service.bank_accounts_for_invoice(invoice)

        public = {k: v for k, v in invoice.items() if k not in ("company_id", "public_token")}
        return {
            **public,
            "is_overdue": is_overdue(invoice),
            "company": {k: company.get(k) for k in PUBLIC_COMPANY_FIELDS},
            "client": {k: client.get(k) for k in PUBLIC_CLIENT_FIELDS},
            "items": [
                {k: item.get(k) for k in ("description", "quantity", "unit_price", "line_total", "sort_order")}
                for item in await self.get_items(invoice["invoice_id"])
            ],
            "bank_accounts": [
                {k: a.get(k) for k in ("account_id", "bank_name", "account_number", "account_name", "is_default")}
                for a in accounts
            ],
        }

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def _all_for_company(self, company_id: str, fields: Dict[str, int]) -> List[Dict[str, Any]]:
        db = self._get_db()
        return await db.invoices.find({"company_id": company_id}, {"_id": 0, **fields}).to_list(100000)

    async def stats(self, company_id: str) -> Dict[str, Any]:
        invoices = await self._all_for_company(
            company_id, {"total": 1, "status": 1, "due_date": 1, "issue_date": 1}
        )
        today = today_iso()
        total_amount = sum_totals(invoices)
        paid = [inv for inv in invoices if inv.get("status") == InvoiceStatus.PAID.value]
        overdue = [inv for inv in invoices if is_overdue(inv, today)]

        (prev_year, prev_month), (cur_year, cur_month) = last_months(2)
        current_key, previous_key = month_key(cur_year, cur_month), month_key(prev_year, prev_month)
        current = [inv for inv in invoices if str(inv.get("issue_date") or "")[:7] == current_key]
        previous = [inv for inv in invoices if str(inv.get("issue_date") or "")[:7] == previous_key]
        current_total, previous_total = sum_totals(current), sum_totals(previous)
        if previous_total > 0:
            growth = (current_total - previous_total) / previous_total * 100
        else:
            growth = 100 if current_total > 0 else 0

        return {
            "total_invoices": len(invoices),
            "total_amount": round_money(total_amount),
            "paid_amount": round_money(sum_totals(paid)),
            "overdue_amount": round_money(sum_totals(overdue)),
            "overdue_count": len(overdue),
            "average_invoice_value": round_money(total_amount / len(invoices)) if invoices else 0,
            "monthly_stats": {
                "current_month_total": round_money(current_total),
                "current_month_count": len(current),
                "previous_month_total": round_money(previous_total),
                "growth_percentage": round_money(growth),
            },
        }

    async def revenue_trends(self, company_id: str, period: int) -> Dict[str, Any]:
        if period not in TREND_PERIODS:
            raise InvoicingError(INVALID_PERIOD)
        start_year, start_month = last_months(period)[0]
        db = self._get_db()
        invoices = await db.invoices.find(
            {
                "company_id": company_id,
                "issue_date": {"$gte": f"{month_key(start_year, start_month)}-01"},
                "status": {"$ne": InvoiceStatus.CANCELLED.value},
            },
            {"_id": 0, "total": 1, "status": 1, "issue_date": 1},
        ).to_list(100000)
        return revenue_trends(invoices, period)


invoice_service = InvoiceService()

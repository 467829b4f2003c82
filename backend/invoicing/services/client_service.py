"""Client Service

Client directory for a company: CRUD, duplicate checks, activation and the
reporting views built on a client's invoices.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Any, List, Optional
import logging
import re

from pymongo import ReturnDocument

from database import database
from invoicing.errors import InvoicingError, NotFoundError, ConflictError
from invoicing.models.client import Client, ClientCreate, ClientUpdate, ClientType, CLIENT_TYPE_LABELS
from invoicing.models.invoice import InvoiceStatus, OPEN_STATUSES
from invoicing.services.calculations import (
    build_pagination,
    calculate_payment_behavior,
    calculate_detailed_payment_behavior,
    client_monthly_breakdown,
    days_overdue,
    is_overdue,
    parse_day,
    round_money,
    sum_totals,
    today_iso,
    PENDING_STATUSES,
)

logger = logging.getLogger(__name__)

CLIENT_NOT_FOUND = "კლიენტი ვერ მოიძებნა"
DUPLICATE_EMAIL = "კლიენტი ამ ელ.ფოსტით უკვე არსებობს"
DUPLICATE_TAX_ID = "კლიენტი ამ საიდენტიფიკაციო კოდით უკვე არსებობს"
TAX_ID_REQUIRED = "იურიდიული პირისთვის საიდენტიფიკაციო კოდი სავალდებულოა"
TYPE_CHANGE_BLOCKED = "კლიენტის ტიპის შეცვლა შეუძლებელია, რადგან არსებობს ინვოისები"
DEACTIVATION_BLOCKED = "კლიენტის დეაქტივაცია შეუძლებელია - არსებობს გადაუხდელი ინვოისები"

SORT_FIELDS = {"name", "created_at", "last_invoice_date"}

_PHONE_NOISE = re.compile(r"[\s\-()]")


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    if not phone:
        return phone
    return _PHONE_NOISE.sub("", phone)


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value.strip() if isinstance(value, str) else value


class ClientService:

    def _get_db(self):
        return database.get_db()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get(self, company_id: str, client_id: str) -> Dict[str, Any]:
        """Fetch a client scoped to the company; other tenants' clients are 404."""
        db = self._get_db()
        client = await db.clients.find_one(
            {"client_id": client_id, "company_id": company_id}, {"_id": 0}
        )
        if not client:
            raise NotFoundError(CLIENT_NOT_FOUND)
        return client

    async def _invoices_for(self, company_id: str, client_id: str, limit: int = 10000) -> List[Dict[str, Any]]:
        db = self._get_db()
        return await db.invoices.find(
            {"company_id": company_id, "client_id": client_id}, {"_id": 0}
        ).to_list(limit)

    async def _has_invoices(self, company_id: str, client_id: str) -> bool:
        db = self._get_db()
        count = await db.invoices.count_documents({"company_id": company_id, "client_id": client_id})
        return count > 0

    async def _check_duplicates(
        self,
        company_id: str,
        email: Optional[str],
        tax_id: Optional[str],
        exclude_id: Optional[str] = None,
    ) -> None:
        db = self._get_db()
        base = {"company_id": company_id}
        if exclude_id:
            base["client_id"] = {"$ne": exclude_id}

        if email:
            existing = await db.clients.find_one({**base, "email": email}, {"_id": 0, "client_id": 1})
            if existing:
                raise ConflictError(DUPLICATE_EMAIL)
        if tax_id:
            existing = await db.clients.find_one({**base, "tax_id": tax_id}, {"_id": 0, "client_id": 1})
            if existing:
                raise ConflictError(DUPLICATE_TAX_ID)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def list_clients(
        self,
        company_id: str,
        search: Optional[str] = None,
        client_type: Optional[str] = None,
        status: str = "all",
        limit: int = 10,
        offset: int = 0,
        sort_by: str = "name",
        sort_order: str = "asc",
    ) -> Dict[str, Any]:
        """Paginated client list; each row carries invoice totals."""
        db = self._get_db()

        query: Dict[str, Any] = {"company_id": company_id}
        if search:
            pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
            query["$or"] = [{"name": pattern}, {"email": pattern}, {"tax_id": pattern}]
        if client_type:
            query["type"] = client_type
        if status == "active":
            query["is_active"] = True
        elif status == "inactive":
            query["is_active"] = False

        if sort_by not in SORT_FIELDS:
            sort_by = "name"
        direction = -1 if sort_order == "desc" else 1

        pipeline = [
            {"$match": query},
            {"$lookup": {
                "from": "invoices",
                "let": {"cid": "$client_id"},
                "pipeline": [
                    {"$match": {"$expr": {"$and": [
                        {"$eq": ["$client_id", "$$cid"]},
                        {"$eq": ["$company_id", company_id]},
                    ]}}},
                    {"$project": {"_id": 0, "total": 1, "issue_date": 1}},
                ],
                "as": "_invoices",
            }},
            {"$addFields": {
                "statistics": {
                    "total_invoices": {"$size": "$_invoices"},
                    "total_revenue": {"$sum": "$_invoices.total"},
                },
                "last_invoice_date": {"$max": "$_invoices.issue_date"},
            }},
            {"$project": {"_id": 0, "_invoices": 0}},
            {"$sort": {sort_by: direction, "client_id": 1}},
            {"$skip": offset},
            {"$limit": limit},
        ]

        total = await db.clients.count_documents(query)
        clients = await db.clients.aggregate(pipeline).to_list(limit)

        return {"data": clients, "pagination": build_pagination(total, limit, offset)}

    async def create(self, company_id: str, data: ClientCreate) -> Dict[str, Any]:
        db = self._get_db()

        email = _blank_to_none(data.email)
        email = email.lower() if email else None
        tax_id = _blank_to_none(data.tax_id)

        if data.type == ClientType.COMPANY and not tax_id:
            raise InvoicingError(TAX_ID_REQUIRED)

        await self._check_duplicates(company_id, email, tax_id)

        fields = data.model_dump(exclude={"email", "tax_id", "phone"})
        client = Client(
            company_id=company_id,
            email=email,
            tax_id=tax_id,
            phone=normalize_phone(_blank_to_none(data.phone)),
            **fields,
        )
        doc = client.model_dump()
        await db.clients.insert_one(doc)
        doc.pop("_id", None)

        logger.info(f"Client created: {client.client_id} for company {company_id}")
        return doc

    async def get_detail(self, company_id: str, client_id: str) -> Dict[str, Any]:
        """Client plus recent invoices, totals and payment behaviour."""
        db = self._get_db()
        client = await self.get(company_id, client_id)

        recent = await db.invoices.find(
            {"company_id": company_id, "client_id": client_id},
            {"_id": 0},
        ).sort("issue_date", -1).limit(5).to_list(5)

        invoices = await self._invoices_for(company_id, client_id)
        today = today_iso()
        total_revenue = sum_totals(invoices)

        statistics = {
            "total_invoices": len(invoices),
            "total_revenue": round_money(total_revenue),
            "paid_invoices": sum(1 for inv in invoices if inv.get("status") == InvoiceStatus.PAID.value),
            "pending_invoices": sum(
                1 for inv in invoices
                if inv.get("status") in PENDING_STATUSES and not is_overdue(inv, today)
            ),
            "overdue_invoices": sum(1 for inv in invoices if is_overdue(inv, today)),
            "average_invoice_value": round_money(total_revenue / len(invoices)) if invoices else 0,
        }

        return {
            **client,
            "recent_invoices": recent,
            "statistics": statistics,
            "payment_behavior": calculate_payment_behavior(invoices),
        }

    async def update(self, company_id: str, client_id: str, data: ClientUpdate) -> Dict[str, Any]:
        db = self._get_db()
        client = await self.get(company_id, client_id)
        updates = data.model_dump(exclude_unset=True)

        if "email" in updates:
            email = _blank_to_none(updates["email"])
            updates["email"] = email.lower() if email else None
        if "tax_id" in updates:
            updates["tax_id"] = _blank_to_none(updates["tax_id"])
        if "phone" in updates:
            updates["phone"] = normalize_phone(_blank_to_none(updates["phone"]))

        new_type = updates.get("type")
        if new_type is not None:
            new_type = ClientType(new_type).value
            updates["type"] = new_type
            if new_type != client.get("type") and await self._has_invoices(company_id, client_id):
                raise InvoicingError(TYPE_CHANGE_BLOCKED)

        final_type = new_type or client.get("type")
        final_tax_id = updates["tax_id"] if "tax_id" in updates else client.get("tax_id")
        if final_type == ClientType.COMPANY.value and not final_tax_id:
            raise InvoicingError(TAX_ID_REQUIRED)

        await self._check_duplicates(
            company_id,
            updates.get("email") if updates.get("email") != client.get("email") else None,
            updates.get("tax_id") if updates.get("tax_id") != client.get("tax_id") else None,
            exclude_id=client_id,
        )

        if not updates:
            return client

        updates["updated_at"] = datetime.now(timezone.utc)
        updated = await db.clients.find_one_and_update(
            {"client_id": client_id, "company_id": company_id},
            {"$set": updates},
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER,
        )
        if not updated:
            raise NotFoundError(CLIENT_NOT_FOUND)
        return updated

    async def delete(self, company_id: str, client_id: str) -> Dict[str, Any]:
        """Hard delete when the client has no invoices, otherwise deactivate."""
        db = self._get_db()
        await self.get(company_id, client_id)

        if await self._has_invoices(company_id, client_id):
            await db.clients.update_one(
                {"client_id": client_id, "company_id": company_id},
                {"$set": {"is_active": False, "updated_at": datetime.now(timezone.utc)}},
            )
            logger.info(f"Client {client_id} deactivated instead of deleted (has invoices)")
            return {"message": "კლიენტი დეაქტივირებულია (არსებობს ინვოისები)", "soft_deleted": True}

        await db.clients.delete_one({"client_id": client_id, "company_id": company_id})
        logger.info(f"Client deleted: {client_id}")
        return {"message": "კლიენტი წარმატებით წაიშალა", "hard_deleted": True}

    async def toggle_status(self, company_id: str, client_id: str) -> Dict[str, Any]:
        db = self._get_db()
        client = await self.get(company_id, client_id)
        new_status = not client.get("is_active", True)

        if not new_status:
            pending = await db.invoices.find_one(
                {
                    "company_id": company_id,
                    "client_id": client_id,
                    "status": {"$in": OPEN_STATUSES},
                },
                {"_id": 0, "invoice_number": 1},
            )
            if pending:
                raise InvoicingError(DEACTIVATION_BLOCKED, pending_invoice=pending.get("invoice_number"))

        updated = await db.clients.find_one_and_update(
            {"client_id": client_id, "company_id": company_id},
            {"$set": {"is_active": new_status, "updated_at": datetime.now(timezone.utc)}},
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER,
        )
        state = "აქტივირებულია" if new_status else "დეაქტივირებულია"
        return {"client": updated, "message": f'კლიენტი "{client["name"]}" {state}'}

    # ------------------------------------------------------------------
    # Search and reporting
    # ------------------------------------------------------------------

    async def search(self, company_id: str, q: str, limit: int = 10) -> Dict[str, Any]:
        """Autocomplete over active clients."""
        db = self._get_db()
        query = q.strip()
        pattern = {"$regex": re.escape(query), "$options": "i"}

        clients = await db.clients.find(
            {
                "company_id": company_id,
                "is_active": True,
                "$or": [{"name": pattern}, {"email": pattern}, {"tax_id": pattern}],
            },
            {"_id": 0, "client_id": 1, "name": 1, "email": 1, "type": 1, "tax_id": 1},
        ).sort("name", 1).limit(limit).to_list(limit)

        results = []
        for client in clients:
            display_name = client["name"]
            if client.get("type") == ClientType.COMPANY.value and client.get("tax_id"):
                display_name = f"{client['name']} ({client['tax_id']})"
            results.append({
                **client,
                "display_name": display_name,
                "subtitle": client.get("email") or CLIENT_TYPE_LABELS.get(client.get("type"), ""),
            })

        return {"results": results, "query": query, "count": len(results)}

    async def stats(self, company_id: str) -> Dict[str, Any]:
        """Company-wide client statistics."""
        db = self._get_db()
        clients = await db.clients.find(
            {"company_id": company_id},
            {"_id": 0, "client_id": 1, "type": 1, "is_active": 1, "created_at": 1},
        ).to_list(10000)
        invoices = await db.invoices.find(
            {"company_id": company_id},
            {"_id": 0, "client_id": 1, "total": 1, "status": 1},
        ).to_list(100000)

        total = len(clients)
        active = sum(1 for c in clients if c.get("is_active", True))

        now = datetime.now(timezone.utc)
        last_30 = now - timedelta(days=30)
        previous_30 = now - timedelta(days=60)

        def _created(client):
            created = client.get("created_at")
            if isinstance(created, datetime) and created.tzinfo is None:
                created = created.replace(tzinfo=timezone.utc)
            return created

        new_clients = sum(1 for c in clients if _created(c) and _created(c) >= last_30)
        previous_clients = sum(1 for c in clients if _created(c) and previous_30 <= _created(c) < last_30)
        if previous_clients:
            growth = (new_clients - previous_clients) / previous_clients * 100
        else:
            growth = 100 if new_clients else 0

        revenue_by_client: Dict[str, float] = {}
        for inv in invoices:
            revenue_by_client[inv["client_id"]] = revenue_by_client.get(inv["client_id"], 0) + float(inv.get("total") or 0)
        total_revenue = sum(revenue_by_client.values())
        paid = sum(1 for inv in invoices if inv.get("status") == InvoiceStatus.PAID.value)

        return {
            "total": total,
            "active": active,
            "inactive": total - active,
            "counts": {
                "total_clients": total,
                "active_clients": active,
                "inactive_clients": total - active,
                "companies": sum(1 for c in clients if c.get("type") == ClientType.COMPANY.value),
                "individuals": sum(1 for c in clients if c.get("type") == ClientType.INDIVIDUAL.value),
            },
            "revenue_stats": {
                "total_revenue": round_money(total_revenue),
                "average_per_client": round_money(total_revenue / total) if total else 0,
                "clients_with_revenue": sum(1 for v in revenue_by_client.values() if v > 0),
            },
            "growth_percentage": round_money(growth),
            "new_clients_30d": new_clients,
            "payment_stats": {
                "payment_rate": round_money(paid / len(invoices) * 100) if invoices else 0,
                "total_invoices": len(invoices),
                "paid_invoices": paid,
            },
        }

    async def client_stats(self, company_id: str, client_id: str) -> Dict[str, Any]:
        client = await self.get(company_id, client_id)
        invoices = await self._invoices_for(company_id, client_id)
        today = today_iso()

        paid = [inv for inv in invoices if inv.get("status") == InvoiceStatus.PAID.value]
        overdue = [inv for inv in invoices if is_overdue(inv, today)]
        pending = [inv for inv in invoices if inv.get("status") in PENDING_STATUSES and inv not in overdue]
        cancelled = [inv for inv in invoices if inv.get("status") == InvoiceStatus.CANCELLED.value]
        total_invoiced = sum_totals(invoices)

        currency_breakdown: Dict[str, Dict[str, Any]] = {}
        for inv in invoices:
            bucket = currency_breakdown.setdefault(
                inv.get("currency", "GEL"), {"total_amount": 0.0, "invoice_count": 0}
            )
            bucket["total_amount"] = round_money(bucket["total_amount"] + float(inv.get("total") or 0))
            bucket["invoice_count"] += 1

        issue_dates = sorted(str(inv["issue_date"]) for inv in invoices if inv.get("issue_date"))
        created = parse_day(client.get("created_at")) or parse_day(today)
        age_days = (parse_day(today) - created).days
        age_months = max(1, age_days // 30)
        last_invoice = issue_dates[-1] if issue_dates else None

        return {
            "client_id": client_id,
            "client_name": client["name"],
            "statistics": {
                "overview": {
                    "total_invoices": len(invoices),
                    "paid_invoices": len(paid),
                    "pending_invoices": len(pending),
                    "overdue_invoices": len(overdue),
                    "cancelled_invoices": len(cancelled),
                    "average_invoice_value": round_money(total_invoiced / len(invoices)) if invoices else 0,
                },
                "payment_behavior": calculate_detailed_payment_behavior(invoices),
                "financial_summary": {
                    "total_invoiced": round_money(total_invoiced),
                    "total_paid": round_money(sum_totals(paid)),
                    "total_pending": round_money(sum_totals(pending)),
                    "total_overdue": round_money(sum_totals(overdue)),
                    "currency_breakdown": currency_breakdown,
                },
                "monthly_breakdown": client_monthly_breakdown(invoices),
                "lifecycle": {
                    "client_age_days": age_days,
                    "client_age_months": age_months,
                    "first_invoice_date": issue_dates[0] if issue_dates else None,
                    "last_invoice_date": last_invoice,
                    "days_since_last_invoice": (
                        (parse_day(today) - parse_day(last_invoice)).days if last_invoice else None
                    ),
                    "average_invoices_per_month": round_money(len(invoices) / age_months),
                },
            },
        }

    async def client_invoices(
        self,
        company_id: str,
        client_id: str,
        status: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Dict[str, Any]:
        """A client's invoices with overdue flags and a status summary."""
        db = self._get_db()
        client = await self.get(company_id, client_id)
        today = today_iso()

        query: Dict[str, Any] = {"company_id": company_id, "client_id": client_id}
        if status and status != "all":
            if status == InvoiceStatus.OVERDUE.value:
                query["$or"] = [
                    {"status": InvoiceStatus.OVERDUE.value},
                    {"status": InvoiceStatus.SENT.value, "due_date": {"$lt": today}},
                ]
            else:
                query["status"] = status
        if date_from or date_to:
            query["issue_date"] = {}
            if date_from:
                query["issue_date"]["$gte"] = str(date_from)
            if date_to:
                query["issue_date"]["$lte"] = str(date_to)

        total = await db.invoices.count_documents(query)
        invoices = await db.invoices.find(query, {"_id": 0}).sort(
            "issue_date", -1
        ).skip(offset).limit(limit).to_list(limit)

        item_counts: Dict[str, int] = {}
        if invoices:
            rows = await db.invoice_items.aggregate([
                {"$match": {"invoice_id": {"$in": [inv["invoice_id"] for inv in invoices]}}},
                {"$group": {"_id": "$invoice_id", "count": {"$sum": 1}}},
            ]).to_list(len(invoices))
            item_counts = {row["_id"]: row["count"] for row in rows}

        status_breakdown: Dict[str, int] = {}
        for inv in invoices:
            inv["is_overdue"] = is_overdue(inv, today)
            inv["days_overdue"] = days_overdue(inv, today)
            inv["item_count"] = item_counts.get(inv["invoice_id"], 0)
            key = InvoiceStatus.OVERDUE.value if inv["is_overdue"] else inv.get("status")
            status_breakdown[key] = status_breakdown.get(key, 0) + 1

        return {
            "client": {"id": client_id, "name": client["name"]},
            "invoices": invoices,
            "pagination": build_pagination(total, limit, offset),
            "summary": {
                "total_invoices": total,
                "total_amount": round_money(sum_totals(invoices)),
                "status_breakdown": status_breakdown,
            },
        }


client_service = ClientService()

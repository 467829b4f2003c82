"""Catalog Service

Reusable invoice line templates ("services"). A service that already appears
on an invoice line is deactivated instead of deleted.
"""

from datetime import datetime, timezone
from typing import Dict, Any, List, Optional
import logging
import re

from pymongo import ReturnDocument

from database import database
from invoicing.errors import NotFoundError, ConflictError
from invoicing.models.service import Service, ServiceCreate, ServiceUpdate
from invoicing.services.calculations import build_pagination, round_money

logger = logging.getLogger(__name__)

SERVICE_NOT_FOUND = "სერვისი ვერ მოიძებნა"
DUPLICATE_SERVICE = "სერვისი ამ სახელით უკვე არსებობს"
UNKNOWN_CLIENT = "უცნობი კლიენტი"

SORT_FIELDS = {"name", "default_price", "created_at"}


class CatalogService:

    def _get_db(self):
        return database.get_db()

    async def get(self, company_id: str, service_id: str) -> Dict[str, Any]:
        db = self._get_db()
        service = await db.services.find_one(
            {"service_id": service_id, "company_id": company_id}, {"_id": 0}
        )
        if not service:
            raise NotFoundError(SERVICE_NOT_FOUND)
        return service

    async def _check_name(self, company_id: str, name: str, exclude_id: Optional[str] = None) -> None:
        db = self._get_db()
        query: Dict[str, Any] = {
            "company_id": company_id,
            "name": {"$regex": f"^{re.escape(name)}$", "$options": "i"},
        }
        if exclude_id:
            query["service_id"] = {"$ne": exclude_id}
        if await db.services.find_one(query, {"_id": 0, "service_id": 1}):
            raise ConflictError(DUPLICATE_SERVICE)

    async def _usage_items(self, service_ids: List[str]) -> List[Dict[str, Any]]:
        """Invoice lines that reference any of the given services."""
        if not service_ids:
            return []
        db = self._get_db()
        return await db.invoice_items.find(
            {"service_id": {"$in": service_ids}},
            {"_id": 0, "service_id": 1, "invoice_id": 1, "line_total": 1, "quantity": 1, "unit_price": 1},
        ).to_list(100000)

    async def _invoice_context(self, company_id: str, invoice_ids: List[str]) -> Dict[str, Dict[str, Any]]:
        """invoice_id -> invoice summary with the client name resolved."""
        if not invoice_ids:
            return {}
        db = self._get_db()
        invoices = await db.invoices.find(
            {"company_id": company_id, "invoice_id": {"$in": invoice_ids}},
            {"_id": 0, "invoice_id": 1, "invoice_number": 1, "client_id": 1, "status": 1, "created_at": 1},
        ).to_list(len(invoice_ids))

        client_ids = list({inv["client_id"] for inv in invoices if inv.get("client_id")})
        clients = await db.clients.find(
            {"company_id": company_id, "client_id": {"$in": client_ids}},
            {"_id": 0, "client_id": 1, "name": 1},
        ).to_list(len(client_ids) or 1)
        names = {c["client_id"]: c["name"] for c in clients}

        for inv in invoices:
            inv["client_name"] = names.get(inv.get("client_id"))
        return {inv["invoice_id"]: inv for inv in invoices}

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def list_services(
        self,
        company_id: str,
        search: Optional[str] = None,
        status: str = "all",
        limit: int = 10,
        offset: int = 0,
        sort_by: str = "name",
        sort_order: str = "asc",
    ) -> Dict[str, Any]:
        db = self._get_db()

        query: Dict[str, Any] = {"company_id": company_id}
        if search:
            pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
            query["$or"] = [{"name": pattern}, {"description": pattern}]
        if status == "active":
            query["is_active"] = True
        elif status == "inactive":
            query["is_active"] = False
        if sort_by not in SORT_FIELDS:
            sort_by = "name"

        total = await db.services.count_documents(query)
        services = await db.services.find(query, {"_id": 0}).sort(
            sort_by, -1 if sort_order == "desc" else 1
        ).skip(offset).limit(limit).to_list(limit)

        usage = await self._usage_items([s["service_id"] for s in services])
        for service in services:
            lines = [item for item in usage if item.get("service_id") == service["service_id"]]
            service["statistics"] = {
                "times_used": len(lines),
                "total_revenue": round_money(sum(float(item.get("line_total") or 0) for item in lines)),
            }

        return {"services": services, "pagination": build_pagination(total, limit, offset)}

    async def create(self, company_id: str, data: ServiceCreate) -> Dict[str, Any]:
        db = self._get_db()
        await self._check_name(company_id, data.name)

        service = Service(company_id=company_id, **data.model_dump())
        doc = service.model_dump()
        await db.services.insert_one(doc)
        doc.pop("_id", None)

        logger.info(f"Service created: {service.service_id} for company {company_id}")
        return doc

    async def get_detail(self, company_id: str, service_id: str) -> Dict[str, Any]:
        """Service with usage totals and the ten most recent usages."""
        service = await self.get(company_id, service_id)
        usage = await self._usage_items([service_id])
        invoices = await self._invoice_context(company_id, list({item["invoice_id"] for item in usage}))
        usage = [item for item in usage if item["invoice_id"] in invoices]

        recent = []
        for item in usage:
            invoice = invoices[item["invoice_id"]]
            recent.append({
                "invoice_number": invoice.get("invoice_number"),
                "client_name": invoice.get("client_name"),
                "amount": item.get("line_total"),
                "quantity": item.get("quantity"),
                "date": invoice.get("created_at"),
            })
        recent.sort(key=lambda row: str(row["date"] or ""), reverse=True)

        service["statistics"] = {
            "times_used": len(usage),
            "total_revenue": round_money(sum(float(item.get("line_total") or 0) for item in usage)),
            "unique_invoices": len({item["invoice_id"] for item in usage}),
            "recent_usage": recent[:10],
        }
        return service

    async def update(self, company_id: str, service_id: str, data: ServiceUpdate) -> Dict[str, Any]:
        db = self._get_db()
        service = await self.get(company_id, service_id)
        updates = data.model_dump(exclude_unset=True)
        if not updates:
            return service

        if updates.get("name") and updates["name"] != service.get("name"):
            await self._check_name(company_id, updates["name"], exclude_id=service_id)

        updates["updated_at"] = datetime.now(timezone.utc)
        return await db.services.find_one_and_update(
            {"service_id": service_id, "company_id": company_id},
            {"$set": updates},
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER,
        )

    async def delete(self, company_id: str, service_id: str) -> Dict[str, Any]:
        db = self._get_db()
        await self.get(company_id, service_id)

        usage_count = await db.invoice_items.count_documents({"service_id": service_id})
        if usage_count > 0:
            service = await db.services.find_one_and_update(
                {"service_id": service_id, "company_id": company_id},
                {"$set": {"is_active": False, "updated_at": datetime.now(timezone.utc)}},
                projection={"_id": 0},
                return_document=ReturnDocument.AFTER,
            )
            logger.info(f"Service {service_id} deactivated instead of deleted ({usage_count} lines)")
            return {
                "message": "სერვისი გამოყენებული იყო ინვოისებში, ამიტომ დეაქტივირებულია წაშლის ნაცვლად",
                "service": service,
            }

        await db.services.delete_one({"service_id": service_id, "company_id": company_id})
        logger.info(f"Service deleted: {service_id}")
        return {"message": "სერვისი წარმატებით წაიშალა"}

    async def toggle_status(self, company_id: str, service_id: str) -> Dict[str, Any]:
        db = self._get_db()
        service = await self.get(company_id, service_id)
        return await db.services.find_one_and_update(
            {"service_id": service_id, "company_id": company_id},
            {"$set": {
                "is_active": not service.get("is_active", True),
                "updated_at": datetime.now(timezone.utc),
            }},
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER,
        )

    # ------------------------------------------------------------------
    # Search and reporting
    # ------------------------------------------------------------------

    async def search(
        self, company_id: str, q: Optional[str] = None, limit: int = 10, active_only: bool = False
    ) -> Dict[str, Any]:
        db = self._get_db()
        query: Dict[str, Any] = {"company_id": company_id}
        if q and q.strip():
            pattern = {"$regex": re.escape(q.strip()), "$options": "i"}
            query["$or"] = [{"name": pattern}, {"description": pattern}]
        if active_only:
            query["is_active"] = True

        services = await db.services.find(
            query,
            {"_id": 0, "service_id": 1, "name": 1, "description": 1, "default_price": 1, "unit": 1, "is_active": 1},
        ).sort("name", 1).limit(limit).to_list(limit)
        return {"services": services, "total": len(services)}

    async def stats(self, company_id: str, limit: int = 10) -> Dict[str, Any]:
        """Per-service usage and revenue for active services, highest revenue first."""
        db = self._get_db()
        services = await db.services.find(
            {"company_id": company_id, "is_active": True}, {"_id": 0}
        ).to_list(10000)

        usage = await self._usage_items([s["service_id"] for s in services])
        invoices = await self._invoice_context(company_id, list({item["invoice_id"] for item in usage}))

        service_stats = []
        for service in services:
            lines = [
                item for item in usage
                if item.get("service_id") == service["service_id"] and item["invoice_id"] in invoices
            ]
            if not lines:
                continue
            revenue = sum(float(item.get("line_total") or 0) for item in lines)
            clients = {invoices[item["invoice_id"]].get("client_name") for item in lines}
            clients.discard(None)

            recent = sorted(
                lines,
                key=lambda item: str(invoices[item["invoice_id"]].get("created_at") or ""),
                reverse=True,
            )[:10]
            service_stats.append({
                **service,
                "statistics": {
                    "total_usage": len(lines),
                    "total_revenue": round_money(revenue),
                    "average_price": round_money(revenue / len(lines)),
                    "unique_clients": len(clients),
                    "recent_usage": [
                        {
                            "date": invoices[item["invoice_id"]].get("created_at"),
                            "amount": item.get("line_total"),
                            "quantity": item.get("quantity"),
                            "client_name": invoices[item["invoice_id"]].get("client_name") or UNKNOWN_CLIENT,
                            "invoice_status": invoices[item["invoice_id"]].get("status"),
                        }
                        for item in recent
                    ],
                },
            })

        service_stats.sort(key=lambda s: s["statistics"]["total_revenue"], reverse=True)

        total_usage = sum(s["statistics"]["total_usage"] for s in service_stats)
        total_revenue = sum(s["statistics"]["total_revenue"] for s in service_stats)
        most_used = max(service_stats, key=lambda s: s["statistics"]["total_usage"], default=None)
        highest_revenue = service_stats[0] if service_stats else None

        return {
            "services": service_stats[:limit],
            "summary": {
                "total_services": len(service_stats),
                "total_usage": total_usage,
                "total_revenue": round_money(total_revenue),
                "average_price": round_money(total_revenue / total_usage) if total_usage else 0,
                "most_used_service": {
                    "id": most_used["service_id"],
                    "name": most_used["name"],
                    "usage_count": most_used["statistics"]["total_usage"],
                } if most_used else None,
                "highest_revenue_service": {
                    "id": highest_revenue["service_id"],
                    "name": highest_revenue["name"],
                    "revenue": highest_revenue["statistics"]["total_revenue"],
                } if highest_revenue else None,
            },
        }


catalog_service = CatalogService()

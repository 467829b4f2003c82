"""Company Service

Tenant lookup, company settings, bank accounts and invoice numbering.
"""

from datetime import datetime, timezone
from typing import Dict, Any, List, Optional
import logging

from pymongo import ReturnDocument

from database import database
from invoicing.errors import NotFoundError, COMPANY_NOT_FOUND
from invoicing.models.company import (
    Company,
    CompanyUpdate,
    BankAccount,
    BankAccountCreate,
    BankAccountUpdate,
    DEFAULT_INVOICE_PREFIX,
)

logger = logging.getLogger(__name__)

BANK_ACCOUNT_NOT_FOUND = "საბანკო ანგარიში ვერ მოიძებნა"


def format_invoice_number(prefix: Optional[str], year: int, counter: int) -> str:
    return f"{prefix or DEFAULT_INVOICE_PREFIX}-{year}-{counter:04d}"


class CompanyService:

    def _get_db(self):
        return database.get_db()

    async def get_for_user(self, user_id: str) -> Dict[str, Any]:
        db = self._get_db()
        company = await db.companies.find_one({"user_id": user_id}, {"_id": 0})
        if not company:
            raise NotFoundError(COMPANY_NOT_FOUND)
        return company

    async def create(self, user_id: str, name: str, email: Optional[str] = None, session=None) -> Dict[str, Any]:
        db = self._get_db()
        company = Company(user_id=user_id, name=name, email=email)
        doc = company.model_dump()
        await db.companies.insert_one(doc, session=session)
        doc.pop("_id", None)
        logger.info(f"Company created: {company.company_id} for user {user_id}")
        return doc

    async def update(self, company: Dict[str, Any], data: CompanyUpdate) -> Dict[str, Any]:
        db = self._get_db()
        updates = data.model_dump(exclude_unset=True)
        if not updates:
            return company

        updates["updated_at"] = datetime.now(timezone.utc)
        updated = await db.companies.find_one_and_update(
            {"company_id": company["company_id"]},
            {"$set": updates},
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER,
        )
        return updated or {**company, **updates}

    async def allocate_invoice_number(self, company: Dict[str, Any], year: int, session=None) -> str:
        """Atomically bump the company counter and format the next number.

        Numbers are never reused: a rolled-back invoice leaves a gap.
        """
        db = self._get_db()
        updated = await db.companies.find_one_and_update(
            {"company_id": company["company_id"]},
            {"$inc": {"invoice_counter": 1}, "$set": {"updated_at": datetime.now(timezone.utc)}},
            projection={"_id": 0, "invoice_counter": 1, "invoice_prefix": 1},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if not updated:
            raise NotFoundError(COMPANY_NOT_FOUND)
        return format_invoice_number(updated.get("invoice_prefix"), year, updated["invoice_counter"])

    # ------------------------------------------------------------------
    # Bank accounts
    # ------------------------------------------------------------------

    async def list_bank_accounts(self, company_id: str) -> List[Dict[str, Any]]:
        db = self._get_db()
        return await db.company_bank_accounts.find(
            {"company_id": company_id, "is_active": True},
            {"_id": 0},
        ).sort([("is_default", -1), ("created_at", 1)]).to_list(100)

    async def create_bank_account(self, company_id: str, data: BankAccountCreate) -> Dict[str, Any]:
        db = self._get_db()
        account = BankAccount(company_id=company_id, **data.model_dump())

        existing = await db.company_bank_accounts.count_documents(
            {"company_id": company_id, "is_active": True}
        )
        if existing == 0:
            account.is_default = True
        if account.is_default:
            await self._clear_default(company_id)

        doc = account.model_dump()
        await db.company_bank_accounts.insert_one(doc)
        doc.pop("_id", None)
        return doc

    async def update_bank_account(
        self, company_id: str, account_id: str, data: BankAccountUpdate
    ) -> Dict[str, Any]:
        db = self._get_db()
        updates = data.model_dump(exclude_unset=True)
        if updates.get("is_default"):
            await self._clear_default(company_id, except_id=account_id)
        updates["updated_at"] = datetime.now(timezone.utc)

        updated = await db.company_bank_accounts.find_one_and_update(
            {"account_id": account_id, "company_id": company_id, "is_active": True},
            {"$set": updates},
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER,
        )
        if not updated:
            raise NotFoundError(BANK_ACCOUNT_NOT_FOUND)
        return updated

    async def delete_bank_account(self, company_id: str, account_id: str) -> None:
        db = self._get_db()
        result = await db.company_bank_accounts.update_one(
            {"account_id": account_id, "company_id": company_id, "is_active": True},
            {"$set": {"is_active": False, "is_default": False, "updated_at": datetime.now(timezone.utc)}},
        )
        if result.matched_count == 0:
            raise NotFoundError(BANK_ACCOUNT_NOT_FOUND)

    async def bank_accounts_for_invoice(self, invoice: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Accounts printed on an invoice: the selected ones, else the company default."""
        db = self._get_db()
        query = {"company_id": invoice["company_id"], "is_active": True}
        selected = invoice.get("bank_account_ids") or []
        if selected:
            query["account_id"] = {"$in": selected}
        else:
            query["is_default"] = True

        return await db.company_bank_accounts.find(query, {"_id": 0}).sort(
            "is_default", -1
        ).to_list(20)

    async def _clear_default(self, company_id: str, except_id: Optional[str] = None) -> None:
        db = self._get_db()
        query = {"company_id": company_id, "is_default": True}
        if except_id:
            query["account_id"] = {"$ne": except_id}
        await db.company_bank_accounts.update_many(query, {"$set": {"is_default": False}})


company_service = CompanyService()

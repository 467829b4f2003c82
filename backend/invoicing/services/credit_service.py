"""Credit Service

Handles the per-user credit record:
- Lazy creation with the free allowance
- Atomic reservation (used_credits < total_credits checked in the update itself)
- Refunds that never push used_credits below zero
"""

from datetime import datetime, timezone
from typing import Dict, Any
import logging

from pymongo import ReturnDocument

from database import database
from invoicing.errors import NotFoundError, InsufficientCreditsError
from invoicing.models.credits import (
    UserCredits,
    CreditsResponse,
    INVOICE_CREDIT_COST,
    remaining_credits,
)

logger = logging.getLogger(__name__)

INSUFFICIENT_CREDITS = "არასაკმარისი კრედიტები"
CREDITS_NOT_FOUND = "კრედიტების ინფორმაცია ვერ მოიძებნა"


class CreditService:
    """Credit wallet operations."""

    def _get_db(self):
        return database.get_db()

    async def get_or_create(self, user_id: str) -> Dict[str, Any]:
        """Return the user's credit record, creating the free allowance if missing."""
        db = self._get_db()

        credits = await db.user_credits.find_one({"user_id": user_id}, {"_id": 0})
        if credits:
            return credits

        record = UserCredits(user_id=user_id).model_dump()
        await db.user_credits.update_one(
            {"user_id": user_id},
            {"$setOnInsert": record},
            upsert=True,
        )
        logger.info(f"Created free credit record for user {user_id}")
        return await db.user_credits.find_one({"user_id": user_id}, {"_id": 0}) or record

    async def get_balance(self, user_id: str) -> CreditsResponse:
        credits = await self.get_or_create(user_id)
        total = credits.get("total_credits", 0)
        used = credits.get("used_credits", 0)
        return CreditsResponse(
            user_id=user_id,
            total_credits=total,
            used_credits=used,
            remaining_credits=remaining_credits(total, used),
            plan_type=credits.get("plan_type", "free"),
        )

    async def reserve(
        self,
        user_id: str,
        insufficient_message: str = INSUFFICIENT_CREDITS,
        session=None,
    ) -> Dict[str, Any]:
        """Consume one credit or raise.

        Raises NotFoundError when the user has no credit record and
        InsufficientCreditsError when the balance is exhausted.
        """
        db = self._get_db()

        updated = await db.user_credits.find_one_and_update(
            {
                "user_id": user_id,
                "$expr": {"$lt": ["$used_credits", "$total_credits"]},
            },
            {
                "$inc": {"used_credits": INVOICE_CREDIT_COST},
                "$set": {"updated_at": datetime.now(timezone.utc)},
            },
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if updated:
            return updated

        existing = await db.user_credits.find_one({"user_id": user_id}, {"_id": 0}, session=session)
        if not existing:
            raise NotFoundError(CREDITS_NOT_FOUND)

        logger.info(f"Credit reservation refused for user {user_id}: balance exhausted")
        raise InsufficientCreditsError(insufficient_message)

    async def refund(self, user_id: str, session=None) -> bool:
        """Return one credit. Returns False when nothing was used."""
        db = self._get_db()

        result = await db.user_credits.update_one(
            {"user_id": user_id, "used_credits": {"$gt": 0}},
            {
                "$inc": {"used_credits": -INVOICE_CREDIT_COST},
                "$set": {"updated_at": datetime.now(timezone.utc)},
            },
            session=session,
        )
        return result.modified_count > 0

    async def set_plan_type(self, user_id: str, plan_type: str) -> None:
        db = self._get_db()
        await db.user_credits.update_one(
            {"user_id": user_id},
            {"$set": {"plan_type": plan_type, "updated_at": datetime.now(timezone.utc)}},
        )


credit_service = CreditService()

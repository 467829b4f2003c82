"""Subscription Service

Plan assignment, upgrades with proration, cancellation and usage logging.
Payments are recorded locally and completed immediately; there is no card
processor behind them.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Any, List, Optional
import logging

from pymongo import ReturnDocument

from database import database
from invoicing.errors import InvoicingError, NotFoundError
from invoicing.models.invoice import InvoiceStatus
from invoicing.models.subscriptions import (
    SUBSCRIPTION_PLANS,
    PLANS_BY_ID,
    BILLING_PERIOD_DAYS,
    USAGE_PERIOD_DAYS,
    PLAN_RATE_LIMITS,
    BillingCycle,
    PaymentRecord,
    PaymentStatus,
    PlanName,
    SubscriptionPlan,
    SubscriptionStatus,
    UpgradeRequest,
    CancelRequest,
    UsageAction,
    UsageLog,
    UsagePeriod,
    UsageResource,
    UsageStats,
    UserSubscription,
)
from invoicing.services.credit_service import credit_service

logger = logging.getLogger(__name__)

PLAN_NOT_FOUND = "გეგმა ვერ მოიძებნა"
SUBSCRIPTION_NOT_FOUND = "აქტიური გამოწერა ვერ მოიძებნა"
ALREADY_CANCELLED = "გამოწერა უკვე გაუქმებულია"
UPGRADE_CANCELLED = "გაუქმებული გამოწერის განახლება შეუძლებელია. ჯერ აღადგინეთ გამოწერა"
SAME_PLAN = "თქვენ უკვე გაქვთ ეს გეგმა"
NOTHING_TO_REACTIVATE = "აღსადგენი გამოწერა ვერ მოიძებნა"
UNKNOWN_FEATURE = "უცნობი ფუნქცია"


def calculate_proration(
    current_price: float,
    new_price: float,
    period_start: datetime,
    period_end: datetime,
    now: Optional[datetime] = None,
) -> float:
    """Amount due when switching plans mid-period.

    The unused part of the current period is credited against the new plan's
    cost for the remaining days. Never negative.
    """
    now = now or datetime.now(timezone.utc)
    total_days = (period_end - period_start).total_seconds() / 86400
    if total_days <= 0:
        return round(max(0.0, new_price), 2)

    remaining_days = min(max((period_end - now).total_seconds() / 86400, 0), total_days)
    used_days = total_days - remaining_days

    current_cost = current_price / total_days * used_days
    new_cost = new_price / total_days * remaining_days
    return round(max(0.0, new_cost - (current_price - current_cost)), 2)


def plan_price(plan: SubscriptionPlan, billing_cycle: BillingCycle) -> float:
    return plan.price_yearly if billing_cycle == BillingCycle.YEARLY else plan.price_monthly


def feature_allowed(value: Any) -> bool:
    """Booleans are taken as-is, limits allow when positive, None means unlimited."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value > 0
    return value is None


def _aware(value: datetime) -> datetime:
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SubscriptionService:

    def _get_db(self):
        return database.get_db()

    def get_plans(self) -> List[SubscriptionPlan]:
        return sorted(
            (p for p in SUBSCRIPTION_PLANS.values() if p.is_active),
            key=lambda p: p.sort_order,
        )

    def get_plan(self, plan_id: str) -> SubscriptionPlan:
        plan = PLANS_BY_ID.get(plan_id)
        if not plan:
            raise NotFoundError(PLAN_NOT_FOUND)
        return plan

    async def assign_free_plan(self, user_id: str) -> Dict[str, Any]:
        db = self._get_db()
        now = datetime.now(timezone.utc)
        subscription = UserSubscription(
            user_id=user_id,
            plan_id=SUBSCRIPTION_PLANS[PlanName.FREE].plan_id,
            current_period_start=now,
            current_period_end=now + timedelta(days=BILLING_PERIOD_DAYS[BillingCycle.MONTHLY]),
        )
        doc = subscription.model_dump()
        await db.user_subscriptions.insert_one(doc)
        doc.pop("_id", None)
        logger.info(f"Assigned FREE plan to user {user_id}")
        return doc

    async def get_current(self, user_id: str) -> Dict[str, Any]:
        """Active subscription, assigning FREE when the user has none."""
        db = self._get_db()
        subscription = await db.user_subscriptions.find_one(
            {"user_id": user_id, "status": SubscriptionStatus.ACTIVE.value},
            {"_id": 0},
            sort=[("created_at", -1)],
        )
        if not subscription:
            subscription = await self.assign_free_plan(user_id)
        return subscription

    async def get_current_response(self, user_id: str) -> Dict[str, Any]:
        subscription = await self.get_current(user_id)
        plan = PLANS_BY_ID.get(subscription["plan_id"])
        return {
            "has_subscription": True,
            "subscription": subscription,
            "plan": plan.model_dump() if plan else None,
        }

    async def plan_name_for(self, user_id: str) -> PlanName:
        subscription = await self.get_current(user_id)
        plan = PLANS_BY_ID.get(subscription["plan_id"])
        return plan.name if plan else PlanName.FREE

    async def rate_limit_for(self, user_id: str) -> int:
        return PLAN_RATE_LIMITS[await self.plan_name_for(user_id)]

    async def upgrade(self, user_id: str, data: UpgradeRequest) -> Dict[str, Any]:
        db = self._get_db()
        new_plan = self.get_plan(data.plan_id)
        current = await self.get_current(user_id)

        if current.get("cancel_at_period_end"):
            raise InvoicingError(UPGRADE_CANCELLED)
        if current["plan_id"] == new_plan.plan_id and current.get("billing_cycle") == data.billing_cycle.value:
            raise InvoicingError(SAME_PLAN)

        current_plan = self.get_plan(current["plan_id"])
        amount = calculate_proration(
            plan_price(current_plan, BillingCycle(current.get("billing_cycle", BillingCycle.MONTHLY.value))),
            plan_price(new_plan, data.billing_cycle),
            _aware(current["current_period_start"]),
            _aware(current["current_period_end"]),
        )

        now = datetime.now(timezone.utc)
        payment = PaymentRecord(
            subscription_id=current["subscription_id"],
            user_id=user_id,
            amount=amount,
            currency=new_plan.currency,
            status=PaymentStatus.COMPLETED,
            payment_method=data.payment_method,
            metadata={
                "type": "upgrade",
                "from_plan": current["plan_id"],
                "to_plan": new_plan.plan_id,
                "billing_cycle": data.billing_cycle.value,
            },
            paid_at=now,
        )
        payment_doc = payment.model_dump()
        await db.payment_records.insert_one(payment_doc)
        payment_doc.pop("_id", None)

        updates: Dict[str, Any] = {
            "plan_id": new_plan.plan_id,
            "billing_cycle": data.billing_cycle.value,
            "auto_renew": new_plan.name != PlanName.FREE,
            "updated_at": now,
        }
        if data.billing_cycle.value != current.get("billing_cycle"):
            updates["current_period_start"] = now
            updates["current_period_end"] = now + timedelta(days=BILLING_PERIOD_DAYS[data.billing_cycle])

        subscription = await db.user_subscriptions.find_one_and_update(
            {"subscription_id": current["subscription_id"]},
            {"$set": updates},
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER,
        )
        await credit_service.set_plan_type(user_id, new_plan.name.value.lower())
        await self.log_usage(
            user_id,
            UsageAction.UPDATE,
            UsageResource.SUBSCRIPTION,
            new_plan.plan_id,
            {"action": "upgrade", "from_plan": current["plan_id"], "to_plan": new_plan.plan_id},
        )

        logger.info(f"User {user_id} moved {current['plan_id']} -> {new_plan.plan_id} (charged {amount})")
        return {"subscription": subscription, "payment": payment_doc, "prorated_amount": amount}

    async def cancel(self, user_id: str, data: CancelRequest) -> Dict[str, Any]:
        db = self._get_db()
        current = await self.get_current(user_id)
        if current.get("status") == SubscriptionStatus.CANCELLED.value or current.get("cancel_at_period_end"):
            raise InvoicingError(ALREADY_CANCELLED)

        now = datetime.now(timezone.utc)
        updates: Dict[str, Any] = {
            "cancellation_reason": data.reason.value,
            "cancellation_feedback": data.feedback,
            "cancelled_at": now,
            "updated_at": now,
        }
        if data.cancel_immediately:
            updates["status"] = SubscriptionStatus.CANCELLED.value
            updates["current_period_end"] = now
        else:
            updates["cancel_at_period_end"] = True

        subscription = await db.user_subscriptions.find_one_and_update(
            {"subscription_id": current["subscription_id"]},
            {"$set": updates},
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER,
        )
        if data.cancel_immediately:
            await credit_service.set_plan_type(user_id, PlanName.FREE.value.lower())
        await self.log_usage(
            user_id,
            UsageAction.UPDATE,
            UsageResource.SUBSCRIPTION,
            current["subscription_id"],
            {"action": "cancel", "cancel_at_period_end": not data.cancel_immediately},
        )
        return subscription

    async def reactivate(self, user_id: str) -> Dict[str, Any]:
        db = self._get_db()
        subscription = await db.user_subscriptions.find_one_and_update(
            {
                "user_id": user_id,
                "status": SubscriptionStatus.ACTIVE.value,
                "cancel_at_period_end": True,
            },
            {"$set": {
                "cancel_at_period_end": False,
                "cancelled_at": None,
                "cancellation_reason": None,
                "cancellation_feedback": None,
                "updated_at": datetime.now(timezone.utc),
            }},
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER,
        )
        if not subscription:
            raise NotFoundError(NOTHING_TO_REACTIVATE)

        await self.log_usage(
            user_id,
            UsageAction.UPDATE,
            UsageResource.SUBSCRIPTION,
            subscription["subscription_id"],
            {"action": "reactivate"},
        )
        return subscription

    async def get_payments(self, user_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        db = self._get_db()
        return await db.payment_records.find(
            {"user_id": user_id}, {"_id": 0}
        ).sort("created_at", -1).limit(limit).to_list(limit)

    async def check_feature(self, user_id: str, feature: str) -> Dict[str, Any]:
        subscription = await self.get_current(user_id)
        plan = self.get_plan(subscription["plan_id"])
        features = plan.features.model_dump()
        if feature not in features:
            raise InvoicingError(UNKNOWN_FEATURE)
        return {"feature": feature, "allowed": feature_allowed(features[feature])}

    # ------------------------------------------------------------------
    # Usage
    # ------------------------------------------------------------------

    async def log_usage(
        self,
        user_id: str,
        action: UsageAction,
        resource_type: UsageResource,
        resource_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[str]:
        """Record one usage event. Never fails the calling operation."""
        try:
            db = self._get_db()
            subscription = await db.user_subscriptions.find_one(
                {"user_id": user_id, "status": SubscriptionStatus.ACTIVE.value},
                {"_id": 0, "subscription_id": 1},
            )
            log = UsageLog(
                user_id=user_id,
                subscription_id=(subscription or {}).get("subscription_id"),
                action=action,
                resource_type=resource_type,
                resource_id=resource_id,
                metadata=metadata,
            )
            await db.usage_logs.insert_one(log.model_dump())
            return log.log_id
        except Exception as e:
            logger.error(f"Failed to log usage for user {user_id}: {e}")
            return None

    async def usage_stats(
        self, user_id: str, company_id: Optional[str], period: UsagePeriod = UsagePeriod.MONTH
    ) -> UsageStats:
        db = self._get_db()
        period_end = datetime.now(timezone.utc)
        period_start = period_end - timedelta(days=USAGE_PERIOD_DAYS[period])
        window = {"$gte": period_start, "$lte": period_end}

        async def count_usage(action: UsageAction) -> int:
            return await db.usage_logs.count_documents({
                "user_id": user_id,
                "action": action.value,
                "resource_type": UsageResource.INVOICE.value,
                "created_at": window,
            })

        stats = UsageStats(
            period_start=period_start,
            period_end=period_end,
            invoices_created=await count_usage(UsageAction.CREATE),
            invoices_sent=await count_usage(UsageAction.SEND),
        )
        if company_id:
            stats.clients_added = await db.clients.count_documents(
                {"company_id": company_id, "created_at": window}
            )
            stats.products_added = await db.services.count_documents(
                {"company_id": company_id, "created_at": window}
            )
            paid = await db.invoices.find(
                {"company_id": company_id, "status": InvoiceStatus.PAID.value, "paid_at": window},
                {"_id": 0, "total": 1},
            ).to_list(100000)
            stats.total_revenue = round(sum(float(inv.get("total") or 0) for inv in paid), 2)
        return stats

    # ------------------------------------------------------------------
    # Scheduled maintenance
    # ------------------------------------------------------------------

    async def process_period_ends(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Close cancelled subscriptions and roll renewing ones forward.

        Runs hourly from the scheduler.
        """
        db = self._get_db()
        now = now or datetime.now(timezone.utc)
        free_plan_id = SUBSCRIPTION_PLANS[PlanName.FREE].plan_id

        expired = await db.user_subscriptions.update_many(
            {
                "status": SubscriptionStatus.ACTIVE.value,
                "cancel_at_period_end": True,
                "current_period_end": {"$lte": now},
            },
            {"$set": {"status": SubscriptionStatus.CANCELLED.value, "updated_at": now}},
        )

        renewing = await db.user_subscriptions.find(
            {
                "status": SubscriptionStatus.ACTIVE.value,
                "cancel_at_period_end": {"$ne": True},
                "current_period_end": {"$lte": now},
                "$or": [{"auto_renew": True}, {"plan_id": free_plan_id}],
            },
            {"_id": 0},
        ).to_list(1000)

        renewed = 0
        for subscription in renewing:
            cycle = BillingCycle(subscription.get("billing_cycle", BillingCycle.MONTHLY.value))
            start = _aware(subscription["current_period_end"])
            end = start + timedelta(days=BILLING_PERIOD_DAYS[cycle])
            while end <= now:
                start, end = end, end + timedelta(days=BILLING_PERIOD_DAYS[cycle])
            await db.user_subscriptions.update_one(
                {"subscription_id": subscription["subscription_id"]},
                {"$set": {"current_period_start": start, "current_period_end": end, "updated_at": now}},
            )
            renewed += 1

        if expired.modified_count or renewed:
            logger.info(f"Subscription periods processed: {expired.modified_count} expired, {renewed} renewed")
        return {"expired": expired.modified_count, "renewed": renewed}


subscription_service = SubscriptionService()

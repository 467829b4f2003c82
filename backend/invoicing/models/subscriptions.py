"""Subscription Models

Plans are static configuration (FREE, BASIC, PRO). A user always has at most
one active subscription; a missing one is replaced with FREE on first read.
Payments are recorded locally; no card processor is involved.
"""

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List
from datetime import datetime, timezone
from enum import Enum
import uuid


class PlanName(str, Enum):
    FREE = "FREE"
    BASIC = "BASIC"
    PRO = "PRO"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    PAST_DUE = "past_due"


class BillingCycle(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class PaymentMethod(str, Enum):
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    PAYPAL = "paypal"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class CancellationReason(str, Enum):
    TOO_EXPENSIVE = "too_expensive"
    NOT_USING = "not_using"
    MISSING_FEATURES = "missing_features"
    FOUND_ALTERNATIVE = "found_alternative"
    TECHNICAL_ISSUES = "technical_issues"
    OTHER = "other"


class UsageAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    SEND = "send"
    EXPORT = "export"
    VIEW = "view"


class UsageResource(str, Enum):
    INVOICE = "invoice"
    CLIENT = "client"
    PRODUCT = "product"
    SUBSCRIPTION = "subscription"
    EMAIL = "email"


class UsagePeriod(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


USAGE_PERIOD_DAYS = {
    UsagePeriod.DAY: 1,
    UsagePeriod.WEEK: 7,
    UsagePeriod.MONTH: 30,
    UsagePeriod.QUARTER: 90,
    UsagePeriod.YEAR: 365,
}

BILLING_PERIOD_DAYS = {
    BillingCycle.MONTHLY: 30,
    BillingCycle.YEARLY: 365,
}


class PlanFeatures(BaseModel):
    """None on a max_* limit means unlimited."""
    max_invoices_per_month: Optional[int] = None
    max_clients: Optional[int] = None
    max_products: Optional[int] = None
    can_export_pdf: bool = True
    can_send_email: bool = True
    can_use_api: bool = False
    can_use_recurring_invoices: bool = False
    can_use_multi_currency: bool = False
    can_use_custom_branding: bool = False
    can_use_team_members: bool = False
    max_team_members: Optional[int] = 1


class SubscriptionPlan(BaseModel):
    plan_id: str
    name: PlanName
    display_name: str
    description: str
    price_monthly: float
    price_yearly: float
    currency: str = "GEL"
    features: PlanFeatures
    sort_order: int = 0
    is_active: bool = True


# ============================================================================
# Plan Configuration
# ============================================================================

SUBSCRIPTION_PLANS: Dict[PlanName, SubscriptionPlan] = {
    PlanName.FREE: SubscriptionPlan(
        plan_id="plan_free",
        name=PlanName.FREE,
        display_name="უფასო",
        description="დასაწყისისთვის: ინვოისები, კლიენტები და PDF",
        price_monthly=0,
        price_yearly=0,
        features=PlanFeatures(
            max_clients=10,
            max_products=20,
        ),
        sort_order=0,
    ),
    PlanName.BASIC: SubscriptionPlan(
        plan_id="plan_basic",
        name=PlanName.BASIC,
        display_name="საბაზისო",
        description="მცირე ბიზნესისთვის",
        price_monthly=29,
        price_yearly=290,
        features=PlanFeatures(
            can_use_recurring_invoices=True,
            can_use_multi_currency=True,
            can_use_custom_branding=True,
        ),
        sort_order=1,
    ),
    PlanName.PRO: SubscriptionPlan(
        plan_id="plan_pro",
        name=PlanName.PRO,
        display_name="პროფესიონალური",
        description="გუნდებისთვის და API ინტეგრაციისთვის",
        price_monthly=79,
        price_yearly=790,
        features=PlanFeatures(
            can_use_api=True,
            can_use_recurring_invoices=True,
            can_use_multi_currency=True,
            can_use_custom_branding=True,
            can_use_team_members=True,
            max_team_members=5,
        ),
        sort_order=2,
    ),
}

PLANS_BY_ID: Dict[str, SubscriptionPlan] = {p.plan_id: p for p in SUBSCRIPTION_PLANS.values()}

# Requests per minute for credit-consuming and email actions
PLAN_RATE_LIMITS = {
    PlanName.FREE: 10,
    PlanName.BASIC: 50,
    PlanName.PRO: 200,
}


class UserSubscription(BaseModel):
    subscription_id: str = Field(default_factory=lambda: f"SUB-{uuid.uuid4().hex[:12].upper()}")
    user_id: str
    plan_id: str
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    billing_cycle: BillingCycle = BillingCycle.MONTHLY

    current_period_start: datetime
    current_period_end: datetime
    cancel_at_period_end: bool = False
    auto_renew: bool = False

    cancellation_reason: Optional[CancellationReason] = None
    cancellation_feedback: Optional[str] = None
    cancelled_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"extra": "ignore"}


class UpgradeRequest(BaseModel):
    plan_id: str = Field(min_length=1)
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    payment_method: PaymentMethod = PaymentMethod.CARD


class CancelRequest(BaseModel):
    reason: CancellationReason
    feedback: Optional[str] = Field(None, max_length=500)
    cancel_immediately: bool = False


class PaymentRecord(BaseModel):
    payment_id: str = Field(default_factory=lambda: f"PAY-{uuid.uuid4().hex[:12].upper()}")
    subscription_id: str
    user_id: str
    amount: float
    currency: str = "GEL"
    status: PaymentStatus = PaymentStatus.PENDING
    payment_method: Optional[PaymentMethod] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    paid_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"extra": "ignore"}


class UsageLog(BaseModel):
    log_id: str = Field(default_factory=lambda: f"USG-{uuid.uuid4().hex[:12].upper()}")
    user_id: str
    subscription_id: Optional[str] = None
    action: UsageAction
    resource_type: UsageResource
    resource_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"extra": "ignore"}


class UsageStats(BaseModel):
    period_start: datetime
    period_end: datetime
    invoices_created: int = 0
    invoices_sent: int = 0
    clients_added: int = 0
    products_added: int = 0
    total_revenue: float = 0
    api_calls: int = 0


class CurrentSubscriptionResponse(BaseModel):
    has_subscription: bool
    subscription: Optional[Dict[str, Any]] = None
    plan: Optional[SubscriptionPlan] = None


class PlanListResponse(BaseModel):
    plans: List[SubscriptionPlan]

"""Invoice Platform Data Models"""

from .user import (
    User,
    UserCreate,
    UserLogin,
    UserResponse,
    TokenResponse,
    ChangePasswordRequest,
)
from .company import (
    Company,
    CompanyUpdate,
    BankAccount,
    BankAccountCreate,
    BankAccountUpdate,
)
from .client import (
    Client,
    ClientCreate,
    ClientUpdate,
    ClientType,
)
from .service import (
    Service,
    ServiceCreate,
    ServiceUpdate,
)
from .invoice import (
    Invoice,
    InvoiceItem,
    InvoiceItemInput,
    InvoiceCreate,
    InvoiceUpdate,
    InvoiceStatus,
    InvoiceStatusUpdate,
    Currency,
    SendInvoiceRequest,
    PublicLinkRequest,
)
from .credits import (
    UserCredits,
    CreditsResponse,
)
from .subscriptions import (
    PlanName,
    SubscriptionPlan,
    UserSubscription,
    SubscriptionStatus,
)

__all__ = [
    # User
    "User",
    "UserCreate",
    "UserLogin",
    "UserResponse",
    "TokenResponse",
    "ChangePasswordRequest",
    # Company
    "Company",
    "CompanyUpdate",
    "BankAccount",
    "BankAccountCreate",
    "BankAccountUpdate",
    # Clients
    "Client",
    "ClientCreate",
    "ClientUpdate",
    "ClientType",
    # Services
    "Service",
    "ServiceCreate",
    "ServiceUpdate",
    # Invoices
    "Invoice",
    "InvoiceItem",
    "InvoiceItemInput",
    "InvoiceCreate",
    "InvoiceUpdate",
    "InvoiceStatus",
    "InvoiceStatusUpdate",
    "Currency",
    "SendInvoiceRequest",
    "PublicLinkRequest",
    # Credits
    "UserCredits",
    "CreditsResponse",
    # Subscriptions
    "PlanName",
    "SubscriptionPlan",
    "UserSubscription",
    "SubscriptionStatus",
]

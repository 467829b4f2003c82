"""Invoice Platform Routes"""

from .auth import router as auth_router
from .company import router as company_router
from .clients import router as clients_router
from .services import router as services_router
from .invoices import router as invoices_router
from .public import router as public_router
from .credits import router as credits_router
from .subscriptions import router as subscriptions_router

__all__ = [
    "auth_router",
    "company_router",
    "clients_router",
    "services_router",
    "invoices_router",
    "public_router",
    "credits_router",
    "subscriptions_router",
]

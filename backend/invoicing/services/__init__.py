"""Invoice Platform Services"""

from .credit_service import CreditService, credit_service
from .company_service import CompanyService, company_service
from .client_service import ClientService, client_service
from .catalog_service import CatalogService, catalog_service
from .invoice_service import InvoiceService, invoice_service
from .subscription_service import SubscriptionService, subscription_service
from .auth_service import AuthService, auth_service
from .email_service import EmailService, email_service
from .pdf_service import InvoicePdfRenderer, pdf_renderer
from .unit_of_work import UnitOfWork

__all__ = [
    "CreditService",
    "credit_service",
    "CompanyService",
    "company_service",
    "ClientService",
    "client_service",
    "CatalogService",
    "catalog_service",
    "InvoiceService",
    "invoice_service",
    "SubscriptionService",
    "subscription_service",
    "AuthService",
    "auth_service",
    "EmailService",
    "email_service",
    "InvoicePdfRenderer",
    "pdf_renderer",
    "UnitOfWork",
]

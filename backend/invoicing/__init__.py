"""
Invoice Platform
================

Multi-tenant invoicing for small businesses: companies, clients, a service
catalogue and invoices, with PDF rendering, email delivery, a per-user credit
wallet and subscription plans.

TENANCY RULES:
- A user owns exactly one company; every client, service and invoice carries company_id
- Every query is scoped by company_id; rows outside the caller's company are reported as not found
- Creating or duplicating an invoice consumes one credit
"""

__version__ = "1.0.0"
__product__ = "Invoice Platform"

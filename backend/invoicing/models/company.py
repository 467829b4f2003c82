"""Company (tenant) and bank account models."""

from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from datetime import datetime, timezone
import uuid

from invoicing.models.invoice import Currency

DEFAULT_INVOICE_PREFIX = "INV"
DEFAULT_VAT_RATE = 18.0
DEFAULT_DUE_DAYS = 14


class Company(BaseModel):
    """Tenant record. Holds invoice numbering state and invoice defaults."""
    company_id: str = Field(default_factory=lambda: f"CMP-{uuid.uuid4().hex[:12].upper()}")
    user_id: str
    name: str

    tax_id: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    logo_url: Optional[str] = None

    # Invoice numbering: {invoice_prefix}-{year}-{invoice_counter:04d}
    invoice_prefix: str = DEFAULT_INVOICE_PREFIX
    invoice_counter: int = 0

    default_vat_rate: float = DEFAULT_VAT_RATE
    default_due_days: int = DEFAULT_DUE_DAYS
    default_currency: Currency = Currency.GEL
    invoice_notes: Optional[str] = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"extra": "ignore"}


class CompanyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=200)
    tax_id: Optional[str] = Field(None, max_length=50)
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    website: Optional[str] = None
    logo_url: Optional[str] = None
    invoice_prefix: Optional[str] = Field(None, min_length=1, max_length=10)
    default_vat_rate: Optional[float] = Field(None, ge=0, le=100)
    default_due_days: Optional[int] = Field(None, ge=1, le=365)
    default_currency: Optional[Currency] = None
    invoice_notes: Optional[str] = Field(None, max_length=1000)


class BankAccount(BaseModel):
    account_id: str = Field(default_factory=lambda: f"BNK-{uuid.uuid4().hex[:12].upper()}")
    company_id: str
    bank_name: str
    account_number: str
    account_name: Optional[str] = None
    is_default: bool = False
    is_active: bool = True

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"extra": "ignore"}


class BankAccountCreate(BaseModel):
    bank_name: str = Field(min_length=2, max_length=100)
    account_number: str = Field(min_length=5, max_length=50)
    account_name: Optional[str] = Field(None, max_length=200)
    is_default: bool = False


class BankAccountUpdate(BaseModel):
    bank_name: Optional[str] = Field(None, min_length=2, max_length=100)
    account_number: Optional[str] = Field(None, min_length=5, max_length=50)
    account_name: Optional[str] = Field(None, max_length=200)
    is_default: Optional[bool] = None

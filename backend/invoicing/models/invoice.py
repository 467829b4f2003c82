"""Invoice Models

Dates (issue_date, due_date) are stored as ISO ``YYYY-MM-DD`` strings so that
range filters and the overdue check compare lexically; timestamps are
datetimes.
"""

from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List
from datetime import datetime, date, timezone
from enum import Enum
import uuid


class InvoiceStatus(str, Enum):
    """Invoice status. Any status may move to any other."""
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class Currency(str, Enum):
    GEL = "GEL"
    USD = "USD"
    EUR = "EUR"


CURRENCY_SYMBOLS = {"GEL": "₾", "USD": "$", "EUR": "€"}

STATUS_LABELS = {
    InvoiceStatus.DRAFT.value: "მონახაზი",
    InvoiceStatus.SENT.value: "გაგზავნილი",
    InvoiceStatus.PAID.value: "გადახდილი",
    InvoiceStatus.OVERDUE.value: "ვადაგადაცილებული",
    InvoiceStatus.CANCELLED.value: "გაუქმებული",
}

STATUS_CHANGE_MESSAGES = {
    InvoiceStatus.DRAFT.value: "ინვოისი გადავიდა მონახაზის სტატუსში",
    InvoiceStatus.SENT.value: "ინვოისი მონიშნულია როგორც გაგზავნილი",
    InvoiceStatus.PAID.value: "ინვოისი მონიშნულია როგორც გადახდილი",
    InvoiceStatus.OVERDUE.value: "ინვოისი მონიშნულია როგორც ვადაგადაცილებული",
    InvoiceStatus.CANCELLED.value: "ინვოისი გაუქმებულია",
}

EDITABLE_STATUSES = {InvoiceStatus.DRAFT.value, InvoiceStatus.SENT.value}
# Statuses that still expect payment
OPEN_STATUSES = [InvoiceStatus.DRAFT.value, InvoiceStatus.SENT.value, InvoiceStatus.OVERDUE.value]

MAX_ITEMS = 50
DEFAULT_DUE_DAYS = 14


class InvoiceItemInput(BaseModel):
    service_id: Optional[str] = None
    description: str = Field(min_length=1, max_length=500)
    quantity: float = Field(ge=0.001, le=999999)
    unit_price: float = Field(ge=0, le=999999999)
    line_total: Optional[float] = None
    sort_order: Optional[int] = None

    model_config = {"extra": "ignore"}


class InvoiceItem(BaseModel):
    item_id: str = Field(default_factory=lambda: f"ITM-{uuid.uuid4().hex[:12].upper()}")
    invoice_id: str
    service_id: Optional[str] = None
    description: str
    quantity: float
    unit_price: float
    line_total: float
    sort_order: int = 0

    model_config = {"extra": "ignore"}


class InvoiceCreate(BaseModel):
    client_id: str = Field(min_length=1)
    issue_date: Optional[date] = None
    due_days: int = Field(DEFAULT_DUE_DAYS, ge=1, le=365)
    currency: Currency = Currency.GEL
    vat_rate: Optional[float] = Field(None, ge=0, le=100)
    notes: Optional[str] = Field(None, max_length=2000)
    bank_account_ids: List[str] = Field(default_factory=list)
    public_enabled: bool = True
    items: List[InvoiceItemInput] = Field(min_length=1, max_length=MAX_ITEMS)

    model_config = {"extra": "ignore"}


class InvoiceUpdate(BaseModel):
    """Partial update. When items are sent they replace the existing lines."""
    client_id: Optional[str] = None
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    currency: Optional[Currency] = None
    vat_rate: Optional[float] = Field(None, ge=0, le=100)
    notes: Optional[str] = Field(None, max_length=2000)
    bank_account_ids: Optional[List[str]] = None
    public_enabled: Optional[bool] = None
    items: Optional[List[InvoiceItemInput]] = Field(None, min_length=1, max_length=MAX_ITEMS)

    model_config = {"extra": "ignore"}


class InvoiceStatusUpdate(BaseModel):
    status: InvoiceStatus


class Invoice(BaseModel):
    invoice_id: str = Field(default_factory=lambda: f"IVC-{uuid.uuid4().hex[:12].upper()}")
    company_id: str
    client_id: str
    invoice_number: str

    issue_date: str
    due_date: str
    status: InvoiceStatus = InvoiceStatus.DRAFT
    currency: Currency = Currency.GEL

    subtotal: float = 0
    vat_rate: float = 18
    vat_amount: float = 0
    total: float = 0

    notes: Optional[str] = None
    bank_account_ids: List[str] = Field(default_factory=list)

    public_token: str = Field(default_factory=lambda: uuid.uuid4().hex)
    public_enabled: bool = True
    public_expires_at: Optional[datetime] = None

    sent_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"extra": "ignore"}


class SendInvoiceRequest(BaseModel):
    to: List[EmailStr] = Field(default_factory=list)
    cc: List[EmailStr] = Field(default_factory=list)
    bcc: List[EmailStr] = Field(default_factory=list)
    subject: Optional[str] = Field(None, max_length=200)
    message: Optional[str] = Field(None, max_length=1000)
    attach_pdf: bool = Field(True, alias="attachPDF")

    model_config = {"extra": "ignore", "populate_by_name": True}


class PublicLinkRequest(BaseModel):
    rotate: bool = False
    token: Optional[str] = Field(None, min_length=16, max_length=64)
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")

    model_config = {"extra": "ignore", "populate_by_name": True}

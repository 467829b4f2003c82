"""Email delivery records."""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, timezone
from enum import Enum
import uuid


class EmailType(str, Enum):
    INVOICE = "invoice"
    REMINDER = "reminder"
    CONFIRMATION = "confirmation"
    NOTIFICATION = "notification"


class EmailStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    BOUNCED = "bounced"


class EmailHistory(BaseModel):
    """One row per recipient, written to ``email_history``."""
    email_id: str = Field(default_factory=lambda: f"EML-{uuid.uuid4().hex[:12].upper()}")
    user_id: str
    company_id: Optional[str] = None
    invoice_id: Optional[str] = None
    type: EmailType = EmailType.INVOICE
    recipient: str
    subject: str
    status: EmailStatus = EmailStatus.PENDING
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    sent_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"extra": "ignore"}

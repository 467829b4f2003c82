"""Credit Models

Each user holds a single credit record. Creating or duplicating an invoice
consumes one credit; deleting a draft refunds it.
"""

from pydantic import BaseModel, Field
from datetime import datetime, timezone

FREE_CREDITS = 5
INVOICE_CREDIT_COST = 1


def remaining_credits(total_credits: int, used_credits: int) -> int:
    """Balance shown to the user; never negative."""
    return max(0, (total_credits or 0) - (used_credits or 0))


class UserCredits(BaseModel):
    user_id: str
    total_credits: int = FREE_CREDITS
    used_credits: int = 0
    plan_type: str = "free"

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"extra": "ignore"}


class CreditsResponse(BaseModel):
    user_id: str
    total_credits: int
    used_credits: int
    remaining_credits: int
    plan_type: str

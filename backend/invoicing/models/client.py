"""Client models."""

from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, Literal, Union
from datetime import datetime, timezone
from enum import Enum
import uuid


class ClientType(str, Enum):
    INDIVIDUAL = "individual"
    COMPANY = "company"


CLIENT_TYPE_LABELS = {
    ClientType.INDIVIDUAL.value: "ფიზიკური პირი",
    ClientType.COMPANY.value: "იურიდიული პირი",
}

OptionalEmail = Optional[Union[EmailStr, Literal[""]]]


def _check_name(value):
    if value is not None and len(value.strip()) < 2:
        raise ValueError("სახელი სავალდებულოა")
    return value.strip() if value is not None else value


class Client(BaseModel):
    client_id: str = Field(default_factory=lambda: f"CLI-{uuid.uuid4().hex[:12].upper()}")
    company_id: str
    type: ClientType
    name: str

    tax_id: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    contact_person: Optional[str] = None
    notes: Optional[str] = None
    is_active: bool = True

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"extra": "ignore"}


class ClientCreate(BaseModel):
    type: ClientType
    name: str
    tax_id: Optional[str] = Field(None, max_length=50)
    email: OptionalEmail = None
    phone: Optional[str] = Field(None, max_length=50)
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    contact_person: Optional[str] = None
    notes: Optional[str] = None
    is_active: bool = True

    model_config = {"extra": "ignore"}

    @field_validator("name")
    @classmethod
    def check_name(cls, value):
        return _check_name(value)


class ClientUpdate(BaseModel):
    """Partial update; only fields that were sent are applied."""
    type: Optional[ClientType] = None
    name: Optional[str] = None
    tax_id: Optional[str] = Field(None, max_length=50)
    email: OptionalEmail = None
    phone: Optional[str] = Field(None, max_length=50)
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    contact_person: Optional[str] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None

    model_config = {"extra": "ignore"}

    @field_validator("type", "name", "is_active", mode="before")
    @classmethod
    def reject_null(cls, value):
        if value is None:
            raise ValueError("ველი ვერ იქნება ცარიელი")
        return value

    @field_validator("name")
    @classmethod
    def check_name(cls, value):
        return _check_name(value)

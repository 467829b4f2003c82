"""Service catalogue models (reusable invoice line templates)."""

from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime, timezone
import uuid

DEFAULT_UNIT = "ცალი"


def _check_name(value):
    if value is not None and len(value.strip()) < 2:
        raise ValueError("სერვისის სახელი სავალდებულოა")
    return value.strip() if value is not None else value


class Service(BaseModel):
    service_id: str = Field(default_factory=lambda: f"SRV-{uuid.uuid4().hex[:12].upper()}")
    company_id: str
    name: str
    description: Optional[str] = None
    default_price: Optional[float] = None
    unit: str = DEFAULT_UNIT
    is_active: bool = True

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"extra": "ignore"}


class ServiceCreate(BaseModel):
    name: str
    description: Optional[str] = Field(None, max_length=1000)
    default_price: Optional[float] = Field(None, ge=0)
    unit: str = Field(DEFAULT_UNIT, max_length=50)
    is_active: bool = True

    model_config = {"extra": "ignore"}

    @field_validator("name")
    @classmethod
    def check_name(cls, value):
        return _check_name(value)


class ServiceUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = Field(None, max_length=1000)
    default_price: Optional[float] = Field(None, ge=0)
    unit: Optional[str] = Field(None, max_length=50)
    is_active: Optional[bool] = None

    model_config = {"extra": "ignore"}

    @field_validator("name", "default_price", "unit", "is_active", mode="before")
    @classmethod
    def reject_null(cls, value):
        if value is None:
            raise ValueError("ველი ვერ იქნება ცარიელი")
        return value

    @field_validator("name")
    @classmethod
    def check_name(cls, value):
        return _check_name(value)

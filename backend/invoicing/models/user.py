"""User and authentication models."""

from pydantic import BaseModel, EmailStr, Field, model_validator
from typing import Optional
from datetime import datetime, timezone
import uuid

from auth import validate_password_strength


class User(BaseModel):
    """Account record. One user owns exactly one company."""
    user_id: str = Field(default_factory=lambda: f"USR-{uuid.uuid4().hex[:12].upper()}")
    email: EmailStr
    full_name: Optional[str] = None
    password_hash: str

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_login_at: Optional[datetime] = None

    model_config = {"extra": "ignore"}


def _check_new_password(password: str, confirm_password: str) -> None:
    valid, message = validate_password_strength(password)
    if not valid:
        raise ValueError(message)
    if password != confirm_password:
        raise ValueError("პაროლები არ ემთხვევა")


class UserCreate(BaseModel):
    """Registration request."""
    email: EmailStr
    password: str
    confirm_password: str
    full_name: Optional[str] = Field(None, max_length=200)
    company_name: Optional[str] = Field(None, max_length=200)
    terms: bool = False

    model_config = {"extra": "ignore"}

    @model_validator(mode="after")
    def check_passwords_and_terms(self):
        _check_new_password(self.password, self.confirm_password)
        if not self.terms:
            raise ValueError("უნდა დაეთანხმოთ პირობებს")
        self.email = self.email.lower()
        return self


class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1)
    password: str
    confirm_password: str

    @model_validator(mode="after")
    def check_passwords(self):
        _check_new_password(self.password, self.confirm_password)
        return self


class UserResponse(BaseModel):
    """Safe user response (no password hash)"""
    user_id: str
    email: str
    full_name: Optional[str] = None
    company_id: Optional[str] = None
    created_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse

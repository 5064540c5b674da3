"""Pydantic schemas for user operations.

Password strength is not checked here: the credential store enforces the
policy at the moment a password is set, and reports every unmet rule.
"""

from datetime import datetime
from uuid import UUID

from pydantic import Field, field_validator

from bookswap.schemas.base import BaseResponse, BaseSchema
from bookswap.schemas.trade import TradeResponse


class UserProfile(BaseSchema):
    """Optional, unconstrained profile fields."""

    first_name: str | None = Field(None, max_length=100)
    last_name: str | None = Field(None, max_length=100)
    city: str | None = Field(None, max_length=100)
    state: str | None = Field(None, max_length=100)
    zip_code: str | None = Field(None, max_length=20)


class UserCreate(UserProfile):
    """Schema for account creation.

    Attributes:
        username: Unique login name (surrounding whitespace is stripped)
        password: Plaintext password, hashed before storage
        creator_id: Identity that created the account
    """

    username: str = Field(..., max_length=150, description="Unique login name")
    password: str = Field(..., description="Plaintext password, any length")
    creator_id: str = Field(..., max_length=255, description="Creating identity")

    @field_validator("username", "creator_id")
    @classmethod
    def strip_identifiers(cls, v: str) -> str:
        return v.strip()


class UserUpdate(UserProfile):
    """Schema for partial user updates.

    Only fields the caller sets explicitly are applied. ``password`` is
    re-hashed only when it is among them.
    """

    password: str | None = None


class UserLogin(BaseSchema):
    """Username and password pair handed to ``authenticate``."""

    username: str
    password: str


class UserResponse(BaseResponse):
    """Serialized account; never includes the password hash."""

    username: str
    creator_id: str
    first_name: str | None = None
    last_name: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    book_ids: list[UUID] = Field(default_factory=list)
    trades_out: list[TradeResponse] = Field(default_factory=list)
    trades_in: list[TradeResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


__all__ = [
    "UserCreate",
    "UserLogin",
    "UserProfile",
    "UserResponse",
    "UserUpdate",
]

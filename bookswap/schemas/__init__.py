"""Pydantic schemas for users and trades."""

from bookswap.schemas.base import BaseResponse, BaseSchema
from bookswap.schemas.trade import TradeCreate, TradeResponse
from bookswap.schemas.user import (
    UserCreate,
    UserLogin,
    UserProfile,
    UserResponse,
    UserUpdate,
)

__all__ = [
    "BaseResponse",
    "BaseSchema",
    "TradeCreate",
    "TradeResponse",
    "UserCreate",
    "UserLogin",
    "UserProfile",
    "UserResponse",
    "UserUpdate",
]

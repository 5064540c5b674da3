"""Pydantic schemas for trade records.

``TradeCreate`` is the value both copies of a trade are built from. It is
frozen, so handing the same value to ``append_trade_out`` and
``append_trade_in`` cannot couple the two copies.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from pydantic import ConfigDict, Field, model_validator

from bookswap.models.base import utcnow
from bookswap.models.enums import TradeDirection, TradeStatus
from bookswap.schemas.base import BaseSchema

if TYPE_CHECKING:
    from bookswap.models.trade import TradeRecord


class TradeCreate(BaseSchema):
    """Trade value appended to a user's trade list.

    Attributes:
        trade_key: Identity shared by the out and in copies
        book_id: Book being traded
        owner_id: Initiating user
        recipient_id: Counterpart user
        trade_type: Status; new trades start as ``requested``
        date_requested: Request time
        date_out: Completion time, only for completed trades
    """

    model_config = ConfigDict(from_attributes=True, frozen=True, use_enum_values=False)

    trade_key: UUID = Field(default_factory=uuid4)
    book_id: UUID
    owner_id: UUID
    recipient_id: UUID
    trade_type: TradeStatus = TradeStatus.REQUESTED
    date_requested: datetime = Field(default_factory=utcnow)
    date_out: datetime | None = None

    @model_validator(mode="after")
    def check_consistency(self) -> TradeCreate:
        """Parties must differ and date_out must match the status."""
        if self.owner_id == self.recipient_id:
            raise ValueError("owner_id and recipient_id must be different users")
        completed = self.trade_type is TradeStatus.COMPLETED
        if completed and self.date_out is None:
            raise ValueError("completed trades require date_out")
        if not completed and self.date_out is not None:
            raise ValueError("date_out is only set on completed trades")
        return self

    @classmethod
    def from_record(cls, record: TradeRecord) -> TradeCreate:
        """Rebuild the shared trade value from one stored copy."""
        return cls(
            trade_key=record.trade_key,
            book_id=record.book_id,
            owner_id=record.owner_id,
            recipient_id=record.recipient_id,
            trade_type=record.status,
            date_requested=record.date_requested,
            date_out=record.date_out,
        )


class TradeResponse(BaseSchema):
    """Serialized trade record copy."""

    id: UUID
    trade_key: UUID
    direction: TradeDirection
    position: int
    book_id: UUID
    owner_id: UUID
    recipient_id: UUID
    trade_type: TradeStatus
    date_requested: datetime
    date_out: datetime | None = None


__all__ = ["TradeCreate", "TradeResponse"]

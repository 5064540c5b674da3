"""Trade record model and its status state machine.

A trade between two users is stored as two independent copies: one in the
initiator's ``trades_out`` list and one in the recipient's ``trades_in``
list. Both copies carry the same ``trade_key``. Copies never share a row,
so writing one side never changes the other.

Only ``date_out`` and the status change after creation, and only through
``accept``, ``decline`` and ``complete``. Records are never deleted.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, validates

from bookswap.core.exceptions import StateTransitionError, ValidationError
from bookswap.models.base import GUID, Base, UUIDMixin, utcnow
from bookswap.models.enums import TRADE_TRANSITIONS, TradeDirection, TradeStatus

if TYPE_CHECKING:
    from bookswap.schemas.trade import TradeCreate

# How far along the lifecycle a status is; used to pick the leading copy
STATUS_RANK: dict[TradeStatus, int] = {
    TradeStatus.REQUESTED: 0,
    TradeStatus.ACCEPTED: 1,
    TradeStatus.DECLINED: 2,
    TradeStatus.COMPLETED: 2,
}

IMMUTABLE_FIELDS = ("trade_key", "book_id", "owner_id", "recipient_id", "date_requested")


class TradeRecord(UUIDMixin, Base):
    """One copy of a trade, held in one user's trade list.

    Attributes:
        id: UUID of this copy (from UUIDMixin)
        trade_key: Identity shared by the out and in copies of a trade
        holder_id: User whose list contains this copy
        direction: ``out`` for the initiator's copy, ``in`` for the recipient's
        position: Index within the holder's list
        book_id: Opaque reference to the traded book
        owner_id: User who initiated the trade
        recipient_id: Counterpart user
        date_requested: When the trade was requested
        date_out: When the trade completed, None until then
    """

    __tablename__ = "trade_records"

    trade_key: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False, index=True)

    holder_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    direction: Mapped[str] = mapped_column(String(3), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    book_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False)
    owner_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("users.id"), nullable=False
    )
    recipient_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("users.id"), nullable=False
    )

    # Written only by the transition methods below
    _status: Mapped[str] = mapped_column(
        "trade_type",
        String(20),
        nullable=False,
        default=TradeStatus.REQUESTED.value,
    )

    date_requested: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    date_out: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        UniqueConstraint("holder_id", "direction", "position", name="uq_trade_list_slot"),
    )

    def __repr__(self) -> str:
        """Return string representation of the trade record."""
        return (
            f"<TradeRecord(id={self.id}, trade_key={self.trade_key}, "
            f"direction='{self.direction}', status='{self._status}')>"
        )

    @classmethod
    def copy_of(cls, trade: TradeCreate, direction: TradeDirection) -> TradeRecord:
        """Build a fresh record copy from a trade value.

        Args:
            trade: Trade value shared by both sides.
            direction: Which list the copy is destined for.
        """
        record = cls(
            trade_key=trade.trade_key,
            direction=direction.value,
            book_id=trade.book_id,
            owner_id=trade.owner_id,
            recipient_id=trade.recipient_id,
            date_requested=trade.date_requested,
            date_out=trade.date_out,
        )
        record._status = TradeStatus(trade.trade_type).value
        return record

    @validates(*IMMUTABLE_FIELDS, "date_out")
    def _guard_immutable(self, key: str, value: Any) -> Any:
        # date_out is write-once: free while None, fixed after
        current = self.__dict__.get(key)
        if current is not None and current != value:
            raise ValidationError(
                f"'{key}' cannot change once it is set",
                error_code="IMMUTABLE_FIELD",
                details={"field": key},
            )
        return value

    @property
    def status(self) -> TradeStatus:
        return TradeStatus(self._status or TradeStatus.REQUESTED.value)

    @property
    def trade_type(self) -> str:
        return self.status.value

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def accept(self, actor_id: uuid.UUID) -> None:
        """Recipient accepts a requested trade."""
        self._require_recipient(actor_id, TradeStatus.ACCEPTED)
        self._transition(TradeStatus.ACCEPTED)

    def decline(self, actor_id: uuid.UUID) -> None:
        """Recipient declines a requested trade."""
        self._require_recipient(actor_id, TradeStatus.DECLINED)
        self._transition(TradeStatus.DECLINED)

    def complete(self, actor_id: uuid.UUID, at: datetime | None = None) -> None:
        """Either party marks an accepted trade as exchanged.

        Args:
            actor_id: Owner or recipient.
            at: Exchange time; defaults to now. Stored as ``date_out``.
        """
        if actor_id not in (self.owner_id, self.recipient_id):
            raise StateTransitionError(
                self.status.value,
                TradeStatus.COMPLETED.value,
                reason="only a party to the trade can complete it",
                error_code="TRANSITION_NOT_PERMITTED",
            )
        self._transition(TradeStatus.COMPLETED, at=at)

    def catch_up(self, leader: TradeRecord) -> bool:
        """Advance this copy to the status of ``leader``, the other copy.

        Returns:
            True if the copy changed, False if it already matched.

        Raises:
            StateTransitionError: If the copies diverged (e.g. one accepted,
                the other declined) or this copy is ahead of ``leader``.
        """
        if leader.trade_key != self.trade_key:
            raise ValueError("catch_up requires the other copy of the same trade")

        target = leader.status
        if target is self.status:
            return False

        steps = [target]
        if target is TradeStatus.COMPLETED and self.status is TradeStatus.REQUESTED:
            steps = [TradeStatus.ACCEPTED, TradeStatus.COMPLETED]
        for step in steps:
            self._transition(step, at=leader.date_out)
        return True

    def _require_recipient(self, actor_id: uuid.UUID, target: TradeStatus) -> None:
        if actor_id != self.recipient_id:
            raise StateTransitionError(
                self.status.value,
                target.value,
                reason="only the recipient can answer a trade request",
                error_code="TRANSITION_NOT_PERMITTED",
            )

    def _transition(self, target: TradeStatus, at: datetime | None = None) -> None:
        current = self.status
        if current.is_terminal:
            raise StateTransitionError(
                current.value, target.value, reason=f"trade is already {current.value}"
            )
        if target not in TRADE_TRANSITIONS[current]:
            raise StateTransitionError(current.value, target.value)

        self._status = target.value
        if target is TradeStatus.COMPLETED:
            self.date_out = at or utcnow()


__all__ = ["IMMUTABLE_FIELDS", "STATUS_RANK", "TradeRecord"]

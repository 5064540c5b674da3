"""Trade workflow across two accounts.

A trade lives as two independent copies: the initiator's ``trades_out``
entry and the recipient's ``trades_in`` entry. This service writes both
sides explicitly, one commit per side. There is no cross-account
transaction, so a failure between the two writes leaves one side committed;
that surfaces as ``PartialTradeWriteError`` and ``reconcile`` repairs it.

Every log record emitted while handling a trade carries its ``trade_key``.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING, NamedTuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from bookswap.core.exceptions import (
    PartialTradeWriteError,
    TradeNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from bookswap.core.logging import LogContext, get_logger
from bookswap.models.base import utcnow
from bookswap.models.enums import TradeDirection
from bookswap.models.trade import STATUS_RANK, TradeRecord
from bookswap.schemas.trade import TradeCreate
from bookswap.services.user_service import UserService

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from bookswap.models.user import User


class TradePair(NamedTuple):
    """Both copies of one trade; a side is None if it was never written."""

    outgoing: TradeRecord | None
    incoming: TradeRecord | None


class TradeService:
    """Open, answer, complete and repair trades between two users.

    Args:
        session: Async SQLAlchemy session.
        users: User service used for the list appends. Defaults to one
            sharing ``session``.
    """

    def __init__(self, session: AsyncSession, users: UserService | None = None) -> None:
        self.session = session
        self.users = users or UserService(session)
        self.logger = get_logger(__name__)

    async def get_pair(self, trade_key: uuid.UUID) -> TradePair:
        """Load both copies of a trade.

        Raises:
            TradeNotFoundError: If no copy carries ``trade_key``.
        """
        result = await self.session.execute(
            select(TradeRecord)
            .where(TradeRecord.trade_key == trade_key)
            .order_by(TradeRecord.position)
            .execution_options(populate_existing=True)
        )
        outgoing: TradeRecord | None = None
        incoming: TradeRecord | None = None
        for record in result.scalars():
            if record.direction == TradeDirection.OUT.value and outgoing is None:
                outgoing = record
            elif record.direction == TradeDirection.IN.value and incoming is None:
                incoming = record

        if outgoing is None and incoming is None:
            raise TradeNotFoundError(trade_key)
        return TradePair(outgoing, incoming)

    async def open_trade(
        self,
        owner_id: uuid.UUID,
        recipient_id: uuid.UUID,
        book_id: uuid.UUID,
    ) -> TradePair:
        """Request ``book_id`` from ``owner_id`` to ``recipient_id``.

        Writes the owner's outgoing copy first, then the recipient's
        incoming copy.

        Raises:
            ValidationError: If owner and recipient are the same user.
            UserNotFoundError: If either user does not exist.
            PartialTradeWriteError: If only the outgoing copy was written.
        """
        if owner_id == recipient_id:
            raise ValidationError(
                "A user cannot trade with themselves",
                error_code="SELF_TRADE",
                details={"user_id": str(owner_id)},
            )

        owner = await self._require_user(owner_id)
        recipient = await self._require_user(recipient_id)
        trade = TradeCreate(book_id=book_id, owner_id=owner_id, recipient_id=recipient_id)

        with LogContext(trade_key=str(trade.trade_key), action="open_trade"):
            outgoing = await self.users.append_trade_out(owner, trade)
            try:
                incoming = await self.users.append_trade_in(recipient, trade)
            except SQLAlchemyError as e:
                await self._report_partial(trade.trade_key, [TradeDirection.OUT])
                raise PartialTradeWriteError(
                    trade.trade_key, [TradeDirection.OUT.value]
                ) from e

            self.logger.info(
                "Trade opened",
                extra={"context": {"owner_id": str(owner_id), "recipient_id": str(recipient_id)}},
            )
        return TradePair(outgoing, incoming)

    async def accept(self, trade_key: uuid.UUID, actor_id: uuid.UUID) -> TradePair:
        """Recipient accepts; see ``TradeRecord.accept``."""
        return await self._advance(trade_key, "accept", lambda r: r.accept(actor_id))

    async def decline(self, trade_key: uuid.UUID, actor_id: uuid.UUID) -> TradePair:
        """Recipient declines; see ``TradeRecord.decline``."""
        return await self._advance(trade_key, "decline", lambda r: r.decline(actor_id))

    async def complete(
        self,
        trade_key: uuid.UUID,
        actor_id: uuid.UUID,
        at: datetime | None = None,
    ) -> TradePair:
        """Either party completes; both copies get the same ``date_out``."""
        at = at or utcnow()
        return await self._advance(trade_key, "complete", lambda r: r.complete(actor_id, at))

    async def reconcile(self, trade_key: uuid.UUID) -> TradePair:
        """Bring the two copies of a trade back in line.

        A missing copy is re-created from the surviving one and appended to
        the right user's list. If both exist with different statuses, the
        lagging copy is advanced to the leading one.

        Raises:
            TradeNotFoundError: If neither copy exists.
            StateTransitionError: If the copies diverged irreconcilably.
        """
        outgoing, incoming = await self.get_pair(trade_key)

        with LogContext(trade_key=str(trade_key), action="reconcile"):
            if outgoing is None and incoming is not None:
                owner = await self._require_user(incoming.owner_id)
                outgoing = await self.users.append_trade_out(
                    owner, TradeCreate.from_record(incoming)
                )
                self.logger.info("Recreated missing outgoing copy")
            elif incoming is None and outgoing is not None:
                recipient = await self._require_user(outgoing.recipient_id)
                incoming = await self.users.append_trade_in(
                    recipient, TradeCreate.from_record(outgoing)
                )
                self.logger.info("Recreated missing incoming copy")
            elif outgoing is not None and incoming is not None:
                leader, lagger = outgoing, incoming
                if STATUS_RANK[incoming.status] > STATUS_RANK[outgoing.status]:
                    leader, lagger = incoming, outgoing
                if lagger.catch_up(leader):
                    await self.session.commit()
                    self.logger.info(
                        "Advanced lagging copy",
                        extra={"context": {"direction": lagger.direction, "status": lagger.trade_type}},
                    )

        return TradePair(outgoing, incoming)

    async def _advance(
        self,
        trade_key: uuid.UUID,
        action: str,
        apply: Callable[[TradeRecord], None],
    ) -> TradePair:
        outgoing, incoming = await self.get_pair(trade_key)

        with LogContext(trade_key=str(trade_key), action=action):
            if outgoing is None or incoming is None or outgoing.status is not incoming.status:
                written = [
                    record.direction
                    for record in (outgoing, incoming)
                    if record is not None
                ]
                self.logger.warning(
                    "Trade copies out of sync, reconcile first",
                    extra={"context": {"present": written}},
                )
                raise PartialTradeWriteError(trade_key, written)

            # Fails on the first copy, before anything is written
            apply(outgoing)
            await self.session.commit()

            try:
                apply(incoming)
                await self.session.commit()
            except SQLAlchemyError as e:
                await self._report_partial(trade_key, [TradeDirection.OUT])
                raise PartialTradeWriteError(trade_key, [TradeDirection.OUT.value]) from e

            self.logger.info(
                "Trade status changed",
                extra={"context": {"status": outgoing.trade_type}},
            )
        return TradePair(outgoing, incoming)

    async def _require_user(self, user_id: uuid.UUID) -> User:
        user = await self.users.get_user_by_id(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    async def _report_partial(
        self,
        trade_key: uuid.UUID,
        written: list[TradeDirection],
    ) -> None:
        await self.session.rollback()
        self.logger.error(
            "Trade only partially written",
            extra={
                "context": {
                    "trade_key": str(trade_key),
                    "written": [d.value for d in written],
                }
            },
        )


__all__ = ["TradePair", "TradeService"]

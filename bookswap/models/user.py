"""User account model.

A user owns two ordered trade lists (``trades_out`` and ``trades_in``) and a
set of book references. The password is stored only as a bcrypt hash, and
only the user service writes it.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from bookswap.core.exceptions import ValidationError
from bookswap.models.base import GUID, Base, TimestampMixin, UUIDMixin
from bookswap.models.trade import TradeRecord


class UserBook(Base):
    """Reference from a user to a book they hold.

    The book itself lives in the catalog; only its id is stored here.
    """

    __tablename__ = "user_books"

    user_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    book_id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True)

    def __repr__(self) -> str:
        return f"<UserBook(user_id={self.user_id}, book_id={self.book_id})>"


class User(UUIDMixin, TimestampMixin, Base):
    """User account with credentials, profile and trade lists.

    Attributes:
        id: UUID primary key (from UUIDMixin)
        username: Unique login name
        password_hash: Bcrypt hash of the password
        password_version: Incremented on every password write
        creator_id: Identity that created the account; immutable
        first_name, last_name, city, state, zip_code: Optional profile
        books: Book references held by the user
        trades_out: Trades this user initiated, in append order
        trades_in: Trades this user received, in append order
        created_at: Timestamp of creation (from TimestampMixin)
        updated_at: Timestamp of last update (from TimestampMixin)
    """

    __tablename__ = "users"

    username: Mapped[str] = mapped_column(String(150), nullable=False)

    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    password_version: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )

    creator_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Profile
    first_name: Mapped[str | None] = mapped_column(String(100))
    last_name: Mapped[str | None] = mapped_column(String(100))
    city: Mapped[str | None] = mapped_column(String(100))
    state: Mapped[str | None] = mapped_column(String(100))
    zip_code: Mapped[str | None] = mapped_column(String(20))

    # Relationships
    books: Mapped[list[UserBook]] = relationship(
        "UserBook",
        cascade="all, delete-orphan",
        lazy="selectin",
        passive_deletes=True,
    )

    trades_out: Mapped[list[TradeRecord]] = relationship(
        "TradeRecord",
        primaryjoin="and_(User.id == TradeRecord.holder_id, TradeRecord.direction == 'out')",
        foreign_keys="TradeRecord.holder_id",
        order_by="TradeRecord.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
        lazy="selectin",
        overlaps="trades_in",
    )

    trades_in: Mapped[list[TradeRecord]] = relationship(
        "TradeRecord",
        primaryjoin="and_(User.id == TradeRecord.holder_id, TradeRecord.direction == 'in')",
        foreign_keys="TradeRecord.holder_id",
        order_by="TradeRecord.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
        lazy="selectin",
        overlaps="trades_out",
    )

    __table_args__ = (UniqueConstraint("username", name="uq_users_username"),)

    def __repr__(self) -> str:
        """Return string representation of the user."""
        return f"<User(id={self.id}, username='{self.username}')>"

    @validates("creator_id")
    def _guard_creator_id(self, key: str, value: Any) -> Any:
        current = self.__dict__.get(key)
        if current is not None and current != value:
            raise ValidationError(
                "'creator_id' cannot change once an account is created",
                error_code="IMMUTABLE_FIELD",
                details={"field": key},
            )
        return value

    @property
    def book_ids(self) -> set[uuid.UUID]:
        return {ref.book_id for ref in self.books}


__all__ = ["User", "UserBook"]

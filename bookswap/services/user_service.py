"""User service: account lifecycle, credentials and trade lists.

This module is the single place where a ``User`` is created, its password
set or checked, and its trade lists appended to. Passwords go through the
composed ``CredentialStore``; nothing here ever stores or logs plaintext.

Logging:
    - Account creation and profile updates
    - Password changes (hash recomputed or unchanged)
    - Authentication outcomes, with the failure reason kept out of the
      error the caller sees
    - Trade list appends
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from bookswap.core.exceptions import (
    AuthError,
    DuplicateUsernameError,
    MissingFieldError,
)
from bookswap.core.logging import get_logger
from bookswap.core.security import CredentialStore
from bookswap.models.enums import TradeDirection
from bookswap.models.trade import TradeRecord
from bookswap.models.user import User, UserBook

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from bookswap.schemas.trade import TradeCreate
    from bookswap.schemas.user import UserCreate, UserUpdate

PROFILE_FIELDS = ("first_name", "last_name", "city", "state", "zip_code")


class UserService:
    """Service layer for user accounts.

    Args:
        session: Async SQLAlchemy session, one per request.
        credentials: Password collaborator. Defaults to a ``CredentialStore``
            built from settings.

    The session must be created with ``expire_on_commit=False`` (see
    ``bookswap.db.session``); users handed back keep their loaded lists
    across commits.
    """

    def __init__(
        self,
        session: AsyncSession,
        credentials: CredentialStore | None = None,
    ) -> None:
        self.session = session
        self.credentials = credentials or CredentialStore()
        self.logger = get_logger(__name__)

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    async def get_user_by_id(self, user_id: uuid.UUID) -> User | None:
        """Get a user with books and both trade lists loaded."""
        result = await self.session.execute(
            select(User)
            .where(User.id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_user_by_username(self, username: str) -> User | None:
        result = await self.session.execute(
            select(User)
            .where(User.username == username.strip())
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    # -------------------------------------------------------------------------
    # Account lifecycle
    # -------------------------------------------------------------------------

    async def create_user(self, user_data: UserCreate) -> User:
        """Create an account, storing only the password hash.

        Args:
            user_data: Username, plaintext password, creator id and profile.

        Returns:
            The created user with empty book and trade lists.

        Raises:
            MissingFieldError: If username or creator_id is blank.
            PasswordPolicyError: If the password is too weak.
            DuplicateUsernameError: If the username is taken.
            InternalCryptoError: If hashing fails.
        """
        username = user_data.username.strip()
        creator_id = user_data.creator_id.strip()

        self.logger.info(
            "Attempting to create user",
            extra={"context": {"username": username, "action": "create_user"}},
        )

        if not username:
            raise MissingFieldError("username")
        if not creator_id:
            raise MissingFieldError("creator_id")
        self.credentials.validate(user_data.password)

        if await self.get_user_by_username(username) is not None:
            self._log_duplicate(username)
            raise DuplicateUsernameError(username)

        password_hash = await self.credentials.hash(user_data.password)

        user = User(
            username=username,
            password_hash=password_hash,
            creator_id=creator_id,
            books=[],
            trades_out=[],
            trades_in=[],
            **{field: getattr(user_data, field) for field in PROFILE_FIELDS},
        )
        self.session.add(user)
        try:
            await self.session.commit()
        except IntegrityError as e:
            # Lost a race with a concurrent create of the same username
            await self.session.rollback()
            self._log_duplicate(username)
            raise DuplicateUsernameError(username) from e

        self.logger.info(
            "User created successfully",
            extra={
                "context": {
                    "user_id": str(user.id),
                    "username": username,
                    "action": "create_user",
                    "status": "success",
                }
            },
        )
        return user

    async def update_user(self, user_id: uuid.UUID, user_data: UserUpdate) -> User | None:
        """Apply a partial update.

        Only fields present in ``user_data.model_fields_set`` are written. The
        password hash is untouched unless ``password`` was set explicitly. A
        new password is hashed before anything is written, and the profile
        fields and hash are committed together, so a failed hash leaves the
        account unchanged.

        Returns:
            The updated user, or None if not found.
        """
        user = await self.get_user_by_id(user_id)
        if user is None:
            self.logger.warning(
                "User not found for update",
                extra={
                    "context": {
                        "user_id": str(user_id),
                        "action": "update_user",
                        "status": "not_found",
                    }
                },
            )
            return None

        fields_set = user_data.model_fields_set
        new_hash: str | None = None
        if "password" in fields_set and user_data.password is not None:
            new_hash = await self._hash_if_changed(user, user_data.password)

        for field in PROFILE_FIELDS:
            if field in fields_set:
                setattr(user, field, getattr(user_data, field))
        if new_hash is not None:
            await self._write_password_hash(user, new_hash)
        await self.session.commit()

        if new_hash is not None:
            await self._reload_password(user)

        self.logger.info(
            "User updated successfully",
            extra={
                "context": {
                    "user_id": str(user_id),
                    "action": "update_user",
                    "fields": sorted(fields_set),
                    "password_changed": new_hash is not None,
                }
            },
        )
        return user

    async def change_password(self, user: User, new_password: str) -> User:
        """Validate, hash and store a new password.

        The stored hash is re-read first; if ``new_password`` already matches
        it nothing is re-hashed or written. Otherwise the hash and
        ``password_version`` are written in one UPDATE statement, so
        concurrent changes never interleave a read and a write of the hash.

        Raises:
            PasswordPolicyError: If the password is too weak.
            MalformedHashError: If the stored hash is corrupt.
            InternalCryptoError: If hashing fails.
        """
        new_hash = await self._hash_if_changed(user, new_password)
        if new_hash is None:
            return user

        await self._write_password_hash(user, new_hash)
        await self.session.commit()
        await self._reload_password(user)

        self.logger.info(
            "Password changed successfully",
            extra={
                "context": {
                    "user_id": str(user.id),
                    "action": "change_password",
                    "password_changed": True,
                    "password_version": user.password_version,
                }
            },
        )
        return user

    async def authenticate(self, username: str, password: str) -> User:
        """Check a username and password pair.

        Unknown usernames still cost one bcrypt verification, and both
        failure paths raise the same ``AuthError``.

        Raises:
            AuthError: If the user is unknown or the password is wrong.
            MalformedHashError: If the stored hash is corrupt.
        """
        username = username.strip()
        user = await self.get_user_by_username(username)

        if user is None:
            await self.credentials.verify_dummy(password)
            self._log_auth_failure(username, "user_not_found")
            raise AuthError()

        if not await self.credentials.verify(password, user.password_hash):
            self._log_auth_failure(username, "invalid_password")
            raise AuthError()

        self.logger.info(
            "Authentication successful",
            extra={
                "context": {
                    "user_id": str(user.id),
                    "action": "authenticate",
                    "status": "success",
                }
            },
        )
        return user

    # -------------------------------------------------------------------------
    # Trade lists
    # -------------------------------------------------------------------------

    async def append_trade_out(self, user: User, trade: TradeCreate) -> TradeRecord:
        """Append a copy of ``trade`` to the end of ``user.trades_out``."""
        return await self._append_trade(user, trade, TradeDirection.OUT)

    async def append_trade_in(self, user: User, trade: TradeCreate) -> TradeRecord:
        """Append a copy of ``trade`` to the end of ``user.trades_in``."""
        return await self._append_trade(user, trade, TradeDirection.IN)

    async def _append_trade(
        self,
        user: User,
        trade: TradeCreate,
        direction: TradeDirection,
    ) -> TradeRecord:
        record = TradeRecord.copy_of(trade, direction)
        trades = user.trades_out if direction is TradeDirection.OUT else user.trades_in
        trades.append(record)
        await self.session.commit()

        self.logger.info(
            "Trade appended",
            extra={
                "context": {
                    "user_id": str(user.id),
                    "trade_key": str(trade.trade_key),
                    "direction": direction.value,
                    "position": record.position,
                    "action": "append_trade",
                }
            },
        )
        return record

    # -------------------------------------------------------------------------
    # Books
    # -------------------------------------------------------------------------

    async def add_book(self, user: User, book_id: uuid.UUID) -> User:
        """Record that ``user`` holds ``book_id``; adding twice is a no-op."""
        if book_id not in user.book_ids:
            user.books.append(UserBook(book_id=book_id))
            await self.session.commit()
        return user

    async def remove_book(self, user: User, book_id: uuid.UUID) -> bool:
        """Drop a book reference. Returns False if the user did not hold it."""
        for ref in user.books:
            if ref.book_id == book_id:
                user.books.remove(ref)
                await self.session.commit()
                return True
        return False

    # -------------------------------------------------------------------------
    # Password helpers
    # -------------------------------------------------------------------------

    async def _hash_if_changed(self, user: User, new_password: str) -> str | None:
        """Return a hash of ``new_password``, or None if it is already stored."""
        self.credentials.validate(new_password)

        # Another session may have written the hash since ``user`` was loaded
        await self._reload_password(user)
        if await self.credentials.verify(new_password, user.password_hash):
            self.logger.info(
                "Password unchanged, hash kept",
                extra={
                    "context": {
                        "user_id": str(user.id),
                        "action": "change_password",
                        "password_changed": False,
                    }
                },
            )
            return None

        return await self.credentials.hash(new_password)

    async def _write_password_hash(self, user: User, new_hash: str) -> None:
        await self.session.execute(
            update(User)
            .where(User.id == user.id)
            .values(
                password_hash=new_hash,
                password_version=User.password_version + 1,
            )
            .execution_options(synchronize_session=False)
        )

    async def _reload_password(self, user: User) -> None:
        await self.session.refresh(user, attribute_names=["password_hash", "password_version"])

    # -------------------------------------------------------------------------
    # Logging helpers
    # -------------------------------------------------------------------------

    def _log_duplicate(self, username: str) -> None:
        self.logger.warning(
            "User creation failed: username taken",
            extra={
                "context": {
                    "username": username,
                    "action": "create_user",
                    "status": "failed",
                    "reason": "duplicate_username",
                }
            },
        )

    def _log_auth_failure(self, username: str, reason: str) -> None:
        self.logger.warning(
            "Authentication failed",
            extra={
                "context": {
                    "username": username,
                    "action": "authenticate",
                    "status": "failed",
                    "reason": reason,
                }
            },
        )


__all__ = ["PROFILE_FIELDS", "UserService"]

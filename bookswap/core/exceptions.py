"""Domain exceptions for accounts, credentials and trades.

Every error carries a human-readable ``message``, a machine-readable
``error_code`` and a ``details`` dict, so callers can surface or map them
without parsing strings.

Recoverable by the caller: ``ValidationError``, ``AuthError``,
``StateTransitionError``. Hard failures: ``InternalCryptoError``.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

# =============================================================================
# Base
# =============================================================================


class AppError(Exception):
    """Base exception for BookSwap errors.

    Attributes:
        message: Human-readable error message.
        error_code: Machine-readable error code.
        details: Additional error context.
    """

    def __init__(
        self,
        message: str,
        error_code: str = "APP_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


# =============================================================================
# Validation
# =============================================================================


class ValidationError(AppError, ValueError):
    """Input rejected before anything was written."""

    def __init__(
        self,
        message: str,
        error_code: str = "VALIDATION_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, error_code, details)


class PasswordPolicyError(ValidationError):
    """Password does not satisfy the strength policy.

    Attributes:
        unmet: Every requirement the password failed, in policy order.
    """

    def __init__(self, unmet: list[str]) -> None:
        super().__init__(
            f"Password must contain {', '.join(unmet)}",
            error_code="PASSWORD_POLICY",
            details={"unmet": list(unmet)},
        )
        self.unmet = list(unmet)


class MissingFieldError(ValidationError):
    """A required field is absent or blank."""

    def __init__(self, field: str) -> None:
        super().__init__(
            f"'{field}' is required",
            error_code="MISSING_FIELD",
            details={"field": field},
        )
        self.field = field


class DuplicateUsernameError(ValidationError):
    """Another account already uses this username."""

    def __init__(self, username: str) -> None:
        super().__init__(
            f"Username '{username}' is already taken",
            error_code="DUPLICATE_USERNAME",
            details={"username": username},
        )
        self.username = username


# =============================================================================
# Authentication
# =============================================================================


class AuthError(AppError):
    """Authentication failed.

    Unknown usernames and wrong passwords produce the same message and
    error code; the reason is only ever written to the logs.
    """

    MESSAGE = "Invalid username or password"

    def __init__(self) -> None:
        super().__init__(self.MESSAGE, error_code="INVALID_CREDENTIALS")


# =============================================================================
# Trade state
# =============================================================================


class StateTransitionError(AppError):
    """Trade status change rejected.

    Attributes:
        current: Status the record was in.
        target: Status that was requested.
    """

    def __init__(
        self,
        current: str,
        target: str,
        reason: str | None = None,
        error_code: str = "INVALID_TRANSITION",
    ) -> None:
        message = f"Cannot move trade from '{current}' to '{target}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message,
            error_code=error_code,
            details={"current": current, "target": target},
        )
        self.current = current
        self.target = target


# =============================================================================
# Crypto
# =============================================================================


class InternalCryptoError(AppError):
    """Hashing or verification primitive failed; never retried locally."""

    def __init__(
        self,
        message: str = "Password hashing failed",
        error_code: str = "CRYPTO_FAILURE",
    ) -> None:
        super().__init__(message, error_code=error_code)


class MalformedHashError(InternalCryptoError):
    """Stored password hash is not a valid bcrypt hash."""

    def __init__(self) -> None:
        super().__init__("Stored password hash is malformed", error_code="MALFORMED_HASH")


# =============================================================================
# Lookups and cross-account writes
# =============================================================================


class UserNotFoundError(AppError):
    """No user with the given id."""

    def __init__(self, user_id: UUID | str) -> None:
        super().__init__(
            f"User {user_id} not found",
            error_code="USER_NOT_FOUND",
            details={"user_id": str(user_id)},
        )
        self.user_id = user_id


class TradeNotFoundError(AppError):
    """No trade record copy carries the given trade key."""

    def __init__(self, trade_key: UUID | str) -> None:
        super().__init__(
            f"Trade {trade_key} not found",
            error_code="TRADE_NOT_FOUND",
            details={"trade_key": str(trade_key)},
        )
        self.trade_key = trade_key


class PartialTradeWriteError(AppError):
    """Only some copies of a trade were written.

    The written copies are committed; call ``TradeService.reconcile`` with
    ``trade_key`` to bring the other side in line.

    Attributes:
        trade_key: Identity shared by both copies.
        written: Directions ("out"/"in") that were committed.
    """

    def __init__(self, trade_key: UUID, written: list[str]) -> None:
        super().__init__(
            f"Trade {trade_key} only partially written ({', '.join(written) or 'none'})",
            error_code="PARTIAL_TRADE_WRITE",
            details={"trade_key": str(trade_key), "written": list(written)},
        )
        self.trade_key = trade_key
        self.written = list(written)


__all__ = [
    "AppError",
    "AuthError",
    "DuplicateUsernameError",
    "InternalCryptoError",
    "MalformedHashError",
    "MissingFieldError",
    "PartialTradeWriteError",
    "PasswordPolicyError",
    "StateTransitionError",
    "TradeNotFoundError",
    "UserNotFoundError",
    "ValidationError",
]

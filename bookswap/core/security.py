"""Password policy, hashing and verification.

This module is the credential store of BookSwap. Plaintext passwords enter
here and only bcrypt hashes leave.

Features:
- Password strength policy (length, upper, lower, digit, special character)
- Bcrypt hashing with a fresh random salt per call (cost factor 10 by default)
- Timing-safe verification via ``bcrypt.checkpw``
- ``CredentialStore``: async facade that runs the bcrypt work in a worker
  thread so slow hashing never blocks the event loop

Failure semantics:
    A wrong password is ``False``, not an error. A malformed stored hash
    raises ``MalformedHashError``. Any other failure of the primitive raises
    ``InternalCryptoError``. There is no plaintext fallback.

Logging:
    Operations are logged with lengths, cost factors and timings only.
"""

from __future__ import annotations

import asyncio
import re
import string
from functools import lru_cache
from time import perf_counter

import bcrypt

from bookswap.core.config import settings
from bookswap.core.exceptions import (
    InternalCryptoError,
    MalformedHashError,
    PasswordPolicyError,
)
from bookswap.core.logging import get_logger

logger = get_logger(__name__)

# bcrypt ignores everything past 72 bytes of input
BCRYPT_MAX_BYTES = 72

# Modular crypt format: $2b$<cost>$<22 chars salt><31 chars digest>
BCRYPT_HASH_PATTERN = re.compile(r"^\$2[abxy]?\$(\d{2})\$[./A-Za-z0-9]{53}$")

# Compared against when the account does not exist
DUMMY_PASSWORD = "Dummy-Password-1!"


def _prepare_password(password: str) -> bytes:
    """Encode ``password`` and truncate it to bcrypt's 72-byte limit."""
    password_bytes = password.encode("utf-8")
    if len(password_bytes) > BCRYPT_MAX_BYTES:
        password_bytes = password_bytes[:BCRYPT_MAX_BYTES]
    return password_bytes


def hash_cost(hashed_password: str) -> int:
    """Return the cost factor embedded in a bcrypt hash.

    Raises:
        MalformedHashError: If ``hashed_password`` is not a bcrypt hash.
    """
    match = BCRYPT_HASH_PATTERN.match(hashed_password or "")
    if match is None:
        raise MalformedHashError()
    return int(match.group(1))


def validate_password(
    password: str,
    min_length: int | None = None,
    raise_error: bool = False,
) -> bool:
    """Check ``password`` against the strength policy.

    The policy requires:
    - at least ``PASSWORD_MIN_LENGTH`` characters (8 by default)
    - at least one uppercase letter
    - at least one lowercase letter
    - at least one digit
    - at least one character from ``PASSWORD_SPECIAL_CHARACTERS``
      (``#?!@$%^&*-_`` by default)
    - nothing but ASCII letters, digits and those special characters

    Args:
        password: Candidate plaintext password.
        min_length: Override for the minimum length.
        raise_error: Raise instead of returning ``False``.

    Returns:
        True if every requirement is met, False otherwise.

    Raises:
        PasswordPolicyError: If ``raise_error`` is set and the policy fails.
            ``unmet`` lists every requirement the password missed.

    Examples:
        >>> validate_password("Abc123!@")
        True
        >>> validate_password("abc12345")
        False
    """
    if min_length is None:
        min_length = settings.PASSWORD_MIN_LENGTH
    specials = settings.PASSWORD_SPECIAL_CHARACTERS
    allowed = set(string.ascii_letters + string.digits + specials)

    unmet: list[str] = []
    if len(password) < min_length:
        unmet.append(f"at least {min_length} characters")
    if not any(c in string.ascii_uppercase for c in password):
        unmet.append("at least one uppercase letter")
    if not any(c in string.ascii_lowercase for c in password):
        unmet.append("at least one lowercase letter")
    if not any(c in string.digits for c in password):
        unmet.append("at least one number")
    if not any(c in specials for c in password):
        unmet.append(f"at least one special character ({specials})")
    if any(c not in allowed for c in password):
        unmet.append(f"only letters, numbers and special characters ({specials})")

    if unmet:
        logger.warning(
            "Password policy check failed",
            extra={
                "context": {
                    "action": "validate_password",
                    "status": "failed",
                    "password_length": len(password),
                    "missing_requirements": len(unmet),
                }
            },
        )
        if raise_error:
            raise PasswordPolicyError(unmet)
        return False

    return True


def hash_password(password: str, rounds: int | None = None) -> str:
    """Hash a password with bcrypt and a fresh random salt.

    The same password hashes differently on every call. Passwords longer
    than 72 UTF-8 bytes are truncated to 72 bytes first.

    Args:
        password: Plaintext password.
        rounds: bcrypt cost factor. Defaults to ``settings.BCRYPT_ROUNDS``.

    Returns:
        60-character bcrypt hash, e.g. ``$2b$10$...``.

    Raises:
        InternalCryptoError: If salt generation or hashing fails.

    Examples:
        >>> hash_password("Abc123!@").startswith("$2b$10$")
        True
    """
    if rounds is None:
        rounds = settings.BCRYPT_ROUNDS

    start = perf_counter()
    try:
        salt = bcrypt.gensalt(rounds=rounds)
        hashed: str = bcrypt.hashpw(_prepare_password(password), salt).decode("ascii")
    except Exception as e:
        logger.error(
            "Password hashing failed",
            extra={
                "context": {
                    "action": "hash_password",
                    "error_type": type(e).__name__,
                    "status": "failed",
                }
            },
        )
        raise InternalCryptoError() from e

    logger.debug(
        "Password hashed",
        extra={
            "context": {
                "action": "hash_password",
                "rounds": rounds,
                "truncated": len(password.encode("utf-8")) > BCRYPT_MAX_BYTES,
                "elapsed_ms": round((perf_counter() - start) * 1000, 2),
            }
        },
    )
    return hashed


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plaintext candidate against a stored bcrypt hash.

    Uses ``bcrypt.checkpw``, whose comparison time does not depend on how
    many characters matched.

    Args:
        plain_password: Candidate plaintext password.
        hashed_password: Stored bcrypt hash.

    Returns:
        True on match, False on mismatch.

    Raises:
        MalformedHashError: If ``hashed_password`` is empty or not bcrypt.
        InternalCryptoError: If the primitive itself fails.
    """
    hash_cost(hashed_password)

    start = perf_counter()
    try:
        result: bool = bcrypt.checkpw(
            _prepare_password(plain_password), hashed_password.encode("ascii")
        )
    except ValueError as e:
        raise MalformedHashError() from e
    except Exception as e:
        logger.error(
            "Password verification failed",
            extra={
                "context": {
                    "action": "verify_password",
                    "error_type": type(e).__name__,
                    "status": "failed",
                }
            },
        )
        raise InternalCryptoError("Password verification failed") from e

    logger.debug(
        "Password verified",
        extra={
            "context": {
                "action": "verify_password",
                "result": result,
                "elapsed_ms": round((perf_counter() - start) * 1000, 2),
            }
        },
    )
    return result


@lru_cache(maxsize=None)
def _dummy_hash(rounds: int) -> str:
    """One dummy hash per cost factor, shared by every store in the process."""
    return hash_password(DUMMY_PASSWORD, rounds)


class CredentialStore:
    """Composable password collaborator for the user service.

    Hashing and verification are deliberately slow, so the async methods
    run them in a worker thread. Cancelling the awaiting task abandons the
    result without holding any lock.

    Args:
        rounds: bcrypt cost factor. Defaults to ``settings.BCRYPT_ROUNDS``.
        min_length: Minimum password length. Defaults to
            ``settings.PASSWORD_MIN_LENGTH``.
    """

    def __init__(
        self,
        rounds: int | None = None,
        min_length: int | None = None,
    ) -> None:
        self.rounds = rounds if rounds is not None else settings.BCRYPT_ROUNDS
        self.min_length = (
            min_length if min_length is not None else settings.PASSWORD_MIN_LENGTH
        )
        # Paid here so unknown-user logins never hash on the request path
        self._dummy_hash = _dummy_hash(self.rounds)

    def validate(self, password: str) -> bool:
        """Raise ``PasswordPolicyError`` unless ``password`` meets the policy."""
        return validate_password(password, min_length=self.min_length, raise_error=True)

    async def hash(self, password: str) -> str:
        return await asyncio.to_thread(hash_password, password, self.rounds)

    async def verify(self, candidate: str, hashed_password: str) -> bool:
        return await asyncio.to_thread(verify_password, candidate, hashed_password)

    async def verify_dummy(self, candidate: str) -> bool:
        """Burn one verification so unknown accounts cost as much as known ones."""
        await self.verify(candidate, self._dummy_hash)
        return False

    def needs_rehash(self, hashed_password: str) -> bool:
        """True when ``hashed_password`` was made with a different cost factor."""
        return hash_cost(hashed_password) != self.rounds


__all__ = [
    "BCRYPT_HASH_PATTERN",
    "CredentialStore",
    "hash_cost",
    "hash_password",
    "validate_password",
    "verify_password",
]

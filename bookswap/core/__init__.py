"""Core configuration and utilities.

This package contains:
- Configuration management (config.py)
- Structured logging (logging.py)
- Domain exceptions (exceptions.py)
- Password policy, hashing and verification (security.py)
"""

from bookswap.core.config import settings
from bookswap.core.security import (
    CredentialStore,
    hash_password,
    validate_password,
    verify_password,
)

__all__ = [
    "CredentialStore",
    "hash_password",
    "settings",
    "validate_password",
    "verify_password",
]

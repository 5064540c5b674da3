"""SQLAlchemy models.

Importing this package registers every table on ``Base.metadata``.
"""

from bookswap.models.base import GUID, Base, TimestampMixin, UUIDMixin
from bookswap.models.enums import TradeDirection, TradeStatus
from bookswap.models.trade import TradeRecord
from bookswap.models.user import User, UserBook

__all__ = [
    "GUID",
    "Base",
    "TimestampMixin",
    "TradeDirection",
    "TradeRecord",
    "TradeStatus",
    "UUIDMixin",
    "User",
    "UserBook",
]

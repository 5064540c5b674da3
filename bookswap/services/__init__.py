"""Business logic services.

``UserService`` owns accounts, credentials and trade-list appends.
``TradeService`` drives a trade across both accounts.
"""

from bookswap.services.trade_service import TradePair, TradeService
from bookswap.services.user_service import UserService

__all__ = [
    "TradePair",
    "TradeService",
    "UserService",
]

"""Enum types for trade records."""

from enum import Enum


class TradeStatus(str, Enum):
    """Lifecycle of one trade.

    ``requested`` -> ``accepted`` -> ``completed``, or
    ``requested`` -> ``declined``. ``completed`` and ``declined`` are terminal.
    """

    REQUESTED = "requested"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    COMPLETED = "completed"

    def __str__(self) -> str:
        """Return the string value for serialization."""
        return self.value

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({TradeStatus.COMPLETED, TradeStatus.DECLINED})

# Allowed next statuses for each status
TRADE_TRANSITIONS: dict[TradeStatus, frozenset[TradeStatus]] = {
    TradeStatus.REQUESTED: frozenset({TradeStatus.ACCEPTED, TradeStatus.DECLINED}),
    TradeStatus.ACCEPTED: frozenset({TradeStatus.COMPLETED}),
    TradeStatus.DECLINED: frozenset(),
    TradeStatus.COMPLETED: frozenset(),
}


class TradeDirection(str, Enum):
    """Which of a user's two trade lists holds a record copy."""

    OUT = "out"
    IN = "in"

    def __str__(self) -> str:
        """Return the string value for serialization."""
        return self.value


__all__ = [
    "TERMINAL_STATUSES",
    "TRADE_TRANSITIONS",
    "TradeDirection",
    "TradeStatus",
]

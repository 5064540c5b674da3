"""BookSwap accounts and trades.

User accounts with bcrypt-secured credentials, and peer-to-peer book
trades recorded on both participants' trade lists.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]

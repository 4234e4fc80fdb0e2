"""
Copy trading module - follower mirroring, wallet and P&L refresh.
"""

from tradecast.copytrading.exchange import (
    ExchangeClient,
    ExchangePosition,
    OrderRequest,
    OrderTransaction,
    WalletBalance,
)
from tradecast.copytrading.service import CopyTradingService, calculate_exit_price

__all__ = [
    "CopyTradingService",
    "ExchangeClient",
    "ExchangePosition",
    "OrderRequest",
    "OrderTransaction",
    "WalletBalance",
    "calculate_exit_price",
]

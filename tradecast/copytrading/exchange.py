"""
Exchange Client Contract
========================

Capability the copy-trading and ingestion services need from a futures
exchange. Authentication, signing and HTTP transport live in the
concrete client, which is deployment specific.
"""

from dataclasses import dataclass
from typing import Optional, Protocol

from tradecast.domain.models import FollowerAccount, TradeSide


@dataclass(frozen=True)
class ExchangePosition:
    """An open futures position as reported by the exchange."""
    id: str
    pair: str
    active_pos: float  # signed size: positive long, negative short
    avg_price: float
    leverage: float = 1.0
    take_profit_trigger: Optional[float] = None
    stop_loss_trigger: Optional[float] = None
    fee: Optional[float] = None
    updated_at: Optional[int] = None  # epoch milliseconds


@dataclass(frozen=True)
class WalletBalance:
    currency: str
    balance: float
    locked_balance: float = 0.0


@dataclass(frozen=True)
class OrderRequest:
    """A limit order mirroring a source trade."""
    pair: str
    side: TradeSide
    quantity: float
    leverage: float
    price: float
    stop_loss_price: Optional[float] = None
    take_profit_price: Optional[float] = None


@dataclass(frozen=True)
class OrderTransaction:
    """A realized cash movement (P&L, fee, funding) attributed to an order."""
    order_id: str
    amount: float


class ExchangeClient(Protocol):
    """
    Futures exchange operations.

    Implementations raise ``ExchangeError`` when the exchange rejects a call.
    """

    async def list_open_positions(self) -> list[ExchangePosition]: ...

    async def get_wallet_balances(self, follower: FollowerAccount) -> list[WalletBalance]: ...

    async def place_futures_order(self, follower: FollowerAccount, order: OrderRequest) -> str:
        """Place the order on the follower's account and return the order id."""
        ...

    async def list_order_transactions(
        self,
        follower: FollowerAccount,
        order_id: str,
    ) -> list[OrderTransaction]: ...

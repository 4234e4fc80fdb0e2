"""
Copy Trading Service
====================

Mirrors registered trades into follower accounts and keeps follower
wallet balances and mirrored P&L up to date.

Each follower and each position is processed in isolation: one failure
is logged and recorded without affecting the others.
"""

from dataclasses import replace
from datetime import datetime, time, timezone
from typing import Callable, Optional

from tradecast.copytrading.exchange import ExchangeClient, OrderRequest
from tradecast.core.logging_config import Loggers, TradeContextLogger
from tradecast.database.store import RecordStore
from tradecast.domain.models import (
    FollowerAccount,
    MirroredPosition,
    MirrorStatus,
    Trade,
    TradeSide,
    utcnow,
)
from tradecast.risk.calculator import PositionSizer

logger = Loggers.copy_trading()


def calculate_exit_price(entry_price: float, quantity: float, pnl: float, side: TradeSide) -> float:
    """Exit price implied by realized P&L on a position of ``quantity``."""
    if quantity <= 0:
        return entry_price
    move = pnl / quantity
    return entry_price + move if side == TradeSide.BUY else entry_price - move


class CopyTradingService:
    """
    Follower mirroring and account refresh.

    Usage:
        service = CopyTradingService(store, exchange, PositionSizer(settings))
        positions = await service.mirror_trade(trade)
    """

    def __init__(
        self,
        store: RecordStore,
        exchange: ExchangeClient,
        sizer: PositionSizer,
        quote_currency: str = "USDT",
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.exchange = exchange
        self.sizer = sizer
        self.quote_currency = quote_currency
        self.clock = clock

    # =========================================================================
    # Mirroring
    # =========================================================================

    async def mirror_trade(self, trade: Trade) -> list[MirroredPosition]:
        """
        Mirror a trade into every eligible follower account.

        Returns:
            Mirrored positions created (executed or failed)
        """
        followers = await self.store.list_followers(active_only=True)
        positions = []

        with TradeContextLogger(trade_id=trade.trade_id, pair=trade.pair):
            logger.info("Mirroring trade", followers=len(followers))

            for follower in followers:
                try:
                    position = await self.mirror_for_follower(follower, trade)
                except Exception:
                    logger.exception("Mirroring failed", follower_id=follower.id)
                    continue
                if position is not None:
                    positions.append(position)

        return positions

    async def _within_daily_limit(self, follower: FollowerAccount) -> bool:
        if follower.max_trades_per_day <= 0:
            return True
        start_of_day = datetime.combine(self.clock().date(), time.min, tzinfo=timezone.utc)
        count = await self.store.count_mirrored_positions_since(follower.id, start_of_day)
        return count < follower.max_trades_per_day

    async def mirror_for_follower(
        self,
        follower: FollowerAccount,
        trade: Trade,
    ) -> Optional[MirroredPosition]:
        """
        Size, record and place one follower's copy of ``trade``.

        Returns:
            The resulting position, or None if the follower was skipped
        """
        if not follower.accepts(trade):
            logger.debug("Follower filters exclude trade", follower_id=follower.id)
            return None

        if not await self._within_daily_limit(follower):
            logger.info("Follower daily trade limit reached", follower_id=follower.id)
            return None

        entry = float(trade.price)
        stop = float(trade.stop_loss) if trade.stop_loss is not None else 0.0
        sizing = self.sizer.size(
            trade.pair,
            entry_price=entry,
            stop_price=stop,
            fund_amount=follower.fund_amount,
            risk_percent=follower.risk_percent,
        )
        if not sizing.is_tradeable:
            logger.warning(
                "Mirrored order not tradeable",
                follower_id=follower.id,
                reason=sizing.validation.reason,
                quantity=sizing.quantity,
            )
            return None

        position = await self.store.create_mirrored_position(
            MirroredPosition(
                trade_id=trade.id,
                follower_id=follower.id,
                pair=trade.pair,
                side=trade.side,
                entry_price=entry,
                quantity=sizing.quantity,
                leverage=sizing.leverage,
                created_at=self.clock(),
            )
        )

        order = OrderRequest(
            pair=trade.pair,
            side=trade.side,
            quantity=sizing.quantity,
            leverage=sizing.leverage,
            price=entry,
            stop_loss_price=float(trade.stop_loss) if trade.stop_loss is not None else None,
            take_profit_price=float(trade.target_1) if trade.target_1 is not None else None,
        )

        try:
            order_id = await self.exchange.place_futures_order(follower, order)
        except Exception as e:
            logger.error(
                "Mirrored order failed",
                follower_id=follower.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return await self.store.update_mirrored_position(
                replace(position, status=MirrorStatus.FAILED, error=str(e))
            )

        logger.info(
            "Mirrored order placed",
            follower_id=follower.id,
            order_id=order_id,
            quantity=sizing.quantity,
            leverage=sizing.leverage,
        )
        return await self.store.update_mirrored_position(
            replace(position, status=MirrorStatus.EXECUTED, order_id=order_id)
        )

    # =========================================================================
    # Wallet balances
    # =========================================================================

    async def refresh_wallet_balances(self) -> int:
        """
        Refresh the quote-currency balance of every active follower.

        Returns:
            Number of followers updated
        """
        updated = 0
        for follower in await self.store.list_followers(active_only=True):
            try:
                if await self.refresh_follower_balance(follower) is not None:
                    updated += 1
            except Exception:
                logger.exception("Wallet refresh failed", follower_id=follower.id)
        return updated

    async def refresh_follower_balance(self, follower: FollowerAccount) -> Optional[FollowerAccount]:
        balances = await self.exchange.get_wallet_balances(follower)
        quote = next(
            (b for b in balances if b.currency.upper() == self.quote_currency.upper()),
            None,
        )
        if quote is None:
            logger.warning(
                "No quote currency wallet",
                follower_id=follower.id,
                currency=self.quote_currency,
            )
            return None

        return await self.store.update_follower(
            replace(follower, wallet_balance=quote.balance, balance_updated_at=self.clock())
        )

    # =========================================================================
    # P&L
    # =========================================================================

    async def refresh_pnl(self) -> int:
        """
        Fill in realized P&L and exit price for executed positions missing them.

        Returns:
            Number of positions updated
        """
        positions = [
            p for p in await self.store.list_mirrored_positions()
            if p.status == MirrorStatus.EXECUTED and p.awaiting_pnl
        ]
        if not positions:
            return 0

        followers = {f.id: f for f in await self.store.list_followers(active_only=False)}
        updated = 0

        for position in positions:
            follower = followers.get(position.follower_id)
            if follower is None:
                logger.warning("Follower missing for position", position_id=position.id)
                continue
            try:
                if await self.refresh_position_pnl(follower, position) is not None:
                    updated += 1
            except Exception:
                logger.exception("P&L refresh failed", position_id=position.id)

        logger.info("P&L refresh completed", candidates=len(positions), updated=updated)
        return updated

    async def refresh_position_pnl(
        self,
        follower: FollowerAccount,
        position: MirroredPosition,
    ) -> Optional[MirroredPosition]:
        transactions = await self.exchange.list_order_transactions(follower, position.order_id)
        if not transactions:
            logger.debug("No transactions yet", position_id=position.id, order_id=position.order_id)
            return None

        pnl = sum(t.amount for t in transactions)
        exit_price = calculate_exit_price(position.entry_price, position.quantity, pnl, position.side)

        return await self.store.update_mirrored_position(
            replace(position, pnl=pnl, exit_price=exit_price)
        )

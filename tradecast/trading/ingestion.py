"""
Trade Ingestion
===============

Registers new trades and pulls open positions from the exchange.

Registration persists the trade, announces it (``trade_registered``
automations) and hands it to copy trading.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from tradecast.automation.matcher import AutomationMatcher
from tradecast.copytrading.exchange import ExchangeClient, ExchangePosition
from tradecast.copytrading.service import CopyTradingService
from tradecast.core.exceptions import ValidationError
from tradecast.core.logging_config import LogMessages, Loggers, TradeContextLogger
from tradecast.database.store import RecordStore
from tradecast.domain.models import Trade, TradeSide, TriggerType

logger = Loggers.trades()

FUTURES_PAIR_PREFIX = "B-"


def _decimal(value) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


def position_to_trade(position: ExchangePosition, trade_id: Optional[str] = None) -> Optional[Trade]:
    """
    Build a trade from an exchange position.

    Target 2 and 3 extend target 1 by the entry-to-target-1 distance.

    Returns:
        The trade, or None when the side cannot be determined (flat position)
    """
    if position.active_pos > 0:
        side = TradeSide.BUY
    elif position.active_pos < 0:
        side = TradeSide.SELL
    else:
        return None

    pair = position.pair
    if pair.startswith(FUTURES_PAIR_PREFIX):
        pair = pair[len(FUTURES_PAIR_PREFIX):]

    price = _decimal(position.avg_price)
    size = abs(_decimal(position.active_pos))

    target_1 = _decimal(position.take_profit_trigger)
    target_2 = target_3 = None
    if target_1 is not None and price:
        distance = target_1 - price
        target_2 = target_1 + distance
        target_3 = target_1 + 2 * distance

    return Trade(
        trade_id=trade_id or position.id,
        pair=pair,
        side=side,
        price=price,
        leverage=_decimal(position.leverage or 1),
        total=price * size,
        fee=_decimal(position.fee),
        stop_loss=_decimal(position.stop_loss_trigger),
        target_1=target_1,
        target_2=target_2,
        target_3=target_3,
    )


def position_trade_id(position: ExchangePosition) -> str:
    """A position id is reused across fills, so the update time makes it unique."""
    return f"{position.id}_{position.updated_at}"


@dataclass
class SyncResult:
    """Outcome of one position sync"""
    registered: list[Trade] = field(default_factory=list)
    existing: int = 0
    skipped: int = 0

    @property
    def new_trades(self) -> int:
        return len(self.registered)


class TradeIngestionService:
    """
    Register trades and sync exchange positions.

    Usage:
        ingestion = TradeIngestionService(store, matcher, exchange, copy_trading)
        result = await ingestion.sync_positions()
    """

    def __init__(
        self,
        store: RecordStore,
        matcher: AutomationMatcher,
        exchange: Optional[ExchangeClient] = None,
        copy_trading: Optional[CopyTradingService] = None,
    ):
        self.store = store
        self.matcher = matcher
        self.exchange = exchange
        self.copy_trading = copy_trading

    async def register(self, trade: Trade) -> Trade:
        """
        Persist a new trade, announce it and mirror it to followers.

        Raises:
            ValidationError: A trade with the same external id exists
        """
        if await self.store.get_trade_by_external_id(trade.trade_id) is not None:
            raise ValidationError("Trade already registered", {"trade_id": trade.trade_id})

        saved = await self.store.create_trade(trade)

        with TradeContextLogger(trade_id=saved.trade_id, pair=saved.pair):
            logger.info(LogMessages.TRADE_REGISTERED, side=saved.side.value, price=str(saved.price))

            await self.matcher.dispatch(TriggerType.TRADE_REGISTERED, saved)

            if self.copy_trading is not None:
                try:
                    await self.copy_trading.mirror_trade(saved)
                except Exception:
                    logger.exception("Copy trading failed for registered trade")

        return saved

    async def sync_positions(self) -> SyncResult:
        """Register every open exchange position not seen before."""
        if self.exchange is None:
            raise ValidationError("No exchange client configured for position sync")

        positions = await self.exchange.list_open_positions()
        result = SyncResult()

        for position in positions:
            trade_id = position_trade_id(position)

            if await self.store.get_trade_by_external_id(trade_id) is not None:
                result.existing += 1
                continue

            trade = position_to_trade(position, trade_id=trade_id)
            if trade is None:
                logger.info("Skipping position with unknown side", pair=position.pair, position_id=position.id)
                result.skipped += 1
                continue

            result.registered.append(await self.register(trade))

        logger.info(
            "Position sync completed",
            new=result.new_trades,
            existing=result.existing,
            skipped=result.skipped,
        )
        return result

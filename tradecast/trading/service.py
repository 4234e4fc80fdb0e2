"""
Trade Lifecycle Service
=======================

The trade-update boundary: loads a trade, asks the state machine for a
transition, and executes it (dispatch and commit in the required order).
"""

from decimal import Decimal
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from tradecast.automation.matcher import AutomationMatcher
from tradecast.core.exceptions import TradeNotFoundError, ValidationError
from tradecast.core.logging_config import LogMessages, Loggers, TradeContextLogger
from tradecast.database.store import RecordStore
from tradecast.domain.models import CompletionReason, TargetType, Trade
from tradecast.trading.state_machine import TradeStateMachine, Transition

logger = Loggers.trades()


class CompleteTradeRequest(BaseModel):
    """Validated input for completing a trade by hand."""

    model_config = ConfigDict(frozen=True)

    reason: CompletionReason
    notes: Optional[str] = Field(default=None, max_length=2000)
    safebook_price: Optional[Decimal] = None

    @model_validator(mode="after")
    def check_safebook_price(self) -> "CompleteTradeRequest":
        if self.reason == CompletionReason.SAFE_BOOK:
            if self.safebook_price is None or self.safebook_price <= 0:
                raise ValueError("A positive safebook price is required for safe_book completion")
        return self

    @classmethod
    def parse(cls, **data) -> "CompleteTradeRequest":
        """Build a request, surfacing pydantic errors as ValidationError."""
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(
                "Invalid completion request",
                {"errors": [f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()]},
            ) from e


class TradeLifecycleService:
    """
    Apply lifecycle events to stored trades.

    Usage:
        service = TradeLifecycleService(store, matcher)
        trade = await service.apply_target_hit(trade.id, TargetType.TARGET_1, True)
    """

    def __init__(self, store: RecordStore, matcher: AutomationMatcher):
        self.store = store
        self.matcher = matcher
        self.machine = TradeStateMachine()

    async def _load(self, trade_id: str) -> Trade:
        trade = await self.store.get_trade(trade_id)
        if trade is None:
            raise TradeNotFoundError(trade_id)
        return trade

    async def _execute(self, transition: Transition) -> Trade:
        """Commit a transition, dispatching before or after as it requires."""
        trigger = transition.trigger

        if trigger is not None and transition.dispatch_before_commit:
            await self.matcher.dispatch(trigger, transition.dispatch_trade)

        saved = await self.store.update_trade(transition.after)

        if trigger is not None and not transition.dispatch_before_commit:
            await self.matcher.dispatch(trigger, saved)

        return saved

    async def apply_target_hit(
        self,
        trade_id: str,
        target: Union[TargetType, str],
        hit: bool,
    ) -> Trade:
        """
        Set or clear one target flag.

        Args:
            trade_id: Internal trade id
            target: Target to update
            hit: True to mark as hit, False to clear

        Returns:
            The committed trade snapshot

        Raises:
            TradeNotFoundError: Unknown trade
            InvalidStateError: Trade is not active
            ValidationError: Unknown target name
        """
        try:
            target = TargetType(target)
        except ValueError as e:
            raise ValidationError(f"Unknown target type: {target}", {"target": str(target)}) from e

        trade = await self._load(trade_id)

        with TradeContextLogger(trade_id=trade.trade_id, pair=trade.pair):
            transition = self.machine.hit(trade, target, hit)
            saved = await self._execute(transition)

            logger.info(
                LogMessages.TARGET_FLAG_SET if hit else LogMessages.TARGET_FLAG_CLEARED,
                target=target.value,
            )
            if transition.completes_trade:
                logger.info(LogMessages.TRADE_COMPLETED, reason=saved.completion_reason.value)

        return saved

    async def complete_manually(
        self,
        trade_id: str,
        reason: Union[CompletionReason, str],
        notes: Optional[str] = None,
        safebook_price: Optional[Decimal] = None,
    ) -> Trade:
        """
        Complete an active trade with an explicit reason.

        Raises:
            ValidationError: Bad reason, or safe_book without a safebook price
            TradeNotFoundError: Unknown trade
            InvalidStateError: Trade is not active
        """
        request = CompleteTradeRequest.parse(
            reason=reason, notes=notes, safebook_price=safebook_price
        )
        trade = await self._load(trade_id)

        with TradeContextLogger(trade_id=trade.trade_id, pair=trade.pair):
            transition = self.machine.manual_complete(
                trade,
                request.reason,
                notes=request.notes,
                safebook_price=request.safebook_price,
            )
            saved = await self._execute(transition)
            logger.info(LogMessages.TRADE_COMPLETED, reason=request.reason.value, manual=True)

        return saved

    async def reopen(self, trade_id: str) -> Trade:
        """
        Return a completed trade to active. Nothing is dispatched.

        Raises:
            TradeNotFoundError: Unknown trade
            InvalidStateError: Trade is already active
        """
        trade = await self._load(trade_id)
        saved = await self._execute(self.machine.reopen(trade))
        logger.info(LogMessages.TRADE_REOPENED, trade_id=saved.trade_id)
        return saved

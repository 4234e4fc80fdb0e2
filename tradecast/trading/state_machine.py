"""
Trade State Machine
===================

Pure transition logic for a trade's five price targets.

States: ``active`` -> ``completed`` (and back, via reopen).

Events:
    hit(target, True)    set the flag; stop loss and target 3 also complete
    hit(target, False)   clear the flag; never completes, never dispatches
    manual_complete      complete with an explicit reason
    reopen               return a completed trade to active

The machine never performs I/O. It returns a ``Transition`` describing the
new snapshot, the trigger to dispatch and whether that dispatch must run
before the new snapshot is committed. ``TradeLifecycleService`` executes it.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Optional

from tradecast.core.exceptions import InvalidStateError
from tradecast.domain.models import (
    CompletionReason,
    TargetType,
    Trade,
    TradeStatus,
    TriggerType,
    utcnow,
)


@dataclass(frozen=True)
class Transition:
    """
    A computed but not yet committed state change.

    Attributes:
        before: Snapshot prior to the event
        after: Snapshot to persist
        trigger: Automation trigger to dispatch, if any
        dispatch_before_commit: Dispatch against ``before`` prior to committing
    """
    before: Trade
    after: Trade
    trigger: Optional[TriggerType] = None
    dispatch_before_commit: bool = False

    @property
    def completes_trade(self) -> bool:
        return self.before.is_active and not self.after.is_active

    @property
    def dispatch_trade(self) -> Trade:
        """Snapshot the automation templates are rendered against."""
        return self.before if self.dispatch_before_commit else self.after


def _require_active(trade: Trade) -> None:
    if not trade.is_active:
        raise InvalidStateError(
            "Only active trades may be updated",
            trade_id=trade.trade_id,
            status=trade.status.value,
        )


class TradeStateMachine:
    """Computes transitions; holds no state of its own."""

    @staticmethod
    def hit(
        trade: Trade,
        target: TargetType,
        hit: bool,
        now: Optional[datetime] = None,
    ) -> Transition:
        """
        Apply a target hit (or clear one).

        Re-hitting a flag that is already set leaves the flags unchanged
        but still dispatches.

        Raises:
            InvalidStateError: Trade is not active
        """
        _require_active(trade)
        now = now or utcnow()

        after = replace(
            trade,
            target_status=trade.target_status.with_flag(target, hit),
            updated_at=now,
        )

        if not hit:
            return Transition(before=trade, after=after)

        if target.is_auto_completing:
            after = replace(
                after,
                status=TradeStatus.COMPLETED,
                completion_reason=target.completion_reason,
            )
            return Transition(
                before=trade,
                after=after,
                trigger=target.trigger,
                dispatch_before_commit=True,
            )

        return Transition(before=trade, after=after, trigger=target.trigger)

    @staticmethod
    def manual_complete(
        trade: Trade,
        reason: CompletionReason,
        notes: Optional[str] = None,
        safebook_price: Optional[Decimal] = None,
        now: Optional[datetime] = None,
    ) -> Transition:
        """
        Complete a trade regardless of its flags.

        The safebook price and notes are stored when given. Validation of
        the reason/price combination happens at the request boundary.

        Raises:
            InvalidStateError: Trade is not active
        """
        _require_active(trade)

        after = replace(
            trade,
            status=TradeStatus.COMPLETED,
            completion_reason=reason,
            safebook_price=safebook_price if safebook_price is not None else trade.safebook_price,
            notes=notes if notes is not None else trade.notes,
            updated_at=now or utcnow(),
        )
        return Transition(before=trade, after=after, trigger=reason.trigger)

    @staticmethod
    def reopen(trade: Trade, now: Optional[datetime] = None) -> Transition:
        """
        Return a completed trade to active.

        Target flags are kept; only the status and completion reason reset.

        Raises:
            InvalidStateError: Trade is already active
        """
        if trade.is_active:
            raise InvalidStateError(
                "Only completed trades may be reopened",
                trade_id=trade.trade_id,
                status=trade.status.value,
            )

        after = replace(
            trade,
            status=TradeStatus.ACTIVE,
            completion_reason=None,
            updated_at=now or utcnow(),
        )
        return Transition(before=trade, after=after)

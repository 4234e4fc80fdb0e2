"""Tests for the trade lifecycle service: commit/dispatch ordering and request validation."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from tradecast.core.exceptions import InvalidStateError, TradeNotFoundError, ValidationError
from tradecast.domain.models import CompletionReason, TargetType, TradeStatus, TriggerType
from tradecast.trading.service import CompleteTradeRequest, TradeLifecycleService


class RecordingMatcher:
    """Captures the stored trade status at the moment each dispatch runs."""

    def __init__(self, store):
        self.store = store
        self.calls = []

    async def dispatch(self, trigger, trade):
        stored = await self.store.get_trade(trade.id)
        self.calls.append((trigger, trade, stored.status))
        return []


# ---------------------------------------------------------------------------
# apply_target_hit
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_stop_loss_dispatches_while_trade_still_active(store, add_trade):
    trade = await add_trade()
    matcher = RecordingMatcher(store)
    service = TradeLifecycleService(store, matcher)

    saved = await service.apply_target_hit(trade.id, TargetType.STOP_LOSS, True)

    assert saved.status == TradeStatus.COMPLETED
    assert saved.completion_reason == CompletionReason.STOP_LOSS_HIT
    trigger, dispatched, stored_status = matcher.calls[0]
    assert trigger == TriggerType.STOP_LOSS_HIT
    assert stored_status == TradeStatus.ACTIVE
    assert dispatched.is_active


@pytest.mark.asyncio
async def test_target_one_dispatches_after_commit(store, add_trade):
    trade = await add_trade()
    matcher = RecordingMatcher(store)
    service = TradeLifecycleService(store, matcher)

    await service.apply_target_hit(trade.id, "target_1", True)

    trigger, dispatched, _ = matcher.calls[0]
    assert trigger == TriggerType.TARGET_1_HIT
    assert dispatched.target_status.target_1
    assert (await store.get_trade(trade.id)).target_status.target_1


@pytest.mark.asyncio
async def test_each_rehit_dispatches_again(store, add_trade):
    trade = await add_trade()
    matcher = RecordingMatcher(store)
    service = TradeLifecycleService(store, matcher)

    await service.apply_target_hit(trade.id, TargetType.TARGET_2, True)
    await service.apply_target_hit(trade.id, TargetType.TARGET_2, True)

    assert [call[0] for call in matcher.calls] == [TriggerType.TARGET_2_HIT] * 2
    assert (await store.get_trade(trade.id)).target_status.target_2


@pytest.mark.asyncio
async def test_clearing_flag_does_not_dispatch(store, add_trade):
    trade = await add_trade()
    matcher = AsyncMock()
    service = TradeLifecycleService(store, matcher)

    await service.apply_target_hit(trade.id, TargetType.TARGET_1, False)

    matcher.dispatch.assert_not_called()


@pytest.mark.asyncio
async def test_hit_on_completed_trade_leaves_state_unchanged(store, add_trade):
    trade = await add_trade()
    service = TradeLifecycleService(store, AsyncMock())
    await service.apply_target_hit(trade.id, TargetType.TARGET_3, True)
    before = await store.get_trade(trade.id)

    with pytest.raises(InvalidStateError):
        await service.apply_target_hit(trade.id, TargetType.TARGET_1, True)

    assert await store.get_trade(trade.id) == before


@pytest.mark.asyncio
async def test_unknown_target_is_validation_error(store, add_trade):
    trade = await add_trade()
    service = TradeLifecycleService(store, AsyncMock())
    with pytest.raises(ValidationError):
        await service.apply_target_hit(trade.id, "target_9", True)


@pytest.mark.asyncio
async def test_unknown_trade_raises_not_found(store):
    service = TradeLifecycleService(store, AsyncMock())
    with pytest.raises(TradeNotFoundError):
        await service.apply_target_hit("missing", TargetType.TARGET_1, True)


# ---------------------------------------------------------------------------
# complete_manually / reopen
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_safe_book_completion_stores_price_and_dispatches_safebook(store, add_trade):
    trade = await add_trade()
    matcher = RecordingMatcher(store)
    service = TradeLifecycleService(store, matcher)

    saved = await service.complete_manually(
        trade.id, "safe_book", notes="partial exit", safebook_price=Decimal("3050")
    )

    assert saved.status == TradeStatus.COMPLETED
    assert saved.completion_reason == CompletionReason.SAFE_BOOK
    assert saved.safebook_price == Decimal("3050")
    assert saved.notes == "partial exit"
    assert matcher.calls[0][0] == TriggerType.SAFEBOOK_HIT


@pytest.mark.asyncio
async def test_safe_book_without_price_is_rejected_before_any_change(store, add_trade):
    trade = await add_trade()
    service = TradeLifecycleService(store, AsyncMock())

    with pytest.raises(ValidationError):
        await service.complete_manually(trade.id, CompletionReason.SAFE_BOOK)

    assert (await store.get_trade(trade.id)).is_active


@pytest.mark.asyncio
async def test_reopen_then_hit_again(store, add_trade):
    trade = await add_trade()
    service = TradeLifecycleService(store, AsyncMock())
    await service.apply_target_hit(trade.id, TargetType.STOP_LOSS, True)

    reopened = await service.reopen(trade.id)
    assert reopened.is_active
    assert reopened.completion_reason is None
    assert reopened.target_status.stop_loss

    updated = await service.apply_target_hit(trade.id, TargetType.TARGET_1, True)
    assert updated.target_status.target_1


def test_complete_request_rejects_unknown_reason():
    with pytest.raises(ValidationError) as exc:
        CompleteTradeRequest.parse(reason="trade_completed")
    assert exc.value.details["errors"]


def test_complete_request_rejects_non_positive_safebook_price():
    with pytest.raises(ValidationError):
        CompleteTradeRequest.parse(reason="safe_book", safebook_price=Decimal("0"))


def test_complete_request_accepts_manual_without_price():
    request = CompleteTradeRequest.parse(reason="manual", notes="closed by desk")
    assert request.reason == CompletionReason.MANUAL
    assert request.safebook_price is None

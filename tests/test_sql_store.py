"""Tests for the SQLAlchemy record store against a file-backed SQLite database."""

from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker

from tradecast.automation.matcher import AutomationMatcher
from tradecast.core.exceptions import TradecastError, TradeNotFoundError
from tradecast.database.repository import SqlRecordStore, create_engine, init_database
from tradecast.domain.models import (
    Automation,
    Channel,
    CompletionReason,
    DeliveryKind,
    DeliveryOutcome,
    DeliveryRecord,
    FollowerAccount,
    InlineButton,
    MessageTemplate,
    MirroredPosition,
    MirrorStatus,
    ParseMode,
    TargetStatus,
    TradeSide,
    TradeStatus,
    TriggerType,
)
from tradecast.notifications.delivery import DeliveryPipeline
from tradecast.notifications.renderer import TemplateRenderer

from conftest import FakeTransport, build_trade


@asynccontextmanager
async def sql_store(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'tradecast.db'}")
    try:
        await init_database(engine)
        yield SqlRecordStore(async_sessionmaker(engine, expire_on_commit=False))
    finally:
        await engine.dispose()


# ---------------------------------------------------------------------------
# Trades
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_trade_round_trip(tmp_path):
    async with sql_store(tmp_path) as store:
        trade = build_trade(fee=Decimal("0.6"), notes="breakout")
        await store.create_trade(trade)

        loaded = await store.get_trade(trade.id)
        assert loaded.trade_id == "B-ETH_USDT_1"
        assert loaded.side == TradeSide.BUY
        assert loaded.price == Decimal("3000")
        assert loaded.fee == Decimal("0.6")
        assert loaded.target_status == TargetStatus()
        assert loaded.status == TradeStatus.ACTIVE
        assert loaded.created_at == trade.created_at
        assert loaded.created_at.tzinfo is not None

        by_external = await store.get_trade_by_external_id("B-ETH_USDT_1")
        assert by_external.id == trade.id
        assert await store.get_trade("missing") is None


@pytest.mark.asyncio
async def test_trade_update_persists_flags_and_completion(tmp_path):
    async with sql_store(tmp_path) as store:
        trade = await store.create_trade(build_trade())
        completed = replace(
            trade,
            target_status=TargetStatus(target_1=True, target_3=True),
            status=TradeStatus.COMPLETED,
            completion_reason=CompletionReason.TARGET_3_HIT,
        )

        await store.update_trade(completed)

        loaded = await store.get_trade(trade.id)
        assert loaded.target_status == TargetStatus(target_1=True, target_3=True)
        assert loaded.completion_reason == CompletionReason.TARGET_3_HIT
        assert [t.id for t in await store.list_trades(TradeStatus.COMPLETED)] == [trade.id]
        assert await store.list_trades(TradeStatus.ACTIVE) == []


@pytest.mark.asyncio
async def test_update_missing_trade_raises(tmp_path):
    async with sql_store(tmp_path) as store:
        with pytest.raises(TradeNotFoundError):
            await store.update_trade(build_trade())


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_template_buttons_and_fields_round_trip(tmp_path):
    async with sql_store(tmp_path) as store:
        template = MessageTemplate(
            name="entry",
            body="{pair} {price}",
            include_fields=("pair", "price"),
            buttons=((InlineButton(text="Chart", url="https://x.test/{pair}"),),),
            parse_mode=ParseMode.MARKDOWN,
            image_url="/uploads/eth.png",
        )
        await store.create_template(template)

        assert await store.get_template(template.id) == template


@pytest.mark.asyncio
async def test_list_automations_filters_trigger_and_active(tmp_path):
    async with sql_store(tmp_path) as store:
        channel = await store.create_channel(Channel(name="main", chat_id="-1001"))
        template = await store.create_template(MessageTemplate(name="t", body="{pair}"))
        active = await store.create_automation(Automation(
            name="a", trigger_type=TriggerType.TARGET_1_HIT,
            channel_id=channel.id, template_id=template.id,
        ))
        await store.create_automation(Automation(
            name="b", trigger_type=TriggerType.TARGET_1_HIT,
            channel_id=channel.id, template_id=template.id, is_active=False,
        ))
        scheduled = await store.create_automation(Automation(
            name="c", trigger_type=TriggerType.SCHEDULED,
            channel_id=channel.id, template_id=template.id,
            scheduled_time="09:15", scheduled_days=("monday", "friday"),
        ))

        assert await store.list_automations(TriggerType.TARGET_1_HIT) == [active]
        assert len(await store.list_automations(TriggerType.TARGET_1_HIT, active_only=False)) == 2
        [loaded] = await store.list_automations(TriggerType.SCHEDULED)
        assert loaded == scheduled
        assert await store.get_channel(channel.id) == channel


# ---------------------------------------------------------------------------
# Delivery records
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_delivery_records_filtered_and_oldest_first(tmp_path):
    async with sql_store(tmp_path) as store:
        start = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)
        for offset, (channel_id, message_id) in enumerate([("c2", "2"), ("c1", "1"), ("c3", "3")]):
            await store.create_delivery_record(DeliveryRecord(
                automation_id="a", trade_id="t1", channel_id=channel_id, text="x",
                outcome=DeliveryOutcome.SENT, kind=DeliveryKind.TEXT,
                trigger_type=TriggerType.TRADE_REGISTERED, message_id=message_id,
                created_at=start + timedelta(seconds=offset),
            ))

        records = await store.list_delivery_records(trade_id="t1", channel_ids=["c1", "c2"])

        assert [r.message_id for r in records] == ["2", "1"]
        assert records[0].created_at == start
        assert await store.list_delivery_records(trade_id="other") == []


@pytest.mark.asyncio
async def test_matcher_threads_replies_through_sql_store(tmp_path):
    async with sql_store(tmp_path) as store:
        trade = await store.create_trade(build_trade())
        channel = await store.create_channel(Channel(name="main", chat_id="-1001"))
        template = await store.create_template(MessageTemplate(name="t", body="{pair}"))
        for trigger in (TriggerType.TRADE_REGISTERED, TriggerType.TARGET_2_HIT):
            await store.create_automation(Automation(
                name=trigger.value, trigger_type=trigger,
                channel_id=channel.id, template_id=template.id,
            ))
        transport = FakeTransport("700", "701")
        matcher = AutomationMatcher(
            store, TemplateRenderer(), DeliveryPipeline(transport, store, None),
        )

        await matcher.dispatch(TriggerType.TRADE_REGISTERED, trade)
        [record] = await matcher.dispatch(TriggerType.TARGET_2_HIT, trade)

        assert record.reply_to_message_id == "700"
        assert transport.calls[1][1]["reply_to"] == "700"


# ---------------------------------------------------------------------------
# Copy trading
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_followers_and_positions(tmp_path):
    async with sql_store(tmp_path) as store:
        trade = await store.create_trade(build_trade())
        follower = await store.create_follower(FollowerAccount(
            name="alice", risk_percent=1.0, fund_amount=1000.0,
            pair_filter=("ETH_USDT",), side_filter=(TradeSide.BUY,),
        ))
        await store.create_follower(FollowerAccount(
            name="paused", risk_percent=1.0, fund_amount=500.0, is_active=False,
        ))

        assert await store.list_followers() == [follower]
        assert len(await store.list_followers(active_only=False)) == 2

        refreshed_at = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
        updated = await store.update_follower(
            replace(follower, wallet_balance=812.5, balance_updated_at=refreshed_at)
        )
        assert updated.wallet_balance == 812.5
        assert updated.balance_updated_at == refreshed_at

        now = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)
        position = await store.create_mirrored_position(MirroredPosition(
            trade_id=trade.id, follower_id=follower.id, pair="ETH_USDT", side=TradeSide.BUY,
            entry_price=3000.0, quantity=0.1, leverage=1.0, created_at=now,
        ))
        await store.update_mirrored_position(
            replace(position, status=MirrorStatus.EXECUTED, order_id="o-1")
        )

        [loaded] = await store.list_mirrored_positions(trade_id=trade.id)
        assert loaded.status == MirrorStatus.EXECUTED
        assert loaded.awaiting_pnl
        assert await store.count_mirrored_positions_since(follower.id, now - timedelta(hours=1)) == 1
        assert await store.count_mirrored_positions_since(follower.id, now + timedelta(hours=1)) == 0


@pytest.mark.asyncio
async def test_update_missing_follower_raises(tmp_path):
    async with sql_store(tmp_path) as store:
        with pytest.raises(TradecastError):
            await store.update_follower(FollowerAccount(name="ghost", risk_percent=1, fund_amount=1))

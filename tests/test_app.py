"""Tests for application wiring with injected store and transport."""

import asyncio

import pytest

from tradecast.core.config import Settings
from tradecast.domain.models import TargetType, TradeStatus, TriggerType
from tradecast.main import TradecastApp
from tradecast.notifications.telegram import DisabledTransport

from conftest import FakeTransport, InMemoryRecordStore, build_trade


@pytest.mark.asyncio
async def test_register_and_hit_flow_through_wired_app(add_automation, store):
    transport = FakeTransport()
    app = TradecastApp(Settings(_env_file=None), store=store, transport=transport)
    await app.initialize()
    await add_automation(TriggerType.TRADE_REGISTERED)
    await add_automation(TriggerType.TARGET_3_HIT, body="{pair} target 3 done")

    trade = await app.ingestion.register(build_trade())
    completed = await app.lifecycle.apply_target_hit(trade.id, TargetType.TARGET_3, True)

    assert completed.status == TradeStatus.COMPLETED
    assert [call[1]["text"] for call in transport.calls] == [
        "BUY ETH_USDT @ $3000.0000",
        "ETH_USDT target 3 done",
    ]
    assert transport.calls[1][1]["reply_to"] == store.records[0].message_id
    assert app.copy_trading is None
    assert [job.name for job in app.scheduler.jobs] == ["scheduled_automations"]

    await app.shutdown()


@pytest.mark.asyncio
async def test_telegram_off_uses_disabled_transport():
    store = InMemoryRecordStore()
    app = TradecastApp(Settings(_env_file=None, telegram_enabled=False), store=store)
    await app.initialize()

    assert isinstance(app.transport, DisabledTransport)
    await app.shutdown()


@pytest.mark.asyncio
async def test_run_until_shutdown_requested():
    app = TradecastApp(
        Settings(_env_file=None, scheduler_tick_seconds=30),
        store=InMemoryRecordStore(),
        transport=FakeTransport(),
    )
    await app.initialize()

    runner = asyncio.create_task(app.run())
    await asyncio.sleep(0.05)
    assert app.scheduler.is_running

    app.request_shutdown()
    await asyncio.wait_for(runner, timeout=1)

    assert not app.scheduler.is_running
    assert app.scheduler.tick_count == 1

"""Shared fakes and fixtures: an in-memory record store and a scripted transport."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

import pytest

from tradecast.automation.matcher import AutomationMatcher
from tradecast.core.exceptions import TradeNotFoundError
from tradecast.domain.models import (
    Automation,
    Channel,
    DeliveryRecord,
    FollowerAccount,
    MessageTemplate,
    MirroredPosition,
    ParseMode,
    Trade,
    TradeSide,
    TradeStatus,
    TriggerType,
)
from tradecast.notifications.delivery import DeliveryPipeline
from tradecast.notifications.renderer import TemplateRenderer


class InMemoryRecordStore:
    """Dict-backed RecordStore used by service tests."""

    def __init__(self):
        self.trades: dict[str, Trade] = {}
        self.automations: dict[str, Automation] = {}
        self.channels: dict[str, Channel] = {}
        self.templates: dict[str, MessageTemplate] = {}
        self.records: list[DeliveryRecord] = []
        self.followers: dict[str, FollowerAccount] = {}
        self.positions: dict[str, MirroredPosition] = {}

    async def get_trade(self, id: str) -> Optional[Trade]:
        return self.trades.get(id)

    async def get_trade_by_external_id(self, trade_id: str) -> Optional[Trade]:
        return next((t for t in self.trades.values() if t.trade_id == trade_id), None)

    async def list_trades(self, status: Optional[TradeStatus] = None) -> list[Trade]:
        return [t for t in self.trades.values() if status is None or t.status == status]

    async def create_trade(self, trade: Trade) -> Trade:
        self.trades[trade.id] = trade
        return trade

    async def update_trade(self, trade: Trade) -> Trade:
        if trade.id not in self.trades:
            raise TradeNotFoundError(trade.id)
        self.trades[trade.id] = trade
        return trade

    async def list_automations(self, trigger_type=None, active_only=True) -> list[Automation]:
        return [
            a for a in self.automations.values()
            if (trigger_type is None or a.trigger_type == trigger_type)
            and (a.is_active or not active_only)
        ]

    async def create_automation(self, automation: Automation) -> Automation:
        self.automations[automation.id] = automation
        return automation

    async def get_channel(self, id: str) -> Optional[Channel]:
        return self.channels.get(id)

    async def list_channels(self) -> list[Channel]:
        return list(self.channels.values())

    async def create_channel(self, channel: Channel) -> Channel:
        self.channels[channel.id] = channel
        return channel

    async def get_template(self, id: str) -> Optional[MessageTemplate]:
        return self.templates.get(id)

    async def create_template(self, template: MessageTemplate) -> MessageTemplate:
        self.templates[template.id] = template
        return template

    async def create_delivery_record(self, record: DeliveryRecord) -> DeliveryRecord:
        self.records.append(record)
        return record

    async def list_delivery_records(self, trade_id=None, channel_ids=None) -> list[DeliveryRecord]:
        return [
            r for r in self.records
            if (trade_id is None or r.trade_id == trade_id)
            and (channel_ids is None or r.channel_id in channel_ids)
        ]

    async def list_followers(self, active_only: bool = True) -> list[FollowerAccount]:
        return [f for f in self.followers.values() if f.is_active or not active_only]

    async def create_follower(self, follower: FollowerAccount) -> FollowerAccount:
        self.followers[follower.id] = follower
        return follower

    async def update_follower(self, follower: FollowerAccount) -> FollowerAccount:
        self.followers[follower.id] = follower
        return follower

    async def list_mirrored_positions(self, trade_id=None, follower_id=None) -> list[MirroredPosition]:
        return [
            p for p in self.positions.values()
            if (trade_id is None or p.trade_id == trade_id)
            and (follower_id is None or p.follower_id == follower_id)
        ]

    async def count_mirrored_positions_since(self, follower_id: str, since: datetime) -> int:
        return sum(
            1 for p in self.positions.values()
            if p.follower_id == follower_id and p.created_at >= since
        )

    async def create_mirrored_position(self, position: MirroredPosition) -> MirroredPosition:
        self.positions[position.id] = position
        return position

    async def update_mirrored_position(self, position: MirroredPosition) -> MirroredPosition:
        self.positions[position.id] = position
        return position


class FakeTransport:
    """
    Transport that replays scripted responses in call order.

    Each response is a message id or an exception to raise. Once the
    script runs out every call succeeds with a fresh id.
    """

    def __init__(self, *responses, caption_limit: int = 1024):
        self.responses = list(responses)
        self.calls: list[tuple[str, dict]] = []
        self.caption_limit = caption_limit
        self._next_id = 100

    async def _respond(self, method: str, **kwargs) -> str:
        self.calls.append((method, kwargs))
        if self.responses:
            response = self.responses.pop(0)
            if isinstance(response, BaseException):
                raise response
            return response
        self._next_id += 1
        return str(self._next_id)

    async def send_text(
        self, chat_id, text, parse_mode, reply_to=None, buttons=(), disable_preview=True
    ) -> str:
        return await self._respond(
            "text", chat_id=chat_id, text=text, parse_mode=parse_mode,
            reply_to=reply_to, buttons=buttons, disable_preview=disable_preview,
        )

    async def send_photo(
        self, chat_id, photo_url, caption, parse_mode, reply_to=None, buttons=()
    ) -> str:
        return await self._respond(
            "photo", chat_id=chat_id, photo_url=photo_url, caption=caption,
            parse_mode=parse_mode, reply_to=reply_to, buttons=buttons,
        )

    @property
    def methods(self) -> list[str]:
        return [method for method, _ in self.calls]


def build_trade(**overrides) -> Trade:
    values = dict(
        trade_id="B-ETH_USDT_1",
        pair="ETH_USDT",
        side=TradeSide.BUY,
        price=Decimal("3000"),
        leverage=Decimal("10"),
        total=Decimal("6000"),
        stop_loss=Decimal("2900"),
        target_1=Decimal("3100"),
        target_2=Decimal("3200"),
        target_3=Decimal("3300"),
    )
    values.update(overrides)
    return Trade(**values)


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def renderer():
    return TemplateRenderer("Asia/Kolkata")


@pytest.fixture
def pipeline(transport, store):
    return DeliveryPipeline(transport, store, public_base_url="https://cdn.example.com")


@pytest.fixture
def matcher(store, renderer, pipeline):
    return AutomationMatcher(store, renderer, pipeline)


@pytest.fixture
def trade_factory():
    return build_trade


@pytest.fixture
def add_automation(store):
    """Create a channel, template and automation in the store; returns the automation."""

    async def _add(
        trigger: TriggerType,
        body: str = "{type} {pair} @ {price}",
        chat_id: str = "-1001",
        channel: Optional[Channel] = None,
        **template_options,
    ) -> Automation:
        channel = channel or await store.create_channel(Channel(name=f"chan {chat_id}", chat_id=chat_id))
        template_options.setdefault("parse_mode", ParseMode.HTML)
        template = await store.create_template(
            MessageTemplate(name=f"{trigger.value} template", body=body, **template_options)
        )
        return await store.create_automation(
            Automation(
                name=f"{trigger.value} automation",
                trigger_type=trigger,
                channel_id=channel.id,
                template_id=template.id,
            )
        )

    return _add


@pytest.fixture
def add_trade(store):
    async def _add(**overrides) -> Trade:
        return await store.create_trade(build_trade(**overrides))

    return _add

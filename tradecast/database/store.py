"""
Record Store Contract
=====================

Persistence capability consumed by the services. Everything crosses this
boundary as immutable domain dataclasses; ``SqlRecordStore`` in
``tradecast.database.repository`` is the production implementation.
"""

from datetime import datetime
from typing import Optional, Protocol

from tradecast.domain.models import (
    Automation,
    Channel,
    DeliveryRecord,
    FollowerAccount,
    MessageTemplate,
    MirroredPosition,
    Trade,
    TradeStatus,
    TriggerType,
)


class RecordStore(Protocol):

    # Trades
    async def get_trade(self, id: str) -> Optional[Trade]: ...

    async def get_trade_by_external_id(self, trade_id: str) -> Optional[Trade]: ...

    async def list_trades(self, status: Optional[TradeStatus] = None) -> list[Trade]: ...

    async def create_trade(self, trade: Trade) -> Trade: ...

    async def update_trade(self, trade: Trade) -> Trade: ...

    # Automations, channels, templates
    async def list_automations(
        self,
        trigger_type: Optional[TriggerType] = None,
        active_only: bool = True,
    ) -> list[Automation]: ...

    async def create_automation(self, automation: Automation) -> Automation: ...

    async def get_channel(self, id: str) -> Optional[Channel]: ...

    async def list_channels(self) -> list[Channel]: ...

    async def create_channel(self, channel: Channel) -> Channel: ...

    async def get_template(self, id: str) -> Optional[MessageTemplate]: ...

    async def create_template(self, template: MessageTemplate) -> MessageTemplate: ...

    # Delivery records (append-only)
    async def create_delivery_record(self, record: DeliveryRecord) -> DeliveryRecord: ...

    async def list_delivery_records(
        self,
        trade_id: Optional[str] = None,
        channel_ids: Optional[list[str]] = None,
    ) -> list[DeliveryRecord]:
        """Records oldest first, optionally filtered by trade and channels."""
        ...

    # Copy trading
    async def list_followers(self, active_only: bool = True) -> list[FollowerAccount]: ...

    async def create_follower(self, follower: FollowerAccount) -> FollowerAccount: ...

    async def update_follower(self, follower: FollowerAccount) -> FollowerAccount: ...

    async def list_mirrored_positions(
        self,
        trade_id: Optional[str] = None,
        follower_id: Optional[str] = None,
    ) -> list[MirroredPosition]: ...

    async def count_mirrored_positions_since(self, follower_id: str, since: datetime) -> int: ...

    async def create_mirrored_position(self, position: MirroredPosition) -> MirroredPosition: ...

    async def update_mirrored_position(self, position: MirroredPosition) -> MirroredPosition: ...

"""
Domain Module
=============
Immutable data model shared by all services.
"""

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
    TargetType,
    TemplateType,
    Trade,
    TradeSide,
    TradeStatus,
    TriggerType,
)

__all__ = [
    "Automation",
    "Channel",
    "CompletionReason",
    "DeliveryKind",
    "DeliveryOutcome",
    "DeliveryRecord",
    "FollowerAccount",
    "InlineButton",
    "MessageTemplate",
    "MirroredPosition",
    "MirrorStatus",
    "ParseMode",
    "TargetStatus",
    "TargetType",
    "TemplateType",
    "Trade",
    "TradeSide",
    "TradeStatus",
    "TriggerType",
]

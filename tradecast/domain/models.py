"""
Domain Models
=============
Immutable snapshots of trades, automations, templates and delivery
records, plus the closed enumerations for target and trigger kinds.

Persistence rows are mapped to these types at the repository boundary;
services never touch ORM objects directly.
"""

import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional
from uuid import uuid4

from tradecast.core.exceptions import TemplateDefinitionError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


# =============================================================================
# Enums
# =============================================================================

class TradeStatus(str, Enum):
    """Trade lifecycle status."""
    ACTIVE = "active"
    COMPLETED = "completed"


class TradeSide(str, Enum):
    """Position direction."""
    BUY = "BUY"
    SELL = "SELL"


class TriggerType(str, Enum):
    """Events an automation can be bound to."""
    TRADE_REGISTERED = "trade_registered"
    STOP_LOSS_HIT = "stop_loss_hit"
    SAFEBOOK_HIT = "safebook_hit"
    TARGET_1_HIT = "target_1_hit"
    TARGET_2_HIT = "target_2_hit"
    TARGET_3_HIT = "target_3_hit"
    SCHEDULED = "scheduled"

    @property
    def is_target_hit(self) -> bool:
        """Target-hit triggers reply to the trade's announcement message."""
        return self in _TARGET_HIT_TRIGGERS


class TargetType(str, Enum):
    """The five independent price triggers of a trade."""
    STOP_LOSS = "stop_loss"
    SAFEBOOK = "safebook"
    TARGET_1 = "target_1"
    TARGET_2 = "target_2"
    TARGET_3 = "target_3"

    @property
    def trigger(self) -> TriggerType:
        return TriggerType(f"{self.value}_hit")

    @property
    def completion_reason(self) -> "CompletionReason":
        return CompletionReason(f"{self.value}_hit")

    @property
    def is_auto_completing(self) -> bool:
        """Stop loss and the final target close the trade when hit."""
        return self in (TargetType.STOP_LOSS, TargetType.TARGET_3)


_TARGET_HIT_TRIGGERS = frozenset(target.trigger for target in TargetType)


class CompletionReason(str, Enum):
    """Why a trade was completed."""
    STOP_LOSS_HIT = "stop_loss_hit"
    SAFEBOOK_HIT = "safebook_hit"
    TARGET_1_HIT = "target_1_hit"
    TARGET_2_HIT = "target_2_hit"
    TARGET_3_HIT = "target_3_hit"
    SAFE_BOOK = "safe_book"
    MANUAL = "manual"

    @property
    def trigger(self) -> Optional[TriggerType]:
        """Automation trigger fired when a trade is completed for this reason."""
        if self is CompletionReason.SAFE_BOOK:
            return TriggerType.SAFEBOOK_HIT
        if self is CompletionReason.MANUAL:
            return None
        return TriggerType(self.value)


class ParseMode(str, Enum):
    """Message markup flavour."""
    HTML = "HTML"
    MARKDOWN = "Markdown"


class TemplateType(str, Enum):
    """Trade templates take placeholders; simple templates are sent verbatim."""
    TRADE = "trade"
    SIMPLE = "simple"


class DeliveryOutcome(str, Enum):
    SENT = "sent"
    FAILED = "failed"


class DeliveryKind(str, Enum):
    """Which stage of the fallback cascade produced the final outcome."""
    PHOTO = "photo"
    PHOTO_NO_REPLY = "photo_no_reply"
    TEXT = "text"
    TEXT_NO_REPLY = "text_no_reply"
    TEXT_FALLBACK = "text_fallback"
    TEXT_FALLBACK_NO_REPLY = "text_fallback_no_reply"


class MirrorStatus(str, Enum):
    """Follower copy of a trade."""
    PENDING = "pending"
    EXECUTED = "executed"
    FAILED = "failed"
    CLOSED = "closed"


# =============================================================================
# Trades
# =============================================================================

# Legacy keys seen in stored target_status blobs
_LEGACY_TARGET_KEYS = {
    "t1": TargetType.TARGET_1,
    "t2": TargetType.TARGET_2,
    "t3": TargetType.TARGET_3,
    "tp1": TargetType.TARGET_1,
    "tp2": TargetType.TARGET_2,
    "tp3": TargetType.TARGET_3,
    "sl": TargetType.STOP_LOSS,
    "safe_book": TargetType.SAFEBOOK,
}


@dataclass(frozen=True)
class TargetStatus:
    """Which of the five targets have been hit."""
    stop_loss: bool = False
    safebook: bool = False
    target_1: bool = False
    target_2: bool = False
    target_3: bool = False

    def is_hit(self, target: TargetType) -> bool:
        return getattr(self, target.value)

    def with_flag(self, target: TargetType, hit: bool) -> "TargetStatus":
        return replace(self, **{target.value: hit})

    def to_dict(self) -> dict[str, bool]:
        return {target.value: self.is_hit(target) for target in TargetType}

    @classmethod
    def from_raw(cls, raw: Optional[Mapping[str, Any]]) -> "TargetStatus":
        """
        Normalize a stored or ingested target-status mapping.

        Accepts canonical keys and the legacy aliases (``t1``, ``safe_book``,
        ...). When both spellings are present the canonical key wins.
        Unknown keys are ignored.
        """
        if not raw:
            return cls()

        flags: dict[str, bool] = {}
        for key, value in raw.items():
            legacy = _LEGACY_TARGET_KEYS.get(str(key).lower())
            if legacy is not None:
                flags.setdefault(legacy.value, bool(value))

        for target in TargetType:
            if target.value in raw:
                flags[target.value] = bool(raw[target.value])

        return cls(**flags)


@dataclass(frozen=True)
class Trade:
    """
    Snapshot of a tracked position.

    ``completion_reason`` is set exactly when ``status`` is completed.
    """
    trade_id: str
    pair: str
    side: TradeSide
    price: Decimal
    leverage: Decimal
    total: Decimal = Decimal("0")
    fee: Optional[Decimal] = None
    stop_loss: Optional[Decimal] = None
    safebook_price: Optional[Decimal] = None
    target_1: Optional[Decimal] = None
    target_2: Optional[Decimal] = None
    target_3: Optional[Decimal] = None
    target_status: TargetStatus = field(default_factory=TargetStatus)
    status: TradeStatus = TradeStatus.ACTIVE
    completion_reason: Optional[CompletionReason] = None
    notes: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == TradeStatus.ACTIVE


# =============================================================================
# Channels, Templates & Automations
# =============================================================================

@dataclass(frozen=True)
class Channel:
    """A delivery destination (a Telegram chat or channel)."""
    name: str
    chat_id: str
    is_active: bool = True
    description: Optional[str] = None
    id: str = field(default_factory=new_id)


@dataclass(frozen=True)
class InlineButton:
    text: str
    url: Optional[str] = None
    callback_data: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "InlineButton":
        return cls(
            text=str(raw.get("text") or ""),
            url=raw.get("url") or None,
            callback_data=raw.get("callback_data") or None,
        )

    def to_dict(self) -> dict[str, str]:
        data = {"text": self.text}
        if self.url:
            data["url"] = self.url
        elif self.callback_data:
            data["callback_data"] = self.callback_data
        return data


PLACEHOLDER_PATTERN = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


@dataclass(frozen=True)
class MessageTemplate:
    name: str
    body: str
    template_type: TemplateType = TemplateType.TRADE
    include_fields: tuple[str, ...] = ()
    buttons: tuple[tuple[InlineButton, ...], ...] = ()
    parse_mode: ParseMode = ParseMode.HTML
    image_url: Optional[str] = None
    is_active: bool = True
    id: str = field(default_factory=new_id)

    def __post_init__(self) -> None:
        if self.template_type == TemplateType.SIMPLE:
            found = self.placeholders()
            if found:
                raise TemplateDefinitionError(self.name, found)

    def placeholders(self) -> list[str]:
        """All ``{name}`` tokens in the body and buttons, in order of appearance."""
        sources = [self.body]
        for row in self.buttons:
            for button in row:
                sources.extend(filter(None, (button.text, button.url, button.callback_data)))
        return [match for source in sources for match in PLACEHOLDER_PATTERN.findall(source)]


@dataclass(frozen=True)
class Automation:
    name: str
    trigger_type: TriggerType
    channel_id: str
    template_id: str
    is_active: bool = True
    scheduled_time: Optional[str] = None  # HH:MM in the configured timezone
    scheduled_days: tuple[str, ...] = ()  # lowercase weekday names
    id: str = field(default_factory=new_id)

    def is_due(self, hhmm: str, weekday: str) -> bool:
        return (
            self.trigger_type == TriggerType.SCHEDULED
            and self.scheduled_time == hhmm
            and weekday.lower() in self.scheduled_days
        )


# =============================================================================
# Delivery Records
# =============================================================================

@dataclass(frozen=True)
class DeliveryRecord:
    """Immutable audit row for the final outcome of one delivery cascade."""
    automation_id: Optional[str]
    trade_id: Optional[str]
    channel_id: str
    text: str
    outcome: DeliveryOutcome
    kind: DeliveryKind
    trigger_type: Optional[TriggerType] = None
    message_id: Optional[str] = None
    reply_to_message_id: Optional[str] = None
    error: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    @property
    def is_sent(self) -> bool:
        return self.outcome == DeliveryOutcome.SENT


# =============================================================================
# Copy Trading
# =============================================================================

@dataclass(frozen=True)
class FollowerAccount:
    """A copy-trading account that mirrors registered trades."""
    name: str
    risk_percent: float
    fund_amount: float
    max_trades_per_day: int = 0  # 0 = unlimited
    pair_filter: tuple[str, ...] = ()
    side_filter: tuple[TradeSide, ...] = ()
    is_active: bool = True
    wallet_balance: Optional[float] = None
    balance_updated_at: Optional[datetime] = None
    id: str = field(default_factory=new_id)

    def accepts(self, trade: Trade) -> bool:
        if self.pair_filter and trade.pair not in self.pair_filter:
            return False
        if self.side_filter and trade.side not in self.side_filter:
            return False
        return True


@dataclass(frozen=True)
class MirroredPosition:
    trade_id: str
    follower_id: str
    pair: str
    side: TradeSide
    entry_price: float
    quantity: float
    leverage: float
    status: MirrorStatus = MirrorStatus.PENDING
    order_id: Optional[str] = None
    error: Optional[str] = None
    pnl: Optional[float] = None
    exit_price: Optional[float] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    @property
    def awaiting_pnl(self) -> bool:
        return bool(self.order_id) and (self.pnl is None or self.exit_price is None)

"""
Database Models
===============
SQLAlchemy models for trades, automations and delivery records.

Column types are portable (PostgreSQL in production, SQLite in tests):
string UUIDs, generic JSON, and enums stored as their string values.
"""

from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import Type

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

from tradecast.domain.models import (
    CompletionReason,
    DeliveryKind,
    DeliveryOutcome,
    MirrorStatus,
    ParseMode,
    TemplateType,
    TradeSide,
    TradeStatus,
    TriggerType,
    new_id,
)

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum(enum_cls: Type[PyEnum]) -> Enum:
    """Store enum values (not member names) as plain strings."""
    return Enum(
        enum_cls,
        values_callable=lambda members: [member.value for member in members],
        native_enum=False,
        validate_strings=True,
        length=32,
    )


PRICE = Numeric(28, 10)


# =============================================================================
# Trades
# =============================================================================

class TradeRow(Base):
    """
    Tracked position.

    ``target_status`` holds the five hit flags as a JSON object.
    """
    __tablename__ = "trades"

    id = Column(String(36), primary_key=True, default=new_id)
    trade_id = Column(String(128), nullable=False, unique=True)

    pair = Column(String(32), nullable=False)
    side = Column(_enum(TradeSide), nullable=False)
    price = Column(PRICE, nullable=False)
    leverage = Column(PRICE, nullable=False, default=1)
    total = Column(PRICE, nullable=False, default=0)
    fee = Column(PRICE, nullable=True)

    stop_loss = Column(PRICE, nullable=True)
    safebook_price = Column(PRICE, nullable=True)
    target_1 = Column(PRICE, nullable=True)
    target_2 = Column(PRICE, nullable=True)
    target_3 = Column(PRICE, nullable=True)

    target_status = Column(JSON, nullable=False, default=dict)
    status = Column(_enum(TradeStatus), nullable=False, default=TradeStatus.ACTIVE)
    completion_reason = Column(_enum(CompletionReason), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_trades_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<Trade {self.trade_id} {self.side} {self.pair} {self.status}>"


# =============================================================================
# Channels, Templates & Automations
# =============================================================================

class ChannelRow(Base):
    __tablename__ = "channels"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(128), nullable=False)
    chat_id = Column(String(64), nullable=False, index=True)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class MessageTemplateRow(Base):
    """Message template; ``buttons`` is a JSON list of rows of button objects."""
    __tablename__ = "message_templates"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(128), nullable=False)
    body = Column(Text, nullable=False)
    template_type = Column(_enum(TemplateType), nullable=False, default=TemplateType.TRADE)
    include_fields = Column(JSON, nullable=False, default=list)
    buttons = Column(JSON, nullable=False, default=list)
    parse_mode = Column(_enum(ParseMode), nullable=False, default=ParseMode.HTML)
    image_url = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class AutomationRow(Base):
    __tablename__ = "automations"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(128), nullable=False)
    trigger_type = Column(_enum(TriggerType), nullable=False)
    channel_id = Column(String(36), ForeignKey("channels.id"), nullable=False)
    template_id = Column(String(36), ForeignKey("message_templates.id"), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    scheduled_time = Column(String(5), nullable=True)  # HH:MM
    scheduled_days = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_automations_trigger_active", "trigger_type", "is_active"),
    )


# =============================================================================
# Delivery Records
# =============================================================================

class DeliveryRecordRow(Base):
    """Append-only audit of every delivery cascade."""
    __tablename__ = "delivery_records"

    id = Column(String(36), primary_key=True, default=new_id)
    automation_id = Column(String(36), nullable=True)
    trade_id = Column(String(36), nullable=True)
    channel_id = Column(String(36), nullable=False)
    trigger_type = Column(_enum(TriggerType), nullable=True)

    text = Column(Text, nullable=False)
    outcome = Column(_enum(DeliveryOutcome), nullable=False)
    kind = Column(_enum(DeliveryKind), nullable=False)
    message_id = Column(String(64), nullable=True)
    reply_to_message_id = Column(String(64), nullable=True)
    error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_delivery_records_trade_channel", "trade_id", "channel_id"),
    )


# =============================================================================
# Copy Trading
# =============================================================================

class FollowerAccountRow(Base):
    __tablename__ = "follower_accounts"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(128), nullable=False)
    risk_percent = Column(Float, nullable=False)
    fund_amount = Column(Float, nullable=False)
    max_trades_per_day = Column(Integer, nullable=False, default=0)
    pair_filter = Column(JSON, nullable=False, default=list)
    side_filter = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    wallet_balance = Column(Float, nullable=True)
    balance_updated_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class MirroredPositionRow(Base):
    __tablename__ = "mirrored_positions"

    id = Column(String(36), primary_key=True, default=new_id)
    trade_id = Column(String(36), ForeignKey("trades.id"), nullable=False)
    follower_id = Column(String(36), ForeignKey("follower_accounts.id"), nullable=False)
    pair = Column(String(32), nullable=False)
    side = Column(_enum(TradeSide), nullable=False)
    entry_price = Column(Float, nullable=False)
    quantity = Column(Float, nullable=False)
    leverage = Column(Float, nullable=False)
    status = Column(_enum(MirrorStatus), nullable=False, default=MirrorStatus.PENDING)
    order_id = Column(String(64), nullable=True)
    error = Column(Text, nullable=True)
    pnl = Column(Float, nullable=True)
    exit_price = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_mirrored_positions_follower_created", "follower_id", "created_at"),
    )

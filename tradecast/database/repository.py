"""
Database Repository
===================
Data access layer: engine/session lifecycle and the SQL-backed record
store. ORM rows are converted to immutable domain objects here and never
leave this module.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from tradecast.core.config import settings
from tradecast.core.exceptions import TradecastError, TradeNotFoundError
from tradecast.core.logging_config import get_logger
from tradecast.database.models import (
    AutomationRow,
    Base,
    ChannelRow,
    DeliveryRecordRow,
    FollowerAccountRow,
    MessageTemplateRow,
    MirroredPositionRow,
    TradeRow,
)
from tradecast.domain.models import (
    Automation,
    Channel,
    DeliveryRecord,
    FollowerAccount,
    InlineButton,
    MessageTemplate,
    MirroredPosition,
    TargetStatus,
    Trade,
    TradeSide,
    TradeStatus,
    TriggerType,
)

logger = get_logger("database")


# =============================================================================
# Database Engine & Session
# =============================================================================

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None


def create_engine(url: Optional[str] = None) -> AsyncEngine:
    """Create an async engine; pool sizing only applies to server databases."""
    url = url or settings.async_db_url
    options = {"echo": settings.debug, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        options.update(pool_size=5, max_overflow=10)
    return create_async_engine(url, **options)


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_engine()
    return _engine


def get_session_factory() -> async_sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


@asynccontextmanager
async def get_session(
    factory: Optional[async_sessionmaker] = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Async context manager for database sessions.

    Usage:
        async with get_session() as session:
            # do database operations
            await session.commit()
    """
    async with (factory or get_session_factory())() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_database(engine: Optional[AsyncEngine] = None) -> None:
    """Initialize database tables."""
    async with (engine or get_engine()).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized")


async def close_database() -> None:
    """Close database connections."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("Database connections closed")


# =============================================================================
# Row <-> Domain Mapping
# =============================================================================

def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; stored values are always UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _trade_to_domain(row: TradeRow) -> Trade:
    return Trade(
        id=row.id,
        trade_id=row.trade_id,
        pair=row.pair,
        side=row.side,
        price=row.price,
        leverage=row.leverage,
        total=row.total,
        fee=row.fee,
        stop_loss=row.stop_loss,
        safebook_price=row.safebook_price,
        target_1=row.target_1,
        target_2=row.target_2,
        target_3=row.target_3,
        target_status=TargetStatus.from_raw(row.target_status),
        status=row.status,
        completion_reason=row.completion_reason,
        notes=row.notes,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


_TRADE_FIELDS = (
    "trade_id", "pair", "side", "price", "leverage", "total", "fee",
    "stop_loss", "safebook_price", "target_1", "target_2", "target_3",
    "status", "completion_reason", "notes", "created_at", "updated_at",
)


def _apply_trade(row: TradeRow, trade: Trade) -> TradeRow:
    for name in _TRADE_FIELDS:
        setattr(row, name, getattr(trade, name))
    row.target_status = trade.target_status.to_dict()
    return row


def _channel_to_domain(row: ChannelRow) -> Channel:
    return Channel(
        id=row.id,
        name=row.name,
        chat_id=row.chat_id,
        is_active=row.is_active,
        description=row.description,
    )


def _template_to_domain(row: MessageTemplateRow) -> MessageTemplate:
    return MessageTemplate(
        id=row.id,
        name=row.name,
        body=row.body,
        template_type=row.template_type,
        include_fields=tuple(row.include_fields or ()),
        buttons=tuple(
            tuple(InlineButton.from_raw(button) for button in buttons_row)
            for buttons_row in (row.buttons or ())
        ),
        parse_mode=row.parse_mode,
        image_url=row.image_url,
        is_active=row.is_active,
    )


def _automation_to_domain(row: AutomationRow) -> Automation:
    return Automation(
        id=row.id,
        name=row.name,
        trigger_type=row.trigger_type,
        channel_id=row.channel_id,
        template_id=row.template_id,
        is_active=row.is_active,
        scheduled_time=row.scheduled_time,
        scheduled_days=tuple(day.lower() for day in (row.scheduled_days or ())),
    )


def _record_to_domain(row: DeliveryRecordRow) -> DeliveryRecord:
    return DeliveryRecord(
        id=row.id,
        automation_id=row.automation_id,
        trade_id=row.trade_id,
        channel_id=row.channel_id,
        text=row.text,
        outcome=row.outcome,
        kind=row.kind,
        trigger_type=row.trigger_type,
        message_id=row.message_id,
        reply_to_message_id=row.reply_to_message_id,
        error=row.error,
        created_at=_aware(row.created_at),
    )


def _follower_to_domain(row: FollowerAccountRow) -> FollowerAccount:
    return FollowerAccount(
        id=row.id,
        name=row.name,
        risk_percent=row.risk_percent,
        fund_amount=row.fund_amount,
        max_trades_per_day=row.max_trades_per_day,
        pair_filter=tuple(row.pair_filter or ()),
        side_filter=tuple(TradeSide(side) for side in (row.side_filter or ())),
        is_active=row.is_active,
        wallet_balance=row.wallet_balance,
        balance_updated_at=_aware(row.balance_updated_at),
    )


def _position_to_domain(row: MirroredPositionRow) -> MirroredPosition:
    return MirroredPosition(
        id=row.id,
        trade_id=row.trade_id,
        follower_id=row.follower_id,
        pair=row.pair,
        side=row.side,
        entry_price=row.entry_price,
        quantity=row.quantity,
        leverage=row.leverage,
        status=row.status,
        order_id=row.order_id,
        error=row.error,
        pnl=row.pnl,
        exit_price=row.exit_price,
        created_at=_aware(row.created_at),
    )


_POSITION_FIELDS = (
    "trade_id", "follower_id", "pair", "side", "entry_price", "quantity",
    "leverage", "status", "order_id", "error", "pnl", "exit_price", "created_at",
)


# =============================================================================
# SQL Record Store
# =============================================================================

class SqlRecordStore:
    """
    Record store backed by SQLAlchemy async sessions.

    Every call runs in its own session and commits before returning.

    Usage:
        store = SqlRecordStore(get_session_factory())
        trade = await store.get_trade(trade_id)
    """

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self._factory = session_factory or get_session_factory()

    def _session(self):
        return get_session(self._factory)

    # -------------------------------------------------------------------------
    # Trades
    # -------------------------------------------------------------------------

    async def get_trade(self, id: str) -> Optional[Trade]:
        async with self._session() as session:
            row = await session.get(TradeRow, id)
            return _trade_to_domain(row) if row else None

    async def get_trade_by_external_id(self, trade_id: str) -> Optional[Trade]:
        async with self._session() as session:
            result = await session.execute(select(TradeRow).where(TradeRow.trade_id == trade_id))
            row = result.scalar_one_or_none()
            return _trade_to_domain(row) if row else None

    async def list_trades(self, status: Optional[TradeStatus] = None) -> list[Trade]:
        query = select(TradeRow).order_by(TradeRow.created_at)
        if status is not None:
            query = query.where(TradeRow.status == status)
        async with self._session() as session:
            result = await session.execute(query)
            return [_trade_to_domain(row) for row in result.scalars()]

    async def create_trade(self, trade: Trade) -> Trade:
        async with self._session() as session:
            row = _apply_trade(TradeRow(id=trade.id), trade)
            session.add(row)
            await session.commit()
            logger.debug("Trade created", id=trade.id, trade_id=trade.trade_id)
            return _trade_to_domain(row)

    async def update_trade(self, trade: Trade) -> Trade:
        async with self._session() as session:
            row = await session.get(TradeRow, trade.id)
            if row is None:
                raise TradeNotFoundError(trade.id)
            _apply_trade(row, trade)
            await session.commit()
            return _trade_to_domain(row)

    # -------------------------------------------------------------------------
    # Automations, channels, templates
    # -------------------------------------------------------------------------

    async def list_automations(
        self,
        trigger_type: Optional[TriggerType] = None,
        active_only: bool = True,
    ) -> list[Automation]:
        query = select(AutomationRow).order_by(AutomationRow.created_at)
        if trigger_type is not None:
            query = query.where(AutomationRow.trigger_type == trigger_type)
        if active_only:
            query = query.where(AutomationRow.is_active.is_(True))
        async with self._session() as session:
            result = await session.execute(query)
            return [_automation_to_domain(row) for row in result.scalars()]

    async def create_automation(self, automation: Automation) -> Automation:
        async with self._session() as session:
            row = AutomationRow(
                id=automation.id,
                name=automation.name,
                trigger_type=automation.trigger_type,
                channel_id=automation.channel_id,
                template_id=automation.template_id,
                is_active=automation.is_active,
                scheduled_time=automation.scheduled_time,
                scheduled_days=list(automation.scheduled_days),
            )
            session.add(row)
            await session.commit()
            return _automation_to_domain(row)

    async def get_channel(self, id: str) -> Optional[Channel]:
        async with self._session() as session:
            row = await session.get(ChannelRow, id)
            return _channel_to_domain(row) if row else None

    async def list_channels(self) -> list[Channel]:
        async with self._session() as session:
            result = await session.execute(select(ChannelRow).order_by(ChannelRow.created_at))
            return [_channel_to_domain(row) for row in result.scalars()]

    async def create_channel(self, channel: Channel) -> Channel:
        async with self._session() as session:
            row = ChannelRow(
                id=channel.id,
                name=channel.name,
                chat_id=channel.chat_id,
                description=channel.description,
                is_active=channel.is_active,
            )
            session.add(row)
            await session.commit()
            return _channel_to_domain(row)

    async def get_template(self, id: str) -> Optional[MessageTemplate]:
        async with self._session() as session:
            row = await session.get(MessageTemplateRow, id)
            return _template_to_domain(row) if row else None

    async def create_template(self, template: MessageTemplate) -> MessageTemplate:
        async with self._session() as session:
            row = MessageTemplateRow(
                id=template.id,
                name=template.name,
                body=template.body,
                template_type=template.template_type,
                include_fields=list(template.include_fields),
                buttons=[[button.to_dict() for button in row] for row in template.buttons],
                parse_mode=template.parse_mode,
                image_url=template.image_url,
                is_active=template.is_active,
            )
            session.add(row)
            await session.commit()
            return _template_to_domain(row)

    # -------------------------------------------------------------------------
    # Delivery records
    # -------------------------------------------------------------------------

    async def create_delivery_record(self, record: DeliveryRecord) -> DeliveryRecord:
        async with self._session() as session:
            row = DeliveryRecordRow(
                id=record.id,
                automation_id=record.automation_id,
                trade_id=record.trade_id,
                channel_id=record.channel_id,
                trigger_type=record.trigger_type,
                text=record.text,
                outcome=record.outcome,
                kind=record.kind,
                message_id=record.message_id,
                reply_to_message_id=record.reply_to_message_id,
                error=record.error,
                created_at=record.created_at,
            )
            session.add(row)
            await session.commit()
            return _record_to_domain(row)

    async def list_delivery_records(
        self,
        trade_id: Optional[str] = None,
        channel_ids: Optional[list[str]] = None,
    ) -> list[DeliveryRecord]:
        query = select(DeliveryRecordRow).order_by(DeliveryRecordRow.created_at)
        if trade_id is not None:
            query = query.where(DeliveryRecordRow.trade_id == trade_id)
        if channel_ids is not None:
            query = query.where(DeliveryRecordRow.channel_id.in_(channel_ids))
        async with self._session() as session:
            result = await session.execute(query)
            return [_record_to_domain(row) for row in result.scalars()]

    # -------------------------------------------------------------------------
    # Copy trading
    # -------------------------------------------------------------------------

    async def list_followers(self, active_only: bool = True) -> list[FollowerAccount]:
        query = select(FollowerAccountRow).order_by(FollowerAccountRow.created_at)
        if active_only:
            query = query.where(FollowerAccountRow.is_active.is_(True))
        async with self._session() as session:
            result = await session.execute(query)
            return [_follower_to_domain(row) for row in result.scalars()]

    async def create_follower(self, follower: FollowerAccount) -> FollowerAccount:
        async with self._session() as session:
            row = FollowerAccountRow(id=follower.id)
            self._apply_follower(row, follower)
            session.add(row)
            await session.commit()
            return _follower_to_domain(row)

    async def update_follower(self, follower: FollowerAccount) -> FollowerAccount:
        async with self._session() as session:
            row = await session.get(FollowerAccountRow, follower.id)
            if row is None:
                raise TradecastError("Follower not found", {"follower_id": follower.id})
            self._apply_follower(row, follower)
            await session.commit()
            return _follower_to_domain(row)

    @staticmethod
    def _apply_follower(row: FollowerAccountRow, follower: FollowerAccount) -> None:
        row.name = follower.name
        row.risk_percent = follower.risk_percent
        row.fund_amount = follower.fund_amount
        row.max_trades_per_day = follower.max_trades_per_day
        row.pair_filter = list(follower.pair_filter)
        row.side_filter = [side.value for side in follower.side_filter]
        row.is_active = follower.is_active
        row.wallet_balance = follower.wallet_balance
        row.balance_updated_at = follower.balance_updated_at

    async def list_mirrored_positions(
        self,
        trade_id: Optional[str] = None,
        follower_id: Optional[str] = None,
    ) -> list[MirroredPosition]:
        query = select(MirroredPositionRow).order_by(MirroredPositionRow.created_at)
        if trade_id is not None:
            query = query.where(MirroredPositionRow.trade_id == trade_id)
        if follower_id is not None:
            query = query.where(MirroredPositionRow.follower_id == follower_id)
        async with self._session() as session:
            result = await session.execute(query)
            return [_position_to_domain(row) for row in result.scalars()]

    async def count_mirrored_positions_since(self, follower_id: str, since: datetime) -> int:
        query = (
            select(func.count())
            .select_from(MirroredPositionRow)
            .where(MirroredPositionRow.follower_id == follower_id)
            .where(MirroredPositionRow.created_at >= since)
        )
        async with self._session() as session:
            result = await session.execute(query)
            return result.scalar_one()

    async def create_mirrored_position(self, position: MirroredPosition) -> MirroredPosition:
        async with self._session() as session:
            row = MirroredPositionRow(id=position.id)
            for name in _POSITION_FIELDS:
                setattr(row, name, getattr(position, name))
            session.add(row)
            await session.commit()
            return _position_to_domain(row)

    async def update_mirrored_position(self, position: MirroredPosition) -> MirroredPosition:
        async with self._session() as session:
            row = await session.get(MirroredPositionRow, position.id)
            if row is None:
                raise TradecastError("Mirrored position not found", {"position_id": position.id})
            for name in _POSITION_FIELDS:
                setattr(row, name, getattr(position, name))
            await session.commit()
            return _position_to_domain(row)

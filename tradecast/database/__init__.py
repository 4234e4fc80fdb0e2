"""
Database Module
===============
Record store contract, SQL models, and connection management.
"""

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
from tradecast.database.repository import (
    SqlRecordStore,
    close_database,
    create_engine,
    get_engine,
    get_session,
    get_session_factory,
    init_database,
)
from tradecast.database.store import RecordStore

__all__ = [
    # Models
    "Base",
    "TradeRow",
    "ChannelRow",
    "MessageTemplateRow",
    "AutomationRow",
    "DeliveryRecordRow",
    "FollowerAccountRow",
    "MirroredPositionRow",
    # Database
    "create_engine",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_database",
    "close_database",
    # Store
    "RecordStore",
    "SqlRecordStore",
]

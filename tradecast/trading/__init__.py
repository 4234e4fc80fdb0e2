"""
Trading module - trade lifecycle and ingestion.
"""

from tradecast.trading.ingestion import SyncResult, TradeIngestionService, position_to_trade
from tradecast.trading.service import CompleteTradeRequest, TradeLifecycleService
from tradecast.trading.state_machine import TradeStateMachine, Transition

__all__ = [
    "CompleteTradeRequest",
    "SyncResult",
    "TradeIngestionService",
    "TradeLifecycleService",
    "TradeStateMachine",
    "Transition",
    "position_to_trade",
]

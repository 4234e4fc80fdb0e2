"""
Tradecast
=========

Trade lifecycle tracking and channel notification system for
leveraged futures positions.

Modules:
    - core: Configuration, logging, and shared utilities
    - domain: Trade, automation and delivery data model
    - trading: Target state machine, lifecycle service and ingestion
    - notifications: Template rendering, Telegram transport and delivery pipeline
    - automation: Trigger-to-automation matching
    - scheduler: Tick-driven scheduled automations and refresh jobs
    - risk: Risk-based position sizing for mirrored trades
    - copytrading: Follower mirroring, wallet and P&L refresh
    - database: Record store contract and SQLAlchemy implementation
"""

__version__ = "1.0.0"
__author__ = "Tradecast"

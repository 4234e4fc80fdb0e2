"""
Core Module
===========
Core utilities, configuration, and shared components.
"""

from tradecast.core.config import Environment, Settings, get_settings, settings
from tradecast.core.logging_config import (
    get_logger,
    setup_logging,
    Loggers,
    LogMessages,
    TradeContextLogger
)
from tradecast.core.exceptions import (
    TradecastError,
    ConfigurationError,
    ValidationError,
    TradeError,
    TradeNotFoundError,
    InvalidStateError,
    NotificationError,
    TransportError,
    ReplyTargetInvalidError,
    TransportUnavailableError,
    RateLimitError,
    ExchangeError,
)

__all__ = [
    # Configuration
    "Environment",
    "Settings",
    "get_settings",
    "settings",
    # Logging
    "get_logger",
    "setup_logging",
    "Loggers",
    "LogMessages",
    "TradeContextLogger",
    # Exceptions
    "TradecastError",
    "ConfigurationError",
    "ValidationError",
    "TradeError",
    "TradeNotFoundError",
    "InvalidStateError",
    "NotificationError",
    "TransportError",
    "ReplyTargetInvalidError",
    "TransportUnavailableError",
    "RateLimitError",
    "ExchangeError",
]

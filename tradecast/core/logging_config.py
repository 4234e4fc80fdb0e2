"""
Logging Configuration
=====================
structlog on top of the stdlib logging module.

Every entry carries the app name and environment. Inside a
``TradeContextLogger`` block it also carries the trade id, pair and
trigger being processed; that context lives in contextvars, so
concurrently running jobs never see each other's trade.
"""

import logging
import re
import sys
from pathlib import Path
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor

from tradecast.core.config import settings

SENSITIVE_KEYS = ("password", "token", "secret", "api_key", "authorization")
REDACTED = "***REDACTED***"

# <bot id>:<secret> as embedded in Telegram Bot API URLs
_BOT_TOKEN_PATTERN = re.compile(r"(?<!\d)\d{6,}:[A-Za-z0-9_-]{30,}")


def add_app_context(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict.setdefault("app", settings.app_name)
    event_dict.setdefault("env", settings.app_env.value)
    return event_dict


def censor_sensitive_data(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """
    Mask secrets before rendering.

    Values under credential-like keys are replaced outright. Bot tokens
    are also scrubbed from string values, since the Telegram client logs
    request URLs and error texts that embed them.
    """
    for key, value in list(event_dict.items()):
        if any(sensitive in key.lower() for sensitive in SENSITIVE_KEYS):
            event_dict[key] = REDACTED
        elif isinstance(value, str) and _BOT_TOKEN_PATTERN.search(value):
            event_dict[key] = _BOT_TOKEN_PATTERN.sub(REDACTED, value)
    return event_dict


class TradeContextLogger:
    """
    Bind trade context to every log entry emitted inside the block.

    Usage:
        with TradeContextLogger(trade_id="B-BTC_USDT_1700000000", pair="BTC_USDT"):
            logger.info("Dispatching automations", trigger="target_1_hit")

    Blocks nest: on exit the outer block's values are restored.
    """

    def __init__(
        self,
        trade_id: Optional[str] = None,
        pair: Optional[str] = None,
        trigger: Optional[str] = None,
        **extra: Any,
    ):
        context = {"trade_id": trade_id, "pair": pair, "trigger": trigger, **extra}
        self.context = {key: value for key, value in context.items() if value is not None}
        self._tokens: dict = {}

    def __enter__(self) -> "TradeContextLogger":
        self._tokens = structlog.contextvars.bind_contextvars(**self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)
        self._tokens = {}


def setup_logging(
    log_level: Optional[str] = None,
    log_file: Optional[Path] = None,
    json_format: bool = False
) -> structlog.BoundLogger:
    """
    Configure structlog and the root logger.

    Args:
        log_level: Overrides ``settings.log_level``
        log_file: Also write entries to this file
        json_format: Render JSON lines instead of the console format

    Returns:
        A logger using the new configuration
    """
    level = (log_level or settings.log_level).upper()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_app_context,
        censor_sensitive_data,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format or settings.is_production:
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=sys.stdout.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Records from third-party stdlib loggers go through the same chain
    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    root_logger = logging.getLogger()
    for handler in handlers:
        handler.setFormatter(formatter)
    root_logger.handlers = handlers
    root_logger.setLevel(level)

    for noisy in ("httpx", "telegram", "sqlalchemy.engine", "aiosqlite"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return structlog.get_logger("tradecast")


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """Logger bound to a component name (shown as ``component``)."""
    logger = structlog.get_logger()
    return logger.bind(component=name) if name else logger


class Loggers:
    """One logger per subsystem."""

    @staticmethod
    def trades() -> structlog.BoundLogger:
        return get_logger("trades")

    @staticmethod
    def automation() -> structlog.BoundLogger:
        return get_logger("automation")

    @staticmethod
    def delivery() -> structlog.BoundLogger:
        return get_logger("delivery")

    @staticmethod
    def scheduler() -> structlog.BoundLogger:
        return get_logger("scheduler")

    @staticmethod
    def risk() -> structlog.BoundLogger:
        return get_logger("risk")

    @staticmethod
    def copy_trading() -> structlog.BoundLogger:
        return get_logger("copy_trading")


class LogMessages:
    """Event names shared across modules, so log searches stay stable."""

    # Trade events
    TRADE_REGISTERED = "Trade registered"
    TARGET_FLAG_SET = "Target flag set"
    TARGET_FLAG_CLEARED = "Target flag cleared"
    TRADE_COMPLETED = "Trade completed"
    TRADE_REOPENED = "Trade reopened"

    # Automation events
    AUTOMATIONS_MATCHED = "Automations matched"
    AUTOMATION_SKIPPED = "Automation skipped"
    REPLY_TARGET_MISSING = "Original message not found, sending as new message"

    # Delivery events
    DELIVERY_SENT = "Message delivered"
    DELIVERY_FAILED = "Message delivery failed"

    # System events
    SYSTEM_STARTED = "Tradecast started"
    SYSTEM_STOPPED = "Tradecast stopped"
    SCHEDULER_STARTED = "Scheduler started"
    SCHEDULER_STOPPED = "Scheduler stopped"
    JOB_FAILED = "Scheduler job failed"

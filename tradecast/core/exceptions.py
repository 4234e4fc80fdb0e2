"""
Custom Exceptions
=================
Centralized exception definitions for the trade notification system.
Using specific exceptions helps with error handling and debugging.
"""

from typing import Any, Optional


class TradecastError(Exception):
    """Base exception for all Tradecast errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(TradecastError):
    """Raised when a channel, template or service is missing or disabled."""
    pass


class ChannelUnavailableError(ConfigurationError):
    """Raised when an automation's channel is missing or inactive."""

    def __init__(self, automation_id: str, channel_id: str):
        super().__init__(
            "Channel not found or inactive",
            {"automation_id": automation_id, "channel_id": channel_id}
        )


class TemplateUnavailableError(ConfigurationError):
    """Raised when an automation's template is missing or inactive."""

    def __init__(self, automation_id: str, template_id: str):
        super().__init__(
            "Template not found or inactive",
            {"automation_id": automation_id, "template_id": template_id}
        )


# =============================================================================
# Validation Errors
# =============================================================================

class ValidationError(TradecastError):
    """Raised when input is malformed (surfaced to the caller)."""
    pass


class TemplateDefinitionError(ValidationError):
    """Raised when a template definition is inconsistent with its type."""

    def __init__(self, template_name: str, placeholders: list[str]):
        super().__init__(
            f"Simple template '{template_name}' must not contain placeholders",
            {"placeholders": placeholders}
        )


# =============================================================================
# Trade Lifecycle Errors
# =============================================================================

class TradeError(TradecastError):
    """Base class for trade lifecycle errors."""
    pass


class TradeNotFoundError(TradeError):
    """Raised when a trade id does not resolve to a record."""

    def __init__(self, trade_id: str):
        super().__init__(
            f"Trade {trade_id} not found",
            {"trade_id": trade_id}
        )


class InvalidStateError(TradeError):
    """Raised when an operation is attempted on a trade in the wrong status."""

    def __init__(self, message: str, trade_id: str, status: str):
        super().__init__(
            message,
            {"trade_id": trade_id, "status": status}
        )


# =============================================================================
# Notification Errors
# =============================================================================

class NotificationError(TradecastError):
    """Base class for notification-related errors."""
    pass


class TransportError(NotificationError):
    """
    Raised when the transport rejected a single send.

    The delivery pipeline treats this as a stage failure and moves on
    to the next fallback stage.
    """

    def __init__(self, message: str, error_details: Optional[str] = None):
        super().__init__(message, {"error_details": error_details} if error_details else None)


class ReplyTargetInvalidError(TransportError):
    """Raised when the message being replied to no longer exists or is invalid."""
    pass


class TransportUnavailableError(NotificationError):
    """
    Raised when the transport could not be reached at all.

    Not a stage failure: the pipeline records the attempt as failed
    at its outermost boundary.
    """
    pass


class RateLimitError(TransportUnavailableError):
    """Raised when the transport asks us to back off."""

    def __init__(self, retry_after_seconds: float):
        super().__init__(
            "Rate limit exceeded",
            {"retry_after_seconds": retry_after_seconds}
        )


# =============================================================================
# Exchange Errors
# =============================================================================

class ExchangeError(TradecastError):
    """Raised when the exchange client reports a failure."""
    pass

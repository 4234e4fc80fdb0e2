"""
Notifications module - template rendering and channel delivery.
"""

from tradecast.notifications.delivery import (
    DeliveryPipeline,
    DeliveryRequest,
    is_reply_error,
)
from tradecast.notifications.media import resolve_image_url
from tradecast.notifications.renderer import RenderedMessage, TemplateRenderer
from tradecast.notifications.transport import Transport

__all__ = [
    "DeliveryPipeline",
    "DeliveryRequest",
    "RenderedMessage",
    "TemplateRenderer",
    "Transport",
    "is_reply_error",
    "resolve_image_url",
]

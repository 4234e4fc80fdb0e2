"""
Transport Contract
==================

Capability consumed by the delivery pipeline. Implementations return the
delivered message id or raise:

* ``TransportError`` / ``ReplyTargetInvalidError`` when the channel
  rejected this particular send (the pipeline falls back);
* ``TransportUnavailableError`` / ``RateLimitError`` when the channel
  could not be reached (the pipeline records a failure).
"""

from typing import Optional, Protocol

from tradecast.domain.models import ParseMode
from tradecast.notifications.renderer import ButtonRows


class Transport(Protocol):
    """Send-text / send-photo capability of a notification channel."""

    caption_limit: int

    async def send_text(
        self,
        chat_id: str,
        text: str,
        parse_mode: ParseMode,
        reply_to: Optional[str] = None,
        buttons: ButtonRows = (),
        disable_preview: bool = True,
    ) -> str:
        ...

    async def send_photo(
        self,
        chat_id: str,
        photo_url: str,
        caption: str,
        parse_mode: ParseMode,
        reply_to: Optional[str] = None,
        buttons: ButtonRows = (),
    ) -> str:
        ...

"""
Delivery Pipeline
=================

Pushes a rendered message through a transport with a fixed fallback
cascade and persists exactly one DeliveryRecord for the final outcome.

Cascade:
    photo (with reply) -> photo without reply -> text with image link
    text (with reply) -> text without reply

Stage rejections (``TransportError``) move to the next stage. Anything
else (network failures, rate limiting, bugs) ends the cascade and is
recorded as failed. ``deliver`` never raises for a delivery problem.
"""

import html
from dataclasses import dataclass
from typing import Optional, Union

from tradecast.core.exceptions import ReplyTargetInvalidError, TransportError
from tradecast.core.logging_config import LogMessages, Loggers
from tradecast.database.store import RecordStore
from tradecast.domain.models import (
    DeliveryKind,
    DeliveryOutcome,
    DeliveryRecord,
    ParseMode,
    TriggerType,
)
from tradecast.notifications.media import resolve_image_url
from tradecast.notifications.renderer import RenderedMessage
from tradecast.notifications.transport import Transport

logger = Loggers.delivery()

# Lowercase substrings of transport errors caused by a stale reply target
REPLY_ERROR_MARKERS: tuple[str, ...] = (
    "replied message not found",
    "reply message not found",
    "message to reply not found",
    "message to be replied not found",
    "reply_message_not_found",
    "message_id_invalid",
    "invalid message id",
    "invalid message id to reply",
    "replied message is deleted",
)


def is_reply_error(error: Union[BaseException, str]) -> bool:
    """True if the error means the reply target is gone or invalid."""
    if isinstance(error, ReplyTargetInvalidError):
        return True
    text = str(error).lower()
    return any(marker in text for marker in REPLY_ERROR_MARKERS)


def append_image_link(text: str, image_url: str, parse_mode: ParseMode) -> str:
    """Text fallback for a photo: the caption followed by a link to the image."""
    if parse_mode == ParseMode.HTML:
        link = f'<a href="{html.escape(image_url, quote=True)}">View Image</a>'
    else:
        link = f"[View Image]({image_url})"
    return f"{text}\n\n📷 {link}"


@dataclass(frozen=True)
class DeliveryRequest:
    """One rendered message bound for one channel."""
    channel_id: str
    chat_id: str
    message: RenderedMessage
    automation_id: Optional[str] = None
    trade_id: Optional[str] = None
    trigger_type: Optional[TriggerType] = None
    reply_to: Optional[str] = None


class _Attempt:
    """Mutable progress of one cascade; becomes the DeliveryRecord."""

    def __init__(self, reply_to: Optional[str]):
        self.kind = DeliveryKind.TEXT
        self.reply_to = reply_to
        self.outcome = DeliveryOutcome.FAILED
        self.message_id: Optional[str] = None
        self.error: Optional[str] = None

    def stage(self, kind: DeliveryKind, reply_to: Optional[str]) -> None:
        self.kind = kind
        self.reply_to = reply_to

    def sent(self, message_id: str) -> None:
        self.outcome = DeliveryOutcome.SENT
        self.message_id = str(message_id) if message_id is not None else None
        self.error = None

    def failed(self, error: BaseException) -> None:
        self.outcome = DeliveryOutcome.FAILED
        self.message_id = None
        self.error = str(error) or type(error).__name__


class DeliveryPipeline:
    """
    Deliver rendered messages and record the outcome.

    Usage:
        pipeline = DeliveryPipeline(transport, store, settings.public_base_url)
        record = await pipeline.deliver(request)
    """

    def __init__(
        self,
        transport: Transport,
        store: RecordStore,
        public_base_url: Optional[str] = None,
    ):
        self.transport = transport
        self.store = store
        self.public_base_url = public_base_url

    async def deliver(self, request: DeliveryRequest) -> DeliveryRecord:
        """
        Run the cascade and persist one record describing its final outcome.

        Args:
            request: Rendered message, destination and optional reply target

        Returns:
            The persisted DeliveryRecord
        """
        attempt = _Attempt(request.reply_to)

        try:
            await self._run_cascade(request, attempt)
        except Exception as e:
            logger.exception(
                "Delivery aborted",
                channel_id=request.channel_id,
                automation_id=request.automation_id,
                error_type=type(e).__name__,
            )
            attempt.failed(e)

        record = DeliveryRecord(
            automation_id=request.automation_id,
            trade_id=request.trade_id,
            channel_id=request.channel_id,
            text=request.message.text,
            outcome=attempt.outcome,
            kind=attempt.kind,
            trigger_type=request.trigger_type,
            message_id=attempt.message_id,
            reply_to_message_id=attempt.reply_to,
            error=attempt.error,
        )

        if record.is_sent:
            logger.info(
                LogMessages.DELIVERY_SENT,
                channel_id=record.channel_id,
                message_id=record.message_id,
                kind=record.kind.value,
            )
        else:
            logger.error(
                LogMessages.DELIVERY_FAILED,
                channel_id=record.channel_id,
                kind=record.kind.value,
                error=record.error,
            )

        return await self.store.create_delivery_record(record)

    # =========================================================================
    # Cascade stages
    # =========================================================================

    async def _run_cascade(self, request: DeliveryRequest, attempt: _Attempt) -> None:
        message = request.message
        image_url = resolve_image_url(message.image_url, self.public_base_url)

        if image_url is None:
            await self._send_text(
                request, attempt, message.text,
                DeliveryKind.TEXT, DeliveryKind.TEXT_NO_REPLY,
            )
            return

        linked_text = append_image_link(message.text, image_url, message.parse_mode)

        if len(message.text) > self.transport.caption_limit:
            logger.debug(
                "Caption exceeds limit, sending text with image link",
                length=len(message.text),
                limit=self.transport.caption_limit,
            )
            await self._send_text(
                request, attempt, linked_text,
                DeliveryKind.TEXT_FALLBACK, DeliveryKind.TEXT_FALLBACK_NO_REPLY,
                disable_preview=False,
            )
            return

        await self._send_photo(request, attempt, image_url, linked_text)

    async def _send_photo(
        self,
        request: DeliveryRequest,
        attempt: _Attempt,
        image_url: str,
        linked_text: str,
    ) -> None:
        message = request.message
        attempt.stage(DeliveryKind.PHOTO, request.reply_to)
        try:
            message_id = await self.transport.send_photo(
                request.chat_id,
                image_url,
                message.text,
                message.parse_mode,
                reply_to=request.reply_to,
                buttons=message.buttons,
            )
            attempt.sent(message_id)
            return
        except TransportError as e:
            photo_error = e

        if request.reply_to and is_reply_error(photo_error):
            logger.warning("Reply target invalid, resending photo without reply", error=str(photo_error))
            attempt.stage(DeliveryKind.PHOTO_NO_REPLY, None)
            try:
                message_id = await self.transport.send_photo(
                    request.chat_id,
                    image_url,
                    message.text,
                    message.parse_mode,
                    buttons=message.buttons,
                )
                attempt.sent(message_id)
                return
            except TransportError as e:
                logger.warning("Photo without reply failed, falling back to text", error=str(e))

            attempt.stage(DeliveryKind.TEXT_FALLBACK_NO_REPLY, None)
            try:
                message_id = await self.transport.send_text(
                    request.chat_id,
                    linked_text,
                    message.parse_mode,
                    buttons=message.buttons,
                    disable_preview=False,
                )
                attempt.sent(message_id)
            except TransportError as e:
                attempt.failed(e)
            return

        logger.warning("Photo send failed, falling back to text", error=str(photo_error))
        await self._send_text(
            request, attempt, linked_text,
            DeliveryKind.TEXT_FALLBACK, DeliveryKind.TEXT_FALLBACK_NO_REPLY,
            disable_preview=False,
        )

    async def _send_text(
        self,
        request: DeliveryRequest,
        attempt: _Attempt,
        text: str,
        kind: DeliveryKind,
        kind_without_reply: DeliveryKind,
        disable_preview: bool = True,
    ) -> None:
        """Send text with the reply target, retrying once without it on a reply error."""
        message = request.message
        attempt.stage(kind, request.reply_to)
        try:
            message_id = await self.transport.send_text(
                request.chat_id,
                text,
                message.parse_mode,
                reply_to=request.reply_to,
                buttons=message.buttons,
                disable_preview=disable_preview,
            )
            attempt.sent(message_id)
            return
        except TransportError as e:
            if not (request.reply_to and is_reply_error(e)):
                attempt.failed(e)
                return
            logger.warning("Reply target invalid, resending without reply", error=str(e))

        attempt.stage(kind_without_reply, None)
        try:
            message_id = await self.transport.send_text(
                request.chat_id,
                text,
                message.parse_mode,
                buttons=message.buttons,
                disable_preview=disable_preview,
            )
            attempt.sent(message_id)
        except TransportError as e:
            attempt.failed(e)

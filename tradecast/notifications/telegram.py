"""
Telegram Transport
==================

Async Telegram transport using the python-telegram-bot library.
Maps Telegram API errors onto the transport error contract.
"""

from datetime import timedelta
from typing import Optional

from telegram import (
    Bot,
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    LinkPreviewOptions,
    ReplyParameters,
)
from telegram.constants import ParseMode as TelegramParseMode
from telegram.error import BadRequest, NetworkError, RetryAfter, TelegramError

from tradecast.core.config import Settings
from tradecast.core.exceptions import (
    ConfigurationError,
    RateLimitError,
    ReplyTargetInvalidError,
    TransportError,
    TransportUnavailableError,
)
from tradecast.core.logging_config import get_logger
from tradecast.domain.models import ParseMode
from tradecast.notifications.delivery import is_reply_error
from tradecast.notifications.renderer import ButtonRows

logger = get_logger("telegram_transport")

_PARSE_MODES = {
    ParseMode.HTML: TelegramParseMode.HTML,
    ParseMode.MARKDOWN: TelegramParseMode.MARKDOWN,
}


def build_keyboard(buttons: ButtonRows) -> Optional[InlineKeyboardMarkup]:
    """
    Inline keyboard for rendered button rows.

    Telegram rejects inline buttons without an action, so text-only
    buttons are dropped, as are rows left empty.
    """
    rows = []
    for row in buttons:
        keyboard_row = []
        for button in row:
            if button.url:
                keyboard_row.append(InlineKeyboardButton(button.text, url=button.url))
            elif button.callback_data:
                keyboard_row.append(
                    InlineKeyboardButton(button.text, callback_data=button.callback_data)
                )
        if keyboard_row:
            rows.append(keyboard_row)
    return InlineKeyboardMarkup(rows) if rows else None


def translate_error(error: TelegramError) -> Exception:
    """Map a Telegram error onto the transport error contract."""
    if isinstance(error, RetryAfter):
        retry_after = error.retry_after
        if isinstance(retry_after, timedelta):
            retry_after = retry_after.total_seconds()
        return RateLimitError(float(retry_after))

    if isinstance(error, BadRequest):
        if is_reply_error(error.message):
            return ReplyTargetInvalidError("Reply target rejected", error.message)
        return TransportError("Telegram rejected the message", error.message)

    # BadRequest subclasses NetworkError, so this check must come after it
    if isinstance(error, NetworkError):
        return TransportUnavailableError("Telegram unreachable", {"error": error.message})

    return TransportError("Telegram rejected the message", error.message)


class TelegramTransport:
    """
    Send text and photos to Telegram chats.

    Usage:
        transport = TelegramTransport(settings)
        message_id = await transport.send_text(chat_id, "Hello", ParseMode.HTML)
    """

    def __init__(self, settings: Settings, bot: Optional[Bot] = None):
        """
        Initialize Telegram transport.

        Args:
            settings: Application settings containing Telegram configuration
            bot: Pre-built bot (tests inject a mock)
        """
        self.caption_limit = settings.telegram_caption_limit

        if bot is None:
            if not settings.telegram_bot_token:
                raise ConfigurationError("Telegram bot token not configured")
            bot = Bot(token=settings.telegram_bot_token)

        self._bot = bot
        logger.info("Telegram transport initialized", caption_limit=self.caption_limit)

    @staticmethod
    def _reply_parameters(reply_to: Optional[str]) -> Optional[ReplyParameters]:
        if not reply_to:
            return None
        try:
            return ReplyParameters(message_id=int(reply_to))
        except ValueError:
            raise ReplyTargetInvalidError(
                "Invalid message id to reply", f"reply_to={reply_to!r}"
            ) from None

    async def send_text(
        self,
        chat_id: str,
        text: str,
        parse_mode: ParseMode,
        reply_to: Optional[str] = None,
        buttons: ButtonRows = (),
        disable_preview: bool = True,
    ) -> str:
        reply_parameters = self._reply_parameters(reply_to)
        try:
            message = await self._bot.send_message(
                chat_id=chat_id,
                text=text,
                parse_mode=_PARSE_MODES[parse_mode],
                reply_parameters=reply_parameters,
                reply_markup=build_keyboard(buttons),
                link_preview_options=LinkPreviewOptions(is_disabled=disable_preview),
            )
        except TelegramError as e:
            logger.warning(
                "Telegram send_message failed",
                chat_id=chat_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise translate_error(e) from e

        return str(message.message_id)

    async def send_photo(
        self,
        chat_id: str,
        photo_url: str,
        caption: str,
        parse_mode: ParseMode,
        reply_to: Optional[str] = None,
        buttons: ButtonRows = (),
    ) -> str:
        reply_parameters = self._reply_parameters(reply_to)
        try:
            message = await self._bot.send_photo(
                chat_id=chat_id,
                photo=photo_url,
                caption=caption,
                parse_mode=_PARSE_MODES[parse_mode],
                reply_parameters=reply_parameters,
                reply_markup=build_keyboard(buttons),
            )
        except TelegramError as e:
            logger.warning(
                "Telegram send_photo failed",
                chat_id=chat_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise translate_error(e) from e

        return str(message.message_id)

    async def initialize(self) -> None:
        await self._bot.initialize()

    async def close(self) -> None:
        """Release the bot's HTTP resources."""
        await self._bot.shutdown()


class DisabledTransport:
    """
    Stand-in when Telegram is switched off.

    Every send fails as unavailable, so deliveries are still recorded.
    """

    def __init__(self, caption_limit: int = 1024):
        self.caption_limit = caption_limit
        logger.info("Telegram notifications disabled")

    async def send_text(self, chat_id: str, text: str, parse_mode: ParseMode, **kwargs) -> str:
        raise TransportUnavailableError("Telegram notifications disabled")

    async def send_photo(
        self, chat_id: str, photo_url: str, caption: str, parse_mode: ParseMode, **kwargs
    ) -> str:
        raise TransportUnavailableError("Telegram notifications disabled")

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        pass

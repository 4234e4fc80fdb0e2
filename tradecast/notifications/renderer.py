"""
Template Renderer
=================

Substitutes ``{placeholder}`` tokens in a message template and its
inline buttons from a trade snapshot.

Free-text trade fields are HTML-escaped. Known placeholders that end up
without a value are stripped; unknown tokens are left as literal text.
"""

import html
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping, Optional
from zoneinfo import ZoneInfo

from tradecast.domain.models import (
    PLACEHOLDER_PATTERN,
    InlineButton,
    MessageTemplate,
    ParseMode,
    TemplateType,
    Trade,
)

KNOWN_FIELDS: tuple[str, ...] = (
    "pair",
    "type",
    "price",
    "total",
    "leverage",
    "status",
    "tradeId",
    "timestamp",
    "fee",
    "stopLoss",
    "takeProfit1",
    "takeProfit2",
    "takeProfit3",
    "safebookPrice",
    "notes",
)

_FOUR_PLACES = Decimal("0.0001")

ButtonRows = tuple[tuple[InlineButton, ...], ...]


@dataclass(frozen=True)
class RenderedMessage:
    """A template rendered against a trade, ready for delivery."""
    text: str
    parse_mode: ParseMode
    buttons: ButtonRows = ()
    image_url: Optional[str] = None


def _four_places(value) -> str:
    return str(Decimal(str(value)).quantize(_FOUR_PLACES, rounding=ROUND_HALF_UP))


def _money(value) -> str:
    if value is None or value == "":
        return ""
    return f"${_four_places(value)}"


def _leverage(value) -> str:
    if value is None or value == "":
        return ""
    number = Decimal(str(value)).normalize()
    return f"{number:f}x"


def format_timestamp(moment: Optional[datetime], tz: ZoneInfo) -> str:
    """Indian-locale style: ``19/10/2026, 5:25:00 pm``."""
    if moment is None:
        return ""
    local = moment.astimezone(tz)
    hour = local.hour % 12 or 12
    meridiem = "am" if local.hour < 12 else "pm"
    return (
        f"{local.day:02d}/{local.month:02d}/{local.year}, "
        f"{hour}:{local.minute:02d}:{local.second:02d} {meridiem}"
    )


def build_variables(trade: Optional[Trade], tz: ZoneInfo) -> dict[str, str]:
    """Formatted value for every known placeholder; empty strings when absent."""
    if trade is None:
        return {name: "" for name in KNOWN_FIELDS}

    return {
        "pair": html.escape(trade.pair or ""),
        "type": html.escape(trade.side.value if trade.side else ""),
        "price": _money(trade.price),
        "total": _four_places(trade.total) if trade.total else "",
        "leverage": _leverage(trade.leverage),
        "status": html.escape(trade.status.value),
        "tradeId": html.escape(trade.trade_id or ""),
        "timestamp": format_timestamp(trade.created_at, tz),
        "fee": _money(trade.fee) if trade.fee else "$0.00",
        "stopLoss": _money(trade.stop_loss),
        "takeProfit1": _money(trade.target_1),
        "takeProfit2": _money(trade.target_2),
        "takeProfit3": _money(trade.target_3),
        "safebookPrice": _money(trade.safebook_price),
        "notes": html.escape(trade.notes or ""),
    }


def substitute(text: str, variables: Mapping[str, str], allowed: Iterable[str]) -> str:
    """
    Replace placeholders in a single pass.

    Allowed known names get their value, other known names are removed,
    unknown names are kept verbatim. Substituted values are never
    rescanned, so a note containing ``{price}`` stays literal.
    """
    allowed = set(allowed)

    def _replace(match) -> str:
        name = match.group(1)
        if name not in variables:
            return match.group(0)
        if name in allowed:
            return variables[name]
        return ""

    return PLACEHOLDER_PATTERN.sub(_replace, text)


class TemplateRenderer:
    """
    Render message templates for a trade (or for no trade, for simple templates).

    Usage:
        renderer = TemplateRenderer("Asia/Kolkata")
        message = renderer.render(template, trade)
    """

    def __init__(self, timezone: str = "Asia/Kolkata"):
        self.tz = ZoneInfo(timezone)

    def render_text(
        self,
        body: str,
        trade: Optional[Trade],
        include_fields: Iterable[str] = (),
    ) -> str:
        variables = build_variables(trade, self.tz)
        allowed = list(include_fields) or list(variables)
        return substitute(body, variables, allowed)

    def render_buttons(self, buttons: ButtonRows, trade: Optional[Trade]) -> ButtonRows:
        """Buttons use the full variable set, independent of the allow-list."""
        variables = build_variables(trade, self.tz)

        def _sub(value: Optional[str]) -> Optional[str]:
            if not value:
                return None
            return substitute(value, variables, variables)

        rows = []
        for row in buttons:
            rendered = tuple(
                InlineButton(
                    text=_sub(button.text) or "",
                    url=_sub(button.url),
                    callback_data=None if button.url else _sub(button.callback_data),
                )
                for button in row
            )
            if rendered:
                rows.append(rendered)
        return tuple(rows)

    def render(self, template: MessageTemplate, trade: Optional[Trade] = None) -> RenderedMessage:
        if template.template_type == TemplateType.SIMPLE:
            return RenderedMessage(
                text=template.body,
                parse_mode=template.parse_mode,
                buttons=tuple(row for row in template.buttons if row),
                image_url=template.image_url,
            )

        return RenderedMessage(
            text=self.render_text(template.body, trade, template.include_fields),
            parse_mode=template.parse_mode,
            buttons=self.render_buttons(template.buttons, trade),
            image_url=template.image_url,
        )

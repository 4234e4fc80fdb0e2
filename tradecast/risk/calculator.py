"""
Risk Calculator

Derives order quantity and leverage for a mirrored trade from the
follower's risk percentage and the distance to the stop loss.
"""

import math
from dataclasses import dataclass, field
from typing import Optional

from tradecast.core.config import Settings
from tradecast.core.logging_config import Loggers

logger = Loggers.risk()

DEFAULT_MIN_LEVERAGE = 1.0
DEFAULT_MAX_LEVERAGE = 50.0
DEFAULT_MIN_NOTIONAL = 5.0
DEFAULT_MIN_QUANTITY = 0.000001

# Absorbs float noise such as 0.3 / 0.1 == 2.9999999999999996
_EPSILON = 1e-9


def calculate_leverage(
    quantity: float,
    entry_price: float,
    fund_amount: float,
    min_leverage: float = DEFAULT_MIN_LEVERAGE,
    max_leverage: float = DEFAULT_MAX_LEVERAGE,
) -> float:
    """
    Leverage needed to carry ``quantity`` at ``entry_price`` with ``fund_amount`` margin.

    leverage = clamp(quantity × entry_price / fund_amount, min, max), 2 dp.
    Non-positive inputs yield the minimum leverage.
    """
    if quantity <= 0 or entry_price <= 0 or fund_amount <= 0:
        return min_leverage

    raw = quantity * entry_price / fund_amount
    return round(max(min_leverage, min(max_leverage, raw)), 2)


def calculate_quantity(
    fund_amount: float,
    risk_percent: float,
    entry_price: float,
    stop_price: float,
) -> float:
    """
    Quantity such that hitting the stop loses ``risk_percent`` of ``fund_amount``.

    quantity = (fund_amount × risk_percent / 100) / |entry_price − stop_price|, 6 dp.

    Returns 0 when any input is non-positive or entry equals stop. A zero
    quantity means "do not place the order".
    """
    if fund_amount <= 0 or risk_percent <= 0 or entry_price <= 0 or stop_price <= 0:
        return 0.0

    distance = abs(entry_price - stop_price)
    if distance == 0:
        return 0.0

    risk_amount = fund_amount * risk_percent / 100
    return round(risk_amount / distance, 6)


@dataclass
class OrderValidation:
    """Result of exchange-side order validation"""
    valid: bool
    reason: str


def validate_order(
    pair: str,
    quantity: float,
    price: float,
    min_notional: float = DEFAULT_MIN_NOTIONAL,
    min_quantity: float = DEFAULT_MIN_QUANTITY,
) -> OrderValidation:
    """Check an order against the exchange's minimums before placing it."""
    if quantity <= 0:
        return OrderValidation(False, "Quantity must be greater than 0")

    if price <= 0:
        return OrderValidation(False, "Price must be greater than 0")

    notional = quantity * price
    if notional < min_notional:
        return OrderValidation(
            False,
            f"Order notional value {notional:.2f} is below minimum {min_notional}"
        )

    if quantity < min_quantity:
        return OrderValidation(
            False,
            f"Quantity {quantity} is too small (minimum {min_quantity})"
        )

    return OrderValidation(True, f"{pair} order parameters valid")


def _decimals(step: float) -> int:
    text = f"{step:.12f}".rstrip("0")
    return len(text.split(".")[1]) if "." in text else 0


def floor_to_step(value: float, step: float) -> float:
    """Round down to a multiple of the exchange step size."""
    if step <= 0:
        return value
    factor = 10 ** _decimals(step)
    scaled_step = round(step * factor)
    return math.floor(value * factor / scaled_step + _EPSILON) * scaled_step / factor


def ceil_to_step(value: float, step: float) -> float:
    """Round up to a multiple of the exchange step size."""
    if step <= 0:
        return value
    factor = 10 ** _decimals(step)
    scaled_step = round(step * factor)
    return math.ceil(value * factor / scaled_step - _EPSILON) * scaled_step / factor


@dataclass
class PositionSizeResult:
    """Result of position size calculation"""
    quantity: float
    leverage: float
    notional: float
    required_margin: float
    risk_amount: float
    validation: OrderValidation
    warnings: list[str] = field(default_factory=list)

    @property
    def is_tradeable(self) -> bool:
        return self.quantity > 0 and self.validation.valid


class PositionSizer:
    """
    Size a mirrored order from a follower's risk settings.

    Formula:
    risk_amount = fund_amount × risk_percent / 100
    quantity = risk_amount / |entry − stop|
    leverage = clamp(quantity × entry / fund_amount, min, max)

    Then optionally floor to the exchange step size and validate.
    """

    def __init__(self, settings: Settings):
        """
        Initialize position sizer.

        Args:
            settings: Application settings
        """
        self.settings = settings
        self.min_leverage = settings.min_leverage
        self.max_leverage = settings.max_leverage

    def size(
        self,
        pair: str,
        entry_price: float,
        stop_price: float,
        fund_amount: float,
        risk_percent: float,
        step_size: Optional[float] = None,
    ) -> PositionSizeResult:
        """
        Calculate quantity, leverage and validation for one order.

        Args:
            pair: Trading pair
            entry_price: Entry price of the source trade
            stop_price: Stop loss of the source trade
            fund_amount: Fixed fund the follower allocates per trade
            risk_percent: Percent of fund lost if the stop is hit
            step_size: Exchange quantity step (optional)

        Returns:
            PositionSizeResult with all details
        """
        quantity = calculate_quantity(fund_amount, risk_percent, entry_price, stop_price)
        warnings: list[str] = []

        if quantity > 0 and step_size:
            quantity = floor_to_step(quantity, step_size)
            if quantity == 0:
                warnings.append(f"Quantity rounds to zero at step size {step_size}")

        leverage = calculate_leverage(
            quantity,
            entry_price,
            fund_amount,
            min_leverage=self.min_leverage,
            max_leverage=self.max_leverage,
        )

        notional = quantity * entry_price
        if fund_amount > 0 and notional / fund_amount > self.max_leverage:
            warnings.append(
                f"Required leverage {notional / fund_amount:.2f}x clamped to {self.max_leverage}x"
            )

        validation = validate_order(
            pair,
            quantity,
            entry_price,
            min_notional=self.settings.min_order_notional,
            min_quantity=self.settings.min_order_quantity,
        )

        result = PositionSizeResult(
            quantity=quantity,
            leverage=leverage,
            notional=notional,
            required_margin=notional / leverage if leverage else 0.0,
            risk_amount=fund_amount * risk_percent / 100 if fund_amount > 0 else 0.0,
            validation=validation,
            warnings=warnings,
        )

        logger.info(
            "Position size calculated",
            pair=pair,
            entry=entry_price,
            stop=stop_price,
            fund_amount=fund_amount,
            risk_percent=risk_percent,
            quantity=quantity,
            leverage=leverage,
            notional=notional,
            valid=validation.valid,
            reason=validation.reason,
        )

        return result

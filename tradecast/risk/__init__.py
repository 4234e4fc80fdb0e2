"""
Risk Module
===========
Risk-based position sizing for mirrored trades.
"""

from tradecast.risk.calculator import (
    OrderValidation,
    PositionSizeResult,
    PositionSizer,
    calculate_leverage,
    calculate_quantity,
    ceil_to_step,
    floor_to_step,
    validate_order,
)

__all__ = [
    "OrderValidation",
    "PositionSizeResult",
    "PositionSizer",
    "calculate_leverage",
    "calculate_quantity",
    "ceil_to_step",
    "floor_to_step",
    "validate_order",
]

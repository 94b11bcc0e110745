"""Selectors for the stock kernel (read side)."""

from stock_kernel.selectors.movement_selector import MovementSelector, signed_effect
from stock_kernel.selectors.stock_selector import StockSelector

__all__ = [
    "MovementSelector",
    "StockSelector",
    "signed_effect",
]

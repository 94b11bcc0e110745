"""ORM models for the stock kernel."""

from stock_kernel.models.lot import LotModel
from stock_kernel.models.movement import MovementModel
from stock_kernel.models.stock_level import StockLevelModel

__all__ = [
    "LotModel",
    "MovementModel",
    "StockLevelModel",
]

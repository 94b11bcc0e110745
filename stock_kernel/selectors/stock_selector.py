"""
Module: stock_kernel.selectors.stock_selector
Responsibility: Read-only queries over stock levels and lots.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Lot listings are in FIFO order (received_at, then sequence).
    - Returns DTOs only.
"""

from datetime import date

from sqlalchemy import select

from stock_kernel.domain.dtos import LotSnapshot, LotStatus, StockLevelSnapshot
from stock_kernel.exceptions import LotNotFoundError, StockLevelNotFoundError
from stock_kernel.models.lot import LotModel
from stock_kernel.models.stock_level import StockLevelModel
from stock_kernel.selectors.base import BaseSelector


class StockSelector(BaseSelector[StockLevelModel]):
    """Stock level and lot queries."""

    def find_level(self, product_id: str, warehouse_id: str) -> StockLevelSnapshot | None:
        model = self.session.execute(
            select(StockLevelModel).where(
                StockLevelModel.product_id == product_id,
                StockLevelModel.warehouse_id == warehouse_id,
            )
        ).scalar_one_or_none()
        return model.to_dto() if model else None

    def get_level(self, product_id: str, warehouse_id: str) -> StockLevelSnapshot:
        """
        Raises:
            StockLevelNotFoundError: If no aggregate exists for the pair.
        """
        level = self.find_level(product_id, warehouse_id)
        if level is None:
            raise StockLevelNotFoundError(product_id, warehouse_id)
        return level

    def list_levels(
        self,
        warehouse_id: str | None = None,
        product_id: str | None = None,
    ) -> list[StockLevelSnapshot]:
        stmt = select(StockLevelModel)
        if warehouse_id is not None:
            stmt = stmt.where(StockLevelModel.warehouse_id == warehouse_id)
        if product_id is not None:
            stmt = stmt.where(StockLevelModel.product_id == product_id)
        stmt = stmt.order_by(StockLevelModel.product_id, StockLevelModel.warehouse_id)
        return [m.to_dto() for m in self.session.scalars(stmt)]

    def get_lot(self, material_id: str, lot_number: str) -> LotSnapshot:
        """
        Raises:
            LotNotFoundError: If the lot number is unknown for the material.
        """
        model = self.session.execute(
            select(LotModel).where(
                LotModel.material_id == material_id,
                LotModel.lot_number == lot_number,
            )
        ).scalar_one_or_none()
        if model is None:
            raise LotNotFoundError(material_id, lot_number)
        return model.to_dto()

    def list_lots(
        self,
        material_id: str,
        warehouse_id: str | None = None,
        statuses: tuple[LotStatus, ...] | None = None,
    ) -> list[LotSnapshot]:
        """Lots of a material in FIFO order, optionally filtered."""
        stmt = select(LotModel).where(LotModel.material_id == material_id)
        if warehouse_id is not None:
            stmt = stmt.where(LotModel.warehouse_id == warehouse_id)
        if statuses:
            stmt = stmt.where(LotModel.status.in_([s.value for s in statuses]))
        stmt = stmt.order_by(LotModel.received_at, LotModel.sequence)
        return [m.to_dto() for m in self.session.scalars(stmt)]

    def list_expiring_lots(
        self,
        on_or_before: date,
        warehouse_id: str | None = None,
    ) -> list[LotSnapshot]:
        """Available lots with stock whose expiry date is on or before the date."""
        stmt = select(LotModel).where(
            LotModel.status == LotStatus.AVAILABLE.value,
            LotModel.remaining_quantity > 0,
            LotModel.expiry_date.is_not(None),
            LotModel.expiry_date <= on_or_before,
        )
        if warehouse_id is not None:
            stmt = stmt.where(LotModel.warehouse_id == warehouse_id)
        stmt = stmt.order_by(LotModel.expiry_date, LotModel.material_id, LotModel.sequence)
        return [m.to_dto() for m in self.session.scalars(stmt)]

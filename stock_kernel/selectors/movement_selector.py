"""
Module: stock_kernel.selectors.movement_selector
Responsibility: Read-only queries over the movement ledger, including
    historical stock reconstruction by replay.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Stable chronological order: created_at, then product, warehouse and
      per-scope sequence.  Two reads of the same data return the same order.
    - Replay starts from zero and applies every movement of the scope in
      sequence order; stored stock levels are never consulted.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import select

from stock_kernel.domain.dtos import MovementRecord, MovementType
from stock_kernel.domain.values import MOVEMENT_DIRECTION
from stock_kernel.models.movement import MovementModel
from stock_kernel.selectors.base import BaseSelector


def signed_effect(record: MovementRecord) -> Decimal:
    """Signed on-hand effect of one movement."""
    direction = MOVEMENT_DIRECTION[record.movement_type]
    if direction is None:
        return record.quantity_after - record.quantity_before
    return direction * record.quantity


class MovementSelector(BaseSelector[MovementModel]):
    """Movement ledger queries."""

    def list_movements(
        self,
        product_id: str | None = None,
        warehouse_id: str | None = None,
        lot_number: str | None = None,
        since: datetime | None = None,
        movement_type: MovementType | None = None,
        limit: int | None = None,
    ) -> list[MovementRecord]:
        """
        List movements in chronological order.

        Every filter is optional; ``since`` is inclusive.
        """
        stmt = select(MovementModel)
        if product_id is not None:
            stmt = stmt.where(MovementModel.product_id == product_id)
        if warehouse_id is not None:
            stmt = stmt.where(MovementModel.warehouse_id == warehouse_id)
        if lot_number is not None:
            stmt = stmt.where(MovementModel.lot_number == lot_number)
        if since is not None:
            stmt = stmt.where(MovementModel.created_at >= since)
        if movement_type is not None:
            stmt = stmt.where(MovementModel.movement_type == movement_type.value)

        stmt = stmt.order_by(
            MovementModel.created_at,
            MovementModel.product_id,
            MovementModel.warehouse_id,
            MovementModel.sequence,
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        return [m.to_dto() for m in self.session.scalars(stmt)]

    def scope_history(
        self,
        product_id: str,
        warehouse_id: str,
        until: datetime | None = None,
    ) -> list[MovementRecord]:
        """Movements of one scope in sequence (replay) order."""
        stmt = (
            select(MovementModel)
            .where(
                MovementModel.product_id == product_id,
                MovementModel.warehouse_id == warehouse_id,
            )
            .order_by(MovementModel.sequence)
        )
        if until is not None:
            stmt = stmt.where(MovementModel.created_at <= until)
        return [m.to_dto() for m in self.session.scalars(stmt)]

    def stock_as_of(
        self,
        product_id: str,
        warehouse_id: str,
        at: datetime,
    ) -> Decimal:
        """On-hand quantity at ``at`` (inclusive), replayed from zero."""
        quantity = Decimal("0")
        for record in self.scope_history(product_id, warehouse_id, until=at):
            quantity += signed_effect(record)
        return quantity

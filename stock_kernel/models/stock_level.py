"""
Module: stock_kernel.models.stock_level
Responsibility: ORM persistence for the on-hand aggregate, one row per
    product x warehouse pair.
Architecture position: Kernel > Models.  May import from db/ and domain/dtos
    only.  MUST NOT import from services/, selectors/, or outer layers.

Invariants enforced:
    - (product_id, warehouse_id) is unique.
    - quantity >= 0 and 0 <= reserved_quantity <= quantity (CHECK constraints,
      backed by service-level validation that raises typed errors first).
    - For lot-tracked levels, quantity equals the sum of remaining quantity
      over the level's available and quarantined lots.  The Stock Ledger is
      the only writer of this row.

Failure modes:
    - IntegrityError on a duplicate (product_id, warehouse_id).
    - IntegrityError if a CHECK constraint is violated.

Audit relevance:
    The row is a derived view.  Its history is reconstructable from the
    movement ledger; ``StockAsOf`` replays movements to any point in time.
"""

from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase
from stock_kernel.domain.dtos import StockLevelSnapshot


class StockLevelModel(TrackedBase):
    """
    Aggregate on-hand quantity for one product in one warehouse.

    Contract:
        ``unit`` is the product's canonical unit in this warehouse; every
        quantity on this row and on its lots and movements is expressed in it.

    Guarantees:
        - ``available_quantity`` is derived, never stored.
        - ``total_value`` is recomputed by the Stock Ledger after every change.

    Non-goals:
        - Does not compute total_value itself; that needs the lots.
    """

    __tablename__ = "stock_levels"

    __table_args__ = (
        UniqueConstraint("product_id", "warehouse_id", name="uq_stock_level_scope"),
        CheckConstraint("quantity >= 0", name="ck_stock_level_quantity_nonneg"),
        CheckConstraint(
            "reserved_quantity >= 0 AND reserved_quantity <= quantity",
            name="ck_stock_level_reserved_bounds",
        ),
        Index("idx_stock_level_warehouse", "warehouse_id"),
    )

    product_id: Mapped[str] = mapped_column(String(100), nullable=False)
    warehouse_id: Mapped[str] = mapped_column(String(100), nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0"),
    )
    reserved_quantity: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0"),
    )

    # Thresholds; None means "not configured"
    min_stock_alert: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    max_stock_alert: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    reorder_point: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    reorder_quantity: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    # Valuation
    last_known_cost: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    total_value: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0"),
    )

    is_lot_tracked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def available_quantity(self) -> Decimal:
        return self.quantity - self.reserved_quantity

    def to_dto(self) -> StockLevelSnapshot:
        return StockLevelSnapshot(
            product_id=self.product_id,
            warehouse_id=self.warehouse_id,
            unit=self.unit,
            quantity=self.quantity,
            reserved_quantity=self.reserved_quantity,
            min_stock_alert=self.min_stock_alert,
            max_stock_alert=self.max_stock_alert,
            reorder_point=self.reorder_point,
            reorder_quantity=self.reorder_quantity,
            last_known_cost=self.last_known_cost,
            total_value=self.total_value,
            is_lot_tracked=self.is_lot_tracked,
            updated_at=self.updated_at,
        )

    def __repr__(self) -> str:
        return (
            f"<StockLevel {self.product_id}@{self.warehouse_id}: "
            f"{self.quantity} {self.unit} (reserved {self.reserved_quantity})>"
        )

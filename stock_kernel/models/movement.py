"""
Module: stock_kernel.models.movement
Responsibility: ORM persistence for the append-only movement ledger.
Architecture position: Kernel > Models.  May import from db/ and domain/dtos
    only.  The MovementLedger service is the only writer.

Invariants enforced:
    - Rows are never updated or deleted (ORM listeners in db/immutability.py).
    - quantity > 0 (CHECK constraint); direction is carried by movement_type.
    - (product_id, warehouse_id, sequence) is unique: sequence is the
      per-scope replay order.

Audit relevance:
    This table is the canonical audit trail.  Replaying a scope's movements
    in sequence order from zero reproduces its on-hand quantity at any point.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, CheckConstraint, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, UTCDateTime
from stock_kernel.domain.dtos import MovementRecord, MovementType


class MovementModel(Base):
    """
    One immutable, signed change to stock quantity.

    Contract:
        ``quantity_before`` / ``quantity_after`` are the aggregate on-hand
        quantity of the product x warehouse scope around this movement.

    Non-goals:
        - No updated_at / updated_by: a movement is never updated.
    """

    __tablename__ = "stock_movements"

    __table_args__ = (
        UniqueConstraint("product_id", "warehouse_id", "sequence", name="uq_movement_scope_sequence"),
        CheckConstraint("quantity > 0", name="ck_movement_quantity_positive"),
        Index("idx_movement_lot", "product_id", "lot_number"),
        Index("idx_movement_created_at", "created_at"),
        Index("idx_movement_reference", "reference_type", "reference_id"),
    )

    sequence: Mapped[int] = mapped_column(BigInteger, nullable=False)
    product_id: Mapped[str] = mapped_column(String(100), nullable=False)
    warehouse_id: Mapped[str] = mapped_column(String(100), nullable=False)
    movement_type: Mapped[str] = mapped_column(String(20), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    quantity_before: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    quantity_after: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False)

    lot_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    unit_cost: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    reason: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    performed_by: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def to_dto(self) -> MovementRecord:
        return MovementRecord(
            id=self.id,
            sequence=self.sequence,
            product_id=self.product_id,
            warehouse_id=self.warehouse_id,
            movement_type=MovementType(self.movement_type),
            quantity=self.quantity,
            quantity_before=self.quantity_before,
            quantity_after=self.quantity_after,
            unit=self.unit,
            performed_by=self.performed_by,
            created_at=self.created_at,
            lot_number=self.lot_number,
            unit_cost=self.unit_cost,
            reference_type=self.reference_type,
            reference_id=self.reference_id,
            reason=self.reason,
        )

    def __repr__(self) -> str:
        return (
            f"<Movement #{self.sequence} {self.movement_type} {self.quantity} "
            f"{self.product_id}@{self.warehouse_id}: {self.quantity_before}->{self.quantity_after}>"
        )

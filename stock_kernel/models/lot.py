"""
Module: stock_kernel.models.lot
Responsibility: ORM persistence for inventory lots (stock lots of raw
    materials and product lots of finished goods).
Architecture position: Kernel > Models.  May import from db/ and domain/dtos
    only.

Invariants enforced:
    - (material_id, lot_number) is unique.
    - 0 <= remaining_quantity <= initial_quantity (CHECK constraint).
    - Receipt fields are frozen and remaining quantity never increases
      (ORM listeners in db/immutability.py).
    - (material_id, warehouse_id, received_at, sequence) index backs the FIFO
      ordering contract: received_at ascending, ties broken by sequence.

Failure modes:
    - IntegrityError on a duplicate lot number for the same material.
    - ImmutabilityViolationError on an update of a frozen field.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import BigInteger, CheckConstraint, Date, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase, UTCDateTime
from stock_kernel.domain.dtos import LotKind, LotSnapshot, LotStatus


class LotModel(TrackedBase):
    """
    One dated, priced batch of a material in one warehouse.

    Contract:
        ``initial_quantity``, ``remaining_quantity``, ``unit`` and
        ``unit_cost`` are in the material's canonical unit.
        ``received_quantity`` / ``received_unit`` record the receipt as it
        arrived, before conversion.

    Guarantees:
        - ``sequence`` is strictly increasing per material (SequenceService),
          so FIFO order is total even when received_at ties.
        - Status reaches ``depleted`` exactly when remaining reaches zero.
    """

    __tablename__ = "stock_lots"

    __table_args__ = (
        UniqueConstraint("material_id", "lot_number", name="uq_lot_material_number"),
        CheckConstraint("initial_quantity > 0", name="ck_lot_initial_positive"),
        CheckConstraint(
            "remaining_quantity >= 0 AND remaining_quantity <= initial_quantity",
            name="ck_lot_remaining_bounds",
        ),
        Index("idx_lot_fifo", "material_id", "warehouse_id", "received_at", "sequence"),
        Index("idx_lot_status_expiry", "status", "expiry_date"),
    )

    lot_number: Mapped[str] = mapped_column(String(100), nullable=False)
    material_id: Mapped[str] = mapped_column(String(100), nullable=False)
    warehouse_id: Mapped[str] = mapped_column(String(100), nullable=False)
    lot_kind: Mapped[str] = mapped_column(
        String(20), nullable=False, default=LotKind.RAW_MATERIAL.value,
    )

    initial_quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    remaining_quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    received_quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    received_unit: Mapped[str] = mapped_column(String(20), nullable=False)

    received_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=LotStatus.AVAILABLE.value,
    )
    sequence: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Originating document (purchase order, goods receipt, work order...)
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    @property
    def used_quantity(self) -> Decimal:
        return self.initial_quantity - self.remaining_quantity

    def to_dto(self) -> LotSnapshot:
        return LotSnapshot(
            id=self.id,
            lot_number=self.lot_number,
            material_id=self.material_id,
            warehouse_id=self.warehouse_id,
            lot_kind=LotKind(self.lot_kind),
            initial_quantity=self.initial_quantity,
            remaining_quantity=self.remaining_quantity,
            unit=self.unit,
            unit_cost=self.unit_cost,
            received_quantity=self.received_quantity,
            received_unit=self.received_unit,
            received_at=self.received_at,
            status=LotStatus(self.status),
            sequence=self.sequence,
            expiry_date=self.expiry_date,
            reference_type=self.reference_type,
            reference_id=self.reference_id,
        )

    def __repr__(self) -> str:
        return (
            f"<Lot {self.lot_number} {self.material_id}@{self.warehouse_id}: "
            f"{self.remaining_quantity}/{self.initial_quantity} {self.unit} {self.status}>"
        )

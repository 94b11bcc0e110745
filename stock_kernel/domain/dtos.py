"""
DTOs -- Pure domain data transfer objects for the stock kernel.

Responsibility:
    Defines the immutable data structures that cross the service boundary:
    StockLevelSnapshot (aggregate view), LotSnapshot (lot view), MovementRecord
    (ledger entry view), LotConsumption (one FIFO draw against one lot) and
    the enums that classify them.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  ORM models convert
    themselves into these DTOs via ``to_dto()``; services return DTOs and
    never leak ORM entities to callers.

Invariants enforced:
    - StockLevelSnapshot: quantity >= 0, 0 <= reserved <= quantity.
    - LotSnapshot: 0 <= remaining_quantity <= initial_quantity.
    - LotConsumption: quantity_taken > 0.
    - All quantities and money are Decimal -- never float.

Failure modes:
    - ValueError on construction with inconsistent quantities.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class MovementType(str, Enum):
    """Ledger movement categories.  The type carries the direction."""
    IN = "in"
    OUT = "out"
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"
    PRODUCTION = "production"
    CONSUMPTION = "consumption"
    QUARANTINE = "quarantine"
    RELEASE = "release"


class LotStatus(str, Enum):
    AVAILABLE = "available"
    QUARANTINE = "quarantine"
    EXPIRED = "expired"
    DEPLETED = "depleted"


class LotKind(str, Enum):
    """Stock lots hold raw materials; product lots hold finished goods."""
    RAW_MATERIAL = "raw_material"
    PRODUCT = "product"


@dataclass(frozen=True)
class StockLevelSnapshot:
    """
    Aggregate on-hand view of one product x warehouse pair.

    Contract: Immutable.  ``available_quantity`` is derived, never stored.
    """
    product_id: str
    warehouse_id: str
    unit: str
    quantity: Decimal
    reserved_quantity: Decimal
    min_stock_alert: Decimal | None = None
    max_stock_alert: Decimal | None = None
    reorder_point: Decimal | None = None
    reorder_quantity: Decimal | None = None
    last_known_cost: Decimal | None = None
    total_value: Decimal = Decimal("0")
    is_lot_tracked: bool = True
    updated_at: datetime | None = None

    def __post_init__(self):
        if self.quantity < 0:
            raise ValueError(f"quantity cannot be negative: {self.quantity}")
        if self.reserved_quantity < 0:
            raise ValueError(f"reserved_quantity cannot be negative: {self.reserved_quantity}")
        if self.reserved_quantity > self.quantity:
            raise ValueError(
                f"reserved_quantity {self.reserved_quantity} exceeds quantity {self.quantity}"
            )

    @property
    def available_quantity(self) -> Decimal:
        return self.quantity - self.reserved_quantity


@dataclass(frozen=True)
class LotSnapshot:
    """
    A dated, priced batch of a material received at one time.

    Contract: Immutable view.  ``unit`` and ``unit_cost`` are expressed in
    the material's canonical unit; ``received_quantity``/``received_unit``
    keep the receipt as it arrived.
    """
    id: UUID
    lot_number: str
    material_id: str
    warehouse_id: str
    lot_kind: LotKind
    initial_quantity: Decimal
    remaining_quantity: Decimal
    unit: str
    unit_cost: Decimal
    received_quantity: Decimal
    received_unit: str
    received_at: datetime
    status: LotStatus
    sequence: int
    expiry_date: date | None = None
    reference_type: str | None = None
    reference_id: str | None = None

    def __post_init__(self):
        if self.initial_quantity <= 0:
            raise ValueError(f"initial_quantity must be positive: {self.initial_quantity}")
        if not (0 <= self.remaining_quantity <= self.initial_quantity):
            raise ValueError(
                f"remaining_quantity {self.remaining_quantity} outside "
                f"[0, {self.initial_quantity}] for lot {self.lot_number}"
            )

    @property
    def used_quantity(self) -> Decimal:
        return self.initial_quantity - self.remaining_quantity

    @property
    def remaining_value(self) -> Decimal:
        return self.remaining_quantity * self.unit_cost


@dataclass(frozen=True)
class MovementDraft:
    """
    A movement ready to append.  The ledger assigns id, sequence and
    created_at.
    """
    product_id: str
    warehouse_id: str
    movement_type: MovementType
    quantity: Decimal
    quantity_before: Decimal
    quantity_after: Decimal
    unit: str
    performed_by: str
    lot_number: str | None = None
    unit_cost: Decimal | None = None
    reference_type: str | None = None
    reference_id: str | None = None
    reason: str | None = None


@dataclass(frozen=True)
class MovementRecord:
    """One immutable ledger entry."""
    id: UUID
    sequence: int
    product_id: str
    warehouse_id: str
    movement_type: MovementType
    quantity: Decimal
    quantity_before: Decimal
    quantity_after: Decimal
    unit: str
    performed_by: str
    created_at: datetime
    lot_number: str | None = None
    unit_cost: Decimal | None = None
    reference_type: str | None = None
    reference_id: str | None = None
    reason: str | None = None


@dataclass(frozen=True)
class LotConsumption:
    """One FIFO draw against one lot."""
    lot_number: str
    quantity_taken: Decimal
    unit_cost: Decimal
    remaining_after: Decimal

    def __post_init__(self):
        if self.quantity_taken <= 0:
            raise ValueError(f"quantity_taken must be positive: {self.quantity_taken}")
        if self.remaining_after < 0:
            raise ValueError(f"remaining_after cannot be negative: {self.remaining_after}")

    @property
    def cost(self) -> Decimal:
        return self.quantity_taken * self.unit_cost

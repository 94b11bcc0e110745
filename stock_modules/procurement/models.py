"""
Procurement Domain Models.

The nouns procurement shares with replenishment: supplier catalog entries
and purchase-order drafts.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from stock_engines.replenishment import CatalogOption
from stock_kernel.logging_config import get_logger

logger = get_logger("modules.procurement.models")


class PurchaseOrderStatus(Enum):
    """Purchase order lifecycle states (only ``draft`` is produced here)."""
    DRAFT = "draft"
    SENT = "sent"
    PARTIALLY_RECEIVED = "partially_received"
    RECEIVED = "received"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class SupplierCatalogEntry:
    """One supplier's standing offer for one product."""
    id: UUID
    product_id: str
    supplier_id: str
    unit_price: Decimal
    min_order_quantity: Decimal = Decimal("0")
    is_preferred: bool = False
    is_active: bool = True
    lead_time_days: int | None = None

    def __post_init__(self):
        if self.unit_price < 0:
            raise ValueError(f"unit_price cannot be negative: {self.unit_price}")
        if self.min_order_quantity < 0:
            raise ValueError(f"min_order_quantity cannot be negative: {self.min_order_quantity}")

    def to_option(self) -> CatalogOption:
        return CatalogOption(
            supplier_id=self.supplier_id,
            unit_price=self.unit_price,
            min_order_quantity=self.min_order_quantity,
            is_preferred=self.is_preferred,
            is_active=self.is_active,
            lead_time_days=self.lead_time_days,
        )


@dataclass(frozen=True)
class PurchaseOrderLine:
    """A line item on a purchase order."""
    id: UUID
    purchase_order_id: UUID
    line_number: int
    product_id: str
    quantity: Decimal
    unit_price: Decimal
    total: Decimal
    quantity_received: Decimal = Decimal("0")

    def __post_init__(self):
        if self.quantity <= 0:
            raise ValueError(f"quantity must be positive: {self.quantity}")
        if self.quantity_received > self.quantity:
            logger.warning(
                "po_line_over_receipt",
                extra={
                    "po_line_id": str(self.id),
                    "quantity": str(self.quantity),
                    "quantity_received": str(self.quantity_received),
                },
            )
            raise ValueError(
                f"quantity_received ({self.quantity_received}) "
                f"cannot exceed quantity ({self.quantity})"
            )


@dataclass(frozen=True)
class PurchaseOrderDraft:
    """A purchase order as created from an approved suggestion."""
    id: UUID
    order_number: str
    supplier_id: str
    warehouse_id: str
    order_date: date
    status: PurchaseOrderStatus
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    currency: str = "USD"
    notes: str = ""
    suggestion_id: UUID | None = None
    created_at: datetime | None = None
    lines: tuple[PurchaseOrderLine, ...] = field(default_factory=tuple)

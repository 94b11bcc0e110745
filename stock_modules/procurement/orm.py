"""
SQLAlchemy ORM persistence models for the Procurement module.

Responsibility
--------------
Persist the supplier catalog and the purchase-order drafts created when a
replenishment suggestion is approved.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``ProcurementService``.
Inherits from ``TrackedBase`` (kernel db layer).

Invariants enforced
-------------------
* All monetary and quantity fields use ``Decimal`` (Numeric(38,9)) -- NEVER
  float.
* ``(product_id, supplier_id)`` is unique in the catalog.
* ``order_number`` is unique.
* Supplier, product and warehouse identifiers are opaque ``String(100)``
  references with no foreign key.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import TrackedBase

# ---------------------------------------------------------------------------
# SupplierCatalogModel
# ---------------------------------------------------------------------------


class SupplierCatalogModel(TrackedBase):
    """
    A supplier's offer for one product.

    Maps to ``SupplierCatalogEntry`` in ``stock_modules.procurement.models``.
    """

    __tablename__ = "procurement_supplier_catalog"

    __table_args__ = (
        UniqueConstraint("product_id", "supplier_id", name="uq_catalog_product_supplier"),
        Index("idx_catalog_product_active", "product_id", "is_active"),
    )

    product_id: Mapped[str] = mapped_column(String(100), nullable=False)
    supplier_id: Mapped[str] = mapped_column(String(100), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    min_order_quantity: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    is_preferred: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    lead_time_days: Mapped[int | None] = mapped_column(Integer, nullable=True)

    def to_dto(self):
        from stock_modules.procurement.models import SupplierCatalogEntry

        return SupplierCatalogEntry(
            id=self.id,
            product_id=self.product_id,
            supplier_id=self.supplier_id,
            unit_price=self.unit_price,
            min_order_quantity=self.min_order_quantity,
            is_preferred=self.is_preferred,
            is_active=self.is_active,
            lead_time_days=self.lead_time_days,
        )

    def __repr__(self) -> str:
        return f"<SupplierCatalogModel {self.product_id}/{self.supplier_id} @ {self.unit_price}>"


# ---------------------------------------------------------------------------
# PurchaseOrderModel
# ---------------------------------------------------------------------------


class PurchaseOrderModel(TrackedBase):
    """
    A purchase order header.

    Guarantees:
        - ``order_number`` is unique.
        - ``total = subtotal + tax``.
    """

    __tablename__ = "procurement_purchase_orders"

    __table_args__ = (
        UniqueConstraint("order_number", name="uq_purchase_order_number"),
        Index("idx_purchase_order_supplier", "supplier_id"),
        Index("idx_purchase_order_status", "status"),
    )

    order_number: Mapped[str] = mapped_column(String(50), nullable=False)
    supplier_id: Mapped[str] = mapped_column(String(100), nullable=False)
    warehouse_id: Mapped[str] = mapped_column(String(100), nullable=False)
    order_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")
    subtotal: Mapped[Decimal] = mapped_column(nullable=False)
    tax: Mapped[Decimal] = mapped_column(nullable=False)
    total: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    notes: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    suggestion_id: Mapped[UUID | None]

    lines: Mapped[list["PurchaseOrderLineModel"]] = relationship(
        "PurchaseOrderLineModel",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PurchaseOrderLineModel.line_number",
    )

    def to_dto(self):
        from stock_modules.procurement.models import PurchaseOrderDraft, PurchaseOrderStatus

        return PurchaseOrderDraft(
            id=self.id,
            order_number=self.order_number,
            supplier_id=self.supplier_id,
            warehouse_id=self.warehouse_id,
            order_date=self.order_date,
            status=PurchaseOrderStatus(self.status),
            subtotal=self.subtotal,
            tax=self.tax,
            total=self.total,
            currency=self.currency,
            notes=self.notes,
            suggestion_id=self.suggestion_id,
            created_at=self.created_at,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return f"<PurchaseOrderModel {self.order_number} [{self.status}]>"


# ---------------------------------------------------------------------------
# PurchaseOrderLineModel
# ---------------------------------------------------------------------------


class PurchaseOrderLineModel(TrackedBase):
    """A line on a purchase order."""

    __tablename__ = "procurement_purchase_order_lines"

    __table_args__ = (
        UniqueConstraint("purchase_order_id", "line_number", name="uq_po_line_number"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("procurement_purchase_orders.id"), nullable=False,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    quantity_received: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    total: Mapped[Decimal] = mapped_column(nullable=False)

    purchase_order: Mapped["PurchaseOrderModel"] = relationship(
        "PurchaseOrderModel",
        back_populates="lines",
    )

    def to_dto(self):
        from stock_modules.procurement.models import PurchaseOrderLine

        return PurchaseOrderLine(
            id=self.id,
            purchase_order_id=self.purchase_order_id,
            line_number=self.line_number,
            product_id=self.product_id,
            quantity=self.quantity,
            unit_price=self.unit_price,
            total=self.total,
            quantity_received=self.quantity_received,
        )

    def __repr__(self) -> str:
        return f"<PurchaseOrderLineModel #{self.line_number} {self.product_id} x {self.quantity}>"

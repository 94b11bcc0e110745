"""
SQLAlchemy ORM persistence models for the Replenishment module.

Responsibility
--------------
Persist replenishment suggestions and guard their decided state.

Architecture position
---------------------
**Modules layer** -- ORM model consumed by ``ReplenishmentService``.
Inherits from ``TrackedBase`` (kernel db layer).

Invariants enforced
-------------------
* All quantity and money fields use ``Decimal`` -- NEVER float.
* A suggestion in a terminal status (``ordered``, ``rejected``) is never
  updated again: a ``before_update`` listener raises
  ``ImmutabilityViolationError``.  The purchase-order backlink is written in
  the same flush that moves the suggestion to ``ordered``.
* ``purchase_order_id`` references ``procurement_purchase_orders``.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, event, inspect
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase
from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("modules.replenishment.orm")

_TERMINAL_STATUSES = frozenset({"ordered", "rejected"})
_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})


class ReplenishmentSuggestionModel(TrackedBase):
    """
    One replenishment suggestion.

    Maps to ``ReplenishmentSuggestion`` in
    ``stock_modules.replenishment.models``.
    """

    __tablename__ = "replenishment_suggestions"

    __table_args__ = (
        Index("idx_suggestion_status_priority", "status", "priority"),
        Index("idx_suggestion_scope", "product_id", "warehouse_id", "status"),
    )

    product_id: Mapped[str] = mapped_column(String(100), nullable=False)
    warehouse_id: Mapped[str] = mapped_column(String(100), nullable=False)
    current_stock: Mapped[Decimal] = mapped_column(nullable=False)
    min_stock: Mapped[Decimal] = mapped_column(nullable=False)
    reorder_point: Mapped[Decimal] = mapped_column(nullable=False)
    suggested_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    suggested_supplier_id: Mapped[str] = mapped_column(String(100), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    estimated_cost: Mapped[Decimal] = mapped_column(nullable=False)
    lead_time_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    priority: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    generated_at: Mapped[datetime] = mapped_column(nullable=False)

    purchase_order_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("procurement_purchase_orders.id"), nullable=True,
    )
    decided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    decided_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def to_dto(self):
        from stock_engines.replenishment import SuggestionPriority
        from stock_modules.replenishment.models import ReplenishmentSuggestion, SuggestionStatus

        return ReplenishmentSuggestion(
            id=self.id,
            product_id=self.product_id,
            warehouse_id=self.warehouse_id,
            current_stock=self.current_stock,
            min_stock=self.min_stock,
            reorder_point=self.reorder_point,
            suggested_quantity=self.suggested_quantity,
            suggested_supplier_id=self.suggested_supplier_id,
            unit_price=self.unit_price,
            estimated_cost=self.estimated_cost,
            priority=SuggestionPriority(self.priority),
            status=SuggestionStatus(self.status),
            generated_at=self.generated_at,
            lead_time_days=self.lead_time_days,
            purchase_order_id=self.purchase_order_id,
            decided_at=self.decided_at,
            decided_by=self.decided_by,
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return (
            f"<ReplenishmentSuggestionModel {self.product_id}@{self.warehouse_id} "
            f"{self.suggested_quantity} [{self.status}/{self.priority}]>"
        )


@event.listens_for(ReplenishmentSuggestionModel, "before_update")
def _block_decided_suggestion_update(mapper, connection, target):
    state = inspect(target)
    status_history = state.attrs.status.history
    previous = status_history.deleted[0] if status_history.deleted else target.status
    if previous not in _TERMINAL_STATUSES:
        return

    changed = [
        attr.key
        for attr in state.attrs
        if attr.key not in _AUDIT_FIELDS and attr.history.has_changes()
    ]
    if changed:
        logger.error(
            "immutability_violation_blocked",
            extra={
                "entity_type": "ReplenishmentSuggestion",
                "entity_id": str(target.id),
                "status": previous,
                "fields": changed,
            },
        )
        raise ImmutabilityViolationError(
            "ReplenishmentSuggestion",
            str(target.id),
            f"suggestion is {previous}; changed {', '.join(sorted(changed))}",
        )

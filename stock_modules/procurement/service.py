"""
Procurement Module Service (``stock_modules.procurement.service``).

Responsibility
--------------
Maintains the supplier catalog and writes purchase-order drafts.  The
catalog is read-only input to replenishment generation; purchase-order
drafts are created when a replenishment suggestion is approved.

Architecture
------------
Layer: **Modules** -- thin orchestration over the kernel SequenceService and
the procurement ORM models.

Invariants
----------
- Catalog writes own their transaction (commit on success, rollback and
  re-raise on failure).
- ``draft_from_suggestion`` runs inside the caller's transaction and only
  flushes, so the suggestion backlink and the order commit together.
- Order numbers come from the locked ``purchase_order:<year>`` counter and
  never repeat.
- Money is rounded to two places; ``total = subtotal + tax``.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_config.schema import ReplenishmentSettings
from stock_engines.replenishment import CatalogOption
from stock_kernel.db.types import round_money, round_quantity, to_decimal
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.exceptions import InvalidQuantityError
from stock_kernel.logging_config import get_logger
from stock_kernel.services.sequence_service import SequenceService
from stock_modules.procurement.models import (
    PurchaseOrderDraft,
    PurchaseOrderStatus,
    SupplierCatalogEntry,
)
from stock_modules.procurement.orm import (
    PurchaseOrderLineModel,
    PurchaseOrderModel,
    SupplierCatalogModel,
)

logger = get_logger("modules.procurement.service")


class ProcurementService:
    """
    Supplier catalog and purchase-order drafts.

    Non-goals
    ---------
    - Does NOT send, receive or invoice purchase orders; those belong to the
      surrounding purchasing workflow.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: ReplenishmentSettings | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings or ReplenishmentSettings()
        self._sequences = SequenceService(session)

    # =========================================================================
    # Supplier catalog
    # =========================================================================

    def upsert_catalog_entry(
        self,
        product_id: str,
        supplier_id: str,
        unit_price: Decimal,
        *,
        performed_by: str,
        min_order_quantity: Decimal = Decimal("0"),
        is_preferred: bool = False,
        is_active: bool = True,
        lead_time_days: int | None = None,
    ) -> SupplierCatalogEntry:
        """
        Create or replace the offer of ``supplier_id`` for ``product_id``.

        Raises:
            InvalidQuantityError: negative price or minimum order quantity.
        """
        unit_price = to_decimal(unit_price)
        min_order_quantity = to_decimal(min_order_quantity)
        if unit_price < 0:
            raise InvalidQuantityError("upsert_catalog_entry", unit_price, "unit price cannot be negative")
        if min_order_quantity < 0:
            raise InvalidQuantityError(
                "upsert_catalog_entry", min_order_quantity, "minimum order quantity cannot be negative"
            )

        try:
            model = self._session.execute(
                select(SupplierCatalogModel).where(
                    SupplierCatalogModel.product_id == product_id,
                    SupplierCatalogModel.supplier_id == supplier_id,
                )
            ).scalar_one_or_none()
            created = model is None
            if created:
                model = SupplierCatalogModel(
                    product_id=product_id,
                    supplier_id=supplier_id,
                    created_by_id=performed_by,
                )
                self._session.add(model)
            else:
                model.updated_by_id = performed_by

            model.unit_price = unit_price
            model.min_order_quantity = min_order_quantity
            model.is_preferred = is_preferred
            model.is_active = is_active
            model.lead_time_days = lead_time_days
            self._session.flush()
            entry = model.to_dto()
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "catalog_entry_upserted",
            extra={
                "product_id": product_id,
                "supplier_id": supplier_id,
                "unit_price": str(unit_price),
                "min_order_quantity": str(min_order_quantity),
                "is_preferred": is_preferred,
                "is_active": is_active,
                "created": created,
            },
        )
        return entry

    def list_catalog(
        self,
        product_id: str | None = None,
        active_only: bool = False,
    ) -> list[SupplierCatalogEntry]:
        stmt = select(SupplierCatalogModel)
        if product_id is not None:
            stmt = stmt.where(SupplierCatalogModel.product_id == product_id)
        if active_only:
            stmt = stmt.where(SupplierCatalogModel.is_active.is_(True))
        stmt = stmt.order_by(SupplierCatalogModel.product_id, SupplierCatalogModel.supplier_id)
        return [m.to_dto() for m in self._session.scalars(stmt)]

    def catalog_options(self, product_ids: list[str]) -> dict[str, list[CatalogOption]]:
        """Catalog offers per product, as engine inputs."""
        options: dict[str, list[CatalogOption]] = {pid: [] for pid in product_ids}
        if not product_ids:
            return options
        rows = self._session.scalars(
            select(SupplierCatalogModel)
            .where(SupplierCatalogModel.product_id.in_(product_ids))
            .order_by(SupplierCatalogModel.product_id, SupplierCatalogModel.supplier_id)
        )
        for row in rows:
            options[row.product_id].append(row.to_dto().to_option())
        return options

    # =========================================================================
    # Purchase orders
    # =========================================================================

    def next_order_number(self, year: int) -> str:
        sequence = self._sequences.next_value(SequenceService.purchase_order_sequence(year))
        return f"{self._settings.order_number_prefix}-{year}-AUTO-{sequence:04d}"

    def draft_from_suggestion(
        self,
        *,
        suggestion_id: UUID,
        product_id: str,
        warehouse_id: str,
        supplier_id: str,
        quantity: Decimal,
        estimated_cost: Decimal,
        performed_by: str,
        unit_price: Decimal | None = None,
    ) -> PurchaseOrderDraft:
        """
        Create a one-line draft purchase order.  Flush only.

        The line carries ``unit_price`` (the catalog price) when given,
        otherwise ``estimated_cost / quantity``.  The subtotal is
        ``estimated_cost`` rounded to cents; tax is ``subtotal x tax_rate``
        rounded to cents.
        """
        if quantity <= 0:
            raise InvalidQuantityError("draft_from_suggestion", quantity)

        if unit_price is None:
            line_price = round_quantity(estimated_cost / quantity)
        else:
            line_price = round_quantity(unit_price)

        today = self._clock.today()
        subtotal = round_money(estimated_cost)
        tax = round_money(subtotal * self._settings.tax_rate)

        order = PurchaseOrderModel(
            order_number=self.next_order_number(today.year),
            supplier_id=supplier_id,
            warehouse_id=warehouse_id,
            order_date=today,
            status=PurchaseOrderStatus.DRAFT.value,
            subtotal=subtotal,
            tax=tax,
            total=subtotal + tax,
            currency=self._settings.currency,
            notes=f"Auto-generated from replenishment suggestion {suggestion_id}",
            suggestion_id=suggestion_id,
            created_by_id=performed_by,
        )
        order.lines.append(
            PurchaseOrderLineModel(
                line_number=1,
                product_id=product_id,
                quantity=quantity,
                quantity_received=Decimal("0"),
                unit_price=line_price,
                total=subtotal,
                created_by_id=performed_by,
            )
        )
        self._session.add(order)
        self._session.flush()

        logger.info(
            "purchase_order_drafted",
            extra={
                "purchase_order_id": str(order.id),
                "order_number": order.order_number,
                "supplier_id": supplier_id,
                "product_id": product_id,
                "quantity": str(quantity),
                "subtotal": str(subtotal),
                "tax": str(tax),
                "total": str(order.total),
                "suggestion_id": str(suggestion_id),
            },
        )
        return order.to_dto()

    def find_purchase_order(self, purchase_order_id: UUID) -> PurchaseOrderDraft | None:
        model = self._session.get(PurchaseOrderModel, purchase_order_id)
        return model.to_dto() if model else None

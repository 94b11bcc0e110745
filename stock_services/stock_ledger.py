"""
StockLedger -- owner of the on-hand aggregate per product x warehouse.

Responsibility:
    Maintains StockLevelModel rows: opens them, locks them, applies signed
    quantity changes (always paired with exactly one movement), keeps
    ``total_value`` in step with the lots, manages reservations, thresholds,
    transfers and the recompute/repair path.

Architecture position:
    Services -- stateful orchestration over kernel models and the
    MovementLedger.  The Lot Store calls ``apply_movement`` after it has
    mutated lots; callers outside the Lot Store use ``adjust`` (plain
    quantity stock only).

Invariants enforced:
    - Every quantity change appends one movement whose before/after match
      the aggregate.
    - quantity >= 0 and 0 <= reserved_quantity <= quantity.
    - Lot-tracked levels change only through the Lot Store; ``adjust`` and
      ``transfer`` raise LotTrackedStockError on them.
    - total_value = sum(remaining x unit_cost) over available and
      quarantined lots (lot-tracked) or quantity x last_known_cost.

Concurrency:
    ``lock_level`` issues SELECT ... FOR UPDATE on the level row.  Every
    mutating path locks the level first, then its lots, so two writers on
    the same scope serialize and writers on different scopes do not block.
    Transfers lock both levels in sorted warehouse order.  On SQLite the
    whole transaction holds the database write lock from BEGIN IMMEDIATE.

Failure modes:
    - StockLevelNotFoundError, InsufficientStockError, LotTrackedStockError,
      ReservationExceedsStockError, InvalidQuantityError, UnitMismatchError.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_engines.units import UnitConverter
from stock_kernel.db.types import round_quantity, to_decimal
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import (
    LotStatus,
    MovementDraft,
    MovementRecord,
    MovementType,
    StockLevelSnapshot,
)
from stock_kernel.domain.values import MOVEMENT_DIRECTION, require_positive
from stock_kernel.exceptions import (
    InsufficientStockError,
    InvalidQuantityError,
    LotTrackedStockError,
    ReservationExceedsStockError,
    StockLevelNotFoundError,
    UnitMismatchError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.lot import LotModel
from stock_kernel.models.stock_level import StockLevelModel
from stock_kernel.services.base import BaseService
from stock_kernel.services.movement_ledger import MovementLedger

logger = get_logger("services.stock_ledger")

ZERO = Decimal("0")

# Lots that still count toward on-hand quantity
ON_HAND_LOT_STATUSES = (LotStatus.AVAILABLE.value, LotStatus.QUARANTINE.value)

# Movement types a caller may pass to adjust()
_ADJUSTABLE_TYPES = frozenset({
    MovementType.IN,
    MovementType.OUT,
    MovementType.ADJUSTMENT,
    MovementType.PRODUCTION,
    MovementType.CONSUMPTION,
})


class StockLedger(BaseService[StockLevelModel]):
    """
    Aggregate on-hand maintenance.

    Contract:
        Flush-only.  The caller owns the transaction.

    Non-goals:
        - Does not choose lots; FIFO allocation belongs to the Lot Store.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        movements: MovementLedger | None = None,
        converter: UnitConverter | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._movements = movements or MovementLedger(session, self._clock)
        self._converter = converter or UnitConverter()

    # =========================================================================
    # Level access
    # =========================================================================

    def lock_level(self, product_id: str, warehouse_id: str) -> StockLevelModel | None:
        """Load a level with a row lock, refreshing any cached state."""
        return self.session.execute(
            select(StockLevelModel)
            .where(
                StockLevelModel.product_id == product_id,
                StockLevelModel.warehouse_id == warehouse_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def require_level(self, product_id: str, warehouse_id: str) -> StockLevelModel:
        level = self.lock_level(product_id, warehouse_id)
        if level is None:
            raise StockLevelNotFoundError(product_id, warehouse_id)
        return level

    def _canonical_unit_for(self, product_id: str, proposed: str) -> str:
        """A product keeps one canonical unit across warehouses."""
        existing = self.session.execute(
            select(StockLevelModel.unit)
            .where(StockLevelModel.product_id == product_id)
            .order_by(StockLevelModel.created_at)
            .limit(1)
        ).scalar_one_or_none()
        if existing is not None:
            return existing
        return self._converter.canonical_symbol(proposed)

    def ensure_level(
        self,
        product_id: str,
        warehouse_id: str,
        unit: str,
        *,
        performed_by: str,
        is_lot_tracked: bool = True,
    ) -> StockLevelModel:
        """
        Locked level for the pair, created empty if missing.

        A new level takes the unit of the product's existing levels, so a
        product has the same canonical unit everywhere.
        """
        level = self.lock_level(product_id, warehouse_id)
        if level is not None:
            return level

        canonical = self._canonical_unit_for(product_id, unit)
        savepoint = self.session.begin_nested()
        try:
            level = StockLevelModel(
                product_id=product_id,
                warehouse_id=warehouse_id,
                unit=canonical,
                quantity=ZERO,
                reserved_quantity=ZERO,
                total_value=ZERO,
                is_lot_tracked=is_lot_tracked,
                created_by_id=performed_by,
            )
            self.session.add(level)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            # Another transaction opened the same level first.
            savepoint.rollback()
            return self.require_level(product_id, warehouse_id)

        logger.info(
            "stock_level_opened",
            extra={
                "product_id": product_id,
                "warehouse_id": warehouse_id,
                "unit": canonical,
                "is_lot_tracked": is_lot_tracked,
            },
        )
        return level

    def open_level(
        self,
        product_id: str,
        warehouse_id: str,
        unit: str,
        *,
        performed_by: str,
        is_lot_tracked: bool = True,
        min_stock_alert: Decimal | None = None,
        max_stock_alert: Decimal | None = None,
        reorder_point: Decimal | None = None,
        reorder_quantity: Decimal | None = None,
    ) -> StockLevelSnapshot:
        """
        Create (or return) a level with a canonical unit and thresholds.

        Raises:
            UnitMismatchError: The product already uses a unit that
                ``unit`` cannot be converted to.
        """
        level = self.ensure_level(
            product_id,
            warehouse_id,
            unit,
            performed_by=performed_by,
            is_lot_tracked=is_lot_tracked,
        )
        if not self._converter.are_compatible(unit, level.unit):
            raise UnitMismatchError(unit, level.unit)
        if any(v is not None for v in (min_stock_alert, max_stock_alert, reorder_point, reorder_quantity)):
            return self.set_thresholds(
                product_id,
                warehouse_id,
                performed_by=performed_by,
                min_stock_alert=min_stock_alert,
                max_stock_alert=max_stock_alert,
                reorder_point=reorder_point,
                reorder_quantity=reorder_quantity,
            )
        return level.to_dto()

    def set_thresholds(
        self,
        product_id: str,
        warehouse_id: str,
        *,
        performed_by: str,
        min_stock_alert: Decimal | None = None,
        max_stock_alert: Decimal | None = None,
        reorder_point: Decimal | None = None,
        reorder_quantity: Decimal | None = None,
    ) -> StockLevelSnapshot:
        """Replace all four thresholds; None clears a threshold."""
        values = {
            "min_stock_alert": min_stock_alert,
            "max_stock_alert": max_stock_alert,
            "reorder_point": reorder_point,
            "reorder_quantity": reorder_quantity,
        }
        for name, value in values.items():
            if value is not None and value < 0:
                raise InvalidQuantityError("set_thresholds", value, f"{name} cannot be negative")
        if (
            min_stock_alert is not None
            and max_stock_alert is not None
            and max_stock_alert < min_stock_alert
        ):
            raise InvalidQuantityError(
                "set_thresholds", max_stock_alert, "max_stock_alert is below min_stock_alert"
            )

        level = self.require_level(product_id, warehouse_id)
        for name, value in values.items():
            setattr(level, name, value)
        level.updated_by_id = performed_by
        self.session.flush()

        logger.info(
            "stock_thresholds_set",
            extra={
                "product_id": product_id,
                "warehouse_id": warehouse_id,
                **{k: (str(v) if v is not None else None) for k, v in values.items()},
            },
        )
        return level.to_dto()

    # =========================================================================
    # Quantity changes
    # =========================================================================

    def apply_movement(
        self,
        level: StockLevelModel,
        movement_type: MovementType,
        quantity: Decimal,
        delta: Decimal,
        *,
        performed_by: str,
        lot_number: str | None = None,
        unit_cost: Decimal | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
        reason: str | None = None,
    ) -> MovementRecord:
        """
        Change ``level.quantity`` by ``delta`` and append the movement.

        ``level`` must already be locked by the caller.
        """
        before = level.quantity
        after = before + delta
        if after < 0:
            raise InsufficientStockError(
                level.product_id, level.warehouse_id, abs(delta), before, level.unit
            )
        if after < level.reserved_quantity:
            raise ReservationExceedsStockError(
                level.product_id, level.warehouse_id, after, level.reserved_quantity
            )

        level.quantity = after
        level.updated_by_id = performed_by

        return self._movements.append(
            MovementDraft(
                product_id=level.product_id,
                warehouse_id=level.warehouse_id,
                movement_type=movement_type,
                quantity=quantity,
                quantity_before=before,
                quantity_after=after,
                unit=level.unit,
                performed_by=performed_by,
                lot_number=lot_number,
                unit_cost=unit_cost,
                reference_type=reference_type,
                reference_id=reference_id,
                reason=reason,
            )
        )

    def _to_level_unit(
        self,
        level: StockLevelModel,
        quantity: Decimal,
        unit: str,
        operation: str,
    ) -> Decimal:
        """``quantity`` in ``unit`` re-expressed in the level's unit, rounded."""
        converted = round_quantity(self._converter.convert(quantity, unit, level.unit))
        if converted <= 0:
            raise InvalidQuantityError(operation, quantity, f"rounds to zero in {level.unit}")
        return converted

    def adjust(
        self,
        product_id: str,
        warehouse_id: str,
        delta: Decimal,
        movement_type: MovementType = MovementType.ADJUSTMENT,
        *,
        performed_by: str,
        unit: str | None = None,
        unit_cost: Decimal | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
        reason: str | None = None,
    ) -> MovementRecord:
        """
        Signed change to plain-quantity (non-lot-tracked) stock.

        ``unit`` is the unit ``delta`` is expressed in; the delta is
        converted to the level's unit before it is applied.  It also opens
        the level as plain-quantity stock when it does not exist yet.  A
        positive delta with ``unit_cost`` updates ``last_known_cost``.

        Raises:
            InvalidQuantityError: zero delta (after rounding to column
                precision or converting), or sign contradicts the type.
            UnitMismatchError: ``unit`` cannot be converted to the level's unit.
            LotTrackedStockError: level is lot-tracked.
            StockLevelNotFoundError: level missing and no ``unit`` given.
            InsufficientStockError: result would fall below zero or below
                the reserved quantity.
        """
        if movement_type not in _ADJUSTABLE_TYPES:
            raise InvalidQuantityError(
                "adjust", delta, f"movement type {movement_type.value} is not an adjustment"
            )
        delta = to_decimal(delta)
        if delta == 0:
            raise InvalidQuantityError("adjust", delta, "delta must be non-zero")
        magnitude = require_positive("adjust", abs(delta))
        direction = MOVEMENT_DIRECTION[movement_type]
        if direction is not None and (delta > 0) != (direction > 0):
            raise InvalidQuantityError(
                "adjust", delta, f"sign contradicts movement type {movement_type.value}"
            )
        if unit_cost is not None and unit_cost < 0:
            raise InvalidQuantityError("adjust", unit_cost, "unit cost cannot be negative")

        if unit is not None:
            level = self.ensure_level(
                product_id, warehouse_id, unit,
                performed_by=performed_by, is_lot_tracked=False,
            )
        else:
            level = self.require_level(product_id, warehouse_id)

        if level.is_lot_tracked:
            raise LotTrackedStockError(product_id, warehouse_id, "adjust")

        quantity = magnitude
        if unit is not None:
            quantity = self._to_level_unit(level, magnitude, unit, "adjust")
            if unit_cost is not None and quantity != magnitude:
                # Cost per level unit keeps quantity x cost unchanged.
                unit_cost = round_quantity(unit_cost * magnitude / quantity)
        delta = quantity if delta > 0 else -quantity
        if delta < 0 and quantity > level.available_quantity:
            raise InsufficientStockError(
                product_id, warehouse_id, quantity, level.available_quantity, level.unit
            )

        if unit_cost is not None and delta > 0:
            level.last_known_cost = unit_cost

        record = self.apply_movement(
            level,
            movement_type,
            quantity,
            delta,
            performed_by=performed_by,
            unit_cost=unit_cost if unit_cost is not None else level.last_known_cost,
            reference_type=reference_type,
            reference_id=reference_id,
            reason=reason,
        )
        self.refresh_value(level)
        self.check_low_stock(level)
        return record

    def transfer(
        self,
        product_id: str,
        from_warehouse_id: str,
        to_warehouse_id: str,
        quantity: Decimal,
        *,
        performed_by: str,
        reference_type: str | None = None,
        reference_id: str | None = None,
        reason: str | None = None,
    ) -> tuple[MovementRecord, MovementRecord]:
        """
        Move plain-quantity stock between warehouses.

        Appends one ``transfer`` movement per side in the same transaction.
        """
        quantity = require_positive("transfer", quantity)
        if from_warehouse_id == to_warehouse_id:
            raise InvalidQuantityError("transfer", quantity, "source and destination are the same")

        # Both levels locked in warehouse-id order.
        first, second = sorted((from_warehouse_id, to_warehouse_id))
        locked = {first: self.lock_level(product_id, first)}
        locked[second] = self.lock_level(product_id, second)

        source = locked[from_warehouse_id]
        if source is None:
            raise StockLevelNotFoundError(product_id, from_warehouse_id)
        if source.is_lot_tracked:
            raise LotTrackedStockError(product_id, from_warehouse_id, "transfer")
        if quantity > source.available_quantity:
            raise InsufficientStockError(
                product_id, from_warehouse_id, quantity, source.available_quantity, source.unit
            )

        dest = locked[to_warehouse_id]
        if dest is None:
            dest = self.ensure_level(
                product_id, to_warehouse_id, source.unit,
                performed_by=performed_by, is_lot_tracked=False,
            )
        if dest.is_lot_tracked:
            raise LotTrackedStockError(product_id, to_warehouse_id, "transfer")
        if dest.last_known_cost is None:
            dest.last_known_cost = source.last_known_cost

        out_record = self.apply_movement(
            source, MovementType.TRANSFER, quantity, -quantity,
            performed_by=performed_by,
            unit_cost=source.last_known_cost,
            reference_type=reference_type or "transfer",
            reference_id=reference_id or to_warehouse_id,
            reason=reason,
        )
        in_record = self.apply_movement(
            dest, MovementType.TRANSFER, quantity, quantity,
            performed_by=performed_by,
            unit_cost=source.last_known_cost,
            reference_type=reference_type or "transfer",
            reference_id=reference_id or from_warehouse_id,
            reason=reason,
        )
        self.refresh_value(source)
        self.refresh_value(dest)
        self.check_low_stock(source)

        logger.info(
            "stock_transferred",
            extra={
                "product_id": product_id,
                "from_warehouse_id": from_warehouse_id,
                "to_warehouse_id": to_warehouse_id,
                "quantity": str(quantity),
            },
        )
        return out_record, in_record

    # =========================================================================
    # Reservations
    # =========================================================================

    def reserve(
        self,
        product_id: str,
        warehouse_id: str,
        quantity: Decimal,
        *,
        performed_by: str,
    ) -> StockLevelSnapshot:
        quantity = require_positive("reserve", quantity)
        level = self.require_level(product_id, warehouse_id)
        new_reserved = level.reserved_quantity + quantity
        if new_reserved > level.quantity:
            raise ReservationExceedsStockError(
                product_id, warehouse_id, level.quantity, new_reserved
            )
        level.reserved_quantity = new_reserved
        level.updated_by_id = performed_by
        self.session.flush()
        logger.info(
            "stock_reserved",
            extra={
                "product_id": product_id,
                "warehouse_id": warehouse_id,
                "quantity": str(quantity),
                "reserved_quantity": str(new_reserved),
            },
        )
        return level.to_dto()

    def unreserve(
        self,
        product_id: str,
        warehouse_id: str,
        quantity: Decimal,
        *,
        performed_by: str,
    ) -> StockLevelSnapshot:
        quantity = require_positive("unreserve", quantity)
        level = self.require_level(product_id, warehouse_id)
        if quantity > level.reserved_quantity:
            raise InvalidQuantityError(
                "unreserve", quantity, f"only {level.reserved_quantity} is reserved"
            )
        level.reserved_quantity -= quantity
        level.updated_by_id = performed_by
        self.session.flush()
        logger.info(
            "stock_unreserved",
            extra={
                "product_id": product_id,
                "warehouse_id": warehouse_id,
                "quantity": str(quantity),
                "reserved_quantity": str(level.reserved_quantity),
            },
        )
        return level.to_dto()

    def release_reserved(self, level: StockLevelModel, quantity: Decimal) -> Decimal:
        """Drop up to ``quantity`` of the level's reservation; returns the amount released."""
        released = min(quantity, level.reserved_quantity)
        level.reserved_quantity -= released
        return released

    def trim_reservation(self, level: StockLevelModel, new_quantity: Decimal) -> None:
        """Keep reserved <= quantity when stock leaves outside consumption."""
        if level.reserved_quantity > new_quantity:
            logger.warning(
                "reservation_trimmed",
                extra={
                    "product_id": level.product_id,
                    "warehouse_id": level.warehouse_id,
                    "reserved_before": str(level.reserved_quantity),
                    "reserved_after": str(new_quantity),
                },
            )
            level.reserved_quantity = new_quantity

    # =========================================================================
    # Valuation and consistency
    # =========================================================================

    def lot_totals(self, product_id: str, warehouse_id: str) -> tuple[Decimal, Decimal]:
        """(sum remaining, sum remaining x unit_cost) over on-hand lots."""
        # Summed in Python so the result is exact Decimal on every backend.
        rows = self.session.execute(
            select(LotModel.remaining_quantity, LotModel.unit_cost).where(
                LotModel.material_id == product_id,
                LotModel.warehouse_id == warehouse_id,
                LotModel.status.in_(ON_HAND_LOT_STATUSES),
            )
        ).all()
        quantity = sum((r.remaining_quantity for r in rows), ZERO)
        value = sum((r.remaining_quantity * r.unit_cost for r in rows), ZERO)
        return quantity, value

    def refresh_value(self, level: StockLevelModel) -> None:
        if level.is_lot_tracked:
            self.session.flush()
            _, value = self.lot_totals(level.product_id, level.warehouse_id)
            level.total_value = value
        else:
            level.total_value = level.quantity * (level.last_known_cost or ZERO)
        self.session.flush()

    def check_low_stock(self, level: StockLevelModel) -> None:
        if level.min_stock_alert is not None and level.quantity <= level.min_stock_alert:
            logger.warning(
                "low_stock_detected",
                extra={
                    "product_id": level.product_id,
                    "warehouse_id": level.warehouse_id,
                    "quantity": str(level.quantity),
                    "min_stock_alert": str(level.min_stock_alert),
                    "unit": level.unit,
                },
            )

    def recompute(
        self,
        product_id: str,
        warehouse_id: str,
        *,
        performed_by: str,
    ) -> StockLevelSnapshot:
        """
        Recalculate a lot-tracked level from its lots and repair drift.

        A drift is repaired with one ``adjustment`` movement (reason
        ``recompute``) so the ledger still explains the aggregate.
        Plain-quantity levels only get their value refreshed.
        """
        level = self.require_level(product_id, warehouse_id)
        if level.is_lot_tracked:
            lot_quantity, _ = self.lot_totals(product_id, warehouse_id)
            drift = lot_quantity - level.quantity
            if drift != 0:
                logger.warning(
                    "stock_level_drift_repaired",
                    extra={
                        "product_id": product_id,
                        "warehouse_id": warehouse_id,
                        "recorded": str(level.quantity),
                        "from_lots": str(lot_quantity),
                    },
                )
                self.trim_reservation(level, lot_quantity)
                self.apply_movement(
                    level,
                    MovementType.ADJUSTMENT,
                    abs(drift),
                    drift,
                    performed_by=performed_by,
                    reason="recompute",
                )
        self.refresh_value(level)
        return level.to_dto()

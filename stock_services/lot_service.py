"""
LotStore -- lot receipts, FIFO consumption and the lot status lifecycle.

Responsibility:
    Creates lots (converting receipts to the material's canonical unit),
    consumes stock oldest-lot-first, moves lots between available and
    quarantine, and sweeps expired lots.  Every change is mirrored on the
    stock level aggregate through the StockLedger and recorded in the
    movement ledger.

Architecture position:
    Services -- stateful orchestration.  Uses the FIFO engine for the
    allocation decision and the StockLedger for aggregate updates.

Invariants enforced:
    - Conservation: after every operation the level quantity equals the
      sum of remaining quantity over its available and quarantined lots.
    - FIFO order: received_at ascending, ties broken by lot sequence.
    - All-or-nothing consumption: the plan is computed from the locked
      lot snapshot before any lot is mutated; an InsufficientStockError
      leaves every lot untouched.
    - remaining_quantity never increases; a lot reaching zero becomes
      ``depleted`` and never reopens.

Concurrency:
    Each operation locks the stock level row first and then the lots it
    reads, so concurrent consumers of one scope serialize on the level row.

Failure modes:
    - InvalidQuantityError, InsufficientStockError, UnitMismatchError,
      DuplicateLotNumberError, LotNotFoundError, InvalidLotTransitionError,
      NotLotTrackedError.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_config.schema import InventorySettings
from stock_engines.fifo import FifoAllocator, FifoCandidate
from stock_engines.units import UnitConverter
from stock_kernel.db.types import round_quantity, to_decimal
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import (
    LotConsumption,
    LotKind,
    LotSnapshot,
    LotStatus,
    MovementType,
)
from stock_kernel.domain.lot_lifecycle import LOT_WORKFLOW
from stock_kernel.domain.values import require_positive
from stock_kernel.exceptions import (
    DuplicateLotNumberError,
    InsufficientStockError,
    InvalidLotTransitionError,
    InvalidQuantityError,
    LotNotFoundError,
    NotLotTrackedError,
    UnitMismatchError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.lot import LotModel
from stock_kernel.models.stock_level import StockLevelModel
from stock_kernel.services.base import BaseService
from stock_kernel.services.sequence_service import SequenceService
from stock_services.stock_ledger import StockLedger

logger = get_logger("services.lot_store")

_RECEIPT_TYPES = frozenset({MovementType.IN, MovementType.PRODUCTION})
_CONSUMPTION_TYPES = frozenset({MovementType.CONSUMPTION, MovementType.OUT})


class LotStore(BaseService[LotModel]):
    """
    Lot-level inventory operations.

    Contract:
        Flush-only; the caller owns the transaction.  Returned values are
        DTOs, never ORM instances.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        converter: UnitConverter | None = None,
        settings: InventorySettings | None = None,
        ledger: StockLedger | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._converter = converter or UnitConverter()
        self._settings = settings or InventorySettings()
        self._ledger = ledger or StockLedger(session, self._clock, converter=self._converter)
        self._sequences = SequenceService(session)
        self._allocator = FifoAllocator()

    # =========================================================================
    # Receipts
    # =========================================================================

    def create_lot(
        self,
        material_id: str,
        warehouse_id: str,
        quantity: Decimal,
        unit: str,
        unit_cost: Decimal,
        received_at: datetime | None = None,
        *,
        performed_by: str,
        lot_number: str | None = None,
        expiry_date: date | None = None,
        lot_kind: LotKind | None = None,
        movement_type: MovementType = MovementType.IN,
        reference_type: str | None = None,
        reference_id: str | None = None,
        allow_unconverted: bool | None = None,
        density: Decimal | None = None,
    ) -> LotSnapshot:
        """
        Receive a new lot and raise the aggregate by its canonical quantity.

        The receipt is converted to the unit of the material's stock level
        (the first receipt fixes that unit).  ``unit_cost`` is per
        ``unit``; the stored cost is re-expressed per canonical unit so the
        lot keeps the receipt's total value.

        Args:
            allow_unconverted: Accept the raw quantity when ``unit`` cannot
                be converted.  ``None`` defers to configuration.
            density: kg/L, enables mass <-> volume conversion.

        Raises:
            InvalidQuantityError: quantity <= 0 or negative unit cost.
            UnitMismatchError: no conversion and no override.
            DuplicateLotNumberError: lot number already used for material.
            NotLotTrackedError: the level tracks a plain quantity.
        """
        quantity = require_positive("create_lot", quantity)
        unit_cost = to_decimal(unit_cost)
        if unit_cost < 0:
            raise InvalidQuantityError("create_lot", unit_cost, "unit cost cannot be negative")
        if movement_type not in _RECEIPT_TYPES:
            raise InvalidQuantityError(
                "create_lot", quantity, f"movement type {movement_type.value} is not a receipt"
            )

        received_at = received_at or self._clock.now()
        lot_kind = lot_kind or self._settings.default_lot_kind
        if allow_unconverted is None:
            allow_unconverted = self._settings.allow_unconverted_units

        level = self._ledger.ensure_level(
            material_id, warehouse_id, unit,
            performed_by=performed_by, is_lot_tracked=True,
        )
        if not level.is_lot_tracked:
            raise NotLotTrackedError(material_id, warehouse_id, "create_lot")

        canonical_quantity = self._to_canonical(
            material_id, warehouse_id, quantity, unit, level.unit,
            allow_unconverted=allow_unconverted, density=density,
        )
        if canonical_quantity <= 0:
            raise InvalidQuantityError(
                "create_lot", canonical_quantity, f"rounds to zero in {level.unit}"
            )
        canonical_cost = unit_cost
        if canonical_quantity != quantity:
            canonical_cost = round_quantity(unit_cost * quantity / canonical_quantity)

        sequence = self._sequences.next_value(SequenceService.lot_sequence(material_id))
        if lot_number is None:
            lot_number = (
                f"{self._settings.lot_number_prefix}-"
                f"{received_at:%Y%m%d}-{sequence:04d}"
            )
        self._reject_duplicate(material_id, lot_number)

        lot = LotModel(
            lot_number=lot_number,
            material_id=material_id,
            warehouse_id=warehouse_id,
            lot_kind=lot_kind.value,
            initial_quantity=canonical_quantity,
            remaining_quantity=canonical_quantity,
            unit=level.unit,
            unit_cost=canonical_cost,
            received_quantity=quantity,
            received_unit=unit,
            received_at=received_at,
            expiry_date=expiry_date,
            status=LotStatus.AVAILABLE.value,
            sequence=sequence,
            reference_type=reference_type,
            reference_id=reference_id,
            created_by_id=performed_by,
        )
        self.session.add(lot)
        self.session.flush()

        level.last_known_cost = canonical_cost
        self._ledger.apply_movement(
            level,
            movement_type,
            canonical_quantity,
            canonical_quantity,
            performed_by=performed_by,
            lot_number=lot_number,
            unit_cost=canonical_cost,
            reference_type=reference_type,
            reference_id=reference_id,
        )
        self._ledger.refresh_value(level)

        logger.info(
            "lot_created",
            extra={
                "lot_number": lot_number,
                "material_id": material_id,
                "warehouse_id": warehouse_id,
                "quantity": str(canonical_quantity),
                "unit": level.unit,
                "received_quantity": str(quantity),
                "received_unit": unit,
                "unit_cost": str(canonical_cost),
                "sequence": sequence,
            },
        )
        return lot.to_dto()

    def _to_canonical(
        self,
        material_id: str,
        warehouse_id: str,
        quantity: Decimal,
        unit: str,
        canonical_unit: str,
        *,
        allow_unconverted: bool,
        density: Decimal | None,
    ) -> Decimal:
        try:
            converted = self._converter.convert(quantity, unit, canonical_unit, density=density)
        except UnitMismatchError:
            if not allow_unconverted:
                raise
            logger.warning(
                "unit_conversion_skipped",
                extra={
                    "material_id": material_id,
                    "warehouse_id": warehouse_id,
                    "quantity": str(quantity),
                    "from_unit": unit,
                    "to_unit": canonical_unit,
                },
            )
            converted = quantity
        return round_quantity(converted)

    def _reject_duplicate(self, material_id: str, lot_number: str) -> None:
        exists = self.session.execute(
            select(LotModel.id).where(
                LotModel.material_id == material_id,
                LotModel.lot_number == lot_number,
            )
        ).first()
        if exists is not None:
            raise DuplicateLotNumberError(material_id, lot_number)

    # =========================================================================
    # Consumption
    # =========================================================================

    def _lock_lots(
        self,
        material_id: str,
        warehouse_id: str,
        statuses: tuple[str, ...],
    ) -> list[LotModel]:
        return list(
            self.session.scalars(
                select(LotModel)
                .where(
                    LotModel.material_id == material_id,
                    LotModel.warehouse_id == warehouse_id,
                    LotModel.status.in_(statuses),
                    LotModel.remaining_quantity > 0,
                )
                .order_by(LotModel.received_at, LotModel.sequence)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        )

    def consume(
        self,
        material_id: str,
        warehouse_id: str,
        quantity: Decimal,
        *,
        performed_by: str,
        movement_type: MovementType = MovementType.CONSUMPTION,
        reference_type: str | None = None,
        reference_id: str | None = None,
        release_reservation: bool = False,
    ) -> tuple[LotConsumption, ...]:
        """
        Consume ``quantity`` from the oldest available lots.

        Draws only from unreserved stock unless ``release_reservation`` is
        set, in which case up to ``quantity`` of the reservation is released
        in the same transaction.

        Returns:
            One LotConsumption per lot touched, in consumption order.

        Raises:
            InvalidQuantityError: quantity <= 0.
            InsufficientStockError: not enough consumable stock; nothing
                is changed.
        """
        quantity = require_positive("consume", quantity)
        if movement_type not in _CONSUMPTION_TYPES:
            raise InvalidQuantityError(
                "consume", quantity, f"movement type {movement_type.value} is not a consumption"
            )

        level = self._ledger.lock_level(material_id, warehouse_id)
        if level is None:
            raise InsufficientStockError(material_id, warehouse_id, quantity, Decimal("0"))
        if not level.is_lot_tracked:
            raise NotLotTrackedError(material_id, warehouse_id, "consume")

        lots = self._lock_lots(material_id, warehouse_id, (LotStatus.AVAILABLE.value,))
        limit = level.quantity if release_reservation else level.available_quantity
        lot_total = sum((lot.remaining_quantity for lot in lots), Decimal("0"))
        if quantity > limit:
            raise InsufficientStockError(
                material_id, warehouse_id, quantity, min(limit, lot_total), level.unit
            )

        plan = self._allocator.plan(
            [
                FifoCandidate(
                    lot_number=lot.lot_number,
                    remaining_quantity=lot.remaining_quantity,
                    unit_cost=lot.unit_cost,
                    received_at=lot.received_at,
                    sequence=lot.sequence,
                )
                for lot in lots
            ],
            requested=quantity,
            product_id=material_id,
            warehouse_id=warehouse_id,
            unit=level.unit,
        )

        # Plan succeeded; from here on nothing can fail for lack of stock.
        if release_reservation:
            self._ledger.release_reserved(level, quantity)

        by_number = {lot.lot_number: lot for lot in lots}
        for draw in plan.draws:
            lot = by_number[draw.lot_number]
            lot.remaining_quantity = draw.remaining_after
            if draw.remaining_after == 0:
                lot.status = LotStatus.DEPLETED.value
            lot.updated_by_id = performed_by
            self._ledger.apply_movement(
                level,
                movement_type,
                draw.quantity_taken,
                -draw.quantity_taken,
                performed_by=performed_by,
                lot_number=draw.lot_number,
                unit_cost=draw.unit_cost,
                reference_type=reference_type,
                reference_id=reference_id,
            )

        self._ledger.refresh_value(level)
        self._ledger.check_low_stock(level)

        logger.info(
            "lot_consumed",
            extra={
                "material_id": material_id,
                "warehouse_id": warehouse_id,
                "quantity": str(quantity),
                "unit": level.unit,
                "lots_touched": [d.lot_number for d in plan.draws],
                "lots_depleted": list(plan.depleted_lots),
                "total_cost": str(plan.total_cost),
            },
        )
        return plan.draws

    # =========================================================================
    # Status lifecycle
    # =========================================================================

    def _lock_lot(self, material_id: str, lot_number: str) -> LotModel:
        lot = self.session.execute(
            select(LotModel)
            .where(
                LotModel.material_id == material_id,
                LotModel.lot_number == lot_number,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if lot is None:
            raise LotNotFoundError(material_id, lot_number)
        return lot

    def _change_status(
        self,
        material_id: str,
        lot_number: str,
        action: str,
        movement_type: MovementType,
        *,
        performed_by: str,
        reason: str | None,
    ) -> LotSnapshot:
        # Level before lot, same order as consume.
        level_key = self.session.execute(
            select(LotModel.warehouse_id).where(
                LotModel.material_id == material_id,
                LotModel.lot_number == lot_number,
            )
        ).scalar_one_or_none()
        if level_key is None:
            raise LotNotFoundError(material_id, lot_number)
        level = self._ledger.require_level(material_id, level_key)
        lot = self._lock_lot(material_id, lot_number)

        transition = LOT_WORKFLOW.find_transition(lot.status, action)
        if transition is None:
            target = LotStatus.AVAILABLE.value if action == "release" else LotStatus.QUARANTINE.value
            raise InvalidLotTransitionError(lot_number, lot.status, target)
        if lot.remaining_quantity == 0:
            raise InvalidLotTransitionError(lot_number, lot.status, transition.to_state)

        lot.status = transition.to_state
        lot.updated_by_id = performed_by
        self.session.flush()

        self._ledger.apply_movement(
            level,
            movement_type,
            lot.remaining_quantity,
            Decimal("0"),
            performed_by=performed_by,
            lot_number=lot_number,
            unit_cost=lot.unit_cost,
            reason=reason,
        )

        logger.info(
            "lot_status_changed",
            extra={
                "lot_number": lot_number,
                "material_id": material_id,
                "warehouse_id": lot.warehouse_id,
                "from_status": transition.from_state,
                "to_status": transition.to_state,
            },
        )
        return lot.to_dto()

    def quarantine_lot(
        self,
        material_id: str,
        lot_number: str,
        *,
        performed_by: str,
        reason: str | None = None,
    ) -> LotSnapshot:
        """Hold an available lot; it stays on hand but is not consumable."""
        return self._change_status(
            material_id, lot_number, "quarantine", MovementType.QUARANTINE,
            performed_by=performed_by, reason=reason,
        )

    def release_lot(
        self,
        material_id: str,
        lot_number: str,
        *,
        performed_by: str,
        reason: str | None = None,
    ) -> LotSnapshot:
        return self._change_status(
            material_id, lot_number, "release", MovementType.RELEASE,
            performed_by=performed_by, reason=reason,
        )

    # =========================================================================
    # Expiry
    # =========================================================================

    def expire_lots(self, as_of: date, *, performed_by: str) -> list[LotSnapshot]:
        """
        Expire every available or quarantined lot whose expiry date is
        before ``as_of``.

        Each expired lot's remaining quantity leaves the aggregate through
        one ``adjustment`` movement with reason ``expiry``.
        """
        candidates = self.session.execute(
            select(LotModel.material_id, LotModel.warehouse_id)
            .where(
                LotModel.status.in_((LotStatus.AVAILABLE.value, LotStatus.QUARANTINE.value)),
                LotModel.expiry_date.is_not(None),
                LotModel.expiry_date < as_of,
            )
            .distinct()
            .order_by(LotModel.material_id, LotModel.warehouse_id)
        ).all()

        expired: list[LotSnapshot] = []
        for material_id, warehouse_id in candidates:
            level = self._ledger.lock_level(material_id, warehouse_id)
            if level is None:
                continue
            lots = self.session.scalars(
                select(LotModel)
                .where(
                    LotModel.material_id == material_id,
                    LotModel.warehouse_id == warehouse_id,
                    LotModel.status.in_((LotStatus.AVAILABLE.value, LotStatus.QUARANTINE.value)),
                    LotModel.expiry_date.is_not(None),
                    LotModel.expiry_date < as_of,
                )
                .order_by(LotModel.received_at, LotModel.sequence)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).all()
            for lot in lots:
                expired.append(self._expire_one(level, lot, performed_by))
            self._ledger.refresh_value(level)
            self._ledger.check_low_stock(level)

        logger.info(
            "lot_expiry_sweep_completed",
            extra={"as_of": as_of.isoformat(), "expired_count": len(expired)},
        )
        return expired

    def _expire_one(
        self,
        level: StockLevelModel,
        lot: LotModel,
        performed_by: str,
    ) -> LotSnapshot:
        if LOT_WORKFLOW.find_transition(lot.status, "expire") is None:
            raise InvalidLotTransitionError(lot.lot_number, lot.status, LotStatus.EXPIRED.value)

        lot.status = LotStatus.EXPIRED.value
        lot.updated_by_id = performed_by
        self.session.flush()

        remaining = lot.remaining_quantity
        if remaining > 0:
            self._ledger.trim_reservation(level, level.quantity - remaining)
            self._ledger.apply_movement(
                level,
                MovementType.ADJUSTMENT,
                remaining,
                -remaining,
                performed_by=performed_by,
                lot_number=lot.lot_number,
                unit_cost=lot.unit_cost,
                reason="expiry",
            )

        logger.warning(
            "lot_expired",
            extra={
                "lot_number": lot.lot_number,
                "material_id": lot.material_id,
                "warehouse_id": lot.warehouse_id,
                "expiry_date": lot.expiry_date.isoformat(),
                "written_off": str(remaining),
                "unit": lot.unit,
            },
        )
        return lot.to_dto()

"""
stock_services.inventory_orchestrator -- transactional entrypoint for inventory.

Responsibility:
    Wires the kernel services (MovementLedger, StockLedger, LotStore) for
    one session and gives every public operation its own transaction:
    commit on success, rollback on any exception.  A lot, its movements
    and the aggregate change therefore land together or not at all.

Architecture position:
    Services -- top of the service layer.  The only place where the
    inventory services are constructed and composed.  Callers (receiving,
    production, order management, scripts) talk to this class.

Invariants enforced:
    - One transaction per public call; services underneath only flush.
    - Every call binds ``actor_id`` and ``operation`` on LogContext so all
      log lines of the call carry them.

Failure modes:
    - Typed StockKernelError subclasses from the services, re-raised after
      rollback.
    - PersistenceError (SQLAlchemyError) from the storage layer, unchanged.

Usage:
    orchestrator = InventoryOrchestrator(get_session_factory(), clock=clock)
    lot = orchestrator.create_lot(
        "RM-0001", "WH-01", Decimal("25"), "kg", Decimal("4.20"),
        performed_by="receiving",
    )
    draws = orchestrator.consume("RM-0001", "WH-01", Decimal("15"), performed_by="wo-17")
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal

from sqlalchemy.orm import Session, sessionmaker

from stock_config.schema import StockConfiguration
from stock_engines.replenishment import ReplenishmentCalculator, StockAlert
from stock_engines.units import UnitConverter
from stock_kernel.db.engine import session_scope
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import (
    LotConsumption,
    LotKind,
    LotSnapshot,
    LotStatus,
    MovementRecord,
    MovementType,
    StockLevelSnapshot,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.selectors.stock_selector import StockSelector
from stock_kernel.services.movement_ledger import MovementLedger
from stock_services.lot_service import LotStore
from stock_services.stock_ledger import StockLedger

logger = get_logger("services.inventory_orchestrator")


@dataclass(frozen=True)
class _Services:
    """Services bound to one session."""
    session: Session
    movements: MovementLedger
    ledger: StockLedger
    lots: LotStore
    stock: StockSelector
    history: MovementSelector


class InventoryOrchestrator:
    """
    Public inventory API.

    Contract:
        Each method runs in a fresh session from ``session_factory`` and
        returns DTOs.  Nothing returned is bound to a session.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        clock: Clock | None = None,
        config: StockConfiguration | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._config = config or StockConfiguration(config_id="builtin", version=1)
        self._converter = UnitConverter()
        self._calculator = ReplenishmentCalculator(self._config.replenishment.policy())

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def config(self) -> StockConfiguration:
        return self._config

    def _wire(self, session: Session) -> _Services:
        movements = MovementLedger(session, self._clock)
        ledger = StockLedger(session, self._clock, movements, self._converter)
        lots = LotStore(
            session,
            self._clock,
            self._converter,
            self._config.inventory,
            ledger,
        )
        return _Services(
            session=session,
            movements=movements,
            ledger=ledger,
            lots=lots,
            stock=StockSelector(session),
            history=MovementSelector(session),
        )

    @contextmanager
    def _transaction(self, operation: str, actor: str | None = None) -> Iterator[_Services]:
        with LogContext.bind(actor_id=actor, operation=operation):
            with session_scope(self._session_factory) as session:
                yield self._wire(session)

    # =========================================================================
    # Lots
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
        with self._transaction("create_lot", performed_by) as svc:
            return svc.lots.create_lot(
                material_id,
                warehouse_id,
                quantity,
                unit,
                unit_cost,
                received_at,
                performed_by=performed_by,
                lot_number=lot_number,
                expiry_date=expiry_date,
                lot_kind=lot_kind,
                movement_type=movement_type,
                reference_type=reference_type,
                reference_id=reference_id,
                allow_unconverted=allow_unconverted,
                density=density,
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
        with self._transaction("consume", performed_by) as svc:
            return svc.lots.consume(
                material_id,
                warehouse_id,
                quantity,
                performed_by=performed_by,
                movement_type=movement_type,
                reference_type=reference_type,
                reference_id=reference_id,
                release_reservation=release_reservation,
            )

    def quarantine_lot(
        self, material_id: str, lot_number: str, *, performed_by: str, reason: str | None = None,
    ) -> LotSnapshot:
        with self._transaction("quarantine_lot", performed_by) as svc:
            return svc.lots.quarantine_lot(
                material_id, lot_number, performed_by=performed_by, reason=reason,
            )

    def release_lot(
        self, material_id: str, lot_number: str, *, performed_by: str, reason: str | None = None,
    ) -> LotSnapshot:
        with self._transaction("release_lot", performed_by) as svc:
            return svc.lots.release_lot(
                material_id, lot_number, performed_by=performed_by, reason=reason,
            )

    def expire_lots(self, as_of: date | None = None, *, performed_by: str) -> list[LotSnapshot]:
        as_of = as_of or self._clock.today()
        with self._transaction("expire_lots", performed_by) as svc:
            return svc.lots.expire_lots(as_of, performed_by=performed_by)

    def list_expiring_lots(
        self,
        within_days: int | None = None,
        warehouse_id: str | None = None,
    ) -> list[LotSnapshot]:
        """Available lots expiring within ``within_days`` of today."""
        if within_days is None:
            within_days = self._config.inventory.expiring_soon_days
        horizon = self._clock.today() + timedelta(days=within_days)
        with self._transaction("list_expiring_lots") as svc:
            return svc.stock.list_expiring_lots(horizon, warehouse_id)

    def list_lots(
        self,
        material_id: str,
        warehouse_id: str | None = None,
        statuses: tuple[LotStatus, ...] | None = None,
    ) -> list[LotSnapshot]:
        with self._transaction("list_lots") as svc:
            return svc.stock.list_lots(material_id, warehouse_id, statuses)

    def get_lot(self, material_id: str, lot_number: str) -> LotSnapshot:
        with self._transaction("get_lot") as svc:
            return svc.stock.get_lot(material_id, lot_number)

    # =========================================================================
    # Stock levels
    # =========================================================================

    def get_stock_level(self, product_id: str, warehouse_id: str) -> StockLevelSnapshot:
        with self._transaction("get_stock_level") as svc:
            return svc.stock.get_level(product_id, warehouse_id)

    def list_stock_levels(
        self,
        warehouse_id: str | None = None,
        product_id: str | None = None,
    ) -> list[StockLevelSnapshot]:
        with self._transaction("list_stock_levels") as svc:
            return svc.stock.list_levels(warehouse_id, product_id)

    def open_stock_level(
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
        with self._transaction("open_stock_level", performed_by) as svc:
            return svc.ledger.open_level(
                product_id,
                warehouse_id,
                unit,
                performed_by=performed_by,
                is_lot_tracked=is_lot_tracked,
                min_stock_alert=min_stock_alert,
                max_stock_alert=max_stock_alert,
                reorder_point=reorder_point,
                reorder_quantity=reorder_quantity,
            )

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
        with self._transaction("set_thresholds", performed_by) as svc:
            return svc.ledger.set_thresholds(
                product_id,
                warehouse_id,
                performed_by=performed_by,
                min_stock_alert=min_stock_alert,
                max_stock_alert=max_stock_alert,
                reorder_point=reorder_point,
                reorder_quantity=reorder_quantity,
            )

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
        with self._transaction("adjust", performed_by) as svc:
            return svc.ledger.adjust(
                product_id,
                warehouse_id,
                delta,
                movement_type,
                performed_by=performed_by,
                unit=unit,
                unit_cost=unit_cost,
                reference_type=reference_type,
                reference_id=reference_id,
                reason=reason,
            )

    def recompute(self, product_id: str, warehouse_id: str, *, performed_by: str) -> StockLevelSnapshot:
        with self._transaction("recompute", performed_by) as svc:
            return svc.ledger.recompute(product_id, warehouse_id, performed_by=performed_by)

    def reserve(
        self, product_id: str, warehouse_id: str, quantity: Decimal, *, performed_by: str,
    ) -> StockLevelSnapshot:
        with self._transaction("reserve", performed_by) as svc:
            return svc.ledger.reserve(product_id, warehouse_id, quantity, performed_by=performed_by)

    def unreserve(
        self, product_id: str, warehouse_id: str, quantity: Decimal, *, performed_by: str,
    ) -> StockLevelSnapshot:
        with self._transaction("unreserve", performed_by) as svc:
            return svc.ledger.unreserve(product_id, warehouse_id, quantity, performed_by=performed_by)

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
        with self._transaction("transfer", performed_by) as svc:
            return svc.ledger.transfer(
                product_id,
                from_warehouse_id,
                to_warehouse_id,
                quantity,
                performed_by=performed_by,
                reference_type=reference_type,
                reference_id=reference_id,
                reason=reason,
            )

    def stock_alerts(self, warehouse_id: str | None = None) -> list[StockAlert]:
        """Threshold alerts for all levels, most severe first."""
        with self._transaction("stock_alerts") as svc:
            levels = svc.stock.list_levels(warehouse_id)
        return self._calculator.classify_alerts(levels)

    # =========================================================================
    # Movement history
    # =========================================================================

    def list_movements(
        self,
        product_id: str | None = None,
        warehouse_id: str | None = None,
        lot_number: str | None = None,
        since: datetime | None = None,
        movement_type: MovementType | None = None,
        limit: int | None = None,
    ) -> list[MovementRecord]:
        with self._transaction("list_movements") as svc:
            return svc.history.list_movements(
                product_id, warehouse_id, lot_number, since, movement_type, limit,
            )

    def stock_as_of(self, product_id: str, warehouse_id: str, at: datetime) -> Decimal:
        with self._transaction("stock_as_of") as svc:
            return svc.history.stock_as_of(product_id, warehouse_id, at)

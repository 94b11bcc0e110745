"""Module fixtures: procurement and replenishment over the per-test session."""

from decimal import Decimal

import pytest

from stock_kernel.domain.dtos import MovementType
from stock_kernel.services.movement_ledger import MovementLedger
from stock_modules.procurement.service import ProcurementService
from stock_modules.replenishment.service import ReplenishmentService
from stock_services.stock_ledger import StockLedger


@pytest.fixture
def stock_ledger(session, clock) -> StockLedger:
    return StockLedger(session, clock, MovementLedger(session, clock))


@pytest.fixture
def procurement(session, clock, config) -> ProcurementService:
    return ProcurementService(session, clock, config.replenishment)


@pytest.fixture
def replenishment(session, clock, config) -> ReplenishmentService:
    return ReplenishmentService(session, clock, config.replenishment)


@pytest.fixture
def stock_at(stock_ledger, test_actor):
    """Open a plain-quantity level holding ``quantity`` with the given thresholds."""

    def _stock_at(product_id, warehouse_id, quantity, **thresholds):
        stock_ledger.adjust(
            product_id, warehouse_id, Decimal(quantity), MovementType.IN,
            performed_by=test_actor, unit="pcs",
        )
        if thresholds:
            stock_ledger.set_thresholds(
                product_id, warehouse_id, performed_by=test_actor,
                **{k: Decimal(v) for k, v in thresholds.items()},
            )

    return _stock_at

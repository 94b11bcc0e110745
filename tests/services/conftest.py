"""Service fixtures bound to the per-test session."""

import pytest

from stock_kernel.services.movement_ledger import MovementLedger
from stock_services.lot_service import LotStore
from stock_services.stock_ledger import StockLedger


@pytest.fixture
def movement_ledger(session, clock) -> MovementLedger:
    return MovementLedger(session, clock)


@pytest.fixture
def stock_ledger(session, clock, movement_ledger) -> StockLedger:
    return StockLedger(session, clock, movement_ledger)


@pytest.fixture
def lot_store(session, clock, config, stock_ledger) -> LotStore:
    return LotStore(session, clock, settings=config.inventory, ledger=stock_ledger)

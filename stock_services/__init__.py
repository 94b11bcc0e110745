"""
stock_services -- Package init and public API.

Responsibility:
    Stateful orchestration services that compose the pure engines
    (stock_engines/) with database sessions: the Lot Store, the Stock
    Ledger and the InventoryOrchestrator that owns transaction boundaries.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction:
        stock_services/ -> stock_engines/  (allowed)
        stock_services/ -> stock_kernel/   (allowed)
        stock_engines/  -> stock_services/ (FORBIDDEN)
        stock_kernel/   -> stock_services/ (FORBIDDEN)
"""

from stock_services.inventory_orchestrator import InventoryOrchestrator
from stock_services.lot_service import LotStore
from stock_services.stock_ledger import StockLedger

__all__ = [
    "InventoryOrchestrator",
    "LotStore",
    "StockLedger",
]

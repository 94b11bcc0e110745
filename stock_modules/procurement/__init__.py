"""
Procurement Module (``stock_modules.procurement``).

Responsibility
--------------
Supplier catalog entries (the read-only input to replenishment) and the
purchase-order drafts produced when a replenishment suggestion is approved.

Architecture
------------
Layer: **Modules**.  Imports from ``stock_kernel`` and ``stock_engines``
but never the reverse.
"""

from stock_modules.procurement.models import (
    PurchaseOrderDraft,
    PurchaseOrderLine,
    PurchaseOrderStatus,
    SupplierCatalogEntry,
)
from stock_modules.procurement.service import ProcurementService

__all__ = [
    "ProcurementService",
    "PurchaseOrderDraft",
    "PurchaseOrderLine",
    "PurchaseOrderStatus",
    "SupplierCatalogEntry",
]

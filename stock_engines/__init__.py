"""
Module: stock_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  Canonical import surface for stock_services and
    stock_modules.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import stock_kernel domain, exceptions and logging only.
    MUST NOT import stock_services or stock_modules.

Invariants enforced:
    - Purity: engines never read the clock.  Dates and times are parameters.
    - Decimal-only arithmetic; floats are forbidden.
    - Determinism: identical inputs always produce identical outputs.
"""

from stock_engines.fifo import FifoAllocator, FifoCandidate, FifoPlan
from stock_engines.replenishment import (
    ALERT_SEVERITY,
    AlertType,
    CatalogOption,
    ReplenishmentCalculator,
    ReplenishmentPolicy,
    ReplenishmentProposal,
    StockAlert,
    SuggestionPriority,
)
from stock_engines.units import (
    UnitConverter,
    UnitDefinition,
    UnitFamily,
    format_quantity,
    lookup_unit,
)

__all__ = [
    "FifoAllocator",
    "FifoCandidate",
    "FifoPlan",
    "ALERT_SEVERITY",
    "AlertType",
    "CatalogOption",
    "ReplenishmentCalculator",
    "ReplenishmentPolicy",
    "ReplenishmentProposal",
    "StockAlert",
    "SuggestionPriority",
    "UnitConverter",
    "UnitDefinition",
    "UnitFamily",
    "format_quantity",
    "lookup_unit",
]

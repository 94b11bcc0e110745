"""
Replenishment Module (``stock_modules.replenishment``).

Responsibility
--------------
Scans stock levels against their thresholds, consults the supplier
catalog and emits prioritized purchase suggestions.  Approval turns a
suggestion into a draft purchase order.

Architecture
------------
Layer: **Modules** -- models, workflow, ORM and a thin orchestration
service.  Scoring rules live in ``stock_engines.replenishment``.
"""

from stock_modules.replenishment.models import (
    GenerationResult,
    ReplenishmentSuggestion,
    SkippedLevel,
    SuggestionStatus,
)
from stock_modules.replenishment.service import ReplenishmentService
from stock_modules.replenishment.workflows import SUGGESTION_WORKFLOW

__all__ = [
    "GenerationResult",
    "ReplenishmentService",
    "ReplenishmentSuggestion",
    "SkippedLevel",
    "SuggestionStatus",
    "SUGGESTION_WORKFLOW",
]

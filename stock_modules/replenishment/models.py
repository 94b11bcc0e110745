"""
Replenishment Domain Models.

Suggestions, their statuses, and the outcome of one generation pass.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from stock_engines.replenishment import SuggestionPriority


class SuggestionStatus(Enum):
    """Suggestion lifecycle states."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ORDERED = "ordered"


@dataclass(frozen=True)
class ReplenishmentSuggestion:
    """A system-generated, human-approvable purchase recommendation."""
    id: UUID
    product_id: str
    warehouse_id: str
    current_stock: Decimal
    min_stock: Decimal
    reorder_point: Decimal
    suggested_quantity: Decimal
    suggested_supplier_id: str
    unit_price: Decimal
    estimated_cost: Decimal
    priority: SuggestionPriority
    status: SuggestionStatus
    generated_at: datetime
    lead_time_days: int | None = None
    purchase_order_id: UUID | None = None
    decided_at: datetime | None = None
    decided_by: str | None = None
    notes: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == SuggestionStatus.PENDING


@dataclass(frozen=True)
class SkippedLevel:
    """A stock level the generation pass could not, or need not, act on."""
    product_id: str
    warehouse_id: str
    code: str
    reason: str


@dataclass(frozen=True)
class GenerationResult:
    """Everything one generation pass produced."""
    suggestions: tuple[ReplenishmentSuggestion, ...] = field(default_factory=tuple)
    skipped: tuple[SkippedLevel, ...] = field(default_factory=tuple)

    @property
    def count(self) -> int:
        return len(self.suggestions)

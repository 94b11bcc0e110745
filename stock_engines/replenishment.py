"""
Module: stock_engines.replenishment
Responsibility:
    Pure replenishment arithmetic: threshold test, supplier resolution,
    suggested quantity, priority scoring, and stock-alert classification.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Reads StockLevelSnapshot
    DTOs and catalog options; never sees lots or sessions.

Invariants enforced:
    - A level needs replenishment iff
      ``quantity <= max(reorder_point, min_stock_alert)`` using effective
      thresholds (missing min falls back to the policy default, missing
      reorder point falls back to the min).
    - The supplier's minimum order quantity is a hard floor on the
      suggested quantity.
    - Generation never scores ``low``; that value exists for manual
      assignment only.

Failure modes:
    - NoSupplierSourceError from ``evaluate`` when a level needs reorder
      and no active catalog option exists.  The generation pass catches it
      and records a skip.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from stock_engines.tracer import traced_engine
from stock_kernel.db.types import round_quantity
from stock_kernel.domain.dtos import StockLevelSnapshot
from stock_kernel.exceptions import NoSupplierSourceError
from stock_kernel.logging_config import get_logger

logger = get_logger("engines.replenishment")


class SuggestionPriority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AlertType(str, Enum):
    CRITICAL = "critical"
    LOW = "low"
    REORDER = "reorder"
    OVERSTOCK = "overstock"


ALERT_SEVERITY: dict[AlertType, int] = {
    AlertType.CRITICAL: 3,
    AlertType.LOW: 2,
    AlertType.REORDER: 2,
    AlertType.OVERSTOCK: 1,
}


@dataclass(frozen=True)
class ReplenishmentPolicy:
    """Tunable constants for scoring; loaded from configuration."""
    default_min_stock: Decimal = Decimal("10")
    critical_ratio: Decimal = Decimal("0.5")
    high_ratio: Decimal = Decimal("0.75")
    fallback_multiplier: Decimal = Decimal("2")

    def __post_init__(self):
        if self.default_min_stock < 0:
            raise ValueError("default_min_stock cannot be negative")
        if not (0 < self.critical_ratio <= self.high_ratio):
            raise ValueError(
                f"ratios must satisfy 0 < critical ({self.critical_ratio}) "
                f"<= high ({self.high_ratio})"
            )
        if self.fallback_multiplier <= 0:
            raise ValueError("fallback_multiplier must be positive")


@dataclass(frozen=True)
class CatalogOption:
    """One supplier's offer for one product, as read from the catalog."""
    supplier_id: str
    unit_price: Decimal
    min_order_quantity: Decimal = Decimal("0")
    is_preferred: bool = False
    is_active: bool = True
    lead_time_days: int | None = None

    @property
    def sort_key(self) -> tuple:
        lead = self.lead_time_days if self.lead_time_days is not None else 10**6
        return (self.unit_price, lead, self.supplier_id)


@dataclass(frozen=True)
class ReplenishmentProposal:
    """Everything needed to emit one pending suggestion."""
    product_id: str
    warehouse_id: str
    current_stock: Decimal
    min_stock: Decimal
    reorder_point: Decimal
    suggested_quantity: Decimal
    supplier_id: str
    unit_price: Decimal
    estimated_cost: Decimal
    priority: SuggestionPriority
    lead_time_days: int | None = None


@dataclass(frozen=True)
class StockAlert:
    product_id: str
    warehouse_id: str
    alert_type: AlertType
    quantity: Decimal
    min_stock: Decimal

    @property
    def severity(self) -> int:
        return ALERT_SEVERITY[self.alert_type]


class ReplenishmentCalculator:
    """
    Scoring rules for replenishment.

    Contract:
        Every method is a pure function of its arguments and the policy.
    """

    def __init__(self, policy: ReplenishmentPolicy | None = None):
        self.policy = policy or ReplenishmentPolicy()

    def effective_min_stock(self, level: StockLevelSnapshot) -> Decimal:
        if level.min_stock_alert:
            return level.min_stock_alert
        return self.policy.default_min_stock

    def effective_reorder_point(self, level: StockLevelSnapshot) -> Decimal:
        if level.reorder_point:
            return level.reorder_point
        return self.effective_min_stock(level)

    def needs_replenishment(self, level: StockLevelSnapshot) -> bool:
        threshold = max(
            self.effective_reorder_point(level),
            self.effective_min_stock(level),
        )
        return level.quantity <= threshold

    def resolve_supplier(
        self, options: Sequence[CatalogOption],
    ) -> CatalogOption | None:
        """Preferred and active first; otherwise any active; else None."""
        active = sorted((o for o in options if o.is_active), key=lambda o: o.sort_key)
        for option in active:
            if option.is_preferred:
                return option
        return active[0] if active else None

    def suggested_quantity(
        self, level: StockLevelSnapshot, option: CatalogOption,
    ) -> Decimal:
        if level.reorder_quantity:
            base = level.reorder_quantity
        else:
            base = self.effective_min_stock(level) * self.policy.fallback_multiplier
        return max(base, option.min_order_quantity or Decimal("0"))

    def score_priority(self, quantity: Decimal, min_stock: Decimal) -> SuggestionPriority:
        if quantity <= min_stock * self.policy.critical_ratio:
            return SuggestionPriority.CRITICAL
        if quantity <= min_stock * self.policy.high_ratio:
            return SuggestionPriority.HIGH
        return SuggestionPriority.MEDIUM

    @traced_engine("replenishment", "1.0", fingerprint_fields=("level",))
    def evaluate(
        self,
        *,
        level: StockLevelSnapshot,
        options: Sequence[CatalogOption],
    ) -> ReplenishmentProposal | None:
        """
        Proposal for one level, or None when no reorder is needed.

        Raises:
            NoSupplierSourceError: Reorder needed but no active option.
        """
        if not self.needs_replenishment(level):
            return None

        option = self.resolve_supplier(options)
        if option is None:
            raise NoSupplierSourceError(level.product_id, level.warehouse_id)

        min_stock = self.effective_min_stock(level)
        quantity = self.suggested_quantity(level, option)
        return ReplenishmentProposal(
            product_id=level.product_id,
            warehouse_id=level.warehouse_id,
            current_stock=level.quantity,
            min_stock=min_stock,
            reorder_point=self.effective_reorder_point(level),
            suggested_quantity=quantity,
            supplier_id=option.supplier_id,
            unit_price=option.unit_price,
            estimated_cost=round_quantity(quantity * option.unit_price),
            priority=self.score_priority(level.quantity, min_stock),
            lead_time_days=option.lead_time_days,
        )

    def classify_alert(self, level: StockLevelSnapshot) -> StockAlert | None:
        """Most severe alert for a level, or None."""
        min_stock = self.effective_min_stock(level)
        quantity = level.quantity

        if quantity <= min_stock * self.policy.critical_ratio:
            alert_type = AlertType.CRITICAL
        elif quantity < min_stock:
            alert_type = AlertType.LOW
        elif level.reorder_point and quantity <= level.reorder_point:
            alert_type = AlertType.REORDER
        elif level.max_stock_alert and quantity > level.max_stock_alert:
            alert_type = AlertType.OVERSTOCK
        else:
            return None

        return StockAlert(
            product_id=level.product_id,
            warehouse_id=level.warehouse_id,
            alert_type=alert_type,
            quantity=quantity,
            min_stock=min_stock,
        )

    def classify_alerts(
        self, levels: Sequence[StockLevelSnapshot],
    ) -> list[StockAlert]:
        """Alerts for all levels, most severe first (stable within severity)."""
        alerts = [a for a in (self.classify_alert(lv) for lv in levels) if a is not None]
        return sorted(alerts, key=lambda a: -a.severity)

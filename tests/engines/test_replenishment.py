"""
Tests for the replenishment calculator: threshold test, supplier choice,
suggested quantity, priority scoring and stock alerts.

All tests are pure -- no database, no session.
"""

from decimal import Decimal

import pytest

from stock_engines.replenishment import (
    AlertType,
    CatalogOption,
    ReplenishmentCalculator,
    ReplenishmentPolicy,
    SuggestionPriority,
)
from stock_kernel.domain.dtos import StockLevelSnapshot
from stock_kernel.exceptions import NoSupplierSourceError


def _level(quantity: str, **thresholds) -> StockLevelSnapshot:
    return StockLevelSnapshot(
        product_id="RM-1",
        warehouse_id="WH-1",
        unit="kg",
        quantity=Decimal(quantity),
        reserved_quantity=Decimal("0"),
        **{k: Decimal(v) for k, v in thresholds.items()},
    )


@pytest.fixture
def calculator() -> ReplenishmentCalculator:
    return ReplenishmentCalculator()


# =============================================================================
# Threshold
# =============================================================================


class TestNeedsReplenishment:

    def test_at_min_needs_reorder(self, calculator):
        assert calculator.needs_replenishment(_level("50", min_stock_alert="50"))

    def test_above_min_does_not(self, calculator):
        assert not calculator.needs_replenishment(_level("51", min_stock_alert="50"))

    def test_reorder_point_above_min_triggers(self, calculator):
        level = _level("70", min_stock_alert="50", reorder_point="80")
        assert calculator.needs_replenishment(level)

    def test_missing_min_uses_policy_default(self, calculator):
        assert calculator.needs_replenishment(_level("10"))
        assert not calculator.needs_replenishment(_level("11"))


# =============================================================================
# Supplier resolution
# =============================================================================


class TestResolveSupplier:

    def test_preferred_wins_over_cheaper(self, calculator):
        options = [
            CatalogOption("CHEAP", Decimal("1")),
            CatalogOption("PREF", Decimal("2"), is_preferred=True),
        ]
        assert calculator.resolve_supplier(options).supplier_id == "PREF"

    def test_inactive_preferred_is_ignored(self, calculator):
        options = [
            CatalogOption("PREF", Decimal("1"), is_preferred=True, is_active=False),
            CatalogOption("B", Decimal("3")),
            CatalogOption("A", Decimal("2")),
        ]
        assert calculator.resolve_supplier(options).supplier_id == "A"

    def test_price_tie_broken_by_lead_time(self, calculator):
        options = [
            CatalogOption("SLOW", Decimal("2"), lead_time_days=10),
            CatalogOption("FAST", Decimal("2"), lead_time_days=3),
        ]
        assert calculator.resolve_supplier(options).supplier_id == "FAST"

    def test_none_when_all_inactive(self, calculator):
        assert calculator.resolve_supplier([CatalogOption("X", Decimal("1"), is_active=False)]) is None


# =============================================================================
# Evaluate
# =============================================================================


class TestEvaluate:

    def test_supplier_minimum_is_a_floor(self, calculator):
        level = _level("40", min_stock_alert="50")
        proposal = calculator.evaluate(
            level=level,
            options=[CatalogOption("SUP-1", Decimal("2.50"), min_order_quantity=Decimal("200"))],
        )
        # fallback 50 x 2 = 100, raised to the supplier minimum
        assert proposal.suggested_quantity == Decimal("200")
        assert proposal.estimated_cost == Decimal("500.00")
        assert proposal.supplier_id == "SUP-1"

    def test_reorder_quantity_used_when_set(self, calculator):
        level = _level("40", min_stock_alert="50", reorder_quantity="300")
        proposal = calculator.evaluate(level=level, options=[CatalogOption("S", Decimal("1"))])
        assert proposal.suggested_quantity == Decimal("300")

    def test_estimated_cost_not_rounded_to_cents(self, calculator):
        level = _level("1", min_stock_alert="2", reorder_quantity="3")
        proposal = calculator.evaluate(level=level, options=[CatalogOption("S", Decimal("0.333"))])
        assert proposal.estimated_cost == Decimal("0.999")
        assert proposal.unit_price == Decimal("0.333")

    def test_not_needed_returns_none(self, calculator):
        level = _level("500", min_stock_alert="50")
        assert calculator.evaluate(level=level, options=[]) is None

    def test_no_supplier_raises(self, calculator):
        with pytest.raises(NoSupplierSourceError) as exc_info:
            calculator.evaluate(level=_level("5", min_stock_alert="50"), options=[])
        assert exc_info.value.code == "NO_SUPPLIER_SOURCE"
        assert exc_info.value.product_id == "RM-1"

    def test_proposal_carries_effective_thresholds(self, calculator):
        proposal = calculator.evaluate(level=_level("4"), options=[CatalogOption("S", Decimal("1"))])
        assert proposal.min_stock == Decimal("10")
        assert proposal.reorder_point == Decimal("10")
        assert proposal.current_stock == Decimal("4")


# =============================================================================
# Priority
# =============================================================================


class TestPriority:

    @pytest.mark.parametrize(
        "quantity, expected",
        [
            ("40", SuggestionPriority.CRITICAL),
            ("50", SuggestionPriority.CRITICAL),
            ("70", SuggestionPriority.HIGH),
            ("75", SuggestionPriority.HIGH),
            ("95", SuggestionPriority.MEDIUM),
        ],
    )
    def test_score_against_min_100(self, calculator, quantity, expected):
        assert calculator.score_priority(Decimal(quantity), Decimal("100")) == expected

    def test_generation_never_scores_low(self, calculator):
        scores = {
            calculator.score_priority(Decimal(q), Decimal("100"))
            for q in range(0, 101, 5)
        }
        assert SuggestionPriority.LOW not in scores

    def test_custom_ratios(self):
        calculator = ReplenishmentCalculator(
            ReplenishmentPolicy(critical_ratio=Decimal("0.2"), high_ratio=Decimal("0.4"))
        )
        assert calculator.score_priority(Decimal("30"), Decimal("100")) == SuggestionPriority.HIGH

    def test_invalid_policy_rejected(self):
        with pytest.raises(ValueError, match="ratios"):
            ReplenishmentPolicy(critical_ratio=Decimal("0.9"), high_ratio=Decimal("0.5"))


# =============================================================================
# Alerts
# =============================================================================


class TestAlerts:

    def test_classification(self, calculator):
        levels = [
            _level("200", min_stock_alert="50", max_stock_alert="150"),
            _level("60", min_stock_alert="50", reorder_point="70"),
            _level("20", min_stock_alert="50"),
            _level("45", min_stock_alert="50"),
            _level("100", min_stock_alert="50"),
        ]
        alerts = calculator.classify_alerts(levels)
        assert [a.alert_type for a in alerts] == [
            AlertType.CRITICAL,
            AlertType.REORDER,
            AlertType.LOW,
            AlertType.OVERSTOCK,
        ]

    def test_severity(self, calculator):
        alert = calculator.classify_alert(_level("1", min_stock_alert="50"))
        assert alert.severity == 3

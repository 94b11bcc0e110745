"""
Tests for the FIFO allocation planner.

Pure engine, no database.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from stock_engines.fifo import FifoAllocator, FifoCandidate
from stock_kernel.exceptions import InsufficientStockError, InvalidQuantityError

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _lot(number: str, remaining: str, day: int, sequence: int, cost: str = "1") -> FifoCandidate:
    return FifoCandidate(
        lot_number=number,
        remaining_quantity=Decimal(remaining),
        unit_cost=Decimal(cost),
        received_at=T0 + timedelta(days=day),
        sequence=sequence,
    )


def _plan(candidates, requested):
    return FifoAllocator().plan(
        candidates, requested=Decimal(requested), product_id="RM-1", warehouse_id="WH-1", unit="kg",
    )


class TestFifoOrder:

    def test_oldest_lot_first(self):
        plan = _plan(
            [_lot("L3", "10", 3, 3), _lot("L1", "10", 1, 1), _lot("L2", "10", 2, 2)],
            "15",
        )
        assert [(d.lot_number, d.quantity_taken) for d in plan.draws] == [
            ("L1", Decimal("10")),
            ("L2", Decimal("5")),
        ]
        assert plan.draws[0].remaining_after == Decimal("0")
        assert plan.draws[1].remaining_after == Decimal("5")
        assert plan.depleted_lots == ("L1",)

    def test_ties_broken_by_sequence(self):
        plan = _plan([_lot("B", "5", 1, 2), _lot("A", "5", 1, 1)], "6")
        assert [d.lot_number for d in plan.draws] == ["A", "B"]

    def test_empty_lots_are_ignored(self):
        plan = _plan([_lot("L1", "0", 1, 1), _lot("L2", "4", 2, 2)], "4")
        assert [d.lot_number for d in plan.draws] == ["L2"]

    def test_exact_total_depletes_everything(self):
        plan = _plan([_lot("L1", "10", 1, 1), _lot("L2", "10", 2, 2)], "20")
        assert plan.depleted_lots == ("L1", "L2")


class TestConservation:

    def test_sum_of_draws_equals_request(self):
        plan = _plan(
            [_lot("L1", "3.5", 1, 1), _lot("L2", "2.25", 2, 2), _lot("L3", "9", 3, 3)],
            "7.125",
        )
        assert plan.total_taken == Decimal("7.125")

    def test_no_draw_exceeds_lot(self):
        lots = [_lot("L1", "3", 1, 1), _lot("L2", "4", 2, 2)]
        plan = _plan(lots, "6")
        by_number = {c.lot_number: c for c in lots}
        for draw in plan.draws:
            assert draw.quantity_taken <= by_number[draw.lot_number].remaining_quantity

    def test_total_cost_uses_each_lot_cost(self):
        plan = _plan([_lot("L1", "10", 1, 1, cost="2"), _lot("L2", "10", 2, 2, cost="3")], "15")
        assert plan.total_cost == Decimal("35")


class TestAllOrNothing:

    def test_insufficient_raises_with_available(self):
        with pytest.raises(InsufficientStockError) as exc_info:
            _plan([_lot("L1", "10", 1, 1), _lot("L2", "10", 2, 2)], "25")
        assert exc_info.value.requested == "25"
        assert exc_info.value.available == "20"
        assert exc_info.value.unit == "kg"

    def test_no_candidates(self):
        with pytest.raises(InsufficientStockError):
            _plan([], "1")

    @pytest.mark.parametrize("requested", ["0", "-1"])
    def test_non_positive_request(self, requested):
        with pytest.raises(InvalidQuantityError):
            _plan([_lot("L1", "10", 1, 1)], requested)

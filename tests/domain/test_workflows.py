"""State machine definitions and the domain value rules."""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from stock_kernel.domain.dtos import (
    LotConsumption,
    LotKind,
    LotSnapshot,
    LotStatus,
    MovementType,
    StockLevelSnapshot,
)
from stock_kernel.domain.lot_lifecycle import LOT_WORKFLOW
from stock_kernel.domain.values import check_movement_effect, require_positive
from stock_kernel.domain.workflow import Transition, Workflow
from stock_kernel.exceptions import InvalidQuantityError, MovementInvariantError
from stock_modules.replenishment.workflows import SUGGESTION_WORKFLOW


class TestWorkflowDefinition:

    def test_initial_state_must_exist(self):
        with pytest.raises(ValueError, match="initial_state"):
            Workflow("w", "", initial_state="x", states=("a",), transitions=())

    def test_transition_to_unknown_state(self):
        with pytest.raises(ValueError, match="unknown state"):
            Workflow("w", "", initial_state="a", states=("a",), transitions=(Transition("a", "b", "go"),))

    def test_terminal_state_has_no_exit(self):
        with pytest.raises(ValueError, match="terminal"):
            Workflow(
                "w", "", initial_state="a", states=("a", "b"),
                transitions=(Transition("a", "b", "go"), Transition("b", "a", "back")),
                terminal_states=("b",),
            )


class TestLotWorkflow:

    @pytest.mark.parametrize(
        "from_state, action, to_state",
        [
            ("available", "quarantine", "quarantine"),
            ("quarantine", "release", "available"),
            ("available", "expire", "expired"),
            ("quarantine", "expire", "expired"),
            ("available", "deplete", "depleted"),
        ],
    )
    def test_allowed(self, from_state, action, to_state):
        assert LOT_WORKFLOW.find_transition(from_state, action).to_state == to_state

    @pytest.mark.parametrize(
        "from_state, action",
        [
            ("quarantine", "quarantine"),
            ("available", "release"),
            ("quarantine", "deplete"),
            ("expired", "release"),
            ("depleted", "quarantine"),
        ],
    )
    def test_refused(self, from_state, action):
        assert LOT_WORKFLOW.find_transition(from_state, action) is None

    def test_terminal_states(self):
        assert LOT_WORKFLOW.is_terminal("expired")
        assert LOT_WORKFLOW.is_terminal("depleted")
        assert not LOT_WORKFLOW.is_terminal("quarantine")


class TestSuggestionWorkflow:

    def test_lifecycle(self):
        assert SUGGESTION_WORKFLOW.initial_state == "pending"
        assert SUGGESTION_WORKFLOW.can_transition("pending", "approved")
        assert SUGGESTION_WORKFLOW.can_transition("approved", "ordered")
        assert SUGGESTION_WORKFLOW.can_transition("pending", "rejected")
        assert not SUGGESTION_WORKFLOW.can_transition("pending", "ordered")
        assert SUGGESTION_WORKFLOW.find_transition("approved", "order").guard.name == "purchase_order_created"

    def test_decisions_are_final(self):
        for state in ("ordered", "rejected"):
            assert SUGGESTION_WORKFLOW.is_terminal(state)
            for action in ("approve", "reject", "set_priority"):
                assert SUGGESTION_WORKFLOW.find_transition(state, action) is None


class TestQuantityRules:

    @pytest.mark.parametrize("value", [Decimal("0"), Decimal("-1"), 1.5, "abc", Decimal("NaN"), True])
    def test_require_positive_rejects(self, value):
        with pytest.raises(InvalidQuantityError):
            require_positive("op", value)

    def test_require_positive_accepts(self):
        assert require_positive("op", 3) == Decimal("3")

    def test_require_positive_rounds_to_column_precision(self):
        assert require_positive("op", Decimal("1.0000000004")) == Decimal("1.000000000")

    def test_require_positive_rejects_sub_precision(self):
        with pytest.raises(InvalidQuantityError, match="rounds to zero"):
            require_positive("op", Decimal("0.0000000001"))

    def test_transfer_either_direction(self):
        check_movement_effect(MovementType.TRANSFER, Decimal("2"), Decimal("5"), Decimal("3"))
        check_movement_effect(MovementType.TRANSFER, Decimal("2"), Decimal("0"), Decimal("2"))

    def test_negative_after_refused(self):
        with pytest.raises(MovementInvariantError):
            check_movement_effect(MovementType.ADJUSTMENT, Decimal("6"), Decimal("5"), Decimal("-1"))


class TestSnapshots:

    def test_reserved_cannot_exceed_quantity(self):
        with pytest.raises(ValueError):
            StockLevelSnapshot("P", "W", "kg", quantity=Decimal("5"), reserved_quantity=Decimal("6"))

    def test_available_quantity(self):
        level = StockLevelSnapshot("P", "W", "kg", quantity=Decimal("5"), reserved_quantity=Decimal("2"))
        assert level.available_quantity == Decimal("3")

    def test_lot_remaining_bounds(self):
        with pytest.raises(ValueError, match="remaining_quantity"):
            LotSnapshot(
                id=uuid4(), lot_number="LOT-1", material_id="M", warehouse_id="W",
                lot_kind=LotKind.RAW_MATERIAL,
                initial_quantity=Decimal("10"), remaining_quantity=Decimal("11"),
                unit="kg", unit_cost=Decimal("1"),
                received_quantity=Decimal("10"), received_unit="kg",
                received_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
                status=LotStatus.AVAILABLE, sequence=1,
            )

    def test_consumption_cost(self):
        draw = LotConsumption("LOT-1", Decimal("4"), Decimal("2.50"), Decimal("6"))
        assert draw.cost == Decimal("10.00")
        with pytest.raises(ValueError):
            LotConsumption("LOT-1", Decimal("0"), Decimal("1"), Decimal("0"))

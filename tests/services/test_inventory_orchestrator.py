"""
Tests for the InventoryOrchestrator: one committed transaction per call,
rollback on failure, historical replay and the read-side helpers.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from stock_engines.replenishment import AlertType
from stock_kernel.domain.dtos import LotStatus, MovementType
from stock_kernel.exceptions import (
    InsufficientStockError,
    LotNotFoundError,
    StockLevelNotFoundError,
    UnitMismatchError,
)

MAT = "RM-0001"
WH = "WH-01"


class TestTransactions:

    def test_committed_lot_visible_to_next_call(self, orchestrator, test_actor):
        lot = orchestrator.create_lot(MAT, WH, Decimal("25"), "kg", Decimal("4.20"), performed_by=test_actor)

        assert orchestrator.get_lot(MAT, lot.lot_number) == lot
        assert orchestrator.get_stock_level(MAT, WH).quantity == Decimal("25")

    def test_failed_consume_rolls_back(self, orchestrator, clock, test_actor):
        for _ in range(3):
            orchestrator.create_lot(MAT, WH, Decimal("10"), "kg", Decimal("1"), performed_by=test_actor)
            clock.advance(60)

        with pytest.raises(InsufficientStockError):
            orchestrator.consume(MAT, WH, Decimal("31"), performed_by=test_actor)

        assert orchestrator.get_stock_level(MAT, WH).quantity == Decimal("30")
        assert all(lot.remaining_quantity == Decimal("10") for lot in orchestrator.list_lots(MAT))
        assert orchestrator.list_movements(product_id=MAT, movement_type=MovementType.CONSUMPTION) == []

    def test_failed_receipt_leaves_no_level(self, orchestrator, test_actor):
        orchestrator.create_lot(MAT, WH, Decimal("1"), "kg", Decimal("1"), performed_by=test_actor)
        with pytest.raises(UnitMismatchError):
            orchestrator.create_lot(MAT, "WH-02", Decimal("1"), "L", Decimal("1"), performed_by=test_actor)
        with pytest.raises(StockLevelNotFoundError):
            orchestrator.get_stock_level(MAT, "WH-02")

    def test_fifo_through_orchestrator(self, orchestrator, clock, test_actor):
        lots = []
        for _ in range(3):
            lots.append(orchestrator.create_lot(MAT, WH, Decimal("10"), "kg", Decimal("1"), performed_by=test_actor))
            clock.advance(60)

        draws = orchestrator.consume(MAT, WH, Decimal("15"), performed_by=test_actor)

        assert [d.lot_number for d in draws] == [lots[0].lot_number, lots[1].lot_number]
        remaining = [lot.remaining_quantity for lot in orchestrator.list_lots(MAT, WH)]
        assert remaining == [Decimal("0"), Decimal("5"), Decimal("10")]
        depleted = orchestrator.list_lots(MAT, statuses=(LotStatus.DEPLETED,))
        assert [lot.lot_number for lot in depleted] == [lots[0].lot_number]

    def test_unknown_lot(self, orchestrator):
        with pytest.raises(LotNotFoundError):
            orchestrator.get_lot(MAT, "LOT-NONE")

    def test_log_context_carries_actor(self, orchestrator, test_actor, captured_logs):
        orchestrator.create_lot(MAT, WH, Decimal("1"), "kg", Decimal("1"), performed_by=test_actor)
        created = [r for r in captured_logs() if r["message"] == "lot_created"]
        assert created[0]["actor_id"] == test_actor
        assert created[0]["operation"] == "create_lot"


class TestHistory:

    def test_stock_as_of_replays_movements(self, orchestrator, clock, test_actor):
        orchestrator.create_lot(MAT, WH, Decimal("10"), "kg", Decimal("1"), performed_by=test_actor)
        t1 = clock.now()
        clock.advance(3600)
        orchestrator.create_lot(MAT, WH, Decimal("5"), "kg", Decimal("1"), performed_by=test_actor)
        t2 = clock.now()
        clock.advance(3600)
        orchestrator.consume(MAT, WH, Decimal("12"), performed_by=test_actor)
        t3 = clock.now()

        assert orchestrator.stock_as_of(MAT, WH, t1 - timedelta(seconds=1)) == Decimal("0")
        assert orchestrator.stock_as_of(MAT, WH, t1) == Decimal("10")
        assert orchestrator.stock_as_of(MAT, WH, t2) == Decimal("15")
        assert orchestrator.stock_as_of(MAT, WH, t3) == Decimal("3")
        assert orchestrator.stock_as_of(MAT, WH, t3) == orchestrator.get_stock_level(MAT, WH).quantity

    def test_list_movements_filters(self, orchestrator, clock, test_actor):
        lot = orchestrator.create_lot(MAT, WH, Decimal("10"), "kg", Decimal("1"), performed_by=test_actor)
        clock.advance(60)
        since = clock.now()
        orchestrator.quarantine_lot(MAT, lot.lot_number, performed_by=test_actor)
        orchestrator.release_lot(MAT, lot.lot_number, performed_by=test_actor)

        recent = orchestrator.list_movements(product_id=MAT, since=since)
        assert [m.movement_type for m in recent] == [MovementType.QUARANTINE, MovementType.RELEASE]
        assert len(orchestrator.list_movements(lot_number=lot.lot_number)) == 3
        assert len(orchestrator.list_movements(product_id=MAT, limit=1)) == 1


class TestExpiryAndAlerts:

    def test_expire_lots_defaults_to_today(self, orchestrator, clock, test_actor):
        today = clock.today()
        orchestrator.create_lot(
            MAT, WH, Decimal("10"), "kg", Decimal("1"),
            performed_by=test_actor, expiry_date=today - timedelta(days=1),
        )
        expired = orchestrator.expire_lots(performed_by=test_actor)
        assert len(expired) == 1
        assert orchestrator.get_stock_level(MAT, WH).quantity == Decimal("0")

    def test_list_expiring_lots_window(self, orchestrator, test_actor):
        # clock today is 2024-01-01; default window is 30 days
        soon = orchestrator.create_lot(
            MAT, WH, Decimal("1"), "kg", Decimal("1"),
            performed_by=test_actor, expiry_date=date(2024, 1, 20),
        )
        orchestrator.create_lot(
            MAT, WH, Decimal("1"), "kg", Decimal("1"),
            performed_by=test_actor, expiry_date=date(2024, 3, 1),
        )
        assert [lot.lot_number for lot in orchestrator.list_expiring_lots()] == [soon.lot_number]
        assert len(orchestrator.list_expiring_lots(within_days=90)) == 2

    def test_stock_alerts(self, orchestrator, test_actor):
        orchestrator.create_lot(MAT, WH, Decimal("4"), "kg", Decimal("1"), performed_by=test_actor)
        orchestrator.set_thresholds(MAT, WH, performed_by=test_actor, min_stock_alert=Decimal("10"))
        orchestrator.adjust("PK-1", WH, Decimal("500"), MovementType.IN, performed_by=test_actor, unit="pcs")
        orchestrator.set_thresholds(
            "PK-1", WH, performed_by=test_actor,
            min_stock_alert=Decimal("10"), max_stock_alert=Decimal("100"),
        )

        alerts = orchestrator.stock_alerts(WH)
        assert [(a.product_id, a.alert_type) for a in alerts] == [
            (MAT, AlertType.CRITICAL),
            ("PK-1", AlertType.OVERSTOCK),
        ]


class TestPlainStock:

    def test_reserve_transfer_unreserve(self, orchestrator, test_actor):
        orchestrator.open_stock_level("PK-1", WH, "pcs", performed_by=test_actor, is_lot_tracked=False)
        orchestrator.adjust("PK-1", WH, Decimal("50"), MovementType.IN, performed_by=test_actor)
        orchestrator.reserve("PK-1", WH, Decimal("20"), performed_by=test_actor)

        with pytest.raises(InsufficientStockError):
            orchestrator.transfer("PK-1", WH, "WH-02", Decimal("40"), performed_by=test_actor)

        orchestrator.transfer("PK-1", WH, "WH-02", Decimal("30"), performed_by=test_actor)
        orchestrator.unreserve("PK-1", WH, Decimal("20"), performed_by=test_actor)

        levels = {lv.warehouse_id: lv for lv in orchestrator.list_stock_levels(product_id="PK-1")}
        assert levels[WH].quantity == Decimal("20")
        assert levels[WH].reserved_quantity == Decimal("0")
        assert levels["WH-02"].quantity == Decimal("30")

    def test_recompute_plain_level(self, orchestrator, test_actor):
        orchestrator.adjust("PK-1", WH, Decimal("5"), MovementType.IN, performed_by=test_actor, unit="pcs")
        level = orchestrator.recompute("PK-1", WH, performed_by=test_actor)
        assert level.quantity == Decimal("5")

"""
Tests for the LotStore: receipts, unit conversion, FIFO consumption,
status lifecycle and the expiry sweep.

Services only flush; every assertion reads back through the same session.
"""

from datetime import date
from decimal import Decimal

import pytest

from stock_kernel.domain.dtos import LotKind, LotStatus, MovementType
from stock_kernel.exceptions import (
    DuplicateLotNumberError,
    InsufficientStockError,
    InvalidLotTransitionError,
    InvalidQuantityError,
    LotNotFoundError,
    NotLotTrackedError,
    UnitMismatchError,
)
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.selectors.stock_selector import StockSelector

MAT = "RM-0001"
WH = "WH-01"


def _receive(lot_store, clock, actor, *quantities, costs=None, unit="kg"):
    """Receive one lot per quantity, one hour apart."""
    lots = []
    for i, qty in enumerate(quantities):
        cost = Decimal(costs[i]) if costs else Decimal("2")
        lots.append(
            lot_store.create_lot(MAT, WH, Decimal(qty), unit, cost, performed_by=actor)
        )
        clock.advance(3600)
    return lots


def _level(session):
    return StockSelector(session).get_level(MAT, WH)


def _lots(session):
    return {lot.lot_number: lot for lot in StockSelector(session).list_lots(MAT, WH)}


def _assert_conserved(session):
    on_hand = sum(
        (lot.remaining_quantity for lot in _lots(session).values()
         if lot.status in (LotStatus.AVAILABLE, LotStatus.QUARANTINE)),
        Decimal("0"),
    )
    assert _level(session).quantity == on_hand


# =============================================================================
# Receipts
# =============================================================================


class TestCreateLot:

    def test_creates_lot_level_and_movement(self, session, lot_store, test_actor):
        lot = lot_store.create_lot(MAT, WH, Decimal("25"), "kg", Decimal("4.20"), performed_by=test_actor)

        assert lot.lot_number == "LOT-20240101-0001"
        assert lot.remaining_quantity == lot.initial_quantity == Decimal("25")
        assert lot.status == LotStatus.AVAILABLE
        assert lot.lot_kind == LotKind.RAW_MATERIAL
        assert lot.sequence == 1

        level = _level(session)
        assert level.quantity == Decimal("25")
        assert level.unit == "kg"
        assert level.is_lot_tracked
        assert level.total_value == Decimal("105")
        assert level.last_known_cost == Decimal("4.20")

        movements = MovementSelector(session).list_movements(product_id=MAT)
        assert len(movements) == 1
        m = movements[0]
        assert m.movement_type == MovementType.IN
        assert m.quantity == Decimal("25")
        assert (m.quantity_before, m.quantity_after) == (Decimal("0"), Decimal("25"))
        assert m.lot_number == lot.lot_number
        assert m.performed_by == test_actor

    def test_received_at_defaults_to_clock(self, lot_store, clock, test_actor):
        lot = lot_store.create_lot(MAT, WH, Decimal("1"), "kg", Decimal("1"), performed_by=test_actor)
        assert lot.received_at == clock.now()

    def test_sequences_increase(self, lot_store, clock, test_actor):
        lots = _receive(lot_store, clock, test_actor, "1", "1", "1")
        assert [lot.sequence for lot in lots] == [1, 2, 3]
        assert lots[2].lot_number == "LOT-20240101-0003"

    def test_explicit_lot_number_and_kind(self, lot_store, test_actor):
        lot = lot_store.create_lot(
            MAT, WH, Decimal("5"), "kg", Decimal("1"),
            performed_by=test_actor,
            lot_number="SUPPLIER-BATCH-7",
            lot_kind=LotKind.PRODUCT,
            movement_type=MovementType.PRODUCTION,
            reference_type="work_order",
            reference_id="WO-17",
        )
        assert lot.lot_number == "SUPPLIER-BATCH-7"
        assert lot.lot_kind == LotKind.PRODUCT
        assert lot.reference_id == "WO-17"

    def test_duplicate_lot_number_rejected(self, session, lot_store, test_actor):
        lot_store.create_lot(MAT, WH, Decimal("5"), "kg", Decimal("1"), performed_by=test_actor, lot_number="B-1")
        with pytest.raises(DuplicateLotNumberError) as exc_info:
            lot_store.create_lot(MAT, WH, Decimal("5"), "kg", Decimal("1"), performed_by=test_actor, lot_number="B-1")
        assert exc_info.value.lot_number == "B-1"
        assert _level(session).quantity == Decimal("5")

    @pytest.mark.parametrize("quantity", [Decimal("0"), Decimal("-3"), 2.5, "abc"])
    def test_bad_quantity_rejected(self, session, lot_store, test_actor, quantity):
        with pytest.raises(InvalidQuantityError):
            lot_store.create_lot(MAT, WH, quantity, "kg", Decimal("1"), performed_by=test_actor)
        assert StockSelector(session).find_level(MAT, WH) is None

    def test_negative_cost_rejected(self, lot_store, test_actor):
        with pytest.raises(InvalidQuantityError, match="unit cost"):
            lot_store.create_lot(MAT, WH, Decimal("1"), "kg", Decimal("-1"), performed_by=test_actor)

    def test_receipt_into_plain_level_rejected(self, stock_ledger, lot_store, test_actor):
        stock_ledger.adjust(MAT, WH, Decimal("5"), performed_by=test_actor, unit="kg")
        with pytest.raises(NotLotTrackedError):
            lot_store.create_lot(MAT, WH, Decimal("1"), "kg", Decimal("1"), performed_by=test_actor)


# =============================================================================
# Unit conversion on receipt
# =============================================================================


class TestReceiptConversion:

    def test_grams_converted_to_canonical_kg(self, session, lot_store, test_actor):
        lot_store.create_lot(MAT, WH, Decimal("10"), "kg", Decimal("4"), performed_by=test_actor)
        lot = lot_store.create_lot(MAT, WH, Decimal("500"), "g", Decimal("0.004"), performed_by=test_actor)

        assert lot.unit == "kg"
        assert lot.initial_quantity == Decimal("0.5")
        assert lot.received_quantity == Decimal("500")
        assert lot.received_unit == "g"
        # cost re-expressed per kg, total value preserved
        assert lot.unit_cost == Decimal("4")
        assert _level(session).quantity == Decimal("10.5")

    def test_incompatible_unit_rejected(self, session, lot_store, test_actor):
        lot_store.create_lot(MAT, WH, Decimal("10"), "kg", Decimal("4"), performed_by=test_actor)
        with pytest.raises(UnitMismatchError):
            lot_store.create_lot(MAT, WH, Decimal("3"), "L", Decimal("1"), performed_by=test_actor)
        assert len(_lots(session)) == 1
        assert _level(session).quantity == Decimal("10")

    def test_override_accepts_raw_quantity(self, session, lot_store, test_actor, captured_logs):
        lot_store.create_lot(MAT, WH, Decimal("10"), "kg", Decimal("4"), performed_by=test_actor)
        lot = lot_store.create_lot(
            MAT, WH, Decimal("3"), "L", Decimal("1"),
            performed_by=test_actor, allow_unconverted=True,
        )
        assert lot.initial_quantity == Decimal("3")
        assert lot.unit == "kg"
        assert lot.received_unit == "L"
        assert _level(session).quantity == Decimal("13")

        warnings = [r for r in captured_logs() if r["message"] == "unit_conversion_skipped"]
        assert len(warnings) == 1
        assert warnings[0]["level"] == "WARNING"
        assert warnings[0]["from_unit"] == "L"

    def test_density_converts_volume_to_mass(self, lot_store, test_actor):
        lot_store.create_lot(MAT, WH, Decimal("1"), "kg", Decimal("1"), performed_by=test_actor)
        lot = lot_store.create_lot(
            MAT, WH, Decimal("2"), "L", Decimal("1"),
            performed_by=test_actor, density=Decimal("0.92"),
        )
        assert lot.initial_quantity == Decimal("1.84")

    def test_second_warehouse_inherits_canonical_unit(self, session, lot_store, test_actor):
        lot_store.create_lot(MAT, WH, Decimal("1"), "kg", Decimal("1"), performed_by=test_actor)
        lot = lot_store.create_lot(MAT, "WH-02", Decimal("250"), "g", Decimal("0.001"), performed_by=test_actor)
        assert lot.unit == "kg"
        assert StockSelector(session).get_level(MAT, "WH-02").quantity == Decimal("0.25")


# =============================================================================
# FIFO consumption
# =============================================================================


class TestConsume:

    def test_fifo_draws_oldest_first(self, session, lot_store, clock, test_actor):
        l1, l2, l3 = _receive(lot_store, clock, test_actor, "10", "10", "10")

        draws = lot_store.consume(MAT, WH, Decimal("15"), performed_by=test_actor)

        assert [(d.lot_number, d.quantity_taken) for d in draws] == [
            (l1.lot_number, Decimal("10")),
            (l2.lot_number, Decimal("5")),
        ]
        lots = _lots(session)
        assert lots[l1.lot_number].remaining_quantity == Decimal("0")
        assert lots[l1.lot_number].status == LotStatus.DEPLETED
        assert lots[l2.lot_number].remaining_quantity == Decimal("5")
        assert lots[l2.lot_number].status == LotStatus.AVAILABLE
        assert lots[l3.lot_number].remaining_quantity == Decimal("10")
        assert _level(session).quantity == Decimal("15")
        _assert_conserved(session)

    def test_one_movement_per_lot_touched(self, session, lot_store, clock, test_actor):
        l1, l2 = _receive(lot_store, clock, test_actor, "10", "10")
        lot_store.consume(MAT, WH, Decimal("15"), performed_by=test_actor, reference_type="work_order", reference_id="WO-1")

        consumptions = MovementSelector(session).list_movements(
            product_id=MAT, movement_type=MovementType.CONSUMPTION,
        )
        assert [(m.lot_number, m.quantity) for m in consumptions] == [
            (l1.lot_number, Decimal("10")),
            (l2.lot_number, Decimal("5")),
        ]
        assert consumptions[0].quantity_before == Decimal("20")
        assert consumptions[-1].quantity_after == Decimal("5")
        assert all(m.reference_id == "WO-1" for m in consumptions)

    def test_same_timestamp_uses_creation_order(self, lot_store, test_actor):
        first = lot_store.create_lot(MAT, WH, Decimal("4"), "kg", Decimal("1"), performed_by=test_actor)
        lot_store.create_lot(MAT, WH, Decimal("4"), "kg", Decimal("1"), performed_by=test_actor)
        draws = lot_store.consume(MAT, WH, Decimal("3"), performed_by=test_actor)
        assert [d.lot_number for d in draws] == [first.lot_number]

    def test_total_value_follows_lot_costs(self, session, lot_store, clock, test_actor):
        _receive(lot_store, clock, test_actor, "10", "10", costs=["2", "3"])
        lot_store.consume(MAT, WH, Decimal("15"), performed_by=test_actor)
        assert _level(session).total_value == Decimal("15")

    def test_insufficient_stock_changes_nothing(self, session, lot_store, clock, test_actor):
        _receive(lot_store, clock, test_actor, "10", "10", "10")
        before = _lots(session)

        with pytest.raises(InsufficientStockError) as exc_info:
            lot_store.consume(MAT, WH, Decimal("31"), performed_by=test_actor)

        assert exc_info.value.requested == "31"
        assert Decimal(exc_info.value.available) == Decimal("30")
        assert _lots(session) == before
        assert _level(session).quantity == Decimal("30")
        assert MovementSelector(session).list_movements(
            product_id=MAT, movement_type=MovementType.CONSUMPTION,
        ) == []

    def test_unknown_scope_is_insufficient(self, lot_store, test_actor):
        with pytest.raises(InsufficientStockError) as exc_info:
            lot_store.consume("NOPE", WH, Decimal("1"), performed_by=test_actor)
        assert exc_info.value.available == "0"

    def test_zero_quantity_rejected(self, lot_store, test_actor):
        with pytest.raises(InvalidQuantityError):
            lot_store.consume(MAT, WH, Decimal("0"), performed_by=test_actor)

    def test_sub_precision_quantity_rejected(self, session, lot_store, clock, test_actor):
        _receive(lot_store, clock, test_actor, "10")
        with pytest.raises(InvalidQuantityError, match="rounds to zero"):
            lot_store.consume(MAT, WH, Decimal("0.0000000001"), performed_by=test_actor)
        assert _level(session).quantity == Decimal("10")
        assert MovementSelector(session).list_movements(
            product_id=MAT, movement_type=MovementType.CONSUMPTION,
        ) == []

    def test_quarantined_lot_is_skipped(self, session, lot_store, clock, test_actor):
        l1, l2, l3 = _receive(lot_store, clock, test_actor, "10", "10", "10")
        lot_store.quarantine_lot(MAT, l1.lot_number, performed_by=test_actor)

        draws = lot_store.consume(MAT, WH, Decimal("15"), performed_by=test_actor)

        assert [d.lot_number for d in draws] == [l2.lot_number, l3.lot_number]
        assert _lots(session)[l1.lot_number].remaining_quantity == Decimal("10")
        _assert_conserved(session)

    def test_quarantined_stock_cannot_cover_request(self, lot_store, clock, test_actor):
        l1, _ = _receive(lot_store, clock, test_actor, "10", "10")
        lot_store.quarantine_lot(MAT, l1.lot_number, performed_by=test_actor)
        with pytest.raises(InsufficientStockError) as exc_info:
            lot_store.consume(MAT, WH, Decimal("15"), performed_by=test_actor)
        assert Decimal(exc_info.value.available) == Decimal("10")

    def test_reserved_stock_is_protected(self, session, stock_ledger, lot_store, clock, test_actor):
        _receive(lot_store, clock, test_actor, "10", "10", "10")
        stock_ledger.reserve(MAT, WH, Decimal("20"), performed_by=test_actor)

        with pytest.raises(InsufficientStockError):
            lot_store.consume(MAT, WH, Decimal("15"), performed_by=test_actor)

        lot_store.consume(MAT, WH, Decimal("15"), performed_by=test_actor, release_reservation=True)
        level = _level(session)
        assert level.quantity == Decimal("15")
        assert level.reserved_quantity == Decimal("5")

    def test_plain_level_rejected(self, stock_ledger, lot_store, test_actor):
        stock_ledger.adjust(MAT, WH, Decimal("5"), performed_by=test_actor, unit="kg")
        with pytest.raises(NotLotTrackedError):
            lot_store.consume(MAT, WH, Decimal("1"), performed_by=test_actor)

    def test_low_stock_warning(self, stock_ledger, lot_store, clock, test_actor, captured_logs):
        _receive(lot_store, clock, test_actor, "10")
        stock_ledger.set_thresholds(MAT, WH, performed_by=test_actor, min_stock_alert=Decimal("5"))
        lot_store.consume(MAT, WH, Decimal("6"), performed_by=test_actor)

        warnings = [r for r in captured_logs() if r["message"] == "low_stock_detected"]
        assert len(warnings) == 1
        assert Decimal(warnings[0]["quantity"]) == Decimal("4")
        assert warnings[0]["min_stock_alert"] is not None


# =============================================================================
# Status lifecycle
# =============================================================================


class TestLotStatus:

    def test_quarantine_keeps_on_hand(self, session, lot_store, test_actor):
        lot = lot_store.create_lot(MAT, WH, Decimal("8"), "kg", Decimal("1"), performed_by=test_actor)

        held = lot_store.quarantine_lot(MAT, lot.lot_number, performed_by=test_actor, reason="QC hold")

        assert held.status == LotStatus.QUARANTINE
        assert _level(session).quantity == Decimal("8")
        m = MovementSelector(session).list_movements(
            product_id=MAT, movement_type=MovementType.QUARANTINE,
        )[0]
        assert m.quantity == Decimal("8")
        assert m.quantity_before == m.quantity_after == Decimal("8")
        assert m.reason == "QC hold"

    def test_release_returns_to_available(self, lot_store, test_actor):
        lot = lot_store.create_lot(MAT, WH, Decimal("8"), "kg", Decimal("1"), performed_by=test_actor)
        lot_store.quarantine_lot(MAT, lot.lot_number, performed_by=test_actor)
        released = lot_store.release_lot(MAT, lot.lot_number, performed_by=test_actor)
        assert released.status == LotStatus.AVAILABLE

    def test_double_quarantine_rejected(self, lot_store, test_actor):
        lot = lot_store.create_lot(MAT, WH, Decimal("8"), "kg", Decimal("1"), performed_by=test_actor)
        lot_store.quarantine_lot(MAT, lot.lot_number, performed_by=test_actor)
        with pytest.raises(InvalidLotTransitionError) as exc_info:
            lot_store.quarantine_lot(MAT, lot.lot_number, performed_by=test_actor)
        assert exc_info.value.from_status == "quarantine"

    def test_release_available_rejected(self, lot_store, test_actor):
        lot = lot_store.create_lot(MAT, WH, Decimal("8"), "kg", Decimal("1"), performed_by=test_actor)
        with pytest.raises(InvalidLotTransitionError):
            lot_store.release_lot(MAT, lot.lot_number, performed_by=test_actor)

    def test_depleted_lot_never_reopens(self, lot_store, test_actor):
        lot = lot_store.create_lot(MAT, WH, Decimal("8"), "kg", Decimal("1"), performed_by=test_actor)
        lot_store.consume(MAT, WH, Decimal("8"), performed_by=test_actor)
        with pytest.raises(InvalidLotTransitionError):
            lot_store.quarantine_lot(MAT, lot.lot_number, performed_by=test_actor)
        with pytest.raises(InvalidLotTransitionError):
            lot_store.release_lot(MAT, lot.lot_number, performed_by=test_actor)

    def test_unknown_lot(self, lot_store, test_actor):
        with pytest.raises(LotNotFoundError):
            lot_store.quarantine_lot(MAT, "LOT-MISSING", performed_by=test_actor)


# =============================================================================
# Expiry
# =============================================================================


class TestExpiry:

    def _lot(self, lot_store, actor, qty, expiry):
        return lot_store.create_lot(
            MAT, WH, Decimal(qty), "kg", Decimal("2"), performed_by=actor, expiry_date=expiry,
        )

    def test_expired_lot_leaves_stock(self, session, lot_store, test_actor, captured_logs):
        old = self._lot(lot_store, test_actor, "10", date(2024, 1, 10))
        fresh = self._lot(lot_store, test_actor, "5", date(2024, 2, 1))

        expired = lot_store.expire_lots(date(2024, 1, 15), performed_by=test_actor)

        assert [lot.lot_number for lot in expired] == [old.lot_number]
        lots = _lots(session)
        assert lots[old.lot_number].status == LotStatus.EXPIRED
        assert lots[fresh.lot_number].status == LotStatus.AVAILABLE
        level = _level(session)
        assert level.quantity == Decimal("5")
        assert level.total_value == Decimal("10")
        _assert_conserved(session)

        write_off = MovementSelector(session).list_movements(
            product_id=MAT, movement_type=MovementType.ADJUSTMENT,
        )
        assert len(write_off) == 1
        assert write_off[0].reason == "expiry"
        assert write_off[0].quantity == Decimal("10")
        assert write_off[0].quantity_after == Decimal("5")

        assert any(
            r["message"] == "lot_expired" and r["lot_number"] == old.lot_number
            for r in captured_logs()
        )

    def test_expiry_date_equal_to_sweep_date_survives(self, lot_store, test_actor):
        self._lot(lot_store, test_actor, "10", date(2024, 1, 15))
        assert lot_store.expire_lots(date(2024, 1, 15), performed_by=test_actor) == []

    def test_quarantined_lot_expires(self, lot_store, test_actor):
        lot = self._lot(lot_store, test_actor, "10", date(2024, 1, 10))
        lot_store.quarantine_lot(MAT, lot.lot_number, performed_by=test_actor)
        expired = lot_store.expire_lots(date(2024, 1, 15), performed_by=test_actor)
        assert expired[0].status == LotStatus.EXPIRED

    def test_expired_lot_cannot_be_released(self, lot_store, test_actor):
        lot = self._lot(lot_store, test_actor, "10", date(2024, 1, 10))
        lot_store.expire_lots(date(2024, 1, 15), performed_by=test_actor)
        with pytest.raises(InvalidLotTransitionError):
            lot_store.release_lot(MAT, lot.lot_number, performed_by=test_actor)

    def test_reservation_trimmed_to_remaining_stock(self, session, stock_ledger, lot_store, test_actor):
        self._lot(lot_store, test_actor, "10", date(2024, 1, 10))
        self._lot(lot_store, test_actor, "20", None)
        stock_ledger.reserve(MAT, WH, Decimal("25"), performed_by=test_actor)

        lot_store.expire_lots(date(2024, 1, 15), performed_by=test_actor)

        level = _level(session)
        assert level.quantity == Decimal("20")
        assert level.reserved_quantity == Decimal("20")

    def test_sweep_is_idempotent(self, lot_store, test_actor):
        self._lot(lot_store, test_actor, "10", date(2024, 1, 10))
        lot_store.expire_lots(date(2024, 1, 15), performed_by=test_actor)
        assert lot_store.expire_lots(date(2024, 1, 15), performed_by=test_actor) == []

"""
Tests for the InventoryLedger over ticket types.

Covers:
- reserve / release / confirm_sale / refund counter arithmetic
- clamping of release and refund at zero
- automatic active <-> sold_out flips (and their status history)
- addressable holds settle exactly once
"""

from uuid import uuid4

import pytest

from hub_kernel.domain.stock import ReservationStatus, StockStatus
from hub_kernel.exceptions import InsufficientStockError, StockUnitNotFoundError
from hub_kernel.selectors.status_history_selector import StatusHistorySelector
from hub_kernel.services.inventory_ledger import InventoryLedger
from hub_modules.events import ATTENDEE_HOLDER, ticket_ledger
from hub_modules.events.orm import TicketTypeModel


@pytest.fixture
def ledger(session, deterministic_clock):
    return ticket_ledger(session, deterministic_clock)


@pytest.fixture
def unit(make_event, make_ticket_type):
    return make_ticket_type(make_event(), quantity=10)


class TestReserveAndRelease:
    """Two-phase holding of stock."""

    def test_reserve_all_then_one_more_then_release(self, ledger, unit):
        """Reserve 10, fail on the 11th, release 10, reserve 1 again."""
        ledger.reserve(unit.id, 10)
        assert unit.quantity_reserved == 10

        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.reserve(unit.id, 1)
        assert exc_info.value.requested == 1
        assert exc_info.value.available == 0
        assert exc_info.value.code == "INSUFFICIENT_STOCK"

        ledger.release(unit.id, 10)
        assert unit.quantity_reserved == 0

        ledger.reserve(unit.id, 1)
        assert unit.quantity_reserved == 1
        assert unit.quantity_sold == 0

    def test_failed_reserve_leaves_counters_untouched(self, ledger, unit):
        ledger.reserve(unit.id, 8)
        with pytest.raises(InsufficientStockError):
            ledger.reserve(unit.id, 3)
        assert unit.quantity_reserved == 8

    def test_release_clamps_at_zero(self, ledger, unit):
        """Releasing more than is reserved never drives the counter negative."""
        ledger.reserve(unit.id, 2)
        movement = ledger.release(unit.id, 5)
        assert unit.quantity_reserved == 0
        assert movement.requested == 5
        assert movement.applied == 2
        assert movement.reserved_delta == -2

    def test_release_with_nothing_reserved(self, ledger, unit):
        movement = ledger.release(unit.id, 1)
        assert movement.applied == 0
        assert unit.quantity_reserved == 0

    def test_unlimited_unit_never_runs_out(self, ledger, make_event, make_ticket_type):
        unlimited = make_ticket_type(make_event(), quantity=None)
        movement = ledger.reserve(unlimited.id, 10_000)
        assert movement.quantity_available is None
        assert unlimited.status == StockStatus.ACTIVE.value

    @pytest.mark.parametrize("qty", [0, -1, True, 1.5])
    def test_non_positive_quantities_rejected(self, ledger, unit, qty):
        with pytest.raises(ValueError):
            ledger.reserve(unit.id, qty)

    def test_missing_unit(self, ledger):
        with pytest.raises(StockUnitNotFoundError):
            ledger.reserve(uuid4(), 1)


class TestConfirmAndRefund:
    """Selling held stock and giving sold stock back."""

    def test_reserve_confirm_round_trip(self, ledger, unit):
        """reserve(3) + confirm_sale(3) leaves reserved unchanged and sold +3."""
        ledger.reserve(unit.id, 1)
        reserved_before = unit.quantity_reserved

        ledger.reserve(unit.id, 3)
        movement = ledger.confirm_sale(unit.id, 3)

        assert unit.quantity_reserved == reserved_before
        assert unit.quantity_sold == 3
        assert movement.sold_delta == 3
        assert movement.reserved_delta == -3

    def test_confirm_without_reservation_still_respects_capacity(self, ledger, unit):
        ledger.reserve(unit.id, 9)
        with pytest.raises(InsufficientStockError):
            ledger.confirm_sale(unit.id, 11)
        assert unit.quantity_sold == 0

    def test_refund_clamps_at_zero(self, ledger, unit):
        ledger.reserve(unit.id, 1)
        ledger.confirm_sale(unit.id, 1)
        movement = ledger.refund(unit.id, 4)
        assert unit.quantity_sold == 0
        assert movement.applied == 1
        assert movement.sold_delta == -1


class TestAutomaticStatusFlips:
    """active <-> sold_out follows availability; paused is left alone."""

    def test_sold_out_when_availability_reaches_zero(self, ledger, unit):
        ledger.reserve(unit.id, 10)
        movement = ledger.confirm_sale(unit.id, 10)
        assert movement.status_changed is False
        assert unit.status == StockStatus.SOLD_OUT.value

    def test_reserving_the_last_unit_flips_to_sold_out(self, ledger, unit):
        movement = ledger.reserve(unit.id, 10)
        assert movement.status_before is StockStatus.ACTIVE
        assert movement.status_after is StockStatus.SOLD_OUT
        assert unit.previous_status == StockStatus.ACTIVE.value

    def test_refund_flips_back_to_active(self, ledger, unit):
        ledger.reserve(unit.id, 10)
        ledger.confirm_sale(unit.id, 10)
        movement = ledger.refund(unit.id, 1)
        assert movement.status_after is StockStatus.ACTIVE
        assert unit.status == StockStatus.ACTIVE.value
        assert unit.quantity_available == 1

    def test_flips_are_recorded_in_status_history(self, session, ledger, unit):
        ledger.reserve(unit.id, 10)
        ledger.release(unit.id, 10)

        entries = StatusHistorySelector(session).entries_for("ticket_type", unit.id)
        assert [(e.from_status, e.to_status) for e in entries] == [
            (None, "active"),
            ("active", "sold_out"),
            ("sold_out", "active"),
        ]
        assert entries[1].notes == "Automatic after reserve"

    def test_ledger_without_history_records_nothing(self, session, deterministic_clock, unit):
        bare = InventoryLedger(session, TicketTypeModel, clock=deterministic_clock)
        bare.reserve(unit.id, 10)
        assert unit.status == StockStatus.SOLD_OUT.value
        assert StatusHistorySelector(session).count_for("ticket_type", unit.id) == 1

    def test_paused_unit_keeps_its_status(self, ledger, make_event, make_ticket_type):
        paused = make_ticket_type(make_event(), quantity=2, paused=True)
        ledger.reserve(paused.id, 2)
        assert paused.status == StockStatus.PAUSED.value
        ledger.release(paused.id, 2)
        assert paused.status == StockStatus.PAUSED.value


class TestHolds:
    """Addressable holds tie reserved units to one holder."""

    def test_hold_reserves_and_records(self, ledger, unit, test_actor_id):
        holder = uuid4()
        reservation = ledger.hold(unit.id, ATTENDEE_HOLDER, holder, test_actor_id, qty=2)
        assert reservation.status == ReservationStatus.HELD.value
        assert reservation.unit_type == "ticket_type"
        assert unit.quantity_reserved == 2
        assert ledger.hold_for(ATTENDEE_HOLDER, holder) is reservation

    def test_hold_fails_when_stock_is_short(self, ledger, unit, test_actor_id):
        with pytest.raises(InsufficientStockError):
            ledger.hold(unit.id, ATTENDEE_HOLDER, uuid4(), test_actor_id, qty=11)

    def test_confirm_hold_sells_once(self, ledger, unit, test_actor_id, deterministic_clock):
        holder = uuid4()
        ledger.hold(unit.id, ATTENDEE_HOLDER, holder, test_actor_id)

        movement = ledger.confirm_hold(ATTENDEE_HOLDER, holder, test_actor_id)
        assert movement is not None
        assert movement.sold_delta == 1
        assert ledger.confirm_hold(ATTENDEE_HOLDER, holder, test_actor_id) is None
        assert unit.quantity_sold == 1
        assert unit.quantity_reserved == 0

        reservation = ledger.hold_for(ATTENDEE_HOLDER, holder)
        assert reservation.status == ReservationStatus.CONFIRMED.value
        assert reservation.settled_at == deterministic_clock.now_utc()

    def test_release_hold_after_confirm_is_a_no_op(self, ledger, unit, test_actor_id):
        holder = uuid4()
        ledger.hold(unit.id, ATTENDEE_HOLDER, holder, test_actor_id)
        ledger.confirm_hold(ATTENDEE_HOLDER, holder)
        assert ledger.release_hold(ATTENDEE_HOLDER, holder) is None
        assert unit.quantity_sold == 1

    def test_refund_hold_only_after_confirm(self, ledger, unit, test_actor_id):
        holder = uuid4()
        ledger.hold(unit.id, ATTENDEE_HOLDER, holder, test_actor_id)
        assert ledger.refund_hold(ATTENDEE_HOLDER, holder) is None

        ledger.confirm_hold(ATTENDEE_HOLDER, holder)
        movement = ledger.refund_hold(ATTENDEE_HOLDER, holder)
        assert movement.sold_delta == -1
        assert ledger.refund_hold(ATTENDEE_HOLDER, holder) is None
        assert unit.quantity_sold == 0

    def test_release_hold_gives_stock_back(self, ledger, unit, test_actor_id):
        holder = uuid4()
        ledger.hold(unit.id, ATTENDEE_HOLDER, holder, test_actor_id, qty=3)
        movement = ledger.release_hold(ATTENDEE_HOLDER, holder)
        assert movement.reserved_delta == -3
        assert unit.quantity_available == 10

    def test_unknown_holder_is_a_no_op(self, ledger, captured_logs):
        assert ledger.confirm_hold(ATTENDEE_HOLDER, uuid4()) is None
        assert any(r["message"] == "stock_hold_not_found" for r in captured_logs())

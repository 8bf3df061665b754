"""
ORM-level immutability of status history and settled stock holds.
"""

from uuid import uuid4

import pytest
from sqlalchemy import select

from hub_kernel.exceptions import ImmutabilityViolationError
from hub_kernel.models.status_history import StatusHistoryEntry
from hub_kernel.models.stock import StockReservationModel
from hub_modules.events import ATTENDEE_HOLDER, ticket_ledger


@pytest.fixture
def history_entry(session, make_event):
    event = make_event()
    return session.execute(
        select(StatusHistoryEntry)
        .where(StatusHistoryEntry.entity_id == event.id)
        .order_by(StatusHistoryEntry.sequence)
    ).scalars().first()


@pytest.fixture
def held(session, deterministic_clock, make_event, make_ticket_type, test_actor_id):
    unit = make_ticket_type(make_event(), quantity=5)
    ledger = ticket_ledger(session, deterministic_clock)
    holder = uuid4()
    reservation = ledger.hold(unit.id, ATTENDEE_HOLDER, holder, test_actor_id)
    session.commit()
    return ledger, holder, reservation


class TestStatusHistoryImmutability:

    def test_update_blocked(self, session, history_entry):
        history_entry.notes = "rewritten"
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "StatusHistoryEntry"
        assert exc_info.value.code == "IMMUTABILITY_VIOLATION"
        session.rollback()

    def test_delete_blocked(self, session, history_entry):
        session.delete(history_entry)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()


class TestReservationImmutability:

    def test_held_reservation_can_settle(self, session, held):
        ledger, holder, reservation = held
        ledger.confirm_hold(ATTENDEE_HOLDER, holder)
        session.commit()
        assert reservation.status == "confirmed"

    def test_confirmed_may_become_refunded(self, session, held):
        ledger, holder, reservation = held
        ledger.confirm_hold(ATTENDEE_HOLDER, holder)
        ledger.refund_hold(ATTENDEE_HOLDER, holder)
        session.commit()
        assert reservation.status == "refunded"

    def test_released_hold_is_frozen(self, session, held):
        ledger, holder, reservation = held
        ledger.release_hold(ATTENDEE_HOLDER, holder)
        session.commit()

        reservation.status = "held"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_confirmed_hold_cannot_go_back(self, session, held):
        ledger, holder, reservation = held
        ledger.confirm_hold(ATTENDEE_HOLDER, holder)
        session.commit()

        reservation.status = "released"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_delete_blocked(self, session, held):
        _, _, reservation = held
        session.delete(reservation)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_blocked_write_is_logged(self, session, held, captured_logs):
        _, _, reservation = held
        session.delete(reservation)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert blocked
        assert blocked[0]["operation"] == "DELETE"
        assert blocked[0]["entity_type"] == "StockReservation"

"""
Attendee cancellation: stock compensation depends on the status the
attendee held before the cancel.
"""

from uuid import uuid4

import pytest

from hub_kernel.domain.stock import StockStatus
from hub_kernel.selectors.status_history_selector import StatusHistorySelector
from hub_modules.events import (
    ATTENDEE_HOLDER,
    AttendeeService,
    AttendeeStatus,
    BuyerInfo,
    TicketService,
    ticket_ledger,
)

BUYER = BuyerInfo(name="Tunde Bello", email="tunde@example.com")


@pytest.fixture
def attendees(session, dispatcher, deterministic_clock):
    return AttendeeService(session, dispatcher, deterministic_clock)


@pytest.fixture
def event(make_event):
    return make_event("Investor Office Hours")


@pytest.fixture
def free_type(make_ticket_type, event):
    return make_ticket_type(event, "Founder", quantity=2)


@pytest.fixture
def paid_type(make_ticket_type, event):
    return make_ticket_type(event, "Observer", price="30", quantity=5)


def _book(booking_service, event, ticket_type, qty=1):
    return booking_service.create_booking(event.id, {ticket_type.id: qty}, BUYER, user_id=uuid4())


class TestCancelByPriorStatus:

    def test_confirmed_attendee_is_refunded(self, session, attendees, booking_service, event, free_type, test_actor_id):
        attendee = _book(booking_service, event, free_type).attendees[0]
        assert free_type.quantity_sold == 1
        assert event.registered_count == 1

        assert attendees.cancel(attendee.id, "Cannot make it", test_actor_id) is True

        assert attendee.status == AttendeeStatus.CANCELLED.value
        assert attendee.cancellation_reason == "Cannot make it"
        assert attendee.cancelled_at is not None
        assert free_type.quantity_sold == 0
        assert free_type.quantity_reserved == 0
        assert event.registered_count == 0
        hold = ticket_ledger(session).hold_for(ATTENDEE_HOLDER, attendee.id)
        assert hold.status == "refunded"

    def test_pending_attendee_is_released(self, session, attendees, booking_service, event, paid_type, test_actor_id):
        attendee = _book(booking_service, event, paid_type).attendees[0]
        assert paid_type.quantity_reserved == 1

        assert attendees.cancel(attendee.id, "Changed plans", test_actor_id) is True

        assert paid_type.quantity_reserved == 0
        assert paid_type.quantity_sold == 0
        assert event.registered_count == 0
        hold = ticket_ledger(session).hold_for(ATTENDEE_HOLDER, attendee.id)
        assert hold.status == "released"

    def test_cancel_event_reports_compensation(self, attendees, booking_service, event, free_type, dispatcher, test_actor_id):
        attendee = _book(booking_service, event, free_type).attendees[0]
        attendees.cancel(attendee.id, "", test_actor_id)
        cancelled = [e for e in dispatcher.published if e.name == "AttendeeCancelled"]
        assert cancelled[0].payload["prior_status"] == "confirmed"
        assert cancelled[0].payload["stock_operation"] == "refund"


class TestRefusedCancels:

    def test_checked_in_attendee(
        self, session, attendees, booking_service, event, free_type, dispatcher, job_queue,
        deterministic_clock, test_actor_id, captured_logs,
    ):
        attendee = _book(booking_service, event, free_type).attendees[0]
        TicketService(session, dispatcher, job_queue, deterministic_clock).check_in(attendee.id, test_actor_id)

        assert attendees.cancel(attendee.id, "Too late", test_actor_id) is False
        assert attendee.status == AttendeeStatus.CHECKED_IN.value
        assert free_type.quantity_sold == 1
        assert any(r["message"] == "attendee_cancel_refused" for r in captured_logs())

    def test_second_cancel_is_a_no_op(self, attendees, booking_service, event, free_type, test_actor_id):
        attendee = _book(booking_service, event, free_type).attendees[0]
        assert attendees.cancel(attendee.id, "first", test_actor_id) is True
        assert attendees.cancel(attendee.id, "second", test_actor_id) is False
        assert attendee.cancellation_reason == "first"
        assert free_type.quantity_sold == 0

    def test_no_show_keeps_the_seat(self, attendees, booking_service, event, free_type, test_actor_id):
        attendee = _book(booking_service, event, free_type).attendees[0]
        attendees.mark_no_show(attendee.id, test_actor_id)
        assert attendee.status == AttendeeStatus.NO_SHOW.value
        assert attendees.cancel(attendee.id, "late", test_actor_id) is False
        assert free_type.quantity_sold == 1
        assert event.registered_count == 1


class TestRestock:

    def test_cancel_reopens_sold_out_ticket_type(self, session, attendees, booking_service, event, free_type, test_actor_id):
        result = _book(booking_service, event, free_type, qty=2)
        assert free_type.status == StockStatus.SOLD_OUT.value

        attendees.cancel(result.attendees[0].id, "", test_actor_id)

        assert free_type.status == StockStatus.ACTIVE.value
        assert free_type.quantity_available == 1
        latest = StatusHistorySelector(session).latest_for("ticket_type", free_type.id)
        assert (latest.from_status, latest.to_status) == ("sold_out", "active")
        assert latest.notes == "Automatic after refund"

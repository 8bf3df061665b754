"""
Tests for EventBookingService.

Covers free and paid bookings end to end, the order of booking validation,
all-or-nothing holds, payment callbacks and the unpaid-booking sweep.
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from hub_kernel.domain.actors import SYSTEM_ACTOR_ID
from hub_kernel.domain.stock import StockStatus
from hub_kernel.exceptions import (
    EmptyBookingError,
    EventNotFoundError,
    GuestNotAllowedError,
    InsufficientStockError,
    InvalidUnitError,
    QuantityExceedsLimitError,
    RegistrationClosedError,
    UnitNotPurchasableError,
)
from hub_kernel.models.stock import StockReservationModel
from hub_kernel.services.transaction import unit_of_work
from hub_modules.billing import InvoiceService, InvoiceStatus
from hub_modules.events import ATTENDEE_HOLDER, AttendeeStatus, BuyerInfo, ticket_ledger
from hub_modules.events.orm import AttendeeModel, TicketTypeModel
from hub_modules.events.tickets import GENERATE_TICKET_PDF, SEND_TICKET_EMAIL
from hub_services.event_booking import EventBookingService

BUYER = BuyerInfo(
    name="Zainab Musa",
    email="zainab@example.com",
    company="Musa Labs",
    custom_fields={"dietary": "vegetarian"},
)


@pytest.fixture
def event(make_event):
    return make_event("Demo Day")


@pytest.fixture
def free_type(make_ticket_type, event):
    return make_ticket_type(event, "Community", quantity=5)


@pytest.fixture
def paid_type(make_ticket_type, event):
    return make_ticket_type(event, "Investor", price="20.00", quantity=5)


def _attendee_count(session) -> int:
    return session.execute(select(func.count()).select_from(AttendeeModel)).scalar_one()


class _UnreachableQueue:
    def enqueue(self, job):
        raise ConnectionError("queue down")


class TestFreeBooking:

    def test_confirms_immediately(self, session, booking_service, event, free_type, dispatcher, job_queue):
        result = booking_service.create_booking(event.id, {free_type.id: 1}, BUYER, user_id=uuid4())

        assert result.is_free
        assert result.invoice is None
        attendee = result.attendees[0]
        assert attendee.status == AttendeeStatus.CONFIRMED.value
        assert attendee.confirmed_at is not None
        assert attendee.guest_name == "Zainab Musa"
        assert attendee.custom_fields == {"dietary": "vegetarian"}
        assert attendee.reference_no.startswith("EVT-2025-")

        assert free_type.quantity_sold == 1
        assert free_type.quantity_reserved == 0
        assert event.registered_count == 1
        assert ticket_ledger(session).hold_for(ATTENDEE_HOLDER, attendee.id).status == "confirmed"

        names = dispatcher.published_names()
        assert names.index("BookingCreated") < names.index("BookingCompleted")
        assert job_queue.names() == [GENERATE_TICKET_PDF, SEND_TICKET_EMAIL]

    def test_one_attendee_per_seat(self, booking_service, event, free_type):
        result = booking_service.create_booking(event.id, {free_type.id: 3}, BUYER, user_id=uuid4())
        assert len(result.attendees) == 3
        assert len({a.reference_no for a in result.attendees}) == 3
        assert len({a.qr_code_hash for a in result.attendees}) == 3
        assert free_type.quantity_sold == 3

    def test_last_seats_sell_out_the_ticket_type(self, booking_service, event, free_type):
        booking_service.create_booking(event.id, {free_type.id: 5}, BUYER, user_id=uuid4())
        assert free_type.status == StockStatus.SOLD_OUT.value
        with pytest.raises(UnitNotPurchasableError):
            booking_service.create_booking(event.id, {free_type.id: 1}, BUYER, user_id=uuid4())


class TestPaidBooking:

    def test_reserves_and_invoices(self, booking_service, event, paid_type, job_queue):
        result = booking_service.create_booking(event.id, {paid_type.id: 2}, BUYER, user_id=uuid4())

        assert not result.is_free
        invoice = result.invoice
        assert invoice.status == InvoiceStatus.SENT.value
        assert invoice.origin_type == "event"
        assert invoice.origin_id == event.id
        assert invoice.subtotal == Decimal("40.00")
        assert invoice.total == Decimal("46.00")
        assert invoice.billing_details["company"] == "Musa Labs"
        assert invoice.items[0].description == "Demo Day - Investor"

        assert all(a.status == AttendeeStatus.PENDING_PAYMENT.value for a in result.attendees)
        assert all(a.invoice_id == invoice.id for a in result.attendees)
        assert paid_type.quantity_reserved == 2
        assert paid_type.quantity_sold == 0
        assert event.registered_count == 0
        assert job_queue.jobs == []

    def test_payment_completed_confirms(self, booking_service, event, paid_type, dispatcher, job_queue):
        result = booking_service.create_booking(event.id, {paid_type.id: 2}, BUYER, user_id=uuid4())

        confirmed = booking_service.handle_payment_completed(result.invoice.id)

        assert {a.id for a in confirmed} == set(result.attendee_ids)
        for attendee in confirmed:
            assert attendee.status == AttendeeStatus.CONFIRMED.value
            assert attendee.amount_paid == Decimal("20.00")
        assert paid_type.quantity_reserved == 0
        assert paid_type.quantity_sold == 2
        assert event.registered_count == 2
        assert len(job_queue.jobs) == 2
        assert dispatcher.published_names().count("BookingCompleted") == 1

    def test_payment_completed_twice_is_harmless(self, booking_service, event, paid_type, captured_logs):
        result = booking_service.create_booking(event.id, {paid_type.id: 1}, BUYER, user_id=uuid4())
        booking_service.handle_payment_completed(result.invoice.id)

        assert booking_service.handle_payment_completed(result.invoice.id) == []
        assert paid_type.quantity_sold == 1
        assert event.registered_count == 1
        assert any(r["message"] == "payment_completed_no_pending_attendees" for r in captured_logs())

    def test_payment_failed_expires(self, session, booking_service, event, paid_type):
        result = booking_service.create_booking(event.id, {paid_type.id: 2}, BUYER, user_id=uuid4())

        expired = booking_service.handle_payment_failed(result.invoice.id)

        assert len(expired) == 2
        assert all(a.status == AttendeeStatus.EXPIRED.value for a in expired)
        assert paid_type.quantity_reserved == 0
        assert paid_type.quantity_sold == 0
        assert event.registered_count == 0
        hold = ticket_ledger(session).hold_for(ATTENDEE_HOLDER, expired[0].id)
        assert hold.status == "released"

    def test_failure_after_success_changes_nothing(self, booking_service, event, paid_type):
        result = booking_service.create_booking(event.id, {paid_type.id: 1}, BUYER, user_id=uuid4())
        booking_service.handle_payment_completed(result.invoice.id)
        assert booking_service.handle_payment_failed(result.invoice.id) == []
        assert result.attendees[0].status == AttendeeStatus.CONFIRMED.value
        assert paid_type.quantity_sold == 1

    def test_mixed_free_and_paid_is_a_paid_booking(self, booking_service, event, free_type, paid_type):
        result = booking_service.create_booking(
            event.id, {free_type.id: 1, paid_type.id: 1}, BUYER, user_id=uuid4(),
        )
        assert not result.is_free
        assert result.invoice.subtotal == Decimal("20.00")
        assert len(result.invoice.items) == 2
        assert free_type.quantity_reserved == 1


class TestGuestBooking:

    def test_guest_bills_the_system_account(self, booking_service, event, paid_type):
        result = booking_service.create_booking(event.id, {paid_type.id: 1}, BUYER)

        attendee = result.attendees[0]
        assert attendee.is_guest
        assert attendee.guest_email == "zainab@example.com"
        assert result.invoice.billable_type == "user"
        assert result.invoice.billable_id == SYSTEM_ACTOR_ID
        assert result.invoice.extra_data["is_guest_checkout"] is True

    def test_guest_refused_when_disabled(self, booking_service, make_event, make_ticket_type):
        event = make_event(allow_guest_registration=False)
        ticket_type = make_ticket_type(event)
        with pytest.raises(GuestNotAllowedError):
            booking_service.create_booking(event.id, {ticket_type.id: 1}, BUYER)
        booking_service.create_booking(event.id, {ticket_type.id: 1}, BUYER, user_id=uuid4())


class TestValidation:

    def test_unknown_event(self, booking_service):
        with pytest.raises(EventNotFoundError):
            booking_service.create_booking(uuid4(), {uuid4(): 1}, BUYER, user_id=uuid4())

    def test_registration_checked_first(self, booking_service, make_event, make_ticket_type):
        event = make_event(publish=False, allow_guest_registration=False)
        ticket_type = make_ticket_type(event)
        with pytest.raises(RegistrationClosedError):
            booking_service.create_booking(event.id, {ticket_type.id: 0}, BUYER)

    def test_guest_checked_before_selection(self, booking_service, make_event):
        event = make_event(allow_guest_registration=False)
        with pytest.raises(GuestNotAllowedError):
            booking_service.create_booking(event.id, {}, BUYER)

    def test_empty_selection(self, booking_service, event, free_type):
        with pytest.raises(EmptyBookingError):
            booking_service.create_booking(event.id, {free_type.id: 0}, BUYER, user_id=uuid4())

    def test_unit_from_another_event(self, booking_service, event, make_event, make_ticket_type):
        other = make_ticket_type(make_event("Other"))
        with pytest.raises(InvalidUnitError):
            booking_service.create_booking(event.id, {other.id: 1}, BUYER, user_id=uuid4())
        with pytest.raises(InvalidUnitError):
            booking_service.create_booking(event.id, {uuid4(): 1}, BUYER, user_id=uuid4())

    def test_paused_unit(self, booking_service, event_service, event, free_type, test_actor_id):
        event_service.pause_ticket_type(free_type.id, test_actor_id)
        with pytest.raises(UnitNotPurchasableError):
            booking_service.create_booking(event.id, {free_type.id: 1}, BUYER, user_id=uuid4())

    def test_sale_not_started(self, booking_service, event, make_ticket_type, deterministic_clock):
        ticket_type = make_ticket_type(
            event, "Late", sale_start=deterministic_clock.now_utc() + timedelta(days=1),
        )
        with pytest.raises(UnitNotPurchasableError):
            booking_service.create_booking(event.id, {ticket_type.id: 1}, BUYER, user_id=uuid4())

    @pytest.mark.parametrize(
        "ticket_kwargs, event_cap, requested, maximum",
        [
            ({"max_per_order": 4}, None, 5, 4),
            ({}, 3, 4, 3),
            ({"quantity": 2}, None, 3, 2),
        ],
    )
    def test_quantity_above_limit(
        self, booking_service, make_event, make_ticket_type, ticket_kwargs, event_cap, requested, maximum,
    ):
        event = make_event(max_tickets_per_order=event_cap)
        ticket_type = make_ticket_type(event, **ticket_kwargs)
        with pytest.raises(QuantityExceedsLimitError) as exc_info:
            booking_service.create_booking(event.id, {ticket_type.id: requested}, BUYER, user_id=uuid4())
        assert exc_info.value.maximum == maximum
        assert exc_info.value.requested == requested

    def test_quantity_below_minimum(self, booking_service, event, make_ticket_type):
        ticket_type = make_ticket_type(event, "Team of Two", min_per_order=2)
        with pytest.raises(QuantityExceedsLimitError) as exc_info:
            booking_service.create_booking(event.id, {ticket_type.id: 1}, BUYER, user_id=uuid4())
        assert exc_info.value.minimum == 2

    def test_rejection_leaves_no_trace(self, session, booking_service, event, free_type, paid_type):
        with pytest.raises(QuantityExceedsLimitError):
            booking_service.create_booking(
                event.id, {free_type.id: 1, paid_type.id: 9}, BUYER, user_id=uuid4(),
            )
        assert _attendee_count(session) == 0
        assert free_type.quantity_reserved == 0


class TestAllOrNothing:

    def test_stock_gone_after_validation_rolls_back(
        self, session, booking_service, event, paid_type, dispatcher, monkeypatch,
    ):
        """Validation passed but the ledger cannot hold every seat."""
        monkeypatch.setattr(TicketTypeModel, "max_purchasable_quantity", lambda self, cap: 99)

        with pytest.raises(InsufficientStockError) as exc_info:
            booking_service.create_booking(event.id, {paid_type.id: 6}, BUYER, user_id=uuid4())

        assert exc_info.value.available == 0
        session.refresh(paid_type)
        assert paid_type.quantity_reserved == 0
        assert _attendee_count(session) == 0
        holds = session.execute(select(func.count()).select_from(StockReservationModel)).scalar_one()
        assert holds == 0
        assert dispatcher.pending == ()
        assert "BookingCreated" not in dispatcher.published_names()


class TestExpireUnpaid:

    def test_sweep_voids_and_expires(self, booking_service, event, paid_type, free_type, deterministic_clock):
        unpaid = booking_service.create_booking(event.id, {paid_type.id: 2}, BUYER, user_id=uuid4())
        paid = booking_service.create_booking(event.id, {paid_type.id: 1}, BUYER, user_id=uuid4())
        booking_service.handle_payment_completed(paid.invoice.id)
        booking_service.create_booking(event.id, {free_type.id: 1}, BUYER, user_id=uuid4())

        assert booking_service.expire_unpaid_bookings() == 0

        deterministic_clock.advance(8 * 24 * 3600)
        assert booking_service.expire_unpaid_bookings() == 1

        assert unpaid.invoice.status == InvoiceStatus.VOID.value
        assert unpaid.invoice.void_reason == "Payment window expired"
        assert all(a.status == AttendeeStatus.EXPIRED.value for a in unpaid.attendees)
        assert paid_type.quantity_reserved == 0
        assert paid_type.quantity_sold == 1
        assert booking_service.expire_unpaid_bookings() == 0

    def test_sweep_takes_partially_paid_invoices(
        self, session, dispatcher, booking_service, event, paid_type, deterministic_clock,
    ):
        result = booking_service.create_booking(event.id, {paid_type.id: 1}, BUYER, user_id=uuid4())
        invoices = InvoiceService(session, dispatcher, deterministic_clock)
        invoices.mark_as_paid(result.invoice.id, amount=Decimal("5.00"))
        assert result.invoice.status == InvoiceStatus.PARTIALLY_PAID.value

        deterministic_clock.advance(8 * 24 * 3600)
        assert booking_service.expire_unpaid_bookings() == 1

        assert result.invoice.status == InvoiceStatus.VOID.value
        assert result.attendees[0].status == AttendeeStatus.EXPIRED.value
        assert paid_type.quantity_reserved == 0


class TestTicketIssuance:

    def test_queue_failure_leaves_the_booking_standing(
        self, session, dispatcher, deterministic_clock, event, free_type, captured_logs,
    ):
        booking = EventBookingService(session, dispatcher, _UnreachableQueue(), deterministic_clock)

        result = booking.create_booking(event.id, {free_type.id: 2}, BUYER, user_id=uuid4())

        assert result.ticket_job_ids == ()
        assert all(a.status == AttendeeStatus.CONFIRMED.value for a in result.attendees)
        assert _attendee_count(session) == 2
        assert free_type.quantity_sold == 2

        failures = [r for r in captured_logs() if r["message"] == "ticket_issue_failed"]
        assert len(failures) == 2
        assert failures[0]["exc_type"] == "ConnectionError"

    def test_queue_failure_after_payment(self, session, dispatcher, deterministic_clock, event, paid_type):
        booking = EventBookingService(session, dispatcher, _UnreachableQueue(), deterministic_clock)
        result = booking.create_booking(event.id, {paid_type.id: 1}, BUYER, user_id=uuid4())

        confirmed = booking.handle_payment_completed(result.invoice.id)

        assert [a.status for a in confirmed] == [AttendeeStatus.CONFIRMED.value]
        assert paid_type.quantity_sold == 1

    def test_embedded_booking_issues_after_the_callers_commit(
        self, session, dispatcher, job_queue, deterministic_clock, event, free_type,
    ):
        booking = EventBookingService(
            session, dispatcher, job_queue, deterministic_clock, auto_commit=False,
        )

        with unit_of_work(session, dispatcher, operation="checkout"):
            result = booking.create_booking(event.id, {free_type.id: 1}, BUYER, user_id=uuid4())
            assert job_queue.jobs == []

        assert result.ticket_job_ids == ()
        assert job_queue.names() == [GENERATE_TICKET_PDF, SEND_TICKET_EMAIL]
        assert "TicketIssued" in dispatcher.published_names()

    def test_embedded_booking_rolled_back_sends_nothing(
        self, session, dispatcher, job_queue, deterministic_clock, event, free_type,
    ):
        booking = EventBookingService(
            session, dispatcher, job_queue, deterministic_clock, auto_commit=False,
        )

        with pytest.raises(RuntimeError):
            with unit_of_work(session, dispatcher, operation="checkout"):
                booking.create_booking(event.id, {free_type.id: 1}, BUYER, user_id=uuid4())
                raise RuntimeError("checkout page crashed")

        assert job_queue.jobs == []
        assert _attendee_count(session) == 0
        assert "BookingCompleted" not in dispatcher.published_names()


class TestCancelBooking:

    def test_cancel_delegates_to_attendees(self, booking_service, event, free_type, test_actor_id):
        result = booking_service.create_booking(event.id, {free_type.id: 2}, BUYER, user_id=uuid4())

        assert booking_service.cancel_booking(result.attendees[0].id, "Sick", test_actor_id) is True

        assert free_type.quantity_sold == 1
        assert event.registered_count == 1
        assert result.attendees[1].status == AttendeeStatus.CONFIRMED.value

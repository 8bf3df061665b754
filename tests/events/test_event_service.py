"""
Tests for EventService and EventQueryService: event lifecycle, the
registration window, ticket type administration and booking figures.
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from hub_kernel.domain.stock import StockStatus
from hub_kernel.exceptions import EventNotFoundError, InvalidTransitionError, StockUnitNotFoundError
from hub_kernel.selectors.status_history_selector import StatusHistorySelector
from hub_modules.events import (
    BuyerInfo,
    EventQueryService,
    EventStatus,
    adjust_registered_count,
    ticket_ledger,
)


@pytest.fixture
def queries(session, deterministic_clock):
    return EventQueryService(session, deterministic_clock)


class TestEventLifecycle:

    def test_create_draft(self, session, make_event):
        event = make_event("Demo Day 2025", publish=False)
        assert event.status == EventStatus.DRAFT.value
        assert event.slug.startswith("demo-day-2025-")
        assert event.currency == "USD"
        assert event.max_tickets_per_order == 10
        assert event.registered_count == 0
        latest = StatusHistorySelector(session).latest_for("event", event.id)
        assert latest.to_status == "draft"

    def test_publish_emits_event(self, make_event, dispatcher):
        event = make_event()
        assert event.status == EventStatus.PUBLISHED.value
        assert "EventPublished" in dispatcher.published_names()

    def test_postpone_and_reschedule(self, event_service, make_event, test_actor_id):
        event = make_event()
        event_service.transition(event.id, EventStatus.POSTPONED, test_actor_id)
        assert event.status == EventStatus.POSTPONED.value
        event_service.transition(event.id, EventStatus.PUBLISHED, test_actor_id)
        assert event.status == EventStatus.PUBLISHED.value

    def test_cancelled_event_is_final(self, event_service, make_event, test_actor_id):
        event = make_event(publish=False)
        event_service.transition(event.id, EventStatus.CANCELLED, test_actor_id)
        with pytest.raises(InvalidTransitionError):
            event_service.publish(event.id, test_actor_id)
        assert event_service.get(event.id).status == EventStatus.CANCELLED.value

    def test_unknown_event(self, event_service):
        with pytest.raises(EventNotFoundError):
            event_service.get(uuid4())


class TestRegistrationWindow:

    def test_draft_is_closed(self, make_event, deterministic_clock):
        event = make_event(publish=False)
        assert not event.is_registration_open(deterministic_clock.now_utc())

    def test_opens_at_registration_start(self, make_event, deterministic_clock):
        now = deterministic_clock.now_utc()
        event = make_event(registration_start=now + timedelta(days=1))
        assert not event.is_registration_open(now)
        assert event.is_registration_open(now + timedelta(days=2))

    def test_closes_after_registration_end(self, make_event, deterministic_clock):
        now = deterministic_clock.now_utc()
        event = make_event(registration_end=now + timedelta(hours=1))
        assert event.is_registration_open(now)
        assert not event.is_registration_open(now + timedelta(hours=2))

    def test_postponed_is_closed(self, event_service, make_event, deterministic_clock, test_actor_id):
        event = make_event()
        event_service.transition(event.id, EventStatus.POSTPONED, test_actor_id)
        assert not event.is_registration_open(deterministic_clock.now_utc())


class TestTicketTypes:

    def test_defaults(self, make_event, make_ticket_type):
        ticket_type = make_ticket_type(make_event(), price="25.00", quantity=100)
        assert ticket_type.status == StockStatus.ACTIVE.value
        assert ticket_type.is_free is False
        assert ticket_type.unit_price == Decimal("25.00")
        assert ticket_type.quantity_available == 100
        assert ticket_type.currency == "USD"

    def test_free_and_unlimited(self, make_event, make_ticket_type):
        ticket_type = make_ticket_type(make_event())
        assert ticket_type.is_free is True
        assert ticket_type.unit_price == Decimal("0")
        assert ticket_type.quantity_available is None

    def test_zero_quantity_starts_sold_out(self, make_event, make_ticket_type):
        ticket_type = make_ticket_type(make_event(), quantity=0)
        assert ticket_type.status == StockStatus.SOLD_OUT.value

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"price": "-1"},
            {"quantity": -5},
            {"min_per_order": 3, "max_per_order": 2},
            {"min_per_order": 0},
        ],
    )
    def test_invalid_definitions_rejected(self, make_event, make_ticket_type, kwargs):
        event = make_event()
        kwargs = dict(kwargs)
        price = kwargs.pop("price", "10")
        with pytest.raises(ValueError):
            make_ticket_type(event, price=price, **kwargs)

    def test_pause_and_resume(self, session, event_service, make_event, make_ticket_type, test_actor_id):
        ticket_type = make_ticket_type(make_event(), quantity=10)
        event_service.pause_ticket_type(ticket_type.id, test_actor_id)
        assert ticket_type.status == StockStatus.PAUSED.value

        with pytest.raises(InvalidTransitionError):
            event_service.pause_ticket_type(ticket_type.id, test_actor_id)

        event_service.resume_ticket_type(ticket_type.id, test_actor_id)
        assert ticket_type.status == StockStatus.ACTIVE.value
        entries = StatusHistorySelector(session).entries_for("ticket_type", ticket_type.id)
        assert [e.to_status for e in entries] == ["active", "paused", "active"]

    def test_resume_without_stock_lands_on_sold_out(
        self, session, event_service, make_event, make_ticket_type, deterministic_clock, test_actor_id,
    ):
        ticket_type = make_ticket_type(make_event(), quantity=1)
        event_service.pause_ticket_type(ticket_type.id, test_actor_id)

        movement = ticket_ledger(session, deterministic_clock).reserve(ticket_type.id, 1)
        session.commit()
        assert movement.status_after == StockStatus.PAUSED.value

        event_service.resume_ticket_type(ticket_type.id, test_actor_id)
        assert ticket_type.status == StockStatus.SOLD_OUT.value

    def test_unknown_ticket_type(self, event_service, test_actor_id):
        with pytest.raises(StockUnitNotFoundError):
            event_service.pause_ticket_type(uuid4(), test_actor_id)


class TestQueries:

    def test_purchasable_ticket_types(
        self, queries, event_service, make_event, make_ticket_type, deterministic_clock, test_actor_id,
    ):
        event = make_event()
        later = make_ticket_type(event, "Late Bird", price="40", sort_order=2)
        early = make_ticket_type(event, "Early Bird", price="20", sort_order=1)
        make_ticket_type(event, "Staff", is_hidden=True)
        make_ticket_type(event, "Sold Out", quantity=0)
        make_ticket_type(
            event, "Next Week",
            sale_start=deterministic_clock.now_utc() + timedelta(days=7),
        )
        paused = make_ticket_type(event, "Paused", price="30")
        event_service.pause_ticket_type(paused.id, test_actor_id)

        assert [t.id for t in queries.purchasable_ticket_types(event.id)] == [early.id, later.id]

    def test_booking_summary(self, queries, booking_service, make_event, make_ticket_type):
        event = make_event()
        free = make_ticket_type(event, "Community")
        paid = make_ticket_type(event, "Supporter", price="25.00")
        buyer = BuyerInfo(name="Ada Obi", email="ada@example.com")

        booking_service.create_booking(event.id, {free.id: 2}, buyer, user_id=uuid4())
        settled = booking_service.create_booking(event.id, {paid.id: 1}, buyer, user_id=uuid4())
        booking_service.handle_payment_completed(settled.invoice.id)
        booking_service.create_booking(event.id, {paid.id: 1}, buyer, user_id=uuid4())

        summary = queries.booking_summary(event.id)
        assert summary.confirmed == 3
        assert summary.pending_payment == 1
        assert summary.total_registered == 3
        assert summary.checked_in == 0
        assert summary.revenue == Decimal("25")
        assert event.registered_count == 3

    def test_summary_for_unknown_event(self, queries):
        with pytest.raises(EventNotFoundError):
            queries.booking_summary(uuid4())


class TestRegisteredCount:

    def test_never_below_zero(self, session, make_event):
        event = make_event()
        adjust_registered_count(session, event.id, 2)
        adjust_registered_count(session, event.id, -5)
        session.commit()
        assert event.registered_count == 0

    def test_unknown_event(self, session):
        with pytest.raises(EventNotFoundError):
            adjust_registered_count(session, uuid4(), 1)

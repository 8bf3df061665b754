"""
Events Module Service (``hub_modules.events.service``).

Responsibility
--------------
Event and ticket type administration, attendee cancellation with the
correct stock compensation, and booking summaries.  The booking flow itself
spans billing and lives in ``hub_services.event_booking``.

Architecture
------------
Layer: **Modules**.  Status changes go through the kernel ``StateMachine``
(``EVENT_WORKFLOW``, ``TICKET_TYPE_WORKFLOW``, ``ATTENDEE_WORKFLOW``);
stock changes go through the kernel ``InventoryLedger`` holds.

Invariants
----------
- Attendee cancellation reads the attendee's status BEFORE mutating it:
  a confirmed attendee's hold is refunded (sold -1), a pending one's is
  released (reserved -1).  The registered counter follows the ledger's
  reported ``sold_delta``.
- ``registered_count`` never goes below zero.
- Resuming a paused ticket type lands on sold_out when no stock is left.

Failure Modes
-------------
- ``EventNotFoundError`` / ``AttendeeNotFoundError`` / ``StockUnitNotFoundError``.
- ``InvalidTransitionError`` for illegal status changes.
- Any exception rolls back the session (when this service owns it).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from hub_kernel.domain.clock import Clock, SystemClock
from hub_kernel.domain.stock import StockStatus
from hub_kernel.exceptions import (
    AttendeeNotFoundError,
    EventNotFoundError,
    StockUnitNotFoundError,
)
from hub_kernel.logging_config import get_logger
from hub_kernel.services.event_dispatcher import DomainEventDispatcher
from hub_kernel.services.inventory_ledger import InventoryLedger, StockMovement
from hub_kernel.services.state_machine import StateMachine, TransitionOutcome
from hub_kernel.services.status_history_ledger import StatusHistoryLedger
from hub_kernel.services.transaction import unit_of_work
from hub_modules.events.config import EventsConfig
from hub_modules.events.helpers import slugify
from hub_modules.events.models import (
    ACTIVE_ATTENDEE_STATUSES,
    ATTENDEE_HOLDER,
    AttendeeStatus,
    BookingSummary,
    EventStatus,
    EventType,
    LocationType,
)
from hub_modules.events.orm import AttendeeModel, EventModel, TicketTypeModel
from hub_modules.events.workflows import (
    ATTENDEE_WORKFLOW,
    EVENT_WORKFLOW,
    TICKET_TYPE_WORKFLOW,
)

logger = get_logger("modules.events.service")


def ticket_ledger(
    session: Session, clock: Clock | None = None,
) -> InventoryLedger[TicketTypeModel]:
    """InventoryLedger over ticket types; automatic flips land in status history."""
    clock = clock or SystemClock()
    return InventoryLedger(
        session,
        TicketTypeModel,
        clock=clock,
        history=StatusHistoryLedger(session, clock),
        entity_type=TICKET_TYPE_WORKFLOW.entity_type,
    )


def adjust_registered_count(session: Session, event_id: UUID, delta: int) -> EventModel:
    """Move the event's registered counter by ``delta`` under a row lock."""
    event = session.execute(
        select(EventModel)
        .where(EventModel.id == event_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if event is None:
        raise EventNotFoundError(event_id)
    before = event.registered_count
    event.registered_count = max(0, before + delta)
    session.flush()
    logger.info(
        "event_registered_count_adjusted",
        extra={
            "event_id": str(event_id),
            "delta": delta,
            "before": before,
            "after": event.registered_count,
        },
    )
    return event


class EventService:
    """Event and ticket type administration."""

    def __init__(
        self,
        session: Session,
        dispatcher: DomainEventDispatcher | None = None,
        clock: Clock | None = None,
        config: EventsConfig | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._events = dispatcher or DomainEventDispatcher()
        self._clock = clock or SystemClock()
        self._config = config or EventsConfig()
        self._auto_commit = auto_commit
        self._event_machine = StateMachine(session, EVENT_WORKFLOW, self._clock)
        self._ticket_machine = StateMachine(session, TICKET_TYPE_WORKFLOW, self._clock)

    def get(self, event_id: UUID) -> EventModel:
        event = self._session.get(EventModel, event_id)
        if event is None:
            raise EventNotFoundError(event_id)
        return event

    def get_ticket_type(self, ticket_type_id: UUID) -> TicketTypeModel:
        ticket_type = self._session.get(TicketTypeModel, ticket_type_id)
        if ticket_type is None:
            raise StockUnitNotFoundError(ticket_type_id)
        return ticket_type

    def create_event(
        self,
        title: str,
        start_date: datetime,
        actor_id: UUID,
        *,
        end_date: datetime | None = None,
        event_type: EventType = EventType.MEETUP,
        location_type: LocationType = LocationType.PHYSICAL,
        location_name: str | None = None,
        currency: str | None = None,
        total_capacity: int | None = None,
        allow_guest_registration: bool = True,
        max_tickets_per_order: int | None = None,
        registration_start: datetime | None = None,
        registration_end: datetime | None = None,
        description: str | None = None,
    ) -> EventModel:
        """Create a draft event."""
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="create_event",
        ):
            event = EventModel(
                title=title,
                slug=slugify(title),
                description=description,
                event_type=event_type.value,
                location_type=location_type.value,
                location_name=location_name,
                start_date=start_date,
                end_date=end_date,
                currency=currency or self._config.default_currency,
                total_capacity=total_capacity,
                registered_count=0,
                allow_guest_registration=allow_guest_registration,
                max_tickets_per_order=(
                    max_tickets_per_order or self._config.default_max_tickets_per_order
                ),
                registration_start=registration_start,
                registration_end=registration_end,
                created_by_id=actor_id,
            )
            outcome = self._event_machine.initialize(event, actor_id, notes="Event created")
            self._events.collect(outcome.events)
            logger.info(
                "event_created",
                extra={"event_id": str(event.id), "slug": event.slug, "start_date": start_date},
            )
        return event

    def transition(
        self,
        event_id: UUID,
        target: EventStatus,
        actor_id: UUID,
        notes: str | None = None,
    ) -> TransitionOutcome:
        """Publish, postpone, cancel or complete an event."""
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="transition_event",
        ):
            event = self.get(event_id)
            outcome = self._event_machine.transition(event, target, actor_id, notes)
            self._events.collect(outcome.events)
        return outcome

    def publish(self, event_id: UUID, actor_id: UUID) -> TransitionOutcome:
        return self.transition(event_id, EventStatus.PUBLISHED, actor_id, "Event published")

    def add_ticket_type(
        self,
        event_id: UUID,
        name: str,
        price: Decimal,
        actor_id: UUID,
        *,
        quantity: int | None = None,
        min_per_order: int = 1,
        max_per_order: int = 10,
        is_free: bool | None = None,
        sale_start: datetime | None = None,
        sale_end: datetime | None = None,
        is_hidden: bool = False,
        paused: bool = False,
        sort_order: int = 0,
    ) -> TicketTypeModel:
        """Add a stock-tracked tier to an event.  ``quantity=None`` is unlimited."""
        price = Decimal(str(price))
        if price < 0:
            raise ValueError("price cannot be negative")
        if quantity is not None and quantity < 0:
            raise ValueError("quantity cannot be negative")
        if not 1 <= min_per_order <= max_per_order:
            raise ValueError(
                f"per-order limits must satisfy 1 <= min <= max, got {min_per_order}..{max_per_order}"
            )

        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="add_ticket_type",
        ):
            event = self.get(event_id)
            ticket_type = TicketTypeModel(
                event_id=event.id,
                name=name,
                price=price,
                currency=event.currency,
                is_free=price == 0 if is_free is None else is_free,
                quantity=quantity,
                quantity_sold=0,
                quantity_reserved=0,
                min_per_order=min_per_order,
                max_per_order=max_per_order,
                sale_start=sale_start,
                sale_end=sale_end,
                is_hidden=is_hidden,
                sort_order=sort_order,
                created_by_id=actor_id,
            )
            if paused:
                initial = StockStatus.PAUSED
            elif quantity == 0:
                initial = StockStatus.SOLD_OUT
            else:
                initial = StockStatus.ACTIVE
            outcome = self._ticket_machine.initialize(
                ticket_type, actor_id, status=initial, notes="Ticket type created",
            )
            self._events.collect(outcome.events)
            logger.info(
                "ticket_type_created",
                extra={
                    "event_id": str(event.id),
                    "ticket_type_id": str(ticket_type.id),
                    "price": price,
                    "quantity": quantity,
                },
            )
        return ticket_type

    def pause_ticket_type(self, ticket_type_id: UUID, actor_id: UUID) -> TicketTypeModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="pause_ticket_type",
        ):
            ticket_type = self._lock_ticket_type(ticket_type_id)
            outcome = self._ticket_machine.transition(
                ticket_type, StockStatus.PAUSED, actor_id, notes="Sales paused",
            )
            self._events.collect(outcome.events)
        return ticket_type

    def resume_ticket_type(self, ticket_type_id: UUID, actor_id: UUID) -> TicketTypeModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="resume_ticket_type",
        ):
            ticket_type = self._lock_ticket_type(ticket_type_id)
            target = StockStatus.SOLD_OUT if ticket_type.is_sold_out else StockStatus.ACTIVE
            outcome = self._ticket_machine.transition(
                ticket_type, target, actor_id, notes="Sales resumed",
            )
            self._events.collect(outcome.events)
        return ticket_type

    def _lock_ticket_type(self, ticket_type_id: UUID) -> TicketTypeModel:
        ticket_type = self._session.execute(
            select(TicketTypeModel)
            .where(TicketTypeModel.id == ticket_type_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if ticket_type is None:
            raise StockUnitNotFoundError(ticket_type_id)
        return ticket_type


class AttendeeService:
    """Attendee lifecycle operations outside the booking and payment flow."""

    def __init__(
        self,
        session: Session,
        dispatcher: DomainEventDispatcher | None = None,
        clock: Clock | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._events = dispatcher or DomainEventDispatcher()
        self._clock = clock or SystemClock()
        self._auto_commit = auto_commit
        self._machine = StateMachine(session, ATTENDEE_WORKFLOW, self._clock)
        self._ledger = ticket_ledger(session, self._clock)

    def get(self, attendee_id: UUID) -> AttendeeModel:
        attendee = self._session.get(AttendeeModel, attendee_id)
        if attendee is None:
            raise AttendeeNotFoundError(attendee_id)
        return attendee

    def cancel(self, attendee_id: UUID, reason: str, actor_id: UUID) -> bool:
        """
        Cancel one attendee and give their ticket back to stock.

        Returns False (nothing changed) for attendees already cancelled,
        checked in, expired or marked no-show.
        """
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="cancel_attendee",
        ):
            attendee = self._lock(attendee_id)
            prior = AttendeeStatus(attendee.status)
            if prior is AttendeeStatus.CHECKED_IN or not ATTENDEE_WORKFLOW.can_transition(
                prior, AttendeeStatus.CANCELLED
            ):
                logger.warning(
                    "attendee_cancel_refused",
                    extra={"attendee_id": str(attendee.id), "status": prior.value},
                )
                return False

            movement = self._compensate(attendee, prior, actor_id)
            if movement is not None and movement.sold_delta:
                adjust_registered_count(self._session, attendee.event_id, movement.sold_delta)

            attendee.cancelled_at = self._clock.now_utc()
            attendee.cancellation_reason = reason
            outcome = self._machine.transition(
                attendee, AttendeeStatus.CANCELLED, actor_id, notes=reason or None,
                payload={
                    "event_id": str(attendee.event_id),
                    "prior_status": prior.value,
                    "stock_operation": movement.operation if movement else None,
                },
            )
            self._events.collect(outcome.events)
            logger.info(
                "attendee_cancelled",
                extra={
                    "attendee_id": str(attendee.id),
                    "prior_status": prior.value,
                    "stock_operation": movement.operation if movement else None,
                },
            )
        return True

    def mark_no_show(self, attendee_id: UUID, actor_id: UUID) -> AttendeeModel:
        """Confirmed attendee never arrived; the seat stays sold."""
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="mark_no_show",
        ):
            attendee = self._lock(attendee_id)
            outcome = self._machine.transition(
                attendee, AttendeeStatus.NO_SHOW, actor_id, notes="Did not attend",
            )
            self._events.collect(outcome.events)
        return attendee

    def _compensate(
        self, attendee: AttendeeModel, prior: AttendeeStatus, actor_id: UUID,
    ) -> StockMovement | None:
        if prior is AttendeeStatus.CONFIRMED:
            return self._ledger.refund_hold(ATTENDEE_HOLDER, attendee.id, actor_id)
        if prior is AttendeeStatus.PENDING_PAYMENT:
            return self._ledger.release_hold(ATTENDEE_HOLDER, attendee.id, actor_id)
        return None

    def _lock(self, attendee_id: UUID) -> AttendeeModel:
        attendee = self._session.execute(
            select(AttendeeModel)
            .where(AttendeeModel.id == attendee_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if attendee is None:
            raise AttendeeNotFoundError(attendee_id)
        return attendee


class EventQueryService:
    """Read-only event figures."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def booking_summary(self, event_id: UUID) -> BookingSummary:
        if self._session.get(EventModel, event_id) is None:
            raise EventNotFoundError(event_id)

        counts = dict(
            self._session.execute(
                select(AttendeeModel.status, func.count())
                .where(AttendeeModel.event_id == event_id)
                .group_by(AttendeeModel.status)
            ).all()
        )
        revenue = self._session.execute(
            select(func.coalesce(func.sum(AttendeeModel.amount_paid), 0)).where(
                AttendeeModel.event_id == event_id,
                AttendeeModel.status.in_(ACTIVE_ATTENDEE_STATUSES),
            )
        ).scalar_one()

        def count(status: AttendeeStatus) -> int:
            return int(counts.get(status.value, 0))

        return BookingSummary(
            event_id=event_id,
            total_registered=sum(count(AttendeeStatus(s)) for s in ACTIVE_ATTENDEE_STATUSES),
            confirmed=count(AttendeeStatus.CONFIRMED),
            checked_in=count(AttendeeStatus.CHECKED_IN),
            pending_payment=count(AttendeeStatus.PENDING_PAYMENT),
            cancelled=count(AttendeeStatus.CANCELLED),
            revenue=Decimal(str(revenue)),
        )

    def purchasable_ticket_types(self, event_id: UUID) -> list[TicketTypeModel]:
        """Visible ticket types a buyer could select right now."""
        now = self._clock.now_utc()
        rows = self._session.execute(
            select(TicketTypeModel)
            .where(TicketTypeModel.event_id == event_id, TicketTypeModel.is_hidden.is_(False))
            .order_by(TicketTypeModel.sort_order)
        ).scalars().all()
        return [t for t in rows if t.is_purchasable(now)]

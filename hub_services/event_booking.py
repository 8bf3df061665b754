"""
hub_services.event_booking -- Event booking orchestrator.

Responsibility:
    Turns a ticket selection into attendees in one transaction: stock holds
    first, then (for paid bookings) a sent invoice, then attendee rows.
    Settles bookings when the billing side reports a payment outcome, and
    sweeps unpaid bookings whose invoice fell past due.

Architecture position:
    Services -- cross-module orchestration over hub_modules.events,
    hub_modules.billing and the kernel InventoryLedger / StateMachine.
    The module services it composes run with ``auto_commit=False`` so the
    whole booking commits or rolls back as one unit.

Invariants enforced:
    - Preconditions are checked in a fixed order before anything is
      written: registration open, guest allowed, at least one ticket, then
      per ticket type (belongs to event, purchasable, per-order limits).
    - Every attendee owns exactly one stock hold keyed by its id.  Holds
      are taken before the invoice and attendee rows exist; a failed hold
      aborts the whole booking.
    - Event.registered_count moves only by the ledger's reported sold
      delta, after a successful ledger operation.
    - Domain events and ticket issuance happen only after commit.  With
      ``auto_commit=False`` issuance waits for the embedding caller to
      dispatch ``BookingCompleted``.
    - A ticket job that cannot be enqueued is logged and skipped; the
      committed booking stands and the ticket can be re-sent.

Failure modes:
    - RegistrationClosedError, GuestNotAllowedError, EmptyBookingError,
      InvalidUnitError, UnitNotPurchasableError, QuantityExceedsLimitError
      before the transaction starts.
    - InsufficientStockError when another booking took the stock between
      validation and the hold.  The transaction rolls back.
    - EventNotFoundError / InvoiceNotFoundError for unknown ids.

Usage:
    booking = EventBookingService(session, dispatcher, jobs, clock)
    result = booking.create_booking(
        event_id, {general_admission.id: 2}, BuyerInfo(name="Ada", email="ada@example.com"),
    )
    if result.invoice is not None:
        ...  # hand result.invoice to the payment gateway
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Mapping
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from hub_kernel.domain.actors import SYSTEM_ACTOR_ID
from hub_kernel.domain.clock import Clock, SystemClock
from hub_kernel.domain.events import DomainEvent
from hub_kernel.exceptions import (
    EmptyBookingError,
    EventNotFoundError,
    GuestNotAllowedError,
    InvalidUnitError,
    QuantityExceedsLimitError,
    RegistrationClosedError,
    UnitNotPurchasableError,
)
from hub_kernel.logging_config import get_logger
from hub_kernel.services.event_dispatcher import DomainEventDispatcher
from hub_kernel.services.job_queue import InMemoryJobQueue, JobQueue
from hub_kernel.services.state_machine import StateMachine
from hub_kernel.services.transaction import unit_of_work
from hub_modules.billing import (
    BillingConfig,
    EventOrigin,
    InvoiceService,
    InvoiceStatus,
    LineItem,
    UserBillable,
)
from hub_modules.billing.orm import InvoiceModel
from hub_modules.events import (
    ATTENDEE_HOLDER,
    ATTENDEE_WORKFLOW,
    AttendeeService,
    AttendeeStatus,
    BuyerInfo,
    EventsConfig,
    TicketService,
    adjust_registered_count,
    ticket_ledger,
)
from hub_modules.events.helpers import generate_qr_code_hash, generate_reference_number
from hub_modules.events.orm import AttendeeModel, EventModel, TicketTypeModel

logger = get_logger("services.event_booking")

_EXPIRABLE_INVOICE_STATUSES = (
    InvoiceStatus.SENT.value,
    InvoiceStatus.PARTIALLY_PAID.value,
    InvoiceStatus.OVERDUE.value,
)


@dataclass(frozen=True)
class _Selection:
    ticket_type: TicketTypeModel
    quantity: int
    unit_price: Decimal


@dataclass(frozen=True)
class BookingResult:
    """What ``create_booking`` produced."""
    event_id: UUID
    attendees: tuple[AttendeeModel, ...]
    invoice: InvoiceModel | None
    is_free: bool
    ticket_job_ids: tuple[UUID, ...] = ()

    @property
    def attendee_ids(self) -> tuple[UUID, ...]:
        return tuple(a.id for a in self.attendees)


class EventBookingService:
    """
    Booking orchestrator for events.

    Contract:
        Owns the transaction boundary of each public method unless built
        with ``auto_commit=False``.  Shares one session, clock and
        dispatcher with every service it composes.
    """

    def __init__(
        self,
        session: Session,
        dispatcher: DomainEventDispatcher | None = None,
        jobs: JobQueue | None = None,
        clock: Clock | None = None,
        events_config: EventsConfig | None = None,
        billing_config: BillingConfig | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._events = dispatcher or DomainEventDispatcher()
        self._jobs = jobs if jobs is not None else InMemoryJobQueue()
        self._clock = clock or SystemClock()
        self._config = events_config or EventsConfig()
        self._auto_commit = auto_commit

        self._ledger = ticket_ledger(session, self._clock)
        self._attendee_machine = StateMachine(session, ATTENDEE_WORKFLOW, self._clock)
        self._invoices = InvoiceService(
            session, self._events, self._clock, billing_config, auto_commit=False,
        )
        self._attendees = AttendeeService(
            session, self._events, self._clock, auto_commit=auto_commit,
        )
        self._tickets = TicketService(
            session, self._events, self._jobs, self._clock, self._config, auto_commit=auto_commit,
        )
        self._awaiting_tickets: set[UUID] = set()
        if not auto_commit:
            self._events.subscribe("BookingCompleted", self._on_booking_completed)

    @property
    def dispatcher(self) -> DomainEventDispatcher:
        return self._events

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    def create_booking(
        self,
        event_id: UUID,
        requested_units: Mapping[UUID, int],
        buyer: BuyerInfo,
        user_id: UUID | None = None,
    ) -> BookingResult:
        """
        Book tickets.  Free bookings come back confirmed with tickets
        issued; paid bookings come back pending payment with a sent invoice.
        ``ticket_job_ids`` is empty when issuance is deferred to the
        caller's commit.
        """
        now = self._clock.now_utc()
        event = self._session.get(EventModel, event_id)
        if event is None:
            raise EventNotFoundError(event_id)
        selections = self._validate(event, requested_units, user_id, now)
        is_free = all(s.unit_price == 0 for s in selections)
        actor_id = user_id or SYSTEM_ACTOR_ID

        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="create_booking",
        ):
            seats = [(s, uuid4()) for s in selections for _ in range(s.quantity)]
            for selection, attendee_id in seats:
                self._ledger.hold(selection.ticket_type.id, ATTENDEE_HOLDER, attendee_id, actor_id)

            invoice = None
            if not is_free:
                invoice = self._raise_invoice(event, selections, buyer, user_id, actor_id)

            attendees: list[AttendeeModel] = []
            sold = 0
            for selection, attendee_id in seats:
                attendee = self._new_attendee(
                    attendee_id, event, selection, buyer, user_id, invoice, is_free, now, actor_id,
                )
                outcome = self._attendee_machine.initialize(
                    attendee,
                    actor_id,
                    status=AttendeeStatus.CONFIRMED if is_free else AttendeeStatus.PENDING_PAYMENT,
                    notes="Free registration" if is_free else "Awaiting payment",
                    payload=self._attendee_payload(attendee),
                )
                self._events.collect(outcome.events)
                if is_free:
                    movement = self._ledger.confirm_hold(ATTENDEE_HOLDER, attendee_id, actor_id)
                    sold += movement.sold_delta if movement is not None else 0
                attendees.append(attendee)

            if sold:
                adjust_registered_count(self._session, event.id, sold)

            self._events.collect((self._booking_event("BookingCreated", event.id, attendees, invoice),))
            if is_free:
                self._events.collect((self._booking_event("BookingCompleted", event.id, attendees, invoice),))

            logger.info(
                "booking_created",
                extra={
                    "event_id": str(event.id),
                    "attendees": len(attendees),
                    "is_free": is_free,
                    "invoice_id": str(invoice.id) if invoice is not None else None,
                    "total": invoice.total if invoice is not None else Decimal("0"),
                    "guest": user_id is None,
                },
            )

        job_ids = self._issue_after_commit(attendees) if is_free else ()
        return BookingResult(
            event_id=event_id,
            attendees=tuple(attendees),
            invoice=invoice,
            is_free=is_free,
            ticket_job_ids=job_ids,
        )

    # ------------------------------------------------------------------
    # Payment callbacks
    # ------------------------------------------------------------------

    def handle_payment_completed(
        self, invoice_id: UUID, actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> list[AttendeeModel]:
        """Confirm every attendee still waiting on this invoice and issue their tickets."""
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="booking_payment_completed",
        ):
            self._invoices.get(invoice_id)
            attendees = self._pending_attendees(invoice_id)
            if not attendees:
                logger.warning(
                    "payment_completed_no_pending_attendees",
                    extra={"invoice_id": str(invoice_id)},
                )
                return []

            now = self._clock.now_utc()
            sold_by_event: dict[UUID, int] = defaultdict(int)
            for attendee in attendees:
                movement = self._ledger.confirm_hold(ATTENDEE_HOLDER, attendee.id, actor_id)
                if movement is not None:
                    sold_by_event[attendee.event_id] += movement.sold_delta
                attendee.amount_paid = attendee.ticket_type.unit_price
                attendee.confirmed_at = now
                outcome = self._attendee_machine.transition(
                    attendee, AttendeeStatus.CONFIRMED, actor_id, notes="Payment received",
                    payload=self._attendee_payload(attendee),
                )
                self._events.collect(outcome.events)

            for event_id, delta in sold_by_event.items():
                if delta:
                    adjust_registered_count(self._session, event_id, delta)
            for event_id in {a.event_id for a in attendees}:
                group = [a for a in attendees if a.event_id == event_id]
                self._events.collect((
                    self._booking_event("BookingCompleted", event_id, group, invoice_id=invoice_id),
                ))

            logger.info(
                "booking_payment_completed",
                extra={"invoice_id": str(invoice_id), "attendees": len(attendees)},
            )

        self._issue_after_commit(attendees)
        return attendees

    def handle_payment_failed(
        self, invoice_id: UUID, actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> list[AttendeeModel]:
        """Expire every attendee still waiting on this invoice and release their holds."""
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="booking_payment_failed",
        ):
            self._invoices.get(invoice_id)
            attendees = self._expire_pending(invoice_id, actor_id, "Payment failed")
        return attendees

    def expire_unpaid_bookings(
        self,
        as_of: datetime | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> int:
        """
        Void event invoices past their due date and expire the attendees
        waiting on them.  Returns the number of invoices handled; each one
        commits on its own.
        """
        cutoff = as_of or self._clock.now_utc()
        invoice_ids = self._session.execute(
            select(InvoiceModel.id).where(
                InvoiceModel.origin_type == "event",
                InvoiceModel.status.in_(_EXPIRABLE_INVOICE_STATUSES),
                InvoiceModel.due_date.is_not(None),
                InvoiceModel.due_date < cutoff,
            )
        ).scalars().all()

        for invoice_id in invoice_ids:
            with unit_of_work(
                self._session, self._events,
                auto_commit=self._auto_commit, operation="expire_unpaid_booking",
            ):
                self._expire_pending(invoice_id, actor_id, "Payment window expired")
                self._invoices.void(invoice_id, "Payment window expired", actor_id)

        logger.info(
            "unpaid_bookings_expired",
            extra={"invoices": len(invoice_ids), "as_of": cutoff},
        )
        return len(invoice_ids)

    def cancel_booking(self, attendee_id: UUID, reason: str, actor_id: UUID) -> bool:
        return self._attendees.cancel(attendee_id, reason, actor_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _validate(
        self,
        event: EventModel,
        requested: Mapping[UUID, int],
        user_id: UUID | None,
        now: datetime,
    ) -> list[_Selection]:
        if not event.is_registration_open(now):
            logger.warning("booking_rejected_registration_closed", extra={"event_id": str(event.id)})
            raise RegistrationClosedError(event.id)
        if user_id is None and not event.allow_guest_registration:
            logger.warning("booking_rejected_guest", extra={"event_id": str(event.id)})
            raise GuestNotAllowedError(event.id)

        wanted = {unit_id: qty for unit_id, qty in requested.items() if qty > 0}
        if not wanted:
            raise EmptyBookingError()

        selections: list[_Selection] = []
        for unit_id, qty in wanted.items():
            ticket_type = self._session.get(TicketTypeModel, unit_id)
            if ticket_type is None or ticket_type.event_id != event.id:
                raise InvalidUnitError(unit_id, event.id)
            if not ticket_type.is_purchasable(now):
                raise UnitNotPurchasableError(ticket_type.id, ticket_type.name)
            maximum = ticket_type.max_purchasable_quantity(event.max_tickets_per_order)
            if qty < ticket_type.min_per_order or qty > maximum:
                logger.warning(
                    "booking_rejected_quantity",
                    extra={
                        "ticket_type_id": str(ticket_type.id),
                        "requested": qty,
                        "minimum": ticket_type.min_per_order,
                        "maximum": maximum,
                    },
                )
                raise QuantityExceedsLimitError(
                    ticket_type.id, ticket_type.name, qty, maximum, minimum=ticket_type.min_per_order,
                )
            selections.append(_Selection(ticket_type, qty, ticket_type.unit_price))
        return selections

    def _raise_invoice(
        self,
        event: EventModel,
        selections: list[_Selection],
        buyer: BuyerInfo,
        user_id: UUID | None,
        actor_id: UUID,
    ) -> InvoiceModel:
        lines = [
            LineItem(
                description=f"{event.title} - {s.ticket_type.name}",
                quantity=s.quantity,
                unit_price=s.unit_price,
                reference_id=s.ticket_type.id,
            )
            for s in selections
        ]
        # Guest checkouts bill the system account; the buyer is in billing_details.
        invoice = self._invoices.create_invoice(
            UserBillable(user_id or SYSTEM_ACTOR_ID),
            EventOrigin(event.id),
            lines,
            actor_id,
            currency=event.currency,
            billing_details=buyer.billing_details(),
            metadata={
                "event_id": str(event.id),
                "event_title": event.title,
                "is_guest_checkout": user_id is None,
            },
        )
        return self._invoices.send(invoice.id, actor_id)

    def _new_attendee(
        self,
        attendee_id: UUID,
        event: EventModel,
        selection: _Selection,
        buyer: BuyerInfo,
        user_id: UUID | None,
        invoice: InvoiceModel | None,
        is_free: bool,
        now: datetime,
        actor_id: UUID,
    ) -> AttendeeModel:
        return AttendeeModel(
            id=attendee_id,
            event_id=event.id,
            ticket_type_id=selection.ticket_type.id,
            user_id=user_id,
            guest_name=buyer.name,
            guest_email=buyer.email,
            guest_phone=buyer.phone,
            company_name=buyer.company,
            job_title=buyer.job_title,
            special_requirements=buyer.special_requirements,
            custom_fields=dict(buyer.custom_fields),
            reference_no=generate_reference_number(self._config.reference_prefix, now),
            qr_code_hash=generate_qr_code_hash(),
            invoice_id=invoice.id if invoice is not None else None,
            amount_paid=selection.unit_price if is_free else Decimal("0"),
            currency=event.currency,
            confirmed_at=now if is_free else None,
            created_by_id=actor_id,
        )

    def _pending_attendees(self, invoice_id: UUID) -> list[AttendeeModel]:
        return list(
            self._session.execute(
                select(AttendeeModel)
                .where(
                    AttendeeModel.invoice_id == invoice_id,
                    AttendeeModel.status == AttendeeStatus.PENDING_PAYMENT.value,
                )
                .order_by(AttendeeModel.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars().all()
        )

    def _expire_pending(self, invoice_id: UUID, actor_id: UUID, reason: str) -> list[AttendeeModel]:
        attendees = self._pending_attendees(invoice_id)
        for attendee in attendees:
            self._ledger.release_hold(ATTENDEE_HOLDER, attendee.id, actor_id)
            outcome = self._attendee_machine.transition(
                attendee, AttendeeStatus.EXPIRED, actor_id, notes=reason,
                payload=self._attendee_payload(attendee),
            )
            self._events.collect(outcome.events)
        logger.info(
            "booking_expired",
            extra={"invoice_id": str(invoice_id), "attendees": len(attendees), "reason": reason},
        )
        return attendees

    def _issue_after_commit(self, attendees: list[AttendeeModel]) -> tuple[UUID, ...]:
        if self._auto_commit:
            return self._issue_tickets(attendees)
        self._awaiting_tickets.update(a.id for a in attendees)
        return ()

    def _on_booking_completed(self, event: DomainEvent) -> None:
        ids = [UUID(raw) for raw in event.payload.get("attendee_ids", ())]
        ours = [attendee_id for attendee_id in ids if attendee_id in self._awaiting_tickets]
        if not ours:
            return
        self._awaiting_tickets.difference_update(ours)
        attendees = [self._session.get(AttendeeModel, attendee_id) for attendee_id in ours]
        self._issue_tickets(a for a in attendees if a is not None)

    def _issue_tickets(self, attendees: Iterable[AttendeeModel]) -> tuple[UUID, ...]:
        job_ids: list[UUID] = []
        for attendee in attendees:
            try:
                job_ids.append(self._tickets.issue_ticket(attendee))
            except Exception:
                # The booking is committed; resend_ticket_email recovers.
                logger.exception(
                    "ticket_issue_failed",
                    extra={"attendee_id": str(attendee.id), "event_id": str(attendee.event_id)},
                )
        return tuple(job_ids)

    @staticmethod
    def _attendee_payload(attendee: AttendeeModel) -> dict[str, str | None]:
        return {
            "event_id": str(attendee.event_id),
            "ticket_type_id": str(attendee.ticket_type_id),
            "invoice_id": str(attendee.invoice_id) if attendee.invoice_id else None,
        }

    def _booking_event(
        self,
        name: str,
        event_id: UUID,
        attendees: list[AttendeeModel],
        invoice: InvoiceModel | None = None,
        invoice_id: UUID | None = None,
    ) -> DomainEvent:
        if invoice is not None:
            invoice_id = invoice.id
        return DomainEvent(
            name=name,
            entity_type="event",
            entity_id=event_id,
            occurred_at=self._clock.now_utc(),
            payload={
                "attendee_ids": [str(a.id) for a in attendees],
                "invoice_id": str(invoice_id) if invoice_id else None,
            },
        )

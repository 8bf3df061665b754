"""
Billing Module Service (``hub_modules.billing.service``).

Responsibility
--------------
Invoice issue and settlement, and order payment and fulfilment.  Status
changes go through the kernel ``StateMachine`` for the invoice and order
workflows; this module adds the money fields and timestamps that travel
with each transition.

Architecture
------------
Layer: **Modules** -- stateful orchestration wrapper over kernel services.

Invariants
----------
- Each public method owns its transaction boundary unless constructed with
  ``auto_commit=False``, in which case it flushes inside the caller's
  transaction (the booking orchestrator creates invoices this way).
- Invoice totals are computed once, at creation, from the line items.
- ``InvoicePaid`` / ``InvoicePaymentFailed`` / ``InvoiceVoided`` events
  carry ``origin_type`` and ``origin_id`` so listeners can route them.

Failure Modes
-------------
- ``InvoiceNotFoundError`` / ``OrderNotFoundError`` for unknown ids.
- ``InvoiceStateError`` for operations the current status does not allow.
- ``InvalidTransitionError`` from the state machine.
- Any exception rolls back the session (when this service owns it) before
  re-raising.

Usage::

    invoices = InvoiceService(session, dispatcher, clock)
    invoice = invoices.create_invoice(
        UserBillable(user_id), EventOrigin(event_id),
        [LineItem("General Admission - Demo Day", 2, Decimal("100"))],
        actor_id=actor_id,
    )
    invoices.send(invoice.id, actor_id)
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Sequence
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from hub_kernel.domain.actors import SYSTEM_ACTOR_ID
from hub_kernel.domain.clock import Clock, SystemClock
from hub_kernel.domain.events import DomainEvent
from hub_kernel.exceptions import (
    InvoiceNotFoundError,
    InvoiceStateError,
    OrderNotFoundError,
)
from hub_kernel.logging_config import get_logger
from hub_kernel.services.event_dispatcher import DomainEventDispatcher
from hub_kernel.services.state_machine import StateMachine, TransitionOutcome
from hub_kernel.services.transaction import unit_of_work
from hub_modules.billing.config import BillingConfig
from hub_modules.billing.helpers import (
    compute_totals,
    generate_invoice_number,
    generate_order_number,
    quantize_money,
)
from hub_modules.billing.models import (
    Billable,
    InvoiceStatus,
    LineItem,
    OrderLine,
    OrderStatus,
    Origin,
    billable_to_columns,
    origin_to_columns,
)
from hub_modules.billing.orm import (
    InvoiceItemModel,
    InvoiceModel,
    OrderLineModel,
    OrderModel,
)
from hub_modules.billing.workflows import INVOICE_WORKFLOW, ORDER_WORKFLOW

logger = get_logger("modules.billing.service")

_PAYABLE = {
    InvoiceStatus.SENT.value,
    InvoiceStatus.OVERDUE.value,
    InvoiceStatus.PARTIALLY_PAID.value,
}


class InvoiceService:
    """
    Invoice lifecycle.

    Contract
    --------
    Returns ORM rows (``InvoiceModel``); call ``to_dto()`` for a frozen view.
    Domain events are collected on the dispatcher and delivered after commit.
    """

    def __init__(
        self,
        session: Session,
        dispatcher: DomainEventDispatcher | None = None,
        clock: Clock | None = None,
        config: BillingConfig | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._events = dispatcher or DomainEventDispatcher()
        self._clock = clock or SystemClock()
        self._config = config or BillingConfig()
        self._auto_commit = auto_commit
        self._machine = StateMachine(session, INVOICE_WORKFLOW, self._clock)

    def get(self, invoice_id: UUID) -> InvoiceModel:
        invoice = self._session.get(InvoiceModel, invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        return invoice

    def create_invoice(
        self,
        billable: Billable,
        origin: Origin | None,
        line_items: Sequence[LineItem],
        actor_id: UUID,
        tax_rate: Decimal | None = None,
        currency: str | None = None,
        billing_details: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> InvoiceModel:
        """Create a draft invoice with computed totals."""
        rate = self._config.default_tax_rate if tax_rate is None else Decimal(str(tax_rate))
        totals = compute_totals(line_items, rate)
        billable_type, billable_id = billable_to_columns(billable)
        origin_type, origin_id = origin_to_columns(origin)

        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="create_invoice",
        ):
            invoice = InvoiceModel(
                id=uuid4(),
                invoice_number=generate_invoice_number(
                    self._config.invoice_number_prefix, self._clock.now_utc(),
                ),
                billable_type=billable_type,
                billable_id=billable_id,
                origin_type=origin_type,
                origin_id=origin_id,
                currency=currency or self._config.default_currency,
                subtotal=totals.subtotal,
                tax_rate=totals.tax_rate,
                tax_amount=totals.tax_amount,
                total=totals.total,
                amount_paid=Decimal("0"),
                billing_details=billing_details or {},
                extra_data=metadata or {},
                created_by_id=actor_id,
            )
            for position, item in enumerate(line_items):
                invoice.items.append(
                    InvoiceItemModel(
                        position=position,
                        description=item.description,
                        quantity=item.quantity,
                        unit_price=item.unit_price,
                        amount=quantize_money(item.amount),
                        reference_id=item.reference_id,
                        created_by_id=actor_id,
                    )
                )
            outcome = self._machine.initialize(
                invoice, actor_id, notes="Invoice created", payload=self._route(invoice),
            )
            self._events.collect(outcome.events)

            logger.info(
                "invoice_created",
                extra={
                    "invoice_id": str(invoice.id),
                    "invoice_number": invoice.invoice_number,
                    "origin_type": origin_type,
                    "origin_id": str(origin_id) if origin_id else None,
                    "subtotal": totals.subtotal,
                    "tax_amount": totals.tax_amount,
                    "total": totals.total,
                    "line_count": len(line_items),
                },
            )
        return invoice

    def send(self, invoice_id: UUID, actor_id: UUID) -> InvoiceModel:
        """Finalize a draft: stamp issue and due dates and move to sent."""
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="send_invoice",
        ):
            invoice = self.get(invoice_id)
            if not invoice.items:
                raise InvoiceStateError(invoice_id, invoice.status, "send an empty")
            now = self._clock.now_utc()
            invoice.issue_date = now
            invoice.due_date = now + timedelta(days=self._config.invoice_due_days)
            self._apply(invoice, InvoiceStatus.SENT, actor_id, "Invoice sent")
        return invoice

    def mark_as_paid(
        self,
        invoice_id: UUID,
        actor_id: UUID = SYSTEM_ACTOR_ID,
        amount: Decimal | None = None,
        payment_reference: str | None = None,
    ) -> InvoiceModel:
        """
        Record a payment.  Full settlement moves the invoice to paid and
        publishes ``InvoicePaid``; a short payment moves it to partially_paid.
        """
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="mark_invoice_paid",
        ):
            invoice = self.get(invoice_id)
            if invoice.status not in _PAYABLE:
                raise InvoiceStateError(invoice_id, invoice.status, "pay")

            outstanding = invoice.total - invoice.amount_paid
            received = outstanding if amount is None else Decimal(str(amount))
            if received <= 0:
                raise ValueError(f"Payment amount must be positive, got {received}")
            invoice.amount_paid = invoice.amount_paid + received
            if payment_reference:
                invoice.extra_data = {**(invoice.extra_data or {}), "payment_reference": payment_reference}

            if invoice.amount_paid >= invoice.total:
                invoice.paid_at = self._clock.now_utc()
                self._apply(invoice, InvoiceStatus.PAID, actor_id, "Payment received")
            elif invoice.status != InvoiceStatus.PARTIALLY_PAID.value:
                self._apply(
                    invoice, InvoiceStatus.PARTIALLY_PAID, actor_id,
                    f"Partial payment of {received}",
                )
            else:
                self._session.flush()

            logger.info(
                "invoice_payment_recorded",
                extra={
                    "invoice_id": str(invoice.id),
                    "amount": received,
                    "amount_paid": invoice.amount_paid,
                    "status": invoice.status,
                },
            )
        return invoice

    def mark_payment_failed(
        self,
        invoice_id: UUID,
        reason: str | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> InvoiceModel:
        """Report a failed or timed-out payment.  The invoice status is unchanged."""
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="mark_invoice_payment_failed",
        ):
            invoice = self.get(invoice_id)
            if invoice.status not in _PAYABLE:
                raise InvoiceStateError(invoice_id, invoice.status, "fail payment for")
            self._events.collect((
                DomainEvent(
                    name="InvoicePaymentFailed",
                    entity_type=INVOICE_WORKFLOW.entity_type,
                    entity_id=invoice.id,
                    occurred_at=self._clock.now_utc(),
                    payload={**self._route(invoice), "reason": reason, "actor_id": str(actor_id)},
                ),
            ))
            logger.warning(
                "invoice_payment_failed",
                extra={"invoice_id": str(invoice.id), "reason": reason},
            )
        return invoice

    def void(self, invoice_id: UUID, reason: str, actor_id: UUID) -> InvoiceModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="void_invoice",
        ):
            invoice = self.get(invoice_id)
            invoice.voided_at = self._clock.now_utc()
            invoice.void_reason = reason
            self._apply(invoice, InvoiceStatus.VOID, actor_id, reason)
        return invoice

    def mark_overdue_invoices(
        self,
        as_of: datetime | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> int:
        """Move every sent or partially paid invoice past its due date to overdue."""
        cutoff = as_of or self._clock.now_utc()
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="mark_overdue_invoices",
        ):
            due = self._session.execute(
                select(InvoiceModel).where(
                    InvoiceModel.status.in_([
                        InvoiceStatus.SENT.value,
                        InvoiceStatus.PARTIALLY_PAID.value,
                    ]),
                    InvoiceModel.due_date.is_not(None),
                    InvoiceModel.due_date < cutoff,
                )
            ).scalars().all()
            for invoice in due:
                self._apply(invoice, InvoiceStatus.OVERDUE, actor_id, "Past due date")
            logger.info(
                "overdue_invoices_marked",
                extra={"count": len(due), "as_of": cutoff},
            )
        return len(due)

    def _apply(
        self, invoice: InvoiceModel, target: InvoiceStatus, actor_id: UUID, notes: str,
    ) -> TransitionOutcome:
        outcome = self._machine.transition(
            invoice, target, actor_id, notes, payload=self._route(invoice),
        )
        self._events.collect(outcome.events)
        return outcome

    @staticmethod
    def _route(invoice: InvoiceModel) -> dict[str, Any]:
        return {
            "invoice_id": str(invoice.id),
            "origin_type": invoice.origin_type,
            "origin_id": str(invoice.origin_id) if invoice.origin_id else None,
            "total": str(invoice.total),
        }


class OrderService:
    """
    Order lifecycle.

    Payment moves pending -> processing (``OrderPaid``); digital-only orders
    then complete immediately (``OrderCompleted``).  Physical orders move
    through shipped / out_for_delivery / delivered before completing.
    """

    def __init__(
        self,
        session: Session,
        dispatcher: DomainEventDispatcher | None = None,
        clock: Clock | None = None,
        config: BillingConfig | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._events = dispatcher or DomainEventDispatcher()
        self._clock = clock or SystemClock()
        self._config = config or BillingConfig()
        self._auto_commit = auto_commit
        self._machine = StateMachine(session, ORDER_WORKFLOW, self._clock)

    def get(self, order_id: UUID) -> OrderModel:
        order = self._session.get(OrderModel, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def create_order(
        self,
        customer: Billable,
        lines: Sequence[OrderLine],
        actor_id: UUID,
        currency: str | None = None,
        discount_total: Decimal = Decimal("0"),
        tax_rate: Decimal | None = None,
        shipping_address: dict[str, Any] | None = None,
        note: str | None = None,
    ) -> OrderModel:
        if not lines:
            raise ValueError("An order needs at least one line")
        customer_type, customer_id = billable_to_columns(customer)
        rate = self._config.default_tax_rate if tax_rate is None else Decimal(str(tax_rate))
        subtotal = quantize_money(sum((line.amount for line in lines), Decimal("0")))
        taxable = max(Decimal("0"), subtotal - discount_total)
        tax = quantize_money(taxable * rate / Decimal("100"))

        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="create_order",
        ):
            order = OrderModel(
                order_number=generate_order_number(
                    self._config.order_number_prefix, self._clock.now_utc(),
                ),
                customer_type=customer_type,
                customer_id=customer_id,
                currency=currency or self._config.default_currency,
                subtotal=subtotal,
                discount_total=discount_total,
                tax=tax,
                total=taxable + tax,
                shipping_address=shipping_address,
                note=note,
                created_by_id=actor_id,
            )
            for position, line in enumerate(lines):
                order.lines.append(
                    OrderLineModel(
                        position=position,
                        product_name=line.product_name,
                        sku=line.sku,
                        quantity=line.quantity,
                        unit_price=line.unit_price,
                        amount=quantize_money(line.amount),
                        is_digital=line.is_digital,
                        created_by_id=actor_id,
                    )
                )
            outcome = self._machine.initialize(order, actor_id, notes="Order placed")
            self._events.collect(outcome.events)
            logger.info(
                "order_created",
                extra={
                    "order_id": str(order.id),
                    "order_number": order.order_number,
                    "total": order.total,
                    "line_count": len(lines),
                },
            )
        return order

    def transition(
        self,
        order_id: UUID,
        target: OrderStatus,
        actor_id: UUID,
        notes: str | None = None,
    ) -> TransitionOutcome:
        """Generic admin transition (e.g. "mark as shipped" buttons)."""
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="transition_order",
        ):
            order = self.get(order_id)
            outcome = self._apply(order, target, actor_id, notes)
        return outcome

    def handle_payment_completed(
        self,
        order_id: UUID,
        actor_id: UUID = SYSTEM_ACTOR_ID,
        payment_gateway: str | None = None,
    ) -> OrderModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="order_payment_completed",
        ):
            order = self.get(order_id)
            order.paid_at = self._clock.now_utc()
            order.payment_gateway = payment_gateway
            self._apply(order, OrderStatus.PROCESSING, actor_id, "Payment received")
            if order.is_digital:
                self._apply(order, OrderStatus.COMPLETED, actor_id, "Digital order fulfilled")
        return order

    def ship(
        self, order_id: UUID, actor_id: UUID, tracking_number: str | None = None,
    ) -> OrderModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="ship_order",
        ):
            order = self.get(order_id)
            order.tracking_number = tracking_number
            order.shipped_at = self._clock.now_utc()
            self._apply(order, OrderStatus.SHIPPED, actor_id, "Order shipped")
        return order

    def cancel(self, order_id: UUID, reason: str, actor_id: UUID) -> OrderModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="cancel_order",
        ):
            order = self.get(order_id)
            order.cancelled_at = self._clock.now_utc()
            order.cancellation_reason = reason
            self._apply(order, OrderStatus.CANCELLED, actor_id, reason)
        return order

    def refund(self, order_id: UUID, actor_id: UUID, reason: str | None = None) -> OrderModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="refund_order",
        ):
            order = self.get(order_id)
            order.refunded_at = self._clock.now_utc()
            self._apply(order, OrderStatus.REFUNDED, actor_id, reason or "Order refunded")
        return order

    def _apply(
        self, order: OrderModel, target: OrderStatus, actor_id: UUID, notes: str | None,
    ) -> TransitionOutcome:
        now = self._clock.now_utc()
        outcome = self._machine.transition(
            order, target, actor_id, notes,
            payload={"order_number": order.order_number, "total": str(order.total)},
        )
        if target is OrderStatus.DELIVERED:
            order.delivered_at = now
        elif target is OrderStatus.COMPLETED:
            order.completed_at = now
        self._events.collect(outcome.events)
        return outcome

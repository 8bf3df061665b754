"""
Routing of invoice outcomes back to the module that raised the invoice.

Billing knows nothing about events.  Its invoice events carry the origin in
their payload (``origin_type`` / ``origin_id``); the listeners registered
here pick out the ``event`` origins and hand the invoice to the booking
orchestrator.  Handlers run after the billing transaction has committed.
"""

from __future__ import annotations

from hub_kernel.domain.events import DomainEvent
from hub_kernel.logging_config import get_logger
from hub_kernel.services.event_dispatcher import DomainEventDispatcher
from hub_services.event_booking import EventBookingService

logger = get_logger("services.payment_listeners")

EVENT_ORIGIN = "event"


def register_payment_listeners(
    dispatcher: DomainEventDispatcher, booking: EventBookingService,
) -> None:
    """Subscribe ``booking`` to the invoice events that settle a booking."""

    def on_paid(event: DomainEvent) -> None:
        if event.payload.get("origin_type") != EVENT_ORIGIN:
            return
        booking.handle_payment_completed(event.entity_id)

    def on_failed(event: DomainEvent) -> None:
        if event.payload.get("origin_type") != EVENT_ORIGIN:
            return
        booking.handle_payment_failed(event.entity_id)

    dispatcher.subscribe("InvoicePaid", on_paid)
    dispatcher.subscribe("InvoicePaymentFailed", on_failed)
    dispatcher.subscribe("InvoiceVoided", on_failed)
    logger.info(
        "payment_listeners_registered",
        extra={"events": ["InvoicePaid", "InvoicePaymentFailed", "InvoiceVoided"]},
    )

"""
Events Module (``hub_modules.events``).

Responsibility
--------------
Events and their ticket types (the stock-tracked inventory units), the
attendees a booking creates, ticket issuance and check-in.

Architecture position
---------------------
**Modules layer** -- models, workflows, config and transaction-owning
services over the kernel ``StateMachine`` and ``InventoryLedger``.  The
cross-module booking flow (events + billing) is in ``hub_services``.

Invariants enforced
-------------------
* Ticket type counters move only through ``InventoryLedger`` holds keyed
  by attendee id, so each attendee's unit is confirmed, released or
  refunded exactly once.
* Attendee, event and ticket type statuses change only through their
  workflows and are recorded in the status history.

Failure modes
-------------
* ``BookingError`` subclasses for check-in and ticket problems.
* ``InvalidTransitionError`` for illegal status changes.
"""

from hub_modules.events.config import EventsConfig
from hub_modules.events.models import (
    ATTENDEE_HOLDER,
    Attendee,
    AttendeeStatus,
    BookingSummary,
    BuyerInfo,
    CheckInMethod,
    CheckInResult,
    Event,
    EventStatus,
    EventType,
    LocationType,
    TicketType,
)
from hub_modules.events.service import (
    AttendeeService,
    EventQueryService,
    EventService,
    adjust_registered_count,
    ticket_ledger,
)
from hub_modules.events.tickets import TicketService
from hub_modules.events.workflows import (
    ATTENDEE_WORKFLOW,
    EVENT_WORKFLOW,
    TICKET_TYPE_WORKFLOW,
)

__all__ = [
    "ATTENDEE_HOLDER",
    "ATTENDEE_WORKFLOW",
    "Attendee",
    "AttendeeService",
    "AttendeeStatus",
    "BookingSummary",
    "BuyerInfo",
    "CheckInMethod",
    "CheckInResult",
    "EVENT_WORKFLOW",
    "Event",
    "EventQueryService",
    "EventService",
    "EventStatus",
    "EventType",
    "EventsConfig",
    "LocationType",
    "TICKET_TYPE_WORKFLOW",
    "TicketService",
    "TicketType",
    "adjust_registered_count",
    "ticket_ledger",
]

"""
Events Workflows.

State machines for events, ticket types and attendees.
"""

from hub_kernel.domain.stock import StockStatus
from hub_kernel.domain.workflow import Guard, Transition, Workflow
from hub_kernel.logging_config import get_logger
from hub_modules.events.models import AttendeeStatus, EventStatus

logger = get_logger("modules.events.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

PAYMENT_CAPTURED = Guard(
    name="payment_captured",
    description="The booking invoice has been paid",
)

STOCK_AVAILABLE = Guard(
    name="stock_available",
    description="Ticket type has unsold, unreserved units",
)

logger.info(
    "events_workflow_guards_defined",
    extra={"guards": [PAYMENT_CAPTURED.name, STOCK_AVAILABLE.name]},
)


# -----------------------------------------------------------------------------
# Event Workflow
# -----------------------------------------------------------------------------

_E = EventStatus

EVENT_WORKFLOW = Workflow(
    name="events_event",
    description="Event publication lifecycle",
    entity_type="event",
    status_enum=EventStatus,
    initial_state=_E.DRAFT.value,
    states=tuple(s.value for s in EventStatus),
    transitions=(
        Transition(_E.DRAFT.value, _E.PUBLISHED.value, action="publish", events=("EventPublished",)),
        Transition(_E.DRAFT.value, _E.CANCELLED.value, action="cancel", events=("EventCancelled",)),
        Transition(_E.PUBLISHED.value, _E.POSTPONED.value, action="postpone", events=("EventPostponed",)),
        Transition(_E.PUBLISHED.value, _E.CANCELLED.value, action="cancel", events=("EventCancelled",)),
        Transition(_E.PUBLISHED.value, _E.COMPLETED.value, action="complete", events=("EventCompleted",)),
        Transition(_E.POSTPONED.value, _E.PUBLISHED.value, action="reschedule", events=("EventPublished",)),
        Transition(_E.POSTPONED.value, _E.CANCELLED.value, action="cancel", events=("EventCancelled",)),
    ),
    terminal_states=(_E.CANCELLED.value, _E.COMPLETED.value),
)

logger.info(
    "events_event_workflow_registered",
    extra={
        "workflow_name": EVENT_WORKFLOW.name,
        "state_count": len(EVENT_WORKFLOW.states),
        "transition_count": len(EVENT_WORKFLOW.transitions),
    },
)


# -----------------------------------------------------------------------------
# Ticket Type Workflow
# -----------------------------------------------------------------------------
# active <-> sold_out edges are also taken automatically by the
# InventoryLedger; pause and resume are operator actions.

_T = StockStatus

TICKET_TYPE_WORKFLOW = Workflow(
    name="events_ticket_type",
    description="Ticket type sale status",
    entity_type="ticket_type",
    status_enum=StockStatus,
    initial_state=_T.ACTIVE.value,
    states=tuple(s.value for s in StockStatus),
    transitions=(
        Transition(_T.ACTIVE.value, _T.PAUSED.value, action="pause", events=("TicketTypePaused",)),
        Transition(_T.PAUSED.value, _T.ACTIVE.value, action="resume", guard=STOCK_AVAILABLE, events=("TicketTypeResumed",)),
        Transition(_T.ACTIVE.value, _T.SOLD_OUT.value, action="sell_out", events=("TicketTypeSoldOut",)),
        Transition(_T.SOLD_OUT.value, _T.ACTIVE.value, action="restock", guard=STOCK_AVAILABLE),
        Transition(_T.SOLD_OUT.value, _T.PAUSED.value, action="pause", events=("TicketTypePaused",)),
        Transition(_T.PAUSED.value, _T.SOLD_OUT.value, action="resume_sold_out", events=("TicketTypeResumed",)),
    ),
    entry_states=(_T.ACTIVE.value, _T.PAUSED.value, _T.SOLD_OUT.value),
)

logger.info(
    "events_ticket_type_workflow_registered",
    extra={
        "workflow_name": TICKET_TYPE_WORKFLOW.name,
        "state_count": len(TICKET_TYPE_WORKFLOW.states),
        "transition_count": len(TICKET_TYPE_WORKFLOW.transitions),
    },
)


# -----------------------------------------------------------------------------
# Attendee Workflow
# -----------------------------------------------------------------------------
# checked_in is terminal-ish: its only exit is the undo back to confirmed.

_A = AttendeeStatus

ATTENDEE_WORKFLOW = Workflow(
    name="events_attendee",
    description="Ticket holder lifecycle",
    entity_type="attendee",
    status_enum=AttendeeStatus,
    initial_state=_A.PENDING_PAYMENT.value,
    states=tuple(s.value for s in AttendeeStatus),
    transitions=(
        Transition(_A.PENDING_PAYMENT.value, _A.CONFIRMED.value, action="confirm", guard=PAYMENT_CAPTURED, events=("AttendeeConfirmed",)),
        Transition(_A.PENDING_PAYMENT.value, _A.EXPIRED.value, action="expire", events=("AttendeeExpired",)),
        Transition(_A.PENDING_PAYMENT.value, _A.CANCELLED.value, action="cancel", events=("AttendeeCancelled",)),
        Transition(_A.CONFIRMED.value, _A.CHECKED_IN.value, action="check_in", events=("AttendeeCheckedIn",)),
        Transition(_A.CONFIRMED.value, _A.CANCELLED.value, action="cancel", events=("AttendeeCancelled",)),
        Transition(_A.CONFIRMED.value, _A.NO_SHOW.value, action="mark_no_show"),
        Transition(_A.CHECKED_IN.value, _A.CONFIRMED.value, action="undo_check_in"),
        Transition(_A.WAITLISTED.value, _A.PENDING_PAYMENT.value, action="offer_seat"),
        Transition(_A.WAITLISTED.value, _A.CONFIRMED.value, action="confirm", events=("AttendeeConfirmed",)),
        Transition(_A.WAITLISTED.value, _A.CANCELLED.value, action="cancel", events=("AttendeeCancelled",)),
    ),
    terminal_states=(_A.CANCELLED.value, _A.EXPIRED.value, _A.NO_SHOW.value),
    entry_states=(_A.PENDING_PAYMENT.value, _A.CONFIRMED.value, _A.WAITLISTED.value),
)

logger.info(
    "events_attendee_workflow_registered",
    extra={
        "workflow_name": ATTENDEE_WORKFLOW.name,
        "state_count": len(ATTENDEE_WORKFLOW.states),
        "transition_count": len(ATTENDEE_WORKFLOW.transitions),
    },
)

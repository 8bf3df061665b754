"""
Space Booking Workflows.

State machine for space bookings.
"""

from hub_kernel.domain.workflow import Transition, Workflow
from hub_kernel.logging_config import get_logger
from hub_modules.space_booking.models import BookingStatus

logger = get_logger("modules.space_booking.workflows")


# -----------------------------------------------------------------------------
# Space Booking Workflow
# -----------------------------------------------------------------------------
# Resources that need approval start bookings in pending; the rest start in
# confirmed.  Only confirmed bookings complete or turn into no-shows.

_B = BookingStatus

SPACE_BOOKING_WORKFLOW = Workflow(
    name="space_booking",
    description="Meeting room, desk and office booking lifecycle",
    entity_type="space_booking",
    status_enum=BookingStatus,
    initial_state=_B.PENDING.value,
    states=tuple(s.value for s in BookingStatus),
    transitions=(
        Transition(_B.PENDING.value, _B.CONFIRMED.value, action="confirm", events=("SpaceBookingConfirmed",)),
        Transition(_B.PENDING.value, _B.CANCELLED.value, action="cancel", events=("SpaceBookingCancelled",)),
        Transition(_B.CONFIRMED.value, _B.CANCELLED.value, action="cancel", events=("SpaceBookingCancelled",)),
        Transition(_B.CONFIRMED.value, _B.COMPLETED.value, action="complete", events=("SpaceBookingCompleted",)),
        Transition(_B.CONFIRMED.value, _B.NO_SHOW.value, action="mark_no_show", events=("SpaceBookingNoShow",)),
    ),
    terminal_states=(_B.CANCELLED.value, _B.COMPLETED.value, _B.NO_SHOW.value),
    entry_states=(_B.PENDING.value, _B.CONFIRMED.value),
)

logger.info(
    "space_booking_workflow_registered",
    extra={
        "workflow_name": SPACE_BOOKING_WORKFLOW.name,
        "state_count": len(SPACE_BOOKING_WORKFLOW.states),
        "transition_count": len(SPACE_BOOKING_WORKFLOW.transitions),
    },
)

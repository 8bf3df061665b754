"""
Space Booking Module (``hub_modules.space_booking``).

Responsibility
--------------
Meeting rooms, hot desks and private offices: availability, priced
bookings, members' booking credits and the booking lifecycle.

Architecture position
---------------------
**Modules layer** -- models, workflow, config, pure pricing and a
transaction-owning service over the kernel ``StateMachine`` and interval
predicate.

Invariants enforced
-------------------
* Pending and confirmed bookings of one resource never overlap once each
  is widened by the resource's buffer (half-open intervals).
* Booking statuses change only through ``SPACE_BOOKING_WORKFLOW`` and are
  recorded in the status history.
* Credits spent by a booking come back when it is cancelled or moved.

Failure modes
-------------
* ``SpaceBookingError`` subclasses for unavailable ranges and bookings that
  can no longer change.
* ``InvalidTransitionError`` for illegal status changes.
"""

from hub_modules.space_booking.config import SpaceBookingConfig
from hub_modules.space_booking.models import (
    BookingStatus,
    PaymentStatus,
    PriceCalculation,
    PriceUnit,
    ResourceType,
    ResourceUtilization,
)
from hub_modules.space_booking.pricing import calculate_price
from hub_modules.space_booking.service import SpaceBookingService
from hub_modules.space_booking.workflows import SPACE_BOOKING_WORKFLOW

__all__ = [
    "SPACE_BOOKING_WORKFLOW",
    "BookingStatus",
    "PaymentStatus",
    "PriceCalculation",
    "PriceUnit",
    "ResourceType",
    "ResourceUtilization",
    "SpaceBookingConfig",
    "SpaceBookingService",
    "calculate_price",
]

"""
Space Booking Domain Models.

Bookable resources (meeting rooms, hot desks, private offices), the
bookings held against them and the price a booking is charged.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from hub_kernel.logging_config import get_logger

logger = get_logger("modules.space_booking.models")


class ResourceType(str, Enum):
    MEETING_ROOM = "meeting_room"
    HOT_DESK = "hot_desk"
    PRIVATE_OFFICE = "private_office"


class PriceUnit(str, Enum):
    """What one unit of ``quantity`` on a booking covers."""
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"

    @property
    def minutes(self) -> int:
        return _UNIT_MINUTES[self]

    def from_minutes(self, minutes: int) -> Decimal:
        """Fractional number of units in ``minutes``."""
        return Decimal(minutes) / Decimal(self.minutes)


# A month is priced as 30 days.
_UNIT_MINUTES = {
    PriceUnit.HOUR: 60,
    PriceUnit.DAY: 1440,
    PriceUnit.WEEK: 10080,
    PriceUnit.MONTH: 43200,
}


class BookingStatus(str, Enum):
    """Space booking states."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"

    @property
    def blocks_time_slot(self) -> bool:
        return self in (BookingStatus.PENDING, BookingStatus.CONFIRMED)


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"
    PARTIAL = "partial"


# Statuses that hold the resource's calendar
BLOCKING_BOOKING_STATUSES = tuple(s.value for s in BookingStatus if s.blocks_time_slot)


# -----------------------------------------------------------------------------
# Value objects
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class PriceCalculation:
    """
    What a booking costs.

    ``total_price`` is ``base_price`` less the credit value
    (``credits_used * unit_price``) and the plan discount, floored at zero.
    """
    unit_price: Decimal
    price_unit: PriceUnit
    quantity: int
    base_price: Decimal
    discount_percent: int
    discount_amount: Decimal
    credits_used: Decimal
    total_price: Decimal
    duration_minutes: int


@dataclass(frozen=True)
class ResourceUtilization:
    total_hours: Decimal
    booked_hours: Decimal
    utilization_percent: Decimal

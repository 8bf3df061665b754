"""
Events Domain Models.

Events (the offerings), ticket types (their stock-tracked tiers) and
attendees (one row per issued ticket).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from hub_kernel.domain.stock import StockStatus
from hub_kernel.logging_config import get_logger

logger = get_logger("modules.events.models")


class EventStatus(str, Enum):
    """Event publication states."""
    DRAFT = "draft"
    PUBLISHED = "published"
    POSTPONED = "postponed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    @property
    def allows_registration(self) -> bool:
        return self is EventStatus.PUBLISHED


class EventType(str, Enum):
    WORKSHOP = "workshop"
    COURSE = "course"
    MEETUP = "meetup"
    CONFERENCE = "conference"
    WEBINAR = "webinar"


class LocationType(str, Enum):
    PHYSICAL = "physical"
    VIRTUAL = "virtual"
    HYBRID = "hybrid"


class AttendeeStatus(str, Enum):
    """Ticket holder states."""
    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    WAITLISTED = "waitlisted"
    NO_SHOW = "no_show"

    @property
    def can_check_in(self) -> bool:
        return self is AttendeeStatus.CONFIRMED

    @property
    def is_active(self) -> bool:
        """Holds a valid ticket."""
        return self in (AttendeeStatus.CONFIRMED, AttendeeStatus.CHECKED_IN)

    @property
    def occupies_capacity(self) -> bool:
        return self in (
            AttendeeStatus.PENDING_PAYMENT,
            AttendeeStatus.CONFIRMED,
            AttendeeStatus.CHECKED_IN,
            AttendeeStatus.WAITLISTED,
        )


class CheckInMethod(str, Enum):
    MANUAL = "manual"
    QR_SCAN = "qr_scan"


ACTIVE_ATTENDEE_STATUSES = tuple(s.value for s in AttendeeStatus if s.is_active)

# holder_type of the stock hold each attendee owns
ATTENDEE_HOLDER = "attendee"


# -----------------------------------------------------------------------------
# Value objects and DTOs
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class BuyerInfo:
    """Contact details captured at checkout (guest or logged-in user)."""
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    company: str | None = None
    job_title: str | None = None
    special_requirements: str | None = None
    custom_fields: dict[str, Any] = field(default_factory=dict)

    def billing_details(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "company": self.company,
        }


@dataclass(frozen=True)
class Event:
    """Read model of an event."""
    id: UUID
    title: str
    slug: str
    status: EventStatus
    event_type: EventType
    start_date: datetime
    end_date: datetime | None
    currency: str
    total_capacity: int | None
    registered_count: int
    allow_guest_registration: bool
    max_tickets_per_order: int
    registration_start: datetime | None = None
    registration_end: datetime | None = None


@dataclass(frozen=True)
class TicketType:
    """Read model of a ticket type."""
    id: UUID
    event_id: UUID
    name: str
    price: Decimal
    currency: str
    is_free: bool
    status: StockStatus
    quantity: int | None
    quantity_sold: int
    quantity_reserved: int
    quantity_available: int | None
    min_per_order: int
    max_per_order: int
    sale_start: datetime | None = None
    sale_end: datetime | None = None
    is_hidden: bool = False


@dataclass(frozen=True)
class Attendee:
    """Read model of an attendee."""
    id: UUID
    event_id: UUID
    ticket_type_id: UUID
    status: AttendeeStatus
    reference_no: str
    user_id: UUID | None
    name: str | None
    email: str | None
    invoice_id: UUID | None
    amount_paid: Decimal
    currency: str
    confirmed_at: datetime | None = None
    checked_in_at: datetime | None = None
    check_in_method: CheckInMethod | None = None
    cancelled_at: datetime | None = None
    ticket_sent_at: datetime | None = None


@dataclass(frozen=True)
class CheckInResult:
    """Outcome of a scanner or desk check-in attempt."""
    success: bool
    message: str
    attendee_id: UUID | None = None


@dataclass(frozen=True)
class BulkCheckInResult:
    checked_in: int
    failed: int
    errors: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class BookingSummary:
    """Attendance and revenue figures for one event."""
    event_id: UUID
    total_registered: int
    confirmed: int
    checked_in: int
    pending_payment: int
    cancelled: int
    revenue: Decimal

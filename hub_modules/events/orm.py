"""
Module: hub_modules.events.orm
Responsibility: SQLAlchemy ORM persistence models for events, ticket types
    and attendees.
Architecture position: Modules > Events > ORM.  Inherits from TrackedBase,
    StatusTrackedMixin (hub_kernel.db.base) and StockUnitMixin
    (hub_kernel.models.stock).

Invariants enforced:
    - Ticket type counters are written only by the kernel InventoryLedger.
    - Event.registered_count is adjusted only by the booking orchestrator and
      attendee cancellation, by the ledger's reported sold delta.
    - Attendee reference_no and qr_code_hash are unique.
    - Prices are Decimal (Numeric(38,9)) -- NEVER float.

Failure modes:
    - IntegrityError on duplicate slug, reference number or QR hash.
"""

import json
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hub_kernel.db.base import StatusTrackedMixin, TrackedBase
from hub_kernel.models.stock import StockUnitMixin


# =============================================================================
# EventModel
# =============================================================================


class EventModel(StatusTrackedMixin, TrackedBase):
    """
    ORM model for events (the sellable offering).

    Maps to: hub_modules.events.models.Event (frozen dataclass).
    """

    __tablename__ = "events_events"

    __table_args__ = (
        Index("idx_event_slug", "slug", unique=True),
        Index("idx_event_status", "status"),
        Index("idx_event_start", "start_date"),
    )

    title: Mapped[str] = mapped_column(String(255))
    slug: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    event_type: Mapped[str] = mapped_column(String(20), default="meetup")
    start_date: Mapped[datetime] = mapped_column()
    end_date: Mapped[datetime | None] = mapped_column(nullable=True)
    timezone: Mapped[str] = mapped_column(String(50), default="UTC")
    location_type: Mapped[str] = mapped_column(String(20), default="physical")
    location_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    location_link: Mapped[str | None] = mapped_column(String(500), nullable=True)

    total_capacity: Mapped[int | None] = mapped_column(nullable=True)
    registered_count: Mapped[int] = mapped_column(default=0)
    is_free: Mapped[bool] = mapped_column(Boolean, default=False)
    currency: Mapped[str] = mapped_column(String(3))

    allow_waitlist: Mapped[bool] = mapped_column(Boolean, default=False)
    allow_guest_registration: Mapped[bool] = mapped_column(Boolean, default=True)
    max_tickets_per_order: Mapped[int] = mapped_column(default=10)
    registration_start: Mapped[datetime | None] = mapped_column(nullable=True)
    registration_end: Mapped[datetime | None] = mapped_column(nullable=True)

    organizer_id: Mapped[UUID | None] = mapped_column(nullable=True)

    ticket_types: Mapped[list["TicketTypeModel"]] = relationship(
        back_populates="event",
        order_by="TicketTypeModel.sort_order",
    )

    def is_registration_open(self, now: datetime) -> bool:
        """Published and inside the registration window (missing bounds are open)."""
        if self.status != "published":
            return False
        if self.registration_start is not None and now < self.registration_start:
            return False
        if self.registration_end is not None and now > self.registration_end:
            return False
        return True

    @property
    def available_spots(self) -> int | None:
        if self.total_capacity is None:
            return None
        return max(0, self.total_capacity - self.registered_count)

    @property
    def is_sold_out(self) -> bool:
        return self.total_capacity is not None and self.registered_count >= self.total_capacity

    def to_dto(self):
        """Convert ORM model to frozen Event DTO."""
        from hub_modules.events.models import Event, EventStatus, EventType
        return Event(
            id=self.id,
            title=self.title,
            slug=self.slug,
            status=EventStatus(self.status),
            event_type=EventType(self.event_type),
            start_date=self.start_date,
            end_date=self.end_date,
            currency=self.currency,
            total_capacity=self.total_capacity,
            registered_count=self.registered_count,
            allow_guest_registration=self.allow_guest_registration,
            max_tickets_per_order=self.max_tickets_per_order,
            registration_start=self.registration_start,
            registration_end=self.registration_end,
        )

    def __repr__(self) -> str:
        return f"<EventModel {self.slug} {self.status} {self.registered_count}/{self.total_capacity}>"


# =============================================================================
# TicketTypeModel
# =============================================================================


class TicketTypeModel(StockUnitMixin, TrackedBase):
    """
    ORM model for ticket types (stock-tracked tiers of an event).

    Maps to: hub_modules.events.models.TicketType (frozen dataclass).
    """

    __tablename__ = "events_ticket_types"

    __table_args__ = (
        Index("idx_ticket_type_event", "event_id"),
        Index("idx_ticket_type_status", "status"),
    )

    event_id: Mapped[UUID] = mapped_column(ForeignKey("events_events.id"))
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3))
    is_free: Mapped[bool] = mapped_column(Boolean, default=False)
    min_per_order: Mapped[int] = mapped_column(default=1)
    max_per_order: Mapped[int] = mapped_column(default=10)
    sale_start: Mapped[datetime | None] = mapped_column(nullable=True)
    sale_end: Mapped[datetime | None] = mapped_column(nullable=True)
    is_hidden: Mapped[bool] = mapped_column(Boolean, default=False)
    sort_order: Mapped[int] = mapped_column(default=0)

    event: Mapped[EventModel] = relationship(back_populates="ticket_types")

    @property
    def unit_price(self) -> Decimal:
        return Decimal("0") if self.is_free else self.price

    def is_on_sale(self, now: datetime) -> bool:
        if self.status != "active":
            return False
        if self.sale_start is not None and now < self.sale_start:
            return False
        if self.sale_end is not None and now > self.sale_end:
            return False
        return True

    def is_purchasable(self, now: datetime) -> bool:
        return self.is_on_sale(now) and not self.is_sold_out

    def max_purchasable_quantity(self, event_cap: int) -> int:
        """Smallest of availability, the per-order maximum and the event's cap."""
        limit = min(self.max_per_order, event_cap)
        free = self.quantity_available
        return limit if free is None else min(free, limit)

    def to_dto(self):
        """Convert ORM model to frozen TicketType DTO."""
        from hub_kernel.domain.stock import StockStatus
        from hub_modules.events.models import TicketType
        return TicketType(
            id=self.id,
            event_id=self.event_id,
            name=self.name,
            price=self.price,
            currency=self.currency,
            is_free=self.is_free,
            status=StockStatus(self.status),
            quantity=self.quantity,
            quantity_sold=self.quantity_sold,
            quantity_reserved=self.quantity_reserved,
            quantity_available=self.quantity_available,
            min_per_order=self.min_per_order,
            max_per_order=self.max_per_order,
            sale_start=self.sale_start,
            sale_end=self.sale_end,
            is_hidden=self.is_hidden,
        )

    def __repr__(self) -> str:
        return (
            f"<TicketTypeModel {self.name} {self.status} "
            f"sold={self.quantity_sold} reserved={self.quantity_reserved} of {self.quantity}>"
        )


# =============================================================================
# AttendeeModel
# =============================================================================


class AttendeeModel(StatusTrackedMixin, TrackedBase):
    """
    ORM model for attendees (one issued ticket each).

    Maps to: hub_modules.events.models.Attendee (frozen dataclass).
    """

    __tablename__ = "events_attendees"

    __table_args__ = (
        Index("idx_attendee_reference", "reference_no", unique=True),
        Index("idx_attendee_qr_hash", "qr_code_hash", unique=True),
        Index("idx_attendee_event_status", "event_id", "status"),
        Index("idx_attendee_invoice", "invoice_id"),
    )

    event_id: Mapped[UUID] = mapped_column(ForeignKey("events_events.id"))
    ticket_type_id: Mapped[UUID] = mapped_column(ForeignKey("events_ticket_types.id"))
    user_id: Mapped[UUID | None] = mapped_column(nullable=True)

    guest_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    guest_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    guest_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    company_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    job_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    special_requirements: Mapped[str | None] = mapped_column(Text, nullable=True)
    custom_fields: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    reference_no: Mapped[str] = mapped_column(String(32))
    qr_code_hash: Mapped[str] = mapped_column(String(64))

    invoice_id: Mapped[UUID | None] = mapped_column(nullable=True)
    amount_paid: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3))

    confirmed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    checked_in_at: Mapped[datetime | None] = mapped_column(nullable=True)
    checked_in_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    check_in_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    ticket_sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    ticket_pdf_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    event: Mapped[EventModel] = relationship()
    ticket_type: Mapped[TicketTypeModel] = relationship()

    @property
    def is_guest(self) -> bool:
        return self.user_id is None

    @property
    def qr_code_content(self) -> str:
        """JSON encoded into the ticket's QR code."""
        return json.dumps(
            {"ref": self.reference_no, "hash": self.qr_code_hash, "event_id": str(self.event_id)},
            separators=(",", ":"),
        )

    def to_dto(self):
        """Convert ORM model to frozen Attendee DTO."""
        from hub_modules.events.models import Attendee, AttendeeStatus, CheckInMethod
        return Attendee(
            id=self.id,
            event_id=self.event_id,
            ticket_type_id=self.ticket_type_id,
            status=AttendeeStatus(self.status),
            reference_no=self.reference_no,
            user_id=self.user_id,
            name=self.guest_name,
            email=self.guest_email,
            invoice_id=self.invoice_id,
            amount_paid=self.amount_paid,
            currency=self.currency,
            confirmed_at=self.confirmed_at,
            checked_in_at=self.checked_in_at,
            check_in_method=CheckInMethod(self.check_in_method) if self.check_in_method else None,
            cancelled_at=self.cancelled_at,
            ticket_sent_at=self.ticket_sent_at,
        )

    def __repr__(self) -> str:
        return f"<AttendeeModel {self.reference_no} {self.status}>"

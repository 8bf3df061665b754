"""
Module: hub_modules.space_booking.orm
Responsibility: SQLAlchemy ORM persistence models for bookable resources,
    space bookings and members' booking credits.
Architecture position: Modules > Space Booking > ORM.  Inherits from
    TrackedBase and StatusTrackedMixin (hub_kernel.db.base).

Invariants enforced:
    - Booking codes and resource slugs are unique.
    - BookingCredit.used_credits stays within 0..allocated_credits; it moves
      only through SpaceBookingService in the same transaction as the
      booking that consumes or returns the credits.

Failure modes:
    - IntegrityError on duplicate slug or booking code.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hub_kernel.db.base import StatusTrackedMixin, TrackedBase


# =============================================================================
# SpaceResourceModel
# =============================================================================


class SpaceResourceModel(TrackedBase):
    """
    ORM model for anything that can be booked by the hour, day or month.

    ``available_from`` / ``available_until`` are UTC ``"HH:MM"`` strings;
    both unset means open around the clock.  ``pricing_rules`` is a list of
    ``{"plan_id": ..., "discount_percent": ...}`` entries.
    """

    __tablename__ = "space_resources"

    __table_args__ = (
        Index("idx_space_resource_slug", "slug", unique=True),
        Index("idx_space_resource_type_active", "resource_type", "is_active"),
    )

    name: Mapped[str] = mapped_column(String(255))
    slug: Mapped[str] = mapped_column(String(255))
    resource_type: Mapped[str] = mapped_column(String(30))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    capacity: Mapped[int] = mapped_column(default=1)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)

    hourly_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    daily_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    monthly_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    currency: Mapped[str] = mapped_column(String(3))

    buffer_minutes: Mapped[int] = mapped_column(default=0)
    available_from: Mapped[str | None] = mapped_column(String(5), nullable=True)
    available_until: Mapped[str | None] = mapped_column(String(5), nullable=True)
    min_booking_minutes: Mapped[int] = mapped_column(default=30)
    max_booking_minutes: Mapped[int | None] = mapped_column(nullable=True)

    pricing_rules: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    is_active: Mapped[bool] = mapped_column(default=True)
    requires_approval: Mapped[bool] = mapped_column(default=False)
    sort_order: Mapped[int] = mapped_column(default=0)

    bookings: Mapped[list["SpaceBookingModel"]] = relationship(back_populates="resource")

    def rate_for(self, unit: str) -> Decimal | None:
        """The configured rate for ``unit``; weeks never have their own rate."""
        rate = {
            "hour": self.hourly_rate,
            "day": self.daily_rate,
            "month": self.monthly_rate,
        }.get(unit)
        return rate or None

    def discount_percent_for(self, plan_id: UUID | str | None) -> int:
        if plan_id is None:
            return 0
        for rule in self.pricing_rules or ():
            if str(rule.get("plan_id")) == str(plan_id):
                return int(rule.get("discount_percent") or 0)
        return 0

    def __repr__(self) -> str:
        return f"<SpaceResourceModel {self.slug} {self.resource_type}>"


# =============================================================================
# SpaceBookingModel
# =============================================================================


class SpaceBookingModel(StatusTrackedMixin, TrackedBase):
    """ORM model for one reservation of a resource."""

    __tablename__ = "space_bookings"

    __table_args__ = (
        Index("idx_space_booking_code", "booking_code", unique=True),
        Index("idx_space_booking_resource_time", "resource_id", "start_time", "end_time"),
        Index("idx_space_booking_member", "member_id"),
    )

    booking_code: Mapped[str] = mapped_column(String(32))
    resource_id: Mapped[UUID] = mapped_column(ForeignKey("space_resources.id"))
    member_id: Mapped[UUID | None] = mapped_column(nullable=True)
    user_id: Mapped[UUID | None] = mapped_column(nullable=True)

    start_time: Mapped[datetime]
    end_time: Mapped[datetime]
    checked_in_at: Mapped[datetime | None] = mapped_column(nullable=True)
    checked_out_at: Mapped[datetime | None] = mapped_column(nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    unit_price: Mapped[Decimal]
    price_unit: Mapped[str] = mapped_column(String(10))
    quantity: Mapped[int]
    discount_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_price: Mapped[Decimal]
    credits_used: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3))
    payment_status: Mapped[str] = mapped_column(String(20))

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    attendees_count: Mapped[int | None] = mapped_column(nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    resource: Mapped[SpaceResourceModel] = relationship(back_populates="bookings")

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)

    def __repr__(self) -> str:
        return f"<SpaceBookingModel {self.booking_code} {self.status} {self.start_time:%Y-%m-%d %H:%M}>"


# =============================================================================
# BookingCreditModel
# =============================================================================


class BookingCreditModel(TrackedBase):
    """
    Units of one resource type a member may book for free in a period.

    One credit covers one price unit (an hour of meeting room, a day of hot
    desk).  ``period_start`` and ``period_end`` are inclusive.
    """

    __tablename__ = "space_booking_credits"

    __table_args__ = (
        Index("idx_booking_credit_member_type", "member_id", "resource_type", "period_end"),
    )

    member_id: Mapped[UUID]
    resource_type: Mapped[str] = mapped_column(String(30))
    period_start: Mapped[date]
    period_end: Mapped[date]
    allocated_credits: Mapped[Decimal]
    used_credits: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    plan_id: Mapped[UUID | None] = mapped_column(nullable=True)
    subscription_id: Mapped[UUID | None] = mapped_column(nullable=True)

    @property
    def remaining(self) -> Decimal:
        return max(Decimal("0"), self.allocated_credits - self.used_credits)

    def __repr__(self) -> str:
        return f"<BookingCreditModel {self.member_id} {self.resource_type} {self.used_credits}/{self.allocated_credits}>"

"""
Module: hub_modules.membership.orm
Responsibility: SQLAlchemy ORM persistence models for plans, members and
    subscriptions.
Architecture position: Modules > Membership > ORM.  Inherits from
    TrackedBase and StatusTrackedMixin (hub_kernel.db.base).

Invariants enforced:
    - Plan slugs and member codes are unique.
    - Plan.current_members moves only through SubscriptionService, in the
      same transaction as the status change that adds or frees a seat.
    - Subscriptions keep the price and currency they were sold at.

Failure modes:
    - IntegrityError on duplicate slug or member code.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hub_kernel.db.base import StatusTrackedMixin, TrackedBase


# =============================================================================
# PlanModel
# =============================================================================


class PlanModel(TrackedBase):
    """
    ORM model for membership plans.

    ``meeting_hours_included`` is granted as meeting room booking credits
    for each subscription period.
    """

    __tablename__ = "membership_plans"

    __table_args__ = (
        Index("idx_plan_slug", "slug", unique=True),
        Index("idx_plan_active_sort", "is_active", "sort_order"),
    )

    name: Mapped[str] = mapped_column(String(255))
    slug: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    plan_type: Mapped[str] = mapped_column(String(20))
    duration_days: Mapped[int]
    price: Mapped[Decimal]
    currency: Mapped[str] = mapped_column(String(3))

    wifi_access: Mapped[bool] = mapped_column(default=True)
    meeting_room_access: Mapped[bool] = mapped_column(default=False)
    meeting_hours_included: Mapped[int] = mapped_column(default=0)
    private_desk: Mapped[bool] = mapped_column(default=False)
    locker_access: Mapped[bool] = mapped_column(default=False)
    guest_passes: Mapped[int] = mapped_column(default=0)

    is_active: Mapped[bool] = mapped_column(default=True)
    max_members: Mapped[int | None] = mapped_column(nullable=True)
    current_members: Mapped[int] = mapped_column(default=0)
    sort_order: Mapped[int] = mapped_column(default=0)
    is_featured: Mapped[bool] = mapped_column(default=False)

    @property
    def has_capacity(self) -> bool:
        return self.max_members is None or self.current_members < self.max_members

    def __repr__(self) -> str:
        return f"<PlanModel {self.slug} {self.price} {self.currency}>"


# =============================================================================
# MemberModel
# =============================================================================


class MemberModel(TrackedBase):
    """
    ORM model for members.

    Team members of a corporate account point at it through
    ``parent_member_id``.
    """

    __tablename__ = "membership_members"

    __table_args__ = (
        Index("idx_member_code", "member_code", unique=True),
        Index("idx_member_type_active", "member_type", "is_active"),
        Index("idx_member_user", "user_id"),
    )

    user_id: Mapped[UUID]
    member_code: Mapped[str] = mapped_column(String(32))
    member_type: Mapped[str] = mapped_column(String(20))
    parent_member_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("membership_members.id"), nullable=True,
    )

    company_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    company_vat_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    company_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    interests: Mapped[list[str]] = mapped_column(JSON, default=list)
    linkedin_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    website_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    workspace_preferences: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    notification_preferences: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    referred_by_member_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("membership_members.id"), nullable=True,
    )
    referral_count: Mapped[int] = mapped_column(default=0)

    is_active: Mapped[bool] = mapped_column(default=True)
    deactivation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    deactivated_at: Mapped[datetime | None] = mapped_column(nullable=True)

    subscriptions: Mapped[list["SubscriptionModel"]] = relationship(back_populates="member")

    @property
    def is_corporate(self) -> bool:
        return self.member_type == "corporate"

    def __repr__(self) -> str:
        return f"<MemberModel {self.member_code} {self.member_type}>"


# =============================================================================
# SubscriptionModel
# =============================================================================


class SubscriptionModel(StatusTrackedMixin, TrackedBase):
    """ORM model for one member's subscription to one plan."""

    __tablename__ = "membership_subscriptions"

    __table_args__ = (
        Index("idx_subscription_member_status", "member_id", "status"),
        Index("idx_subscription_status_end", "status", "end_date"),
    )

    member_id: Mapped[UUID] = mapped_column(ForeignKey("membership_members.id"))
    plan_id: Mapped[UUID] = mapped_column(ForeignKey("membership_plans.id"))
    start_date: Mapped[date]
    end_date: Mapped[date]
    next_billing_date: Mapped[date | None] = mapped_column(nullable=True)
    auto_renew: Mapped[bool] = mapped_column(default=False)
    grace_period_days: Mapped[int] = mapped_column(default=0)
    price_at_subscription: Mapped[Decimal]
    currency: Mapped[str] = mapped_column(String(3))

    last_payment_id: Mapped[UUID | None] = mapped_column(nullable=True)
    last_payment_at: Mapped[datetime | None] = mapped_column(nullable=True)
    activated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_by_id: Mapped[UUID | None] = mapped_column(nullable=True)

    member: Mapped[MemberModel] = relationship(back_populates="subscriptions")
    plan: Mapped[PlanModel] = relationship()

    @property
    def grace_period_end(self) -> date:
        return self.end_date + timedelta(days=self.grace_period_days)

    def days_remaining(self, today: date) -> int:
        return max(0, (self.end_date - today).days)

    def __repr__(self) -> str:
        return f"<SubscriptionModel {self.member_id} {self.status} until {self.end_date}>"

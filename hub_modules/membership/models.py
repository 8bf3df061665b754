"""
Membership Domain Models.

Plans a member can subscribe to, members (individuals and corporate
accounts with their team), and the subscription lifecycle.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from uuid import UUID

from hub_kernel.logging_config import get_logger

logger = get_logger("modules.membership.models")


class MemberType(str, Enum):
    INDIVIDUAL = "individual"
    CORPORATE = "corporate"


class PlanType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"

    @property
    def duration_days(self) -> int:
        return {
            PlanType.DAILY: 1,
            PlanType.WEEKLY: 7,
            PlanType.MONTHLY: 30,
            PlanType.QUARTERLY: 90,
            PlanType.YEARLY: 365,
        }[self]


class SubscriptionStatus(str, Enum):
    """Subscription states."""
    PENDING = "pending"
    ACTIVE = "active"
    EXPIRING = "expiring"
    GRACE_PERIOD = "grace_period"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    SUSPENDED = "suspended"

    @property
    def is_active(self) -> bool:
        """The member still has access."""
        return self in (
            SubscriptionStatus.ACTIVE,
            SubscriptionStatus.EXPIRING,
            SubscriptionStatus.GRACE_PERIOD,
        )

    @property
    def can_renew(self) -> bool:
        return self.is_active or self is SubscriptionStatus.EXPIRED


ACTIVE_SUBSCRIPTION_STATUSES = tuple(s.value for s in SubscriptionStatus if s.is_active)

# Statuses the expiry sweep looks at
RUNNING_SUBSCRIPTION_STATUSES = (
    SubscriptionStatus.ACTIVE.value,
    SubscriptionStatus.EXPIRING.value,
)


@dataclass(frozen=True)
class SubscriptionSummary:
    """Where a member stands today."""
    member_id: UUID
    has_active_subscription: bool
    subscription_id: UUID | None
    status: SubscriptionStatus | None
    end_date: date | None
    days_remaining: int | None
    is_expiring_soon: bool
    is_in_grace_period: bool
    grace_period_days_remaining: int | None
    total_subscriptions: int
    auto_renew: bool


@dataclass(frozen=True)
class MemberStats:
    member_id: UUID
    total_subscriptions: int
    active_subscription_id: UUID | None
    referral_count: int
    team_size: int
    is_active: bool

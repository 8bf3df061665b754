"""
Membership Module (``hub_modules.membership``).

Plans, members (individual and corporate with their team), referrals and
subscriptions with their expiry sweeps.

Subscription statuses change only through ``SUBSCRIPTION_WORKFLOW``; a
subscription holds a seat on its plan while it is active, expiring, in
its grace period or suspended.
"""

from hub_modules.membership.config import MembershipConfig
from hub_modules.membership.models import (
    MemberStats,
    MemberType,
    PlanType,
    SubscriptionStatus,
    SubscriptionSummary,
)
from hub_modules.membership.service import MembershipService
from hub_modules.membership.subscriptions import SubscriptionService
from hub_modules.membership.workflows import SUBSCRIPTION_WORKFLOW

__all__ = [
    "SUBSCRIPTION_WORKFLOW",
    "MemberStats",
    "MemberType",
    "MembershipConfig",
    "MembershipService",
    "PlanType",
    "SubscriptionService",
    "SubscriptionStatus",
    "SubscriptionSummary",
]

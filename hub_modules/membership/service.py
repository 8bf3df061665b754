"""
Membership Service (``hub_modules.membership.service``).

Plans, member profiles, corporate teams and referrals.  Subscriptions live
in ``hub_modules.membership.subscriptions``; deactivating a member cancels
its running subscription through that service inside the same
transaction.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Mapping
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from hub_kernel.domain.clock import Clock, SystemClock
from hub_kernel.domain.codes import latest_code_order, next_sequence_code
from hub_kernel.domain.events import DomainEvent
from hub_kernel.exceptions import (
    MemberNotFoundError,
    NotCorporateMemberError,
    PlanNotFoundError,
)
from hub_kernel.logging_config import get_logger
from hub_kernel.services.event_dispatcher import DomainEventDispatcher
from hub_kernel.services.transaction import unit_of_work
from hub_modules.membership.config import MembershipConfig
from hub_modules.membership.models import MemberStats, MemberType, PlanType
from hub_modules.membership.orm import MemberModel, PlanModel, SubscriptionModel
from hub_modules.membership.subscriptions import SubscriptionService

logger = get_logger("modules.membership.service")

# Profile columns a caller may set directly.
_PROFILE_FIELDS = frozenset({
    "company_name",
    "company_vat_number",
    "company_address",
    "bio",
    "interests",
    "linkedin_url",
    "website_url",
    "workspace_preferences",
})


class MembershipService:
    """Plans and member profiles."""

    def __init__(
        self,
        session: Session,
        dispatcher: DomainEventDispatcher | None = None,
        clock: Clock | None = None,
        config: MembershipConfig | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._events = dispatcher or DomainEventDispatcher()
        self._clock = clock or SystemClock()
        self._config = config or MembershipConfig()
        self._auto_commit = auto_commit

    def get(self, member_id: UUID) -> MemberModel:
        member = self._session.get(MemberModel, member_id)
        if member is None:
            raise MemberNotFoundError(member_id)
        return member

    def get_plan(self, plan_id: UUID) -> PlanModel:
        plan = self._session.get(PlanModel, plan_id)
        if plan is None:
            raise PlanNotFoundError(plan_id)
        return plan

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    def create_plan(
        self,
        name: str,
        slug: str,
        plan_type: PlanType,
        price: Decimal,
        actor_id: UUID,
        *,
        duration_days: int | None = None,
        currency: str | None = None,
        max_members: int | None = None,
        meeting_hours_included: int = 0,
        meeting_room_access: bool = False,
        private_desk: bool = False,
        locker_access: bool = False,
        guest_passes: int = 0,
        description: str | None = None,
        sort_order: int = 0,
        is_featured: bool = False,
    ) -> PlanModel:
        """``duration_days`` defaults to the plan type's length (monthly is 30 days)."""
        days = plan_type.duration_days if duration_days is None else duration_days
        if days < 1:
            raise ValueError("duration_days must be positive")
        if price < 0:
            raise ValueError("price cannot be negative")
        if max_members is not None and max_members < 1:
            raise ValueError("max_members must be at least 1")
        if meeting_hours_included < 0 or guest_passes < 0:
            raise ValueError("included hours and guest passes cannot be negative")

        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="create_plan",
        ):
            plan = PlanModel(
                name=name,
                slug=slug,
                description=description,
                plan_type=plan_type.value,
                duration_days=days,
                price=price,
                currency=currency or self._config.default_currency,
                meeting_room_access=meeting_room_access or meeting_hours_included > 0,
                meeting_hours_included=meeting_hours_included,
                private_desk=private_desk,
                locker_access=locker_access,
                guest_passes=guest_passes,
                is_active=True,
                max_members=max_members,
                current_members=0,
                sort_order=sort_order,
                is_featured=is_featured,
                created_by_id=actor_id,
            )
            self._session.add(plan)
            self._session.flush()
            logger.info(
                "membership_plan_created",
                extra={"plan_id": str(plan.id), "slug": slug, "duration_days": days},
            )
        return plan

    def set_plan_active(self, plan_id: UUID, active: bool, actor_id: UUID) -> PlanModel:
        """Inactive plans take no new subscriptions; existing ones run on."""
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="set_plan_active",
        ):
            plan = self.get_plan(plan_id)
            plan.is_active = active
            plan.updated_by_id = actor_id
            self._session.flush()
        return plan

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def create_member(
        self,
        user_id: UUID,
        actor_id: UUID,
        *,
        member_type: MemberType = MemberType.INDIVIDUAL,
        parent_member_id: UUID | None = None,
        **profile: Any,
    ) -> MemberModel:
        """
        Register a member with the next ``MEM-YYYY-NNNN`` code.

        ``profile`` takes the optional profile columns (``company_name``,
        ``bio``, ``interests`` ...).  Publishes ``MemberCreated``.
        """
        unknown = set(profile) - _PROFILE_FIELDS
        if unknown:
            raise ValueError(f"unknown member fields: {sorted(unknown)}")

        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="create_member",
        ):
            member = self._new_member(user_id, actor_id, member_type, parent_member_id, profile)
        return member

    def create_corporate_member(
        self,
        user_id: UUID,
        company_name: str,
        actor_id: UUID,
        team_user_ids: Iterable[UUID] = (),
        **profile: Any,
    ) -> MemberModel:
        """A corporate account and one individual member per team user, all or nothing."""
        if not company_name:
            raise ValueError("company_name is required for corporate members")
        unknown = set(profile) - _PROFILE_FIELDS
        if unknown:
            raise ValueError(f"unknown member fields: {sorted(unknown)}")

        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="create_corporate_member",
        ):
            corporate = self._new_member(
                user_id, actor_id, MemberType.CORPORATE, None,
                {**profile, "company_name": company_name},
            )
            team = [
                self._new_member(team_user, actor_id, MemberType.INDIVIDUAL, corporate.id, {})
                for team_user in team_user_ids
            ]
            logger.info(
                "corporate_member_created",
                extra={"member_id": str(corporate.id), "team_size": len(team)},
            )
        return corporate

    def add_team_member(self, corporate_id: UUID, user_id: UUID, actor_id: UUID) -> MemberModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="add_team_member",
        ):
            corporate = self.get(corporate_id)
            if not corporate.is_corporate:
                raise NotCorporateMemberError(corporate.id)
            member = self._new_member(user_id, actor_id, MemberType.INDIVIDUAL, corporate.id, {})
        return member

    def team_members(self, corporate_id: UUID) -> list[MemberModel]:
        return list(self._session.execute(
            select(MemberModel)
            .where(MemberModel.parent_member_id == corporate_id)
            .order_by(MemberModel.member_code)
        ).scalars())

    def update_profile(self, member_id: UUID, actor_id: UUID, **changes: Any) -> MemberModel:
        unknown = set(changes) - _PROFILE_FIELDS
        if unknown:
            raise ValueError(f"unknown member fields: {sorted(unknown)}")
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="update_member_profile",
        ):
            member = self.get(member_id)
            for name, value in changes.items():
                setattr(member, name, value)
            member.updated_by_id = actor_id
            self._session.flush()
            logger.info(
                "member_profile_updated",
                extra={"member_id": str(member.id), "fields": sorted(changes)},
            )
        return member

    def update_preferences(
        self, member_id: UUID, preferences: Mapping[str, Any], actor_id: UUID,
    ) -> MemberModel:
        """Merge into the stored notification preferences."""
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="update_member_preferences",
        ):
            member = self.get(member_id)
            # Reassign so the JSON column is marked dirty.
            member.notification_preferences = {**(member.notification_preferences or {}), **preferences}
            member.updated_by_id = actor_id
            self._session.flush()
        return member

    def deactivate_member(self, member_id: UUID, reason: str, actor_id: UUID) -> MemberModel:
        """Deactivate and cancel the running subscription, in one transaction."""
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="deactivate_member",
        ):
            member = self.get(member_id)
            member.is_active = False
            member.deactivation_reason = reason
            member.deactivated_at = self._clock.now_utc()
            member.updated_by_id = actor_id
            self._session.flush()

            subscriptions = SubscriptionService(
                self._session, self._events, self._clock, self._config, auto_commit=False,
            )
            current = subscriptions.active_subscription(member.id)
            if current is not None:
                subscriptions.cancel(current.id, reason, actor_id)
            self._events.collect((self._event("MemberDeactivated", member, {"reason": reason}),))
            logger.info(
                "member_deactivated",
                extra={
                    "member_id": str(member.id),
                    "cancelled_subscription_id": str(current.id) if current else None,
                },
            )
        return member

    def reactivate_member(self, member_id: UUID, actor_id: UUID) -> MemberModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="reactivate_member",
        ):
            member = self.get(member_id)
            member.is_active = True
            member.deactivation_reason = None
            member.deactivated_at = None
            member.updated_by_id = actor_id
            self._session.flush()
            self._events.collect((self._event("MemberReactivated", member, {}),))
        return member

    def track_referral(self, referred_id: UUID, referrer_id: UUID, actor_id: UUID) -> MemberModel:
        """Record who referred a member; a member is referred at most once."""
        if referred_id == referrer_id:
            raise ValueError("a member cannot refer itself")
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="track_referral",
        ):
            referred = self.get(referred_id)
            referrer = self._lock_member(referrer_id)
            if referred.referred_by_member_id is not None:
                raise ValueError(f"member {referred.member_code} already has a referrer")
            referred.referred_by_member_id = referrer.id
            referred.updated_by_id = actor_id
            referrer.referral_count += 1
            self._session.flush()
            logger.info(
                "member_referral_tracked",
                extra={"member_id": str(referred.id), "referrer_id": str(referrer.id)},
            )
        return referrer

    def member_stats(self, member_id: UUID) -> MemberStats:
        member = self.get(member_id)
        total = self._session.execute(
            select(func.count()).select_from(SubscriptionModel).where(SubscriptionModel.member_id == member.id)
        ).scalar_one()
        team_size = 0
        if member.is_corporate:
            team_size = self._session.execute(
                select(func.count()).select_from(MemberModel).where(MemberModel.parent_member_id == member.id)
            ).scalar_one()
        current = SubscriptionService(
            self._session, self._events, self._clock, self._config, auto_commit=False,
        ).active_subscription(member.id)
        return MemberStats(
            member_id=member.id,
            total_subscriptions=int(total),
            active_subscription_id=current.id if current else None,
            referral_count=member.referral_count,
            team_size=int(team_size),
            is_active=member.is_active,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _new_member(
        self,
        user_id: UUID,
        actor_id: UUID,
        member_type: MemberType,
        parent_member_id: UUID | None,
        profile: Mapping[str, Any],
    ) -> MemberModel:
        if parent_member_id is not None:
            parent = self.get(parent_member_id)
            if not parent.is_corporate:
                raise NotCorporateMemberError(parent.id)
        fields = {"interests": [], "workspace_preferences": {}, **profile}
        member = MemberModel(
            user_id=user_id,
            member_code=self._next_code(self._clock.now_utc()),
            member_type=member_type.value,
            parent_member_id=parent_member_id,
            notification_preferences={},
            referral_count=0,
            is_active=True,
            created_by_id=actor_id,
            **fields,
        )
        self._session.add(member)
        self._session.flush()
        self._events.collect((
            self._event("MemberCreated", member, {
                "member_code": member.member_code,
                "member_type": member.member_type,
                "user_id": str(user_id),
                "parent_member_id": str(parent_member_id) if parent_member_id else None,
            }),
        ))
        logger.info(
            "member_created",
            extra={"member_id": str(member.id), "member_code": member.member_code},
        )
        return member

    def _lock_member(self, member_id: UUID) -> MemberModel:
        member = self._session.execute(
            select(MemberModel)
            .where(MemberModel.id == member_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if member is None:
            raise MemberNotFoundError(member_id)
        return member

    def _next_code(self, moment: datetime) -> str:
        prefix = f"{self._config.member_code_prefix}-{moment.year}-"
        last = self._session.execute(
            select(MemberModel.member_code)
            .where(MemberModel.member_code.startswith(prefix))
            .order_by(*latest_code_order(MemberModel.member_code))
            .limit(1)
        ).scalar_one_or_none()
        return next_sequence_code(self._config.member_code_prefix, moment.year, last)

    def _event(self, name: str, member: MemberModel, payload: dict[str, Any]) -> DomainEvent:
        return DomainEvent(
            name=name,
            entity_type="member",
            entity_id=member.id,
            occurred_at=self._clock.now_utc(),
            payload=payload,
        )

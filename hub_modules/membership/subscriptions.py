"""
Subscription Service (``hub_modules.membership.subscriptions``).

Responsibility
--------------
A member's subscription to a plan: creation, activation, renewal,
cancellation, suspension and the daily expiry sweeps (expiring, expired,
end of grace period).

Architecture
------------
Layer: **Modules**.  Every status change is a ``SUBSCRIPTION_WORKFLOW``
transition through the kernel ``StateMachine``.  Renewing a subscription
that is still active only moves its end date, so that case emits
``SubscriptionRenewed`` itself.

Invariants
----------
- A subscription holds a seat on its plan while it is active, expiring, in
  its grace period or suspended.  Taking a seat locks the plan row and
  checks ``max_members`` first.
- Cancelled subscriptions never change again.
- Each sweep commits one subscription at a time; a domain error on one
  subscription is logged and the sweep moves on.

Failure Modes
-------------
- ``SubscriptionNotFoundError`` / ``MemberNotFoundError`` / ``PlanNotFoundError``.
- ``MemberInactiveError`` when subscribing a deactivated member.
- ``PlanUnavailableError`` for inactive or full plans.
- ``SubscriptionNotRenewableError`` when renewing a pending, suspended or
  cancelled subscription.
- ``InvalidTransitionError`` for steps the graph does not allow.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Callable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from hub_kernel.domain.actors import SYSTEM_ACTOR_ID
from hub_kernel.domain.clock import Clock, SystemClock
from hub_kernel.domain.events import DomainEvent
from hub_kernel.exceptions import (
    HubError,
    MemberInactiveError,
    MemberNotFoundError,
    PlanNotFoundError,
    PlanUnavailableError,
    SubscriptionNotFoundError,
    SubscriptionNotRenewableError,
)
from hub_kernel.logging_config import get_logger
from hub_kernel.services.event_dispatcher import DomainEventDispatcher
from hub_kernel.services.state_machine import StateMachine
from hub_kernel.services.transaction import unit_of_work
from hub_modules.membership.config import MembershipConfig
from hub_modules.membership.models import (
    ACTIVE_SUBSCRIPTION_STATUSES,
    RUNNING_SUBSCRIPTION_STATUSES,
    SubscriptionStatus,
    SubscriptionSummary,
)
from hub_modules.membership.orm import MemberModel, PlanModel, SubscriptionModel
from hub_modules.membership.workflows import SUBSCRIPTION_WORKFLOW

logger = get_logger("modules.membership.subscriptions")

# Statuses that occupy a seat on the plan
_SEATED = ACTIVE_SUBSCRIPTION_STATUSES + (SubscriptionStatus.SUSPENDED.value,)


class SubscriptionService:
    """Subscription lifecycle and expiry sweeps."""

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
        self._machine = StateMachine(session, SUBSCRIPTION_WORKFLOW, self._clock)

    def get(self, subscription_id: UUID) -> SubscriptionModel:
        subscription = self._session.get(SubscriptionModel, subscription_id)
        if subscription is None:
            raise SubscriptionNotFoundError(subscription_id)
        return subscription

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_subscription(
        self,
        member_id: UUID,
        plan_id: UUID,
        actor_id: UUID,
        *,
        auto_renew: bool = False,
        grace_period_days: int | None = None,
    ) -> SubscriptionModel:
        """A pending subscription from today for the plan's duration, at today's price."""
        grace = self._config.default_grace_period_days if grace_period_days is None else grace_period_days
        if grace < 0:
            raise ValueError("grace_period_days cannot be negative")
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="create_subscription",
        ):
            member = self._session.get(MemberModel, member_id)
            if member is None:
                raise MemberNotFoundError(member_id)
            if not member.is_active:
                raise MemberInactiveError(member.id)
            plan = self._session.get(PlanModel, plan_id)
            if plan is None:
                raise PlanNotFoundError(plan_id)
            if not plan.is_active:
                raise PlanUnavailableError(plan.id, "inactive")
            if not plan.has_capacity:
                raise PlanUnavailableError(plan.id, "full")

            start = self._today()
            end = start + timedelta(days=plan.duration_days)
            subscription = SubscriptionModel(
                member_id=member.id,
                plan_id=plan.id,
                start_date=start,
                end_date=end,
                next_billing_date=end if auto_renew else None,
                auto_renew=auto_renew,
                grace_period_days=grace,
                price_at_subscription=plan.price,
                currency=plan.currency,
                created_by_id=actor_id,
            )
            outcome = self._machine.initialize(
                subscription, actor_id, notes="Subscription created",
                payload={"member_id": str(member.id), "plan_id": str(plan.id)},
            )
            self._events.collect(outcome.events)
            logger.info(
                "subscription_created",
                extra={
                    "subscription_id": str(subscription.id),
                    "member_id": str(member.id),
                    "plan_id": str(plan.id),
                    "end_date": end,
                },
            )
        return subscription

    def activate(
        self,
        subscription_id: UUID,
        actor_id: UUID,
        payment_id: UUID | None = None,
    ) -> SubscriptionModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="activate_subscription",
        ):
            subscription = self.get(subscription_id)
            now = self._clock.now_utc()
            self._apply(
                subscription, SubscriptionStatus.ACTIVE, actor_id,
                "Subscription activated after payment" if payment_id else "Subscription activated",
            )
            subscription.activated_at = now
            if payment_id is not None:
                subscription.last_payment_id = payment_id
                subscription.last_payment_at = now
            self._session.flush()
        return subscription

    def renew(
        self,
        subscription_id: UUID,
        actor_id: UUID,
        payment_id: UUID | None = None,
    ) -> SubscriptionModel:
        """
        Extend by one plan period and make the subscription active.

        The new period runs from the current end date, or from today when
        that is already past.
        """
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="renew_subscription",
        ):
            subscription = self.get(subscription_id)
            if not SubscriptionStatus(subscription.status).can_renew:
                raise SubscriptionNotRenewableError(subscription.id, subscription.status)

            previous_end = subscription.end_date
            period_start = max(previous_end, self._today())
            subscription.end_date = period_start + timedelta(days=subscription.plan.duration_days)
            subscription.next_billing_date = subscription.end_date if subscription.auto_renew else None
            if payment_id is not None:
                subscription.last_payment_id = payment_id
                subscription.last_payment_at = self._clock.now_utc()

            notes = f"Subscription renewed until {subscription.end_date.isoformat()}"
            renewal = {
                "period_start": period_start.isoformat(),
                "previous_end_date": previous_end.isoformat(),
            }
            if subscription.status == SubscriptionStatus.ACTIVE.value:
                subscription.updated_by_id = actor_id
                self._session.flush()
                self._events.collect((
                    self._event("SubscriptionRenewed", subscription, {
                        "from_status": SubscriptionStatus.ACTIVE.value,
                        "to_status": SubscriptionStatus.ACTIVE.value,
                        **self._payload(subscription),
                        **renewal,
                    }),
                ))
            else:
                self._apply(subscription, SubscriptionStatus.ACTIVE, actor_id, notes, renewal)
            logger.info(
                "subscription_renewed",
                extra={
                    "subscription_id": str(subscription.id),
                    "previous_end": previous_end,
                    "end_date": subscription.end_date,
                },
            )
        return subscription

    def cancel(self, subscription_id: UUID, reason: str, actor_id: UUID) -> SubscriptionModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="cancel_subscription",
        ):
            subscription = self.get(subscription_id)
            self._cancel(subscription, reason, actor_id)
        return subscription

    def suspend(self, subscription_id: UUID, reason: str, actor_id: UUID) -> SubscriptionModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="suspend_subscription",
        ):
            subscription = self.get(subscription_id)
            self._apply(subscription, SubscriptionStatus.SUSPENDED, actor_id, reason, {"reason": reason})
            subscription.auto_renew = False
            subscription.next_billing_date = None
            self._session.flush()
        return subscription

    def reinstate(self, subscription_id: UUID, actor_id: UUID) -> SubscriptionModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="reinstate_subscription",
        ):
            subscription = self.get(subscription_id)
            self._apply(subscription, SubscriptionStatus.ACTIVE, actor_id, "Subscription reinstated")
        return subscription

    def mark_expiring(
        self, subscription_id: UUID, actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> SubscriptionModel:
        """Flag an active subscription as ending soon; anything else is returned unchanged."""
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="mark_subscription_expiring",
        ):
            subscription = self.get(subscription_id)
            if subscription.status == SubscriptionStatus.ACTIVE.value:
                days = subscription.days_remaining(self._today())
                self._apply(
                    subscription, SubscriptionStatus.EXPIRING, actor_id,
                    f"Subscription expiring in {days} days", {"days_remaining": days},
                )
        return subscription

    def mark_expired(
        self, subscription_id: UUID, actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> SubscriptionModel:
        """Expire, or start the grace period when the subscription has one."""
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="mark_subscription_expired",
        ):
            subscription = self.get(subscription_id)
            if subscription.grace_period_days > 0:
                self._apply(
                    subscription, SubscriptionStatus.GRACE_PERIOD, actor_id,
                    f"Subscription entered grace period ({subscription.grace_period_days} days)",
                    {"grace_period_end": subscription.grace_period_end.isoformat()},
                )
            else:
                self._apply(subscription, SubscriptionStatus.EXPIRED, actor_id, "Subscription expired")
        return subscription

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    def process_expiring(self, days: int | None = None, as_of: date | None = None) -> int:
        """Mark active subscriptions ending within ``days`` as expiring."""
        today = as_of or self._today()
        horizon = today + timedelta(days=days or self._config.expiring_notice_days)
        ids = self._session.execute(
            select(SubscriptionModel.id).where(
                SubscriptionModel.status == SubscriptionStatus.ACTIVE.value,
                SubscriptionModel.end_date > today,
                SubscriptionModel.end_date <= horizon,
            )
        ).scalars().all()
        return self._sweep("expiring", ids, self.mark_expiring)

    def process_expired(self, as_of: date | None = None) -> int:
        """Expire (or start the grace period of) running subscriptions past their end date."""
        today = as_of or self._today()
        ids = self._session.execute(
            select(SubscriptionModel.id).where(
                SubscriptionModel.status.in_(RUNNING_SUBSCRIPTION_STATUSES),
                SubscriptionModel.end_date < today,
            )
        ).scalars().all()
        return self._sweep("expired", ids, self.mark_expired)

    def process_grace_period_expiration(self, as_of: date | None = None) -> int:
        """Expire subscriptions whose grace period has run out."""
        today = as_of or self._today()
        in_grace = self._session.execute(
            select(SubscriptionModel).where(
                SubscriptionModel.status == SubscriptionStatus.GRACE_PERIOD.value,
            )
        ).scalars().all()
        ids = [s.id for s in in_grace if s.grace_period_end < today]

        def expire(subscription_id: UUID) -> SubscriptionModel:
            with unit_of_work(
                self._session, self._events,
                auto_commit=self._auto_commit, operation="end_subscription_grace_period",
            ):
                subscription = self.get(subscription_id)
                self._apply(subscription, SubscriptionStatus.EXPIRED, SYSTEM_ACTOR_ID, "Grace period ended")
            return subscription

        return self._sweep("grace_period_ended", ids, expire)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def active_subscription(self, member_id: UUID) -> SubscriptionModel | None:
        """The member's newest active, expiring or grace-period subscription."""
        return self._session.execute(
            select(SubscriptionModel)
            .where(
                SubscriptionModel.member_id == member_id,
                SubscriptionModel.status.in_(ACTIVE_SUBSCRIPTION_STATUSES),
            )
            .order_by(SubscriptionModel.end_date.desc())
            .limit(1)
        ).scalar_one_or_none()

    def subscription_summary(self, member_id: UUID) -> SubscriptionSummary:
        if self._session.get(MemberModel, member_id) is None:
            raise MemberNotFoundError(member_id)
        today = self._today()
        current = self.active_subscription(member_id)
        total = self._session.execute(
            select(func.count()).select_from(SubscriptionModel).where(SubscriptionModel.member_id == member_id)
        ).scalar_one()
        if current is None:
            return SubscriptionSummary(
                member_id=member_id,
                has_active_subscription=False,
                subscription_id=None,
                status=None,
                end_date=None,
                days_remaining=None,
                is_expiring_soon=False,
                is_in_grace_period=False,
                grace_period_days_remaining=None,
                total_subscriptions=int(total),
                auto_renew=False,
            )
        status = SubscriptionStatus(current.status)
        days = current.days_remaining(today)
        in_grace = status is SubscriptionStatus.GRACE_PERIOD
        return SubscriptionSummary(
            member_id=member_id,
            has_active_subscription=True,
            subscription_id=current.id,
            status=status,
            end_date=current.end_date,
            days_remaining=days,
            is_expiring_soon=days <= self._config.expiring_notice_days,
            is_in_grace_period=in_grace,
            grace_period_days_remaining=(
                max(0, (current.grace_period_end - today).days) if in_grace else None
            ),
            total_subscriptions=int(total),
            auto_renew=current.auto_renew,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _cancel(self, subscription: SubscriptionModel, reason: str, actor_id: UUID) -> None:
        """Cancel inside the caller's transaction."""
        self._apply(subscription, SubscriptionStatus.CANCELLED, actor_id, reason, {"reason": reason})
        subscription.cancelled_at = self._clock.now_utc()
        subscription.cancellation_reason = reason
        subscription.cancelled_by_id = actor_id
        subscription.auto_renew = False
        subscription.next_billing_date = None
        self._session.flush()

    def _sweep(
        self,
        name: str,
        subscription_ids: list[UUID],
        step: Callable[[UUID], SubscriptionModel],
    ) -> int:
        processed = 0
        for subscription_id in subscription_ids:
            try:
                step(subscription_id)
            except HubError as exc:
                logger.warning(
                    "subscription_sweep_item_failed",
                    extra={
                        "sweep": name,
                        "subscription_id": str(subscription_id),
                        "error_code": exc.code,
                    },
                    exc_info=True,
                )
                continue
            processed += 1
        logger.info("subscription_sweep_finished", extra={"sweep": name, "count": processed})
        return processed

    def _apply(
        self,
        subscription: SubscriptionModel,
        target: SubscriptionStatus,
        actor_id: UUID,
        notes: str,
        extra_payload: dict[str, Any] | None = None,
    ) -> None:
        """Check the edge, move the plan seat, then transition."""
        if not self._machine.can_transition(subscription.status, target):
            # Let the machine raise and log the rejection.
            self._machine.transition(subscription, target, actor_id, notes)
        was_seated = subscription.status in _SEATED
        seated = target.value in _SEATED
        if seated and not was_seated:
            self._take_seat(subscription.plan_id)
        elif was_seated and not seated:
            self._release_seat(subscription.plan_id)

        payload = self._payload(subscription)
        if extra_payload:
            payload.update(extra_payload)
        outcome = self._machine.transition(subscription, target, actor_id, notes, payload=payload)
        self._events.collect(outcome.events)

    def _take_seat(self, plan_id: UUID) -> None:
        plan = self._lock_plan(plan_id)
        if not plan.has_capacity:
            logger.warning(
                "subscription_rejected_plan_full",
                extra={"plan_id": str(plan.id), "max_members": plan.max_members},
            )
            raise PlanUnavailableError(plan.id, "full")
        plan.current_members += 1
        self._session.flush()

    def _release_seat(self, plan_id: UUID) -> None:
        plan = self._lock_plan(plan_id)
        plan.current_members = max(0, plan.current_members - 1)
        self._session.flush()

    def _lock_plan(self, plan_id: UUID) -> PlanModel:
        plan = self._session.execute(
            select(PlanModel)
            .where(PlanModel.id == plan_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if plan is None:
            raise PlanNotFoundError(plan_id)
        return plan

    def _payload(self, subscription: SubscriptionModel) -> dict[str, Any]:
        plan = self._session.get(PlanModel, subscription.plan_id)
        return {
            "member_id": str(subscription.member_id),
            "plan_id": str(subscription.plan_id),
            "start_date": subscription.start_date.isoformat(),
            "end_date": subscription.end_date.isoformat(),
            "meeting_hours_included": plan.meeting_hours_included if plan else 0,
        }

    def _event(self, name: str, subscription: SubscriptionModel, payload: dict[str, Any]) -> DomainEvent:
        return DomainEvent(
            name=name,
            entity_type=SUBSCRIPTION_WORKFLOW.entity_type,
            entity_id=subscription.id,
            occurred_at=self._clock.now_utc(),
            payload=payload,
        )

    def _today(self) -> date:
        return self._clock.now_utc().date()

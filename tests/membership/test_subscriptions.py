"""
Tests for SubscriptionService: the subscription lifecycle and its status
history, renewal, plan seats, grace periods and the daily sweeps.
"""

from datetime import UTC, date, datetime
from uuid import uuid4

import pytest

from hub_kernel.exceptions import (
    InvalidTransitionError,
    MemberInactiveError,
    PlanUnavailableError,
    SubscriptionNotFoundError,
    SubscriptionNotRenewableError,
)
from hub_kernel.selectors.status_history_selector import StatusHistorySelector
from hub_modules.membership import SubscriptionStatus

# The clock starts on 2025-03-03; a 30 day plan bought then ends on 2025-04-02.
FIRST_END = date(2025, 4, 2)


@pytest.fixture
def plan(make_plan):
    return make_plan()


@pytest.fixture
def member(make_member):
    return make_member()


@pytest.fixture
def subscribe(subscription_service, plan, member, test_actor_id):
    def _subscribe(member_id=None, plan_id=None, activate: bool = True, **kwargs):
        subscription = subscription_service.create_subscription(
            member_id or member.id, plan_id or plan.id, test_actor_id, **kwargs,
        )
        if activate:
            subscription_service.activate(subscription.id, test_actor_id)
        return subscription

    return _subscribe


def history(session, subscription):
    entries = StatusHistorySelector(session).entries_for("subscription", subscription.id)
    return [(e.from_status, e.to_status) for e in entries]


class TestLifecycle:

    def test_create_pending(self, session, subscribe, plan, dispatcher):
        subscription = subscribe(activate=False)
        assert subscription.status == SubscriptionStatus.PENDING.value
        assert subscription.start_date == date(2025, 3, 3)
        assert subscription.end_date == FIRST_END
        assert subscription.price_at_subscription == plan.price
        assert history(session, subscription) == [(None, "pending")]
        assert "SubscriptionCreated" in dispatcher.published_names()
        assert plan.current_members == 0

    def test_activate_takes_a_seat(self, session, subscribe, plan, dispatcher):
        subscription = subscribe()
        assert subscription.status == SubscriptionStatus.ACTIVE.value
        assert subscription.activated_at is not None
        assert plan.current_members == 1
        assert history(session, subscription) == [(None, "pending"), ("pending", "active")]
        activated = [e for e in dispatcher.published if e.name == "SubscriptionActivated"]
        assert activated[-1].payload["meeting_hours_included"] == 10
        assert activated[-1].payload["end_date"] == FIRST_END.isoformat()

    def test_activate_records_payment(self, subscription_service, subscribe, test_actor_id):
        payment_id = uuid4()
        subscription = subscribe(activate=False)
        subscription_service.activate(subscription.id, test_actor_id, payment_id=payment_id)
        assert subscription.last_payment_id == payment_id
        assert subscription.last_payment_at is not None

    def test_cancel_frees_the_seat(self, subscription_service, subscribe, plan, test_actor_id):
        subscription = subscribe()
        subscription_service.cancel(subscription.id, "Moving abroad", test_actor_id)
        assert subscription.status == SubscriptionStatus.CANCELLED.value
        assert subscription.cancellation_reason == "Moving abroad"
        assert subscription.cancelled_by_id == test_actor_id
        assert plan.current_members == 0
        with pytest.raises(InvalidTransitionError):
            subscription_service.reinstate(subscription.id, test_actor_id)

    def test_suspend_keeps_the_seat(self, session, subscription_service, subscribe, plan, test_actor_id):
        subscription = subscribe(auto_renew=True)
        subscription_service.suspend(subscription.id, "Unpaid locker fee", test_actor_id)
        assert subscription.status == SubscriptionStatus.SUSPENDED.value
        assert subscription.auto_renew is False
        assert plan.current_members == 1

        subscription_service.reinstate(subscription.id, test_actor_id)
        assert subscription.status == SubscriptionStatus.ACTIVE.value
        assert plan.current_members == 1
        assert history(session, subscription)[-2:] == [("active", "suspended"), ("suspended", "active")]

    def test_unknown_subscription(self, subscription_service, test_actor_id):
        with pytest.raises(SubscriptionNotFoundError):
            subscription_service.activate(uuid4(), test_actor_id)


class TestAdmission:

    def test_inactive_member(self, membership_service, subscribe, member, test_actor_id):
        membership_service.deactivate_member(member.id, "Left the hub", test_actor_id)
        with pytest.raises(MemberInactiveError):
            subscribe()

    def test_inactive_plan(self, membership_service, subscribe, plan, test_actor_id):
        membership_service.set_plan_active(plan.id, False, test_actor_id)
        with pytest.raises(PlanUnavailableError) as exc_info:
            subscribe()
        assert exc_info.value.reason == "inactive"

    def test_full_plan_refuses_new_subscriptions(self, make_plan, make_member, subscribe):
        small = make_plan("desk-club", max_members=1)
        subscribe(plan_id=small.id)
        with pytest.raises(PlanUnavailableError) as exc_info:
            subscribe(member_id=make_member().id, plan_id=small.id)
        assert exc_info.value.reason == "full"

    def test_full_plan_refuses_activation(
        self, make_plan, make_member, subscribe, subscription_service, test_actor_id,
    ):
        small = make_plan("desk-club", max_members=1)
        first = subscribe(plan_id=small.id, activate=False)
        second = subscribe(member_id=make_member().id, plan_id=small.id, activate=False)
        subscription_service.activate(first.id, test_actor_id)

        with pytest.raises(PlanUnavailableError):
            subscription_service.activate(second.id, test_actor_id)
        assert subscription_service.get(second.id).status == SubscriptionStatus.PENDING.value
        assert small.current_members == 1

    def test_cancelled_seat_can_be_reused(
        self, make_plan, make_member, subscribe, subscription_service, test_actor_id,
    ):
        small = make_plan("desk-club", max_members=1)
        first = subscribe(plan_id=small.id)
        subscription_service.cancel(first.id, "Switching plans", test_actor_id)
        second = subscribe(member_id=make_member().id, plan_id=small.id)
        assert second.status == SubscriptionStatus.ACTIVE.value


class TestRenewal:

    def test_renew_active_extends_without_transition(
        self, session, subscription_service, subscribe, test_actor_id, dispatcher,
    ):
        subscription = subscribe()
        before = StatusHistorySelector(session).count_for("subscription", subscription.id)

        subscription_service.renew(subscription.id, test_actor_id)
        assert subscription.status == SubscriptionStatus.ACTIVE.value
        assert subscription.end_date == date(2025, 5, 2)
        assert StatusHistorySelector(session).count_for("subscription", subscription.id) == before
        renewed = [e for e in dispatcher.published if e.name == "SubscriptionRenewed"]
        assert renewed[-1].payload["period_start"] == FIRST_END.isoformat()

    def test_renew_expired_restarts_from_today(
        self, subscription_service, subscribe, plan, test_actor_id, deterministic_clock,
    ):
        subscription = subscribe()
        assert subscription_service.process_expired(as_of=date(2025, 4, 10)) == 1
        assert subscription.status == SubscriptionStatus.EXPIRED.value
        assert plan.current_members == 0

        deterministic_clock.set_time(datetime(2025, 4, 10, 9, 0, tzinfo=UTC))
        subscription_service.renew(subscription.id, test_actor_id)
        assert subscription.status == SubscriptionStatus.ACTIVE.value
        assert subscription.end_date == date(2025, 5, 10)
        assert plan.current_members == 1

    def test_renew_expiring(self, session, subscription_service, subscribe, test_actor_id):
        subscription = subscribe()
        subscription_service.process_expiring(as_of=date(2025, 3, 28))
        subscription_service.renew(subscription.id, test_actor_id)
        assert subscription.status == SubscriptionStatus.ACTIVE.value
        assert history(session, subscription)[-1] == ("expiring", "active")

    def test_pending_cannot_be_renewed(self, subscription_service, subscribe, test_actor_id):
        subscription = subscribe(activate=False)
        with pytest.raises(SubscriptionNotRenewableError):
            subscription_service.renew(subscription.id, test_actor_id)


class TestSweeps:

    def test_expiring_within_notice(self, subscription_service, subscribe):
        subscription = subscribe()
        assert subscription_service.process_expiring(as_of=date(2025, 3, 20)) == 0
        assert subscription_service.process_expiring(as_of=date(2025, 3, 28)) == 1
        assert subscription.status == SubscriptionStatus.EXPIRING.value
        assert subscription_service.process_expiring(as_of=date(2025, 3, 28)) == 0

    def test_expiring_notice_override(self, subscription_service, subscribe):
        subscribe()
        assert subscription_service.process_expiring(days=14, as_of=date(2025, 3, 20)) == 1

    def test_expired_after_end_date(self, subscription_service, subscribe):
        subscription = subscribe()
        assert subscription_service.process_expired(as_of=FIRST_END) == 0
        assert subscription_service.process_expired(as_of=date(2025, 4, 3)) == 1
        assert subscription.status == SubscriptionStatus.EXPIRED.value

    def test_grace_period(self, subscription_service, subscribe, member, plan, deterministic_clock):
        subscription = subscribe(grace_period_days=5)
        subscription_service.process_expired(as_of=date(2025, 4, 3))
        assert subscription.status == SubscriptionStatus.GRACE_PERIOD.value
        assert plan.current_members == 1

        deterministic_clock.set_time(datetime(2025, 4, 4, 9, 0, tzinfo=UTC))
        summary = subscription_service.subscription_summary(member.id)
        assert summary.is_in_grace_period
        assert summary.grace_period_days_remaining == 3

        assert subscription_service.process_grace_period_expiration(as_of=date(2025, 4, 7)) == 0
        assert subscription_service.process_grace_period_expiration(as_of=date(2025, 4, 8)) == 1
        assert subscription.status == SubscriptionStatus.EXPIRED.value
        assert plan.current_members == 0

    def test_sweep_skips_failures(self, subscription_service, subscribe, make_member, monkeypatch, captured_logs):
        first = subscribe()
        second = subscribe(member_id=make_member().id)
        real = subscription_service.mark_expiring

        def flaky(subscription_id, *args):
            if subscription_id == first.id:
                raise SubscriptionNotFoundError(subscription_id)
            return real(subscription_id, *args)

        monkeypatch.setattr(subscription_service, "mark_expiring", flaky)
        assert subscription_service.process_expiring(as_of=date(2025, 3, 28)) == 1
        assert subscription_service.get(second.id).status == SubscriptionStatus.EXPIRING.value
        failed = [r for r in captured_logs() if r["message"] == "subscription_sweep_item_failed"]
        assert failed[-1]["error_code"] == "SUBSCRIPTION_NOT_FOUND"


class TestQueries:

    def test_summary_without_subscription(self, subscription_service, member):
        summary = subscription_service.subscription_summary(member.id)
        assert not summary.has_active_subscription
        assert summary.total_subscriptions == 0
        assert subscription_service.active_subscription(member.id) is None

    def test_summary_of_running_subscription(self, subscription_service, subscribe, member):
        subscription = subscribe(auto_renew=True)
        summary = subscription_service.subscription_summary(member.id)
        assert summary.subscription_id == subscription.id
        assert summary.status is SubscriptionStatus.ACTIVE
        assert summary.days_remaining == 30
        assert not summary.is_expiring_soon
        assert summary.auto_renew
        assert summary.total_subscriptions == 1

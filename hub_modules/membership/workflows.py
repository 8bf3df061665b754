"""
Membership Workflows.

State machine for subscriptions.
"""

from hub_kernel.domain.workflow import Guard, Transition, Workflow
from hub_kernel.logging_config import get_logger
from hub_modules.membership.models import SubscriptionStatus

logger = get_logger("modules.membership.workflows")


PLAN_HAS_CAPACITY = Guard(
    name="plan_has_capacity",
    description="Plan current_members is below max_members (or max_members is unset)",
)

logger.info(
    "membership_workflow_guards_defined",
    extra={"guards": [PLAN_HAS_CAPACITY.name]},
)


# -----------------------------------------------------------------------------
# Subscription Workflow
# -----------------------------------------------------------------------------
# Renewing moves expiring, grace_period and expired subscriptions back to
# active.  Cancelled is the only dead end; expired subscriptions can still be
# renewed.

_S = SubscriptionStatus
_RENEWED = ("SubscriptionRenewed",)
_CANCELLED = ("SubscriptionCancelled",)
_EXPIRED = ("SubscriptionExpired",)
_SUSPENDED = ("SubscriptionSuspended",)
_GRACE = ("SubscriptionGracePeriodStarted",)

SUBSCRIPTION_WORKFLOW = Workflow(
    name="membership_subscription",
    description="Membership subscription lifecycle",
    entity_type="subscription",
    status_enum=SubscriptionStatus,
    initial_state=_S.PENDING.value,
    states=tuple(s.value for s in SubscriptionStatus),
    transitions=(
        Transition(_S.PENDING.value, _S.ACTIVE.value, action="activate", guard=PLAN_HAS_CAPACITY, events=("SubscriptionActivated",)),
        Transition(_S.PENDING.value, _S.CANCELLED.value, action="cancel", events=_CANCELLED),
        Transition(_S.ACTIVE.value, _S.EXPIRING.value, action="mark_expiring", events=("SubscriptionExpiring",)),
        Transition(_S.ACTIVE.value, _S.GRACE_PERIOD.value, action="enter_grace_period", events=_GRACE),
        Transition(_S.ACTIVE.value, _S.EXPIRED.value, action="expire", events=_EXPIRED),
        Transition(_S.ACTIVE.value, _S.CANCELLED.value, action="cancel", events=_CANCELLED),
        Transition(_S.ACTIVE.value, _S.SUSPENDED.value, action="suspend", events=_SUSPENDED),
        Transition(_S.EXPIRING.value, _S.ACTIVE.value, action="renew", events=_RENEWED),
        Transition(_S.EXPIRING.value, _S.GRACE_PERIOD.value, action="enter_grace_period", events=_GRACE),
        Transition(_S.EXPIRING.value, _S.EXPIRED.value, action="expire", events=_EXPIRED),
        Transition(_S.EXPIRING.value, _S.CANCELLED.value, action="cancel", events=_CANCELLED),
        Transition(_S.EXPIRING.value, _S.SUSPENDED.value, action="suspend", events=_SUSPENDED),
        Transition(_S.GRACE_PERIOD.value, _S.ACTIVE.value, action="renew", events=_RENEWED),
        Transition(_S.GRACE_PERIOD.value, _S.EXPIRED.value, action="expire", events=_EXPIRED),
        Transition(_S.GRACE_PERIOD.value, _S.CANCELLED.value, action="cancel", events=_CANCELLED),
        Transition(_S.EXPIRED.value, _S.ACTIVE.value, action="renew", events=_RENEWED),
        Transition(_S.SUSPENDED.value, _S.ACTIVE.value, action="reinstate", events=("SubscriptionReinstated",)),
        Transition(_S.SUSPENDED.value, _S.CANCELLED.value, action="cancel", events=_CANCELLED),
    ),
    terminal_states=(_S.CANCELLED.value,),
)

logger.info(
    "membership_subscription_workflow_registered",
    extra={
        "workflow_name": SUBSCRIPTION_WORKFLOW.name,
        "state_count": len(SUBSCRIPTION_WORKFLOW.states),
        "transition_count": len(SUBSCRIPTION_WORKFLOW.transitions),
    },
)

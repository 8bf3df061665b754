"""
Meeting room credits for membership periods.

Plans include a number of meeting room hours per subscription period.  When
a subscription is activated or renewed, the listener registered here
grants those hours as space booking credits for the period just paid for.
Handlers run after the membership transaction has committed.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from hub_kernel.domain.actors import SYSTEM_ACTOR_ID
from hub_kernel.domain.events import DomainEvent
from hub_kernel.logging_config import get_logger
from hub_kernel.services.event_dispatcher import DomainEventDispatcher
from hub_modules.space_booking import ResourceType, SpaceBookingService

logger = get_logger("services.membership_listeners")

PERIOD_EVENTS = ("SubscriptionActivated", "SubscriptionRenewed")


def register_membership_listeners(
    dispatcher: DomainEventDispatcher, spaces: SpaceBookingService,
) -> None:
    """Subscribe ``spaces`` to the subscription events that open a paid period."""

    def on_period_started(event: DomainEvent) -> None:
        hours = int(event.payload.get("meeting_hours_included") or 0)
        if hours <= 0:
            return
        period_start = date.fromisoformat(
            event.payload.get("period_start") or event.payload["start_date"]
        )
        period_end = date.fromisoformat(event.payload["end_date"])
        spaces.allocate_credits(
            UUID(event.payload["member_id"]),
            ResourceType.MEETING_ROOM,
            period_start,
            period_end,
            Decimal(hours),
            SYSTEM_ACTOR_ID,
            plan_id=UUID(event.payload["plan_id"]),
            subscription_id=event.entity_id,
        )

    for name in PERIOD_EVENTS:
        dispatcher.subscribe(name, on_period_started)
    logger.info("membership_listeners_registered", extra={"events": list(PERIOD_EVENTS)})

"""
Space Booking Service (``hub_modules.space_booking.service``).

Responsibility
--------------
Bookable resources, availability, booking creation and rescheduling with
credit and plan pricing, the booking lifecycle (confirm, cancel, check-in,
check-out, no-show), members' booking credits, and utilization.

Architecture
------------
Layer: **Modules**.  Conflicts are found with the kernel half-open interval
predicate (``hub_kernel.domain.intervals``) against the requested range
widened by the resource's buffer on both sides.  Status changes are
``SPACE_BOOKING_WORKFLOW`` transitions.

Invariants
----------
- Creating or rescheduling a booking locks the resource row, so two
  bookings for one resource serialize and cannot both pass the conflict
  check.
- Only pending and confirmed bookings hold a resource's calendar.
- Credits consumed by a booking are deducted in its transaction (oldest
  period first) and returned when it is cancelled or rescheduled.
- A booking is modifiable until it ends, is checked in, or leaves the
  pending/confirmed states.

Failure Modes
-------------
- ``SpaceResourceNotFoundError`` / ``SpaceBookingNotFoundError``.
- ``ResourceUnavailableError`` with a ``reason`` when the range cannot be
  booked.
- ``BookingNotModifiableError`` when rescheduling or checking in a booking
  that is past, checked in or not in the right state.
- ``InvalidTransitionError`` for lifecycle steps the graph does not allow.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from hub_kernel.domain.clock import Clock, SystemClock
from hub_kernel.domain.codes import latest_code_order, next_sequence_code
from hub_kernel.domain.events import DomainEvent
from hub_kernel.domain.intervals import TimeRange, find_conflicts
from hub_kernel.exceptions import (
    BookingNotModifiableError,
    ResourceUnavailableError,
    SpaceBookingNotFoundError,
    SpaceResourceNotFoundError,
)
from hub_kernel.logging_config import get_logger
from hub_kernel.services.event_dispatcher import DomainEventDispatcher
from hub_kernel.services.state_machine import StateMachine
from hub_kernel.services.transaction import unit_of_work
from hub_modules.space_booking.config import SpaceBookingConfig
from hub_modules.space_booking.helpers import (
    as_utc,
    free_slots,
    hours_per_day,
    opening_window,
    parse_clock,
    slugify,
    within_operating_hours,
)
from hub_modules.space_booking.models import (
    BLOCKING_BOOKING_STATUSES,
    BookingStatus,
    PaymentStatus,
    PriceCalculation,
    ResourceType,
    ResourceUtilization,
)
from hub_modules.space_booking.orm import (
    BookingCreditModel,
    SpaceBookingModel,
    SpaceResourceModel,
)
from hub_modules.space_booking.pricing import ZERO, calculate_price
from hub_modules.space_booking.workflows import SPACE_BOOKING_WORKFLOW

logger = get_logger("modules.space_booking.service")

# Completed bookings still count as time the resource was in use.
_OCCUPYING_STATUSES = BLOCKING_BOOKING_STATUSES + (BookingStatus.COMPLETED.value,)


class SpaceBookingService:
    """Resources, bookings and booking credits."""

    def __init__(
        self,
        session: Session,
        dispatcher: DomainEventDispatcher | None = None,
        clock: Clock | None = None,
        config: SpaceBookingConfig | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._events = dispatcher or DomainEventDispatcher()
        self._clock = clock or SystemClock()
        self._config = config or SpaceBookingConfig()
        self._auto_commit = auto_commit
        self._machine = StateMachine(session, SPACE_BOOKING_WORKFLOW, self._clock)

    def get_resource(self, resource_id: UUID) -> SpaceResourceModel:
        resource = self._session.get(SpaceResourceModel, resource_id)
        if resource is None:
            raise SpaceResourceNotFoundError(resource_id)
        return resource

    def get(self, booking_id: UUID) -> SpaceBookingModel:
        booking = self._session.get(SpaceBookingModel, booking_id)
        if booking is None:
            raise SpaceBookingNotFoundError(booking_id)
        return booking

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    def create_resource(
        self,
        name: str,
        resource_type: ResourceType,
        actor_id: UUID,
        *,
        capacity: int = 1,
        hourly_rate: Decimal | None = None,
        daily_rate: Decimal | None = None,
        monthly_rate: Decimal | None = None,
        currency: str | None = None,
        buffer_minutes: int | None = None,
        available_from: str | None = None,
        available_until: str | None = None,
        min_booking_minutes: int | None = None,
        max_booking_minutes: int | None = None,
        pricing_rules: Iterable[Mapping[str, Any]] = (),
        requires_approval: bool = False,
        location: str | None = None,
        description: str | None = None,
        sort_order: int = 0,
    ) -> SpaceResourceModel:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        if (available_from is None) != (available_until is None):
            raise ValueError("available_from and available_until are set together")
        if available_from is not None and parse_clock(available_from) >= parse_clock(available_until):
            raise ValueError(f"operating hours {available_from}-{available_until} end before they start")
        for rate in (hourly_rate, daily_rate, monthly_rate):
            if rate is not None and rate < 0:
                raise ValueError("rates cannot be negative")
        shortest = min_booking_minutes or self._config.min_booking_minutes
        if max_booking_minutes is not None and max_booking_minutes < shortest:
            raise ValueError("max_booking_minutes is shorter than min_booking_minutes")
        rules = [
            {"plan_id": str(rule["plan_id"]), "discount_percent": int(rule.get("discount_percent", 0))}
            for rule in pricing_rules
        ]
        if any(not 0 <= rule["discount_percent"] <= 100 for rule in rules):
            raise ValueError("discount_percent must be within 0..100")

        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="create_space_resource",
        ):
            resource = SpaceResourceModel(
                name=name,
                slug=slugify(name),
                resource_type=resource_type.value,
                description=description,
                capacity=capacity,
                location=location,
                hourly_rate=hourly_rate,
                daily_rate=daily_rate,
                monthly_rate=monthly_rate,
                currency=currency or self._config.default_currency,
                buffer_minutes=(
                    self._config.default_buffer_minutes if buffer_minutes is None else buffer_minutes
                ),
                available_from=available_from,
                available_until=available_until,
                min_booking_minutes=shortest,
                max_booking_minutes=max_booking_minutes,
                pricing_rules=rules,
                is_active=True,
                requires_approval=requires_approval,
                sort_order=sort_order,
                created_by_id=actor_id,
            )
            self._session.add(resource)
            self._session.flush()
            logger.info(
                "space_resource_created",
                extra={"resource_id": str(resource.id), "resource_type": resource.resource_type},
            )
        return resource

    def set_resource_active(self, resource_id: UUID, active: bool, actor_id: UUID) -> SpaceResourceModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="set_space_resource_active",
        ):
            resource = self.get_resource(resource_id)
            resource.is_active = active
            resource.updated_by_id = actor_id
            self._session.flush()
            logger.info("space_resource_activity_changed", extra={"resource_id": str(resource.id), "active": active})
        return resource

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    def is_available(
        self,
        resource_id: UUID,
        start: datetime,
        end: datetime,
        exclude_booking_id: UUID | None = None,
    ) -> bool:
        resource = self.get_resource(resource_id)
        reason, _ = self._unavailability(resource, TimeRange(as_utc(start), as_utc(end)), exclude_booking_id)
        return reason is None

    def available_resources(
        self,
        start: datetime,
        end: datetime,
        resource_type: ResourceType | None = None,
        min_capacity: int | None = None,
    ) -> list[SpaceResourceModel]:
        """Active resources with no pending or confirmed booking overlapping the range."""
        span = TimeRange(as_utc(start), as_utc(end))
        query = select(SpaceResourceModel).where(SpaceResourceModel.is_active.is_(True))
        if resource_type is not None:
            query = query.where(SpaceResourceModel.resource_type == resource_type.value)
        if min_capacity:
            query = query.where(SpaceResourceModel.capacity >= min_capacity)
        resources = self._session.execute(
            query.order_by(SpaceResourceModel.sort_order, SpaceResourceModel.name)
        ).scalars().all()

        taken = self._session.execute(
            select(SpaceBookingModel.resource_id, SpaceBookingModel.start_time, SpaceBookingModel.end_time)
            .where(
                SpaceBookingModel.start_time < span.end,
                SpaceBookingModel.end_time > span.start,
                SpaceBookingModel.status.in_(BLOCKING_BOOKING_STATUSES),
            )
        ).all()
        busy = set(find_conflicts(span, [(row[0], TimeRange(row[1], row[2])) for row in taken]))
        return [r for r in resources if r.id not in busy]

    def time_slots(
        self,
        resource_id: UUID,
        day: date,
        slot_minutes: int | None = None,
    ) -> list[TimeRange]:
        """Free slots on ``day`` inside the resource's hours, stepping past bookings and their buffer."""
        resource = self.get_resource(resource_id)
        window = opening_window(day, resource.available_from, resource.available_until)
        taken = [rng for _, rng in self._blocking_ranges(resource.id, window)]
        return free_slots(
            window, taken, slot_minutes or self._config.slot_minutes, resource.buffer_minutes,
        )

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    def quote(
        self,
        resource_id: UUID,
        start: datetime,
        end: datetime,
        *,
        member_id: UUID | None = None,
        plan_id: UUID | None = None,
    ) -> PriceCalculation:
        """What ``create_booking`` would charge now; nothing is written."""
        resource = self.get_resource(resource_id)
        credits = self.available_credits(member_id, ResourceType(resource.resource_type)) if member_id else ZERO
        return calculate_price(
            resource, TimeRange(as_utc(start), as_utc(end)), self._config,
            plan_id=plan_id, available_credits=credits,
        )

    def create_booking(
        self,
        resource_id: UUID,
        start: datetime,
        end: datetime,
        actor_id: UUID,
        *,
        member_id: UUID | None = None,
        user_id: UUID | None = None,
        plan_id: UUID | None = None,
        notes: str | None = None,
        attendees_count: int | None = None,
    ) -> SpaceBookingModel:
        """
        Book ``resource_id`` for ``[start, end)``.

        The booking is confirmed straight away unless the resource requires
        approval.  Member bookings spend the member's credits for the
        resource type before any charge, and ``plan_id`` selects the
        resource's discount rule.
        """
        span = TimeRange(as_utc(start), as_utc(end))
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="create_space_booking",
        ):
            resource = self._lock_resource(resource_id)
            self._require_available(resource, span)
            kind = ResourceType(resource.resource_type)
            credits = self.available_credits(member_id, kind) if member_id else ZERO
            price = calculate_price(
                resource, span, self._config, plan_id=plan_id, available_credits=credits,
            )

            booking = SpaceBookingModel(
                booking_code=self._next_code(span.start),
                resource_id=resource.id,
                member_id=member_id,
                user_id=user_id,
                start_time=span.start,
                end_time=span.end,
                currency=resource.currency,
                payment_status=(
                    PaymentStatus.UNPAID.value if price.total_price > 0 else PaymentStatus.PAID.value
                ),
                notes=notes,
                attendees_count=attendees_count,
                created_by_id=actor_id,
            )
            self._apply_price(booking, price)
            status = BookingStatus.PENDING if resource.requires_approval else BookingStatus.CONFIRMED
            if status is BookingStatus.CONFIRMED:
                booking.confirmed_at = self._clock.now_utc()
            outcome = self._machine.initialize(
                booking, actor_id, status=status, notes="Booking created", payload=self._payload(booking),
            )
            self._events.collect(outcome.events)
            if member_id and price.credits_used > 0:
                self._deduct_credits(member_id, kind, price.credits_used, actor_id)

            logger.info(
                "space_booking_created",
                extra={
                    "booking_id": str(booking.id),
                    "resource_id": str(resource.id),
                    "member_id": str(member_id) if member_id else None,
                    "start": span.start,
                    "end": span.end,
                    "status": booking.status,
                    "total_price": price.total_price,
                    "credits_used": price.credits_used,
                },
            )
        return booking

    def reschedule_booking(
        self,
        booking_id: UUID,
        new_start: datetime,
        new_end: datetime,
        actor_id: UUID,
        *,
        plan_id: UUID | None = None,
    ) -> SpaceBookingModel:
        """Move a booking and reprice it; its old credits are returned before the new ones are spent."""
        span = TimeRange(as_utc(new_start), as_utc(new_end))
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="reschedule_space_booking",
        ):
            booking = self.get(booking_id)
            self._require_modifiable(booking)
            resource = self._lock_resource(booking.resource_id)
            self._require_available(resource, span, exclude_booking_id=booking.id)

            kind = ResourceType(resource.resource_type)
            if booking.member_id and booking.credits_used > 0:
                self._refund_credits(booking.member_id, kind, booking.credits_used, actor_id)
            credits = self.available_credits(booking.member_id, kind) if booking.member_id else ZERO
            price = calculate_price(
                resource, span, self._config, plan_id=plan_id, available_credits=credits,
            )
            old = TimeRange(booking.start_time, booking.end_time)
            booking.start_time = span.start
            booking.end_time = span.end
            self._apply_price(booking, price)
            booking.updated_by_id = actor_id
            self._session.flush()
            if booking.member_id and price.credits_used > 0:
                self._deduct_credits(booking.member_id, kind, price.credits_used, actor_id)

            self._events.collect((
                self._event("SpaceBookingRescheduled", booking, {
                    **self._payload(booking),
                    "previous_start": old.start.isoformat(),
                    "previous_end": old.end.isoformat(),
                    "end_time": span.end.isoformat(),
                    "total_price": str(price.total_price),
                }),
            ))
            logger.info(
                "space_booking_rescheduled",
                extra={
                    "booking_id": str(booking.id),
                    "previous_start": old.start,
                    "start": span.start,
                    "end": span.end,
                    "total_price": price.total_price,
                },
            )
        return booking

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def confirm_booking(self, booking_id: UUID, actor_id: UUID) -> SpaceBookingModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="confirm_space_booking",
        ):
            booking = self.get(booking_id)
            self._apply(booking, BookingStatus.CONFIRMED, actor_id, "Booking confirmed")
            booking.confirmed_at = self._clock.now_utc()
            self._session.flush()
        return booking

    def cancel_booking(
        self,
        booking_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> SpaceBookingModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="cancel_space_booking",
        ):
            booking = self.get(booking_id)
            self._apply(booking, BookingStatus.CANCELLED, actor_id, reason or "Booking cancelled")
            booking.cancellation_reason = reason
            booking.cancelled_at = self._clock.now_utc()
            if booking.member_id and booking.credits_used > 0:
                kind = ResourceType(booking.resource.resource_type)
                self._refund_credits(booking.member_id, kind, booking.credits_used, actor_id)
            self._session.flush()
        return booking

    def check_in(self, booking_id: UUID, actor_id: UUID) -> SpaceBookingModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="check_in_space_booking",
        ):
            booking = self.get(booking_id)
            if booking.status != BookingStatus.CONFIRMED.value:
                raise BookingNotModifiableError(booking.id, f"cannot check in a {booking.status} booking")
            if booking.checked_in_at is not None:
                raise BookingNotModifiableError(booking.id, "already checked in")
            booking.checked_in_at = self._clock.now_utc()
            booking.updated_by_id = actor_id
            self._session.flush()
            logger.info("space_booking_checked_in", extra={"booking_id": str(booking.id)})
        return booking

    def check_out(self, booking_id: UUID, actor_id: UUID) -> SpaceBookingModel:
        """Record the check-out and complete the booking."""
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="check_out_space_booking",
        ):
            booking = self.get(booking_id)
            if booking.checked_in_at is None:
                raise BookingNotModifiableError(booking.id, "not checked in")
            booking.checked_out_at = self._clock.now_utc()
            self._apply(booking, BookingStatus.COMPLETED, actor_id, "Checked out")
        return booking

    def complete_booking(self, booking_id: UUID, actor_id: UUID) -> SpaceBookingModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="complete_space_booking",
        ):
            booking = self.get(booking_id)
            self._apply(booking, BookingStatus.COMPLETED, actor_id, "Booking completed")
            if booking.checked_out_at is None:
                booking.checked_out_at = self._clock.now_utc()
            self._session.flush()
        return booking

    def mark_no_show(self, booking_id: UUID, actor_id: UUID) -> SpaceBookingModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="mark_space_booking_no_show",
        ):
            booking = self.get(booking_id)
            self._apply(booking, BookingStatus.NO_SHOW, actor_id, "No show")
        return booking

    def can_modify(self, booking: SpaceBookingModel) -> bool:
        return self._modification_blocker(booking) is None

    # ------------------------------------------------------------------
    # Credits
    # ------------------------------------------------------------------

    def allocate_credits(
        self,
        member_id: UUID,
        resource_type: ResourceType,
        period_start: date,
        period_end: date,
        credits: Decimal,
        actor_id: UUID,
        *,
        plan_id: UUID | None = None,
        subscription_id: UUID | None = None,
    ) -> BookingCreditModel:
        """
        Grant ``credits`` units for the inclusive period.

        Idempotent per (member, resource type, period): a second allocation
        for the same period returns the existing row unchanged.
        """
        if period_end < period_start:
            raise ValueError("period_end is before period_start")
        if credits < 0:
            raise ValueError("credits cannot be negative")
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="allocate_booking_credits",
        ):
            existing = self._session.execute(
                select(BookingCreditModel).where(
                    BookingCreditModel.member_id == member_id,
                    BookingCreditModel.resource_type == resource_type.value,
                    BookingCreditModel.period_start == period_start,
                    BookingCreditModel.period_end == period_end,
                )
            ).scalar_one_or_none()
            if existing is not None:
                return existing
            credit = BookingCreditModel(
                member_id=member_id,
                resource_type=resource_type.value,
                period_start=period_start,
                period_end=period_end,
                allocated_credits=Decimal(credits),
                used_credits=ZERO,
                plan_id=plan_id,
                subscription_id=subscription_id,
                created_by_id=actor_id,
            )
            self._session.add(credit)
            self._session.flush()
            logger.info(
                "booking_credits_allocated",
                extra={
                    "member_id": str(member_id),
                    "resource_type": resource_type.value,
                    "credits": credits,
                    "period_end": period_end,
                },
            )
        return credit

    def available_credits(
        self, member_id: UUID, resource_type: ResourceType, on: date | None = None,
    ) -> Decimal:
        """Unused credits in every allocation whose period covers ``on`` (today by default)."""
        rows = self._active_credits(member_id, resource_type, on)
        return sum((row.remaining for row in rows), ZERO)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def utilization(self, resource_id: UUID, start_date: date, end_date: date) -> ResourceUtilization:
        """
        Booked hours over opening hours for the inclusive date range.

        Counts pending, confirmed and completed bookings lying wholly inside
        the range.
        """
        if end_date < start_date:
            raise ValueError("end_date is before start_date")
        resource = self.get_resource(resource_id)
        window = TimeRange(
            as_utc(datetime.combine(start_date, time.min)),
            as_utc(datetime.combine(end_date + timedelta(days=1), time.min)),
        )
        bookings = self._session.execute(
            select(SpaceBookingModel).where(
                SpaceBookingModel.resource_id == resource.id,
                SpaceBookingModel.status.in_(_OCCUPYING_STATUSES),
                SpaceBookingModel.start_time >= window.start,
                SpaceBookingModel.end_time <= window.end,
            )
        ).scalars().all()
        booked_minutes = sum(b.duration_minutes for b in bookings)
        days = (end_date - start_date).days + 1
        total_hours = Decimal(days * hours_per_day(resource.available_from, resource.available_until))
        booked_hours = Decimal(booked_minutes) / 60
        percent = (
            (booked_hours / total_hours * 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
            if total_hours > 0 else Decimal("0")
        )
        return ResourceUtilization(
            total_hours=total_hours,
            booked_hours=booked_hours.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
            utilization_percent=percent,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _unavailability(
        self,
        resource: SpaceResourceModel,
        span: TimeRange,
        exclude_booking_id: UUID | None = None,
    ) -> tuple[str | None, list[UUID]]:
        """Why ``span`` cannot be booked, checked in order; ``(None, [])`` when it can."""
        if not resource.is_active:
            return "inactive", []
        if not within_operating_hours(span, resource.available_from, resource.available_until):
            return "outside_operating_hours", []
        minutes = int(span.duration.total_seconds() // 60)
        if minutes < resource.min_booking_minutes:
            return "too_short", []
        if resource.max_booking_minutes and minutes > resource.max_booking_minutes:
            return "too_long", []
        buffer = timedelta(minutes=resource.buffer_minutes or 0)
        widened = TimeRange(span.start - buffer, span.end + buffer)
        conflicts = find_conflicts(
            widened, self._blocking_ranges(resource.id, widened, exclude_booking_id),
        )
        if conflicts:
            return "conflict", conflicts
        return None, []

    def _require_available(
        self,
        resource: SpaceResourceModel,
        span: TimeRange,
        exclude_booking_id: UUID | None = None,
    ) -> None:
        reason, conflicts = self._unavailability(resource, span, exclude_booking_id)
        if reason is None:
            return
        logger.warning(
            "space_booking_rejected",
            extra={
                "resource_id": str(resource.id),
                "reason": reason,
                "conflicts": [str(c) for c in conflicts],
            },
        )
        raise ResourceUnavailableError(resource.id, reason, [str(c) for c in conflicts])

    def _modification_blocker(self, booking: SpaceBookingModel) -> str | None:
        if booking.status not in BLOCKING_BOOKING_STATUSES:
            return f"booking is {booking.status}"
        if booking.end_time < self._clock.now_utc():
            return "booking has already ended"
        if booking.checked_in_at is not None:
            return "booking is checked in"
        return None

    def _require_modifiable(self, booking: SpaceBookingModel) -> None:
        blocker = self._modification_blocker(booking)
        if blocker is not None:
            raise BookingNotModifiableError(booking.id, blocker)

    def _blocking_ranges(
        self,
        resource_id: UUID,
        window: TimeRange,
        exclude_booking_id: UUID | None = None,
    ) -> list[tuple[UUID, TimeRange]]:
        """Pending and confirmed bookings of the resource that touch ``window``."""
        query = select(SpaceBookingModel).where(
            SpaceBookingModel.resource_id == resource_id,
            SpaceBookingModel.start_time < window.end,
            SpaceBookingModel.end_time > window.start,
            SpaceBookingModel.status.in_(BLOCKING_BOOKING_STATUSES),
        )
        if exclude_booking_id is not None:
            query = query.where(SpaceBookingModel.id != exclude_booking_id)
        rows = self._session.execute(query.order_by(SpaceBookingModel.start_time)).scalars().all()
        return [(row.id, TimeRange(row.start_time, row.end_time)) for row in rows]

    def _active_credits(
        self,
        member_id: UUID,
        resource_type: ResourceType,
        on: date | None = None,
        lock: bool = False,
    ) -> list[BookingCreditModel]:
        on = on or self._clock.now_utc().date()
        query = (
            select(BookingCreditModel)
            .where(
                BookingCreditModel.member_id == member_id,
                BookingCreditModel.resource_type == resource_type.value,
                BookingCreditModel.period_start <= on,
                BookingCreditModel.period_end >= on,
            )
            .order_by(BookingCreditModel.period_end, BookingCreditModel.created_at)
        )
        if lock:
            query = query.with_for_update()
        return list(self._session.execute(query).scalars().all())

    def _deduct_credits(
        self, member_id: UUID, resource_type: ResourceType, amount: Decimal, actor_id: UUID,
    ) -> None:
        """Spend ``amount`` from the allocations ending soonest first."""
        remaining = amount
        for credit in self._active_credits(member_id, resource_type, lock=True):
            if remaining <= 0:
                break
            take = min(credit.remaining, remaining)
            if take <= 0:
                continue
            credit.used_credits += take
            credit.updated_by_id = actor_id
            remaining -= take
        self._session.flush()
        logger.info(
            "booking_credits_deducted",
            extra={"member_id": str(member_id), "resource_type": resource_type.value, "amount": amount},
        )

    def _refund_credits(
        self, member_id: UUID, resource_type: ResourceType, amount: Decimal, actor_id: UUID,
    ) -> None:
        """Return ``amount`` to the current allocation ending last."""
        credits = self._active_credits(member_id, resource_type, lock=True)
        if not credits:
            logger.warning(
                "booking_credits_refund_skipped",
                extra={"member_id": str(member_id), "resource_type": resource_type.value, "amount": amount},
            )
            return
        credit = credits[-1]
        credit.used_credits = max(ZERO, credit.used_credits - amount)
        credit.updated_by_id = actor_id
        self._session.flush()
        logger.info(
            "booking_credits_refunded",
            extra={"member_id": str(member_id), "resource_type": resource_type.value, "amount": amount},
        )

    @staticmethod
    def _apply_price(booking: SpaceBookingModel, price: PriceCalculation) -> None:
        booking.unit_price = price.unit_price
        booking.price_unit = price.price_unit.value
        booking.quantity = price.quantity
        booking.discount_amount = price.discount_amount
        booking.total_price = price.total_price
        booking.credits_used = price.credits_used

    def _apply(
        self,
        booking: SpaceBookingModel,
        target: BookingStatus,
        actor_id: UUID,
        notes: str,
    ) -> None:
        outcome = self._machine.transition(booking, target, actor_id, notes, payload=self._payload(booking))
        self._events.collect(outcome.events)

    def _lock_resource(self, resource_id: UUID) -> SpaceResourceModel:
        resource = self._session.execute(
            select(SpaceResourceModel)
            .where(SpaceResourceModel.id == resource_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if resource is None:
            raise SpaceResourceNotFoundError(resource_id)
        return resource

    def _next_code(self, moment: datetime) -> str:
        prefix = f"{self._config.booking_code_prefix}-{moment.year}-"
        last = self._session.execute(
            select(SpaceBookingModel.booking_code)
            .where(SpaceBookingModel.booking_code.startswith(prefix))
            .order_by(*latest_code_order(SpaceBookingModel.booking_code))
            .limit(1)
        ).scalar_one_or_none()
        return next_sequence_code(self._config.booking_code_prefix, moment.year, last)

    @staticmethod
    def _payload(booking: SpaceBookingModel) -> dict[str, Any]:
        return {
            "booking_code": booking.booking_code,
            "resource_id": str(booking.resource_id),
            "member_id": str(booking.member_id) if booking.member_id else None,
            "start_time": booking.start_time.isoformat(),
        }

    def _event(self, name: str, booking: SpaceBookingModel, payload: dict[str, Any]) -> DomainEvent:
        return DomainEvent(
            name=name,
            entity_type=SPACE_BOOKING_WORKFLOW.entity_type,
            entity_id=booking.id,
            occurred_at=self._clock.now_utc(),
            payload=payload,
        )

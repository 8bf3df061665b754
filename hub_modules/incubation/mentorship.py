"""
Mentorship Scheduler (``hub_modules.incubation.mentorship``).

Responsibility
--------------
Mentor records, session booking against a mentor's weekly cap and existing
calendar, the session lifecycle, feedback, and open slot listing.

Architecture
------------
Layer: **Modules**.  Conflict detection and slot filtering both use the
kernel half-open interval predicate (``hub_kernel.domain.intervals``);
session status changes are ``SESSION_WORKFLOW`` transitions.

Invariants
----------
- Bookings lock the mentor row, so two bookings for one mentor serialize
  and cannot both pass the cap and conflict checks.
- The weekly cap counts every non-cancelled session in the ISO week of the
  requested start.
- Cancelled and no-show sessions free the mentor's calendar.
- Mentor statistics are recomputed from completed sessions.

Failure Modes
-------------
- ``MentorNotFoundError`` / ``SessionNotFoundError`` / ``ApplicationNotFoundError``.
- ``MentorUnavailableError``, ``WeeklySessionLimitError``,
  ``SchedulingConflictError`` when booking.
- ``FeedbackNotAllowedError`` for feedback on a session that has not
  completed.
- ``InvalidTransitionError`` for lifecycle steps the graph does not allow
  (e.g. cancelling a session that is already in progress).
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable, Mapping
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from hub_kernel.domain.clock import Clock, SystemClock
from hub_kernel.domain.codes import latest_code_order, next_sequence_code
from hub_kernel.domain.events import DomainEvent
from hub_kernel.domain.intervals import TimeRange, find_conflicts
from hub_kernel.exceptions import (
    ApplicationNotFoundError,
    FeedbackNotAllowedError,
    MentorNotFoundError,
    MentorUnavailableError,
    SchedulingConflictError,
    SessionNotFoundError,
    WeeklySessionLimitError,
)
from hub_kernel.logging_config import get_logger
from hub_kernel.services.event_dispatcher import DomainEventDispatcher
from hub_kernel.services.state_machine import StateMachine
from hub_kernel.services.transaction import unit_of_work
from hub_modules.incubation.config import IncubationConfig
from hub_modules.incubation.helpers import (
    as_utc,
    day_slots,
    parse_window,
    week_bounds,
)
from hub_modules.incubation.models import (
    FREEING_SESSION_STATUSES,
    NON_BLOCKING_SESSION_STATUSES,
    WEEKDAYS,
    FeedbackRole,
    SessionStatus,
    SessionType,
)
from hub_modules.incubation.orm import (
    ApplicationModel,
    MentorModel,
    MentorshipSessionModel,
)
from hub_modules.incubation.workflows import SESSION_WORKFLOW

logger = get_logger("modules.incubation.mentorship")


def _validate_availability(availability: Mapping[str, Iterable[str]]) -> dict[str, list[str]]:
    cleaned: dict[str, list[str]] = {}
    for day, windows in availability.items():
        key = day.lower()
        if key not in WEEKDAYS:
            raise ValueError(f"unknown weekday {day!r}")
        windows = list(windows)
        for window in windows:
            parse_window(window)
        cleaned[key] = windows
    return cleaned


class MentorshipService:
    """Mentors, session booking and the session lifecycle."""

    def __init__(
        self,
        session: Session,
        dispatcher: DomainEventDispatcher | None = None,
        clock: Clock | None = None,
        config: IncubationConfig | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._events = dispatcher or DomainEventDispatcher()
        self._clock = clock or SystemClock()
        self._config = config or IncubationConfig()
        self._auto_commit = auto_commit
        self._machine = StateMachine(session, SESSION_WORKFLOW, self._clock)

    def get_mentor(self, mentor_id: UUID) -> MentorModel:
        mentor = self._session.get(MentorModel, mentor_id)
        if mentor is None:
            raise MentorNotFoundError(mentor_id)
        return mentor

    def get(self, session_id: UUID) -> MentorshipSessionModel:
        booking = self._session.get(MentorshipSessionModel, session_id)
        if booking is None:
            raise SessionNotFoundError(session_id)
        return booking

    # ------------------------------------------------------------------
    # Mentors
    # ------------------------------------------------------------------

    def create_mentor(
        self,
        name: str,
        email: str,
        actor_id: UUID,
        *,
        availability: Mapping[str, Iterable[str]] | None = None,
        max_sessions_per_week: int = 5,
        expertise: Iterable[str] = (),
        title: str | None = None,
        company: str | None = None,
        bio: str | None = None,
        user_id: UUID | None = None,
    ) -> MentorModel:
        if max_sessions_per_week < 0:
            raise ValueError("max_sessions_per_week cannot be negative")
        windows = _validate_availability(availability or {})
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="create_mentor",
        ):
            mentor = MentorModel(
                name=name,
                email=email,
                title=title,
                company=company,
                bio=bio,
                user_id=user_id,
                expertise=list(expertise),
                is_active=True,
                availability=windows,
                max_sessions_per_week=max_sessions_per_week,
                total_sessions=0,
                total_mentees=0,
                total_minutes=0,
                created_by_id=actor_id,
            )
            self._session.add(mentor)
            self._session.flush()
            logger.info(
                "mentor_created",
                extra={"mentor_id": str(mentor.id), "days": sorted(windows)},
            )
        return mentor

    def set_active(self, mentor_id: UUID, active: bool, actor_id: UUID) -> MentorModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="set_mentor_active",
        ):
            mentor = self.get_mentor(mentor_id)
            mentor.is_active = active
            mentor.updated_by_id = actor_id
            self._session.flush()
            logger.info("mentor_activity_changed", extra={"mentor_id": str(mentor.id), "active": active})
        return mentor

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    def book_session(
        self,
        mentor_id: UUID,
        application_id: UUID,
        scheduled_at: datetime,
        actor_id: UUID,
        *,
        duration_minutes: int | None = None,
        title: str | None = None,
        description: str | None = None,
        session_type: SessionType = SessionType.ONE_ON_ONE,
        location: str | None = None,
        meeting_link: str | None = None,
    ) -> MentorshipSessionModel:
        """
        Book a pending session.  Checks, in order: mentor active, weekly
        cap, calendar conflicts.
        """
        minutes = duration_minutes or self._config.default_session_minutes
        if not 0 < minutes <= self._config.max_session_minutes:
            raise ValueError(
                f"duration_minutes must be within 1..{self._config.max_session_minutes}, got {minutes}"
            )
        slot = TimeRange.from_duration(as_utc(scheduled_at), minutes)

        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="book_mentorship_session",
        ):
            mentor = self._lock_mentor(mentor_id)
            if self._session.get(ApplicationModel, application_id) is None:
                raise ApplicationNotFoundError(application_id)
            if not mentor.is_active:
                logger.warning("session_booking_rejected_inactive", extra={"mentor_id": str(mentor.id)})
                raise MentorUnavailableError(mentor.id)

            booked = self.weekly_session_count(mentor.id, slot.start)
            if booked >= mentor.max_sessions_per_week:
                logger.warning(
                    "session_booking_rejected_weekly_cap",
                    extra={
                        "mentor_id": str(mentor.id),
                        "booked": booked,
                        "limit": mentor.max_sessions_per_week,
                    },
                )
                raise WeeklySessionLimitError(mentor.id, mentor.max_sessions_per_week)

            conflicts = find_conflicts(slot, self._blocking_ranges(mentor.id, slot))
            if conflicts:
                logger.warning(
                    "session_booking_rejected_conflict",
                    extra={"mentor_id": str(mentor.id), "conflicts": [str(c) for c in conflicts]},
                )
                raise SchedulingConflictError(mentor.id, [str(c) for c in conflicts])

            booking = MentorshipSessionModel(
                code=self._next_code(slot.start),
                mentor_id=mentor.id,
                application_id=application_id,
                title=title or f"Mentorship with {mentor.name}",
                description=description,
                session_type=session_type.value,
                scheduled_at=slot.start,
                duration_minutes=minutes,
                location=location,
                meeting_link=meeting_link,
                action_items=[],
                created_by_id=actor_id,
            )
            outcome = self._machine.initialize(booking, actor_id, notes="Session booked")
            self._events.collect(outcome.events)
            self._events.collect((
                DomainEvent(
                    name="MentorshipSessionBooked",
                    entity_type=SESSION_WORKFLOW.entity_type,
                    entity_id=booking.id,
                    occurred_at=self._clock.now_utc(),
                    payload={
                        "mentor_id": str(mentor.id),
                        "application_id": str(application_id),
                        "scheduled_at": slot.start.isoformat(),
                        "duration_minutes": minutes,
                    },
                ),
            ))
            logger.info(
                "mentorship_session_booked",
                extra={
                    "session_id": str(booking.id),
                    "mentor_id": str(mentor.id),
                    "application_id": str(application_id),
                    "scheduled_at": slot.start,
                },
            )
        return booking

    def weekly_session_count(self, mentor_id: UUID, moment: datetime) -> int:
        """Non-cancelled sessions in the ISO week containing ``moment``."""
        week = week_bounds(moment)
        return self._session.execute(
            select(func.count())
            .select_from(MentorshipSessionModel)
            .where(
                MentorshipSessionModel.mentor_id == mentor_id,
                MentorshipSessionModel.scheduled_at >= week.start,
                MentorshipSessionModel.scheduled_at < week.end,
                MentorshipSessionModel.status.not_in(FREEING_SESSION_STATUSES),
            )
        ).scalar_one()

    def available_slots(
        self,
        mentor_id: UUID,
        day: date,
        slot_minutes: int | None = None,
    ) -> list[TimeRange]:
        """Free future slots inside the mentor's availability windows for ``day``."""
        mentor = self.get_mentor(mentor_id)
        windows = mentor.windows_on(WEEKDAYS[day.weekday()])
        if not windows:
            return []
        slots = day_slots(day, windows, slot_minutes or self._config.slot_minutes)
        if not slots:
            return []
        span = TimeRange(slots[0].start, slots[-1].end)
        taken = list(self._blocking_ranges(mentor.id, span))
        now = self._clock.now_utc()
        return [
            slot for slot in slots
            if slot.start > now and not find_conflicts(slot, taken)
        ]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def confirm(self, session_id: UUID, actor_id: UUID) -> MentorshipSessionModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="confirm_mentorship_session",
        ):
            booking = self.get(session_id)
            self._apply(booking, SessionStatus.CONFIRMED, actor_id, "Session confirmed")
            booking.confirmed_at = self._clock.now_utc()
            self._session.flush()
        return booking

    def start(self, session_id: UUID, actor_id: UUID) -> MentorshipSessionModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="start_mentorship_session",
        ):
            booking = self.get(session_id)
            self._apply(booking, SessionStatus.IN_PROGRESS, actor_id, "Session started")
        return booking

    def complete(
        self,
        session_id: UUID,
        actor_id: UUID,
        summary: str | None = None,
        action_items: Iterable[str] | None = None,
    ) -> MentorshipSessionModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="complete_mentorship_session",
        ):
            booking = self.get(session_id)
            self._apply(booking, SessionStatus.COMPLETED, actor_id, "Session completed")
            booking.ended_at = self._clock.now_utc()
            if summary is not None:
                booking.summary = summary
            if action_items is not None:
                booking.action_items = list(action_items)
            self._session.flush()
            self._refresh_statistics(booking.mentor_id)
        return booking

    def cancel(
        self,
        session_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> MentorshipSessionModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="cancel_mentorship_session",
        ):
            booking = self.get(session_id)
            self._apply(booking, SessionStatus.CANCELLED, actor_id, reason or "Session cancelled")
            booking.cancellation_reason = reason
            booking.cancelled_by_id = actor_id
            self._session.flush()
        return booking

    def mark_no_show(self, session_id: UUID, actor_id: UUID) -> MentorshipSessionModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="mark_session_no_show",
        ):
            booking = self.get(session_id)
            self._apply(booking, SessionStatus.NO_SHOW, actor_id, "No show")
        return booking

    def add_feedback(
        self,
        session_id: UUID,
        role: FeedbackRole,
        rating: int,
        actor_id: UUID,
        feedback: str | None = None,
    ) -> MentorshipSessionModel:
        """Rate a completed session.  A startup's rating feeds the mentor's average."""
        if not 1 <= rating <= 5:
            raise ValueError(f"rating must be between 1 and 5, got {rating}")
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="add_session_feedback",
        ):
            booking = self.get(session_id)
            if booking.status != SessionStatus.COMPLETED.value:
                raise FeedbackNotAllowedError(
                    booking.id, "Feedback can only be added to completed sessions.",
                )
            if role is FeedbackRole.STARTUP:
                booking.startup_rating = rating
                booking.startup_feedback = feedback
            else:
                booking.mentor_rating = rating
                booking.mentor_feedback = feedback
            booking.updated_by_id = actor_id
            self._session.flush()
            if role is FeedbackRole.STARTUP:
                self._refresh_statistics(booking.mentor_id)
            logger.info(
                "session_feedback_added",
                extra={"session_id": str(booking.id), "role": role.value, "rating": rating},
            )
        return booking

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply(
        self,
        booking: MentorshipSessionModel,
        target: SessionStatus,
        actor_id: UUID,
        notes: str,
    ) -> None:
        outcome = self._machine.transition(
            booking, target, actor_id, notes,
            payload={
                "mentor_id": str(booking.mentor_id),
                "application_id": str(booking.application_id),
            },
        )
        self._events.collect(outcome.events)

    def _blocking_ranges(
        self, mentor_id: UUID, window: TimeRange,
    ) -> list[tuple[UUID, TimeRange]]:
        """Sessions that may overlap ``window`` and still hold the mentor's time."""
        earliest = window.start - timedelta(minutes=self._config.max_session_minutes)
        rows = self._session.execute(
            select(MentorshipSessionModel)
            .where(
                MentorshipSessionModel.mentor_id == mentor_id,
                MentorshipSessionModel.scheduled_at < window.end,
                MentorshipSessionModel.scheduled_at > earliest,
                MentorshipSessionModel.status.not_in(NON_BLOCKING_SESSION_STATUSES),
            )
            .order_by(MentorshipSessionModel.scheduled_at)
        ).scalars().all()
        return [
            (row.id, TimeRange.from_duration(row.scheduled_at, row.duration_minutes))
            for row in rows
        ]

    def _refresh_statistics(self, mentor_id: UUID) -> None:
        completed = MentorshipSessionModel.status == SessionStatus.COMPLETED.value
        of_mentor = MentorshipSessionModel.mentor_id == mentor_id
        total, minutes, average = self._session.execute(
            select(
                func.count(),
                func.coalesce(func.sum(MentorshipSessionModel.duration_minutes), 0),
                func.avg(MentorshipSessionModel.startup_rating),
            ).where(of_mentor, completed)
        ).one()
        mentees = self._session.execute(
            select(func.count(func.distinct(MentorshipSessionModel.application_id))).where(of_mentor)
        ).scalar_one()

        mentor = self.get_mentor(mentor_id)
        mentor.total_sessions = int(total)
        mentor.total_minutes = int(minutes)
        mentor.total_mentees = int(mentees)
        mentor.average_rating = (
            None if average is None
            else Decimal(str(average)).quantize(Decimal("0.01"))
        )
        self._session.flush()
        logger.info(
            "mentor_statistics_refreshed",
            extra={
                "mentor_id": str(mentor_id),
                "total_sessions": mentor.total_sessions,
                "average_rating": mentor.average_rating,
            },
        )

    def _lock_mentor(self, mentor_id: UUID) -> MentorModel:
        mentor = self._session.execute(
            select(MentorModel)
            .where(MentorModel.id == mentor_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if mentor is None:
            raise MentorNotFoundError(mentor_id)
        return mentor

    def _next_code(self, moment: datetime) -> str:
        prefix = f"{self._config.session_code_prefix}-{moment.year}-"
        last = self._session.execute(
            select(MentorshipSessionModel.code)
            .where(MentorshipSessionModel.code.startswith(prefix))
            .order_by(*latest_code_order(MentorshipSessionModel.code))
            .limit(1)
        ).scalar_one_or_none()
        return next_sequence_code(self._config.session_code_prefix, moment.year, last)

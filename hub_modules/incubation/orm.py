"""
Module: hub_modules.incubation.orm
Responsibility: SQLAlchemy ORM persistence models for cohorts, applications,
    mentors and mentorship sessions.
Architecture position: Modules > Incubation > ORM.  Inherits from TrackedBase
    and StatusTrackedMixin (hub_kernel.db.base).

Invariants enforced:
    - Cohort.accepted_count moves only through ApplicationService.accept,
      after the capacity check and in the same transaction as the status
      change.
    - Application and session codes are unique.
    - Mentor statistics are recomputed from completed sessions, never
      incremented blindly.

Failure modes:
    - IntegrityError on duplicate cohort slug, application code or session
      code.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hub_kernel.db.base import StatusTrackedMixin, TrackedBase


# =============================================================================
# CohortModel
# =============================================================================


class CohortModel(StatusTrackedMixin, TrackedBase):
    """
    ORM model for cohorts (one intake of the program).

    Maps to: hub_modules.incubation.models.Cohort (frozen dataclass).
    """

    __tablename__ = "incubation_cohorts"

    __table_args__ = (
        Index("idx_cohort_slug", "slug", unique=True),
        Index("idx_cohort_status", "status"),
    )

    name: Mapped[str] = mapped_column(String(255))
    slug: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    application_start: Mapped[datetime | None] = mapped_column(nullable=True)
    application_end: Mapped[datetime | None] = mapped_column(nullable=True)
    start_date: Mapped[datetime | None] = mapped_column(nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(nullable=True)
    capacity: Mapped[int] = mapped_column(default=10)
    accepted_count: Mapped[int] = mapped_column(default=0)
    eligibility_criteria: Mapped[list[str]] = mapped_column(JSON, default=list)
    benefits: Mapped[list[str]] = mapped_column(JSON, default=list)
    program_manager_id: Mapped[UUID | None] = mapped_column(nullable=True)

    applications: Mapped[list["ApplicationModel"]] = relationship(back_populates="cohort")

    def is_accepting_applications(self, now: datetime) -> bool:
        """Open for applications and not past the application deadline."""
        if self.status != "open_for_applications":
            return False
        if self.application_end is not None and now > self.application_end:
            return False
        return True

    @property
    def has_capacity(self) -> bool:
        return self.accepted_count < self.capacity

    @property
    def available_spots(self) -> int:
        return max(0, self.capacity - self.accepted_count)

    def to_dto(self):
        """Convert ORM model to frozen Cohort DTO."""
        from hub_modules.incubation.models import Cohort, CohortStatus
        return Cohort(
            id=self.id,
            name=self.name,
            slug=self.slug,
            status=CohortStatus(self.status),
            capacity=self.capacity,
            accepted_count=self.accepted_count,
            application_start=self.application_start,
            application_end=self.application_end,
            start_date=self.start_date,
            end_date=self.end_date,
        )

    def __repr__(self) -> str:
        return f"<CohortModel {self.slug} {self.status} {self.accepted_count}/{self.capacity}>"


# =============================================================================
# ApplicationModel
# =============================================================================


class ApplicationModel(StatusTrackedMixin, TrackedBase):
    """
    ORM model for startup applications.

    Maps to: hub_modules.incubation.models.Application (frozen dataclass).
    """

    __tablename__ = "incubation_applications"

    __table_args__ = (
        Index("idx_application_code", "code", unique=True),
        Index("idx_application_cohort_status", "cohort_id", "status"),
    )

    code: Mapped[str] = mapped_column(String(32))
    cohort_id: Mapped[UUID] = mapped_column(ForeignKey("incubation_cohorts.id"))
    user_id: Mapped[UUID | None] = mapped_column(nullable=True)

    startup_name: Mapped[str] = mapped_column(String(255))
    email: Mapped[str] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    founders_data: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    problem_statement: Mapped[str | None] = mapped_column(Text, nullable=True)
    solution: Mapped[str | None] = mapped_column(Text, nullable=True)
    industry: Mapped[str | None] = mapped_column(String(100), nullable=True)
    business_model: Mapped[str | None] = mapped_column(Text, nullable=True)
    stage: Mapped[str] = mapped_column(String(30), default="idea")
    traction: Mapped[str | None] = mapped_column(Text, nullable=True)
    funding_raised: Mapped[Decimal | None] = mapped_column(nullable=True)
    funding_currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    pitch_deck_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    website_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    why_apply: Mapped[str | None] = mapped_column(Text, nullable=True)
    source: Mapped[str | None] = mapped_column(String(100), nullable=True)

    score: Mapped[Decimal | None] = mapped_column(nullable=True)
    evaluation_scores: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    internal_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    interview_scheduled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    interview_location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    interview_meeting_link: Mapped[str | None] = mapped_column(String(500), nullable=True)
    interview_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    decision_at: Mapped[datetime | None] = mapped_column(nullable=True)
    decided_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    onboarded_at: Mapped[datetime | None] = mapped_column(nullable=True)
    onboarded_member_id: Mapped[UUID | None] = mapped_column(nullable=True)

    cohort: Mapped[CohortModel] = relationship(back_populates="applications")

    @property
    def primary_founder_name(self) -> str | None:
        if not self.founders_data:
            return None
        return self.founders_data[0].get("name")

    def to_dto(self):
        """Convert ORM model to frozen Application DTO."""
        from hub_modules.incubation.models import Application, ApplicationStatus, StartupStage
        return Application(
            id=self.id,
            code=self.code,
            cohort_id=self.cohort_id,
            startup_name=self.startup_name,
            email=self.email,
            status=ApplicationStatus(self.status),
            stage=StartupStage(self.stage),
            score=self.score,
            interview_scheduled_at=self.interview_scheduled_at,
            decision_at=self.decision_at,
            rejection_reason=self.rejection_reason,
            onboarded_at=self.onboarded_at,
        )

    def __repr__(self) -> str:
        return f"<ApplicationModel {self.code} {self.startup_name} {self.status}>"


# =============================================================================
# MentorModel
# =============================================================================


class MentorModel(TrackedBase):
    """
    ORM model for mentors.

    ``availability`` maps lowercase weekday names to lists of
    ``"HH:MM-HH:MM"`` windows, e.g. ``{"monday": ["09:00-12:00"]}``.
    """

    __tablename__ = "incubation_mentors"

    __table_args__ = (
        Index("idx_mentor_active", "is_active"),
    )

    user_id: Mapped[UUID | None] = mapped_column(nullable=True)
    name: Mapped[str] = mapped_column(String(255))
    email: Mapped[str] = mapped_column(String(255))
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    company: Mapped[str | None] = mapped_column(String(255), nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    expertise: Mapped[list[str]] = mapped_column(JSON, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    availability: Mapped[dict[str, list[str]]] = mapped_column(JSON, default=dict)
    max_sessions_per_week: Mapped[int] = mapped_column(default=5)

    total_sessions: Mapped[int] = mapped_column(default=0)
    total_mentees: Mapped[int] = mapped_column(default=0)
    total_minutes: Mapped[int] = mapped_column(default=0)
    average_rating: Mapped[Decimal | None] = mapped_column(nullable=True)

    sessions: Mapped[list["MentorshipSessionModel"]] = relationship(back_populates="mentor")

    @property
    def total_hours(self) -> Decimal:
        return (Decimal(self.total_minutes) / 60).quantize(Decimal("0.01"))

    def windows_on(self, weekday: str) -> list[str]:
        return list((self.availability or {}).get(weekday.lower(), []))

    def __repr__(self) -> str:
        return f"<MentorModel {self.name} active={self.is_active}>"


# =============================================================================
# MentorshipSessionModel
# =============================================================================


class MentorshipSessionModel(StatusTrackedMixin, TrackedBase):
    """
    ORM model for mentorship sessions.

    Maps to: hub_modules.incubation.models.MentorshipSession (frozen dataclass).
    """

    __tablename__ = "incubation_mentorship_sessions"

    __table_args__ = (
        Index("idx_session_code", "code", unique=True),
        Index("idx_session_mentor_time", "mentor_id", "scheduled_at"),
        Index("idx_session_application", "application_id"),
    )

    code: Mapped[str] = mapped_column(String(32))
    mentor_id: Mapped[UUID] = mapped_column(ForeignKey("incubation_mentors.id"))
    application_id: Mapped[UUID] = mapped_column(ForeignKey("incubation_applications.id"))
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    session_type: Mapped[str] = mapped_column(String(20), default="one_on_one")

    scheduled_at: Mapped[datetime] = mapped_column()
    duration_minutes: Mapped[int] = mapped_column(default=60)
    ended_at: Mapped[datetime | None] = mapped_column(nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    meeting_link: Mapped[str | None] = mapped_column(String(500), nullable=True)

    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    action_items: Mapped[list[str]] = mapped_column(JSON, default=list)
    startup_rating: Mapped[int | None] = mapped_column(nullable=True)
    startup_feedback: Mapped[str | None] = mapped_column(Text, nullable=True)
    mentor_rating: Mapped[int | None] = mapped_column(nullable=True)
    mentor_feedback: Mapped[str | None] = mapped_column(Text, nullable=True)

    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_by_id: Mapped[UUID | None] = mapped_column(nullable=True)

    mentor: Mapped[MentorModel] = relationship(back_populates="sessions")
    application: Mapped[ApplicationModel] = relationship()

    @property
    def expected_end(self) -> datetime:
        return self.scheduled_at + timedelta(minutes=self.duration_minutes)

    @property
    def actual_duration_minutes(self) -> int | None:
        if self.ended_at is None:
            return None
        return int((self.ended_at - self.scheduled_at).total_seconds() // 60)

    def to_dto(self):
        """Convert ORM model to frozen MentorshipSession DTO."""
        from hub_modules.incubation.models import MentorshipSession, SessionStatus, SessionType
        return MentorshipSession(
            id=self.id,
            code=self.code,
            mentor_id=self.mentor_id,
            application_id=self.application_id,
            title=self.title,
            session_type=SessionType(self.session_type),
            status=SessionStatus(self.status),
            scheduled_at=self.scheduled_at,
            duration_minutes=self.duration_minutes,
            ended_at=self.ended_at,
            summary=self.summary,
            action_items=tuple(self.action_items or ()),
            startup_rating=self.startup_rating,
            mentor_rating=self.mentor_rating,
        )

    def __repr__(self) -> str:
        return f"<MentorshipSessionModel {self.code} {self.status} at {self.scheduled_at}>"

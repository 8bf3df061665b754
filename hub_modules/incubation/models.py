"""
Incubation Domain Models.

Cohorts (program intakes), startup applications moving through the
selection pipeline, mentors and the mentorship sessions booked with them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from hub_kernel.logging_config import get_logger

logger = get_logger("modules.incubation.models")


class ApplicationStatus(str, Enum):
    """Selection pipeline stages."""
    SUBMITTED = "submitted"
    SCREENING = "screening"
    INTERVIEW_SCHEDULED = "interview_scheduled"
    INTERVIEWED = "interviewed"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"

    @property
    def in_pipeline(self) -> bool:
        return self in (
            ApplicationStatus.SUBMITTED,
            ApplicationStatus.SCREENING,
            ApplicationStatus.INTERVIEW_SCHEDULED,
            ApplicationStatus.INTERVIEWED,
        )


class CohortStatus(str, Enum):
    DRAFT = "draft"
    OPEN_FOR_APPLICATIONS = "open_for_applications"
    REVIEWING = "reviewing"
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class SessionStatus(str, Enum):
    """Mentorship session states."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

    @property
    def can_cancel(self) -> bool:
        return self in (SessionStatus.PENDING, SessionStatus.CONFIRMED)

    @property
    def blocks_calendar(self) -> bool:
        """Whether the session still occupies the mentor's time."""
        return self not in (SessionStatus.CANCELLED, SessionStatus.NO_SHOW)


class SessionType(str, Enum):
    ONE_ON_ONE = "one_on_one"
    GROUP = "group"
    WORKSHOP = "workshop"
    OFFICE_HOURS = "office_hours"


class StartupStage(str, Enum):
    IDEA = "idea"
    MVP = "mvp"
    EARLY_TRACTION = "early_traction"
    GROWTH = "growth"
    SCALING = "scaling"


class FeedbackRole(str, Enum):
    """Who is rating a completed session."""
    STARTUP = "startup"
    MENTOR = "mentor"


# Statuses that never count towards a mentor's weekly cap
FREEING_SESSION_STATUSES = (SessionStatus.CANCELLED.value,)

# Statuses that do not occupy the mentor's calendar
NON_BLOCKING_SESSION_STATUSES = tuple(
    s.value for s in SessionStatus if not s.blocks_calendar
)

WEEKDAYS = (
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
)


# -----------------------------------------------------------------------------
# Value objects and DTOs
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class ApplicationData:
    """What a startup submits."""
    startup_name: str
    email: str
    phone: str | None = None
    founders: tuple[dict[str, Any], ...] = ()
    problem_statement: str | None = None
    solution: str | None = None
    industry: str | None = None
    business_model: str | None = None
    stage: StartupStage = StartupStage.IDEA
    traction: str | None = None
    funding_raised: Decimal | None = None
    funding_currency: str | None = None
    pitch_deck_url: str | None = None
    website_url: str | None = None
    why_apply: str | None = None
    source: str | None = None
    user_id: UUID | None = None

    def __post_init__(self) -> None:
        if not self.startup_name or not self.startup_name.strip():
            raise ValueError("startup_name is required")
        if not self.email or "@" not in self.email:
            raise ValueError(f"invalid email: {self.email!r}")


@dataclass(frozen=True)
class Cohort:
    """Read model of a cohort."""
    id: UUID
    name: str
    slug: str
    status: CohortStatus
    capacity: int
    accepted_count: int
    application_start: datetime | None = None
    application_end: datetime | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


@dataclass(frozen=True)
class Application:
    """Read model of an application."""
    id: UUID
    code: str
    cohort_id: UUID
    startup_name: str
    email: str
    status: ApplicationStatus
    stage: StartupStage
    score: Decimal | None = None
    interview_scheduled_at: datetime | None = None
    decision_at: datetime | None = None
    rejection_reason: str | None = None
    onboarded_at: datetime | None = None


@dataclass(frozen=True)
class MentorshipSession:
    """Read model of a mentorship session."""
    id: UUID
    code: str
    mentor_id: UUID
    application_id: UUID
    title: str
    session_type: SessionType
    status: SessionStatus
    scheduled_at: datetime
    duration_minutes: int
    ended_at: datetime | None = None
    summary: str | None = None
    action_items: tuple[str, ...] = ()
    startup_rating: int | None = None
    mentor_rating: int | None = None


@dataclass(frozen=True)
class CohortStatistics:
    """Pipeline counts for one cohort."""
    cohort_id: UUID
    total_applications: int
    by_status: dict[str, int] = field(default_factory=dict)
    accepted: int = 0
    capacity: int = 0
    available_spots: int = 0
    acceptance_rate: float = 0.0

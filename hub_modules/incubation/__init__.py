"""
Incubation Module (``hub_modules.incubation``).

Responsibility
--------------
Cohorts (program intakes), the startup application pipeline from
submission to onboarding, mentors and mentorship sessions.

Architecture position
---------------------
**Modules layer** -- models, workflows, config and transaction-owning
services over the kernel ``StateMachine`` and interval predicate.

Invariants enforced
-------------------
* Application, cohort and session statuses change only through their
  workflows and are recorded in the status history.
* Accepting an application checks cohort capacity before any mutation.
* A mentor's sessions never overlap (half-open intervals) and never exceed
  the weekly cap.

Failure modes
-------------
* ``ApplicationError`` subclasses for pipeline problems.
* ``SchedulingError`` subclasses for booking and feedback problems.
* ``InvalidTransitionError`` for illegal status changes.
"""

from hub_modules.incubation.cohorts import CohortService
from hub_modules.incubation.config import IncubationConfig
from hub_modules.incubation.mentorship import MentorshipService
from hub_modules.incubation.models import (
    Application,
    ApplicationData,
    ApplicationStatus,
    Cohort,
    CohortStatistics,
    CohortStatus,
    FeedbackRole,
    MentorshipSession,
    SessionStatus,
    SessionType,
    StartupStage,
)
from hub_modules.incubation.service import ApplicationService
from hub_modules.incubation.workflows import (
    APPLICATION_WORKFLOW,
    COHORT_WORKFLOW,
    SESSION_WORKFLOW,
)

__all__ = [
    "APPLICATION_WORKFLOW",
    "COHORT_WORKFLOW",
    "SESSION_WORKFLOW",
    "Application",
    "ApplicationData",
    "ApplicationService",
    "ApplicationStatus",
    "Cohort",
    "CohortService",
    "CohortStatistics",
    "CohortStatus",
    "FeedbackRole",
    "IncubationConfig",
    "MentorshipService",
    "MentorshipSession",
    "SessionStatus",
    "SessionType",
    "StartupStage",
]

"""
Application Pipeline Service (``hub_modules.incubation.service``).

Responsibility
--------------
Startup applications from submission to decision and onboarding: the
named pipeline steps (screening, interview, accept, reject, withdraw), the
evaluation score, and the cohort capacity check on acceptance.

Architecture
------------
Layer: **Modules**.  Every status change is an ``APPLICATION_WORKFLOW``
transition through the kernel ``StateMachine``; the field updates each
step carries (interview time, decision actor, rejection reason) are written
in the same transaction as the status change.

Invariants
----------
- A new application starts in submitted with one ``None -> submitted``
  history entry.
- Accepting checks the edge first, then locks the cohort row and checks
  its capacity; a full cohort raises before any field or status changes.
  On success ``accepted_count`` goes up by exactly one.
- Rejected, accepted and withdrawn applications never transition again.
- An application is onboarded at most once, and only after acceptance.

Failure Modes
-------------
- ``CohortNotFoundError`` / ``ApplicationNotFoundError``.
- ``CohortNotAcceptingError`` when submitting to a closed cohort.
- ``CohortCapacityError`` when accepting into a full cohort.
- ``InvalidTransitionError`` for steps the graph does not allow.
- ``OnboardingError`` for onboarding a non-accepted or already onboarded
  application.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from hub_kernel.domain.clock import Clock, SystemClock
from hub_kernel.domain.codes import latest_code_order, next_sequence_code
from hub_kernel.domain.events import DomainEvent
from hub_kernel.exceptions import (
    ApplicationNotFoundError,
    CohortCapacityError,
    CohortNotAcceptingError,
    CohortNotFoundError,
    InvalidTransitionError,
    OnboardingError,
)
from hub_kernel.logging_config import get_logger
from hub_kernel.services.event_dispatcher import DomainEventDispatcher
from hub_kernel.services.state_machine import StateMachine, TransitionOutcome
from hub_kernel.services.transaction import unit_of_work
from hub_modules.incubation.config import IncubationConfig
from hub_modules.incubation.helpers import compute_score
from hub_modules.incubation.models import ApplicationData, ApplicationStatus
from hub_modules.incubation.orm import ApplicationModel, CohortModel
from hub_modules.incubation.workflows import APPLICATION_WORKFLOW

logger = get_logger("modules.incubation.service")


def _interview_note(when: datetime) -> str:
    return f"Interview scheduled for {when:%b} {when.day}, {when:%Y %H:%M}"


class ApplicationService:
    """
    Selection pipeline for one application at a time.

    Contract
    --------
    Returns ORM rows (``ApplicationModel``); call ``to_dto()`` for a frozen
    view.  Domain events are delivered after commit.
    """

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
        self._machine = StateMachine(session, APPLICATION_WORKFLOW, self._clock)

    def get(self, application_id: UUID) -> ApplicationModel:
        application = self._session.get(ApplicationModel, application_id)
        if application is None:
            raise ApplicationNotFoundError(application_id)
        return application

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(
        self,
        cohort_id: UUID,
        data: ApplicationData,
        actor_id: UUID,
    ) -> ApplicationModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="submit_application",
        ):
            cohort = self._session.get(CohortModel, cohort_id)
            if cohort is None:
                raise CohortNotFoundError(cohort_id)
            now = self._clock.now_utc()
            if not cohort.is_accepting_applications(now):
                logger.warning(
                    "application_rejected_cohort_closed",
                    extra={"cohort_id": str(cohort_id), "cohort_status": cohort.status},
                )
                raise CohortNotAcceptingError(cohort_id)

            application = ApplicationModel(
                code=self._next_code(now),
                cohort_id=cohort.id,
                user_id=data.user_id,
                startup_name=data.startup_name.strip(),
                email=data.email,
                phone=data.phone,
                founders_data=[dict(f) for f in data.founders],
                problem_statement=data.problem_statement,
                solution=data.solution,
                industry=data.industry,
                business_model=data.business_model,
                stage=data.stage.value,
                traction=data.traction,
                funding_raised=data.funding_raised,
                funding_currency=data.funding_currency,
                pitch_deck_url=data.pitch_deck_url,
                website_url=data.website_url,
                why_apply=data.why_apply,
                source=data.source,
                evaluation_scores={},
                created_by_id=actor_id,
            )
            outcome = self._machine.initialize(
                application, actor_id, notes="Application submitted",
            )
            self._events.collect(outcome.events)
            self._events.collect((
                self._event("ApplicationSubmitted", application, {"code": application.code}),
            ))
            logger.info(
                "application_submitted",
                extra={
                    "application_id": str(application.id),
                    "code": application.code,
                    "cohort_id": str(cohort.id),
                },
            )
        return application

    # ------------------------------------------------------------------
    # Pipeline steps
    # ------------------------------------------------------------------

    def transition(
        self,
        application_id: UUID,
        target: ApplicationStatus,
        actor_id: UUID,
        notes: str | None = None,
    ) -> TransitionOutcome:
        """
        Move an application along its graph.  The accepted edge enforces
        cohort capacity and records the decision, exactly as ``accept`` does.
        """
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="transition_application",
        ):
            application = self._lock(application_id)
            if target is ApplicationStatus.ACCEPTED:
                return self._accept(application, actor_id, notes)
            outcome = self._machine.transition(
                application, target, actor_id, notes, payload=self._payload(application),
            )
            self._events.collect(outcome.events)
        return outcome

    def start_screening(
        self, application_id: UUID, actor_id: UUID, notes: str | None = None,
    ) -> ApplicationModel:
        self.transition(application_id, ApplicationStatus.SCREENING, actor_id, notes or "Screening started")
        return self.get(application_id)

    def schedule_interview(
        self,
        application_id: UUID,
        scheduled_at: datetime,
        actor_id: UUID,
        location: str | None = None,
        meeting_link: str | None = None,
    ) -> ApplicationModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="schedule_interview",
        ):
            application = self._lock(application_id)
            self._require_edge(application, ApplicationStatus.INTERVIEW_SCHEDULED)
            application.interview_scheduled_at = scheduled_at
            application.interview_location = location or self._config.default_interview_location
            application.interview_meeting_link = meeting_link
            outcome = self._machine.transition(
                application, ApplicationStatus.INTERVIEW_SCHEDULED, actor_id,
                notes=_interview_note(scheduled_at),
                payload={**self._payload(application), "scheduled_at": scheduled_at.isoformat()},
            )
            self._events.collect(outcome.events)
        return application

    def complete_interview(
        self, application_id: UUID, actor_id: UUID, notes: str | None = None,
    ) -> ApplicationModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="complete_interview",
        ):
            application = self._lock(application_id)
            self._require_edge(application, ApplicationStatus.INTERVIEWED)
            application.interview_notes = notes
            outcome = self._machine.transition(
                application, ApplicationStatus.INTERVIEWED, actor_id, notes="Interview completed",
                payload=self._payload(application),
            )
            self._events.collect(outcome.events)
        return application

    def accept(
        self, application_id: UUID, actor_id: UUID, notes: str | None = None,
    ) -> ApplicationModel:
        self.transition(application_id, ApplicationStatus.ACCEPTED, actor_id, notes)
        return self.get(application_id)

    def reject(
        self, application_id: UUID, actor_id: UUID, reason: str | None = None,
    ) -> ApplicationModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="reject_application",
        ):
            application = self._lock(application_id)
            self._require_edge(application, ApplicationStatus.REJECTED)
            application.decision_at = self._clock.now_utc()
            application.decided_by_id = actor_id
            application.rejection_reason = reason
            outcome = self._machine.transition(
                application, ApplicationStatus.REJECTED, actor_id, notes=reason,
                payload={**self._payload(application), "reason": reason},
            )
            self._events.collect(outcome.events)
        return application

    def withdraw(
        self, application_id: UUID, actor_id: UUID, reason: str | None = None,
    ) -> ApplicationModel:
        self.transition(
            application_id, ApplicationStatus.WITHDRAWN, actor_id,
            reason or "Withdrawn by applicant",
        )
        return self.get(application_id)

    def update_score(
        self,
        application_id: UUID,
        scores: Mapping[str, float | int | Decimal],
        actor_id: UUID,
    ) -> Decimal | None:
        """Store per-criterion scores; the overall score is their mean times the scale."""
        for criterion, value in scores.items():
            if Decimal(str(value)) < 0:
                raise ValueError(f"score for {criterion!r} cannot be negative")
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="update_application_score",
        ):
            application = self.get(application_id)
            application.evaluation_scores = {k: str(v) for k, v in scores.items()}
            application.score = compute_score(scores, self._config.score_scale)
            application.updated_by_id = actor_id
            self._session.flush()
            logger.info(
                "application_scored",
                extra={
                    "application_id": str(application.id),
                    "criteria": sorted(scores),
                    "score": application.score,
                },
            )
        return application.score

    def onboard(
        self,
        application_id: UUID,
        actor_id: UUID,
        member_id: UUID | None = None,
    ) -> ApplicationModel:
        """Hand an accepted startup over to the program."""
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="onboard_application",
        ):
            application = self._lock(application_id)
            if application.status != ApplicationStatus.ACCEPTED.value:
                raise OnboardingError(application.id, f"status is {application.status}")
            if application.onboarded_at is not None:
                raise OnboardingError(application.id, "already onboarded")
            application.onboarded_at = self._clock.now_utc()
            application.onboarded_member_id = member_id
            application.updated_by_id = actor_id
            self._session.flush()
            self._events.collect((
                self._event("ApplicationOnboarded", application, {
                    **self._payload(application),
                    "member_id": str(member_id) if member_id else None,
                }),
            ))
            logger.info(
                "application_onboarded",
                extra={"application_id": str(application.id), "cohort_id": str(application.cohort_id)},
            )
        return application

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _accept(
        self, application: ApplicationModel, actor_id: UUID, notes: str | None,
    ) -> TransitionOutcome:
        self._require_edge(application, ApplicationStatus.ACCEPTED)
        cohort = self._session.execute(
            select(CohortModel)
            .where(CohortModel.id == application.cohort_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if cohort is None:
            raise CohortNotFoundError(application.cohort_id)
        if not cohort.has_capacity:
            logger.warning(
                "application_accept_rejected_capacity",
                extra={
                    "application_id": str(application.id),
                    "cohort_id": str(cohort.id),
                    "capacity": cohort.capacity,
                    "accepted_count": cohort.accepted_count,
                },
            )
            raise CohortCapacityError(cohort.id, cohort.capacity, cohort.accepted_count)

        application.decision_at = self._clock.now_utc()
        application.decided_by_id = actor_id
        outcome = self._machine.transition(
            application, ApplicationStatus.ACCEPTED, actor_id, notes,
            payload=self._payload(application),
        )
        cohort.accepted_count += 1
        self._session.flush()
        self._events.collect(outcome.events)
        logger.info(
            "application_accepted",
            extra={
                "application_id": str(application.id),
                "cohort_id": str(cohort.id),
                "accepted_count": cohort.accepted_count,
                "capacity": cohort.capacity,
            },
        )
        return outcome

    def _require_edge(self, application: ApplicationModel, target: ApplicationStatus) -> None:
        """Reject an illegal step before any field is written."""
        if not APPLICATION_WORKFLOW.can_transition(application.status, target):
            logger.warning(
                "application_step_rejected",
                extra={
                    "application_id": str(application.id),
                    "from_status": application.status,
                    "to_status": target.value,
                },
            )
            raise InvalidTransitionError(
                APPLICATION_WORKFLOW.entity_type, application.status, target.value,
            )

    def _lock(self, application_id: UUID) -> ApplicationModel:
        application = self._session.execute(
            select(ApplicationModel)
            .where(ApplicationModel.id == application_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if application is None:
            raise ApplicationNotFoundError(application_id)
        return application

    def _next_code(self, now: datetime) -> str:
        prefix = f"{self._config.application_code_prefix}-{now.year}-"
        last = self._session.execute(
            select(ApplicationModel.code)
            .where(ApplicationModel.code.startswith(prefix))
            .order_by(*latest_code_order(ApplicationModel.code))
            .limit(1)
        ).scalar_one_or_none()
        return next_sequence_code(self._config.application_code_prefix, now.year, last)

    @staticmethod
    def _payload(application: ApplicationModel) -> dict[str, Any]:
        return {"cohort_id": str(application.cohort_id), "code": application.code}

    def _event(
        self, name: str, application: ApplicationModel, payload: dict[str, Any],
    ) -> DomainEvent:
        return DomainEvent(
            name=name,
            entity_type=APPLICATION_WORKFLOW.entity_type,
            entity_id=application.id,
            occurred_at=self._clock.now_utc(),
            payload=payload,
        )

"""
Cohort Service (``hub_modules.incubation.cohorts``).

Cohort administration: creation, the intake lifecycle
(draft -> open_for_applications -> reviewing -> active -> completed ->
archived), duplication for the next intake, and pipeline statistics.
Status changes are ``COHORT_WORKFLOW`` transitions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from hub_kernel.domain.clock import Clock, SystemClock
from hub_kernel.exceptions import CohortNotFoundError
from hub_kernel.logging_config import get_logger
from hub_kernel.services.event_dispatcher import DomainEventDispatcher
from hub_kernel.services.state_machine import StateMachine, TransitionOutcome
from hub_kernel.services.transaction import unit_of_work
from hub_modules.incubation.config import IncubationConfig
from hub_modules.incubation.helpers import slugify
from hub_modules.incubation.models import ApplicationStatus, CohortStatistics, CohortStatus
from hub_modules.incubation.orm import ApplicationModel, CohortModel
from hub_modules.incubation.workflows import COHORT_WORKFLOW

logger = get_logger("modules.incubation.cohorts")


class CohortService:
    """Cohort lifecycle and statistics."""

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
        self._machine = StateMachine(session, COHORT_WORKFLOW, self._clock)

    def get(self, cohort_id: UUID) -> CohortModel:
        cohort = self._session.get(CohortModel, cohort_id)
        if cohort is None:
            raise CohortNotFoundError(cohort_id)
        return cohort

    def create_cohort(
        self,
        name: str,
        actor_id: UUID,
        *,
        capacity: int | None = None,
        description: str | None = None,
        application_start: datetime | None = None,
        application_end: datetime | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        eligibility_criteria: Iterable[str] = (),
        benefits: Iterable[str] = (),
        program_manager_id: UUID | None = None,
    ) -> CohortModel:
        """Create a draft cohort."""
        capacity = self._config.default_cohort_capacity if capacity is None else capacity
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        if start_date and end_date and end_date < start_date:
            raise ValueError("end_date precedes start_date")
        if application_start and application_end and application_end < application_start:
            raise ValueError("application_end precedes application_start")

        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="create_cohort",
        ):
            cohort = CohortModel(
                name=name,
                slug=slugify(name),
                description=description,
                application_start=application_start,
                application_end=application_end,
                start_date=start_date,
                end_date=end_date,
                capacity=capacity,
                accepted_count=0,
                eligibility_criteria=list(eligibility_criteria),
                benefits=list(benefits),
                program_manager_id=program_manager_id,
                created_by_id=actor_id,
            )
            outcome = self._machine.initialize(cohort, actor_id, notes="Cohort created")
            self._events.collect(outcome.events)
            logger.info(
                "cohort_created",
                extra={"cohort_id": str(cohort.id), "cohort_name": name, "capacity": capacity},
            )
        return cohort

    def transition(
        self,
        cohort_id: UUID,
        target: CohortStatus,
        actor_id: UUID,
        notes: str | None = None,
    ) -> TransitionOutcome:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="transition_cohort",
        ):
            cohort = self._lock(cohort_id)
            outcome = self._machine.transition(
                cohort, target, actor_id, notes, payload={"name": cohort.name},
            )
            self._events.collect(outcome.events)
        return outcome

    def open_for_applications(self, cohort_id: UUID, actor_id: UUID) -> TransitionOutcome:
        return self.transition(
            cohort_id, CohortStatus.OPEN_FOR_APPLICATIONS, actor_id, "Applications opened",
        )

    def close_applications(self, cohort_id: UUID, actor_id: UUID) -> TransitionOutcome:
        return self.transition(cohort_id, CohortStatus.REVIEWING, actor_id, "Applications closed")

    def activate(self, cohort_id: UUID, actor_id: UUID) -> TransitionOutcome:
        return self.transition(cohort_id, CohortStatus.ACTIVE, actor_id, "Program started")

    def complete(self, cohort_id: UUID, actor_id: UUID) -> TransitionOutcome:
        return self.transition(cohort_id, CohortStatus.COMPLETED, actor_id, "Program completed")

    def archive(self, cohort_id: UUID, actor_id: UUID) -> TransitionOutcome:
        return self.transition(cohort_id, CohortStatus.ARCHIVED, actor_id, "Cohort archived")

    def duplicate(
        self,
        cohort_id: UUID,
        name: str,
        actor_id: UUID,
        **overrides,
    ) -> CohortModel:
        """New draft cohort carrying over the source's description, capacity and criteria."""
        source = self.get(cohort_id)
        options = {
            "capacity": source.capacity,
            "description": source.description,
            "eligibility_criteria": list(source.eligibility_criteria or ()),
            "benefits": list(source.benefits or ()),
            "program_manager_id": source.program_manager_id,
        }
        options.update(overrides)
        cohort = self.create_cohort(name, actor_id, **options)
        logger.info(
            "cohort_duplicated",
            extra={"source_id": str(source.id), "new_id": str(cohort.id)},
        )
        return cohort

    def statistics(self, cohort_id: UUID) -> CohortStatistics:
        cohort = self.get(cohort_id)
        rows = self._session.execute(
            select(ApplicationModel.status, func.count())
            .where(ApplicationModel.cohort_id == cohort_id)
            .group_by(ApplicationModel.status)
        ).all()
        by_status = {s.value: 0 for s in ApplicationStatus}
        by_status.update({status: int(n) for status, n in rows})
        total = sum(by_status.values())
        rate = round(cohort.accepted_count / total * 100, 1) if total else 0.0
        return CohortStatistics(
            cohort_id=cohort.id,
            total_applications=total,
            by_status=by_status,
            accepted=cohort.accepted_count,
            capacity=cohort.capacity,
            available_spots=cohort.available_spots,
            acceptance_rate=rate,
        )

    def _lock(self, cohort_id: UUID) -> CohortModel:
        cohort = self._session.execute(
            select(CohortModel)
            .where(CohortModel.id == cohort_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if cohort is None:
            raise CohortNotFoundError(cohort_id)
        return cohort

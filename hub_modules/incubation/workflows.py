"""
Incubation Workflows.

State machines for applications, cohorts and mentorship sessions.
"""

from hub_kernel.domain.workflow import Guard, Transition, Workflow
from hub_kernel.logging_config import get_logger
from hub_modules.incubation.models import ApplicationStatus, CohortStatus, SessionStatus

logger = get_logger("modules.incubation.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

COHORT_HAS_CAPACITY = Guard(
    name="cohort_has_capacity",
    description="Cohort accepted_count is below its capacity",
)

INTERVIEW_HELD = Guard(
    name="interview_held",
    description="Interview notes have been recorded",
)

logger.info(
    "incubation_workflow_guards_defined",
    extra={"guards": [COHORT_HAS_CAPACITY.name, INTERVIEW_HELD.name]},
)


# -----------------------------------------------------------------------------
# Application Workflow
# -----------------------------------------------------------------------------
# interviewed -> screening and interview_scheduled -> screening send an
# application back for another look; there is no edge out of rejected.

_A = ApplicationStatus

APPLICATION_WORKFLOW = Workflow(
    name="incubation_application",
    description="Startup selection pipeline",
    entity_type="application",
    status_enum=ApplicationStatus,
    initial_state=_A.SUBMITTED.value,
    states=tuple(s.value for s in ApplicationStatus),
    transitions=(
        Transition(_A.SUBMITTED.value, _A.SCREENING.value, action="start_screening"),
        Transition(_A.SUBMITTED.value, _A.REJECTED.value, action="reject", events=("ApplicationRejected",)),
        Transition(_A.SUBMITTED.value, _A.WITHDRAWN.value, action="withdraw", events=("ApplicationWithdrawn",)),
        Transition(_A.SCREENING.value, _A.INTERVIEW_SCHEDULED.value, action="schedule_interview", events=("ApplicationInterviewScheduled",)),
        Transition(_A.SCREENING.value, _A.REJECTED.value, action="reject", events=("ApplicationRejected",)),
        Transition(_A.SCREENING.value, _A.WITHDRAWN.value, action="withdraw", events=("ApplicationWithdrawn",)),
        Transition(_A.INTERVIEW_SCHEDULED.value, _A.INTERVIEWED.value, action="complete_interview", guard=INTERVIEW_HELD),
        Transition(_A.INTERVIEW_SCHEDULED.value, _A.SCREENING.value, action="return_to_screening"),
        Transition(_A.INTERVIEW_SCHEDULED.value, _A.REJECTED.value, action="reject", events=("ApplicationRejected",)),
        Transition(_A.INTERVIEW_SCHEDULED.value, _A.WITHDRAWN.value, action="withdraw", events=("ApplicationWithdrawn",)),
        Transition(_A.INTERVIEWED.value, _A.ACCEPTED.value, action="accept", guard=COHORT_HAS_CAPACITY, events=("ApplicationAccepted",)),
        Transition(_A.INTERVIEWED.value, _A.REJECTED.value, action="reject", events=("ApplicationRejected",)),
        Transition(_A.INTERVIEWED.value, _A.SCREENING.value, action="return_to_screening"),
    ),
    terminal_states=(_A.ACCEPTED.value, _A.REJECTED.value, _A.WITHDRAWN.value),
)

logger.info(
    "incubation_application_workflow_registered",
    extra={
        "workflow_name": APPLICATION_WORKFLOW.name,
        "state_count": len(APPLICATION_WORKFLOW.states),
        "transition_count": len(APPLICATION_WORKFLOW.transitions),
    },
)


# -----------------------------------------------------------------------------
# Cohort Workflow
# -----------------------------------------------------------------------------

_C = CohortStatus

COHORT_WORKFLOW = Workflow(
    name="incubation_cohort",
    description="Cohort intake lifecycle",
    entity_type="cohort",
    status_enum=CohortStatus,
    initial_state=_C.DRAFT.value,
    states=tuple(s.value for s in CohortStatus),
    transitions=(
        Transition(_C.DRAFT.value, _C.OPEN_FOR_APPLICATIONS.value, action="open_applications", events=("CohortOpened",)),
        Transition(_C.OPEN_FOR_APPLICATIONS.value, _C.REVIEWING.value, action="close_applications", events=("CohortApplicationsClosed",)),
        Transition(_C.OPEN_FOR_APPLICATIONS.value, _C.DRAFT.value, action="unpublish"),
        Transition(_C.REVIEWING.value, _C.ACTIVE.value, action="activate", events=("CohortActivated",)),
        Transition(_C.REVIEWING.value, _C.OPEN_FOR_APPLICATIONS.value, action="reopen_applications", events=("CohortOpened",)),
        Transition(_C.ACTIVE.value, _C.COMPLETED.value, action="complete", events=("CohortCompleted",)),
        Transition(_C.COMPLETED.value, _C.ARCHIVED.value, action="archive"),
    ),
    terminal_states=(_C.ARCHIVED.value,),
)

logger.info(
    "incubation_cohort_workflow_registered",
    extra={
        "workflow_name": COHORT_WORKFLOW.name,
        "state_count": len(COHORT_WORKFLOW.states),
        "transition_count": len(COHORT_WORKFLOW.transitions),
    },
)


# -----------------------------------------------------------------------------
# Mentorship Session Workflow
# -----------------------------------------------------------------------------
# Only pending and confirmed sessions can be cancelled; once a session has
# started it ends as completed or no_show.

_S = SessionStatus

SESSION_WORKFLOW = Workflow(
    name="incubation_mentorship_session",
    description="Mentorship session lifecycle",
    entity_type="mentorship_session",
    status_enum=SessionStatus,
    initial_state=_S.PENDING.value,
    states=tuple(s.value for s in SessionStatus),
    transitions=(
        Transition(_S.PENDING.value, _S.CONFIRMED.value, action="confirm", events=("MentorshipSessionConfirmed",)),
        Transition(_S.PENDING.value, _S.IN_PROGRESS.value, action="start"),
        Transition(_S.PENDING.value, _S.COMPLETED.value, action="complete", events=("MentorshipSessionCompleted",)),
        Transition(_S.PENDING.value, _S.CANCELLED.value, action="cancel", events=("MentorshipSessionCancelled",)),
        Transition(_S.PENDING.value, _S.NO_SHOW.value, action="mark_no_show"),
        Transition(_S.CONFIRMED.value, _S.IN_PROGRESS.value, action="start"),
        Transition(_S.CONFIRMED.value, _S.COMPLETED.value, action="complete", events=("MentorshipSessionCompleted",)),
        Transition(_S.CONFIRMED.value, _S.CANCELLED.value, action="cancel", events=("MentorshipSessionCancelled",)),
        Transition(_S.CONFIRMED.value, _S.NO_SHOW.value, action="mark_no_show"),
        Transition(_S.IN_PROGRESS.value, _S.COMPLETED.value, action="complete", events=("MentorshipSessionCompleted",)),
        Transition(_S.IN_PROGRESS.value, _S.NO_SHOW.value, action="mark_no_show"),
    ),
    terminal_states=(_S.COMPLETED.value, _S.CANCELLED.value, _S.NO_SHOW.value),
)

logger.info(
    "incubation_session_workflow_registered",
    extra={
        "workflow_name": SESSION_WORKFLOW.name,
        "state_count": len(SESSION_WORKFLOW.states),
        "transition_count": len(SESSION_WORKFLOW.transitions),
    },
)

"""
Ticket Service (``hub_modules.events.tickets``).

Responsibility
--------------
Ticket issuance (background PDF and email jobs), QR validation and
check-in for attendees.

Architecture
------------
Layer: **Modules**.  Check-in and its undo are attendee workflow
transitions through the kernel ``StateMachine``.  PDF rendering and email
delivery are NOT done here: ``issue_ticket`` enqueues a job chain on the
``JobQueue`` port and returns immediately.

Invariants
----------
- Only confirmed attendees can be checked in; only checked-in attendees can
  be un-checked-in.
- A ticket is issued (or re-sent) only for an attendee holding a valid
  ticket (confirmed or checked in).

Failure Modes
-------------
- ``AttendeeNotFoundError`` for unknown ids.
- ``CheckInError`` when the attendee's status does not allow the operation.
- ``TicketNotIssuableError`` when issuing for a cancelled / pending attendee.
- ``check_in_from_qr`` and ``check_in_by_reference`` never raise for a bad
  scan; they return a ``CheckInResult`` the scanner UI displays.
"""

from __future__ import annotations

from typing import Iterable
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from hub_kernel.domain.clock import Clock, SystemClock
from hub_kernel.domain.events import DomainEvent
from hub_kernel.exceptions import (
    AttendeeNotFoundError,
    CheckInError,
    InvalidTicketCodeError,
    TicketNotIssuableError,
)
from hub_kernel.logging_config import get_logger
from hub_kernel.services.event_dispatcher import DomainEventDispatcher
from hub_kernel.services.job_queue import InMemoryJobQueue, Job, JobQueue
from hub_kernel.services.state_machine import StateMachine
from hub_kernel.services.transaction import unit_of_work
from hub_modules.events.config import EventsConfig
from hub_modules.events.helpers import parse_qr_content
from hub_modules.events.models import (
    AttendeeStatus,
    BulkCheckInResult,
    CheckInMethod,
    CheckInResult,
)
from hub_modules.events.orm import AttendeeModel
from hub_modules.events.workflows import ATTENDEE_WORKFLOW

logger = get_logger("modules.events.tickets")

GENERATE_TICKET_PDF = "generate_ticket_pdf"
SEND_TICKET_EMAIL = "send_ticket_email"


class TicketService:
    """Ticket issuance and check-in."""

    def __init__(
        self,
        session: Session,
        dispatcher: DomainEventDispatcher | None = None,
        jobs: JobQueue | None = None,
        clock: Clock | None = None,
        config: EventsConfig | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._events = dispatcher or DomainEventDispatcher()
        self._jobs = jobs if jobs is not None else InMemoryJobQueue()
        self._clock = clock or SystemClock()
        self._config = config or EventsConfig()
        self._auto_commit = auto_commit
        self._machine = StateMachine(session, ATTENDEE_WORKFLOW, self._clock)

    def get(self, attendee_id: UUID) -> AttendeeModel:
        attendee = self._session.get(AttendeeModel, attendee_id)
        if attendee is None:
            raise AttendeeNotFoundError(attendee_id)
        return attendee

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    def issue_ticket(self, attendee: AttendeeModel) -> UUID:
        """
        Enqueue ``generate_ticket_pdf -> send_ticket_email`` and publish
        ``TicketIssued``.  Fire-and-forget: returns the job id.
        """
        self._require_valid_ticket(attendee)
        job = self._ticket_job(attendee, render_pdf=True)
        job_id = self._jobs.enqueue(job)

        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="issue_ticket",
        ):
            self._events.collect((
                DomainEvent(
                    name="TicketIssued",
                    entity_type=ATTENDEE_WORKFLOW.entity_type,
                    entity_id=attendee.id,
                    occurred_at=self._clock.now_utc(),
                    payload={
                        "reference_no": attendee.reference_no,
                        "event_id": str(attendee.event_id),
                        "job_id": str(job_id),
                    },
                ),
            ))

        logger.info(
            "ticket_issue_initiated",
            extra={
                "attendee_id": str(attendee.id),
                "reference": attendee.reference_no,
                "event_id": str(attendee.event_id),
                "jobs": [j.name for j in job.flatten()],
            },
        )
        return job_id

    def resend_ticket_email(self, attendee_id: UUID) -> UUID:
        """Re-send the ticket; re-render the PDF first when none is stored."""
        attendee = self.get(attendee_id)
        self._require_valid_ticket(attendee)
        job = self._ticket_job(attendee, render_pdf=attendee.ticket_pdf_path is None, force_email=True)
        job_id = self._jobs.enqueue(job)
        logger.info(
            "ticket_email_resend_requested",
            extra={
                "attendee_id": str(attendee.id),
                "reference": attendee.reference_no,
                "jobs": [j.name for j in job.flatten()],
            },
        )
        return job_id

    def mark_ticket_sent(self, attendee_id: UUID, pdf_path: str | None = None) -> AttendeeModel:
        """Callback for the email worker once the ticket went out."""
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="mark_ticket_sent",
        ):
            attendee = self.get(attendee_id)
            attendee.ticket_sent_at = self._clock.now_utc()
            if pdf_path is not None:
                attendee.ticket_pdf_path = pdf_path
            self._session.flush()
        return attendee

    # ------------------------------------------------------------------
    # Check-in
    # ------------------------------------------------------------------

    def check_in(
        self,
        attendee_id: UUID,
        actor_id: UUID,
        method: CheckInMethod = CheckInMethod.MANUAL,
    ) -> AttendeeModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="check_in",
        ):
            attendee = self.get(attendee_id)
            if not AttendeeStatus(attendee.status).can_check_in:
                logger.warning(
                    "check_in_rejected",
                    extra={"attendee_id": str(attendee.id), "status": attendee.status},
                )
                raise CheckInError(attendee.id, attendee.status)
            attendee.checked_in_at = self._clock.now_utc()
            attendee.checked_in_by_id = actor_id
            attendee.check_in_method = method.value
            outcome = self._machine.transition(
                attendee, AttendeeStatus.CHECKED_IN, actor_id,
                notes=f"Checked in ({method.value})",
                payload={"event_id": str(attendee.event_id), "method": method.value},
            )
            self._events.collect(outcome.events)
        return attendee

    def undo_check_in(self, attendee_id: UUID, actor_id: UUID) -> AttendeeModel:
        with unit_of_work(
            self._session, self._events,
            auto_commit=self._auto_commit, operation="undo_check_in",
        ):
            attendee = self.get(attendee_id)
            if attendee.status != AttendeeStatus.CHECKED_IN.value:
                raise CheckInError(attendee.id, attendee.status)
            attendee.checked_in_at = None
            attendee.checked_in_by_id = None
            attendee.check_in_method = None
            outcome = self._machine.transition(
                attendee, AttendeeStatus.CONFIRMED, actor_id, notes="Check-in undone",
            )
            self._events.collect(outcome.events)
        return attendee

    def validate_qr_code(self, qr_content: str, event_id: UUID) -> AttendeeModel | None:
        """The attendee a scanned code belongs to, or None (unknown or other event)."""
        if not qr_content or not qr_content.strip():
            raise InvalidTicketCodeError("empty code")
        reference, digest = parse_qr_content(qr_content)
        if reference is None:
            return None
        if reference == digest:
            stmt = select(AttendeeModel).where(
                or_(AttendeeModel.reference_no == reference, AttendeeModel.qr_code_hash == digest)
            )
        else:
            stmt = select(AttendeeModel).where(
                AttendeeModel.reference_no == reference,
                AttendeeModel.qr_code_hash == digest,
            )
        attendee = self._session.execute(stmt).scalars().first()
        if attendee is None or attendee.event_id != event_id:
            return None
        return attendee

    def check_in_from_qr(self, qr_content: str, event_id: UUID, actor_id: UUID) -> CheckInResult:
        try:
            attendee = self.validate_qr_code(qr_content, event_id)
        except InvalidTicketCodeError:
            attendee = None
        return self._check_in_result(attendee, actor_id, CheckInMethod.QR_SCAN, "Invalid ticket or wrong event.")

    def check_in_by_reference(self, reference: str, event_id: UUID, actor_id: UUID) -> CheckInResult:
        attendee = self._session.execute(
            select(AttendeeModel).where(
                AttendeeModel.reference_no == reference,
                AttendeeModel.event_id == event_id,
            )
        ).scalar_one_or_none()
        return self._check_in_result(attendee, actor_id, CheckInMethod.MANUAL, "Ticket not found.")

    def bulk_check_in(
        self, references: Iterable[str], event_id: UUID, actor_id: UUID,
    ) -> BulkCheckInResult:
        checked_in, errors = 0, {}
        for reference in references:
            result = self.check_in_by_reference(reference, event_id, actor_id)
            if result.success:
                checked_in += 1
            else:
                errors[reference] = result.message
        logger.info(
            "bulk_check_in_completed",
            extra={"event_id": str(event_id), "checked_in": checked_in, "failed": len(errors)},
        )
        return BulkCheckInResult(checked_in=checked_in, failed=len(errors), errors=errors)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_in_result(
        self,
        attendee: AttendeeModel | None,
        actor_id: UUID,
        method: CheckInMethod,
        not_found: str,
    ) -> CheckInResult:
        if attendee is None:
            return CheckInResult(success=False, message=not_found)
        status = AttendeeStatus(attendee.status)
        if status is AttendeeStatus.CHECKED_IN:
            at = attendee.checked_in_at
            return CheckInResult(
                success=False,
                message=f"Already checked in at {at:%H:%M}" if at else "Already checked in",
                attendee_id=attendee.id,
            )
        if not status.can_check_in:
            return CheckInResult(
                success=False,
                message=f"Ticket status does not allow check-in: {status.value}",
                attendee_id=attendee.id,
            )
        self.check_in(attendee.id, actor_id, method)
        return CheckInResult(success=True, message="Successfully checked in!", attendee_id=attendee.id)

    def _require_valid_ticket(self, attendee: AttendeeModel) -> None:
        if not AttendeeStatus(attendee.status).is_active:
            raise TicketNotIssuableError(attendee.id, attendee.status)

    def _ticket_job(self, attendee: AttendeeModel, render_pdf: bool, force_email: bool = False) -> Job:
        payload = {
            "attendee_id": str(attendee.id),
            "reference_no": attendee.reference_no,
            "event_id": str(attendee.event_id),
            "qr_content": attendee.qr_code_content,
        }
        send = self._config.ticket_email_enabled or force_email
        email = Job(SEND_TICKET_EMAIL, dict(payload))
        if not render_pdf:
            return email
        return Job(GENERATE_TICKET_PDF, payload, then=(email,) if send else ())

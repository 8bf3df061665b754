"""
StateMachine -- validated status transitions with history and events.

Responsibility:
    For one ``Workflow`` (one entity kind): check a proposed transition
    against the graph, apply it (``previous_status``, ``status``,
    ``updated_by_id``), append exactly one StatusHistoryLedger entry, and
    return the ordered domain events the transition publishes.

Architecture position:
    Kernel > Services.  Depends on StatusHistoryLedger, domain/workflow and
    domain/events.  Modules build one StateMachine per workflow they own.

Invariants enforced:
    - Only members of ``workflow.status_enum`` are accepted as targets;
      raw strings are rejected before the graph is consulted.
    - Terminal states never transition (``Workflow`` forbids their edges).
    - One transition, one history entry, one ``<Entity>StatusChanged`` event.

Failure modes:
    - UntypedStatusError for a target that is not the workflow's enum.
    - InvalidTransitionError(entity_type, from, to) for an illegal edge.
      The entity is not mutated and nothing is recorded.

Audit relevance:
    ``transition`` is the only code path that changes a tracked status
    after creation, so the history log is complete by construction.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy.orm import Session

from hub_kernel.domain.clock import Clock, SystemClock
from hub_kernel.domain.events import DomainEvent
from hub_kernel.domain.workflow import Transition, Workflow
from hub_kernel.exceptions import InvalidTransitionError, UntypedStatusError
from hub_kernel.logging_config import get_logger
from hub_kernel.models.status_history import StatusHistoryEntry
from hub_kernel.services.base import BaseService
from hub_kernel.services.status_history_ledger import StatusHistoryLedger

logger = get_logger("services.state_machine")


class TrackedEntity(Protocol):
    id: UUID
    status: str
    previous_status: str | None
    updated_by_id: UUID | None


@dataclass(frozen=True)
class TransitionOutcome:
    """What one applied transition did."""
    entity_type: str
    entity_id: UUID
    from_status: str | None
    to_status: str
    action: str
    history_entry_id: UUID
    events: tuple[DomainEvent, ...]


def _camel(entity_type: str) -> str:
    return "".join(part.capitalize() for part in entity_type.split("_"))


class StateMachine(BaseService):
    """Transition validator and effector for one workflow."""

    def __init__(
        self,
        session: Session,
        workflow: Workflow,
        clock: Clock | None = None,
        history: StatusHistoryLedger | None = None,
    ):
        super().__init__(session)
        self.workflow = workflow
        self._clock = clock or SystemClock()
        self._history = history or StatusHistoryLedger(session, self._clock)

    @property
    def entity_type(self) -> str:
        return self.workflow.entity_type

    def can_transition(self, current: Enum | str, target: Enum | str) -> bool:
        return self.workflow.can_transition(current, target)

    def initialize(
        self,
        entity: TrackedEntity,
        actor_id: UUID | None,
        status: Enum | None = None,
        notes: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> TransitionOutcome:
        """
        Put a new entity in its creation status and record ``None -> status``.

        ``status`` defaults to the workflow's initial state and must be one
        of its entry states.
        """
        target = status if status is not None else self.workflow.status_enum(
            self.workflow.initial_state
        )
        value = self._typed(target)
        if value not in self.workflow.creation_states:
            raise InvalidTransitionError(self.entity_type, "none", value)

        entity.status = value
        entity.previous_status = None
        self.session.add(entity)
        self.session.flush()
        entry = self._history.record(
            self.entity_type, entity.id, None, value, actor_id, notes,
        )
        events = (self._event(f"{_camel(self.entity_type)}Created", entity, None, value, payload),)
        logger.info(
            "status_initialized",
            extra={"entity_type": self.entity_type, "entity_id": str(entity.id), "status": value},
        )
        return TransitionOutcome(
            entity_type=self.entity_type,
            entity_id=entity.id,
            from_status=None,
            to_status=value,
            action="create",
            history_entry_id=entry.id,
            events=events,
        )

    def transition(
        self,
        entity: TrackedEntity,
        target: Enum,
        actor_id: UUID | None,
        notes: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> TransitionOutcome:
        """Validate, apply, record and describe one transition."""
        to_value = self._typed(target)
        from_value = entity.status
        edge = self.workflow.transition_for(from_value, to_value)
        if edge is None:
            logger.warning(
                "status_transition_rejected",
                extra={
                    "entity_type": self.entity_type,
                    "entity_id": str(entity.id),
                    "from_status": from_value,
                    "to_status": to_value,
                    "terminal": self.workflow.is_terminal(from_value),
                },
            )
            raise InvalidTransitionError(self.entity_type, from_value, to_value)

        entity.previous_status = from_value
        entity.status = to_value
        if actor_id is not None:
            entity.updated_by_id = actor_id
        self.session.flush()

        entry: StatusHistoryEntry = self._history.record(
            self.entity_type, entity.id, from_value, to_value, actor_id, notes,
        )
        events = self._events_for(edge, entity, from_value, to_value, payload)

        logger.info(
            "status_transition_applied",
            extra={
                "entity_type": self.entity_type,
                "entity_id": str(entity.id),
                "from_status": from_value,
                "to_status": to_value,
                "action": edge.action,
                "events": [e.name for e in events],
            },
        )
        return TransitionOutcome(
            entity_type=self.entity_type,
            entity_id=entity.id,
            from_status=from_value,
            to_status=to_value,
            action=edge.action,
            history_entry_id=entry.id,
            events=events,
        )

    def _typed(self, target: object) -> str:
        enum_cls = self.workflow.status_enum
        if not isinstance(target, enum_cls):
            raise UntypedStatusError(self.entity_type, target, enum_cls.__name__)
        return str(target.value)

    def _events_for(
        self,
        edge: Transition,
        entity: TrackedEntity,
        from_value: str,
        to_value: str,
        payload: dict[str, Any] | None,
    ) -> tuple[DomainEvent, ...]:
        names = edge.events + (f"{_camel(self.entity_type)}StatusChanged",)
        return tuple(
            self._event(name, entity, from_value, to_value, payload) for name in names
        )

    def _event(
        self,
        name: str,
        entity: TrackedEntity,
        from_value: str | None,
        to_value: str,
        payload: dict[str, Any] | None,
    ) -> DomainEvent:
        body = {"from_status": from_value, "to_status": to_value}
        if payload:
            body.update(payload)
        return DomainEvent(
            name=name,
            entity_type=self.entity_type,
            entity_id=entity.id,
            occurred_at=self._clock.now_utc(),
            payload=body,
        )

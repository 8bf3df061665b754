"""
StatusHistoryLedger -- append-only log of status transitions.

Responsibility:
    Writes one ``StatusHistoryEntry`` per recorded transition.  A pure data
    sink: it does not check whether the transition is legal.  That is the
    StateMachine's job, and the StateMachine is the only production caller.

Architecture position:
    Kernel > Services.  Leaf component; depends on models/ and domain/clock.

Invariants enforced:
    - Sequence numbers are dense and 1-based per (entity_type, entity_id).
    - Entries are immutable once flushed (db/immutability.py).

Failure modes:
    - IntegrityError if two transactions race to record the same entity's
      next sequence; the loser rolls back.
"""

from __future__ import annotations

from enum import Enum
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from hub_kernel.domain.clock import Clock, SystemClock
from hub_kernel.domain.workflow import state_value
from hub_kernel.logging_config import get_logger
from hub_kernel.models.status_history import StatusHistoryEntry
from hub_kernel.services.base import BaseService

logger = get_logger("services.status_history")


class StatusHistoryLedger(BaseService):
    """Append-only writer for status history."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def record(
        self,
        entity_type: str,
        entity_id: UUID,
        from_status: Enum | str | None,
        to_status: Enum | str,
        actor_id: UUID | None = None,
        notes: str | None = None,
    ) -> StatusHistoryEntry:
        """Append one entry and flush it."""
        last = self.session.execute(
            select(func.max(StatusHistoryEntry.sequence)).where(
                StatusHistoryEntry.entity_type == entity_type,
                StatusHistoryEntry.entity_id == entity_id,
            )
        ).scalar_one_or_none()

        entry = StatusHistoryEntry(
            entity_type=entity_type,
            entity_id=entity_id,
            sequence=(last or 0) + 1,
            from_status=state_value(from_status) if from_status is not None else None,
            to_status=state_value(to_status),
            actor_id=actor_id,
            notes=notes,
            created_at=self._clock.now_utc(),
        )
        self.session.add(entry)
        self.session.flush()

        logger.debug(
            "status_history_recorded",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "sequence": entry.sequence,
                "from_status": entry.from_status,
                "to_status": entry.to_status,
            },
        )
        return entry

"""
Read side of the status history log.

Returns ``StatusHistoryRecord`` DTOs in recording order so admin screens and
tests can replay an entity's lifecycle.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import select

from hub_kernel.models.status_history import StatusHistoryEntry
from hub_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class StatusHistoryRecord:
    """Immutable view of one history entry."""
    entity_type: str
    entity_id: UUID
    sequence: int
    from_status: str | None
    to_status: str
    actor_id: UUID | None
    notes: str | None
    created_at: datetime

    @classmethod
    def from_model(cls, row: StatusHistoryEntry) -> StatusHistoryRecord:
        return cls(
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            sequence=row.sequence,
            from_status=row.from_status,
            to_status=row.to_status,
            actor_id=row.actor_id,
            notes=row.notes,
            created_at=row.created_at,
        )


class StatusHistorySelector(BaseSelector):
    """Queries over ``status_history``."""

    def entries_for(self, entity_type: str, entity_id: UUID) -> list[StatusHistoryRecord]:
        rows = self.session.execute(
            select(StatusHistoryEntry)
            .where(
                StatusHistoryEntry.entity_type == entity_type,
                StatusHistoryEntry.entity_id == entity_id,
            )
            .order_by(StatusHistoryEntry.sequence)
        ).scalars().all()
        return [StatusHistoryRecord.from_model(r) for r in rows]

    def latest_for(self, entity_type: str, entity_id: UUID) -> StatusHistoryRecord | None:
        row = self.session.execute(
            select(StatusHistoryEntry)
            .where(
                StatusHistoryEntry.entity_type == entity_type,
                StatusHistoryEntry.entity_id == entity_id,
            )
            .order_by(StatusHistoryEntry.sequence.desc())
            .limit(1)
        ).scalar_one_or_none()
        return StatusHistoryRecord.from_model(row) if row is not None else None

    def count_for(self, entity_type: str, entity_id: UUID) -> int:
        return len(self.entries_for(entity_type, entity_id))

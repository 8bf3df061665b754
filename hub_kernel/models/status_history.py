"""
Module: hub_kernel.models.status_history
Responsibility: ORM persistence for the append-only status transition log.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Entries are append-only; no UPDATE or DELETE (db/immutability.py).
    - (entity_type, entity_id, sequence) is unique, so two writers cannot
      both record the "next" transition of one entity.
    - from_status is NULL only for the creation entry of an entity.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - IntegrityError on a duplicate sequence for one entity.

Audit relevance:
    Every status change on an order, attendee, application, cohort, ticket
    type, event, invoice or mentorship session produces exactly one row here.
    The entity's current status always equals its latest entry's to_status.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from hub_kernel.db.base import Base


class StatusHistoryEntry(Base):
    """
    One recorded transition of one entity.

    Polymorphic over entity kinds via (entity_type, entity_id) with no
    foreign key: every tracked table shares this log.
    """

    __tablename__ = "status_history"

    __table_args__ = (
        UniqueConstraint(
            "entity_type", "entity_id", "sequence",
            name="uq_status_history_entity_seq",
        ),
        Index("idx_status_history_entity", "entity_type", "entity_id"),
        Index("idx_status_history_created", "created_at"),
    )

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(nullable=False)

    # 1-based, per entity
    sequence: Mapped[int] = mapped_column(nullable=False)

    from_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    to_status: Mapped[str] = mapped_column(String(50), nullable=False)

    actor_id: Mapped[UUID | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<StatusHistoryEntry {self.entity_type}:{self.entity_id} "
            f"#{self.sequence} {self.from_status} -> {self.to_status}>"
        )

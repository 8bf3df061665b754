"""
Domain events (``hub_kernel.domain.events``).

Responsibility
--------------
Immutable record of something that happened to an entity ("OrderPaid",
"ApplicationAccepted").  State transitions return them as an ordered tuple;
the dispatcher delivers them to subscribers only after the owning
transaction commits.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID


@dataclass(frozen=True)
class DomainEvent:
    """One published fact about one entity."""
    name: str
    entity_type: str
    entity_id: UUID
    occurred_at: datetime
    payload: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("DomainEvent name must be non-empty")

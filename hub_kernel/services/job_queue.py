"""
JobQueue -- port for fire-and-forget background work.

Responsibility:
    Ticket PDF rendering and ticket email delivery run outside the request.
    Services enqueue named jobs (optionally chained) and never wait for them.
    ``InMemoryJobQueue`` records jobs for tests and local development; a
    deployment plugs in its own worker-backed implementation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol
from uuid import UUID, uuid4

from hub_kernel.logging_config import get_logger

logger = get_logger("services.job_queue")


@dataclass(frozen=True)
class Job:
    """One unit of background work; ``then`` runs after it succeeds."""
    name: str
    payload: dict[str, Any]
    then: tuple[Job, ...] = ()
    job_id: UUID = field(default_factory=uuid4)

    def flatten(self) -> list[Job]:
        jobs = [self]
        for nxt in self.then:
            jobs.extend(nxt.flatten())
        return jobs


class JobQueue(Protocol):
    def enqueue(self, job: Job) -> UUID: ...


class InMemoryJobQueue:
    """Records enqueued jobs in order.  Nothing is executed."""

    def __init__(self) -> None:
        self.jobs: list[Job] = []

    def enqueue(self, job: Job) -> UUID:
        self.jobs.append(job)
        logger.info(
            "job_enqueued",
            extra={
                "job_id": str(job.job_id),
                "job_name": job.name,
                "chain": [j.name for j in job.flatten()],
            },
        )
        return job.job_id

    def names(self) -> list[str]:
        """Every enqueued job name including chained followers."""
        return [j.name for job in self.jobs for j in job.flatten()]

    def clear(self) -> None:
        self.jobs.clear()

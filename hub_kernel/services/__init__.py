"""Kernel services: flush-only building blocks composed by modules."""

from hub_kernel.services.event_dispatcher import DomainEventDispatcher
from hub_kernel.services.inventory_ledger import InventoryLedger, StockMovement
from hub_kernel.services.job_queue import InMemoryJobQueue, Job, JobQueue
from hub_kernel.services.state_machine import StateMachine, TransitionOutcome
from hub_kernel.services.status_history_ledger import StatusHistoryLedger
from hub_kernel.services.transaction import unit_of_work

__all__ = [
    "DomainEventDispatcher",
    "InMemoryJobQueue",
    "InventoryLedger",
    "Job",
    "JobQueue",
    "StateMachine",
    "StatusHistoryLedger",
    "StockMovement",
    "TransitionOutcome",
    "unit_of_work",
]

"""
DomainEventDispatcher -- deliver domain events after commit.

Responsibility:
    Buffers the ordered events returned by transitions and orchestrators,
    then delivers them to subscribers once the owning transaction has
    committed.  Events collected during a call that rolls back are
    discarded, so no consumer ever sees a fact that did not persist.

Architecture position:
    Kernel > Services.  Pure in-process fan-out; no session.  Background
    work (PDF, email) is not done here -- subscribers hand it to the
    JobQueue.

Invariants enforced:
    - Delivery order equals collection order.
    - A handler that raises is logged and skipped; later handlers and later
      events are still delivered.  Committed state is never affected.
    - Delivered events are kept only when the dispatcher is built with
      ``keep_history=True`` (tests, audits of a single run).  A long-lived
      dispatcher holds nothing once its buffer drains.
    - ``dispatch_pending`` is re-entrant: events collected by a handler
      (a listener that drives another orchestrator) are delivered in the
      same drain loop.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Callable, Iterable

from hub_kernel.domain.events import DomainEvent
from hub_kernel.logging_config import get_logger

logger = get_logger("services.event_dispatcher")

EventHandler = Callable[[DomainEvent], None]


class DomainEventDispatcher:
    """In-process publish/subscribe with an explicit pending buffer."""

    def __init__(self, keep_history: bool = False) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._pending: list[DomainEvent] = []
        self._keep_history = keep_history
        self._published: list[DomainEvent] = []
        self.delivered_count = 0
        self._draining = False

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        self._handlers[event_name].append(handler)

    def collect(self, events: Iterable[DomainEvent]) -> None:
        """Buffer events until the caller's transaction commits."""
        self._pending.extend(events)

    @property
    def pending(self) -> tuple[DomainEvent, ...]:
        return tuple(self._pending)

    @property
    def published(self) -> tuple[DomainEvent, ...]:
        """Delivered events, oldest first.  Empty unless ``keep_history`` is set."""
        return tuple(self._published)

    def published_names(self) -> list[str]:
        return [e.name for e in self._published]

    def mark(self) -> int:
        """Position in the buffer; pass to ``discard_pending`` on rollback."""
        return len(self._pending)

    def discard_pending(self, since: int = 0) -> int:
        """Drop events buffered after ``since``.  Returns how many."""
        dropped = self._pending[since:]
        if dropped:
            logger.info(
                "domain_events_discarded",
                extra={"count": len(dropped), "names": [e.name for e in dropped]},
            )
        del self._pending[since:]
        return len(dropped)

    def dispatch_pending(self) -> int:
        """Deliver buffered events in order.  Returns how many were delivered."""
        if self._draining:
            return 0
        self._draining = True
        delivered = 0
        try:
            while self._pending:
                evt = self._pending.pop(0)
                if self._keep_history:
                    self._published.append(evt)
                delivered += 1
                self.delivered_count += 1
                for handler in list(self._handlers.get(evt.name, ())):
                    try:
                        handler(evt)
                    except Exception:
                        logger.exception(
                            "domain_event_handler_failed",
                            extra={
                                "event_name": evt.name,
                                "entity_type": evt.entity_type,
                                "entity_id": str(evt.entity_id),
                                "handler": getattr(handler, "__qualname__", repr(handler)),
                            },
                        )
                logger.debug(
                    "domain_event_dispatched",
                    extra={"event_name": evt.name, "entity_id": str(evt.entity_id)},
                )
        finally:
            self._draining = False
        return delivered

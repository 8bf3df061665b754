"""
Transaction boundary for module services and orchestrators.

``unit_of_work`` is the service-level twin of ``db.engine.session_scope``:
commit on success, roll back and re-raise on failure, and keep the domain
event buffer in step with the outcome.  Records logged inside the block
carry the ``operation`` name.  With ``auto_commit=False`` it does
nothing, so a service can run inside another service's transaction.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session

from hub_kernel.logging_config import LogContext, get_logger
from hub_kernel.services.event_dispatcher import DomainEventDispatcher

logger = get_logger("services.transaction")


@contextmanager
def unit_of_work(
    session: Session,
    dispatcher: DomainEventDispatcher | None = None,
    *,
    auto_commit: bool = True,
    operation: str = "",
) -> Iterator[None]:
    if not auto_commit:
        yield
        return

    mark = dispatcher.mark() if dispatcher is not None else 0
    with LogContext.bind(operation=operation or None):
        try:
            yield
            session.commit()
        except Exception:
            session.rollback()
            if dispatcher is not None:
                dispatcher.discard_pending(since=mark)
            logger.warning("transaction_rolled_back", exc_info=True)
            raise

    if dispatcher is not None:
        dispatcher.dispatch_pending()

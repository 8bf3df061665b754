"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every service in the kernel layer.  All concrete services inherit
    from BaseService, receiving a SQLAlchemy ``Session`` that they use
    via ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: kernel services flush within the caller's
    transaction and never commit or roll back themselves.  Module services
    and orchestrators own commit/rollback, so a booking that reserves three
    ticket types either keeps all three holds or none.

Failure modes:
    - A subclass calling ``session.commit()`` breaks the all-or-nothing
      guarantee of multi-step orchestrations.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Does NOT provide query-only (read) methods -- those belong
          in ``hub_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session

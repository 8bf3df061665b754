"""
Module ORM Registry (``hub_modules._orm_registry``).

Responsibility
--------------
Ensure every SQLAlchemy ORM model is imported so that ``Base.metadata``
contains its table definition before ``create_tables()`` runs.

Architecture position
---------------------
**Modules layer** -- utility.  Imported lazily by
``hub_kernel.db.engine.create_tables`` and by ``tests/conftest.py``.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``hub_modules.*.orm`` module.

    Idempotent -- repeated calls are harmless.
    """
    import hub_kernel.models  # noqa: F401
    # fmt: off
    import hub_modules.billing.orm  # noqa: F401
    import hub_modules.events.orm  # noqa: F401
    import hub_modules.incubation.orm  # noqa: F401
    import hub_modules.membership.orm  # noqa: F401
    import hub_modules.space_booking.orm  # noqa: F401
    # fmt: on

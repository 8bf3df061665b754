"""
Module: hub_kernel.models.stock
Responsibility: Column mixin for stock-tracked units and the ORM row for
    addressable reservations (holds).
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/stock.py only.

Invariants enforced:
    - quantity_sold >= 0, quantity_reserved >= 0 and, when quantity is set,
      quantity_sold + quantity_reserved <= quantity.  Only
      services/inventory_ledger.py writes these counters.
    - A hold is settled exactly once: held -> confirmed | released, and
      confirmed -> refunded.  Settled rows are otherwise immutable.
    - (holder_type, holder_id) is unique: one hold per holder.

Failure modes:
    - IntegrityError on a second hold for the same holder.
    - ImmutabilityViolationError when a released or refunded hold is edited.

Audit relevance:
    Holds make every reserved unit traceable to the attendee (or other
    holder) that reserved it, so confirm and release never depend on a
    caller passing the right bare count.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from hub_kernel.db.base import TrackedBase
from hub_kernel.domain.stock import StockStatus, available


class StockUnitMixin:
    """
    Counters shared by every stock-tracked unit (ticket types).

    ``quantity`` NULL means unlimited.  Carries the same status columns as
    StatusTrackedMixin so units can also go through a StateMachine.
    """

    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=StockStatus.ACTIVE.value,
    )
    previous_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    quantity: Mapped[int | None] = mapped_column(nullable=True)
    quantity_sold: Mapped[int] = mapped_column(nullable=False, default=0)
    quantity_reserved: Mapped[int] = mapped_column(nullable=False, default=0)

    @property
    def is_unlimited(self) -> bool:
        return self.quantity is None

    @property
    def quantity_available(self) -> int | None:
        return available(
            self.quantity, self.quantity_sold or 0, self.quantity_reserved or 0,
        )

    @property
    def is_sold_out(self) -> bool:
        free = self.quantity_available
        return free is not None and free <= 0


class StockReservationModel(TrackedBase):
    """One hold of ``quantity`` units of a stock unit by one holder."""

    __tablename__ = "stock_reservations"

    __table_args__ = (
        UniqueConstraint("holder_type", "holder_id", name="uq_stock_reservation_holder"),
        Index("idx_stock_reservation_unit", "unit_type", "unit_id"),
        Index("idx_stock_reservation_status", "status"),
    )

    unit_type: Mapped[str] = mapped_column(String(100), nullable=False)
    unit_id: Mapped[UUID] = mapped_column(nullable=False)
    holder_type: Mapped[str] = mapped_column(String(50), nullable=False)
    holder_id: Mapped[UUID] = mapped_column(nullable=False)
    quantity: Mapped[int] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    settled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return (
            f"<StockReservation {self.holder_type}:{self.holder_id} "
            f"{self.unit_type}:{self.unit_id} x{self.quantity} {self.status}>"
        )

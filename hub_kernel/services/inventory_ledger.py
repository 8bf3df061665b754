"""
InventoryLedger -- stock counters for ticket types under row locks.

Responsibility:
    Applies reserve / release / confirm_sale / refund to any ORM class that
    mixes in ``StockUnitMixin``, and settles addressable holds
    (``StockReservationModel``) exactly once.

Architecture position:
    Kernel > Services.  Leaf component: depends on models/, domain/ and the
    StatusHistoryLedger (for automatic Active/SoldOut flips only).  It does
    NOT touch owning aggregates: the returned ``StockMovement`` tells the
    orchestrator how far to move the event's registered counter.

Invariants enforced:
    - Every operation re-selects the unit ``FOR UPDATE`` with
      ``populate_existing`` so concurrent bookings serialize on the row and
      never act on a stale in-memory copy.
    - quantity_sold >= 0 and quantity_reserved >= 0 always; decrements clamp
      at zero.  sold + reserved <= quantity whenever quantity is set.
    - Status flips Active -> SoldOut when availability reaches zero and back
      to Active when stock frees up.  Paused units keep their status.
    - A hold is confirmed, released or refunded at most once.  Settling an
      already-settled hold is a no-op that returns None.

Failure modes:
    - InsufficientStockError(requested, available) from reserve/hold.
    - StockUnitNotFoundError when the unit row is missing (integrity).
    - ValueError for non-positive quantities.

Audit relevance:
    Every counter change is logged with before/after values; every hold
    ties reserved units to the holder (attendee) that owns them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from hub_kernel.domain.clock import Clock, SystemClock
from hub_kernel.domain.stock import (
    ReservationStatus,
    StockStatus,
    available,
    check_counts,
    status_after_change,
)
from hub_kernel.exceptions import InsufficientStockError, StockUnitNotFoundError
from hub_kernel.logging_config import get_logger
from hub_kernel.models.stock import StockReservationModel, StockUnitMixin
from hub_kernel.services.base import BaseService
from hub_kernel.services.status_history_ledger import StatusHistoryLedger

logger = get_logger("services.inventory_ledger")

UnitType = TypeVar("UnitType", bound=StockUnitMixin)


@dataclass(frozen=True)
class StockMovement:
    """Result of one counter operation on one unit."""
    unit_id: UUID
    operation: str
    requested: int
    applied: int
    sold_delta: int
    reserved_delta: int
    quantity_available: int | None
    status_before: StockStatus
    status_after: StockStatus

    @property
    def status_changed(self) -> bool:
        return self.status_before is not self.status_after


def _require_positive(qty: int) -> None:
    if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
        raise ValueError(f"Stock quantity must be a positive integer, got {qty!r}")


class InventoryLedger(BaseService, Generic[UnitType]):
    """
    Row-locked stock ledger for one unit model.

    Contract:
        Flush-only; the caller owns the transaction.  Calling code never
        assigns the counters directly.
    """

    def __init__(
        self,
        session: Session,
        unit_model: type[UnitType],
        clock: Clock | None = None,
        history: StatusHistoryLedger | None = None,
        entity_type: str | None = None,
    ):
        super().__init__(session)
        self._unit_model = unit_model
        self._clock = clock or SystemClock()
        self._history = history
        self._entity_type = entity_type or unit_model.__tablename__

    # ------------------------------------------------------------------
    # Bare counter operations
    # ------------------------------------------------------------------

    def reserve(self, unit_id: UUID, qty: int) -> StockMovement:
        """Hold ``qty`` units; fails if fewer are available."""
        _require_positive(qty)
        unit = self._lock(unit_id)
        free = available(unit.quantity, unit.quantity_sold, unit.quantity_reserved)
        if free is not None and free < qty:
            logger.warning(
                "stock_reserve_rejected",
                extra={"unit_id": str(unit_id), "requested": qty, "available": free},
            )
            raise InsufficientStockError(unit_id, requested=qty, available=free)

        unit.quantity_reserved += qty
        return self._finish(unit, "reserve", qty, applied=qty, sold_delta=0, reserved_delta=qty)

    def release(self, unit_id: UUID, qty: int) -> StockMovement:
        """Drop ``qty`` reserved units, clamped at zero."""
        _require_positive(qty)
        unit = self._lock(unit_id)
        applied = min(qty, unit.quantity_reserved)
        if applied < qty:
            logger.warning(
                "stock_release_clamped",
                extra={
                    "unit_id": str(unit_id),
                    "requested": qty,
                    "reserved": unit.quantity_reserved,
                },
            )
        unit.quantity_reserved -= applied
        return self._finish(unit, "release", qty, applied=applied, sold_delta=0, reserved_delta=-applied)

    def confirm_sale(self, unit_id: UUID, qty: int) -> StockMovement:
        """Move ``qty`` units from reserved to sold."""
        _require_positive(qty)
        unit = self._lock(unit_id)
        from_reserved = min(qty, unit.quantity_reserved)
        if from_reserved < qty:
            # Selling more than was held must still fit the capacity.
            free = available(unit.quantity, unit.quantity_sold, unit.quantity_reserved)
            shortfall = qty - from_reserved
            if free is not None and free < shortfall:
                raise InsufficientStockError(unit_id, requested=qty, available=free + from_reserved)
            logger.warning(
                "stock_confirm_without_reservation",
                extra={"unit_id": str(unit_id), "requested": qty, "reserved": unit.quantity_reserved},
            )
        unit.quantity_reserved -= from_reserved
        unit.quantity_sold += qty
        return self._finish(
            unit, "confirm_sale", qty, applied=qty, sold_delta=qty, reserved_delta=-from_reserved,
        )

    def refund(self, unit_id: UUID, qty: int) -> StockMovement:
        """Return ``qty`` sold units to stock, clamped at zero."""
        _require_positive(qty)
        unit = self._lock(unit_id)
        applied = min(qty, unit.quantity_sold)
        if applied < qty:
            logger.warning(
                "stock_refund_clamped",
                extra={"unit_id": str(unit_id), "requested": qty, "sold": unit.quantity_sold},
            )
        unit.quantity_sold -= applied
        return self._finish(unit, "refund", qty, applied=applied, sold_delta=-applied, reserved_delta=0)

    # ------------------------------------------------------------------
    # Addressable holds
    # ------------------------------------------------------------------

    def hold(
        self,
        unit_id: UUID,
        holder_type: str,
        holder_id: UUID,
        actor_id: UUID,
        qty: int = 1,
    ) -> StockReservationModel:
        """Reserve ``qty`` units on behalf of one holder."""
        self.reserve(unit_id, qty)
        reservation = StockReservationModel(
            unit_type=self._entity_type,
            unit_id=unit_id,
            holder_type=holder_type,
            holder_id=holder_id,
            quantity=qty,
            status=ReservationStatus.HELD.value,
            created_by_id=actor_id,
        )
        self.session.add(reservation)
        self.session.flush()
        logger.info(
            "stock_hold_created",
            extra={
                "unit_id": str(unit_id),
                "holder_type": holder_type,
                "holder_id": str(holder_id),
                "quantity": qty,
            },
        )
        return reservation

    def hold_for(self, holder_type: str, holder_id: UUID) -> StockReservationModel | None:
        return self._lock_hold(holder_type, holder_id)

    def confirm_hold(
        self, holder_type: str, holder_id: UUID, actor_id: UUID | None = None,
    ) -> StockMovement | None:
        """Sell the held units.  No-op unless the hold is still held."""
        return self._settle(
            holder_type, holder_id, actor_id,
            expected=ReservationStatus.HELD,
            outcome=ReservationStatus.CONFIRMED,
            op=self.confirm_sale,
        )

    def release_hold(
        self, holder_type: str, holder_id: UUID, actor_id: UUID | None = None,
    ) -> StockMovement | None:
        """Give the held units back.  No-op unless the hold is still held."""
        return self._settle(
            holder_type, holder_id, actor_id,
            expected=ReservationStatus.HELD,
            outcome=ReservationStatus.RELEASED,
            op=self.release,
        )

    def refund_hold(
        self, holder_type: str, holder_id: UUID, actor_id: UUID | None = None,
    ) -> StockMovement | None:
        """Return confirmed units to stock.  No-op unless the hold is confirmed."""
        return self._settle(
            holder_type, holder_id, actor_id,
            expected=ReservationStatus.CONFIRMED,
            outcome=ReservationStatus.REFUNDED,
            op=self.refund,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock(self, unit_id: UUID) -> UnitType:
        unit = self.session.execute(
            select(self._unit_model)
            .where(self._unit_model.id == unit_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if unit is None:
            logger.error("stock_unit_missing", extra={"unit_id": str(unit_id)})
            raise StockUnitNotFoundError(unit_id)
        return unit

    def _lock_hold(self, holder_type: str, holder_id: UUID) -> StockReservationModel | None:
        return self.session.execute(
            select(StockReservationModel)
            .where(
                StockReservationModel.holder_type == holder_type,
                StockReservationModel.holder_id == holder_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _settle(self, holder_type, holder_id, actor_id, *, expected, outcome, op):
        reservation = self._lock_hold(holder_type, holder_id)
        if reservation is None:
            logger.warning(
                "stock_hold_not_found",
                extra={"holder_type": holder_type, "holder_id": str(holder_id)},
            )
            return None
        if reservation.status != expected.value:
            logger.info(
                "stock_hold_already_settled",
                extra={
                    "holder_type": holder_type,
                    "holder_id": str(holder_id),
                    "status": reservation.status,
                    "attempted": outcome.value,
                },
            )
            return None

        movement = op(reservation.unit_id, reservation.quantity)
        reservation.status = outcome.value
        reservation.settled_at = self._clock.now_utc()
        reservation.updated_by_id = actor_id
        self.session.flush()
        return movement

    def _finish(
        self,
        unit: UnitType,
        operation: str,
        requested: int,
        *,
        applied: int,
        sold_delta: int,
        reserved_delta: int,
    ) -> StockMovement:
        before = StockStatus(unit.status)
        after = status_after_change(
            before, unit.quantity, unit.quantity_sold, unit.quantity_reserved,
        )
        assert check_counts(unit.quantity, unit.quantity_sold, unit.quantity_reserved), (
            f"stock invariant violated on {unit.id}: quantity={unit.quantity} "
            f"sold={unit.quantity_sold} reserved={unit.quantity_reserved}"
        )
        if after is not before:
            unit.previous_status = before.value
            unit.status = after.value
        self.session.flush()

        if after is not before:
            logger.info(
                "stock_status_flipped",
                extra={"unit_id": str(unit.id), "from_status": before.value, "to_status": after.value},
            )
            if self._history is not None:
                self._history.record(
                    self._entity_type, unit.id, before, after,
                    notes=f"Automatic after {operation}",
                )

        movement = StockMovement(
            unit_id=unit.id,
            operation=operation,
            requested=requested,
            applied=applied,
            sold_delta=sold_delta,
            reserved_delta=reserved_delta,
            quantity_available=unit.quantity_available,
            status_before=before,
            status_after=after,
        )
        logger.info(
            f"stock_{operation}",
            extra={
                "unit_id": str(unit.id),
                "requested": requested,
                "applied": applied,
                "quantity_sold": unit.quantity_sold,
                "quantity_reserved": unit.quantity_reserved,
                "quantity_available": movement.quantity_available,
            },
        )
        return movement

"""
Stock arithmetic (``hub_kernel.domain.stock``).

Responsibility
--------------
Status vocabulary and pure availability arithmetic for stock-tracked units
(ticket types).  The ledger service applies these under a row lock; display
code calls them on detached values.

Invariants enforced
-------------------
* ``available`` is never negative and is ``None`` for unlimited units.
* ``sold + reserved <= quantity`` is the condition ``check_counts`` verifies.
"""

from __future__ import annotations

from enum import Enum


class StockStatus(str, Enum):
    """Sale status of a stock-tracked unit."""
    ACTIVE = "active"
    PAUSED = "paused"
    SOLD_OUT = "sold_out"


class ReservationStatus(str, Enum):
    """Settlement state of one addressable hold."""
    HELD = "held"
    CONFIRMED = "confirmed"
    RELEASED = "released"
    REFUNDED = "refunded"


def available(quantity: int | None, sold: int, reserved: int) -> int | None:
    """Units still free to reserve; ``None`` means unlimited."""
    if quantity is None:
        return None
    return max(0, quantity - sold - reserved)


def check_counts(quantity: int | None, sold: int, reserved: int) -> bool:
    """True when the counters satisfy the stock invariant."""
    if sold < 0 or reserved < 0:
        return False
    return quantity is None or sold + reserved <= quantity


def status_after_change(
    current: StockStatus,
    quantity: int | None,
    sold: int,
    reserved: int,
) -> StockStatus:
    """Automatic Active/SoldOut flip.  Paused units are left alone."""
    if current is StockStatus.PAUSED:
        return current
    free = available(quantity, sold, reserved)
    if free is not None and free == 0:
        return StockStatus.SOLD_OUT
    return StockStatus.ACTIVE

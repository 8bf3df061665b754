"""Kernel ORM models."""

from hub_kernel.models.status_history import StatusHistoryEntry
from hub_kernel.models.stock import StockReservationModel, StockUnitMixin

__all__ = [
    "StatusHistoryEntry",
    "StockReservationModel",
    "StockUnitMixin",
]

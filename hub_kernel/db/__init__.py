"""Database layer: declarative base, engine and immutability listeners."""

from hub_kernel.db.base import (
    Base,
    StatusTrackedMixin,
    TrackedBase,
    UTCDateTime,
    UUIDString,
)

__all__ = [
    "Base",
    "StatusTrackedMixin",
    "TrackedBase",
    "UTCDateTime",
    "UUIDString",
]

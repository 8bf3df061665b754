"""
Space Booking Configuration Schema.
"""

from dataclasses import dataclass, fields
from typing import Any, Self

from hub_kernel.logging_config import get_logger

logger = get_logger("modules.space_booking.config")


@dataclass
class SpaceBookingConfig:
    """
    Configuration schema for the space booking module.

        config = SpaceBookingConfig.from_dict(settings["space_booking"])
    """

    default_currency: str = "USD"
    booking_code_prefix: str = "SPB"
    default_buffer_minutes: int = 15
    min_booking_minutes: int = 30
    slot_minutes: int = 60
    # Hours in a priced day, week and month when only an hourly rate is set.
    hours_per_day: int = 8
    hours_per_week: int = 40
    hours_per_month: int = 160

    def __post_init__(self):
        if len(self.default_currency) != 3:
            raise ValueError("default_currency must be a 3-letter code")
        if not self.booking_code_prefix:
            raise ValueError("booking_code_prefix must be non-empty")
        if self.default_buffer_minutes < 0:
            raise ValueError("default_buffer_minutes cannot be negative")
        if self.min_booking_minutes < 1 or self.slot_minutes < 1:
            raise ValueError("booking and slot lengths must be positive")
        if not 0 < self.hours_per_day <= self.hours_per_week <= self.hours_per_month:
            raise ValueError("hours_per_day <= hours_per_week <= hours_per_month must hold")

        logger.info(
            "space_booking_config_initialized",
            extra={
                "default_currency": self.default_currency,
                "default_buffer_minutes": self.default_buffer_minutes,
                "min_booking_minutes": self.min_booking_minutes,
            },
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Self:
        """Build from a settings mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (data or {}).items() if k in known})

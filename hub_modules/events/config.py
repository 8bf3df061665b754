"""
Events Configuration Schema.
"""

from dataclasses import dataclass, fields
from typing import Any, Self

from hub_kernel.logging_config import get_logger

logger = get_logger("modules.events.config")


@dataclass
class EventsConfig:
    """
    Configuration schema for the events module.

        config = EventsConfig.from_dict(settings["events"])
    """

    reference_prefix: str = "EVT"
    default_currency: str = "USD"
    default_max_tickets_per_order: int = 10
    # When False, issuing a ticket only renders the PDF.
    ticket_email_enabled: bool = True

    def __post_init__(self):
        if not self.reference_prefix:
            raise ValueError("reference_prefix must be non-empty")
        if len(self.default_currency) != 3:
            raise ValueError(f"default_currency must be an ISO 4217 code, got '{self.default_currency}'")
        if self.default_max_tickets_per_order < 1:
            raise ValueError("default_max_tickets_per_order must be at least 1")

        logger.info(
            "events_config_initialized",
            extra={
                "reference_prefix": self.reference_prefix,
                "default_currency": self.default_currency,
                "ticket_email_enabled": self.ticket_email_enabled,
            },
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Self:
        """Build from a settings mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (data or {}).items() if k in known})

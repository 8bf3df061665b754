"""
Membership Configuration Schema.
"""

from dataclasses import dataclass, fields
from typing import Any, Self

from hub_kernel.logging_config import get_logger

logger = get_logger("modules.membership.config")


@dataclass
class MembershipConfig:
    """
    Configuration schema for the membership module.

        config = MembershipConfig.from_dict(settings["membership"])
    """

    member_code_prefix: str = "MEM"
    default_currency: str = "USD"
    # Subscriptions ending within this many days are marked expiring.
    expiring_notice_days: int = 7
    default_grace_period_days: int = 0

    def __post_init__(self):
        if not self.member_code_prefix:
            raise ValueError("member_code_prefix must be non-empty")
        if len(self.default_currency) != 3:
            raise ValueError("default_currency must be a 3-letter code")
        if self.expiring_notice_days < 1:
            raise ValueError("expiring_notice_days must be positive")
        if self.default_grace_period_days < 0:
            raise ValueError("default_grace_period_days cannot be negative")

        logger.info(
            "membership_config_initialized",
            extra={
                "expiring_notice_days": self.expiring_notice_days,
                "default_grace_period_days": self.default_grace_period_days,
            },
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Self:
        """Build from a settings mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (data or {}).items() if k in known})

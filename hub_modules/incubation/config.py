"""
Incubation Configuration Schema.
"""

from dataclasses import dataclass, fields
from typing import Any, Self

from hub_kernel.logging_config import get_logger

logger = get_logger("modules.incubation.config")


@dataclass
class IncubationConfig:
    """
    Configuration schema for the incubation module.

        config = IncubationConfig.from_dict(settings["incubation"])
    """

    application_code_prefix: str = "APP"
    session_code_prefix: str = "MS"
    default_cohort_capacity: int = 10
    default_session_minutes: int = 60
    max_session_minutes: int = 480
    slot_minutes: int = 60
    # Mean evaluation score is multiplied by this to give the 0..100 score.
    score_scale: int = 10
    default_interview_location: str = "Online"

    def __post_init__(self):
        if not self.application_code_prefix or not self.session_code_prefix:
            raise ValueError("code prefixes must be non-empty")
        if self.default_cohort_capacity < 1:
            raise ValueError("default_cohort_capacity must be at least 1")
        if self.default_session_minutes < 1 or self.slot_minutes < 1:
            raise ValueError("session and slot lengths must be positive")
        if self.max_session_minutes < self.default_session_minutes:
            raise ValueError("max_session_minutes is shorter than default_session_minutes")
        if self.score_scale < 1:
            raise ValueError("score_scale must be positive")

        logger.info(
            "incubation_config_initialized",
            extra={
                "default_cohort_capacity": self.default_cohort_capacity,
                "default_session_minutes": self.default_session_minutes,
                "slot_minutes": self.slot_minutes,
            },
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Self:
        """Build from a settings mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (data or {}).items() if k in known})

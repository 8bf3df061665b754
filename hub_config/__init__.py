"""
hub_config -- single public entrypoint for runtime settings.

Responsibility:
    ``get_active_settings()`` is the only way to obtain settings at runtime.
    It reads one YAML file (explicit path, ``$HUB_CONFIG``, or the packaged
    ``defaults.yaml``), applies environment overrides and builds the
    per-module config dataclasses.

Architecture position:
    Configuration -- sits above ``hub_kernel`` and beside ``hub_modules``.
    The kernel never imports from ``hub_config``.

Failure modes:
    - ``FileNotFoundError`` -- the selected settings file does not exist.
    - ``yaml.YAMLError`` -- the file is not valid YAML.
    - ``ValueError`` -- a section is not a mapping, or a module config
      rejects a value in its ``__post_init__``.

Audit relevance:
    Every successful call logs ``hub_settings_loaded`` with the source path
    and the checksum of the effective settings.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from hub_config.loader import (
    MODULE_SECTIONS,
    compute_checksum,
    module_section,
    read_settings,
)
from hub_kernel.logging_config import get_logger
from hub_modules.billing.config import BillingConfig
from hub_modules.events.config import EventsConfig
from hub_modules.incubation.config import IncubationConfig
from hub_modules.membership.config import MembershipConfig
from hub_modules.space_booking.config import SpaceBookingConfig

logger = get_logger("config")

DEFAULT_DATABASE_URL = "sqlite:///venture_hub.db"


@dataclass(frozen=True)
class HubSettings:
    """Effective settings for one process."""
    database_url: str
    log_level: str
    billing: BillingConfig
    events: EventsConfig
    incubation: IncubationConfig
    membership: MembershipConfig
    space_booking: SpaceBookingConfig
    source: Path
    checksum: str


def get_active_settings(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> HubSettings:
    """The only public settings entrypoint."""
    source, data = read_settings(path, environ)
    for name in MODULE_SECTIONS:
        module_section(data, name)

    settings = HubSettings(
        database_url=data["database"].get("url") or DEFAULT_DATABASE_URL,
        log_level=str(data["logging"].get("level") or "INFO").upper(),
        billing=BillingConfig.from_dict(module_section(data, "billing")),
        events=EventsConfig.from_dict(module_section(data, "events")),
        incubation=IncubationConfig.from_dict(module_section(data, "incubation")),
        membership=MembershipConfig.from_dict(module_section(data, "membership")),
        space_booking=SpaceBookingConfig.from_dict(module_section(data, "space_booking")),
        source=source,
        checksum=compute_checksum(data),
    )
    logger.info(
        "hub_settings_loaded",
        extra={
            "source": str(source),
            "checksum": settings.checksum,
            "log_level": settings.log_level,
            "database_backend": settings.database_url.split(":", 1)[0],
        },
    )
    return settings


__all__ = [
    "HubSettings",
    "get_active_settings",
]

"""
Settings loader (``hub_config.loader``).

Reads one YAML settings file with PyYAML and overlays the environment.
Callers go through ``hub_config.get_active_settings()``; nothing else reads
settings files or environment variables.

Failure modes
-------------
* Missing file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Top level not a mapping, or a module section not a mapping  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

CONFIG_PATH_ENV = "HUB_CONFIG"
DATABASE_URL_ENV = "DATABASE_URL"
LOG_LEVEL_ENV = "HUB_LOG_LEVEL"

MODULE_SECTIONS = ("billing", "events", "incubation", "membership", "space_booking")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Contents of one YAML file; an empty file gives ``{}``."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: settings must be a mapping, got {type(data).__name__}")
    return data


def resolve_path(path: Path | str | None, environ: Mapping[str, str]) -> Path:
    """Explicit path, else ``$HUB_CONFIG``, else the packaged defaults."""
    if path is not None:
        return Path(path)
    if environ.get(CONFIG_PATH_ENV):
        return Path(environ[CONFIG_PATH_ENV])
    return DEFAULTS_PATH


def apply_environment(data: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    """``DATABASE_URL`` and ``HUB_LOG_LEVEL`` win over the file."""
    merged = dict(data)
    database = dict(merged.get("database") or {})
    if environ.get(DATABASE_URL_ENV):
        database["url"] = environ[DATABASE_URL_ENV]
    merged["database"] = database
    logging_section = dict(merged.get("logging") or {})
    if environ.get(LOG_LEVEL_ENV):
        logging_section["level"] = environ[LOG_LEVEL_ENV]
    merged["logging"] = logging_section
    return merged


def module_section(data: Mapping[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"settings section '{name}' must be a mapping")
    return section


def compute_checksum(data: Mapping[str, Any]) -> str:
    """SHA-256 of the canonical JSON form; identical settings give identical checksums."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def read_settings(
    path: Path | str | None = None, environ: Mapping[str, str] | None = None,
) -> tuple[Path, dict[str, Any]]:
    environ = os.environ if environ is None else environ
    source = resolve_path(path, environ)
    return source, apply_environment(load_yaml_file(source), environ)

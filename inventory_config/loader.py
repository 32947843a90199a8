"""
Configuration Loader (``inventory_config.loader``).

Responsibility
--------------
Loads YAML settings fragments and merges them into one validated
``TenantInventorySettings``.  Layering order: ``sets/default.yaml``, then
``sets/tenants/<tenant_id>.yaml`` when present, then explicit overrides.

Failure modes
-------------
* Missing default file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or invalid values  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from inventory_kernel.domain.settings import TenantInventorySettings
from inventory_kernel.exceptions import ConfigurationError

SETTINGS_KEY = "inventory"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def extract_settings(data: dict[str, Any], source: str) -> dict[str, Any]:
    """Pull the ``inventory:`` mapping out of a parsed fragment."""
    section = data.get(SETTINGS_KEY, {})
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigurationError(SETTINGS_KEY, f"must be a mapping in {source}")
    unknown = set(section) - TenantInventorySettings.field_names()
    if unknown:
        raise ConfigurationError(
            sorted(unknown)[0], f"unknown setting in {source}"
        )
    return dict(section)


def tenant_file(config_dir: Path, tenant_id: str) -> Path:
    return config_dir / "tenants" / f"{tenant_id}.yaml"


def load_settings(
    config_dir: Path,
    tenant_id: str,
    overrides: dict[str, Any] | None = None,
) -> tuple[TenantInventorySettings, list[str]]:
    """
    Merge default, tenant and override layers into validated settings.

    Returns:
        The settings and the list of layer names that contributed.
    """
    merged: dict[str, Any] = {}
    layers: list[str] = []

    default_path = config_dir / "default.yaml"
    merged.update(extract_settings(load_yaml_file(default_path), str(default_path)))
    layers.append("default")

    path = tenant_file(config_dir, tenant_id)
    if path.exists():
        merged.update(extract_settings(load_yaml_file(path), str(path)))
        layers.append(f"tenant:{tenant_id}")

    if overrides:
        merged.update(extract_settings({SETTINGS_KEY: overrides}, "overrides"))
        layers.append("overrides")

    return TenantInventorySettings(**merged), layers


def compute_checksum(settings: TenantInventorySettings) -> str:
    """Deterministic SHA-256 of the effective settings."""
    canonical = json.dumps(settings.to_dict(), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

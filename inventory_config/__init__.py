"""
inventory_config -- per-tenant inventory settings.

Responsibility:
    ``get_tenant_settings()`` is the single way to obtain a tenant's
    ``TenantInventorySettings``.  The result is passed explicitly into the
    transaction engine and services; the kernel never reads configuration
    files itself.

Architecture position:
    Configuration -- sits above ``inventory_kernel`` and
    ``inventory_engines``.  The kernel MUST NEVER import from this package.

Audit relevance:
    Every call emits an ``INVENTORY_CONFIG_TRACE`` log record with the
    tenant, contributing layers and the settings checksum.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from inventory_config.loader import compute_checksum, load_settings
from inventory_kernel.domain.settings import TenantInventorySettings

_logger = logging.getLogger("inventory_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"


def get_tenant_settings(
    tenant_id: str,
    config_dir: Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> TenantInventorySettings:
    """
    Load, merge and validate a tenant's inventory settings.

    Args:
        tenant_id: Tenant identifier; selects ``sets/tenants/<tenant_id>.yaml``.
        config_dir: Override path to the settings directory.
        overrides: Explicit values applied last (e.g. from an admin screen).

    Raises:
        ConfigurationError: unknown key or invalid value.
        FileNotFoundError: default.yaml missing from config_dir.
    """
    directory = config_dir or _DEFAULT_CONFIG_DIR
    settings, layers = load_settings(directory, str(tenant_id), overrides)

    _logger.info(
        "INVENTORY_CONFIG_TRACE",
        extra={
            "trace_type": "INVENTORY_CONFIG_TRACE",
            "tenant_id": str(tenant_id),
            "layers": layers,
            "checksum": compute_checksum(settings),
        },
    )
    return settings


__all__ = ["TenantInventorySettings", "get_tenant_settings"]

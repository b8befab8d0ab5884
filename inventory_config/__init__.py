"""
inventory_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the ONLY way to obtain settings at runtime.
    No other component reads configuration files or environment variables.

Architecture position:
    Sits above ``inventory_kernel`` and below ``inventory_modules`` /
    ``inventory_services``.  The kernel MUST NEVER import from here;
    ``inventory_config.bridges`` translates settings into kernel inputs.

Environment:
    INVENTORY_CONFIG_PATH  alternative YAML file
    DATABASE_URL           overrides ``database.url``

Audit relevance:
    Every call logs ``INVENTORY_CONFIG_TRACE`` with the source path and the
    checksum of the loaded document.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path

from inventory_config.loader import load_settings
from inventory_config.schema import ConfigValidationError, InventorySettings

_logger = logging.getLogger("inventory_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

__all__ = [
    "get_active_config",
    "InventorySettings",
    "ConfigValidationError",
    "DEFAULT_CONFIG_PATH",
]


def get_active_config(config_path: Path | str | None = None) -> InventorySettings:
    """The ONLY public configuration entrypoint.

    Resolution order for the file: ``config_path`` argument, then
    ``INVENTORY_CONFIG_PATH``, then the packaged default.  ``DATABASE_URL``
    always wins over the file's database URL.

    Raises:
        FileNotFoundError: The selected file does not exist.
        ConfigValidationError: A value failed validation.
    """
    path = Path(
        config_path
        or os.environ.get("INVENTORY_CONFIG_PATH")
        or DEFAULT_CONFIG_PATH
    )
    settings = load_settings(path)

    database_url = os.environ.get("DATABASE_URL")
    if database_url:
        settings = dataclasses.replace(
            settings,
            database=dataclasses.replace(settings.database, url=database_url),
        )

    _logger.info(
        "INVENTORY_CONFIG_TRACE",
        extra={
            "trace_type": "INVENTORY_CONFIG_TRACE",
            "source_path": settings.source_path,
            "checksum": settings.checksum,
            "database_url_overridden": bool(database_url),
            "allow_negative_stock_default": settings.inventory.allow_negative_stock_default,
            "clamp_adjustments": settings.inventory.clamp_adjustments,
        },
    )
    return settings

"""
Inventory configuration schema.

Frozen dataclasses the loader parses YAML into.  Nothing here reads files
or the environment; see ``inventory_config.loader`` and
``inventory_config.get_active_config``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


class ConfigValidationError(ValueError):
    """A configuration value is missing, mistyped or out of range."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration {key}: {reason}")


@dataclass(frozen=True)
class DatabaseSettings:
    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


@dataclass(frozen=True)
class StockPolicySettings:
    """Defaults for the stock ledger."""

    # Used when a product has no ProductStockPolicy row
    allow_negative_stock_default: bool = False
    # SUBTRACT/DAMAGE adjustments floor at zero instead of failing
    clamp_adjustments: bool = True


@dataclass(frozen=True)
class PurchasingSettings:
    tax_rate: Decimal = Decimal("0.05")
    currency: str = "USD"


@dataclass(frozen=True)
class NumberingRuleDef:
    prefix: str
    width: int = 6
    date_segment: bool = False
    separator: str = ""


@dataclass(frozen=True)
class NumberingSettings:
    rules: dict[str, NumberingRuleDef] = field(default_factory=dict)


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class InventorySettings:
    """The one runtime configuration object."""

    database: DatabaseSettings
    inventory: StockPolicySettings = field(default_factory=StockPolicySettings)
    purchasing: PurchasingSettings = field(default_factory=PurchasingSettings)
    numbering: NumberingSettings = field(default_factory=NumberingSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    checksum: str = ""
    source_path: str | None = None

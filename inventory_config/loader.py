"""
YAML loader for inventory configuration.

Parses a YAML document into ``InventorySettings``.  Unknown top-level
sections are ignored; known keys are type-checked and range-checked here so
services can trust the values they receive.

Failure modes:
* Missing file      -> ``FileNotFoundError`` propagates.
* Malformed YAML    -> ``yaml.YAMLError`` propagates.
* Bad value         -> ``ConfigValidationError``.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from inventory_config.schema import (
    ConfigValidationError,
    DatabaseSettings,
    InventorySettings,
    LoggingSettings,
    NumberingRuleDef,
    NumberingSettings,
    PurchasingSettings,
    StockPolicySettings,
)
from inventory_kernel.utils.hashing import hash_payload

_VALID_LOG_LEVELS = frozenset(logging.getLevelNamesMapping())


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigValidationError(name, "must be a mapping")
    return value


def _bool(section: str, data: dict[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigValidationError(f"{section}.{key}", f"expected true/false, got {value!r}")
    return value


def _int(section: str, data: dict[str, Any], key: str, default: int, minimum: int = 0) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ConfigValidationError(
            f"{section}.{key}", f"expected integer >= {minimum}, got {value!r}",
        )
    return value


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    url = data.get("url")
    if not url or not isinstance(url, str):
        raise ConfigValidationError("database.url", "is required")
    return DatabaseSettings(
        url=url,
        echo=_bool("database", data, "echo", False),
        pool_size=_int("database", data, "pool_size", 20, minimum=1),
        max_overflow=_int("database", data, "max_overflow", 10),
    )


def parse_stock_policy(data: dict[str, Any]) -> StockPolicySettings:
    return StockPolicySettings(
        allow_negative_stock_default=_bool(
            "inventory", data, "allow_negative_stock_default", False,
        ),
        clamp_adjustments=_bool("inventory", data, "clamp_adjustments", True),
    )


def parse_purchasing(data: dict[str, Any]) -> PurchasingSettings:
    raw_rate = data.get("tax_rate", "0.05")
    try:
        # str() first so a YAML float 0.05 does not carry binary noise
        tax_rate = Decimal(str(raw_rate))
    except InvalidOperation as exc:
        raise ConfigValidationError("purchasing.tax_rate", f"not a number: {raw_rate!r}") from exc
    if tax_rate < 0 or tax_rate >= 1:
        raise ConfigValidationError("purchasing.tax_rate", "must be in [0, 1)")

    currency = data.get("currency", "USD")
    if not isinstance(currency, str) or len(currency) != 3 or not currency.isalpha():
        raise ConfigValidationError("purchasing.currency", f"not an ISO 4217 code: {currency!r}")

    return PurchasingSettings(tax_rate=tax_rate, currency=currency.upper())


def parse_numbering(data: dict[str, Any]) -> NumberingSettings:
    rules: dict[str, NumberingRuleDef] = {}
    for document_type, raw in data.items():
        if not isinstance(raw, dict) or not raw.get("prefix"):
            raise ConfigValidationError(f"numbering.{document_type}", "needs a prefix")
        section = f"numbering.{document_type}"
        rules[document_type] = NumberingRuleDef(
            prefix=str(raw["prefix"]),
            width=_int(section, raw, "width", 6, minimum=1),
            date_segment=_bool(section, raw, "date_segment", False),
            separator=str(raw.get("separator", "")),
        )
    return NumberingSettings(rules=rules)


def parse_logging(data: dict[str, Any]) -> LoggingSettings:
    level = str(data.get("level", "INFO")).upper()
    if level not in _VALID_LOG_LEVELS:
        raise ConfigValidationError("logging.level", f"unknown level {level!r}")
    return LoggingSettings(level=level)


def parse_settings(
    data: dict[str, Any],
    source_path: str | None = None,
) -> InventorySettings:
    """Build ``InventorySettings`` from an already-loaded mapping."""
    return InventorySettings(
        database=parse_database(_section(data, "database")),
        inventory=parse_stock_policy(_section(data, "inventory")),
        purchasing=parse_purchasing(_section(data, "purchasing")),
        numbering=parse_numbering(_section(data, "numbering")),
        logging=parse_logging(_section(data, "logging")),
        checksum=hash_payload(data),
        source_path=source_path,
    )


def load_settings(path: Path) -> InventorySettings:
    return parse_settings(load_yaml_file(path), source_path=str(path))

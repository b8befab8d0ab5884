"""
Tests for inventory_config: YAML loading, validation, environment overrides
and the bridges into kernel services.
"""

from decimal import Decimal

import pytest
import yaml

from inventory_config import DEFAULT_CONFIG_PATH, get_active_config
from inventory_config.bridges import (
    build_document_numberer,
    build_inventory_mutator,
    build_numbering_rules,
)
from inventory_config.loader import load_settings, parse_settings
from inventory_config.schema import ConfigValidationError
from inventory_kernel.services.document_numbering import DocumentType, NumberingRule

MINIMAL = {"database": {"url": "sqlite:///:memory:"}}


def _write(tmp_path, data) -> str:
    path = tmp_path / "inventory.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


class TestDefaultConfig:

    def test_packaged_default_loads(self):
        settings = load_settings(DEFAULT_CONFIG_PATH)

        assert settings.inventory.allow_negative_stock_default is False
        assert settings.inventory.clamp_adjustments is True
        assert settings.purchasing.tax_rate == Decimal("0.05")
        assert settings.purchasing.currency == "USD"
        assert settings.numbering.rules["goods_issue"].date_segment is True
        assert len(settings.checksum) == 64

    def test_checksum_is_stable(self):
        assert load_settings(DEFAULT_CONFIG_PATH).checksum == load_settings(DEFAULT_CONFIG_PATH).checksum


class TestParsing:

    def test_minimal_document_uses_defaults(self):
        settings = parse_settings(MINIMAL)

        assert settings.database.pool_size == 20
        assert settings.inventory.clamp_adjustments is True
        assert settings.numbering.rules == {}
        assert settings.logging.level == "INFO"

    def test_missing_database_url(self):
        with pytest.raises(ConfigValidationError) as exc_info:
            parse_settings({"database": {}})
        assert exc_info.value.key == "database.url"

    @pytest.mark.parametrize("rate", ["-0.01", "1", "abc"])
    def test_bad_tax_rate(self, rate):
        with pytest.raises(ConfigValidationError):
            parse_settings({**MINIMAL, "purchasing": {"tax_rate": rate}})

    def test_float_tax_rate_parsed_exactly(self):
        settings = parse_settings({**MINIMAL, "purchasing": {"tax_rate": 0.08}})
        assert settings.purchasing.tax_rate == Decimal("0.08")

    def test_bad_currency(self):
        with pytest.raises(ConfigValidationError):
            parse_settings({**MINIMAL, "purchasing": {"currency": "DOLLARS"}})

    def test_non_bool_flag(self):
        with pytest.raises(ConfigValidationError):
            parse_settings({**MINIMAL, "inventory": {"clamp_adjustments": "yes"}})

    def test_numbering_rule_needs_prefix(self):
        with pytest.raises(ConfigValidationError):
            parse_settings({**MINIMAL, "numbering": {"purchase_order": {"width": 4}}})

    def test_unknown_log_level(self):
        with pytest.raises(ConfigValidationError):
            parse_settings({**MINIMAL, "logging": {"level": "CHATTY"}})

    def test_section_must_be_mapping(self):
        with pytest.raises(ConfigValidationError):
            parse_settings({**MINIMAL, "inventory": ["clamp_adjustments"]})


class TestGetActiveConfig:

    def test_explicit_path(self, tmp_path):
        path = _write(tmp_path, {**MINIMAL, "inventory": {"clamp_adjustments": False}})
        settings = get_active_config(path)
        assert settings.inventory.clamp_adjustments is False
        assert settings.source_path == path

    def test_env_path(self, tmp_path, monkeypatch):
        path = _write(tmp_path, {**MINIMAL, "purchasing": {"tax_rate": "0.10"}})
        monkeypatch.setenv("INVENTORY_CONFIG_PATH", path)
        monkeypatch.delenv("DATABASE_URL", raising=False)

        assert get_active_config().purchasing.tax_rate == Decimal("0.10")

    def test_database_url_env_wins(self, tmp_path, monkeypatch):
        path = _write(tmp_path, MINIMAL)
        monkeypatch.setenv("DATABASE_URL", "postgresql://inv:inv@db/inventory")

        assert get_active_config(path).database.url == "postgresql://inv:inv@db/inventory"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "nope.yaml")

    def test_trace_logged(self, tmp_path, captured_logs):
        get_active_config(_write(tmp_path, MINIMAL))

        traces = [r for r in captured_logs() if r["message"] == "INVENTORY_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["checksum"]


class TestBridges:

    def test_numbering_rules_translated(self):
        settings = parse_settings({
            **MINIMAL,
            "numbering": {"purchase_order": {"prefix": "PUR", "width": 4, "separator": "-"}},
        })
        rules = build_numbering_rules(settings)
        assert rules == {"purchase_order": NumberingRule("PUR", width=4, separator="-")}

    def test_numberer_uses_configured_rules(self, session, deterministic_clock):
        settings = parse_settings({
            **MINIMAL,
            "numbering": {"purchase_order": {"prefix": "PUR", "width": 4, "separator": "-"}},
        })
        numberer = build_document_numberer(session, settings, deterministic_clock)
        assert numberer.next_number(DocumentType.PURCHASE_ORDER) == "PUR-0001"

    def test_mutator_takes_negative_default(self, session):
        settings = parse_settings({**MINIMAL, "inventory": {"allow_negative_stock_default": True}})
        mutator = build_inventory_mutator(session, settings)
        assert mutator._allow_negative_default is True

    def test_mutator_without_settings_is_strict(self, session):
        assert build_inventory_mutator(session)._allow_negative_default is False

"""Configuration set loading and validation."""

from decimal import Decimal

import pytest
import yaml

from stock_config import get_active_config
from stock_config.loader import compute_checksum, parse_configuration
from stock_kernel.domain.dtos import LotKind


def _write_set(tmp_path, name, document):
    set_dir = tmp_path / name
    set_dir.mkdir()
    (set_dir / "root.yaml").write_text(yaml.safe_dump(document))
    return tmp_path


class TestDefaultSet:

    def test_defaults_loaded(self):
        config = get_active_config()
        assert config.config_id == "default"
        assert config.inventory.expiring_soon_days == 30
        assert config.inventory.default_lot_kind == LotKind.RAW_MATERIAL
        assert config.replenishment.tax_rate == Decimal("0.10")
        assert config.replenishment.critical_ratio == Decimal("0.5")
        assert config.replenishment.currency == "USD"
        assert len(config.checksum) == 64

    def test_trace_logged(self, captured_logs):
        config = get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "STOCK_CONFIG_TRACE"]
        assert traces[0]["checksum"] == config.checksum

    def test_missing_set(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(config_dir=tmp_path, set_name="nope")


class TestCustomSet:

    def test_partial_set_keeps_defaults(self, tmp_path):
        config_dir = _write_set(tmp_path, "plant-2", {
            "config_id": "plant-2",
            "version": 3,
            "inventory": {"expiring_soon_days": 14},
            "replenishment": {"tax_rate": "0.20", "currency": "eur"},
        })
        config = get_active_config(config_dir=config_dir, set_name="plant-2")
        assert config.version == 3
        assert config.inventory.expiring_soon_days == 14
        assert config.inventory.lot_number_prefix == "LOT"
        assert config.replenishment.tax_rate == Decimal("0.20")
        assert config.replenishment.currency == "EUR"
        assert config.replenishment.default_min_stock == Decimal("10")


class TestValidation:

    @pytest.mark.parametrize(
        "document, message",
        [
            ({"config_id": "x", "inventory": {"expiry_days": 3}}, "Unknown inventory"),
            ({"config_id": "x", "replenishment": {"taxrate": "0.1"}}, "Unknown replenishment"),
            ({"config_id": "x", "extra": 1}, "Unknown root"),
            ({"version": 1}, "config_id"),
            ({"config_id": "x", "replenishment": {"currency": "DOLLARS"}}, "currency"),
            ({"config_id": "x", "replenishment": {"tax_rate": "-0.1"}}, "tax_rate"),
            ({"config_id": "x", "replenishment": {"tax_rate": "ten"}}, "tax_rate"),
            ({"config_id": "x", "replenishment": {"critical_ratio": "0.9"}}, "ratios"),
            ({"config_id": "x", "inventory": {"expiring_soon_days": -1}}, "expiring_soon_days"),
        ],
    )
    def test_invalid_documents(self, document, message):
        with pytest.raises(ValueError, match=message):
            parse_configuration(document)

    def test_unknown_lot_kind(self):
        with pytest.raises(ValueError):
            parse_configuration({"config_id": "x", "inventory": {"default_lot_kind": "wip"}})


class TestChecksum:

    def test_key_order_irrelevant(self):
        a = {"config_id": "x", "replenishment": {"tax_rate": "0.1", "currency": "USD"}}
        b = {"replenishment": {"currency": "USD", "tax_rate": "0.1"}, "config_id": "x"}
        assert compute_checksum(a) == compute_checksum(b)

    def test_value_change_detected(self):
        assert compute_checksum({"config_id": "x"}) != compute_checksum({"config_id": "y"})

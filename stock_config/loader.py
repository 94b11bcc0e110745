"""
Configuration Loader (``stock_config.loader``).

Responsibility
--------------
Loads a configuration set's ``root.yaml`` and parses it into the frozen
``stock_config.schema`` dataclasses.  The single public entry point for
runtime config is ``stock_config.get_active_config()``.

Invariants enforced
-------------------
* Unknown keys raise ``ValueError``; a typo never silently falls back to a
  default.
* Decimal settings are parsed from their string form, never through float.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Bad values  -> ``ValueError`` with the offending key.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from stock_config.schema import InventorySettings, ReplenishmentSettings, StockConfiguration
from stock_kernel.domain.dtos import LotKind

_INVENTORY_KEYS = frozenset({
    "allow_unconverted_units",
    "expiring_soon_days",
    "default_lot_kind",
    "lot_number_prefix",
})

_REPLENISHMENT_DECIMALS = frozenset({
    "default_min_stock",
    "critical_ratio",
    "high_ratio",
    "fallback_multiplier",
    "tax_rate",
})

_REPLENISHMENT_KEYS = _REPLENISHMENT_DECIMALS | {
    "order_number_prefix",
    "skip_when_pending",
    "currency",
}

_ROOT_KEYS = frozenset({"config_id", "version", "description", "inventory", "replenishment"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML must be a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _reject_unknown(section: str, data: dict[str, Any], allowed: frozenset[str]) -> None:
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ValueError(f"Unknown {section} setting(s): {', '.join(unknown)}")


def _decimal(key: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(f"{key}: expected a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{key}: expected a number, got {value!r}") from None


def parse_inventory(data: dict[str, Any]) -> InventorySettings:
    _reject_unknown("inventory", data, _INVENTORY_KEYS)
    kwargs: dict[str, Any] = {}
    if "allow_unconverted_units" in data:
        kwargs["allow_unconverted_units"] = bool(data["allow_unconverted_units"])
    if "expiring_soon_days" in data:
        kwargs["expiring_soon_days"] = int(data["expiring_soon_days"])
    if "default_lot_kind" in data:
        kwargs["default_lot_kind"] = LotKind(data["default_lot_kind"])
    if "lot_number_prefix" in data:
        kwargs["lot_number_prefix"] = str(data["lot_number_prefix"])
    return InventorySettings(**kwargs)


def parse_replenishment(data: dict[str, Any]) -> ReplenishmentSettings:
    _reject_unknown("replenishment", data, _REPLENISHMENT_KEYS)
    kwargs: dict[str, Any] = {}
    for key in _REPLENISHMENT_DECIMALS & set(data):
        kwargs[key] = _decimal(f"replenishment.{key}", data[key])
    if "order_number_prefix" in data:
        kwargs["order_number_prefix"] = str(data["order_number_prefix"])
    if "skip_when_pending" in data:
        kwargs["skip_when_pending"] = bool(data["skip_when_pending"])
    if "currency" in data:
        kwargs["currency"] = str(data["currency"]).upper()
    return ReplenishmentSettings(**kwargs)


def parse_configuration(data: dict[str, Any]) -> StockConfiguration:
    """Parse a root document into a StockConfiguration (checksum included)."""
    _reject_unknown("root", data, _ROOT_KEYS)
    if "config_id" not in data:
        raise ValueError("Configuration is missing 'config_id'")
    return StockConfiguration(
        config_id=str(data["config_id"]),
        version=int(data.get("version", 1)),
        description=str(data.get("description", "")),
        inventory=parse_inventory(data.get("inventory") or {}),
        replenishment=parse_replenishment(data.get("replenishment") or {}),
        checksum=compute_checksum(data),
    )

"""
StockConfiguration schema.

Frozen dataclasses the YAML configuration set is parsed into.  Defaults
here match ``sets/default/root.yaml``; a set may omit any setting.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from stock_engines.replenishment import ReplenishmentPolicy
from stock_kernel.domain.dtos import LotKind


@dataclass(frozen=True)
class InventorySettings:
    """Lot store and stock ledger behavior."""

    allow_unconverted_units: bool = False
    expiring_soon_days: int = 30
    default_lot_kind: LotKind = LotKind.RAW_MATERIAL
    lot_number_prefix: str = "LOT"

    def __post_init__(self) -> None:
        if self.expiring_soon_days < 0:
            raise ValueError(
                f"inventory.expiring_soon_days must be >= 0, got {self.expiring_soon_days}"
            )
        if not self.lot_number_prefix:
            raise ValueError("inventory.lot_number_prefix must not be empty")


@dataclass(frozen=True)
class ReplenishmentSettings:
    """Suggestion generation and purchase-order drafting."""

    default_min_stock: Decimal = Decimal("10")
    critical_ratio: Decimal = Decimal("0.5")
    high_ratio: Decimal = Decimal("0.75")
    fallback_multiplier: Decimal = Decimal("2")
    tax_rate: Decimal = Decimal("0.10")
    order_number_prefix: str = "PO"
    skip_when_pending: bool = True
    currency: str = "USD"

    def __post_init__(self) -> None:
        if self.tax_rate < 0:
            raise ValueError(f"replenishment.tax_rate must be >= 0, got {self.tax_rate}")
        if len(self.currency) != 3 or not self.currency.isalpha():
            raise ValueError(f"replenishment.currency must be a 3-letter code, got {self.currency!r}")
        # Delegates ratio/multiplier validation to the engine policy.
        self.policy()

    def policy(self) -> ReplenishmentPolicy:
        return ReplenishmentPolicy(
            default_min_stock=self.default_min_stock,
            critical_ratio=self.critical_ratio,
            high_ratio=self.high_ratio,
            fallback_multiplier=self.fallback_multiplier,
        )


@dataclass(frozen=True)
class StockConfiguration:
    """A loaded, validated configuration set."""

    config_id: str
    version: int
    inventory: InventorySettings = field(default_factory=InventorySettings)
    replenishment: ReplenishmentSettings = field(default_factory=ReplenishmentSettings)
    description: str = ""
    checksum: str = ""

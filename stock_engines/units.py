"""
Module: stock_engines.units
Responsibility:
    Convert quantities between units of measure within one dimensional
    family (mass, volume, length, count), and between mass and volume when
    the caller supplies a density.

Architecture position:
    Engines -- pure calculation layer, zero I/O, no state.

Invariants enforced:
    - Equal units return the input quantity unchanged (no arithmetic).
    - Conversion factors come from one fixed table keyed by unit; no unit
      is special-cased.
    - Decimal arithmetic only.  kg -> g -> kg round-trips exactly.
    - Mass <-> volume only with an explicit positive density (kg/L).

Failure modes:
    - ``convert`` raises UnitMismatchError for different families or
      unknown units.  ``try_convert`` returns None instead.
    - ValueError on a non-positive density.

Usage:
    converter = UnitConverter()
    converter.convert(Decimal("2.5"), "kg", "g")          # Decimal("2500.0")
    converter.try_convert(Decimal("1"), "kg", "L")         # None
    converter.convert(Decimal("2"), "L", "kg", density=Decimal("0.92"))
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from stock_kernel.exceptions import UnitMismatchError


class UnitFamily(str, Enum):
    MASS = "mass"
    VOLUME = "volume"
    LENGTH = "length"
    COUNT = "count"


@dataclass(frozen=True)
class UnitDefinition:
    """One unit: its display symbol, family and size in the family's base unit."""
    symbol: str
    family: UnitFamily
    factor: Decimal


_DEFINITIONS: tuple[UnitDefinition, ...] = (
    # mass, base g
    UnitDefinition("mg", UnitFamily.MASS, Decimal("0.001")),
    UnitDefinition("g", UnitFamily.MASS, Decimal("1")),
    UnitDefinition("kg", UnitFamily.MASS, Decimal("1000")),
    UnitDefinition("t", UnitFamily.MASS, Decimal("1000000")),
    # volume, base mL
    UnitDefinition("mL", UnitFamily.VOLUME, Decimal("1")),
    UnitDefinition("cL", UnitFamily.VOLUME, Decimal("10")),
    UnitDefinition("L", UnitFamily.VOLUME, Decimal("1000")),
    # length, base mm
    UnitDefinition("mm", UnitFamily.LENGTH, Decimal("1")),
    UnitDefinition("cm", UnitFamily.LENGTH, Decimal("10")),
    UnitDefinition("m", UnitFamily.LENGTH, Decimal("1000")),
    # count, base piece
    UnitDefinition("pcs", UnitFamily.COUNT, Decimal("1")),
    UnitDefinition("dozen", UnitFamily.COUNT, Decimal("12")),
)

_ALIASES: dict[str, str] = {
    "pc": "pcs",
    "ea": "pcs",
    "each": "pcs",
    "unit": "pcs",
    "units": "pcs",
    "dz": "dozen",
    "tonne": "t",
}

UNIT_TABLE: dict[str, UnitDefinition] = {d.symbol.lower(): d for d in _DEFINITIONS}

# 1 kg/L == 1 g/mL, so density in kg/L multiplies base volume into base mass.
_MASS_BASE_PER_VOLUME_BASE = Decimal("1")


def lookup_unit(unit: str) -> UnitDefinition | None:
    """Resolve a unit spelling (case-insensitive, aliases allowed)."""
    if not unit:
        return None
    key = unit.strip().lower()
    key = _ALIASES.get(key, key)
    return UNIT_TABLE.get(key)


def format_quantity(quantity: Decimal, unit: str) -> str:
    """Render ``quantity`` with two decimals followed by the unit symbol."""
    definition = lookup_unit(unit)
    symbol = definition.symbol if definition else unit
    rounded = quantity.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{rounded} {symbol}"


class UnitConverter:
    """
    Stateless unit conversion.

    Contract:
        ``convert(q, a, b)`` returns ``q`` expressed in ``b``.

    Guarantees:
        - Same unit (after alias resolution) returns ``q`` itself.
        - Never returns a float.

    Non-goals:
        - No currency, temperature or compound units.
    """

    def canonical_symbol(self, unit: str) -> str:
        """Display symbol for a unit spelling; unknown units pass through."""
        definition = lookup_unit(unit)
        return definition.symbol if definition else unit.strip()

    def family_of(self, unit: str) -> UnitFamily | None:
        definition = lookup_unit(unit)
        return definition.family if definition else None

    def are_compatible(self, from_unit: str, to_unit: str) -> bool:
        """True when a conversion exists without a density."""
        if self._same_unit(from_unit, to_unit):
            return True
        a, b = lookup_unit(from_unit), lookup_unit(to_unit)
        return a is not None and b is not None and a.family == b.family

    def try_convert(
        self,
        quantity: Decimal,
        from_unit: str,
        to_unit: str,
        density: Decimal | None = None,
    ) -> Decimal | None:
        """``convert`` that returns None instead of raising UnitMismatchError."""
        try:
            return self.convert(quantity, from_unit, to_unit, density=density)
        except UnitMismatchError:
            return None

    def convert(
        self,
        quantity: Decimal,
        from_unit: str,
        to_unit: str,
        density: Decimal | None = None,
    ) -> Decimal:
        """
        Convert ``quantity`` from ``from_unit`` to ``to_unit``.

        Args:
            quantity: Amount in ``from_unit``.
            from_unit: Source unit spelling.
            to_unit: Target unit spelling.
            density: Optional density in kg/L enabling mass <-> volume.

        Raises:
            UnitMismatchError: Units unknown or in different families
                (and no density bridges them).
            ValueError: density supplied but not positive.
        """
        if self._same_unit(from_unit, to_unit):
            return quantity

        source = lookup_unit(from_unit)
        target = lookup_unit(to_unit)
        if source is None or target is None:
            raise UnitMismatchError(from_unit, to_unit)

        if source.family == target.family:
            return quantity * source.factor / target.factor

        families = {source.family, target.family}
        if density is not None and families == {UnitFamily.MASS, UnitFamily.VOLUME}:
            if density <= 0:
                raise ValueError(f"density must be positive, got {density}")
            base = quantity * source.factor
            if source.family == UnitFamily.VOLUME:
                base = base * density * _MASS_BASE_PER_VOLUME_BASE
            else:
                base = base / (density * _MASS_BASE_PER_VOLUME_BASE)
            return base / target.factor

        raise UnitMismatchError(from_unit, to_unit)

    @staticmethod
    def _same_unit(a: str, b: str) -> bool:
        if a == b:
            return True
        da, db = lookup_unit(a), lookup_unit(b)
        return da is not None and da is db

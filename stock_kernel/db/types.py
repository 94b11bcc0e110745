"""
Module: stock_kernel.db.types
Responsibility: Annotated type aliases and rounding helpers for quantity and
    money columns.  Centralizes precision so that every model and service uses
    identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, selectors/ and outer layers.  MUST NOT import from any of them.

Invariants enforced:
    - No floats anywhere in the stock kernel.  Quantities and money are
      Decimal with explicit precision.
    - round_money() is the only sanctioned rounding for monetary values;
      round_quantity() is the only sanctioned rounding for stored quantities.

Failure modes:
    - decimal.InvalidOperation on a non-numeric string passed to to_decimal().
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Annotated

from sqlalchemy import BigInteger, Numeric, String


# Quantity: 38 digits total, 9 decimal places
Qty = Annotated[Decimal, Numeric(38, 9)]

# Monetary amount: same precision as quantities
Money = Annotated[Decimal, Numeric(38, 9)]

# ISO 4217 currency code (e.g., "USD", "EUR")
Currency = Annotated[str, String(3)]

# Monotonic sequence number for ordering
Sequence = Annotated[int, BigInteger]

# External entity identifiers (product, material, warehouse, supplier)
ExternalId = Annotated[str, String(100)]

# Short identifier strings (status, type and unit codes)
ShortCode = Annotated[str, String(50)]

# Long text for notes and reasons
LongText = Annotated[str, String(4000)]


MONEY_DECIMAL_PLACES = 2
QUANTITY_DECIMAL_PLACES = 9
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def to_decimal(value: Decimal | int | str) -> Decimal:
    """
    Coerce an int, str or Decimal into a Decimal.

    Floats are rejected: a binary float cannot represent most decimal
    quantities exactly.
    """
    if isinstance(value, float):
        raise TypeError(f"Float not allowed for quantities or money: {value!r}")
    if isinstance(value, Decimal):
        return value
    return Decimal(value)


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Round a monetary value to the given number of decimal places."""
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def round_quantity(value: Decimal) -> Decimal:
    """Round a quantity to column precision (9 places)."""
    return round_money(value, QUANTITY_DECIMAL_PLACES)

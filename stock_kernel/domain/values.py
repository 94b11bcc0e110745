"""
Quantity rules shared by every mutating operation.

Pure functions, zero I/O.  ``require_positive`` is the single entry check for
caller-supplied quantities; ``check_movement_effect`` is the single check that
a movement's before/after pair agrees with its type.
"""

from decimal import Decimal, InvalidOperation

from stock_kernel.db.types import round_quantity
from stock_kernel.domain.dtos import MovementType
from stock_kernel.exceptions import InvalidQuantityError, MovementInvariantError

# +1 adds to on-hand, -1 removes, 0 leaves on-hand unchanged.
# None means the direction is given by the caller (either sign).
MOVEMENT_DIRECTION: dict[MovementType, int | None] = {
    MovementType.IN: 1,
    MovementType.PRODUCTION: 1,
    MovementType.OUT: -1,
    MovementType.CONSUMPTION: -1,
    MovementType.QUARANTINE: 0,
    MovementType.RELEASE: 0,
    MovementType.ADJUSTMENT: None,
    MovementType.TRANSFER: None,
}


def require_positive(operation: str, quantity) -> Decimal:
    """
    Return ``quantity`` as a Decimal rounded to column precision, or raise
    InvalidQuantityError.

    Rejects floats, non-numeric values, NaN/infinity, zero, negatives and
    positive values that round to zero at 9 decimal places.
    """
    if isinstance(quantity, float) or isinstance(quantity, bool):
        raise InvalidQuantityError(operation, str(quantity), "must be a Decimal, int or numeric string")
    try:
        value = quantity if isinstance(quantity, Decimal) else Decimal(quantity)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidQuantityError(operation, str(quantity), "not a number")
    if not value.is_finite():
        raise InvalidQuantityError(operation, str(quantity), "must be finite")
    if value <= 0:
        raise InvalidQuantityError(operation, value)
    try:
        rounded = round_quantity(value)
    except InvalidOperation:
        raise InvalidQuantityError(operation, value, "too large for the quantity column")
    if rounded == 0:
        raise InvalidQuantityError(operation, value, "rounds to zero at 9 decimal places")
    return rounded


def check_movement_effect(
    movement_type: MovementType,
    quantity: Decimal,
    before: Decimal,
    after: Decimal,
) -> None:
    """
    Verify ``after - before`` is the signed effect of ``quantity``.

    Raises:
        MovementInvariantError: If the pair disagrees with the type, if the
            quantity is not positive, or if ``after`` is negative.
    """
    if quantity <= 0 or after < 0:
        raise MovementInvariantError(movement_type.value, quantity, before, after)

    direction = MOVEMENT_DIRECTION[movement_type]
    delta = after - before
    if direction is None:
        ok = abs(delta) == quantity
    else:
        ok = delta == direction * quantity
    if not ok:
        raise MovementInvariantError(movement_type.value, quantity, before, after)

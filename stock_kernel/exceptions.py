"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every rejected inventory operation returns a typed failure to its caller.
Callers catch by type and read structured attributes, never by parsing
message strings:

    try:
        orchestrator.consume("RM-0001", "WH-01", Decimal("15"), performed_by=actor)
    except InsufficientStockError as e:
        notify(f"Only {e.available} {e.unit} left in {e.warehouse_id}")
        api_response(code=e.code, requested=e.requested, available=e.available)

Every exception class carries a ``code`` class attribute (machine-readable,
API-safe) and stores its context as attributes.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockKernelError (base)
    |
    +-- QuantityError
    |   +-- InvalidQuantityError
    |
    +-- InventoryError
    |   +-- InsufficientStockError
    |   +-- StockLevelNotFoundError
    |   +-- LotNotFoundError
    |   +-- DuplicateLotNumberError
    |   +-- InvalidLotTransitionError
    |   +-- LotTrackedStockError
    |   +-- NotLotTrackedError
    |   +-- ReservationExceedsStockError
    |
    +-- UnitError
    |   +-- UnitMismatchError
    |
    +-- ReplenishmentError
    |   +-- NoSupplierSourceError
    |   +-- SuggestionNotFoundError
    |   +-- InvalidStateTransitionError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- MovementInvariantError

``PersistenceError`` is not part of this tree: it is the storage layer's own
exception type (``sqlalchemy.exc.SQLAlchemyError``), re-exported here so that
callers can name it.  It is propagated unchanged and never interpreted.

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Quantity        | INVALID_QUANTITY            | Non-positive quantity to a mutating op
----------------|-----------------------------|-----------------------------------------
Inventory       | INSUFFICIENT_STOCK          | Consume cannot be satisfied from lots
                | STOCK_LEVEL_NOT_FOUND       | No aggregate for product x warehouse
                | LOT_NOT_FOUND               | Lot number unknown for material
                | DUPLICATE_LOT_NUMBER        | Lot number already used for material
                | INVALID_LOT_TRANSITION      | e.g. releasing a depleted lot
                | LOT_TRACKED_STOCK           | Direct adjust of lot-tracked stock
                | NOT_LOT_TRACKED             | Lot operation on plain-quantity stock
                | RESERVATION_EXCEEDS_STOCK   | Reservation would make available < 0
----------------|-----------------------------|-----------------------------------------
Unit            | UNIT_MISMATCH               | Units in different dimensional families
----------------|-----------------------------|-----------------------------------------
Replenishment   | NO_SUPPLIER_SOURCE          | No active catalog entry (skip, logged)
                | SUGGESTION_NOT_FOUND        | Suggestion ID doesn't exist
                | INVALID_STATE_TRANSITION    | Approve/reject outside ``pending``
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Update/delete of a movement row
----------------|-----------------------------|-----------------------------------------
Ledger          | MOVEMENT_INVARIANT          | before/after inconsistent with type
"""

from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError as PersistenceError


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses must define a ``code`` class attribute.
    """

    code: str = "STOCK_KERNEL_ERROR"


# Quantity-related exceptions


class QuantityError(StockKernelError):
    """Base exception for quantity validation errors."""

    code: str = "QUANTITY_ERROR"


class InvalidQuantityError(QuantityError):
    """
    A mutating operation received a non-positive (or otherwise unusable)
    quantity.  Raised before any side effect.
    """

    code: str = "INVALID_QUANTITY"

    def __init__(self, operation: str, quantity: Decimal | str, reason: str = "must be positive"):
        self.operation = operation
        self.quantity = str(quantity)
        self.reason = reason
        super().__init__(f"Invalid quantity {quantity} for {operation}: {reason}")


# Inventory-related exceptions


class InventoryError(StockKernelError):
    """Base exception for lot and stock-level errors."""

    code: str = "INVENTORY_ERROR"


class InsufficientStockError(InventoryError):
    """
    Consumption cannot be satisfied from available lots (or available stock).

    No partial consumption is committed when this is raised.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        product_id: str,
        warehouse_id: str,
        requested: Decimal,
        available: Decimal,
        unit: str | None = None,
    ):
        self.product_id = product_id
        self.warehouse_id = warehouse_id
        self.requested = str(requested)
        self.available = str(available)
        self.unit = unit
        super().__init__(
            f"Insufficient stock for {product_id} in {warehouse_id}: "
            f"requested {requested}, available {available}"
        )


class StockLevelNotFoundError(InventoryError):
    """No stock level aggregate exists for the product x warehouse pair."""

    code: str = "STOCK_LEVEL_NOT_FOUND"

    def __init__(self, product_id: str, warehouse_id: str):
        self.product_id = product_id
        self.warehouse_id = warehouse_id
        super().__init__(f"No stock level for {product_id} in {warehouse_id}")


class LotNotFoundError(InventoryError):
    """Lot number is unknown for the material."""

    code: str = "LOT_NOT_FOUND"

    def __init__(self, material_id: str, lot_number: str):
        self.material_id = material_id
        self.lot_number = lot_number
        super().__init__(f"Lot {lot_number} not found for material {material_id}")


class DuplicateLotNumberError(InventoryError):
    """Lot numbers are unique per material."""

    code: str = "DUPLICATE_LOT_NUMBER"

    def __init__(self, material_id: str, lot_number: str):
        self.material_id = material_id
        self.lot_number = lot_number
        super().__init__(f"Lot {lot_number} already exists for material {material_id}")


class InvalidLotTransitionError(InventoryError):
    """Lot status change not allowed by the lot lifecycle."""

    code: str = "INVALID_LOT_TRANSITION"

    def __init__(self, lot_number: str, from_status: str, to_status: str):
        self.lot_number = lot_number
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Lot {lot_number} cannot move from {from_status} to {to_status}"
        )


class LotTrackedStockError(InventoryError):
    """
    A direct quantity adjustment was attempted on lot-tracked stock.

    Lot-tracked stock changes only through lot receipts and FIFO
    consumption so that the aggregate always equals the sum of its lots.
    """

    code: str = "LOT_TRACKED_STOCK"

    def __init__(self, product_id: str, warehouse_id: str, operation: str):
        self.product_id = product_id
        self.warehouse_id = warehouse_id
        self.operation = operation
        super().__init__(
            f"{operation} not allowed on lot-tracked stock {product_id} in {warehouse_id}; "
            "use lot receipts and consumption instead"
        )


class NotLotTrackedError(InventoryError):
    """
    A lot operation was attempted on stock that is tracked as a plain
    quantity.  Use Adjust / Transfer for such stock.
    """

    code: str = "NOT_LOT_TRACKED"

    def __init__(self, product_id: str, warehouse_id: str, operation: str):
        self.product_id = product_id
        self.warehouse_id = warehouse_id
        self.operation = operation
        super().__init__(
            f"{operation} requires lot-tracked stock; {product_id} in {warehouse_id} "
            "is tracked as a plain quantity"
        )


class ReservationExceedsStockError(InventoryError):
    """Reserved quantity would exceed on-hand quantity."""

    code: str = "RESERVATION_EXCEEDS_STOCK"

    def __init__(
        self,
        product_id: str,
        warehouse_id: str,
        quantity: Decimal,
        reserved: Decimal,
    ):
        self.product_id = product_id
        self.warehouse_id = warehouse_id
        self.quantity = str(quantity)
        self.reserved = str(reserved)
        super().__init__(
            f"Reservation of {reserved} exceeds on-hand {quantity} "
            f"for {product_id} in {warehouse_id}"
        )


# Unit-related exceptions


class UnitError(StockKernelError):
    """Base exception for unit-of-measure errors."""

    code: str = "UNIT_ERROR"


class UnitMismatchError(UnitError):
    """
    Conversion requested between units of different dimensional families
    (or involving a unit missing from the conversion table).
    """

    code: str = "UNIT_MISMATCH"

    def __init__(self, from_unit: str, to_unit: str):
        self.from_unit = from_unit
        self.to_unit = to_unit
        super().__init__(f"No safe conversion from {from_unit} to {to_unit}")


# Replenishment-related exceptions


class ReplenishmentError(StockKernelError):
    """Base exception for replenishment errors."""

    code: str = "REPLENISHMENT_ERROR"


class NoSupplierSourceError(ReplenishmentError):
    """
    A stock level needs reorder but no active catalog entry exists.

    Generation never raises this; the stock level is skipped and the
    condition is logged with this code.
    """

    code: str = "NO_SUPPLIER_SOURCE"

    def __init__(self, product_id: str, warehouse_id: str):
        self.product_id = product_id
        self.warehouse_id = warehouse_id
        super().__init__(
            f"No active supplier catalog entry for {product_id} (warehouse {warehouse_id})"
        )


class SuggestionNotFoundError(ReplenishmentError):
    """Replenishment suggestion with given ID was not found."""

    code: str = "SUGGESTION_NOT_FOUND"

    def __init__(self, suggestion_id: str):
        self.suggestion_id = suggestion_id
        super().__init__(f"Replenishment suggestion not found: {suggestion_id}")


class InvalidStateTransitionError(ReplenishmentError):
    """Approval or rejection attempted on a suggestion not in ``pending``."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(self, suggestion_id: str, current_status: str, action: str):
        self.suggestion_id = suggestion_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} suggestion {suggestion_id} in status {current_status}"
        )


# Immutability-related exceptions


class ImmutabilityError(StockKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class MovementInvariantError(StockKernelError):
    """
    A movement's before/after quantities do not match the signed effect
    of its quantity for its movement type.
    """

    code: str = "MOVEMENT_INVARIANT"

    def __init__(self, movement_type: str, quantity: Decimal, before: Decimal, after: Decimal):
        self.movement_type = movement_type
        self.quantity = str(quantity)
        self.quantity_before = str(before)
        self.quantity_after = str(after)
        super().__init__(
            f"Movement {movement_type} of {quantity} cannot take stock "
            f"from {before} to {after}"
        )


__all__ = [
    "StockKernelError",
    "QuantityError",
    "InvalidQuantityError",
    "InventoryError",
    "InsufficientStockError",
    "StockLevelNotFoundError",
    "LotNotFoundError",
    "DuplicateLotNumberError",
    "InvalidLotTransitionError",
    "LotTrackedStockError",
    "NotLotTrackedError",
    "ReservationExceedsStockError",
    "UnitError",
    "UnitMismatchError",
    "ReplenishmentError",
    "NoSupplierSourceError",
    "SuggestionNotFoundError",
    "InvalidStateTransitionError",
    "ImmutabilityError",
    "ImmutabilityViolationError",
    "MovementInvariantError",
    "PersistenceError",
]

"""Services for the stock kernel (write side)."""

from stock_kernel.services.movement_ledger import MovementLedger
from stock_kernel.services.sequence_service import SequenceCounter, SequenceService

__all__ = [
    "MovementLedger",
    "SequenceCounter",
    "SequenceService",
]

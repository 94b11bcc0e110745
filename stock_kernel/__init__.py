"""
Stock Kernel

Append-only inventory core for lot-tracked manufacturing stock:
- Immutable movement ledger
- Dated, priced lots with FIFO consumption
- Aggregate stock levels kept equal to the sum of their lots
- Decimal quantities and money throughout
"""

__version__ = "0.1.0"

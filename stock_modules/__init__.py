"""
Stock Modules.

Business modules layered over the stock kernel, engines and services:

- Replenishment: suggestion generation, approval workflow
- Procurement: supplier catalog, purchase-order drafts
"""

from stock_modules import procurement, replenishment

__all__ = [
    "procurement",
    "replenishment",
]

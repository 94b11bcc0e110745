"""
Module: stock_engines.fifo
Responsibility:
    Plan a FIFO consumption: given a snapshot of candidate lots and a
    requested quantity, decide how much to take from each lot.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The Lot Store loads and
    locks the candidate lots, asks this engine for a plan, and only then
    mutates anything.

Invariants enforced:
    - FIFO order: received_at ascending, ties broken by lot sequence
      (creation order).  Candidates are re-sorted here; caller order is
      not trusted.
    - No over-draw: no draw exceeds its lot's remaining quantity.
    - All or nothing: when the candidates cannot cover the request the
      engine raises before returning any plan, so the caller never holds a
      partial allocation.
    - Conservation: sum(draw.quantity_taken) == requested on success.

Failure modes:
    - InvalidQuantityError on a non-positive request.
    - InsufficientStockError when candidates cannot cover the request.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from stock_engines.tracer import traced_engine
from stock_kernel.domain.dtos import LotConsumption
from stock_kernel.domain.values import require_positive
from stock_kernel.exceptions import InsufficientStockError
from stock_kernel.logging_config import get_logger

logger = get_logger("engines.fifo")


@dataclass(frozen=True)
class FifoCandidate:
    """A consumable lot as seen by the planner."""
    lot_number: str
    remaining_quantity: Decimal
    unit_cost: Decimal
    received_at: datetime
    sequence: int

    @property
    def sort_key(self) -> tuple[datetime, int]:
        return (self.received_at, self.sequence)


@dataclass(frozen=True)
class FifoPlan:
    """The outcome of planning one consumption."""
    requested: Decimal
    draws: tuple[LotConsumption, ...]

    @property
    def total_taken(self) -> Decimal:
        return sum((d.quantity_taken for d in self.draws), Decimal("0"))

    @property
    def total_cost(self) -> Decimal:
        return sum((d.cost for d in self.draws), Decimal("0"))

    @property
    def depleted_lots(self) -> tuple[str, ...]:
        return tuple(d.lot_number for d in self.draws if d.remaining_after == 0)


class FifoAllocator:
    """
    Pure FIFO planner.

    Contract:
        ``plan`` returns draws in consumption order.  Each draw takes
        ``min(lot remaining, still needed)``.

    Non-goals:
        - Does not filter by lot status; the caller passes only
          consumable lots.
    """

    @traced_engine("fifo_allocator", "1.0", fingerprint_fields=("requested",))
    def plan(
        self,
        candidates: Sequence[FifoCandidate],
        requested: Decimal,
        *,
        product_id: str,
        warehouse_id: str,
        unit: str | None = None,
    ) -> FifoPlan:
        requested = require_positive("consume", requested)

        ordered = sorted(
            (c for c in candidates if c.remaining_quantity > 0),
            key=lambda c: c.sort_key,
        )
        available = sum((c.remaining_quantity for c in ordered), Decimal("0"))
        if available < requested:
            logger.info(
                "fifo_allocation_insufficient",
                extra={
                    "product_id": product_id,
                    "warehouse_id": warehouse_id,
                    "requested": str(requested),
                    "available": str(available),
                    "candidate_count": len(ordered),
                },
            )
            raise InsufficientStockError(
                product_id, warehouse_id, requested, available, unit
            )

        draws: list[LotConsumption] = []
        still_needed = requested
        for candidate in ordered:
            if still_needed == 0:
                break
            take = min(candidate.remaining_quantity, still_needed)
            draws.append(
                LotConsumption(
                    lot_number=candidate.lot_number,
                    quantity_taken=take,
                    unit_cost=candidate.unit_cost,
                    remaining_after=candidate.remaining_quantity - take,
                )
            )
            still_needed -= take

        plan = FifoPlan(requested=requested, draws=tuple(draws))
        logger.info(
            "fifo_allocation_planned",
            extra={
                "product_id": product_id,
                "warehouse_id": warehouse_id,
                "requested": str(requested),
                "lots_touched": [d.lot_number for d in draws],
                "lots_depleted": list(plan.depleted_lots),
            },
        )
        return plan

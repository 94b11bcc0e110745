"""
MovementLedger -- append-only writer of the stock movement audit trail.

Responsibility:
    Persists one immutable MovementModel row per quantity change and is the
    sole writer of movement history.  Assigns each movement its per-scope
    sequence number and its timestamp from the injected clock.

Architecture position:
    Kernel > Services -- imperative shell.  Called by the Lot Store and the
    Stock Ledger after they have validated and applied the change.

Invariants enforced:
    - Append-only: this service never loads a movement for update.
    - ``quantity_after - quantity_before`` is the signed effect of
      ``quantity`` for ``movement_type`` (MovementInvariantError otherwise).
      Callers have already validated the business rule; this check guards
      the ledger against a caller bug.
    - Sequence numbers are strictly increasing per product x warehouse.

Failure modes:
    - MovementInvariantError on an inconsistent draft (caller bug).
    - PersistenceError (SQLAlchemyError) from the storage layer, unchanged.
"""

from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import MovementDraft, MovementRecord
from stock_kernel.domain.values import check_movement_effect
from stock_kernel.logging_config import get_logger
from stock_kernel.models.movement import MovementModel
from stock_kernel.services.base import BaseService
from stock_kernel.services.sequence_service import SequenceService

logger = get_logger("services.movement_ledger")


class MovementLedger(BaseService[MovementModel]):
    """
    Appends movements.

    Contract:
        ``append`` either persists exactly one new movement or raises.
        Existing movements are never read, updated or deleted here.

    Non-goals:
        - Does NOT update stock levels or lots.
        - Does NOT commit.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)

    def append(self, draft: MovementDraft) -> MovementRecord:
        check_movement_effect(
            draft.movement_type,
            draft.quantity,
            draft.quantity_before,
            draft.quantity_after,
        )

        sequence = self._sequences.next_value(
            SequenceService.movement_sequence(draft.product_id, draft.warehouse_id)
        )

        movement = MovementModel(
            sequence=sequence,
            product_id=draft.product_id,
            warehouse_id=draft.warehouse_id,
            movement_type=draft.movement_type.value,
            quantity=draft.quantity,
            quantity_before=draft.quantity_before,
            quantity_after=draft.quantity_after,
            unit=draft.unit,
            lot_number=draft.lot_number,
            unit_cost=draft.unit_cost,
            reference_type=draft.reference_type,
            reference_id=draft.reference_id,
            reason=draft.reason,
            performed_by=draft.performed_by,
            created_at=self._clock.now(),
        )
        self.session.add(movement)
        self.session.flush()

        logger.info(
            "movement_appended",
            extra={
                "movement_id": str(movement.id),
                "sequence": sequence,
                "product_id": draft.product_id,
                "warehouse_id": draft.warehouse_id,
                "movement_type": draft.movement_type.value,
                "quantity": str(draft.quantity),
                "quantity_before": str(draft.quantity_before),
                "quantity_after": str(draft.quantity_after),
                "lot_number": draft.lot_number,
            },
        )
        return movement.to_dto()

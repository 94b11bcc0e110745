"""
Replenishment Module Service (``stock_modules.replenishment.service``).

Responsibility
--------------
Runs suggestion generation over all stock levels and drives the suggestion
state machine: approve (creating a draft purchase order), reject and
re-prioritise.  Scoring rules live in ``stock_engines.replenishment``; this
class loads inputs, persists outcomes and owns the transactions.

Architecture
------------
Layer: **Modules** -- stateful orchestration wrapper.

1. Reads stock levels through ``StockSelector``.
2. Reads catalog offers and writes purchase orders through
   ``ProcurementService``.
3. Scores each level with ``ReplenishmentCalculator``.

Invariants
----------
- Each public method owns its transaction boundary: commit on success,
  rollback and re-raise on failure.
- Generation is best-effort per level: a level without an active supplier
  is skipped and logged with ``NO_SUPPLIER_SOURCE``; the pass continues.
- Approve and reject are legal only from ``pending``.  Approval creates the
  purchase order and links it in the same transaction, so a suggestion is
  never ``ordered`` without an order.
- The suggestion row is locked (``SELECT ... FOR UPDATE``) before a
  decision, so two concurrent approvals cannot both succeed.

Failure Modes
-------------
- ``SuggestionNotFoundError`` for an unknown suggestion id.
- ``InvalidStateTransitionError`` for a decision outside ``pending``.
- ``PersistenceError`` from the storage layer, unchanged.

Usage::

    service = ReplenishmentService(session, clock, config.replenishment)
    result = service.generate(performed_by="scheduler")
    order = service.approve(result.suggestions[0].id, performed_by="buyer-7")
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_config.schema import ReplenishmentSettings
from stock_engines.replenishment import ReplenishmentCalculator, SuggestionPriority
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.exceptions import (
    InvalidStateTransitionError,
    NoSupplierSourceError,
    SuggestionNotFoundError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.selectors.stock_selector import StockSelector
from stock_modules.procurement.models import PurchaseOrderDraft
from stock_modules.procurement.service import ProcurementService
from stock_modules.replenishment.models import (
    GenerationResult,
    ReplenishmentSuggestion,
    SkippedLevel,
    SuggestionStatus,
)
from stock_modules.replenishment.orm import ReplenishmentSuggestionModel
from stock_modules.replenishment.workflows import SUGGESTION_WORKFLOW

logger = get_logger("modules.replenishment.service")

# Listing order: most urgent first
_PRIORITY_RANK = {
    SuggestionPriority.CRITICAL.value: 0,
    SuggestionPriority.HIGH.value: 1,
    SuggestionPriority.MEDIUM.value: 2,
    SuggestionPriority.LOW.value: 3,
}

PENDING_SUGGESTION_EXISTS = "PENDING_SUGGESTION_EXISTS"


class ReplenishmentService:
    """
    Generates and decides replenishment suggestions.

    Non-goals
    ---------
    - Does NOT re-validate live stock at approval; a suggestion's
      ``current_stock`` is a snapshot from generation time.
    - Does NOT send purchase orders.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: ReplenishmentSettings | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings or ReplenishmentSettings()
        self._calculator = ReplenishmentCalculator(self._settings.policy())
        self._procurement = ProcurementService(session, self._clock, self._settings)
        self._stock = StockSelector(session)

    # =========================================================================
    # Generation
    # =========================================================================

    def _pending_scopes(self) -> set[tuple[str, str]]:
        rows = self._session.execute(
            select(
                ReplenishmentSuggestionModel.product_id,
                ReplenishmentSuggestionModel.warehouse_id,
            ).where(ReplenishmentSuggestionModel.status == SuggestionStatus.PENDING.value)
        ).all()
        return {(r.product_id, r.warehouse_id) for r in rows}

    def generate(
        self,
        *,
        performed_by: str,
        warehouse_id: str | None = None,
    ) -> GenerationResult:
        """
        Scan stock levels and emit a pending suggestion for each one at or
        below its reorder threshold.

        Postconditions:
            - One new ``pending`` suggestion per level that needs reorder
              and has an active supplier (and no pending suggestion, when
              ``skip_when_pending`` is set).
            - Every other level needing reorder appears in ``skipped``.
            - Session committed on success, rolled back on failure.
        """
        try:
            levels = self._stock.list_levels(warehouse_id)
            options = self._procurement.catalog_options(
                sorted({level.product_id for level in levels})
            )
            pending = self._pending_scopes() if self._settings.skip_when_pending else set()
            generated_at = self._clock.now()

            suggestions: list[ReplenishmentSuggestion] = []
            skipped: list[SkippedLevel] = []
            for level in levels:
                scope = (level.product_id, level.warehouse_id)
                if scope in pending:
                    if self._calculator.needs_replenishment(level):
                        skipped.append(SkippedLevel(
                            product_id=level.product_id,
                            warehouse_id=level.warehouse_id,
                            code=PENDING_SUGGESTION_EXISTS,
                            reason="a pending suggestion already exists",
                        ))
                    continue

                try:
                    proposal = self._calculator.evaluate(
                        level=level, options=options.get(level.product_id, []),
                    )
                except NoSupplierSourceError as exc:
                    logger.warning(
                        "replenishment_level_skipped",
                        extra={
                            "product_id": level.product_id,
                            "warehouse_id": level.warehouse_id,
                            "code": exc.code,
                            "quantity": str(level.quantity),
                        },
                    )
                    skipped.append(SkippedLevel(
                        product_id=level.product_id,
                        warehouse_id=level.warehouse_id,
                        code=exc.code,
                        reason=str(exc),
                    ))
                    continue

                if proposal is None:
                    continue

                model = ReplenishmentSuggestionModel(
                    product_id=proposal.product_id,
                    warehouse_id=proposal.warehouse_id,
                    current_stock=proposal.current_stock,
                    min_stock=proposal.min_stock,
                    reorder_point=proposal.reorder_point,
                    suggested_quantity=proposal.suggested_quantity,
                    suggested_supplier_id=proposal.supplier_id,
                    unit_price=proposal.unit_price,
                    estimated_cost=proposal.estimated_cost,
                    lead_time_days=proposal.lead_time_days,
                    priority=proposal.priority.value,
                    status=SuggestionStatus.PENDING.value,
                    generated_at=generated_at,
                    created_by_id=performed_by,
                )
                self._session.add(model)
                self._session.flush()
                suggestions.append(model.to_dto())

                logger.info(
                    "suggestion_generated",
                    extra={
                        "suggestion_id": str(model.id),
                        "product_id": proposal.product_id,
                        "warehouse_id": proposal.warehouse_id,
                        "current_stock": str(proposal.current_stock),
                        "suggested_quantity": str(proposal.suggested_quantity),
                        "supplier_id": proposal.supplier_id,
                        "priority": proposal.priority.value,
                        "estimated_cost": str(proposal.estimated_cost),
                    },
                )

            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "replenishment_generation_completed",
            extra={
                "levels_scanned": len(levels),
                "suggestions_generated": len(suggestions),
                "levels_skipped": len(skipped),
            },
        )
        return GenerationResult(suggestions=tuple(suggestions), skipped=tuple(skipped))

    # =========================================================================
    # Decisions
    # =========================================================================

    def _lock(self, suggestion_id: UUID) -> ReplenishmentSuggestionModel:
        model = self._session.execute(
            select(ReplenishmentSuggestionModel)
            .where(ReplenishmentSuggestionModel.id == suggestion_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise SuggestionNotFoundError(str(suggestion_id))
        return model

    def _transition(self, model: ReplenishmentSuggestionModel, action: str) -> str:
        transition = SUGGESTION_WORKFLOW.find_transition(model.status, action)
        if transition is None:
            logger.warning(
                "suggestion_transition_rejected",
                extra={
                    "suggestion_id": str(model.id),
                    "status": model.status,
                    "action": action,
                },
            )
            raise InvalidStateTransitionError(str(model.id), model.status, action)
        return transition.to_state

    def approve(
        self,
        suggestion_id: UUID,
        *,
        performed_by: str,
        notes: str | None = None,
    ) -> PurchaseOrderDraft:
        """
        Approve a pending suggestion and create its draft purchase order.

        Postconditions:
            - A ``draft`` purchase order with one line exists.
            - The suggestion is ``ordered`` and links the order.
            - Session committed on success, rolled back on failure.

        Raises:
            SuggestionNotFoundError, InvalidStateTransitionError.
        """
        try:
            model = self._lock(suggestion_id)
            model.status = self._transition(model, "approve")
            model.decided_at = self._clock.now()
            model.decided_by = performed_by
            model.updated_by_id = performed_by
            if notes is not None:
                model.notes = notes
            self._session.flush()

            order = self._procurement.draft_from_suggestion(
                suggestion_id=model.id,
                product_id=model.product_id,
                warehouse_id=model.warehouse_id,
                supplier_id=model.suggested_supplier_id,
                quantity=model.suggested_quantity,
                estimated_cost=model.estimated_cost,
                performed_by=performed_by,
                unit_price=model.unit_price,
            )

            model.status = self._transition(model, "order")
            model.purchase_order_id = order.id
            self._session.flush()
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "suggestion_approved",
            extra={
                "suggestion_id": str(suggestion_id),
                "purchase_order_id": str(order.id),
                "order_number": order.order_number,
                "total": str(order.total),
            },
        )
        return order

    def reject(
        self,
        suggestion_id: UUID,
        *,
        performed_by: str,
        notes: str | None = None,
    ) -> ReplenishmentSuggestion:
        """Reject a pending suggestion.  No other side effects."""
        try:
            model = self._lock(suggestion_id)
            model.status = self._transition(model, "reject")
            model.decided_at = self._clock.now()
            model.decided_by = performed_by
            model.updated_by_id = performed_by
            if notes is not None:
                model.notes = notes
            self._session.flush()
            suggestion = model.to_dto()
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "suggestion_rejected",
            extra={"suggestion_id": str(suggestion_id), "decided_by": performed_by},
        )
        return suggestion

    def set_priority(
        self,
        suggestion_id: UUID,
        priority: SuggestionPriority,
        *,
        performed_by: str,
    ) -> ReplenishmentSuggestion:
        """Manually re-prioritise a pending suggestion (``low`` included)."""
        try:
            model = self._lock(suggestion_id)
            self._transition(model, "set_priority")
            previous = model.priority
            model.priority = priority.value
            model.updated_by_id = performed_by
            self._session.flush()
            suggestion = model.to_dto()
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "suggestion_priority_changed",
            extra={
                "suggestion_id": str(suggestion_id),
                "from_priority": previous,
                "to_priority": priority.value,
            },
        )
        return suggestion

    # =========================================================================
    # Queries
    # =========================================================================

    def get_suggestion(self, suggestion_id: UUID) -> ReplenishmentSuggestion:
        model = self._session.get(ReplenishmentSuggestionModel, suggestion_id)
        if model is None:
            raise SuggestionNotFoundError(str(suggestion_id))
        return model.to_dto()

    def list_suggestions(
        self,
        status: SuggestionStatus | None = None,
        priority: SuggestionPriority | None = None,
        warehouse_id: str | None = None,
    ) -> list[ReplenishmentSuggestion]:
        """Suggestions, most urgent first, oldest first within a priority."""
        stmt = select(ReplenishmentSuggestionModel)
        if status is not None:
            stmt = stmt.where(ReplenishmentSuggestionModel.status == status.value)
        if priority is not None:
            stmt = stmt.where(ReplenishmentSuggestionModel.priority == priority.value)
        if warehouse_id is not None:
            stmt = stmt.where(ReplenishmentSuggestionModel.warehouse_id == warehouse_id)
        models = self._session.scalars(
            stmt.order_by(
                ReplenishmentSuggestionModel.generated_at,
                ReplenishmentSuggestionModel.product_id,
                ReplenishmentSuggestionModel.warehouse_id,
            )
        ).all()
        ordered = sorted(models, key=lambda m: _PRIORITY_RANK[m.priority])
        return [m.to_dto() for m in ordered]

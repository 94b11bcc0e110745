"""
Pure domain layer.

Data transfer objects, value checks, the clock abstraction and workflow
value objects, with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from stock_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from stock_kernel.domain.dtos import (
    LotConsumption,
    LotKind,
    LotSnapshot,
    LotStatus,
    MovementDraft,
    MovementRecord,
    MovementType,
    StockLevelSnapshot,
)
from stock_kernel.domain.values import MOVEMENT_DIRECTION, check_movement_effect, require_positive
from stock_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "LotConsumption",
    "LotKind",
    "LotSnapshot",
    "LotStatus",
    "MovementDraft",
    "MovementRecord",
    "MovementType",
    "StockLevelSnapshot",
    "MOVEMENT_DIRECTION",
    "check_movement_effect",
    "require_positive",
    "Guard",
    "Transition",
    "Workflow",
]

"""
BaseService -- abstract base for all stateful services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every service that writes stock data.  Concrete services receive a
    SQLAlchemy ``Session`` and use ``session.flush()`` -- never
    ``session.commit()``.

Invariants enforced:
    Services flush within the caller's transaction and never commit or
    roll back themselves.  The caller (InventoryOrchestrator, the
    replenishment service's public methods, or a test harness) owns
    commit/rollback, so a lot, its movements and its aggregate update
    land together or not at all.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from stock_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Does NOT provide query-only (read) methods -- those belong
          in ``stock_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session

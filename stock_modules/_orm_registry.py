"""
Module ORM Registry (``stock_modules._orm_registry``).

Responsibility
--------------
Ensure all SQLAlchemy ORM models (kernel and module) are imported so that
``Base.metadata`` contains their table definitions before tables are
created.  ``stock_kernel.db.engine.create_tables()`` calls this first.

Architecture position
---------------------
**Modules layer** -- utility.  MUST NOT be imported at module level by
``stock_kernel`` or ``stock_services``.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``stock_modules.*.orm`` module.

    Kernel tables first; module tables may reference them.
    This function is idempotent -- repeated calls are harmless.
    """
    import stock_kernel.models  # noqa: F401
    import stock_kernel.services.sequence_service  # noqa: F401  # counter table
    # fmt: off
    import stock_modules.procurement.orm  # noqa: F401
    import stock_modules.replenishment.orm  # noqa: F401

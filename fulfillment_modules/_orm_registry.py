"""
Module ORM Registry (``fulfillment_modules._orm_registry``).

Responsibility
--------------
Ensure all module-level SQLAlchemy ORM models are imported so that
``Base.metadata`` contains their table definitions before tables are
created.  ``fulfillment_kernel.db.engine.create_tables`` calls
``import_all_orm_models`` first.

Architecture position
---------------------
**Modules layer** -- utility.  MUST NOT be imported at module level by
``fulfillment_kernel``.
"""


def import_all_orm_models() -> None:
    """Import every ``fulfillment_modules.*.orm`` module.  Idempotent."""
    # Parents before children so foreign keys resolve in declaration order.
    # fmt: off
    import fulfillment_modules.sales.orm  # noqa: F401
    import fulfillment_modules.delivery.orm  # noqa: F401
    import fulfillment_modules.invoicing.orm  # noqa: F401
    import fulfillment_modules.receiving.orm  # noqa: F401
    import fulfillment_modules.returns.orm  # noqa: F401
    import fulfillment_services.orm  # noqa: F401  # document number counters
    # fmt: on

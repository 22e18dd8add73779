"""
Module ORM Registry (``inventory_modules._orm_registry``).

Ensures every ORM model is imported so that ``Base.metadata`` contains its
table before ``create_tables()`` runs.  Kernel models are registered first
because module tables reference ``items``.

This function is idempotent -- repeated calls are harmless.
"""


def import_all_orm_models() -> None:
    import inventory_kernel.models  # noqa: F401
    import inventory_kernel.services.sequence_service  # noqa: F401
    import inventory_modules.orders.orm  # noqa: F401
    import inventory_modules.supply_chain.orm  # noqa: F401

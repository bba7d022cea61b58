from routersync.tasks.router_sync import (  # noqa: F401
    reclaim_orphaned_addresses,
    run_router_reconciliation,
    sync_entity_class,
)

"""Router reconciliation engine.

Keeps the ``ip_pools``, ``ip_addresses``, ``pppoe_profiles`` and
``pppoe_users`` mirror consistent with what each router reports. The
scheduler lives in ``routersync.services.router_sync.scheduler``.
"""

from routersync.services.router_sync.errors import (  # noqa: F401
    ConfigError,
    EntityNotFoundError,
    PersistenceError,
    RouterSyncError,
    SyncCancelled,
    TransportError,
    ValidationError,
)
from routersync.services.router_sync.results import (  # noqa: F401
    ClassRunReport,
    ClassRunStatus,
    RunSummary,
    SyncAction,
    SyncEntity,
    SyncResult,
)

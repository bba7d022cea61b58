from routersync.models.network import (  # noqa: F401
    IpAddress,
    IpAddressStatus,
    IpPool,
    PoolType,
    Router,
)
from routersync.models.pppoe import PPPoEProfile, PPPoEUser, PPPoEUserStatus  # noqa: F401
from routersync.models.sync_state import SyncState  # noqa: F401

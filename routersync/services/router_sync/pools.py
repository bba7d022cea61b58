from __future__ import annotations

from routersync.models.network import IpPool
from routersync.schemas.device import DevicePool
from routersync.services import ip_ranges
from routersync.services.router_sync.base import EntitySynchronizer
from routersync.services.router_sync.results import SyncEntity


class PoolSynchronizer(EntitySynchronizer):
    """Mirror ``/ip/pool`` into ``ip_pools``.

    Name and ranges belong to the router. Gateway, DNS and pool type are
    managed locally and are left untouched.
    """

    entity = SyncEntity.pools
    record_schema = DevicePool
    model = IpPool
    field_labels = {
        "network_address": "ranges",
        "start_ip": "ranges",
        "end_ip": "ranges",
    }

    def engine_fields(self, router, record: DevicePool, row=None) -> dict[str, object]:
        summary = ip_ranges.summarize_ranges(record.ranges)
        return {
            "name": record.name,
            "ranges": record.ranges,
            "network_address": summary.network_address if summary else None,
            "start_ip": summary.start_ip if summary else None,
            "end_ip": summary.end_ip if summary else None,
        }

from __future__ import annotations

from routersync.models.pppoe import PPPoEProfile
from routersync.schemas.device import DeviceProfile
from routersync.services.router_sync.base import EntitySynchronizer
from routersync.services.router_sync.results import SyncEntity


class ProfileSynchronizer(EntitySynchronizer):
    """Mirror ``/ppp/profile`` into ``pppoe_profiles``.

    The service package link is billing data and is never written here.
    """

    entity = SyncEntity.profiles
    record_schema = DeviceProfile
    model = PPPoEProfile

    def engine_fields(self, router, record: DeviceProfile, row=None) -> dict[str, object]:
        return record.engine_fields()

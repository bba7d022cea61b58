from __future__ import annotations

import logging

from routersync.models.network import IpAddress, IpPool
from routersync.models.pppoe import PPPoEProfile, PPPoEUser, PPPoEUserStatus
from routersync.schemas.device import DeviceUser
from routersync.services.router_sync.base import EntitySynchronizer
from routersync.services.router_sync.results import SyncEntity

logger = logging.getLogger(__name__)


class UserSynchronizer(EntitySynchronizer):
    """Mirror ``/ppp/secret`` into ``pppoe_users``.

    When a user's static address changes, the previously held address row is
    released and the new one is assigned to the user's subscriber.
    """

    entity = SyncEntity.users
    record_schema = DeviceUser
    model = PPPoEUser
    field_labels = {
        "profile_name": "profile",
        "profile_external_id": "profile",
        "static_address": "address",
    }

    def __init__(self, db, **kwargs):
        super().__init__(db, **kwargs)
        self._profile_ids: dict[str, str] = {}

    def prepare(self, router) -> None:
        self._profile_ids = {
            name: external_id
            for name, external_id in self.db.query(
                PPPoEProfile.name, PPPoEProfile.external_id
            ).filter(PPPoEProfile.router_id == router.id)
        }

    def engine_fields(self, router, record: DeviceUser, row=None) -> dict[str, object]:
        profile_external_id = self._profile_ids.get(record.profile) if record.profile else None
        if profile_external_id is None and row is not None and row.profile_name == record.profile:
            # Profile not mirrored locally yet; keep the last known link
            profile_external_id = row.profile_external_id
        return {
            "username": record.name,
            "profile_name": record.profile,
            "profile_external_id": profile_external_id,
            "status": PPPoEUserStatus.disabled if record.disabled else PPPoEUserStatus.active,
            "static_address": record.remote_address,
        }

    def create_defaults(self, router, record: DeviceUser) -> dict[str, object]:
        return {"comment": record.comment}

    def row_name(self, row) -> str | None:
        return row.username

    def after_apply(self, router, record, row, changed: list[str]) -> None:
        if "static_address" in changed:
            self.relink_address(router, row)

    def relink_address(self, router, user: PPPoEUser) -> None:
        held = self.db.query(IpAddress).filter(IpAddress.pppoe_user_id == user.id).all()
        for address in held:
            if address.address != user.static_address:
                logger.info(
                    "Releasing %s from PPPoE user %s on router %s",
                    address.address,
                    user.username,
                    router.name,
                )
                address.release()
        if not user.static_address or user.subscriber_id is None:
            return
        target = (
            self.db.query(IpAddress)
            .join(IpPool, IpAddress.pool_id == IpPool.id)
            .filter(IpPool.router_id == router.id)
            .filter(IpAddress.address == user.static_address)
            .first()
        )
        if target is not None and target.pppoe_user_id != user.id:
            target.assign_to(user)

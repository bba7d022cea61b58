"""Per-pool address reconciliation.

The device reports a pool's addresses in two buckets. Used addresses become
``assigned``, available ones become ``available`` with owners cleared, and
stored addresses the device reports in neither bucket are ``blocked``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Mapping

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from routersync.models.network import IpAddress, IpAddressStatus, IpPool
from routersync.models.pppoe import PPPoEUser
from routersync.schemas.device import PoolAddressBuckets
from routersync.services.common import utcnow
from routersync.services.router_sync.base import commit_batch, is_store_failure
from routersync.services.router_sync.errors import PersistenceError, RouterSyncError
from routersync.services.router_sync.results import (
    AddressSyncStats,
    SyncAction,
    SyncEntity,
    SyncResult,
)

logger = logging.getLogger(__name__)


class AddressSynchronizer:
    entity = SyncEntity.addresses

    def __init__(
        self,
        db: Session,
        *,
        auto_create_missing: bool = True,
        block_unknown: bool = True,
        clock: Callable[[], datetime] | None = None,
    ):
        self.db = db
        self.auto_create_missing = auto_create_missing
        self.block_unknown = block_unknown
        self.clock = clock or utcnow

    def pools_for(self, router) -> list[IpPool]:
        return (
            self.db.query(IpPool)
            .filter(IpPool.router_id == router.id)
            .filter(IpPool.is_active.is_(True))
            .order_by(IpPool.name)
            .all()
        )

    def sync_router(
        self,
        router,
        buckets_by_pool: Mapping[str, PoolAddressBuckets | RouterSyncError],
    ) -> list[SyncResult]:
        """Apply fetched buckets to every active pool of ``router``.

        A pool whose fetch failed is reported as ``error``; pools with no
        entry in ``buckets_by_pool`` were not fetched and are skipped.
        """
        results: list[SyncResult] = []
        for pool in self.pools_for(router):
            payload = buckets_by_pool.get(pool.external_id)
            if payload is None:
                continue
            if isinstance(payload, RouterSyncError):
                logger.error(
                    "Address listing failed for pool %s on router %s: %s",
                    pool.name,
                    router.name,
                    payload,
                )
                results.append(self._result(pool, SyncAction.error, error=str(payload)))
                continue
            results.append(self._guarded(pool, payload))
        commit_batch(self.db, f"addresses on router {router.name}")
        return results

    def sync_pool(self, pool: IpPool, buckets: PoolAddressBuckets) -> SyncResult:
        result = self._guarded(pool, buckets)
        commit_batch(self.db, f"addresses of pool {pool.name}")
        return result

    def _guarded(self, pool: IpPool, buckets: PoolAddressBuckets) -> SyncResult:
        try:
            with self.db.begin_nested():
                return self._apply(pool, buckets)
        except SQLAlchemyError as exc:
            if is_store_failure(exc):
                raise PersistenceError(
                    f"Store unavailable while syncing addresses of pool {pool.name}: {exc}"
                ) from exc
            logger.error("Failed to sync addresses of pool %s: %s", pool.name, exc)
            return self._result(pool, SyncAction.error, error=str(exc))

    def _owners(self, pool: IpPool) -> tuple[dict[str, PPPoEUser], dict[str, PPPoEUser]]:
        users = self.db.query(PPPoEUser).filter(PPPoEUser.router_id == pool.router_id).all()
        by_username = {user.username: user for user in users}
        by_address = {user.static_address: user for user in users if user.static_address}
        return by_username, by_address

    def _apply(self, pool: IpPool, buckets: PoolAddressBuckets) -> SyncResult:
        stats = AddressSyncStats(used=len(buckets.used), available=len(buckets.available))
        rows = {
            row.address: row
            for row in self.db.query(IpAddress).filter(IpAddress.pool_id == pool.id)
        }
        by_username, by_address = self._owners(pool)

        def resolve_owner(address: str) -> PPPoEUser | None:
            owner = by_username.get(buckets.owners.get(address, "")) or by_address.get(address)
            # Owner references are only linked together
            if owner is None or owner.subscriber_id is None:
                return None
            return owner

        used = set(buckets.used)
        for address in buckets.used:
            row = rows.get(address)
            owner = resolve_owner(address)
            if row is None:
                if not self.auto_create_missing:
                    continue
                row = IpAddress(pool_id=pool.id, address=address, status=IpAddressStatus.assigned)
                if owner is not None:
                    row.assign_to(owner)
                self.db.add(row)
                rows[address] = row
                stats.created += 1
                continue
            changed = False
            if row.status != IpAddressStatus.assigned:
                row.status = IpAddressStatus.assigned
                changed = True
            if owner is not None and row.pppoe_user_id != owner.id:
                row.assign_to(owner)
                changed = True
            if changed:
                stats.updated += 1

        available = [address for address in buckets.available if address not in used]
        for address in available:
            row = rows.get(address)
            if row is None:
                if not self.auto_create_missing:
                    continue
                row = IpAddress(pool_id=pool.id, address=address, status=IpAddressStatus.available)
                self.db.add(row)
                rows[address] = row
                stats.created += 1
                continue
            held = (
                row.status == IpAddressStatus.assigned
                or row.pppoe_user_id is not None
                or row.subscriber_id is not None
            )
            if held:
                row.release()
                stats.freed += 1
            elif row.status != IpAddressStatus.available:
                # Reinstated blocked row
                row.release()
                stats.updated += 1

        if self.block_unknown:
            seen = used.union(available)
            for address, row in rows.items():
                if address not in seen and row.status != IpAddressStatus.blocked:
                    row.status = IpAddressStatus.blocked
                    stats.blocked += 1

        self.db.flush()
        logger.info(
            "Pool %s addresses: created=%s updated=%s freed=%s blocked=%s",
            pool.name,
            stats.created,
            stats.updated,
            stats.freed,
            stats.blocked,
        )
        return self._result(
            pool,
            SyncAction.updated if stats.changed else SyncAction.verified,
            stats=stats,
        )

    def _result(self, pool: IpPool, action: SyncAction, **kwargs) -> SyncResult:
        return SyncResult(
            entity=self.entity,
            action=action,
            router_id=str(pool.router_id),
            external_id=pool.external_id,
            name=pool.name,
            record_id=str(pool.id),
            **kwargs,
        )

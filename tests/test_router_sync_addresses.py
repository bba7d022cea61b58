"""Tests for per-pool address reconciliation."""

import uuid

from routersync.models.network import IpAddress, IpAddressStatus
from routersync.schemas.device import PoolAddressBuckets
from routersync.services.router_sync.addresses import AddressSynchronizer
from routersync.services.router_sync.errors import TransportError
from routersync.services.router_sync.results import SyncAction


def _statuses(db_session, pool):
    return {
        row.address: row.status
        for row in db_session.query(IpAddress).filter(IpAddress.pool_id == pool.id)
    }


class TestAddressSynchronizer:
    """Tests for AddressSynchronizer.sync_pool."""

    def test_three_bucket_classification(self, db_session, pool, clock):
        db_session.add(
            IpAddress(pool_id=pool.id, address="10.10.0.4", status=IpAddressStatus.available)
        )
        db_session.commit()

        result = AddressSynchronizer(db_session, clock=clock).sync_pool(
            pool,
            PoolAddressBuckets(used=["10.10.0.1", "10.10.0.2"], available=["10.10.0.3"]),
        )

        assert _statuses(db_session, pool) == {
            "10.10.0.1": IpAddressStatus.assigned,
            "10.10.0.2": IpAddressStatus.assigned,
            "10.10.0.3": IpAddressStatus.available,
            "10.10.0.4": IpAddressStatus.blocked,
        }
        assert result.action == SyncAction.updated
        assert result.stats.created == 3
        assert result.stats.blocked == 1
        assert result.stats.used == 2
        assert result.stats.available == 1

    def test_second_pass_is_verified(self, db_session, pool, clock):
        sync = AddressSynchronizer(db_session, clock=clock)
        buckets = PoolAddressBuckets(used=["10.10.0.1"], available=["10.10.0.2", "10.10.0.3"])
        sync.sync_pool(pool, buckets)
        result = sync.sync_pool(pool, buckets)
        assert result.action == SyncAction.verified
        assert not result.stats.changed

    def test_available_frees_previous_owner(self, db_session, pool, pppoe_user, clock):
        row = IpAddress(pool_id=pool.id, address="10.10.0.2")
        db_session.add(row)
        db_session.flush()
        row.assign_to(pppoe_user)
        db_session.commit()

        result = AddressSynchronizer(db_session, clock=clock).sync_pool(
            pool, PoolAddressBuckets(available=["10.10.0.2"])
        )
        db_session.refresh(row)
        assert row.status == IpAddressStatus.available
        assert row.pppoe_user_id is None
        assert row.subscriber_id is None
        assert result.stats.freed == 1

    def test_blocked_row_reported_available_is_updated(self, db_session, pool, clock):
        row = IpAddress(pool_id=pool.id, address="10.10.0.3", status=IpAddressStatus.blocked)
        db_session.add(row)
        db_session.commit()

        result = AddressSynchronizer(db_session, clock=clock).sync_pool(
            pool, PoolAddressBuckets(available=["10.10.0.3"])
        )

        db_session.refresh(row)
        assert row.status == IpAddressStatus.available
        assert result.action == SyncAction.updated
        assert result.stats.updated == 1
        assert result.stats.freed == 0

    def test_used_address_links_owner_by_username(self, db_session, pool, pppoe_user, clock):
        AddressSynchronizer(db_session, clock=clock).sync_pool(
            pool, PoolAddressBuckets(used=["10.10.0.1"], owners={"10.10.0.1": "alice"})
        )
        row = db_session.query(IpAddress).filter(IpAddress.address == "10.10.0.1").one()
        assert row.status == IpAddressStatus.assigned
        assert row.pppoe_user_id == pppoe_user.id
        assert row.subscriber_id == pppoe_user.subscriber_id

    def test_owner_without_subscriber_is_not_linked(self, db_session, pool, pppoe_user, clock):
        pppoe_user.subscriber_id = None
        db_session.commit()
        AddressSynchronizer(db_session, clock=clock).sync_pool(
            pool, PoolAddressBuckets(used=["10.10.0.1"], owners={"10.10.0.1": "alice"})
        )
        row = db_session.query(IpAddress).one()
        assert row.status == IpAddressStatus.assigned
        assert row.pppoe_user_id is None
        assert row.subscriber_id is None

    def test_flags_disable_create_and_block(self, db_session, pool, clock):
        db_session.add(
            IpAddress(pool_id=pool.id, address="10.10.0.4", status=IpAddressStatus.available)
        )
        db_session.commit()
        result = AddressSynchronizer(
            db_session, auto_create_missing=False, block_unknown=False, clock=clock
        ).sync_pool(pool, PoolAddressBuckets(used=["10.10.0.1"]))
        assert _statuses(db_session, pool) == {"10.10.0.4": IpAddressStatus.available}
        assert result.action == SyncAction.verified

    def test_address_in_both_buckets_counts_as_used(self, db_session, pool, clock):
        AddressSynchronizer(db_session, clock=clock).sync_pool(
            pool, PoolAddressBuckets(used=["10.10.0.1"], available=["10.10.0.1", "10.10.0.2"])
        )
        assert _statuses(db_session, pool) == {
            "10.10.0.1": IpAddressStatus.assigned,
            "10.10.0.2": IpAddressStatus.available,
        }

    def test_rows_are_never_deleted(self, db_session, pool, clock):
        db_session.add(IpAddress(pool_id=pool.id, address="10.10.0.9"))
        db_session.commit()
        AddressSynchronizer(db_session, clock=clock).sync_pool(pool, PoolAddressBuckets())
        assert _statuses(db_session, pool) == {"10.10.0.9": IpAddressStatus.blocked}


class TestAddressSyncRouter:
    """Tests for AddressSynchronizer.sync_router."""

    def test_fetch_error_becomes_pool_error(self, db_session, router, pool, clock):
        results = AddressSynchronizer(db_session, clock=clock).sync_router(
            router, {pool.external_id: TransportError("timeout", router_id=str(router.id))}
        )
        assert [r.action for r in results] == [SyncAction.error]
        assert results[0].external_id == "*1"
        assert results[0].error == "timeout"

    def test_unfetched_pools_are_skipped(self, db_session, router, pool, clock):
        assert AddressSynchronizer(db_session, clock=clock).sync_router(router, {}) == []

    def test_inactive_pool_skipped(self, db_session, router, pool, clock):
        pool.is_active = False
        db_session.commit()
        results = AddressSynchronizer(db_session, clock=clock).sync_router(
            router, {pool.external_id: PoolAddressBuckets(used=["10.10.0.1"])}
        )
        assert results == []

    def test_used_address_keeps_existing_link(self, db_session, router, pool, clock):
        row = IpAddress(
            pool_id=pool.id,
            address="10.10.0.1",
            status=IpAddressStatus.assigned,
            pppoe_user_id=uuid.uuid4(),
            subscriber_id=uuid.uuid4(),
        )
        db_session.add(row)
        db_session.commit()
        results = AddressSynchronizer(db_session, clock=clock).sync_router(
            router, {pool.external_id: PoolAddressBuckets(used=["10.10.0.1"])}
        )
        assert results[0].action == SyncAction.verified

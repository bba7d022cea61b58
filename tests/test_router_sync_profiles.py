"""Tests for PPPoE profile reconciliation."""

import uuid

from routersync.models.pppoe import PPPoEProfile
from routersync.services.router_sync.profiles import ProfileSynchronizer
from routersync.services.router_sync.results import SyncAction


class TestProfileSynchronizer:
    """Tests for ProfileSynchronizer.sync_router."""

    def test_create_then_rename(self, db_session, router, clock):
        """Auto-created profile is updated in place when renamed on the router."""
        sync = ProfileSynchronizer(db_session, auto_create=True, clock=clock)

        first = sync.sync_router(router, [{".id": "*2", "name": "10M", "rate-limit": "10M/2M"}])
        assert [r.action for r in first] == [SyncAction.created]

        second = sync.sync_router(
            router, [{".id": "*2", "name": "10M-Promo", "rate-limit": "10M/2M"}]
        )
        assert second[0].action == SyncAction.updated
        assert second[0].changed_fields == ["name"]

        rows = db_session.query(PPPoEProfile).all()
        assert len(rows) == 1
        assert rows[0].name == "10M-Promo"
        assert rows[0].rate_limit == "10M/2M"

    def test_rate_change_detected(self, db_session, router, profile, clock):
        results = ProfileSynchronizer(db_session, clock=clock).sync_router(
            router, [{".id": "*2", "name": "10M", "rate-limit": "20M/4M 40M/8M"}]
        )
        assert results[0].action == SyncAction.updated
        assert results[0].changed_fields == ["rate_limit", "burst_limit"]
        db_session.refresh(profile)
        assert profile.rate_limit == "20M/4M"
        assert profile.burst_limit == "40M/8M"

    def test_min_rate_only_change_detected(self, db_session, router, profile, clock):
        sync = ProfileSynchronizer(db_session, clock=clock)
        sync.sync_router(
            router, [{".id": "*2", "name": "10M", "rate-limit": "10M/2M 0/0 0/0 0/0 8 1M/256k"}]
        )

        results = sync.sync_router(
            router, [{".id": "*2", "name": "10M", "rate-limit": "10M/2M 0/0 0/0 0/0 8 2M/512k"}]
        )

        assert results[0].action == SyncAction.updated
        assert results[0].changed_fields == ["min_rate"]
        db_session.refresh(profile)
        assert profile.min_rate == "2M/512k"

    def test_unchanged_is_verified(self, db_session, router, profile, clock):
        results = ProfileSynchronizer(db_session, clock=clock).sync_router(
            router, [{".id": "*2", "name": "10M", "rate-limit": "10M/2M"}]
        )
        assert results[0].action == SyncAction.verified
        db_session.refresh(profile)
        assert profile.last_synced_at is not None

    def test_service_package_link_survives(self, db_session, router, profile, clock):
        package_id = uuid.uuid4()
        profile.service_package_id = package_id
        db_session.commit()
        ProfileSynchronizer(db_session, clock=clock).sync_router(
            router, [{".id": "*2", "name": "10M Home", "rate-limit": "10M/2M"}]
        )
        db_session.refresh(profile)
        assert profile.name == "10M Home"
        assert profile.service_package_id == package_id

    def test_other_router_rows_untouched(self, db_session, router, second_router, profile, clock):
        results = ProfileSynchronizer(db_session, clock=clock).sync_router(second_router, [])
        assert results == []
        assert db_session.query(PPPoEProfile).count() == 1

"""Tests for PPPoE user reconciliation."""

from routersync.models.network import IpAddress, IpAddressStatus
from routersync.models.pppoe import PPPoEUser, PPPoEUserStatus
from routersync.services.router_sync.results import SyncAction
from routersync.services.router_sync.users import UserSynchronizer


def _secret(**overrides):
    secret = {".id": "*A", "name": "alice", "profile": "10M", "disabled": "false"}
    secret.update(overrides)
    return secret


class TestUserSynchronizer:
    """Tests for UserSynchronizer.sync_router."""

    def test_verified_when_unchanged(self, db_session, router, pppoe_user, clock):
        results = UserSynchronizer(db_session, clock=clock).sync_router(router, [_secret()])
        assert [r.action for r in results] == [SyncAction.verified]
        assert results[0].name == "alice"

    def test_rename_reports_username(self, db_session, router, pppoe_user, clock):
        results = UserSynchronizer(db_session, clock=clock).sync_router(
            router, [_secret(name="alice.smith")]
        )
        assert results[0].changed_fields == ["username"]
        db_session.refresh(pppoe_user)
        assert pppoe_user.username == "alice.smith"
        assert db_session.query(PPPoEUser).count() == 1

    def test_disable_reports_status(self, db_session, router, pppoe_user, clock):
        results = UserSynchronizer(db_session, clock=clock).sync_router(
            router, [_secret(disabled="yes")]
        )
        assert results[0].changed_fields == ["status"]
        db_session.refresh(pppoe_user)
        assert pppoe_user.status == PPPoEUserStatus.disabled

    def test_profile_change_resolves_external_id(self, db_session, router, pppoe_user, clock):
        from routersync.models.pppoe import PPPoEProfile

        db_session.add(PPPoEProfile(router_id=router.id, external_id="*3", name="20M"))
        db_session.commit()
        results = UserSynchronizer(db_session, clock=clock).sync_router(
            router, [_secret(profile="20M")]
        )
        assert results[0].changed_fields == ["profile"]
        db_session.refresh(pppoe_user)
        assert pppoe_user.profile_name == "20M"
        assert pppoe_user.profile_external_id == "*3"

    def test_address_change_relinks_pool_address(self, db_session, router, pool, pppoe_user, clock):
        pppoe_user.static_address = "10.10.0.2"
        old = IpAddress(pool_id=pool.id, address="10.10.0.2")
        new = IpAddress(pool_id=pool.id, address="10.10.0.3", status=IpAddressStatus.available)
        db_session.add_all([old, new])
        db_session.flush()
        old.assign_to(pppoe_user)
        db_session.commit()

        results = UserSynchronizer(db_session, clock=clock).sync_router(
            router, [_secret(**{"remote-address": "10.10.0.3"})]
        )
        assert results[0].changed_fields == ["address"]

        db_session.refresh(old)
        db_session.refresh(new)
        assert old.status == IpAddressStatus.available
        assert old.pppoe_user_id is None
        assert old.subscriber_id is None
        assert new.status == IpAddressStatus.assigned
        assert new.pppoe_user_id == pppoe_user.id
        assert new.subscriber_id == pppoe_user.subscriber_id

    def test_auto_create_user(self, db_session, router, profile, clock):
        results = UserSynchronizer(db_session, auto_create=True, clock=clock).sync_router(
            router, [_secret(name="bob", comment="flat 4")]
        )
        assert results[0].action == SyncAction.created
        user = db_session.query(PPPoEUser).one()
        assert user.username == "bob"
        assert user.profile_external_id == "*2"
        assert user.comment == "flat 4"
        assert user.subscriber_id is None

    def test_sync_single(self, db_session, router, pppoe_user, clock):
        sync = UserSynchronizer(db_session, clock=clock)
        record = sync.find_record(router, [_secret(), _secret(**{".id": "*B", "name": "x"})], "*A")
        result = sync.sync_single(router, record, pppoe_user)
        assert result.action == SyncAction.verified
        assert result.record_id == str(pppoe_user.id)

    def test_find_record_absent(self, db_session, router, clock):
        sync = UserSynchronizer(db_session, clock=clock)
        assert sync.find_record(router, [_secret()], "*Z") is None

import dataclasses
import uuid
from datetime import UTC, datetime

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import sqltypes

from routersync.config import Settings
from routersync.db import Base
from routersync.models import IpPool, PPPoEProfile, PPPoEUser, Router
from routersync.services.router_sync.scheduler import SyncPolicy
from tests.mocks import FakeClock, FakeDeviceClient

# Monkey-patch SQLAlchemy's UUID type for SQLite compatibility
_original_uuid_bind_processor = sqltypes.Uuid.bind_processor
_original_uuid_result_processor = sqltypes.Uuid.result_processor


def _sqlite_uuid_bind_processor(self, dialect):
    if dialect.name == "sqlite":
        def process(value):
            if value is not None:
                if isinstance(value, uuid.UUID):
                    return str(value)
                return str(uuid.UUID(value)) if value else None
            return None
        return process
    return _original_uuid_bind_processor(self, dialect)


def _sqlite_uuid_result_processor(self, dialect, coltype):
    if dialect.name == "sqlite":
        def process(value):
            if value is not None:
                if isinstance(value, uuid.UUID):
                    return value
                return uuid.UUID(value) if value else None
            return None
        return process
    return _original_uuid_result_processor(self, dialect, coltype)


setattr(sqltypes.Uuid, "bind_processor", _sqlite_uuid_bind_processor)
setattr(sqltypes.Uuid, "result_processor", _sqlite_uuid_result_processor)


@pytest.fixture()
def engine():
    """Fresh in-memory database per test.

    pysqlite's own transaction handling breaks SAVEPOINT, so SQLAlchemy is
    made to emit BEGIN itself.
    """
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def db_session(engine):
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def clock():
    return FakeClock(datetime(2026, 3, 1, 8, 0, tzinfo=UTC))


@pytest.fixture()
def device_client():
    return FakeDeviceClient()


@pytest.fixture()
def policy():
    """Policy from default settings with every class enabled."""
    defaults = SyncPolicy.from_settings(Settings())
    return dataclasses.replace(
        defaults,
        enabled={entity: True for entity in defaults.enabled},
        auto_create={entity: False for entity in defaults.auto_create},
        ip_auto_create_missing=True,
        ip_block_unknown=True,
        free_orphaned_ips=True,
        max_workers=2,
    )


@pytest.fixture()
def router(db_session):
    router = Router(
        name="core-1",
        host="10.255.0.1",
        api_port=8728,
        api_username="sync",
        api_password="plain:secret",
    )
    db_session.add(router)
    db_session.commit()
    db_session.refresh(router)
    return router


@pytest.fixture()
def second_router(db_session):
    router = Router(
        name="core-2",
        host="10.255.0.2",
        api_username="sync",
        api_password="plain:secret",
    )
    db_session.add(router)
    db_session.commit()
    db_session.refresh(router)
    return router


@pytest.fixture()
def pool(db_session, router):
    pool = IpPool(
        router_id=router.id,
        external_id="*1",
        name="residential",
        ranges="10.10.0.1-10.10.0.4",
        gateway="10.10.0.254",
    )
    db_session.add(pool)
    db_session.commit()
    db_session.refresh(pool)
    return pool


@pytest.fixture()
def profile(db_session, router):
    profile = PPPoEProfile(
        router_id=router.id,
        external_id="*2",
        name="10M",
        rate_limit="10M/2M",
    )
    db_session.add(profile)
    db_session.commit()
    db_session.refresh(profile)
    return profile


@pytest.fixture()
def pppoe_user(db_session, router, profile):
    user = PPPoEUser(
        router_id=router.id,
        external_id="*A",
        username="alice",
        profile_name=profile.name,
        profile_external_id=profile.external_id,
        subscriber_id=uuid.uuid4(),
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user

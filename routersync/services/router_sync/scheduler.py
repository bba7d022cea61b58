"""Fleet-wide reconciliation passes gated per entity class.

Each class has its own interval and cursor. A due class is run across every
active router; device listings are fetched on a bounded thread pool while
the results are applied to the database router by router on the caller's
session. The cursor only advances when the class run completes.
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.orm import Session

from routersync.config import Settings, settings as default_settings
from routersync.metrics import record_sync_results, record_sync_run
from routersync.models.network import IpPool, Router
from routersync.models.pppoe import PPPoEUser
from routersync.services.common import coerce_uuid, utcnow
from routersync.services.routeros import DeviceClient, RouterConnection
from routersync.services.router_sync import orphans
from routersync.services.router_sync.addresses import AddressSynchronizer
from routersync.services.router_sync.cursors import SyncCursors, SyncCursorStore
from routersync.services.router_sync.errors import (
    ConfigError,
    EntityNotFoundError,
    PersistenceError,
    SyncCancelled,
    TransportError,
    ValidationError,
)
from routersync.services.router_sync.pools import PoolSynchronizer
from routersync.services.router_sync.profiles import ProfileSynchronizer
from routersync.services.router_sync.results import (
    SYNC_ORDER,
    ClassRunReport,
    ClassRunStatus,
    RunSummary,
    SyncAction,
    SyncEntity,
    SyncResult,
)
from routersync.services.router_sync.users import UserSynchronizer

logger = logging.getLogger(__name__)


def _lookup_id(value, label: str):
    try:
        return coerce_uuid(value)
    except ValueError as exc:
        raise EntityNotFoundError(f"{label} {value} not found") from exc


class ClassState(enum.Enum):
    idle = "idle"
    due = "due"
    running = "running"
    cooling_down = "cooling_down"


@dataclass(frozen=True)
class SyncPolicy:
    intervals: dict[SyncEntity, float] = field(default_factory=dict)
    enabled: dict[SyncEntity, bool] = field(default_factory=dict)
    auto_create: dict[SyncEntity, bool] = field(default_factory=dict)
    ip_auto_create_missing: bool = True
    ip_block_unknown: bool = True
    free_orphaned_ips: bool = True
    max_workers: int = 4

    @classmethod
    def from_settings(cls, config: Settings) -> "SyncPolicy":
        return cls(
            intervals={
                SyncEntity.pools: config.sync_interval_pools_hours,
                SyncEntity.addresses: config.sync_interval_addresses_hours,
                SyncEntity.profiles: config.sync_interval_profiles_hours,
                SyncEntity.users: config.sync_interval_users_hours,
            },
            enabled={
                SyncEntity.pools: config.sync_pools_enabled,
                SyncEntity.addresses: config.sync_addresses_enabled,
                SyncEntity.profiles: config.sync_profiles_enabled,
                SyncEntity.users: config.sync_users_enabled,
            },
            auto_create={
                SyncEntity.pools: config.auto_create_pools,
                SyncEntity.profiles: config.auto_create_profiles,
                SyncEntity.users: config.auto_create_users,
            },
            ip_auto_create_missing=config.ip_auto_create_missing,
            ip_block_unknown=config.ip_block_unknown,
            free_orphaned_ips=config.free_orphaned_ips,
            max_workers=config.router_sync_max_workers,
        )


class ReconciliationScheduler:
    def __init__(
        self,
        db: Session,
        client: DeviceClient,
        *,
        policy: SyncPolicy | None = None,
        clock: Callable[[], datetime] | None = None,
        cancel_event: threading.Event | None = None,
        cursor_store: SyncCursorStore | None = None,
    ):
        self.db = db
        self.client = client
        self.policy = policy or SyncPolicy.from_settings(default_settings)
        self.clock = clock or utcnow
        self.cancel_event = cancel_event or threading.Event()
        self.cursors = cursor_store or SyncCursorStore(db)
        self._running: set[SyncEntity] = set()

    # -- synchronizers -------------------------------------------------------

    def synchronizer_for(self, entity: SyncEntity):
        if entity == SyncEntity.pools:
            return PoolSynchronizer(
                self.db, auto_create=self.policy.auto_create.get(entity, False), clock=self.clock
            )
        if entity == SyncEntity.addresses:
            return AddressSynchronizer(
                self.db,
                auto_create_missing=self.policy.ip_auto_create_missing,
                block_unknown=self.policy.ip_block_unknown,
                clock=self.clock,
            )
        if entity == SyncEntity.profiles:
            return ProfileSynchronizer(
                self.db, auto_create=self.policy.auto_create.get(entity, False), clock=self.clock
            )
        return UserSynchronizer(
            self.db, auto_create=self.policy.auto_create.get(entity, False), clock=self.clock
        )

    # -- gating --------------------------------------------------------------

    def interval_for(self, entity: SyncEntity, cursors: SyncCursors) -> float:
        if entity in cursors.intervals:
            return cursors.intervals[entity]
        return self.policy.intervals.get(entity, 24.0)

    def state_for(
        self,
        entity: SyncEntity,
        cursors: SyncCursors | None = None,
        now: datetime | None = None,
    ) -> ClassState:
        if not self.policy.enabled.get(entity, True):
            return ClassState.idle
        if entity in self._running:
            return ClassState.running
        cursors = cursors if cursors is not None else self.cursors.load()
        last = cursors.last_synced.get(entity)
        if last is None:
            return ClassState.due
        now = now or self.clock()
        if now - last >= timedelta(hours=self.interval_for(entity, cursors)):
            return ClassState.due
        return ClassState.cooling_down

    def sync_status(self) -> dict[str, dict[str, object]]:
        cursors = self.cursors.load()
        now = self.clock()
        status: dict[str, dict[str, object]] = {}
        for entity in SYNC_ORDER:
            last = cursors.last_synced.get(entity)
            hours = self.interval_for(entity, cursors)
            next_sync = last + timedelta(hours=hours) if last else None
            status[entity.value] = {
                "state": self.state_for(entity, cursors, now).value,
                "enabled": self.policy.enabled.get(entity, True),
                "interval_hours": hours,
                "last_synced_at": last.isoformat() if last else None,
                "next_sync_at": next_sync.isoformat() if next_sync else None,
                "is_overdue": next_sync is None or now >= next_sync,
            }
        return status

    def reset_cursors(self, entities: list[SyncEntity] | None = None) -> None:
        self.cursors.reset(entities)
        logger.info(
            "Reset sync cursors for %s",
            ", ".join(entity.value for entity in (entities or SYNC_ORDER)),
        )

    def set_interval(self, entity: SyncEntity, hours: float) -> None:
        self.cursors.set_interval(entity, hours)
        logger.info("Set %s sync interval to %s hours", entity.value, hours)

    # -- scheduled passes ----------------------------------------------------

    def run_full_reconciliation(self) -> RunSummary:
        # Fails with ConfigError before any device is contacted
        cursors = self.cursors.load()
        now = self.clock()
        summary = RunSummary(started_at=now)
        for entity in SYNC_ORDER:
            state = self.state_for(entity, cursors, now)
            if state != ClassState.due:
                logger.debug("Skipping %s sync (%s)", entity.value, state.value)
                summary.classes[entity] = ClassRunReport(entity=entity, status=ClassRunStatus.skipped)
                record_sync_run(entity.value, ClassRunStatus.skipped.value)
                continue
            report = self.run_entity_class(entity)
            summary.classes[entity] = report
            if report.status == ClassRunStatus.cancelled:
                break
        users = summary.report(SyncEntity.users)
        if users is not None:
            summary.orphans_freed = users.orphans_freed
        summary.finished_at = self.clock()
        return summary

    def run_entity_class(self, entity: SyncEntity) -> ClassRunReport:
        """Run one class across the fleet regardless of its interval.

        A completed users pass is followed by the orphan sweep when
        ``free_orphaned_ips`` is on.
        """
        report = ClassRunReport(entity=entity, status=ClassRunStatus.completed)
        report.started_at = self.clock()
        self._running.add(entity)
        started = time.monotonic()
        logger.info("Starting %s sync", entity.value)
        try:
            self._run_routers(entity, report)
            if entity == SyncEntity.users and self.policy.free_orphaned_ips:
                report.orphans_freed = self.reclaim_orphans()["freed"]
            report.finished_at = self.clock()
            self.cursors.advance(entity, report.finished_at)
        except SyncCancelled as exc:
            report.status = ClassRunStatus.cancelled
            report.error = str(exc)
            report.finished_at = self.clock()
            logger.warning("%s sync cancelled: %s", entity.value, exc)
        except (PersistenceError, ConfigError):
            record_sync_run(entity.value, ClassRunStatus.failed.value)
            logger.exception("%s sync failed", entity.value)
            raise
        finally:
            self._running.discard(entity)
        record_sync_run(entity.value, report.status.value)
        summary = report.summary
        record_sync_results(
            entity.value,
            {key: count for key, count in summary.items() if key not in ("total", "routers_processed")},
        )
        logger.info(
            "%s sync %s in %.2fs: %s",
            entity.value,
            report.status.value,
            time.monotonic() - started,
            summary,
        )
        return report

    def _check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise SyncCancelled("Reconciliation cancelled")

    def _active_routers(self) -> list[Router]:
        return (
            self.db.query(Router)
            .filter(Router.is_active.is_(True))
            .order_by(Router.name)
            .all()
        )

    def _fetch(self, entity: SyncEntity, conn: RouterConnection, pool_ids: list[str]):
        if entity == SyncEntity.pools:
            return self.client.list_ip_pools(conn)
        if entity == SyncEntity.profiles:
            return self.client.list_profiles(conn)
        if entity == SyncEntity.users:
            return self.client.list_users(conn)
        return self.client.list_router_pool_addresses(conn, pool_ids)

    def _run_routers(self, entity: SyncEntity, report: ClassRunReport) -> None:
        self._check_cancelled()
        synchronizer = self.synchronizer_for(entity)
        routers = self._active_routers()
        targets: list[tuple[Router, RouterConnection, list[str]]] = []
        for router in routers:
            pool_ids = (
                [pool.external_id for pool in synchronizer.pools_for(router)]
                if entity == SyncEntity.addresses
                else []
            )
            targets.append((router, RouterConnection.from_router(router), pool_ids))

        with ThreadPoolExecutor(
            max_workers=self.policy.max_workers, thread_name_prefix=f"router-sync-{entity.value}"
        ) as executor:
            futures: list[tuple[Router, Future]] = [
                (router, executor.submit(self._fetch, entity, conn, pool_ids))
                for router, conn, pool_ids in targets
            ]
            try:
                for router, future in futures:
                    self._check_cancelled()
                    self._apply_router(entity, synchronizer, router, future, report)
            except (SyncCancelled, PersistenceError, ConfigError):
                for _, future in futures:
                    future.cancel()
                raise

    def _apply_router(
        self, entity, synchronizer, router: Router, future: Future, report: ClassRunReport
    ) -> None:
        try:
            payload = future.result()
        except (TransportError, ValidationError) as exc:
            logger.error("%s sync failed for router %s: %s", entity.value, router.name, exc)
            report.router_errors[str(router.id)] = str(exc)
            report.results.append(self._router_error(entity, router, exc))
            return
        report.results.extend(synchronizer.sync_router(router, payload))

    def _router_error(self, entity: SyncEntity, router: Router, exc: Exception) -> SyncResult:
        return SyncResult(
            entity=entity,
            action=SyncAction.error,
            router_id=str(router.id),
            name=router.name,
            error=str(exc),
        )

    # -- manual operations ---------------------------------------------------

    def sync_one_router(self, router_id, entity: SyncEntity) -> list[SyncResult]:
        router = self.db.get(Router, _lookup_id(router_id, "Router"))
        if router is None:
            raise EntityNotFoundError(f"Router {router_id} not found")
        synchronizer = self.synchronizer_for(entity)
        pool_ids = (
            [pool.external_id for pool in synchronizer.pools_for(router)]
            if entity == SyncEntity.addresses
            else []
        )
        try:
            payload = self._fetch(entity, RouterConnection.from_router(router), pool_ids)
        except (TransportError, ValidationError) as exc:
            logger.error("%s sync failed for router %s: %s", entity.value, router.name, exc)
            return [self._router_error(entity, router, exc)]
        return synchronizer.sync_router(router, payload)

    def sync_one_pool(self, pool_id) -> SyncResult:
        pool = self.db.get(IpPool, _lookup_id(pool_id, "Pool"))
        if pool is None:
            raise EntityNotFoundError(f"Pool {pool_id} not found")
        synchronizer = self.synchronizer_for(SyncEntity.addresses)
        try:
            buckets = self.client.list_pool_addresses(
                RouterConnection.from_router(pool.router), pool.external_id
            )
        except (TransportError, ValidationError) as exc:
            logger.error("Address sync failed for pool %s: %s", pool.name, exc)
            return SyncResult(
                entity=SyncEntity.addresses,
                action=SyncAction.error,
                router_id=str(pool.router_id),
                external_id=pool.external_id,
                name=pool.name,
                record_id=str(pool.id),
                error=str(exc),
            )
        return synchronizer.sync_pool(pool, buckets)

    def _find_user(self, user_or_subscriber_id) -> PPPoEUser:
        lookup_id = _lookup_id(user_or_subscriber_id, "PPPoE user")
        user = self.db.get(PPPoEUser, lookup_id)
        if user is None:
            user = (
                self.db.query(PPPoEUser)
                .filter(PPPoEUser.subscriber_id == lookup_id)
                .order_by(PPPoEUser.created_at)
                .first()
            )
        if user is None:
            raise EntityNotFoundError(f"PPPoE user {user_or_subscriber_id} not found")
        return user

    def sync_one_user(self, user_or_subscriber_id) -> SyncResult:
        user = self._find_user(user_or_subscriber_id)
        router = user.router
        synchronizer = self.synchronizer_for(SyncEntity.users)
        try:
            raw_users = self.client.list_users(RouterConnection.from_router(router))
            record = synchronizer.find_record(router, raw_users, user.external_id)
        except (TransportError, ValidationError) as exc:
            logger.error("User sync failed for %s: %s", user.username, exc)
            return SyncResult(
                entity=SyncEntity.users,
                action=SyncAction.error,
                router_id=str(router.id),
                external_id=user.external_id,
                name=user.username,
                record_id=str(user.id),
                error=str(exc),
            )
        if record is None:
            logger.warning(
                "PPPoE user %s (%s) no longer reported by router %s",
                user.username,
                user.external_id,
                router.name,
            )
            return SyncResult(
                entity=SyncEntity.users,
                action=SyncAction.missing_in_router,
                router_id=str(router.id),
                external_id=user.external_id,
                name=user.username,
                record_id=str(user.id),
            )
        return synchronizer.sync_single(router, record, user)

    def reclaim_orphans(self) -> dict[str, int]:
        return orphans.reclaim_orphans(self.db)

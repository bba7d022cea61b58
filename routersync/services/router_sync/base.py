"""Shared reconciliation contract for per-router entity classes.

Every synchronizer follows the same shape: parse the device listing,
match it to stored rows by ``(router_id, external_id)``, then apply each
record inside its own savepoint so one bad record cannot poison the rest
of the router's batch. Stored rows never get deleted here; rows the
device no longer reports are only reported as ``missing_in_router``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from functools import partial
from typing import Callable, Iterable, Mapping

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from routersync.schemas.device import DeviceRecord
from routersync.services.common import utcnow
from routersync.services.router_sync.errors import PersistenceError, ValidationError
from routersync.services.router_sync.matcher import match_records
from routersync.services.router_sync.results import SyncAction, SyncEntity, SyncResult

logger = logging.getLogger(__name__)


def is_store_failure(exc: SQLAlchemyError) -> bool:
    """True when the store itself is unusable rather than one record rejected."""
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


def raw_external_id(raw: object) -> str | None:
    if isinstance(raw, DeviceRecord):
        return raw.external_id
    if isinstance(raw, Mapping):
        value = raw.get(".id") or raw.get("id") or raw.get("external_id")
        return str(value) if value is not None else None
    return None


def diff_fields(row, values: Mapping[str, object]) -> list[str]:
    return [name for name, value in values.items() if getattr(row, name) != value]


def upsert(
    db: Session,
    model,
    key: Mapping[str, object],
    values: Mapping[str, object],
    create_defaults: Mapping[str, object] | None = None,
):
    """Create or update the row identified by ``key``.

    Returns ``(row, created, changed_fields)``. Only attributes named in
    ``values`` are written on update, so locally owned columns survive.
    """
    query = db.query(model)
    for name, value in key.items():
        query = query.filter(getattr(model, name) == value)
    row = query.first()
    if row is None:
        row = model(**{**(create_defaults or {}), **key, **values})
        db.add(row)
        db.flush()
        return row, True, []
    changed = diff_fields(row, values)
    for name in changed:
        setattr(row, name, values[name])
    if changed:
        db.flush()
    return row, False, changed


def commit_batch(db: Session, context: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Commit failed for %s: %s", context, exc)
        raise PersistenceError(f"Commit failed for {context}: {exc}") from exc


class EntitySynchronizer(ABC):
    """Reconcile one entity class for one router at a time."""

    entity: SyncEntity
    record_schema: type[DeviceRecord]
    model: type
    # Maps engine-owned columns to the name reported in ``changed_fields``.
    field_labels: dict[str, str] = {}

    def __init__(
        self,
        db: Session,
        *,
        auto_create: bool = False,
        clock: Callable[[], datetime] | None = None,
    ):
        self.db = db
        self.auto_create = auto_create
        self.clock = clock or utcnow

    # -- hooks ---------------------------------------------------------------

    @abstractmethod
    def engine_fields(self, router, record, row=None) -> dict[str, object]:
        """Column values the device is authoritative for."""

    def prepare(self, router) -> None:
        """Load per-router lookups before records are applied."""

    def create_defaults(self, router, record) -> dict[str, object]:
        """Initial values for columns the device does not own."""
        return {}

    def after_apply(self, router, record, row, changed: list[str]) -> None:
        """Side effects after a row was created or updated."""

    def display_name(self, record) -> str | None:
        return getattr(record, "name", None)

    # -- parsing -------------------------------------------------------------

    def parse_records(
        self, router, raw_records: Iterable[object]
    ) -> tuple[list[DeviceRecord], list[SyncResult]]:
        records: list[DeviceRecord] = []
        errors: list[SyncResult] = []
        for raw in raw_records:
            if isinstance(raw, self.record_schema):
                records.append(raw)
                continue
            try:
                records.append(self.record_schema.model_validate(raw))
            except PydanticValidationError as exc:
                external_id = raw_external_id(raw)
                logger.warning(
                    "Invalid %s record %s on router %s: %s",
                    self.entity.value,
                    external_id,
                    router.name,
                    exc.errors(include_url=False),
                )
                errors.append(
                    self.result(
                        router,
                        SyncAction.error,
                        external_id=external_id,
                        error=f"invalid record: {exc.error_count()} validation error(s)",
                    )
                )
        return records, errors

    def find_record(self, router, raw_records: Iterable[object], external_id: str):
        """Parse only the record with ``external_id``; None when absent."""
        candidates = [raw for raw in raw_records if raw_external_id(raw) == external_id]
        records, errors = self.parse_records(router, candidates)
        if errors and not records:
            raise ValidationError(errors[-1].error or "invalid record", payload=external_id)
        return records[-1] if records else None

    # -- reconciliation ------------------------------------------------------

    def existing_rows(self, router) -> list:
        return self.db.query(self.model).filter(self.model.router_id == router.id).all()

    def sync_router(self, router, raw_records: Iterable[object]) -> list[SyncResult]:
        records, results = self.parse_records(router, raw_records)
        self.prepare(router)
        match = match_records(records, self.existing_rows(router))

        for record, row in match.matched.values():
            results.append(self._guarded(router, record, partial(self.reconcile, router, record, row)))

        for record in match.missing_in_db:
            if self.auto_create:
                results.append(self._guarded(router, record, partial(self.create, router, record)))
            else:
                logger.info(
                    "%s %s (%s) on router %s has no local row",
                    self.entity.value,
                    record.external_id,
                    self.display_name(record),
                    router.name,
                )
                results.append(
                    self.result(
                        router,
                        SyncAction.missing_in_db,
                        external_id=record.external_id,
                        name=self.display_name(record),
                    )
                )

        for row in match.missing_in_device:
            logger.warning(
                "%s %s (%s) no longer reported by router %s",
                self.entity.value,
                row.external_id,
                self.row_name(row),
                router.name,
            )
            results.append(
                self.result(
                    router,
                    SyncAction.missing_in_router,
                    external_id=row.external_id,
                    name=self.row_name(row),
                    record_id=row.id,
                )
            )

        commit_batch(self.db, f"{self.entity.value} on router {router.name}")
        return results

    def sync_single(self, router, record, row) -> SyncResult:
        self.prepare(router)
        result = self._guarded(router, record, partial(self.reconcile, router, record, row))
        commit_batch(self.db, f"{self.entity.value} {record.external_id}")
        return result

    def reconcile(self, router, record, row) -> SyncResult:
        values = self.engine_fields(router, record, row)
        changed = diff_fields(row, values)
        for name in changed:
            setattr(row, name, values[name])
        row.last_synced_at = self.clock()
        self.after_apply(router, record, row, changed)
        self.db.flush()
        if changed:
            return self.result(
                router,
                SyncAction.updated,
                external_id=record.external_id,
                name=self.display_name(record),
                record_id=row.id,
                changed_fields=self.labels(changed),
            )
        return self.result(
            router,
            SyncAction.verified,
            external_id=record.external_id,
            name=self.display_name(record),
            record_id=row.id,
        )

    def create(self, router, record) -> SyncResult:
        values = self.engine_fields(router, record)
        row, created, changed = upsert(
            self.db,
            self.model,
            {"router_id": router.id, "external_id": record.external_id},
            values,
            self.create_defaults(router, record),
        )
        row.last_synced_at = self.clock()
        # A new row counts every engine-owned field as changed for side effects
        self.after_apply(router, record, row, list(values) if created else changed)
        self.db.flush()
        return self.result(
            router,
            SyncAction.created if created else SyncAction.updated,
            external_id=record.external_id,
            name=self.display_name(record),
            record_id=row.id,
            changed_fields=self.labels(changed),
        )

    # -- helpers -------------------------------------------------------------

    def _guarded(self, router, record, apply: Callable[[], SyncResult]) -> SyncResult:
        try:
            with self.db.begin_nested():
                return apply()
        except SQLAlchemyError as exc:
            if is_store_failure(exc):
                raise PersistenceError(
                    f"Store unavailable while syncing {self.entity.value} "
                    f"{record.external_id} on {router.name}: {exc}"
                ) from exc
            logger.error(
                "Failed to apply %s %s on router %s: %s",
                self.entity.value,
                record.external_id,
                router.name,
                exc,
            )
            return self.result(
                router,
                SyncAction.error,
                external_id=record.external_id,
                name=self.display_name(record),
                error=str(exc.orig) if getattr(exc, "orig", None) is not None else str(exc),
            )

    def labels(self, changed: list[str]) -> list[str]:
        labels: list[str] = []
        for name in changed:
            label = self.field_labels.get(name, name)
            if label not in labels:
                labels.append(label)
        return labels

    def row_name(self, row) -> str | None:
        return getattr(row, "name", None)

    def result(self, router, action: SyncAction, **kwargs) -> SyncResult:
        record_id = kwargs.pop("record_id", None)
        return SyncResult(
            entity=self.entity,
            action=action,
            router_id=str(router.id),
            record_id=str(record_id) if record_id is not None else None,
            **kwargs,
        )

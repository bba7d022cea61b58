"""Persistent per-class reconciliation cursors.

Stored as one JSON document in ``router_sync_state``::

    {"cursors": {"pools": "2024-05-01T10:00:00+00:00", "users": null, ...},
     "intervals": {"profiles": 6}}

``intervals`` holds operator overrides (hours) that take precedence over the
configured defaults.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from routersync.models.sync_state import SyncState
from routersync.services.common import ensure_utc
from routersync.services.router_sync.errors import ConfigError
from routersync.services.router_sync.results import SyncEntity

logger = logging.getLogger(__name__)

CURSOR_DOCUMENT_KEY = "router_sync_cursors"

# Key names written by earlier deployments
_LEGACY_KEYS = {
    "ipPools": SyncEntity.pools,
    "poolIPs": SyncEntity.addresses,
    "pppoeProfiles": SyncEntity.profiles,
    "pppoeUsers": SyncEntity.users,
}


def _entity_for(key: str) -> SyncEntity | None:
    if key in _LEGACY_KEYS:
        return _LEGACY_KEYS[key]
    try:
        return SyncEntity(key)
    except ValueError:
        return None


@dataclass
class SyncCursors:
    last_synced: dict[SyncEntity, datetime | None] = field(default_factory=dict)
    intervals: dict[SyncEntity, float] = field(default_factory=dict)

    def to_document(self) -> dict[str, dict]:
        return {
            "cursors": {
                entity.value: (value.isoformat() if value else None)
                for entity, value in self.last_synced.items()
            },
            "intervals": {entity.value: hours for entity, hours in self.intervals.items()},
        }

    @classmethod
    def from_document(cls, document: object) -> "SyncCursors":
        if document is None:
            return cls()
        if not isinstance(document, dict):
            raise ConfigError("Cursor document must be an object")
        cursors = cls()
        raw_cursors = document.get("cursors") or {}
        raw_intervals = document.get("intervals") or {}
        if not isinstance(raw_cursors, dict) or not isinstance(raw_intervals, dict):
            raise ConfigError("Cursor document sections must be objects")
        for key, value in raw_cursors.items():
            entity = _entity_for(key)
            if entity is None:
                logger.warning("Ignoring unknown cursor key %s", key)
                continue
            if value is None:
                cursors.last_synced[entity] = None
                continue
            try:
                cursors.last_synced[entity] = ensure_utc(datetime.fromisoformat(str(value)))
            except ValueError as exc:
                raise ConfigError(f"Malformed cursor for {key}: {value!r}") from exc
        for key, value in raw_intervals.items():
            entity = _entity_for(key)
            if entity is None:
                logger.warning("Ignoring unknown interval key %s", key)
                continue
            try:
                hours = float(value)
            except (TypeError, ValueError) as exc:
                raise ConfigError(f"Malformed interval for {key}: {value!r}") from exc
            if not math.isfinite(hours) or hours < 0:
                raise ConfigError(f"Interval for {key} must be a finite number >= 0 hours")
            cursors.intervals[entity] = hours
        return cursors


class SyncCursorStore:
    def __init__(self, db: Session, key: str = CURSOR_DOCUMENT_KEY):
        self.db = db
        self.key = key

    def _row(self) -> SyncState | None:
        return self.db.query(SyncState).filter(SyncState.key == self.key).first()

    def load(self) -> SyncCursors:
        try:
            row = self._row()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise ConfigError(f"Cannot read cursor document {self.key}: {exc}") from exc
        return SyncCursors.from_document(row.value_json if row else None)

    def save(self, cursors: SyncCursors) -> None:
        try:
            row = self._row()
            if row is None:
                row = SyncState(key=self.key)
                self.db.add(row)
            row.value_json = cursors.to_document()
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise ConfigError(f"Cannot write cursor document {self.key}: {exc}") from exc

    def advance(self, entity: SyncEntity, when: datetime) -> None:
        cursors = self.load()
        cursors.last_synced[entity] = when
        self.save(cursors)
        logger.info("Advanced %s cursor to %s", entity.value, when.isoformat())

    def reset(self, entities: list[SyncEntity] | None = None) -> SyncCursors:
        cursors = self.load()
        for entity in entities or list(SyncEntity):
            cursors.last_synced[entity] = None
        self.save(cursors)
        return cursors

    def set_interval(self, entity: SyncEntity, hours: float) -> SyncCursors:
        hours = float(hours)
        if not math.isfinite(hours) or hours < 0:
            raise ConfigError("Interval must be a finite number >= 0 hours")
        cursors = self.load()
        cursors.intervals[entity] = hours
        self.save(cursors)
        return cursors

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime


class SyncEntity(enum.Enum):
    pools = "pools"
    addresses = "addresses"
    profiles = "profiles"
    users = "users"


# Execution order of a full pass. The orphan sweep runs at the end of the
# users pass, so device address state is applied after it.
SYNC_ORDER = (
    SyncEntity.pools,
    SyncEntity.profiles,
    SyncEntity.users,
    SyncEntity.addresses,
)


class SyncAction(enum.Enum):
    created = "created"
    updated = "updated"
    verified = "verified"
    missing_in_db = "missing_in_db"
    missing_in_router = "missing_in_router"
    error = "error"


class ClassRunStatus(enum.Enum):
    completed = "completed"
    skipped = "skipped"
    failed = "failed"
    cancelled = "cancelled"


@dataclass
class AddressSyncStats:
    created: int = 0
    updated: int = 0
    freed: int = 0
    blocked: int = 0
    used: int = 0
    available: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.created or self.updated or self.freed or self.blocked)

    def to_dict(self) -> dict[str, int]:
        return {
            "created": self.created,
            "updated": self.updated,
            "freed": self.freed,
            "blocked": self.blocked,
            "used": self.used,
            "available": self.available,
        }


@dataclass
class SyncResult:
    entity: SyncEntity
    action: SyncAction
    router_id: str | None = None
    external_id: str | None = None
    name: str | None = None
    record_id: str | None = None
    changed_fields: list[str] = field(default_factory=list)
    error: str | None = None
    stats: AddressSyncStats | None = None

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "entity": self.entity.value,
            "action": self.action.value,
            "router_id": self.router_id,
            "external_id": self.external_id,
            "name": self.name,
            "record_id": self.record_id,
        }
        if self.changed_fields:
            data["changed_fields"] = list(self.changed_fields)
        if self.error:
            data["error"] = self.error
        if self.stats is not None:
            data["stats"] = self.stats.to_dict()
        return data


def summarize(results: list[SyncResult]) -> dict[str, int]:
    summary = {
        "total": len(results),
        "created": 0,
        "updated": 0,
        "verified": 0,
        "missing_in_db": 0,
        "missing_in_router": 0,
        "errors": 0,
    }
    routers: set[str] = set()
    for result in results:
        if result.router_id:
            routers.add(result.router_id)
        if result.action == SyncAction.error:
            summary["errors"] += 1
        else:
            summary[result.action.value] += 1
    summary["routers_processed"] = len(routers)
    return summary


@dataclass
class ClassRunReport:
    entity: SyncEntity
    status: ClassRunStatus
    started_at: datetime | None = None
    finished_at: datetime | None = None
    results: list[SyncResult] = field(default_factory=list)
    router_errors: dict[str, str] = field(default_factory=dict)
    error: str | None = None
    orphans_freed: int | None = None

    @property
    def summary(self) -> dict[str, int]:
        return summarize(self.results)

    def to_dict(self) -> dict[str, object]:
        return {
            "entity": self.entity.value,
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "summary": self.summary,
            "router_errors": dict(self.router_errors),
            "error": self.error,
            "orphans_freed": self.orphans_freed,
            "results": [result.to_dict() for result in self.results],
        }


@dataclass
class RunSummary:
    started_at: datetime
    finished_at: datetime | None = None
    classes: dict[SyncEntity, ClassRunReport] = field(default_factory=dict)
    orphans_freed: int | None = None

    def report(self, entity: SyncEntity) -> ClassRunReport | None:
        return self.classes.get(entity)

    def to_dict(self) -> dict[str, object]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "classes": {
                entity.value: report.to_dict() for entity, report in self.classes.items()
            },
            "orphans_freed": self.orphans_freed,
        }

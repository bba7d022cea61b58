from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from routersync.models.network import IpAddress, IpAddressStatus
from routersync.models.pppoe import PPPoEUser
from routersync.services.router_sync.base import commit_batch
from routersync.services.router_sync.errors import PersistenceError

logger = logging.getLogger(__name__)


def find_orphans(db: Session) -> list[IpAddress]:
    """Assigned addresses with no PPPoE user, or whose user row is gone."""
    return (
        db.query(IpAddress)
        .outerjoin(PPPoEUser, IpAddress.pppoe_user_id == PPPoEUser.id)
        .filter(IpAddress.status == IpAddressStatus.assigned)
        .filter(PPPoEUser.id.is_(None))
        .all()
    )


def reclaim_orphans(db: Session) -> dict[str, int]:
    try:
        orphans = find_orphans(db)
        for address in orphans:
            logger.info("Freeing orphaned address %s (pool %s)", address.address, address.pool_id)
            address.release()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError(f"Orphan reclaim failed: {exc}") from exc
    commit_batch(db, "orphaned address reclaim")
    if orphans:
        logger.info("Freed %s orphaned addresses", len(orphans))
    return {"freed": len(orphans)}

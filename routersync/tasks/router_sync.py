import logging
import time

from routersync.celery_app import celery_app
from routersync.db import SessionLocal
from routersync.metrics import observe_job
from routersync.services.routeros import RouterOsDeviceClient
from routersync.services.router_sync.results import SyncEntity
from routersync.services.router_sync.scheduler import ReconciliationScheduler

logger = logging.getLogger(__name__)


@celery_app.task(name="routersync.tasks.router_sync.run_router_reconciliation")
def run_router_reconciliation():
    start = time.monotonic()
    status = "success"
    session = SessionLocal()
    client = RouterOsDeviceClient()
    try:
        summary = ReconciliationScheduler(session, client).run_full_reconciliation()
        for entity, report in summary.classes.items():
            logger.info(
                "Router sync %s status=%s summary=%s",
                entity.value,
                report.status.value,
                report.summary,
            )
        if summary.orphans_freed is not None:
            logger.info("Router sync freed %s orphaned addresses", summary.orphans_freed)
        return {
            entity.value: report.status.value for entity, report in summary.classes.items()
        }
    except Exception:
        status = "error"
        session.rollback()
        logger.exception("Router reconciliation failed.")
        raise
    finally:
        client.close()
        session.close()
        duration = time.monotonic() - start
        observe_job("router_reconciliation", status, duration)


@celery_app.task(name="routersync.tasks.router_sync.sync_entity_class")
def sync_entity_class(entity: str):
    start = time.monotonic()
    status = "success"
    session = SessionLocal()
    client = RouterOsDeviceClient()
    try:
        report = ReconciliationScheduler(session, client).run_entity_class(SyncEntity(entity))
        logger.info(
            "Router sync %s status=%s summary=%s",
            entity,
            report.status.value,
            report.summary,
        )
        if report.orphans_freed is not None:
            logger.info("Router sync freed %s orphaned addresses", report.orphans_freed)
        return report.summary
    except Exception:
        status = "error"
        session.rollback()
        logger.exception("Router sync of %s failed.", entity)
        raise
    finally:
        client.close()
        session.close()
        duration = time.monotonic() - start
        observe_job(f"router_sync_{entity}", status, duration)


@celery_app.task(name="routersync.tasks.router_sync.reclaim_orphaned_addresses")
def reclaim_orphaned_addresses():
    start = time.monotonic()
    status = "success"
    session = SessionLocal()
    client = RouterOsDeviceClient()
    try:
        return ReconciliationScheduler(session, client).reclaim_orphans()
    except Exception:
        status = "error"
        session.rollback()
        logger.exception("Orphaned address reclaim failed.")
        raise
    finally:
        client.close()
        session.close()
        duration = time.monotonic() - start
        observe_job("router_orphan_reclaim", status, duration)

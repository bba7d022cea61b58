"""Operator commands for router reconciliation.

Usage:
    # Run every due entity class (pools, addresses, profiles, users)
    python scripts/router_sync.py run

    # Force one class regardless of its interval
    python scripts/router_sync.py run --class profiles

    # Show cursors, intervals and overdue flags
    python scripts/router_sync.py status

    # Clear cursors so the next run syncs everything
    python scripts/router_sync.py reset [--class users]

    # Override an interval (hours) in the cursor document
    python scripts/router_sync.py interval users 24

    # Manual syncs; these never move the cursors
    python scripts/router_sync.py router <router-id> --class pools
    python scripts/router_sync.py pool <pool-id>
    python scripts/router_sync.py user <pppoe-user-or-subscriber-id>
    python scripts/router_sync.py reclaim
"""

import argparse
import json
import sys

from dotenv import load_dotenv

from routersync.db import SessionLocal
from routersync.logging import configure_logging
from routersync.services.routeros import RouterOsDeviceClient
from routersync.services.router_sync.errors import RouterSyncError
from routersync.services.router_sync.results import SyncEntity
from routersync.services.router_sync.scheduler import ReconciliationScheduler

ENTITY_CHOICES = [entity.value for entity in SyncEntity]


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Reconcile router state into the database.")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Run due classes, or one class with --class")
    run.add_argument("--class", dest="entity", choices=ENTITY_CHOICES)

    subparsers.add_parser("status", help="Show per-class sync status")

    reset = subparsers.add_parser("reset", help="Clear sync cursors")
    reset.add_argument("--class", dest="entity", choices=ENTITY_CHOICES)

    interval = subparsers.add_parser("interval", help="Override a class interval")
    interval.add_argument("entity", choices=ENTITY_CHOICES)
    interval.add_argument("hours", type=float)

    router = subparsers.add_parser("router", help="Sync one router")
    router.add_argument("router_id")
    router.add_argument("--class", dest="entity", choices=ENTITY_CHOICES, required=True)

    pool = subparsers.add_parser("pool", help="Sync the addresses of one pool")
    pool.add_argument("pool_id")

    user = subparsers.add_parser("user", help="Sync one PPPoE user")
    user.add_argument("user_id", help="PPPoE user id or subscriber id")

    subparsers.add_parser("reclaim", help="Free addresses whose owner is gone")
    return parser.parse_args(argv)


def _dispatch(scheduler: ReconciliationScheduler, args) -> object:
    if args.command == "run":
        if args.entity:
            return scheduler.run_entity_class(SyncEntity(args.entity)).to_dict()
        return scheduler.run_full_reconciliation().to_dict()
    if args.command == "status":
        return scheduler.sync_status()
    if args.command == "reset":
        scheduler.reset_cursors([SyncEntity(args.entity)] if args.entity else None)
        return scheduler.sync_status()
    if args.command == "interval":
        scheduler.set_interval(SyncEntity(args.entity), args.hours)
        return scheduler.sync_status()
    if args.command == "router":
        results = scheduler.sync_one_router(args.router_id, SyncEntity(args.entity))
        return [result.to_dict() for result in results]
    if args.command == "pool":
        return scheduler.sync_one_pool(args.pool_id).to_dict()
    if args.command == "user":
        return scheduler.sync_one_user(args.user_id).to_dict()
    return scheduler.reclaim_orphans()


def main(argv=None):
    load_dotenv()
    args = parse_args(argv)
    configure_logging(args.log_level)

    db = SessionLocal()
    client = RouterOsDeviceClient()
    try:
        output = _dispatch(ReconciliationScheduler(db, client), args)
        print(json.dumps(output, indent=2, default=str))
    except RouterSyncError as exc:
        db.rollback()
        print(f"ERROR: {exc}")
        sys.exit(1)
    finally:
        client.close()
        db.close()


if __name__ == "__main__":
    main()

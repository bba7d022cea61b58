"""Encrypt plaintext router API passwords at rest.

Usage:
    # Dry run (show what would be changed)
    python scripts/encrypt_router_credentials.py --dry-run

    # Execute encryption
    python scripts/encrypt_router_credentials.py --execute

Requirements:
    - Set CREDENTIAL_ENCRYPTION_KEY before running
"""

import argparse
import sys

from dotenv import load_dotenv

from routersync.db import SessionLocal
from routersync.models.network import Router
from routersync.services.router_credentials import ENCRYPTED, RouterCredentials


def parse_args():
    parser = argparse.ArgumentParser(description="Encrypt router API passwords.")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be encrypted without making changes",
    )
    group.add_argument(
        "--execute",
        action="store_true",
        help="Actually encrypt credentials in the database",
    )
    return parser.parse_args()


def main():
    load_dotenv()
    args = parse_args()

    credentials = RouterCredentials.from_settings()
    if not credentials.can_encrypt:
        print("ERROR: CREDENTIAL_ENCRYPTION_KEY is not configured.")
        print()
        print("A freshly generated key you can use:")
        print(f"  CREDENTIAL_ENCRYPTION_KEY={RouterCredentials.generate_key()}")
        sys.exit(1)

    db = SessionLocal()
    try:
        routers = db.query(Router).order_by(Router.name).all()
        print(f"Found {len(routers)} routers")
        pending = 0
        for router in routers:
            if not router.api_password:
                continue
            if credentials.scheme(router.api_password) == ENCRYPTED:
                continue
            pending += 1
            if args.execute:
                router.api_password = credentials.seal(credentials.reveal(router.api_password))
                print(f"Router '{router.name}' (ID: {router.id}): encrypted")
            else:
                print(f"[DRY RUN] Router '{router.name}' (ID: {router.id}): would be encrypted")
        if args.execute:
            db.commit()
        print()
        print(f"Passwords {'would be ' if args.dry_run else ''}encrypted: {pending}")
        if args.dry_run and pending:
            print("To apply these changes, run with --execute flag")
    finally:
        db.close()


if __name__ == "__main__":
    main()

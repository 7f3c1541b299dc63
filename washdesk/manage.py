"""Maintenance commands: ``washdesk setup-db`` and ``washdesk make-admin EMAIL``."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .config import DB_NAME, MONGO_URI
from .db import Store, StoreError
from .logging_utils import setup_logging

logger = logging.getLogger(__name__)


async def setup_db(store: Store) -> int:
    created = await store.ensure_schema()
    for name in created:
        print(f"Created collection: {name}")
    seeded = await store.seed_services()
    if seeded:
        print(f"Seeded {seeded} services")
    else:
        print("Services already present, skipping seed")
    print(f"Database {DB_NAME} is ready")
    return 0


async def make_admin(store: Store, email: str) -> int:
    matched, modified = await store.set_role_by_email(email, "admin")
    if not matched:
        print(f'User with email "{email}" not found.')
        return 1
    if modified:
        print(f"Successfully updated {email} to admin role!")
        return 0
    print("User was already an admin.")
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="washdesk", description="Washdesk maintenance commands")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("setup-db", help="create collections and indexes, seed the service catalog")
    admin = sub.add_parser("make-admin", help="grant the admin role to a registered user")
    admin.add_argument("email")
    return parser


async def _run(args: argparse.Namespace) -> int:
    store = Store(MONGO_URI, DB_NAME)
    try:
        if args.command == "setup-db":
            return await setup_db(store)
        return await make_admin(store, args.email)
    finally:
        store.close()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()
    try:
        return asyncio.run(_run(args))
    except StoreError as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())

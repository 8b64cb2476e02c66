#!/usr/bin/env python3
"""Seed the permission catalog.

Inserts every required permission key that is missing; existing rows are
left untouched, so the script is safe to run on every deploy.

Usage:
    python scripts/init_permissions.py           # seed missing keys
    python scripts/init_permissions.py --list    # show the catalog only

Reads DATABASE_URL / JWT_SECRET from the environment or .env.
"""

import argparse
import asyncio
import logging

from leave_portal.database import async_session_factory, engine
from leave_portal.permissions.repository import PermissionRepository
from leave_portal.permissions.service import PermissionService

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger("init_permissions")


async def seed() -> None:
    async with async_session_factory() as session:
        try:
            result = await PermissionService.initialize_required_permissions(session)
            await session.commit()
        except Exception:
            await session.rollback()
            raise

    print(f"\n  Created:  {len(result.created)}")
    for key in result.created:
        print(f"    + {key}")
    print(f"  Existing: {result.existing}\n")


async def show_catalog() -> None:
    async with async_session_factory() as session:
        permissions = await PermissionRepository(session).list_active_permissions()

    print(f"\n  {'Key':<28} {'Category':<16} Name")
    print("  " + "─" * 64)
    for p in permissions:
        print(f"  {p.permission_key:<28} {p.category:<16} {p.permission_name}")
    print()


async def run(args: argparse.Namespace) -> None:
    try:
        if args.list:
            await show_catalog()
        else:
            await seed()
    finally:
        await engine.dispose()


def main():
    parser = argparse.ArgumentParser(description="Seed the permission catalog")
    parser.add_argument("--list", action="store_true",
                        help="Only list active permissions")
    args = parser.parse_args()

    logger.info("Connecting to database")
    asyncio.run(run(args))


if __name__ == "__main__":
    main()

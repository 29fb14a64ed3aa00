"""
SchoolSite administration CLI

Usage:
    schoolsite-admin init-db                        # Create missing tables
    schoolsite-admin provision-admin EMAIL          # Promote the first admin
    schoolsite-admin sweep-orphans                  # Delete unreferenced images
    schoolsite-admin sweep-orphans --grace-minutes 0
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from rich.console import Console
from rich.table import Table

from schoolsite.core.database import init_db, close_db, get_session_local
from schoolsite.core.exceptions import SchoolSiteError
from schoolsite.services.admin_service import provision_admin
from schoolsite.services.maintenance_service import sweep_orphans
from schoolsite.services.storage_service import get_object_storage

console = Console()


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI"""
    parser = argparse.ArgumentParser(
        prog="schoolsite-admin",
        description="SchoolSite backend administration",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create database tables that do not exist yet")

    provision = subparsers.add_parser(
        "provision-admin",
        help="Promote an existing user to admin while no admin exists",
    )
    provision.add_argument("email", help="Email of a user who has already signed up")

    sweep = subparsers.add_parser("sweep-orphans", help="Delete stored images no record references")
    sweep.add_argument(
        "--grace-minutes",
        type=int,
        default=None,
        help="Only delete images older than this (default: ORPHAN_GRACE_MINUTES)",
    )
    return parser


async def _init_db() -> int:
    await init_db()
    console.print("[green]✓[/green] Database tables ready")
    return 0


async def _provision_admin(email: str) -> int:
    await init_db()
    session_factory = get_session_local()
    async with session_factory() as db:
        user = await provision_admin(db, email)
    console.print(f"[green]✓[/green] {user.email} is now an admin")
    return 0


async def _sweep_orphans(grace_minutes: Optional[int]) -> int:
    session_factory = get_session_local()
    async with session_factory() as db:
        deleted = await sweep_orphans(db, get_object_storage(), grace_minutes=grace_minutes)

    if not deleted:
        console.print("No orphaned images found")
        return 0

    table = Table(title="Deleted images")
    table.add_column("Storage ID", style="cyan")
    for storage_id in deleted:
        table.add_row(storage_id)
    console.print(table)
    return 0


async def run(args: argparse.Namespace) -> int:
    try:
        if args.command == "init-db":
            return await _init_db()
        if args.command == "provision-admin":
            return await _provision_admin(args.email)
        if args.command == "sweep-orphans":
            return await _sweep_orphans(args.grace_minutes)
        return 2
    except SchoolSiteError as e:
        console.print(f"[red]✗[/red] {e.message}")
        return 1
    finally:
        await close_db()


def main(argv: Optional[List[str]] = None) -> int:
    args = create_parser().parse_args(argv)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())

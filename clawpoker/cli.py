#!/usr/bin/env python3
"""CLI for table administration and one-shot background passes."""
import asyncio
import sys
from typing import Awaitable, Callable

from clawpoker.game.errors import GameError
from clawpoker.jobs import autostart_hands, recover_tables, sweep_timeouts
from clawpoker.service import GameService
from clawpoker.state.game_store import RedisGameStore
from clawpoker.state.redis_client import redis_client


async def with_service(command: Callable[[GameService], Awaitable[None]]) -> None:
    """Run a command against the live Redis store."""
    await redis_client.connect()
    try:
        await command(GameService(RedisGameStore()))
    finally:
        await redis_client.disconnect()


async def setup_tables(service: GameService):
    """Create the default tables if none exist."""
    created = await service.setup_default_tables()
    if not created:
        print("Tables already exist, nothing to do.")
        return
    for table in created:
        print(f"Created {table.name} ({table.small_blind}/{table.big_blind}) id={table.table_id}")


async def list_tables(service: GameService):
    """List all tables."""
    tables = await service.store.list_tables()
    if not tables:
        print("No tables found.")
        return

    print(f"\n{'Name':<16} {'Blinds':<9} {'Buy-in':<12} {'Seats':<6} {'Status':<14} {'ID'}")
    print("-" * 96)
    for t in tables:
        seated = f"{len(t.occupied())}/{t.max_seats}"
        status = "ON HOLD" if t.hold_reason else t.status.value
        print(
            f"{t.name:<16} {t.small_blind}/{t.big_blind:<7} "
            f"{t.min_buy_in}-{t.max_buy_in:<8} {seated:<6} {status:<14} {t.table_id}"
        )
        if t.hold_reason:
            print(f"    hold: {t.hold_reason}")
    print(f"\nTotal: {len(tables)} tables")


async def create_table(service: GameService, args: list[str]):
    """Create a table from positional arguments."""
    name = args[0]
    small_blind, big_blind, min_buy_in, max_buy_in = (int(a) for a in args[1:5])
    max_seats = int(args[5]) if len(args) > 5 else 6
    table = await service.create_table(name, small_blind, big_blind, min_buy_in, max_buy_in, max_seats)
    print(f"Success: created {table.name} id={table.table_id}")


async def run_sweep(service: GameService):
    result = await sweep_timeouts(service)
    print(f"Forced {result['forced']} actions, removed {result['removed']} idle seats.")


async def run_autostart(service: GameService):
    result = await autostart_hands(service)
    print(f"Started {len(result['started'])} hands.")


async def run_recover(service: GameService):
    result = await recover_tables(service)
    if not result["repaired"]:
        print("All tables consistent.")
    for table_id, note in result["repaired"].items():
        print(f"{table_id}: {note}")


async def release_hold(service: GameService, table_id: str):
    table = await service.release_hold(table_id)
    print(f"Success: table {table.name} released, status {table.status.value}.")


def print_usage():
    """Print usage information."""
    print("""
ClawPoker CLI

Usage:
  python -m clawpoker.cli <command> [args]

Commands:
  setup-tables                                   Create the default tables
  list-tables                                    List tables and their status
  create-table <name> <sb> <bb> <min> <max> [seats]
                                                 Create a table
  sweep                                          Run one timeout sweep
  autostart                                      Run one autostart pass
  recover                                        Run one integrity pass
  release-hold <table_id>                        Let a held table deal again

Examples:
  python -m clawpoker.cli setup-tables
  python -m clawpoker.cli create-table "Deep Stack" 2 4 200 800 6
""")


def main():
    """Main CLI entry point."""
    if len(sys.argv) < 2:
        print_usage()
        sys.exit(1)

    command = sys.argv[1].lower()
    args = sys.argv[2:]

    try:
        if command == "setup-tables":
            asyncio.run(with_service(setup_tables))

        elif command == "list-tables":
            asyncio.run(with_service(list_tables))

        elif command == "create-table":
            if len(args) < 5:
                print("Error: name, blinds and buy-in range required.")
                print("Usage: python -m clawpoker.cli create-table <name> <sb> <bb> <min> <max> [seats]")
                sys.exit(1)
            asyncio.run(with_service(lambda service: create_table(service, args)))

        elif command == "sweep":
            asyncio.run(with_service(run_sweep))

        elif command == "autostart":
            asyncio.run(with_service(run_autostart))

        elif command == "recover":
            asyncio.run(with_service(run_recover))

        elif command == "release-hold":
            if not args:
                print("Error: Table ID required.")
                print("Usage: python -m clawpoker.cli release-hold <table_id>")
                sys.exit(1)
            asyncio.run(with_service(lambda service: release_hold(service, args[0])))

        elif command in ("help", "-h", "--help"):
            print_usage()

        else:
            print(f"Unknown command: {command}")
            print_usage()
            sys.exit(1)

    except GameError as e:
        print(f"Error: {e.message}")
        sys.exit(1)


if __name__ == "__main__":
    main()

"""Command-line runner for the FieldSync replica."""
from __future__ import annotations

import argparse
import asyncio
import sys
from typing import List, Optional

from core.errors import NotConnected, SyncError
from core.logs import get_sync_logger
from core.settings import REMOTE, SYNC, DB_PATH
from services.connectivity import ConnectivityMonitor
from services.entity_repository import build_repositories
from services.sync_orchestrator import SyncOrchestrator
from services.sync_state_storage import SyncStateStorage
from storage.db import init_db
from storage.local_store import LocalStore

COMMANDS = ("full", "launch", "refresh", "flush", "watch", "status", "project-tasks", "client")


def build_orchestrator(args: argparse.Namespace) -> SyncOrchestrator:
    init_db()
    repositories = build_repositories(args.backend)
    connectivity = ConnectivityMonitor(connected=not args.offline, probe_url=REMOTE.base_url)
    orchestrator = SyncOrchestrator(
        repositories,
        store=LocalStore(),
        connectivity=connectivity,
        state=SyncStateStorage(SYNC.state_path),
    )
    if args.company or args.user:
        orchestrator.set_scope(
            company_id=args.company or orchestrator.company_id,
            user_id=args.user or orchestrator.user_id,
        )
    return orchestrator


def _print_status(orchestrator: SyncOrchestrator) -> None:
    status = orchestrator.status.current
    state = orchestrator.state
    print(f"Database:       {DB_PATH}")
    print(f"Company / user: {orchestrator.company_id or '-'} / {orchestrator.user_id or '-'}")
    print(f"Last full sync: {state.get_last_full_sync() or 'never'}")
    print(f"Last sync:      {state.last_successful_sync() or 'never'}")
    print(f"Pending edits:  {orchestrator.store.count_pending()}")
    print(f"State:          {status.state} ({status.status_text})")


async def run(args: argparse.Namespace) -> int:
    orchestrator = build_orchestrator(args)
    try:
        return await _dispatch(orchestrator, args)
    finally:
        clients = {getattr(repo, "client", None) for repo in orchestrator.repositories.values()}
        for client in clients - {None}:
            await client.aclose()


async def _dispatch(orchestrator: SyncOrchestrator, args: argparse.Namespace) -> int:
    logger = get_sync_logger("fieldsync.cli")
    orchestrator.status.subscribe(
        lambda status: logger.debug("%.0f%% %s", status.progress * 100, status.status_text)
    )

    command = args.command
    if not args.offline and args.backend == "rest":
        await orchestrator.connectivity.probe()
    if command == "status":
        _print_status(orchestrator)
        return 0
    if command == "full":
        await orchestrator.manual_full_sync()
    elif command == "launch":
        await orchestrator.app_launch_sync()
        await orchestrator.wait_for_background()
    elif command == "refresh":
        await orchestrator.background_refresh()
    elif command == "flush":
        if not orchestrator.connectivity.is_connected:
            raise NotConnected()
        count = await orchestrator.queue.flush_all()
        print(f"Pushed {count} pending records.")
    elif command == "project-tasks":
        count = await orchestrator.sync_project_tasks(args.target)
        print(f"Pulled {count} tasks for project {args.target}.")
    elif command == "client":
        client = await orchestrator.refresh_single_client(args.target)
        print(f"Refreshed client {client.name if client else args.target}.")
    elif command == "watch":
        await orchestrator.run_periodic(asyncio.Event(), args.interval)
    print(orchestrator.status.current.status_text)
    return 0


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__ or "")
    parser.add_argument("command", choices=COMMANDS)
    parser.add_argument("target", nargs="?", help="Project or client id for scoped commands")
    parser.add_argument("--company", help="Company id to sync (remembered)")
    parser.add_argument("--user", help="Signed-in user id (remembered)")
    parser.add_argument(
        "--backend",
        choices=("rest", "memory"),
        default=REMOTE.backend,
        help="Remote backend (default: %(default)s)",
    )
    parser.add_argument("--offline", action="store_true", help="Start with the network marked unreachable")
    parser.add_argument(
        "--interval",
        type=float,
        default=SYNC.auto_refresh_interval_sec,
        help="Seconds between refreshes for 'watch' (default: %(default)s)",
    )
    args = parser.parse_args(argv)
    if args.command in {"project-tasks", "client"} and not args.target:
        parser.error(f"'{args.command}' needs a target id")
    return args


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        return asyncio.run(run(args))
    except SyncError as exc:
        get_sync_logger("fieldsync.cli").error("Command %s failed: %s", args.command, exc)
        print(f"Sync failed: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())

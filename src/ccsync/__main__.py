"""CLI entry point for ccsync.

Allows running as a module:
    python -m ccsync
"""

import asyncio
import json
import logging
import sys
import time
from dataclasses import asdict
from datetime import datetime

import click

from ccsync.config import Config, load_config
from ccsync.errors import SyncError
from ccsync.logging import setup_logging
from ccsync.sessions.reader import list_sessions
from ccsync.state.lock import LockManager
from ccsync.state.store import LOCK_FILENAME, StateStore
from ccsync.sync.coordinator import SyncCoordinator, SyncResult, SyncStatus
from ccsync.sync.publisher import TypesensePublisher


def format_time_ago(seconds: float) -> str:
    """Format an age in seconds as a short relative time."""
    if seconds < 0:
        return "unknown"

    seconds = int(seconds)
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if days >= 365:
        return f"{days // 365}y ago"
    if days >= 30:
        return f"{days // 30}mo ago"
    if days >= 7:
        return f"{days // 7}w ago"
    if days > 0:
        return f"{days}d ago"
    if hours > 0:
        return f"{hours}h ago"
    if minutes > 0:
        return f"{minutes}m ago"
    return f"{seconds}s ago"


def _age_seconds(timestamp: str) -> float:
    if timestamp.endswith("Z"):
        timestamp = timestamp[:-1] + "+00:00"
    try:
        return time.time() - datetime.fromisoformat(timestamp).timestamp()
    except ValueError:
        return -1


def build_store(config: Config) -> StateStore:
    state_dir = config.state.state_dir
    lock = LockManager(
        state_dir / LOCK_FILENAME,
        stale_after=config.state.stale_lock_seconds,
        max_attempts=config.state.lock_attempts,
    )
    return StateStore(state_dir, lock)


def build_coordinator(config: Config, dry_run: bool) -> SyncCoordinator:
    publisher = TypesensePublisher(config.typesense)
    if not dry_run:
        publisher.ensure_collections()
    return SyncCoordinator(config, build_store(config), publisher)


def print_result(result: SyncResult) -> None:
    if result.status == SyncStatus.APPLIED:
        total = result.created + result.updated
        click.echo(
            f"Synced {total} conversation{'' if total == 1 else 's'} "
            f"({result.created} new, {result.updated} updated): {result.session_id}"
        )
        click.echo(f"Records: {result.dump_path}")
    elif result.status == SyncStatus.FAILED:
        click.echo(f"Failed: {result.session_id}: {result.error}", err=True)
    elif result.actions:
        click.echo(f"Would apply {len(result.actions)} change(s): {result.session_id}")
    else:
        click.echo(f"Skipped: {result.session_id} ({result.reason})")


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Sync Claude Code conversations to a remote record store."""
    setup_logging("cli", level=logging.DEBUG if verbose else logging.INFO)
    ctx.obj = load_config()


@cli.command("ls")
@click.option("--project", help="Filter sessions by project path")
@click.pass_obj
def list_command(config: Config, project: str | None) -> None:
    """List available sessions."""
    sessions = list_sessions(config.claude_data_dir, project)
    if not sessions:
        click.echo("No sessions found")
        return

    for session in sessions:
        click.echo(
            f"\033[36m{session.session_id}\033[0m  {format_time_ago(_age_seconds(session.timestamp))}"
            f"  {session.message_count} msgs  {session.project_path}"
        )
        click.echo(f"    {session.description}")


@cli.command("sync")
@click.argument("session_id")
@click.option("--force", is_flag=True, help="Ignore the change fingerprint")
@click.option("--dry-run", is_flag=True, help="Show what would be published")
@click.pass_obj
def sync_command(config: Config, session_id: str, force: bool, dry_run: bool) -> None:
    """Sync one session."""
    try:
        coordinator = build_coordinator(config, dry_run)
        result = asyncio.run(coordinator.sync(session_id, force=force, dry_run=dry_run))
    except SyncError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Error syncing session: {e}", err=True)
        sys.exit(1)

    print_result(result)


@cli.command("sync-all")
@click.option("--project", help="Only sync sessions of this project path")
@click.option("--force", is_flag=True, help="Ignore the change fingerprints")
@click.option("--dry-run", is_flag=True, help="Show what would be published")
@click.pass_obj
def sync_all_command(config: Config, project: str | None, force: bool, dry_run: bool) -> None:
    """Sync every session."""
    try:
        coordinator = build_coordinator(config, dry_run)
    except Exception as e:
        click.echo(f"Error connecting to record store: {e}", err=True)
        sys.exit(1)

    results = asyncio.run(coordinator.sync_all(project, force=force, dry_run=dry_run))
    for result in results:
        if result.status != SyncStatus.SKIPPED or result.actions:
            print_result(result)

    if any(result.status == SyncStatus.FAILED for result in results):
        sys.exit(1)


@cli.command("config")
@click.pass_obj
def config_command(config: Config) -> None:
    """Show the loaded configuration."""
    data = asdict(config)
    data["typesense"]["api_key"] = "***configured***" if config.typesense.api_key else "not set"
    click.echo(json.dumps(data, indent=2, default=str))


@cli.group()
def state() -> None:
    """Inspect or reset the sync state."""


@state.command("show")
@click.argument("session_id", required=False)
@click.pass_obj
def state_show(config: Config, session_id: str | None) -> None:
    """Print the recorded state, or one session of it."""
    store = build_store(config)
    try:
        snapshot = asyncio.run(store.snapshot())
    except SyncError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if session_id is None:
        click.echo(json.dumps(snapshot.to_dict(), indent=2))
        return

    session = snapshot.sessions.get(session_id)
    if session is None:
        click.echo(f"Session {session_id} has no recorded state", err=True)
        sys.exit(1)
    click.echo(json.dumps(session.to_dict(), indent=2))


@state.command("reset")
@click.confirmation_option(prompt="Forget the sync state of every session?")
@click.pass_obj
def state_reset(config: Config) -> None:
    """Forget all recorded sync state."""
    try:
        asyncio.run(build_store(config).clear())
    except SyncError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo("Sync state cleared")


@state.command("remove")
@click.argument("session_id")
@click.pass_obj
def state_remove(config: Config, session_id: str) -> None:
    """Forget the recorded state of one session."""
    try:
        removed = asyncio.run(build_store(config).remove_session(session_id))
    except SyncError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if removed:
        click.echo(f"Removed state for {session_id}")
    else:
        click.echo(f"Session {session_id} has no recorded state")


@state.command("unlock")
@click.pass_obj
def state_unlock(config: Config) -> None:
    """Remove the state lock if it is stale."""
    if build_store(config).lock.clean_stale():
        click.echo("Removed stale lock")
    else:
        click.echo("No stale lock found")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()

"""
CLI subcommands for the offline input queue.

Usage:
    podlink queue list <session>
    podlink queue count [<session>]
    podlink queue clear [<session>] [--all]
"""

import asyncio
from typing import Optional

import typer

from podlink.config import CONFIG
from podlink.events import ErrorOccurred
from podlink.offline.models import ResizePayload
from podlink.offline.offline_queue import OfflineQueue

queue_app = typer.Typer(help="Inspect and clear the offline input queue")


def _run(action):
    """Run ``action(queue)`` against the configured store and exit 1 on errors."""
    errors: list[Exception] = []

    async def runner():
        queue = OfflineQueue(db_path=CONFIG.queue_db_path)
        queue.on(ErrorOccurred, lambda e: errors.append(e.error))
        try:
            return await action(queue)
        finally:
            queue.close()

    result = asyncio.run(runner())
    if errors:
        typer.echo(f"❌ {errors[0]}")
        raise typer.Exit(code=1)
    return result


@queue_app.command("list")
def queue_list(
    session: str = typer.Argument(help="Session name"),
):
    """List queued actions for a session, oldest first."""
    items = _run(lambda q: q.get_queue(session))

    if not items:
        typer.echo(f"No queued actions for '{session}'.")
        return

    typer.echo(f"📥 Queued actions for '{session}' ({len(items)}):\n")
    for item in items:
        if isinstance(item.payload, ResizePayload):
            detail = f"{item.payload.cols}x{item.payload.rows}"
        else:
            detail = repr(item.payload)
        typer.echo(f"  {item.timestamp}  {item.kind:<6}  {detail}")


@queue_app.command("count")
def queue_count(
    session: Optional[str] = typer.Argument(None, help="Session name (default: all)"),
):
    """Count queued actions."""
    if session:
        count = _run(lambda q: q.get_queue_count(session))
        typer.echo(f"{count} queued for '{session}'")
    else:
        count = _run(lambda q: q.get_total_count())
        typer.echo(f"{count} queued in total")


@queue_app.command("clear")
def queue_clear(
    session: Optional[str] = typer.Argument(None, help="Session name"),
    all_sessions: bool = typer.Option(
        False, "--all", help="Clear the queues of every session"
    ),
):
    """Discard queued actions without sending them."""
    if all_sessions:
        _run(lambda q: q.clear_all())
        typer.echo("✅ Cleared all queued actions.")
        return

    if not session:
        typer.echo("❌ Give a session name or --all.")
        raise typer.Exit(code=1)

    _run(lambda q: q.clear_queue(session))
    typer.echo(f"✅ Cleared queued actions for '{session}'.")

"""
Top-level CLI commands: attach.
"""

import asyncio
import shutil
import sys
import threading
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv

from podlink.client import TerminalClient
from podlink.config import CONFIG, PROJECT_DIR
from podlink.connection.manager import ConnectionManager
from podlink.connection.models import ExitMessage
from podlink.events import (
    Disconnected,
    MessageReceived,
    OutputReceived,
    QueueChanged,
    Reconnecting,
    StateChanged,
)
from podlink.logger import setup_logging
from podlink.offline.offline_queue import OfflineQueue
from podlink.platform import ConnectivityProbe, NetworkState


def load_environment():
    """Load ``.env`` files and refresh the configuration."""
    load_dotenv(PROJECT_DIR / ".env")
    load_dotenv(Path.cwd() / ".env")
    CONFIG.reload()


def configure_logging(verbose: bool = False):
    """Configure logging for the CLI."""
    log_level = "DEBUG" if verbose else CONFIG.log_level
    if not verbose and log_level.upper() == "INFO":
        # stdout carries terminal output; keep stderr quiet by default
        log_level = "WARNING"
    setup_logging(level=log_level, log_file=CONFIG.log_file)


def _start_stdin_reader(lines: asyncio.Queue) -> None:
    loop = asyncio.get_running_loop()

    def read():
        for line in sys.stdin:
            loop.call_soon_threadsafe(lines.put_nowait, line)
        loop.call_soon_threadsafe(lines.put_nowait, None)

    threading.Thread(target=read, name="podlink-stdin", daemon=True).start()


async def run_attach(session_name: str, server_url: str) -> int:
    """
    Attach to a session until stdin closes or the remote process exits.

    Returns:
        The remote exit code, or 0 when detaching.
    """
    network = NetworkState()
    probe = ConnectivityProbe(server_url, network)
    connection = ConnectionManager(server_url, CONFIG.connection, network=network)
    queue = OfflineQueue(db_path=CONFIG.queue_db_path)
    client = TerminalClient(connection, queue)

    lines: asyncio.Queue = asyncio.Queue()
    exit_code = 0

    def on_output(event: OutputReceived):
        sys.stdout.write(event.data)
        sys.stdout.flush()

    def on_message(event: MessageReceived):
        nonlocal exit_code
        if isinstance(event.message, ExitMessage):
            exit_code = event.message.code
            typer.echo(f"\n[session exited with code {exit_code}]", err=True)
            lines.put_nowait(None)

    connection.on(OutputReceived, on_output)
    connection.on(MessageReceived, on_message)
    connection.on(
        StateChanged, lambda e: typer.echo(f"[{e.state.value}]", err=True)
    )
    connection.on(
        Reconnecting,
        lambda e: typer.echo(
            f"[reconnecting {e.attempt}/{e.max_attempts} in {e.delay}ms]", err=True
        ),
    )
    connection.on(
        Disconnected,
        lambda e: typer.echo(f"[disconnected: {e.reason} ({e.code})]", err=True),
    )
    queue.on(
        QueueChanged,
        lambda e: typer.echo(f"[{e.count} input(s) queued]", err=True),
    )

    size = shutil.get_terminal_size()
    client.set_dimensions(size.columns, size.lines)

    probe.start()
    client.attach(session_name)
    _start_stdin_reader(lines)

    try:
        while True:
            line = await lines.get()
            if line is None:
                break
            await client.send_input(line.rstrip("\n") + "\r")
    finally:
        await probe.stop()
        await client.close()

    return exit_code


def register_commands(app: typer.Typer):
    """Register top-level commands on the main app."""

    @app.command()
    def attach(
        session: str = typer.Argument(help="Name of the session to attach to"),
        url: Optional[str] = typer.Option(
            None, "--url", "-u", help="Server location (default: PODLINK_SERVER_URL)"
        ),
    ):
        """Attach to a session: stdin lines go in, terminal output comes out."""
        try:
            code = asyncio.run(run_attach(session, url or CONFIG.server_url))
        except KeyboardInterrupt:
            typer.echo("\nDetached.", err=True)
            return
        if code:
            raise typer.Exit(code=code)

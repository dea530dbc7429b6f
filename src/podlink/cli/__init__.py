"""
podlink CLI.

This package splits CLI commands into focused modules:
- main:  attach (interactive session), logging and environment setup
- queue: list, count, clear (offline input queue)
"""

import typer

from podlink.cli.main import configure_logging, load_environment, register_commands
from podlink.cli.queue import queue_app

app = typer.Typer(help="podlink - resilient terminal session client")


@app.callback()
def main(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose logging (DEBUG level)"
    ),
):
    """
    podlink - resilient terminal session client.
    """
    load_environment()
    configure_logging(verbose)


register_commands(app)

app.add_typer(queue_app, name="queue")

if __name__ == "__main__":
    app()

"""Main Typer application: entry point for the ``loadburst`` CLI."""

from __future__ import annotations

import typer

from loadburst import __version__
from loadburst.cli.run import run_cmd

app = typer.Typer(
    name="loadburst",
    help="Fire N HTTP requests at C concurrency and report latency statistics.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.command("run", help="Send a batch of requests to a URL.")(run_cmd)


def _version_callback(value: bool) -> None:
    """Print version and exit.

    Args:
        value: True if --version was passed.
    """
    if value:
        typer.echo(f"loadburst {__version__}")
        raise typer.Exit


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """loadburst: HTTP load generation from the command line."""

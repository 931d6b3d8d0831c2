"""Main Typer application — imports and registers all CLI commands.

Entry point: ``messagable`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import logging

import typer

from messagable.cli.commands.inbox_cmd import inbox_cmd, sent_cmd
from messagable.cli.commands.message_cmd import mark_read_cmd, show_cmd
from messagable.config import config

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

app = typer.Typer(
    name="messagable",
    help="Messagable: inspect delivered messages and their recipients.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="inbox", help="List messages received by a party.")(inbox_cmd)
app.command(name="sent", help="List messages sent by a party.")(sent_cmd)
app.command(name="show", help="Show a single message and its provenance.")(show_cmd)
app.command(name="mark-read", help="Mark a message as read.")(mark_read_cmd)


@app.callback()
def _configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level."),
) -> None:
    level = logging.DEBUG if verbose or config.debug else config.log_level.upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()

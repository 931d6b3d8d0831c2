"""``messagable show`` / ``messagable mark-read`` — act on a single message."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.markup import escape

from messagable.cli.commands._common import console, open_store
from messagable.cli.renderer import MessageRenderer
from messagable.config import config


def show_cmd(
    message_id: str = typer.Argument(..., help="The message id (msg-...)."),
    store_db: Path = typer.Option(
        config.store_path,
        "--store",
        "-s",
        help="Path to the message store SQLite database.",
    ),
) -> None:
    """Show a message with its stored original and additional recipients."""
    store = open_store(store_db)
    message = store.get(message_id)
    if message is None:
        console.print(f"[bold red]Message not found:[/bold red] {escape(message_id)}")
        raise typer.Exit(code=1)
    MessageRenderer(console=console).print_message(message)


def mark_read_cmd(
    message_id: str = typer.Argument(..., help="The message id (msg-...)."),
    store_db: Path = typer.Option(
        config.store_path,
        "--store",
        "-s",
        help="Path to the message store SQLite database.",
    ),
) -> None:
    """Mark a message as read."""
    store = open_store(store_db)
    message = store.get(message_id)
    if message is None:
        console.print(f"[bold red]Message not found:[/bold red] {escape(message_id)}")
        raise typer.Exit(code=1)
    store.mark_as_read(message)
    console.print(f"[green]Marked {escape(message_id)} as read.[/green]")

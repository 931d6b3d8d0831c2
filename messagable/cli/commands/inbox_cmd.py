"""``messagable inbox`` / ``messagable sent`` — list a party's messages."""

from __future__ import annotations

from pathlib import Path

import typer

from messagable.cli.commands._common import console, open_store, parse_party
from messagable.cli.renderer import MessageRenderer
from messagable.config import config


def inbox_cmd(
    type_name: str = typer.Argument(..., help="Party type name, e.g. User."),
    party_id: str = typer.Argument(..., help="Party id."),
    unread: bool = typer.Option(
        False,
        "--unread",
        "-u",
        help="Only show unread messages.",
    ),
    store_db: Path = typer.Option(
        config.store_path,
        "--store",
        "-s",
        help="Path to the message store SQLite database.",
    ),
) -> None:
    """List messages received by a party (sender copies excluded)."""
    store = open_store(store_db)
    ref = parse_party(type_name, party_id)
    messages = store.unread_messages(ref) if unread else store.received_messages(ref)
    title = f"{'Unread' if unread else 'Inbox'} for {ref}"
    MessageRenderer(console=console).print_list(messages, title=title)


def sent_cmd(
    type_name: str = typer.Argument(..., help="Party type name, e.g. User."),
    party_id: str = typer.Argument(..., help="Party id."),
    store_db: Path = typer.Option(
        config.store_path,
        "--store",
        "-s",
        help="Path to the message store SQLite database.",
    ),
) -> None:
    """List the sender copies of everything a party has sent."""
    store = open_store(store_db)
    ref = parse_party(type_name, party_id)
    MessageRenderer(console=console).print_list(store.sent_messages(ref), title=f"Sent by {ref}")

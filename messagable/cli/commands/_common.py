"""Shared helpers for CLI commands."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from messagable.core.message_store import MessageStore
from messagable.models.references import PartyRef

console = Console()


def open_store(store_db: Path) -> MessageStore:
    """Open an existing message store or exit with code 1."""
    if not store_db.exists():
        console.print(f"[bold red]Message store not found:[/bold red] {escape(str(store_db))}")
        raise typer.Exit(code=1)
    return MessageStore(store_db)


def parse_party(type_name: str, party_id: str) -> PartyRef:
    """Build a reference from CLI arguments; all-digit ids are integers."""
    value: int | str = int(party_id) if party_id.isdigit() else party_id
    return PartyRef(type_name=type_name, party_id=value)

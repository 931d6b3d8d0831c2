"""Rich terminal renderer for message lists and single messages.

Color scheme
------------
- bold    : unread
- dim     : read
- magenta : sender copy
"""

from __future__ import annotations

from rich.console import Console, Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from messagable.models.message import Message
from messagable.models.references import OriginalRecipient


def format_original(entry: OriginalRecipient) -> str:
    if entry.groups is None:
        return str(entry.ref)
    return f"{entry.ref} (+{', '.join(entry.groups)})"


class MessageRenderer:
    """Renders messages as Rich renderables.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def render_list(self, messages: list[Message], *, title: str) -> Table:
        table = Table(
            title=escape(title),
            show_header=True,
            header_style="bold cyan",
            expand=True,
        )
        table.add_column("Message", style="dim", no_wrap=True)
        table.add_column("From", min_width=12)
        table.add_column("To", min_width=12)
        table.add_column("Subject", min_width=20)
        table.add_column("Sent", justify="right")
        table.add_column("State", justify="center")

        for message in messages:
            if message.sender_copy:
                state = "[magenta]SENT[/magenta]"
                style = ""
            elif message.is_unread:
                state = "[bold yellow]UNREAD[/bold yellow]"
                style = "bold"
            else:
                state = "[dim]read[/dim]"
                style = "dim"
            subject = escape(message.subject)
            if style:
                subject = f"[{style}]{subject}[/{style}]"
            table.add_row(
                escape(message.message_id),
                escape(str(message.sender)),
                escape(str(message.recipient)),
                subject,
                message.created_at.strftime("%Y-%m-%d %H:%M"),
                state,
            )
        return table

    def render_message(self, message: Message) -> Panel:
        """Render one message with its stored provenance."""
        original = ", ".join(format_original(r) for r in message.metadata.original_recipients)
        additional = ", ".join(str(r) for r in message.metadata.additional_recipients)
        header_lines = [
            f"[bold]From:[/bold]      {escape(str(message.sender))}",
            f"[bold]To:[/bold]        {escape(str(message.recipient))}",
            f"[bold]Addressed:[/bold] {escape(original) or '[dim]-[/dim]'}",
            f"[bold]Also to:[/bold]   {escape(additional) or '[dim]-[/dim]'}",
            f"[bold]Subject:[/bold]   {escape(message.subject)}",
        ]
        if message.url:
            header_lines.append(f"[bold]URL:[/bold]       {escape(message.url)}")
        read_state = (
            f"read {message.read_at.strftime('%Y-%m-%d %H:%M:%S')}"
            if message.read_at
            else "unread"
        )

        return Panel(
            Group(Text.from_markup("\n".join(header_lines)), Text(""), Text(message.content)),
            title=f"[bold]{escape(message.message_id)}[/bold]",
            subtitle=("sender copy | " if message.sender_copy else "") + read_state,
            border_style="magenta" if message.sender_copy else "blue",
            padding=(1, 2),
        )

    def print_list(self, messages: list[Message], *, title: str) -> None:
        if not messages:
            self.console.print(f"[dim]{escape(title)}: no messages.[/dim]")
            return
        self.console.print(self.render_list(messages, title=title))

    def print_message(self, message: Message) -> None:
        self.console.print(self.render_message(message))

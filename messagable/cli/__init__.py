"""Messagable CLI — Typer-based command-line interface.

Provides the ``messagable`` command for inspecting a message store:
listing inboxes and sent messages, showing a message's provenance, and
marking messages as read.

All output uses Rich for formatted terminal display.
"""

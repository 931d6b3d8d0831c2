"""SQLite-backed message store with an explicit transaction scope.

The store is the only shared mutable resource of a ``send`` call.  All
writes of one call run inside a single ``transaction()`` so that a failed
delivery leaves no rows behind.

Design:
- One ``messages`` table; party references are stored as type name plus
  JSON-encoded id so integer and string ids round-trip unchanged.
- Metadata (provenance, url, free-form keys) is a JSON column.
- WAL journal mode for concurrent readers.
- The open transaction connection is thread-local, so concurrent sends
  on one store are independent units.
- ``mark_as_read`` updates ``read_at`` directly, bypassing validators.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from messagable.core.errors import MessageValidationError
from messagable.models.message import Message, MessageMetadata
from messagable.models.references import PartyRef

logger = logging.getLogger(__name__)

MessageValidator = Callable[[Message], None]


# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

_CREATE_MESSAGES = """
CREATE TABLE IF NOT EXISTS messages (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    message_id        TEXT NOT NULL UNIQUE,
    sender_type       TEXT NOT NULL,
    sender_id         TEXT NOT NULL,
    recipient_type    TEXT NOT NULL,
    recipient_id      TEXT NOT NULL,
    subject           TEXT NOT NULL,
    content           TEXT NOT NULL,
    sender_copy       INTEGER NOT NULL DEFAULT 0,
    read_at           TEXT,
    created_at        TEXT NOT NULL,
    metadata_json     TEXT NOT NULL DEFAULT '{}',
    extra_json        TEXT NOT NULL DEFAULT '{}'
);
"""

_CREATE_IDX_RECIPIENT = """
CREATE INDEX IF NOT EXISTS idx_recipient
    ON messages(recipient_type, recipient_id, sender_copy, id);
"""

_CREATE_IDX_SENDER = """
CREATE INDEX IF NOT EXISTS idx_sender
    ON messages(sender_type, sender_id, sender_copy, id);
"""

_COLUMNS = (
    "message_id, sender_type, sender_id, recipient_type, recipient_id, "
    "subject, content, sender_copy, read_at, created_at, metadata_json, extra_json"
)


def require_subject(message: Message) -> None:
    """Default validator: a message must have a non-blank subject."""
    if not message.subject.strip():
        raise ValueError("subject must not be blank")


class MessageStore:
    """Persistent message records backed by SQLite.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file. Created if it does not exist.
    validators:
        Callables run by :meth:`create`; each raises ``ValueError`` to
        reject a message.  Defaults to :func:`require_subject`.
    """

    def __init__(
        self,
        db_path: Path,
        *,
        validators: Sequence[MessageValidator] | None = None,
    ) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._validators: list[MessageValidator] = list(
            validators if validators is not None else [require_subject]
        )
        self._local = threading.local()
        self._init_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def _active(self) -> sqlite3.Connection | None:
        """The calling thread's open transaction connection, if any."""
        return getattr(self._local, "conn", None)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), check_same_thread=False, isolation_level=None)
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _init_schema(self) -> None:
        conn = self._connect()
        try:
            conn.execute(_CREATE_MESSAGES)
            conn.execute(_CREATE_IDX_RECIPIENT)
            conn.execute(_CREATE_IDX_SENDER)
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed writes as one atomic unit.

        Nested calls on the same thread join the outermost transaction;
        other threads open their own.  Any exception rolls
        back every write made inside the outermost block and is re-raised.
        """
        if self._active is not None:
            yield self._active
            return

        conn = self._connect()
        conn.execute("BEGIN")
        self._local.conn = conn
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            logger.debug("Rolled back message transaction on %s", self._db_path)
            raise
        else:
            conn.execute("COMMIT")
        finally:
            self._local.conn = None
            conn.close()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def validate(self, message: Message) -> None:
        """Run all validators, raising ``MessageValidationError`` on failure."""
        errors: list[str] = []
        for validator in self._validators:
            try:
                validator(message)
            except ValueError as exc:
                errors.append(str(exc))
        if errors:
            raise MessageValidationError(
                f"Message to {message.recipient} is invalid: " + "; ".join(errors)
            )

    def create(self, message: Message | None = None, **fields: Any) -> Message:
        """Validate and insert a message, returning it.

        Accepts either a ``Message`` or its fields as keyword arguments.

        Raises
        ------
        MessageValidationError
            If the fields do not form a valid ``Message`` or a validator
            rejects it.
        """
        if message is None:
            try:
                message = Message(**fields)
            except ValidationError as exc:
                raise MessageValidationError(f"Invalid message fields: {exc}") from exc
        self.validate(message)

        with self.transaction() as conn:
            conn.execute(
                f"INSERT INTO messages ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                self._message_to_row(message),
            )
        return message

    def mark_as_read(self, message: Message) -> Message:
        """Set ``read_at`` to now and persist it without validation."""
        message.read_at = datetime.now(timezone.utc)
        with self.transaction() as conn:
            conn.execute(
                "UPDATE messages SET read_at = ? WHERE message_id = ?",
                (message.read_at.isoformat(), message.message_id),
            )
        return message

    def update_metadata(self, message: Message) -> None:
        """Persist the message's current metadata."""
        with self.transaction() as conn:
            conn.execute(
                "UPDATE messages SET metadata_json = ? WHERE message_id = ?",
                (json.dumps(message.metadata.to_stored()), message.message_id),
            )

    # ------------------------------------------------------------------
    # Query methods (read-only)
    # ------------------------------------------------------------------

    def get(self, message_id: str) -> Message | None:
        rows = self._select("WHERE message_id = ?", (message_id,))
        return rows[0] if rows else None

    def count(self) -> int:
        row = self._fetch("SELECT COUNT(*) FROM messages", ())[0]
        return int(row[0])

    def all_messages(self) -> list[Message]:
        return self._select("ORDER BY id ASC", ())

    def received_messages(self, recipient: PartyRef) -> list[Message]:
        """Messages delivered to *recipient*, excluding its sender copies."""
        return self._select(
            "WHERE recipient_type = ? AND recipient_id = ? AND sender_copy = 0 ORDER BY id ASC",
            (recipient.type_name, _encode_id(recipient)),
        )

    def unread_messages(self, recipient: PartyRef) -> list[Message]:
        return self._select(
            "WHERE recipient_type = ? AND recipient_id = ? AND sender_copy = 0 "
            "AND read_at IS NULL ORDER BY id ASC",
            (recipient.type_name, _encode_id(recipient)),
        )

    def read_messages(self, recipient: PartyRef) -> list[Message]:
        return self._select(
            "WHERE recipient_type = ? AND recipient_id = ? AND sender_copy = 0 "
            "AND read_at IS NOT NULL ORDER BY id ASC",
            (recipient.type_name, _encode_id(recipient)),
        )

    def sent_messages(self, sender: PartyRef) -> list[Message]:
        """Sender copies of everything *sender* has sent."""
        return self._select(
            "WHERE sender_type = ? AND sender_id = ? AND sender_copy = 1 ORDER BY id ASC",
            (sender.type_name, _encode_id(sender)),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _fetch(self, sql: str, params: tuple[Any, ...]) -> list[tuple[Any, ...]]:
        if self._active is not None:
            return self._active.execute(sql, params).fetchall()
        conn = self._connect()
        try:
            return conn.execute(sql, params).fetchall()
        finally:
            conn.close()

    def _select(self, clause: str, params: tuple[Any, ...]) -> list[Message]:
        rows = self._fetch(f"SELECT {_COLUMNS} FROM messages {clause}", params)
        return [self._row_to_message(row) for row in rows]

    @staticmethod
    def _message_to_row(message: Message) -> tuple[Any, ...]:
        return (
            message.message_id,
            message.sender.type_name,
            _encode_id(message.sender),
            message.recipient.type_name,
            _encode_id(message.recipient),
            message.subject,
            message.content,
            int(message.sender_copy),
            message.read_at.isoformat() if message.read_at else None,
            message.created_at.isoformat(),
            json.dumps(message.metadata.to_stored()),
            json.dumps(message.extra, default=str),
        )

    @staticmethod
    def _row_to_message(row: tuple[Any, ...]) -> Message:
        (
            message_id,
            sender_type,
            sender_id,
            recipient_type,
            recipient_id,
            subject,
            content,
            sender_copy,
            read_at,
            created_at,
            metadata_json,
            extra_json,
        ) = row
        return Message(
            message_id=message_id,
            sender=PartyRef(type_name=sender_type, party_id=json.loads(sender_id)),
            recipient=PartyRef(type_name=recipient_type, party_id=json.loads(recipient_id)),
            subject=subject,
            content=content,
            sender_copy=bool(sender_copy),
            read_at=read_at,
            created_at=created_at,
            metadata=MessageMetadata.from_stored(json.loads(metadata_json)),
            extra=json.loads(extra_json),
        )


def _encode_id(ref: PartyRef) -> str:
    return json.dumps(ref.party_id)

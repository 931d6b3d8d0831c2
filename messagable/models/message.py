"""Message records, delivery payloads, and send reports."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from messagable.models.references import OriginalRecipient, PartyRef, RecipientSpec


class MessageMetadata(BaseModel):
    """Provenance and free-form metadata stored alongside a message."""

    model_config = ConfigDict(extra="allow")

    original_recipients: list[OriginalRecipient] = []
    additional_recipients: list[PartyRef] = []
    url: str | None = None

    def to_stored(self) -> dict[str, Any]:
        """Encode to the JSON shape other readers of the table rely on."""
        stored: dict[str, Any] = dict(self.model_extra or {})
        stored["original_recipients"] = [r.to_stored() for r in self.original_recipients]
        stored["additional_recipients"] = [r.to_stored() for r in self.additional_recipients]
        if self.url is not None:
            stored["url"] = self.url
        return stored

    @classmethod
    def from_stored(cls, raw: dict[str, Any]) -> MessageMetadata:
        data = dict(raw)
        data["original_recipients"] = [
            OriginalRecipient.from_stored(r) for r in data.get("original_recipients") or []
        ]
        data["additional_recipients"] = [
            PartyRef.from_stored(r) for r in data.get("additional_recipients") or []
        ]
        return cls.model_validate(data)


class Message(BaseModel):
    """A single delivered (or sender-copy) message record.

    Messages are mutable only in ``read_at`` and their metadata; everything
    else is fixed at creation.  Decoded recipient lists are cached on the
    instance and dropped with it.
    """

    message_id: str = Field(default_factory=lambda: f"msg-{uuid.uuid4().hex[:12]}")
    sender: PartyRef
    recipient: PartyRef
    subject: str
    content: str
    sender_copy: bool = False
    read_at: datetime | None = None
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    metadata: MessageMetadata = Field(default_factory=MessageMetadata)
    extra: dict[str, Any] = {}

    _decoded: dict[str, list[Any]] = PrivateAttr(default_factory=dict)

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    @property
    def is_unread(self) -> bool:
        return not self.is_read

    @property
    def url(self) -> str | None:
        return self.metadata.url

    @url.setter
    def url(self, value: str | None) -> None:
        self.metadata.url = value

    def cached_recipients(self, key: str) -> list[Any] | None:
        return self._decoded.get(key)

    def cache_recipients(self, key: str, parties: list[Any] | None) -> None:
        if parties is None:
            self._decoded.pop(key, None)
        else:
            self._decoded[key] = parties


class DeliveryPayload(BaseModel):
    """What a single recipient receives from one ``send`` call."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    subject: str
    content: str
    original_recipients: list[OriginalRecipient]
    entries: list[RecipientSpec] = []  # live form of original_recipients
    additional_recipients: list[Any] | None = None  # live parties
    extra: dict[str, Any] = {}

    def as_handler_dict(self) -> dict[str, Any]:
        """The mapping passed to custom delivery handlers.

        ``original_recipients`` holds the live entries given to ``send``:
        a party, or a ``(party, [group ids])`` tuple where groups were
        requested.  ``additional_recipients`` is present only when the
        recipient gets a CC list.  Keys of ``extra`` are merged in first, so
        they never replace the fields above.
        """
        payload: dict[str, Any] = dict(self.extra)
        payload["subject"] = self.subject
        payload["content"] = self.content
        payload["original_recipients"] = [
            entry.party if entry.groups is None else (entry.party, list(entry.groups))
            for entry in self.entries
        ]
        if self.additional_recipients is not None:
            payload["additional_recipients"] = list(self.additional_recipients)
        return payload


class DeliveryReport(BaseModel):
    """Outcome of a successful ``send``."""

    model_config = ConfigDict(frozen=True)

    sender: PartyRef
    message_ids: list[str] = []
    handled_recipients: list[PartyRef] = []
    sender_copy_id: str
    resolved_recipients: list[PartyRef] = []

    @property
    def delivery_count(self) -> int:
        return len(self.message_ids) + len(self.handled_recipients)

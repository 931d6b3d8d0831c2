"""Message provenance — encode and decode original / additional recipients.

Stored references are dereferenced through the registry's loaders the
first time they are read and cached on the ``Message`` instance.
Group labels in ``original_recipient_names`` are looked up against the
party's current configuration, not frozen at send time.
"""

from __future__ import annotations

import logging
from typing import Any

from messagable.core.registry import PartyRegistry
from messagable.models.message import Message
from messagable.models.references import OriginalRecipient, RecipientSpec, normalize_entries

logger = logging.getLogger(__name__)

_ORIGINAL = "original_recipients"
_ADDITIONAL = "additional_recipients"


class ProvenanceCodec:
    """Translates between live parties and stored ``[type, id]`` references."""

    def __init__(self, registry: PartyRegistry) -> None:
        self._registry = registry

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def encode_original(self, recipients: Any) -> list[OriginalRecipient]:
        """Encode a raw recipient specification, preserving group pairs."""
        return [
            OriginalRecipient(ref=self._registry.ref_for(entry.party), groups=entry.groups)
            for entry in normalize_entries(recipients)
        ]

    def set_original_recipients(self, message: Message, recipients: Any) -> None:
        message.metadata.original_recipients = self.encode_original(recipients)
        message.cache_recipients(_ORIGINAL, None)

    def set_additional_recipients(self, message: Message, parties: list[Any]) -> None:
        parties = list(parties or [])
        message.metadata.additional_recipients = [self._registry.ref_for(p) for p in parties]
        message.cache_recipients(_ADDITIONAL, parties)

    # ------------------------------------------------------------------
    # Decoding
    # ------------------------------------------------------------------

    def original_recipients(self, message: Message) -> list[RecipientSpec]:
        """The recipient specification originally given to ``send``.

        Raises
        ------
        RecipientNotFound
            If a referenced party no longer exists.
        """
        cached = message.cached_recipients(_ORIGINAL)
        if cached is None:
            cached = [
                RecipientSpec(party=self._registry.find_ref(entry.ref), groups=entry.groups)
                for entry in message.metadata.original_recipients
            ]
            logger.debug("Decoded %d original recipient(s) of %s", len(cached), message.message_id)
            message.cache_recipients(_ORIGINAL, cached)
        return list(cached)

    def additional_recipients(self, message: Message) -> list[Any]:
        """The "CC" list visible to this message's recipient."""
        cached = message.cached_recipients(_ADDITIONAL)
        if cached is None:
            cached = [self._registry.find_ref(ref) for ref in message.metadata.additional_recipients]
            logger.debug("Decoded %d additional recipient(s) of %s", len(cached), message.message_id)
            message.cache_recipients(_ADDITIONAL, cached)
        return list(cached)

    def original_recipient_names(self, message: Message) -> list[str | list[str]]:
        """Display names of the original recipients.

        Entries that requested optional groups become a list of the
        party's name followed by each group's current label.
        """
        names: list[str | list[str]] = []
        for entry in self.original_recipients(message):
            name = self._registry.recipient_name(entry.party)
            if entry.groups is None:
                names.append(name)
            else:
                labels = [
                    self._registry.optional_recipient_label(entry.party, identifier)
                    for identifier in entry.groups
                ]
                names.append([name, *labels])
        return names

    def additional_recipient_names(self, message: Message) -> list[str]:
        return [self._registry.recipient_name(p) for p in self.additional_recipients(message)]

"""Fan-out coordinator — delivers one message to every resolved recipient.

A ``send`` call:

1. Resolves each top-level recipient entry on its own ("cause"), noting
   whether that cause wants its recipients to see each other.
2. Unions every cause's recipients into one deduplicated set.
3. Delivers once per terminal recipient, first cause wins, either to the
   recipient type's handler or as a persisted ``Message``.
4. Creates the sender copy last.

Steps 3 and 4 run inside one store transaction; any failure leaves no
message behind.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from messagable.config import config as default_config
from messagable.core.errors import (
    DeliveryFailed,
    InvalidRecipient,
    InvalidSender,
    MessagableError,
    MessageValidationError,
)
from messagable.core.message_store import MessageStore
from messagable.core.registry import PartyRegistry, default_registry
from messagable.core.resolver import RecipientResolver, ResolvedRecipient, dedupe
from messagable.models.message import DeliveryPayload, DeliveryReport, MessageMetadata
from messagable.models.references import OriginalRecipient, PartyRef, normalize_entries

logger = logging.getLogger(__name__)


class CauseGroup(BaseModel):
    """The recipients produced by one top-level entry of a ``send`` call."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    cause: Any
    cause_ref: PartyRef
    recipients: list[ResolvedRecipient]
    store_additionals: bool = False


class FanOutCoordinator:
    """Sends messages from one party to a recipient specification.

    Parameters
    ----------
    store:
        The message store that provides the transaction scope.
    registry:
        Party registry; defaults to the module-level ``default_registry``.
    strict_optional_groups:
        Passed to the ``RecipientResolver``.  Defaults to
        ``config.strict_optional_groups``.

    Usage
    -----
    >>> coordinator = FanOutCoordinator(MessageStore(tmp_path / "m.db"))
    >>> coordinator.send(user, [(group, ["tutors"])], "Subject", "Body")
    """

    def __init__(
        self,
        store: MessageStore,
        registry: PartyRegistry | None = None,
        *,
        strict_optional_groups: bool | None = None,
    ) -> None:
        self._store = store
        self._registry = registry or default_registry
        if strict_optional_groups is None:
            strict_optional_groups = default_config.strict_optional_groups
        self._resolver = RecipientResolver(
            self._registry, strict_optional_groups=strict_optional_groups
        )

    @property
    def resolver(self) -> RecipientResolver:
        return self._resolver

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def group_by_cause(self, recipients: Any) -> list[CauseGroup]:
        """Resolve each top-level entry independently."""
        groups: list[CauseGroup] = []
        for entry in normalize_entries(recipients):
            local = dedupe(self._resolver.resolve_entry(entry))
            groups.append(
                CauseGroup(
                    cause=entry.party,
                    cause_ref=self._registry.ref_for(entry.party),
                    recipients=local,
                    store_additionals=(
                        self._registry.stores_additional_recipients(entry.party)
                        and len(local) > 1
                    ),
                )
            )
        return groups

    def recipients_for(self, recipient: Any) -> list[Any]:
        """Everyone who receives a message because *recipient* was addressed."""
        return [r.party for r in dedupe(self._resolver.resolve(recipient))]

    # ------------------------------------------------------------------
    # Send
    # ------------------------------------------------------------------

    def send(
        self,
        sender: Any,
        recipients: Any,
        subject: str,
        content: str,
        extra: dict[str, Any] | None = None,
    ) -> DeliveryReport:
        """Deliver a message to every resolved recipient atomically.

        Raises
        ------
        InvalidSender
            If *sender* is not messagable.
        InvalidRecipient, OptionalRecipientGroupNotFound, ForwardCycleDetected
            If resolution fails; nothing is written.
        DeliveryFailed
            If a message fails validation or a handler raises; every write
            of this call is rolled back.
        """
        try:
            sender_ref = self._registry.ref_for(sender)
        except InvalidRecipient as exc:
            raise InvalidSender(f"Invalid Sender: {sender!r}") from exc

        entries = normalize_entries(recipients)
        original = [
            OriginalRecipient(ref=self._registry.ref_for(entry.party), groups=entry.groups)
            for entry in entries
        ]
        groups = self.group_by_cause(recipients)
        all_recipients = dedupe([r for group in groups for r in group.recipients])

        extra = dict(extra or {})
        url = extra.pop("url", None)

        message_ids: list[str] = []
        handled: list[PartyRef] = []
        processed: set[PartyRef] = set()

        try:
            with self._store.transaction():
                for group in groups:
                    for recipient in group.recipients:
                        if recipient.ref in processed:
                            continue
                        processed.add(recipient.ref)

                        payload = DeliveryPayload(
                            subject=subject,
                            content=content,
                            original_recipients=original,
                            entries=entries,
                            additional_recipients=self._additional_for(
                                recipient, group, all_recipients
                            ),
                            extra=extra,
                        )
                        message_id = self._deliver(sender, sender_ref, recipient, payload, url)
                        if message_id is None:
                            handled.append(recipient.ref)
                        else:
                            message_ids.append(message_id)

                sender_copy = self._store.create(
                    sender=sender_ref,
                    recipient=sender_ref,
                    subject=subject,
                    content=content,
                    sender_copy=True,
                    metadata=MessageMetadata(
                        original_recipients=original,
                        additional_recipients=[r.ref for r in all_recipients],
                        url=url,
                    ),
                    extra=extra,
                )
        except (MessageValidationError, ValidationError) as exc:
            logger.error("Send from %s aborted: %s", sender_ref, exc)
            raise DeliveryFailed(str(exc)) from exc

        logger.info(
            "Sent %r from %s to %d recipient(s) (%d stored, %d handled)",
            subject,
            sender_ref,
            len(all_recipients),
            len(message_ids),
            len(handled),
        )
        return DeliveryReport(
            sender=sender_ref,
            message_ids=message_ids,
            handled_recipients=handled,
            sender_copy_id=sender_copy.message_id,
            resolved_recipients=[r.ref for r in all_recipients],
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _additional_for(
        self,
        recipient: ResolvedRecipient,
        group: CauseGroup,
        all_recipients: list[ResolvedRecipient],
    ) -> list[Any] | None:
        """CC list for *recipient*: its cause's peers, else everyone, else none."""
        if group.store_additionals:
            pool = group.recipients
        elif self._registry.stores_additional_recipients(recipient.party) and len(all_recipients) > 1:
            pool = all_recipients
        else:
            return None
        return [r.party for r in pool if r.ref != recipient.ref]

    def _deliver(
        self,
        sender: Any,
        sender_ref: PartyRef,
        recipient: ResolvedRecipient,
        payload: DeliveryPayload,
        url: str | None,
    ) -> str | None:
        """Hand the payload to a handler or store it; returns the stored message id."""
        handler = self._registry.handler_for(recipient.party)
        if handler is not None:
            logger.debug("Handing message for %s to its handler", recipient.ref)
            try:
                handler(sender, payload.as_handler_dict())
            except MessagableError:
                raise
            except Exception as exc:
                logger.error("Handler for %s failed: %s", recipient.ref, exc)
                raise DeliveryFailed(f"Handler for {recipient.ref} failed: {exc}") from exc
            return None

        message = self._store.create(
            sender=sender_ref,
            recipient=recipient.ref,
            subject=payload.subject,
            content=payload.content,
            metadata=MessageMetadata(
                original_recipients=payload.original_recipients,
                additional_recipients=[
                    self._registry.ref_for(p) for p in payload.additional_recipients or []
                ],
                url=url,
            ),
            extra=payload.extra,
        )
        return message.message_id

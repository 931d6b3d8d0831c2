"""Error taxonomy for recipient resolution, fan-out, and provenance reads.

Every failure raised by the library derives from ``MessagableError`` so
callers can treat "nothing was delivered" uniformly.
"""

from __future__ import annotations


class MessagableError(RuntimeError):
    """Base class for all messagable errors."""


class MessagableConfigurationError(MessagableError):
    """Raised when a party type's messaging options are inconsistent."""


class InvalidRecipient(MessagableError):
    """Raised when a recipient entry is not a registered messagable party."""


class InvalidSender(MessagableError):
    """Raised when ``send`` is called with a non-messagable sender."""


class OptionalRecipientGroupNotFound(MessagableError):
    """Raised when an optional-recipient identifier is not declared."""

    def __init__(self, type_name: str, identifier: str) -> None:
        super().__init__(
            f"Optional recipient group {identifier!r} is not declared on {type_name}"
        )
        self.type_name = type_name
        self.identifier = identifier


class ForwardCycleDetected(MessagableError):
    """Raised when ``forward_to`` chains loop back onto themselves."""

    def __init__(self, cycle: list[str]) -> None:
        super().__init__("Forward cycle detected: " + " -> ".join(cycle))
        self.cycle = cycle


class RecipientNotFound(MessagableError):
    """Raised when a stored party reference no longer resolves to a record."""


class MessageValidationError(MessagableError):
    """Raised by the message store when a record fails validation."""


class DeliveryFailed(MessagableError):
    """Raised when a send aborts during delivery; nothing was persisted."""

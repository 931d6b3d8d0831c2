"""Messagable: message fan-out between parties of a record graph.

Parties register with a ``PartyRegistry`` to send and receive messages.
A party may forward everything addressed to it (a group forwarding to its
members) and may declare optional recipient groups a sender can opt into
(a group's tutors).  ``FanOutCoordinator.send`` resolves those chains into
one message per terminal recipient plus a sender copy, atomically.
"""

__version__ = "0.2.0"
__description__ = "Recipient resolution and atomic message fan-out for messagable parties"

from messagable.core.errors import (
    DeliveryFailed,
    ForwardCycleDetected,
    InvalidRecipient,
    InvalidSender,
    MessagableConfigurationError,
    MessagableError,
    MessageValidationError,
    OptionalRecipientGroupNotFound,
    RecipientNotFound,
)
from messagable.core.fanout import FanOutCoordinator
from messagable.core.message_store import MessageStore
from messagable.core.provenance import ProvenanceCodec
from messagable.core.registry import PartyRegistry, default_registry, messagable
from messagable.core.resolver import RecipientResolver, ResolvedRecipient

__all__ = [
    "FanOutCoordinator",
    "MessageStore",
    "PartyRegistry",
    "ProvenanceCodec",
    "RecipientResolver",
    "ResolvedRecipient",
    "default_registry",
    "messagable",
    # errors
    "MessagableError",
    "MessagableConfigurationError",
    "InvalidRecipient",
    "InvalidSender",
    "OptionalRecipientGroupNotFound",
    "ForwardCycleDetected",
    "RecipientNotFound",
    "MessageValidationError",
    "DeliveryFailed",
    "__version__",
]

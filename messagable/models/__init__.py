"""Messagable data models — Pydantic v2."""

from messagable.models.message import (
    DeliveryPayload,
    DeliveryReport,
    Message,
    MessageMetadata,
)
from messagable.models.options import (
    CallableOption,
    FixedValue,
    MessagableOptions,
    NamedMethod,
    Option,
    OptionalRecipientGroup,
    as_option,
    evaluate_option,
)
from messagable.models.references import (
    OriginalRecipient,
    PartyId,
    PartyRef,
    RecipientSpec,
    normalize_entries,
)

__all__ = [
    # options
    "Option",
    "FixedValue",
    "NamedMethod",
    "CallableOption",
    "OptionalRecipientGroup",
    "MessagableOptions",
    "as_option",
    "evaluate_option",
    # references
    "PartyId",
    "PartyRef",
    "OriginalRecipient",
    "RecipientSpec",
    "normalize_entries",
    # messages
    "Message",
    "MessageMetadata",
    "DeliveryPayload",
    "DeliveryReport",
]

"""Party registry — explicit per-type messaging configuration.

A party type becomes messagable by registering its class with a
``PartyRegistry``.  The registration owns an immutable
``MessagableOptions`` value and, optionally, a loader used to turn stored
``[type_name, id]`` references back into live parties.

Usage
-----
>>> registry = PartyRegistry()
>>> @registry.messagable(forward_to="students",
...                      optional_recipients=[("tutors", "tutors", "Tutors")])
... class Group:
...     def __init__(self, id, students, tutors):
...         self.id, self.students, self.tutors = id, students, tutors
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from messagable.core.errors import (
    InvalidRecipient,
    MessagableConfigurationError,
    OptionalRecipientGroupNotFound,
    RecipientNotFound,
)
from messagable.models.options import (
    CallableOption,
    MessagableOptions,
    NamedMethod,
    OptionalRecipientGroup,
    evaluate_option,
)
from messagable.models.references import PartyId, PartyRef, is_pair

logger = logging.getLogger(__name__)

ACCESSOR_REQUESTS = (
    "sender_name",
    "recipient_name",
    "forward_to",
    "optional_recipients",
    "store_additional_recipients",
)


class PartyType(BaseModel):
    """Registration record for one messagable class."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    cls: type
    type_name: str
    human_name: str
    id_attribute: str = "id"
    options: MessagableOptions = Field(default_factory=MessagableOptions)
    loader: Callable[[PartyId], Any] | None = None

    def default_name(self, party: Any) -> str:
        return f"{self.human_name}: {getattr(party, self.id_attribute, '?')}"


class PartyRegistry:
    """Maps party classes to their messaging configuration."""

    def __init__(self) -> None:
        self._by_class: dict[type, PartyType] = {}
        self._by_name: dict[str, PartyType] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        cls: type,
        options: MessagableOptions | None = None,
        *,
        type_name: str | None = None,
        human_name: str | None = None,
        id_attribute: str = "id",
        loader: Callable[[PartyId], Any] | None = None,
    ) -> PartyType:
        """Register *cls* as messagable and return its registration.

        Raises
        ------
        MessagableConfigurationError
            If another class is already registered under the same type name.
        """
        name = type_name or cls.__name__
        existing = self._by_name.get(name)
        if existing is not None and existing.cls is not cls:
            raise MessagableConfigurationError(
                f"Type name {name!r} is already registered for {existing.cls.__qualname__}"
            )

        registration = PartyType(
            cls=cls,
            type_name=name,
            human_name=human_name or cls.__name__,
            id_attribute=id_attribute,
            options=options or MessagableOptions(),
            loader=loader,
        )
        self._by_class[cls] = registration
        self._by_name[name] = registration
        logger.debug("Registered messagable type %s", name)
        return registration

    def messagable(
        self,
        *,
        type_name: str | None = None,
        human_name: str | None = None,
        id_attribute: str = "id",
        loader: Callable[[PartyId], Any] | None = None,
        **options: Any,
    ) -> Callable[[type], type]:
        """Class decorator form of :meth:`register`.

        Keyword options are those of ``MessagableOptions.from_kwargs``.
        """
        parsed = MessagableOptions.from_kwargs(**options)

        def decorator(cls: type) -> type:
            self.register(
                cls,
                parsed,
                type_name=type_name,
                human_name=human_name,
                id_attribute=id_attribute,
                loader=loader,
            )
            return cls

        return decorator

    def set_loader(self, type_name: str, loader: Callable[[PartyId], Any]) -> None:
        """Attach or replace the record loader of a registered type."""
        registration = self._by_name.get(type_name)
        if registration is None:
            raise MessagableConfigurationError(f"Unknown party type {type_name!r}")
        updated = registration.model_copy(update={"loader": loader})
        self._by_class[registration.cls] = updated
        self._by_name[type_name] = updated

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def is_messagable(self, obj: Any) -> bool:
        return self._lookup(obj) is not None

    def registration_for(self, party: Any) -> PartyType:
        registration = self._lookup(party)
        if registration is None:
            raise InvalidRecipient(f"Invalid Recipient: {party!r}")
        return registration

    def ref_for(self, party: Any) -> PartyRef:
        """Type name and id of *party*; UUID ids are referenced as text.

        Raises
        ------
        InvalidRecipient
            If *party* is not messagable or its id is not an int, str or UUID.
        """
        registration = self.registration_for(party)
        party_id = getattr(party, registration.id_attribute, None)
        if isinstance(party_id, uuid.UUID):
            party_id = str(party_id)
        try:
            return PartyRef(type_name=registration.type_name, party_id=party_id)
        except ValidationError as exc:
            raise InvalidRecipient(
                f"Invalid Recipient: {party!r} has unusable id {party_id!r}"
            ) from exc

    def find(self, type_name: str, party_id: PartyId) -> Any:
        """Load a party by stored type name and id."""
        registration = self._by_name.get(type_name)
        if registration is None:
            raise RecipientNotFound(f"Unknown party type {type_name!r}")
        if registration.loader is None:
            raise RecipientNotFound(f"No loader registered for party type {type_name!r}")
        try:
            party = registration.loader(party_id)
        except LookupError as exc:
            raise RecipientNotFound(f"{type_name}#{party_id} not found") from exc
        if party is None:
            raise RecipientNotFound(f"{type_name}#{party_id} not found")
        return party

    def find_ref(self, ref: PartyRef) -> Any:
        return self.find(ref.type_name, ref.party_id)

    @property
    def type_names(self) -> list[str]:
        return sorted(self._by_name)

    def _lookup(self, obj: Any) -> PartyType | None:
        for klass in type(obj).__mro__:
            registration = self._by_class.get(klass)
            if registration is not None:
                return registration
        return None

    # ------------------------------------------------------------------
    # Capability accessors
    # ------------------------------------------------------------------

    def accessor(self, party: Any, request: str) -> Any:
        """Uniform capability contract for a messagable party.

        ``request`` is one of ``sender_name``, ``recipient_name``,
        ``forward_to``, ``optional_recipients`` (list of
        ``(identifier, parties, label)`` triples) or
        ``store_additional_recipients``.
        """
        if request == "sender_name":
            return self.sender_name(party)
        if request == "recipient_name":
            return self.recipient_name(party)
        if request == "forward_to":
            return self.forward_targets(party)
        if request == "optional_recipients":
            return [
                (group.identifier, self._select(party, group), self._label(party, group))
                for group in self.registration_for(party).options.optional_recipients
            ]
        if request == "store_additional_recipients":
            return self.stores_additional_recipients(party)
        raise ValueError(f"Invalid Request Argument: {request}")

    def sender_name(self, party: Any) -> str:
        registration = self.registration_for(party)
        return str(evaluate_option(party, registration.options.sender_name,
                                   registration.default_name(party)))

    def recipient_name(self, party: Any) -> str:
        registration = self.registration_for(party)
        return str(evaluate_option(party, registration.options.recipient_name,
                                   registration.default_name(party)))

    def forward_targets(self, party: Any) -> list[Any] | None:
        """Parties *party* forwards to, or ``None`` if it is terminal.

        Targets may be parties or ``(party, [group ids])`` pairs.  An empty
        list means "forwards to nobody", which still keeps the
        party itself out of the delivery set.
        """
        option = self.registration_for(party).options.forward_to
        if option is None:
            return None
        value = evaluate_option(party, option)
        if value is None:
            return None
        return self._as_parties(value)

    def stores_additional_recipients(self, party: Any) -> bool:
        option = self.registration_for(party).options.store_additional_recipients
        return bool(evaluate_option(party, option, False))

    def optional_recipient_group(self, party: Any, identifier: str) -> OptionalRecipientGroup:
        registration = self.registration_for(party)
        group = registration.options.group(str(identifier))
        if group is None:
            raise OptionalRecipientGroupNotFound(registration.type_name, str(identifier))
        return group

    def optional_recipients_for(self, party: Any, identifier: str) -> list[Any]:
        """Evaluate the selector of one optional recipient group."""
        return self._select(party, self.optional_recipient_group(party, identifier))

    def optional_recipient_label(self, party: Any, identifier: str) -> str:
        return self._label(party, self.optional_recipient_group(party, identifier))

    def handler_for(self, party: Any) -> Callable[[Any, dict[str, Any]], Any] | None:
        """Return the delivery handler for *party*, bound where needed.

        Handlers are called as ``handler(sender, payload)``.  A named
        handler is looked up on the recipient instance.
        """
        option = self.registration_for(party).options.handler
        if option is None:
            return None
        if isinstance(option, CallableOption):
            return option.func
        if isinstance(option, NamedMethod):
            method = getattr(party, option.name, None)
            if not callable(method):
                raise MessagableConfigurationError(
                    f"Expected {option.name!r} to be an instance method of "
                    f"{type(party).__name__}"
                )
            return method
        if callable(option.value):
            return option.value
        raise MessagableConfigurationError(
            f"Handler for {self.registration_for(party).type_name} is not callable"
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _select(self, party: Any, group: OptionalRecipientGroup) -> list[Any]:
        return self._as_parties(evaluate_option(party, group.selector))

    def _label(self, party: Any, group: OptionalRecipientGroup) -> str:
        return str(evaluate_option(party, group.label, group.identifier))

    def _as_parties(self, value: Any) -> list[Any]:
        if value is None:
            return []
        if self.is_messagable(value) or is_pair(value) or isinstance(value, (str, bytes)):
            return [value]
        if isinstance(value, Iterable):
            return list(value)
        return [value]


# Module-level default registry; import as
# ``from messagable.core.registry import default_registry, messagable``
default_registry = PartyRegistry()
messagable = default_registry.messagable

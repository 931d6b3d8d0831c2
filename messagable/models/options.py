"""Per-type messaging options and the invoke-or-return option helper.

Each configurable option is one of three shapes:

* ``FixedValue``     -- a constant, returned as-is.
* ``NamedMethod``    -- the name of an attribute on the party instance.
* ``CallableOption`` -- a function taking the party instance.

``evaluate_option`` is the only place that distinguishes them.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from messagable.core.errors import MessagableConfigurationError


class FixedValue(BaseModel):
    """A constant option value."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: Literal["fixed"] = "fixed"
    value: Any = None


class NamedMethod(BaseModel):
    """An option delegated to a named attribute of the party instance."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["method"] = "method"
    name: str


class CallableOption(BaseModel):
    """An option computed by calling ``func(party)``."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: Literal["callable"] = "callable"
    func: Callable[[Any], Any]


Option = Union[FixedValue, NamedMethod, CallableOption]


def as_option(raw: Any, *, strings_are_methods: bool = True) -> Option | None:
    """Coerce a raw configuration value into an ``Option``.

    ``None`` stays ``None`` (option not configured).  Strings name an
    instance method unless *strings_are_methods* is False, in which case
    they are literal text (used for optional-recipient labels).
    """
    if raw is None:
        return None
    if isinstance(raw, (FixedValue, NamedMethod, CallableOption)):
        return raw
    if isinstance(raw, str):
        return NamedMethod(name=raw) if strings_are_methods else FixedValue(value=raw)
    if callable(raw):
        return CallableOption(func=raw)
    return FixedValue(value=raw)


def evaluate_option(instance: Any, option: Option | None, default: Any = None) -> Any:
    """Resolve *option* against *instance*, returning *default* when unset."""
    if option is None:
        return default
    if isinstance(option, FixedValue):
        return option.value
    if isinstance(option, CallableOption):
        return option.func(instance)
    if not hasattr(instance, option.name):
        raise MessagableConfigurationError(
            f"Expected {option.name!r} to be an instance method of "
            f"{type(instance).__name__}"
        )
    attribute = getattr(instance, option.name)
    return attribute() if callable(attribute) else attribute


class OptionalRecipientGroup(BaseModel):
    """A named selector that may add recipients alongside the addressed party.

    ``label`` is evaluated against the addressed party every time it is
    displayed, so renamed groups show their current label.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    identifier: str
    selector: Option
    label: Option

    @classmethod
    def build(cls, identifier: str, selector: Any, label: Any = None) -> OptionalRecipientGroup:
        """Build a group from the ``(identifier, selector, label)`` triple form."""
        return cls(
            identifier=str(identifier),
            selector=as_option(selector),
            label=as_option(label if label is not None else str(identifier),
                            strings_are_methods=False),
        )


class MessagableOptions(BaseModel):
    """Immutable messaging configuration owned by one party type registration."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    sender_name: Option | None = None
    recipient_name: Option | None = None
    forward_to: Option | None = None
    optional_recipients: list[OptionalRecipientGroup] = Field(default_factory=list)
    handler: Option | None = None
    store_additional_recipients: Option | None = None

    @model_validator(mode="after")
    def _unique_group_identifiers(self) -> MessagableOptions:
        seen: set[str] = set()
        for group in self.optional_recipients:
            if group.identifier in seen:
                raise ValueError(
                    f"Duplicate optional recipient group identifier: {group.identifier!r}"
                )
            seen.add(group.identifier)
        return self

    @classmethod
    def from_kwargs(
        cls,
        *,
        sender_name: Any = None,
        recipient_name: Any = None,
        forward_to: Any = None,
        optional_recipients: list[Any] | None = None,
        handler: Any = None,
        store_additional_recipients: Any = None,
    ) -> MessagableOptions:
        """Build options from the loose keyword style used by ``@messagable``.

        ``optional_recipients`` accepts ``OptionalRecipientGroup`` instances
        or ``(identifier, selector[, label])`` tuples.
        """
        groups: list[OptionalRecipientGroup] = []
        for item in optional_recipients or []:
            if isinstance(item, OptionalRecipientGroup):
                groups.append(item)
            else:
                groups.append(OptionalRecipientGroup.build(*item))

        return cls(
            sender_name=as_option(sender_name),
            recipient_name=as_option(recipient_name),
            forward_to=as_option(forward_to),
            optional_recipients=groups,
            handler=as_option(handler),
            store_additional_recipients=as_option(store_additional_recipients),
        )

    def group(self, identifier: str) -> OptionalRecipientGroup | None:
        """Return the declared group with *identifier*, or ``None``."""
        for group in self.optional_recipients:
            if group.identifier == identifier:
                return group
        return None

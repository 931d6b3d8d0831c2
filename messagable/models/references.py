"""Party references and recipient specification entries.

Stored references keep the ``[type_name, id]`` array shape so other
readers of the message table (inboxes, UIs) can decode them without this
library.  Entries that requested optional recipient groups are stored as
``[[type_name, id], [group, ...]]``.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field

PartyId = Union[int, str]


class PartyRef(BaseModel):
    """Type name plus id of a messagable party."""

    model_config = ConfigDict(frozen=True)

    type_name: str
    party_id: PartyId

    def to_stored(self) -> list[Any]:
        return [self.type_name, self.party_id]

    @classmethod
    def from_stored(cls, raw: Any) -> PartyRef:
        type_name, party_id = raw
        return cls(type_name=type_name, party_id=party_id)

    def __str__(self) -> str:
        return f"{self.type_name}#{self.party_id}"


class OriginalRecipient(BaseModel):
    """One entry of the verbatim recipient list given to ``send``.

    ``groups`` is ``None`` for a bare party and a (possibly empty) list of
    optional recipient group identifiers otherwise.
    """

    model_config = ConfigDict(frozen=True)

    ref: PartyRef
    groups: list[str] | None = None

    def to_stored(self) -> list[Any]:
        if self.groups is None:
            return self.ref.to_stored()
        return [self.ref.to_stored(), list(self.groups)]

    @classmethod
    def from_stored(cls, raw: Any) -> OriginalRecipient:
        if raw and isinstance(raw[0], (list, tuple)):
            return cls(ref=PartyRef.from_stored(raw[0]), groups=[str(g) for g in raw[1]])
        return cls(ref=PartyRef.from_stored(raw))


class RecipientSpec(BaseModel):
    """In-memory recipient specification entry: a live party plus groups."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    party: Any
    groups: list[str] | None = Field(default=None)

    @property
    def has_groups(self) -> bool:
        return self.groups is not None


def normalize_entries(raw: Any) -> list[RecipientSpec]:
    """Turn the loose ``recipients`` argument of ``send`` into entries.

    Accepts a single party, a list of parties, ``(party, [groups])``
    pairs, or ``RecipientSpec`` instances.  A bare pair at top level
    (``send((group, ["tutors"]), ...)``) is treated as a single entry.
    """
    if raw is None:
        return []
    if isinstance(raw, RecipientSpec):
        return [raw]
    if is_pair(raw):
        return [as_entry(raw)]
    if isinstance(raw, (list, tuple, set, frozenset)):
        return [as_entry(item) for item in raw]
    return [RecipientSpec(party=raw)]


def as_entry(item: Any) -> RecipientSpec:
    """One entry: a party, a ``(party, groups)`` pair, or a ``RecipientSpec``."""
    if isinstance(item, RecipientSpec):
        return item
    if is_pair(item):
        party, groups = item
        return RecipientSpec(party=party, groups=[str(g) for g in _as_list(groups)])
    return RecipientSpec(party=item)


def is_pair(item: Any) -> bool:
    """A ``(party, groups)`` pair has a non-sequence head and a sequence tail."""
    return (
        isinstance(item, tuple)
        and len(item) == 2
        and not isinstance(item[0], (list, tuple))
        and isinstance(item[1], (list, tuple, set, frozenset, str))
    )


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Iterable):
        return list(value)
    return [value]

"""Recipient resolution — follows forward chains and optional recipient groups.

Turns a recipient specification into the flat list of terminal parties
that actually receive a message.  Each result remembers the top-level
entry that caused it and the hops taken to reach it, which is what
"why did X receive this" is answered from.

Ordering is depth-first pre-order over the input entries.  For an entry
that requests optional recipient groups, the group members are resolved
and appended before the addressed party's own resolution.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict

from messagable.core.errors import ForwardCycleDetected, OptionalRecipientGroupNotFound
from messagable.core.registry import PartyRegistry
from messagable.models.references import PartyRef, RecipientSpec, as_entry, normalize_entries

logger = logging.getLogger(__name__)


class ResolvedRecipient(BaseModel):
    """A terminal party produced by resolution, tagged with its cause."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    party: Any
    ref: PartyRef
    cause: PartyRef
    path: tuple[str, ...] = ()  # hops from the cause, e.g. ("Group#1", "tutors")


class RecipientResolver:
    """Expands recipient specifications into terminal parties.

    Parameters
    ----------
    registry:
        The party registry holding per-type messaging options.
    strict_optional_groups:
        If ``True`` (default), an unknown optional recipient group
        identifier raises ``OptionalRecipientGroupNotFound``.  Otherwise
        it is logged and expands to nobody.
    """

    def __init__(self, registry: PartyRegistry, *, strict_optional_groups: bool = True) -> None:
        self._registry = registry
        self._strict_optional_groups = strict_optional_groups

    def resolve(self, recipients: Any) -> list[ResolvedRecipient]:
        """Resolve a raw recipient specification.

        Duplicates are kept; callers that need a delivery set use
        :func:`dedupe`.

        Raises
        ------
        InvalidRecipient
            If an entry or expansion result is not messagable.
        OptionalRecipientGroupNotFound
            If a requested group is not declared (strict mode).
        ForwardCycleDetected
            If a ``forward_to`` chain revisits a party already on it.
        """
        result: list[ResolvedRecipient] = []
        for entry in normalize_entries(recipients):
            result.extend(self.resolve_entry(entry))
        return result

    def resolve_entry(self, entry: RecipientSpec) -> list[ResolvedRecipient]:
        """Resolve a single top-level entry; its base party is the cause."""
        cause = self._registry.ref_for(entry.party)
        result: list[ResolvedRecipient] = []
        self._expand(entry, cause, (), (), result)
        logger.debug("Resolved %s to %d recipient(s)", cause, len(result))
        return result

    def _expand(
        self,
        entry: RecipientSpec,
        cause: PartyRef,
        path: tuple[str, ...],
        forwarding: tuple[PartyRef, ...],
        result: list[ResolvedRecipient],
    ) -> None:
        party = entry.party

        if entry.groups:
            base = self._registry.ref_for(party)
            for identifier in entry.groups:
                for member in self._group_members(party, identifier):
                    self._expand(
                        RecipientSpec(party=member),
                        cause,
                        path + (str(base), identifier),
                        forwarding,
                        result,
                    )

        ref = self._registry.ref_for(party)
        targets = self._registry.forward_targets(party)
        if targets is None:
            result.append(ResolvedRecipient(party=party, ref=ref, cause=cause, path=path))
            return

        if ref in forwarding:
            cycle = [str(r) for r in forwarding[forwarding.index(ref):]] + [str(ref)]
            raise ForwardCycleDetected(cycle)

        for target in targets:
            self._expand(
                as_entry(target),
                cause,
                path + (str(ref),),
                forwarding + (ref,),
                result,
            )

    def _group_members(self, party: Any, identifier: str) -> list[Any]:
        try:
            return self._registry.optional_recipients_for(party, identifier)
        except OptionalRecipientGroupNotFound:
            if self._strict_optional_groups:
                raise
            logger.warning(
                "Ignoring unknown optional recipient group %r on %s",
                identifier,
                self._registry.ref_for(party),
            )
            return []


def dedupe(recipients: list[ResolvedRecipient]) -> list[ResolvedRecipient]:
    """Keep the first occurrence of each party reference."""
    seen: set[PartyRef] = set()
    unique: list[ResolvedRecipient] = []
    for recipient in recipients:
        if recipient.ref in seen:
            continue
        seen.add(recipient.ref)
        unique.append(recipient)
    return unique

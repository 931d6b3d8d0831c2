"""Unit tests for RecipientResolver — forwarding, optional groups, ordering."""

from __future__ import annotations

import pytest

from conftest import Course, Group, Student, Tutor, User
from messagable.core.errors import (
    ForwardCycleDetected,
    InvalidRecipient,
    OptionalRecipientGroupNotFound,
)
from messagable.core.resolver import RecipientResolver, dedupe
from messagable.models.options import MessagableOptions
from messagable.models.references import PartyRef


class Hub:
    """Forwards to whatever entries it holds, pairs included."""

    def __init__(self, id, targets=()):
        self.id = id
        self.targets = targets


def _ids(resolved):
    return [str(r.ref) for r in resolved]


@pytest.fixture
def resolver(registry) -> RecipientResolver:
    return RecipientResolver(registry)


class TestTerminalRecipients:
    def test_terminal_party_resolves_to_itself(self, resolver):
        user = User(2)
        resolved = resolver.resolve([user])
        assert len(resolved) == 1
        assert resolved[0].party is user
        assert resolved[0].cause == PartyRef(type_name="User", party_id=2)
        assert resolved[0].path == ()

    def test_empty_recipient_list(self, resolver):
        assert resolver.resolve([]) == []

    def test_duplicates_are_kept_until_deduped(self, resolver):
        user = User(2)
        resolved = resolver.resolve([user, user])
        assert len(resolved) == 2
        assert len(dedupe(resolved)) == 1


class TestForwarding:
    def test_forwarding_party_is_replaced_by_targets(self, resolver):
        t1, t2 = Tutor(1), Tutor(2)
        group = Group(1, students=[t1, t2])
        resolved = resolver.resolve([group])
        assert [r.party for r in resolved] == [t1, t2]
        assert all(r.cause == PartyRef(type_name="Group", party_id=1) for r in resolved)

    def test_forward_chain_is_transitive(self, resolver):
        s1, s2 = Student(1), Student(2)
        inner = Group(1, students=[s1])
        other = Group(2, students=[s2])
        course = Course(1, groups=[inner, other])
        resolved = resolver.resolve([course])
        assert _ids(resolved) == ["Student#1", "Student#2"]
        assert resolved[0].path == ("Course#1", "Group#1")

    def test_no_forwarding_party_in_results(self, resolver, registry):
        course = Course(1, groups=[Group(1, students=[Student(1)]), Group(2)])
        for recipient in resolver.resolve([course]):
            assert registry.forward_targets(recipient.party) is None

    def test_forwarding_to_nobody_yields_nothing(self, resolver):
        assert resolver.resolve([Group(1)]) == []

    def test_diamond_is_not_a_cycle(self, resolver):
        shared = Student(7)
        course = Course(1, groups=[Group(1, students=[shared]), Group(2, students=[shared])])
        resolved = resolver.resolve([course])
        assert _ids(resolved) == ["Student#7", "Student#7"]
        assert _ids(dedupe(resolved)) == ["Student#7"]

    def test_forward_targets_may_request_optional_groups(self, resolver, registry):
        registry.register(Hub, MessagableOptions.from_kwargs(forward_to=lambda h: h.targets))
        tutor = Tutor(1)
        group = Group(2, students=[Student(1)], tutors=[tutor])
        hub = Hub(1, targets=[(group, ["tutors"]), User(4)])

        resolved = resolver.resolve([hub])
        assert _ids(resolved) == ["Tutor#1", "Student#1", "User#4"]
        assert resolved[0].path == ("Hub#1", "Group#2", "tutors")

    def test_single_pair_target(self, resolver, registry):
        registry.register(Hub, MessagableOptions.from_kwargs(forward_to=lambda h: h.targets))
        group = Group(2, tutors=[Tutor(1)])
        assert _ids(resolver.resolve([Hub(1, targets=(group, ["tutors"]))])) == ["Tutor#1"]

    def test_cycle_through_pair_target(self, resolver, registry):
        registry.register(Hub, MessagableOptions.from_kwargs(forward_to=lambda h: h.targets))
        hub = Hub(1)
        hub.targets = [(hub, [])]
        with pytest.raises(ForwardCycleDetected):
            resolver.resolve([hub])


class TestOptionalRecipients:
    def test_group_members_come_before_base(self, resolver):
        s1, s2 = Student(1), Student(2)
        tutor = Tutor(1)
        group = Group(1, students=[s1, s2], tutors=[tutor])
        resolved = resolver.resolve([(group, ["tutors"])])
        assert _ids(resolved) == ["Tutor#1", "Student#1", "Student#2"]
        assert resolved[0].path == ("Group#1", "tutors")

    def test_multiple_groups_in_order(self, resolver):
        group = Group(1, students=[Student(1)], tutors=[Tutor(1)], leads=[User(5)])
        resolved = resolver.resolve([(group, ["leads", "tutors"])])
        assert _ids(resolved) == ["User#5", "Tutor#1", "Student#1"]

    def test_optional_members_are_resolved_recursively(self, resolver):
        nested = Group(2, students=[Student(9)])
        group = Group(1, tutors=[nested])
        resolved = resolver.resolve([(group, ["tutors"])])
        assert _ids(resolved) == ["Student#9"]
        assert resolved[0].path == ("Group#1", "tutors", "Group#2")

    def test_empty_group_list_behaves_like_bare(self, resolver):
        group = Group(1, students=[Student(1)], tutors=[Tutor(1)])
        assert _ids(resolver.resolve([(group, [])])) == ["Student#1"]

    def test_unknown_group_is_fatal_by_default(self, resolver):
        with pytest.raises(OptionalRecipientGroupNotFound):
            resolver.resolve([(Group(1), ["mentors"])])

    def test_unknown_group_lenient_mode(self, registry, caplog):
        resolver = RecipientResolver(registry, strict_optional_groups=False)
        group = Group(1, students=[Student(1)])
        with caplog.at_level("WARNING"):
            resolved = resolver.resolve([(group, ["mentors"])])
        assert _ids(resolved) == ["Student#1"]
        assert "mentors" in caplog.text


class TestInvalidRecipients:
    def test_unregistered_entry(self, resolver):
        with pytest.raises(InvalidRecipient):
            resolver.resolve(["not a party"])

    def test_unregistered_forward_target(self, resolver):
        with pytest.raises(InvalidRecipient):
            resolver.resolve([Group(1, students=[object()])])

    def test_unregistered_optional_member(self, resolver):
        with pytest.raises(InvalidRecipient):
            resolver.resolve([(Group(1, tutors=[42]), ["tutors"])])

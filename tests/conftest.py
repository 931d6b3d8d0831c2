"""Shared test fixtures for Messagable."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from messagable.core.fanout import FanOutCoordinator
from messagable.core.message_store import MessageStore
from messagable.core.provenance import ProvenanceCodec
from messagable.core.registry import PartyRegistry
from messagable.models.options import MessagableOptions


# ---------------------------------------------------------------------------
# Party record types used across test modules
# ---------------------------------------------------------------------------


class Record:
    def __init__(self, id: Any, name: str = "") -> None:
        self.id = id
        self.name = name or f"{type(self).__name__.lower()}-{id}"

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id}>"


class User(Record):
    def display_name(self) -> str:
        return f"User {self.name}"


class Student(Record):
    pass


class Tutor(Record):
    pass


class Group(Record):
    """Forwards to its students; tutors and leads are optional recipients."""

    def __init__(self, id: Any, students=(), tutors=(), leads=(), name: str = "") -> None:
        super().__init__(id, name)
        self.students = list(students)
        self.tutors = list(tutors)
        self.leads = list(leads)
        self.leads_label = "Leads"


class CcGroup(Group):
    """A group whose recipients see each other."""


class Course(Record):
    """Forwards to its groups; every recipient sees everyone else."""

    def __init__(self, id: Any, groups=(), name: str = "") -> None:
        super().__init__(id, name)
        self.groups = list(groups)


class Mailbox(Record):
    """Receives messages through a handler instead of the store."""

    def __init__(self, id: Any, name: str = "") -> None:
        super().__init__(id, name)
        self.delivered: list[tuple[Any, dict[str, Any]]] = []

    def receive(self, sender: Any, payload: dict[str, Any]) -> None:
        self.delivered.append((sender, payload))


class Outsider:
    """Not registered anywhere."""

    id = 99


class Directory:
    """In-memory record lookup standing in for the application's database."""

    def __init__(self) -> None:
        self._records: dict[tuple[str, Any], Any] = {}

    def add(self, record: Any, type_name: str | None = None) -> Any:
        self._records[(type_name or type(record).__name__, record.id)] = record
        return record

    def remove(self, record: Any, type_name: str | None = None) -> None:
        self._records.pop((type_name or type(record).__name__, record.id), None)

    def loader(self, type_name: str) -> Callable[[Any], Any]:
        return lambda party_id: self._records.get((type_name, party_id))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def directory() -> Directory:
    return Directory()


@pytest.fixture
def registry(directory: Directory) -> PartyRegistry:
    """Provide a PartyRegistry with the standard test party types."""
    registry = PartyRegistry()
    registry.register(
        User,
        MessagableOptions.from_kwargs(
            sender_name=lambda u: u.name,
            recipient_name="display_name",
        ),
        loader=directory.loader("User"),
    )
    registry.register(Student, loader=directory.loader("Student"))
    registry.register(Tutor, loader=directory.loader("Tutor"))
    group_options = dict(
        forward_to="students",
        optional_recipients=[
            ("tutors", "tutors", "Tutors"),
            ("leads", lambda g: g.leads, lambda g: g.leads_label),
        ],
    )
    registry.register(
        Group,
        MessagableOptions.from_kwargs(**group_options),
        loader=directory.loader("Group"),
    )
    registry.register(
        CcGroup,
        MessagableOptions.from_kwargs(store_additional_recipients=True, **group_options),
        loader=directory.loader("CcGroup"),
    )
    registry.register(
        Course,
        MessagableOptions.from_kwargs(forward_to="groups", store_additional_recipients=True),
        loader=directory.loader("Course"),
    )
    registry.register(
        Mailbox,
        MessagableOptions.from_kwargs(handler="receive"),
        loader=directory.loader("Mailbox"),
    )
    return registry


@pytest.fixture
def store(tmp_path: Path) -> MessageStore:
    """Provide a fresh MessageStore backed by a temp SQLite database."""
    return MessageStore(tmp_path / "messages.db")


@pytest.fixture
def coordinator(store: MessageStore, registry: PartyRegistry) -> FanOutCoordinator:
    return FanOutCoordinator(store, registry)


@pytest.fixture
def codec(registry: PartyRegistry) -> ProvenanceCodec:
    return ProvenanceCodec(registry)


@pytest.fixture
def make_party(directory: Directory) -> Callable[..., Any]:
    """Factory fixture: build a party and make it loadable by type and id."""

    def _factory(cls: type, id: Any, *args: Any, **kwargs: Any) -> Any:
        return directory.add(cls(id, *args, **kwargs))

    return _factory


@pytest.fixture
def sender(make_party: Callable[..., Any]) -> User:
    return make_party(User, 1, name="alice")

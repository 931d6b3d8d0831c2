"""Adversarial tests — a failing send must leave no message behind.

These tests verify that:
1. A validator rejecting any one message rolls back every message
2. A raising handler rolls back messages created before it ran
3. Resolution errors abort before the store is touched
4. The sender copy is never written for a failed send
5. Concurrent sends on one store commit or roll back independently
"""

from __future__ import annotations

import threading

import pytest

from conftest import Group, Mailbox, Outsider, Student, User
from messagable.core.errors import (
    DeliveryFailed,
    InvalidRecipient,
    InvalidSender,
    MessagableError,
    OptionalRecipientGroupNotFound,
)
from messagable.core.fanout import FanOutCoordinator
from messagable.core.message_store import MessageStore, require_subject
from messagable.models.options import MessagableOptions


def _reject_recipient(party_id):
    def _validator(message):
        if message.recipient.party_id == party_id and not message.sender_copy:
            raise ValueError(f"recipient {party_id} refuses mail")

    return _validator


class TestValidationFailure:
    def test_one_invalid_message_rolls_back_all(self, tmp_path, registry, sender):
        store = MessageStore(tmp_path / "m.db", validators=[require_subject, _reject_recipient(3)])
        coordinator = FanOutCoordinator(store, registry)
        group = Group(1, students=[Student(1), Student(2), Student(3), Student(4)])

        with pytest.raises(DeliveryFailed, match="refuses mail"):
            coordinator.send(sender, group, "Hi", "Body")
        assert store.count() == 0

    def test_blank_subject_rejected_before_sender_copy(self, coordinator, store, sender):
        with pytest.raises(DeliveryFailed):
            coordinator.send(sender, [User(2), User(3)], "   ", "Body")
        assert store.count() == 0

    def test_sender_copy_rejection_rolls_back_recipients(self, tmp_path, registry, sender):
        def _no_sender_copies(message):
            if message.sender_copy:
                raise ValueError("sender copies disabled")

        store = MessageStore(tmp_path / "m.db", validators=[_no_sender_copies])
        coordinator = FanOutCoordinator(store, registry)
        with pytest.raises(DeliveryFailed, match="sender copies disabled"):
            coordinator.send(sender, [User(2), User(3)], "Hi", "Body")
        assert store.count() == 0

    def test_delivery_failed_is_a_messagable_error(self, coordinator, sender):
        with pytest.raises(MessagableError):
            coordinator.send(sender, User(2), "", "Body")


class TestHandlerFailure:
    @pytest.mark.parametrize("exc_type", [RuntimeError, OSError, KeyError, ValueError])
    def test_any_handler_exception_aborts(self, coordinator, store, sender, registry, exc_type):
        def _explode(sender, payload):
            raise exc_type("handler exploded")

        registry.register(Mailbox, MessagableOptions.from_kwargs(handler=_explode))
        with pytest.raises(DeliveryFailed):
            coordinator.send(sender, [User(2), Mailbox(1), User(3)], "Hi", "Body")
        assert store.count() == 0

    def test_messagable_errors_from_handlers_pass_through(
        self, coordinator, store, sender, registry
    ):
        def _bad_forward(sender, payload):
            raise InvalidRecipient("Invalid Recipient: downstream")

        registry.register(Mailbox, MessagableOptions.from_kwargs(handler=_bad_forward))
        with pytest.raises(InvalidRecipient, match="downstream"):
            coordinator.send(sender, [User(2), Mailbox(1)], "Hi", "Body")
        assert store.count() == 0

    def test_handlers_before_the_failure_already_ran(self, tmp_path, registry, sender):
        store = MessageStore(tmp_path / "m.db", validators=[_reject_recipient(9)])
        coordinator = FanOutCoordinator(store, registry)
        mailbox = Mailbox(1)
        with pytest.raises(DeliveryFailed):
            coordinator.send(sender, [mailbox, User(9)], "Hi", "Body")
        # Handler side effects are outside the store transaction.
        assert len(mailbox.delivered) == 1
        assert store.count() == 0


class TestResolutionFailure:
    def test_unregistered_recipient(self, coordinator, store, sender):
        with pytest.raises(InvalidRecipient):
            coordinator.send(sender, [User(2), Outsider()], "Hi", "Body")
        assert store.count() == 0

    def test_unregistered_forward_target(self, coordinator, store, sender):
        with pytest.raises(InvalidRecipient):
            coordinator.send(sender, Group(1, students=[Student(1), "student-2"]), "Hi", "Body")
        assert store.count() == 0

    def test_unknown_optional_group(self, coordinator, store, sender):
        with pytest.raises(OptionalRecipientGroupNotFound):
            coordinator.send(sender, [User(2), (Group(1), ["mentors"])], "Hi", "Body")
        assert store.count() == 0

    def test_unregistered_sender(self, coordinator, store):
        with pytest.raises(InvalidSender):
            coordinator.send(Outsider(), User(2), "Hi", "Body")
        with pytest.raises(InvalidSender):
            coordinator.send(None, User(2), "Hi", "Body")
        assert store.count() == 0

    def test_lenient_groups_still_deliver(self, store, registry, sender):
        coordinator = FanOutCoordinator(store, registry, strict_optional_groups=False)
        report = coordinator.send(sender, (Group(1, students=[Student(1)]), ["mentors"]), "Hi", "Body")
        assert report.delivery_count == 1


class TestConcurrentSends:
    def test_failing_send_does_not_take_another_thread_with_it(self, tmp_path, registry, sender):
        store = MessageStore(tmp_path / "m.db", validators=[require_subject, _reject_recipient(9)])
        coordinator = FanOutCoordinator(store, registry)
        started, release = threading.Event(), threading.Event()
        failures: list[BaseException] = []

        def _blocking_handler(sender, payload):
            started.set()
            release.wait(timeout=5)

        registry.register(Mailbox, MessagableOptions.from_kwargs(handler=_blocking_handler))

        def _doomed_send():
            try:
                coordinator.send(sender, [Mailbox(1), User(9)], "Hi", "Body")
            except DeliveryFailed as exc:
                failures.append(exc)

        worker = threading.Thread(target=_doomed_send)
        worker.start()
        assert started.wait(timeout=5)
        try:
            report = coordinator.send(User(2), [User(3)], "Independent", "Body")
        finally:
            release.set()
            worker.join(timeout=5)

        assert len(failures) == 1
        assert store.get(report.message_ids[0]) is not None
        assert store.get(report.sender_copy_id) is not None
        assert store.count() == 2

    def test_transaction_is_not_visible_to_other_threads(self, store):
        seen: list[bool] = []
        with store.transaction() as conn:
            worker = threading.Thread(target=lambda: seen.append(store._active is conn))
            worker.start()
            worker.join(timeout=5)
            assert store._active is conn
        assert seen == [False]

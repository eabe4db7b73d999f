from datetime import datetime

import pytest

from conftest import listing_payload
from donation_market.errors import ValidationError
from donation_market.models.db_models import Message
from donation_market.models.schemas import ListingCreate
from donation_market.services.listings import ListingService
from donation_market.services.messaging import MessageService


@pytest.fixture
def listing(db, users):
    return ListingService(db).create_listing(users["owner"].id, ListingCreate(**listing_payload()))


def test_send_message_defaults_to_general_scope(db, users):
    owner, other = users["owner"], users["other"]
    message = MessageService(db).send_message(other.id, owner.id, "Hi there", "undefined")

    assert message.id is not None
    assert message.listing_id is None
    assert message.read is False
    assert message.created_at is not None


def test_send_message_scoped_to_listing(db, users, listing):
    owner, other = users["owner"], users["other"]
    message = MessageService(db).send_message(other.id, owner.id, "Is it still free?", str(listing.id))
    assert message.listing_id == listing.id


@pytest.mark.parametrize(
    "recipient, content, scope",
    [
        (None, "hello", None),
        ("owner", None, None),
        ("owner", "   ", None),
        ("other", "talking to myself", None),
        (999, "hello", None),
        ("owner", "hello", 999),
        ("owner", "hello", "abc"),
    ],
)
def test_send_message_validation(db, users, recipient, content, scope):
    if isinstance(recipient, str):
        recipient = users[recipient].id
    with pytest.raises(ValidationError):
        MessageService(db).send_message(users["other"].id, recipient, content, scope)
    assert db.query(Message).count() == 0


def test_mark_read_only_touches_one_scope(db, users, listing):
    owner, other = users["owner"], users["other"]
    service = MessageService(db)
    service.send_message(other.id, owner.id, "About the table", listing.id)
    service.send_message(other.id, owner.id, "Unrelated question")

    assert service.get_unread_count(owner.id) == 2

    assert service.mark_thread_read(owner.id, other.id, listing.id) == 1
    assert service.get_unread_count(owner.id) == 1

    # Already read: nothing left to flip.
    assert service.mark_thread_read(owner.id, other.id, listing.id) == 0

    assert service.mark_thread_read(owner.id, other.id, "general") == 1
    assert service.get_unread_count(owner.id) == 0


def test_mark_read_ignores_own_messages(db, users):
    owner, other = users["owner"], users["other"]
    service = MessageService(db)
    service.send_message(owner.id, other.id, "Hello")

    assert service.mark_thread_read(owner.id, other.id) == 0
    assert service.get_unread_count(other.id) == 1


def test_mark_read_requires_counterparty(db, users):
    with pytest.raises(ValidationError):
        MessageService(db).mark_thread_read(users["owner"].id, None)


def test_thread_history_is_chronological_and_scoped(db, users, listing):
    owner, other = users["owner"], users["other"]
    t = datetime(2025, 3, 1, 12, 0, 0)
    db.add_all(
        [
            Message(sender_id=other.id, recipient_id=owner.id, listing_id=listing.id, content="second", created_at=t),
            Message(sender_id=owner.id, recipient_id=other.id, listing_id=listing.id, content="first",
                    created_at=t.replace(hour=11)),
            Message(sender_id=other.id, recipient_id=owner.id, listing_id=None, content="general", created_at=t),
        ]
    )
    db.commit()

    history = MessageService(db).get_thread_history(owner.id, other.id, listing.id)
    assert [m.content for m in history] == ["first", "second"]

    general = MessageService(db).get_thread_history(other.id, owner.id, None)
    assert [m.content for m in general] == ["general"]

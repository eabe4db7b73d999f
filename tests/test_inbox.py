from datetime import datetime, timedelta

from conftest import listing_payload
from donation_market.models.db_models import Message
from donation_market.models.schemas import ListingCreate
from donation_market.services.inbox import InboxService
from donation_market.services.listings import ListingService

T0 = datetime(2025, 3, 1, 9, 0, 0)


def _add(db, sender, recipient, content, listing_id=None, minutes=0, read=False):
    message = Message(
        sender_id=sender.id,
        recipient_id=recipient.id,
        listing_id=listing_id,
        content=content,
        read=read,
        created_at=T0 + timedelta(minutes=minutes),
    )
    db.add(message)
    db.commit()
    return message


def test_listing_and_general_threads_are_separate_rows(db, users):
    owner, other = users["owner"], users["other"]
    listing = ListingService(db).create_listing(owner.id, ListingCreate(**listing_payload()))

    _add(db, other, owner, "Is the table free?", listing_id=listing.id, minutes=1)
    _add(db, owner, other, "Yes it is", listing_id=listing.id, minutes=2)
    _add(db, other, owner, "Unrelated hello", minutes=3)

    inbox = InboxService(db).get_inbox(owner.id)

    assert len(inbox) == 2
    general, scoped = inbox
    assert general.thread_key == f"{other.id}:general"
    assert general.scope_label == "General"
    assert general.listing_id is None
    assert general.is_unread is True
    assert general.unread_count == 1

    assert scoped.thread_key == f"{other.id}:{listing.id}"
    assert scoped.last_message == "Yes it is"
    assert scoped.listing_title == "Oak dining table"
    assert scoped.listing_image == listing.image_urls[0]
    assert scoped.counterparty.id == other.id
    # The owner sent the latest message, but an older one is still unread.
    assert scoped.is_unread is True
    assert scoped.unread_count == 1


def test_inbox_seen_from_the_other_side(db, users):
    owner, other = users["owner"], users["other"]
    _add(db, other, owner, "Hello", minutes=1)

    inbox = InboxService(db).get_inbox(other.id)
    assert len(inbox) == 1
    assert inbox[0].counterparty.first_name == owner.first_name
    assert inbox[0].is_unread is False


def test_threads_ordered_by_latest_activity(db, users):
    owner, other, admin = users["owner"], users["other"], users["admin"]
    _add(db, other, owner, "old", minutes=1)
    _add(db, admin, owner, "newer", minutes=5)
    _add(db, other, owner, "newest", minutes=9)

    inbox = InboxService(db).get_inbox(owner.id)
    assert [row.last_message for row in inbox] == ["newest", "newer"]
    assert inbox[0].unread_count == 2


def test_equal_timestamps_order_deterministically(db, users):
    owner, other, admin = users["owner"], users["other"], users["admin"]
    _add(db, other, owner, "from other", minutes=1)
    _add(db, admin, owner, "from admin", minutes=1)

    first = [row.thread_key for row in InboxService(db).get_inbox(owner.id)]
    second = [row.thread_key for row in InboxService(db).get_inbox(owner.id)]

    assert first == second
    assert first[0] == f"{admin.id}:general"


def test_empty_inbox(db, users):
    assert InboxService(db).get_inbox(users["owner"].id) == []

"""
Thread identity.

There is no conversation table: a thread is every message that shares one
(counterparty, listing scope) key, as seen from the current user. Two threads
with the same two people but different listings never merge, so history and
read state cannot leak between unrelated items.
"""

from typing import Dict, Iterable, List, NamedTuple, Optional, Union

from donation_market.errors import ValidationError
from donation_market.models.db_models import Message

GENERAL_SCOPE = "general"

# Values some clients send when they have no listing id at hand.
_GENERAL_MARKERS = {"", "undefined", "null", "none", GENERAL_SCOPE}


def normalize_listing_scope(value: Union[int, str, None]) -> Optional[int]:
    """Map caller-supplied scope values onto a listing id, or None for general."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"Invalid listing id: {value!r}")
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.lower() in _GENERAL_MARKERS:
        return None
    if text.isascii() and text.isdigit():
        return int(text)
    raise ValidationError(f"Invalid listing id: {value!r}")


class ThreadKey(NamedTuple):
    counterparty_id: int
    listing_id: Optional[int]

    @property
    def scope(self) -> str:
        return GENERAL_SCOPE if self.listing_id is None else str(self.listing_id)

    def __str__(self) -> str:
        return f"{self.counterparty_id}:{self.scope}"


def counterparty_of(message: Message, user_id: int) -> int:
    return message.recipient_id if message.sender_id == user_id else message.sender_id


def thread_key_for(message: Message, user_id: int) -> ThreadKey:
    return ThreadKey(counterparty_of(message, user_id), message.listing_id)


def is_unread_for(message: Message, user_id: int) -> bool:
    return message.recipient_id == user_id and not message.read


class Thread:
    def __init__(self, key: ThreadKey, last_message: Message):
        self.key = key
        self.last_message = last_message
        self.message_count = 0
        self.unread_count = 0

    @property
    def has_unread(self) -> bool:
        return self.unread_count > 0

    def fold(self, message: Message, user_id: int) -> None:
        self.message_count += 1
        if is_unread_for(message, user_id):
            self.unread_count += 1


def resolve_threads(messages: Iterable[Message], user_id: int) -> List[Thread]:
    """Partition a newest-first message log into threads.

    The first message seen for a key becomes the thread's preview; later
    (older) ones only contribute to the unread count. Threads come back in the
    order their newest message was seen.
    """
    threads: Dict[ThreadKey, Thread] = {}
    for message in messages:
        key = thread_key_for(message, user_id)
        thread = threads.get(key)
        if thread is None:
            thread = Thread(key, message)
            threads[key] = thread
        thread.fold(message, user_id)
    return list(threads.values())

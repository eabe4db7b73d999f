"""
Repository abstraction for the message log.
Messages are append-only: the only mutation is flipping ``read`` to True.
Writes are flushed, not committed; the calling service owns the transaction.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session, selectinload

from donation_market.models.db_models import Message


def _scope_filter(listing_id: Optional[int]):
    # Exact scope match: the general scope only ever matches NULL.
    if listing_id is None:
        return Message.listing_id.is_(None)
    return Message.listing_id == listing_id


class MessageRepository(ABC):
    """Abstract interface for message storage"""

    @abstractmethod
    def add(self, message: Message) -> Message:
        """Append a message to the log"""
        pass

    @abstractmethod
    def list_for_user(self, user_id: int) -> List[Message]:
        """All messages sent or received by the user, newest first"""
        pass

    @abstractmethod
    def list_thread(self, user_id: int, counterparty_id: int, listing_id: Optional[int]) -> List[Message]:
        """Messages between two users in one scope, oldest first"""
        pass

    @abstractmethod
    def count_unread(self, user_id: int) -> int:
        """Unread messages addressed to the user, across all threads"""
        pass

    @abstractmethod
    def mark_read(self, user_id: int, counterparty_id: int, listing_id: Optional[int]) -> int:
        """Flip unread messages from counterparty to user in one scope; return how many"""
        pass

    @abstractmethod
    def delete_for_listing(self, listing_id: int) -> int:
        """Remove every message scoped to a listing; return how many"""
        pass


class SqlAlchemyMessageRepository(MessageRepository):
    """SQLAlchemy implementation of MessageRepository"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, message: Message) -> Message:
        self.db.add(message)
        self.db.flush()
        return message

    def list_for_user(self, user_id: int) -> List[Message]:
        return (
            self.db.query(Message)
            .options(
                selectinload(Message.sender),
                selectinload(Message.recipient),
                selectinload(Message.listing),
            )
            .filter(or_(Message.sender_id == user_id, Message.recipient_id == user_id))
            .order_by(Message.created_at.desc(), Message.id.desc())
            .all()
        )

    def list_thread(self, user_id: int, counterparty_id: int, listing_id: Optional[int]) -> List[Message]:
        return (
            self.db.query(Message)
            .filter(
                or_(
                    and_(Message.sender_id == user_id, Message.recipient_id == counterparty_id),
                    and_(Message.sender_id == counterparty_id, Message.recipient_id == user_id),
                ),
                _scope_filter(listing_id),
            )
            .order_by(Message.created_at.asc(), Message.id.asc())
            .all()
        )

    def count_unread(self, user_id: int) -> int:
        return (
            self.db.query(Message)
            .filter(Message.recipient_id == user_id, Message.read.is_(False))
            .count()
        )

    def mark_read(self, user_id: int, counterparty_id: int, listing_id: Optional[int]) -> int:
        return (
            self.db.query(Message)
            .filter(
                Message.sender_id == counterparty_id,
                Message.recipient_id == user_id,
                Message.read.is_(False),
                _scope_filter(listing_id),
            )
            .update({Message.read: True}, synchronize_session=False)
        )

    def delete_for_listing(self, listing_id: int) -> int:
        return (
            self.db.query(Message)
            .filter(Message.listing_id == listing_id)
            .delete(synchronize_session=False)
        )

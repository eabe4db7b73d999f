import logging
from typing import List, Optional, Union

from sqlalchemy.orm import Session

from donation_market.db import commit, utcnow
from donation_market.errors import ValidationError
from donation_market.models.db_models import Listing, Message, User
from donation_market.repositories import MessageRepository, SqlAlchemyMessageRepository
from donation_market.services.threads import normalize_listing_scope

logger = logging.getLogger(__name__)

Scope = Union[int, str, None]


class MessageService:
    """Message log writes plus read state.

    - send_message appends to the log
    - get_unread_count backs the inbox badge and needs no thread resolution
    - mark_thread_read acknowledges one (counterparty, scope) thread only
    """

    def __init__(self, db: Session, repository: Optional[MessageRepository] = None):
        self.db = db
        self.repository = repository or SqlAlchemyMessageRepository(db)

    def send_message(
        self,
        sender_id: int,
        recipient_id: Optional[int],
        content: Optional[str],
        listing_id: Scope = None,
    ) -> Message:
        scope = normalize_listing_scope(listing_id)

        if not recipient_id or content is None or not content.strip():
            raise ValidationError("Missing data: recipient and message content are required.")
        if recipient_id == sender_id:
            raise ValidationError("You cannot send a message to yourself.")
        if self.db.get(User, recipient_id) is None:
            raise ValidationError("Recipient not found.")
        if scope is not None and self.db.get(Listing, scope) is None:
            raise ValidationError("Listing not found.")

        message = self.repository.add(
            Message(
                sender_id=sender_id,
                recipient_id=recipient_id,
                listing_id=scope,
                content=content,
                read=False,
                created_at=utcnow(),
            )
        )
        commit(self.db, "sending message")
        self.db.refresh(message)
        return message

    def get_thread_history(self, user_id: int, counterparty_id: int, listing_id: Scope = None) -> List[Message]:
        return self.repository.list_thread(user_id, counterparty_id, normalize_listing_scope(listing_id))

    def get_unread_count(self, user_id: int) -> int:
        return self.repository.count_unread(user_id)

    def mark_thread_read(self, user_id: int, counterparty_id: int, listing_id: Scope = None) -> int:
        """Flip unread messages from counterparty in exactly this scope.

        Messages that land after the UPDATE runs stay unread.
        """
        if not counterparty_id:
            raise ValidationError("Sender ID required.")
        updated = self.repository.mark_read(user_id, counterparty_id, normalize_listing_scope(listing_id))
        commit(self.db, "marking messages as read")
        if updated:
            logger.debug("User %s read %s messages from %s", user_id, updated, counterparty_id)
        return updated

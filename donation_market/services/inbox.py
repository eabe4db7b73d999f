from typing import List, Optional

from sqlalchemy.orm import Session

from donation_market.models.schemas import Counterparty, ThreadSummary
from donation_market.repositories import MessageRepository, SqlAlchemyMessageRepository
from donation_market.services.threads import Thread, resolve_threads

GENERAL_LABEL = "General"


class InboxService:
    """One row per (counterparty, listing scope) thread, newest activity first."""

    def __init__(self, db: Session, repository: Optional[MessageRepository] = None):
        self.db = db
        self.repository = repository or SqlAlchemyMessageRepository(db)

    @staticmethod
    def _summarize(thread: Thread, user_id: int) -> ThreadSummary:
        last = thread.last_message
        other = last.recipient if last.sender_id == user_id else last.sender
        listing = last.listing if last.listing_id is not None else None

        return ThreadSummary(
            thread_key=str(thread.key),
            counterparty=Counterparty(id=other.id, first_name=other.first_name, last_name=other.last_name),
            last_message=last.content,
            last_message_at=last.created_at,
            is_unread=thread.has_unread,
            unread_count=thread.unread_count,
            listing_id=last.listing_id,
            listing_title=listing.title if listing else None,
            listing_image=(listing.image_urls or [None])[0] if listing else None,
            scope_label=listing.title if listing else GENERAL_LABEL,
        )

    def get_inbox(self, user_id: int) -> List[ThreadSummary]:
        threads = resolve_threads(self.repository.list_for_user(user_id), user_id)
        # Newest first; message id breaks timestamp ties.
        threads.sort(
            key=lambda t: (t.last_message.created_at, t.last_message.id),
            reverse=True,
        )
        return [self._summarize(t, user_id) for t in threads]

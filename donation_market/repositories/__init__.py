from .message_repository import MessageRepository, SqlAlchemyMessageRepository

__all__ = ['MessageRepository', 'SqlAlchemyMessageRepository']

import logging
from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from donation_market.config import settings
from donation_market.errors import ServerError

logger = logging.getLogger(__name__)

connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(settings.DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


class Base(DeclarativeBase):
    pass


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def commit(db: Session, action: str) -> None:
    """Commit the unit of work, surfacing persistence failures as ServerError.

    Failures are rolled back and logged, never retried.
    """
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Database error while %s", action)
        raise ServerError(f"Server error while {action}.")


def utcnow() -> datetime:
    """Naive UTC timestamp, the form SQLite hands back for DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

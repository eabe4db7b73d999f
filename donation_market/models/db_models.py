from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from donation_market.db import Base, utcnow


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    city: Mapped[str | None] = mapped_column(String(120), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="USER")

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    listings: Mapped[list["Listing"]] = relationship(
        back_populates="owner", foreign_keys="Listing.owner_id"
    )


class Listing(Base):
    __tablename__ = "listings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    sub_category: Mapped[str | None] = mapped_column(String(120), nullable=True)

    original_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    purchase_year: Mapped[int] = mapped_column(Integer, nullable=False)
    condition: Mapped[str] = mapped_column(String(20), nullable=False)

    is_valuated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    valuation_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    estimated_value: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    is_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # available, on_hold, donated
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="available", index=True)
    recipient_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    donated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    city: Mapped[str] = mapped_column(String(120), nullable=False)
    zip_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    collection_deadline: Mapped[date] = mapped_column(Date, nullable=False)

    image_urls: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    valuation_document_urls: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    owner: Mapped[User] = relationship(back_populates="listings", foreign_keys=[owner_id])
    recipient: Mapped[User | None] = relationship(foreign_keys=[recipient_id])


class Message(Base):
    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    sender_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    recipient_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    # NULL is the "general" thread; part of thread identity.
    listing_id: Mapped[int | None] = mapped_column(
        ForeignKey("listings.id", ondelete="CASCADE"), nullable=True, index=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)

    sender: Mapped[User] = relationship(foreign_keys=[sender_id])
    recipient: Mapped[User] = relationship(foreign_keys=[recipient_id])
    listing: Mapped[Listing | None] = relationship()


class Report(Base):
    __tablename__ = "reports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    reporter_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    reason: Mapped[str] = mapped_column(String(200), nullable=False)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)
    reported_listing_id: Mapped[int | None] = mapped_column(
        ForeignKey("listings.id", ondelete="SET NULL"), nullable=True
    )
    reported_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    # pending, resolved, dismissed
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

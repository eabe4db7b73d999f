from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field


class Category(str, Enum):
    FURNITURE = "Furniture"
    VEHICLES = "Vehicles"
    BOOKS = "Books"
    ANTIQUE = "Antique"

class Condition(str, Enum):
    NEW = "new"
    USED_LIKE_NEW = "used_like_new"
    USED = "used"
    SCRAP = "scrap"  # Vehicles only

class ListingStatus(str, Enum):
    AVAILABLE = "available"
    ON_HOLD = "on_hold"
    DONATED = "donated"

class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"

# A listing scope as callers send it: an id, or a "general" marker such as
# None / "general" / "undefined" / "null".
ListingScope = Optional[Union[int, str]]


# Listings

class ListingCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    category: Category
    sub_category: Optional[str] = None
    original_price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    purchase_year: int = Field(..., ge=1000)
    condition: Condition
    is_valuated: bool = False
    valuation_price: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    valuation_document_urls: List[str] = Field(default_factory=list)
    city: str = Field(..., min_length=1)
    zip_code: Optional[str] = None
    collection_deadline: date
    image_urls: List[str] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "title": "Oak dining table",
                "description": "Seats six, a few scratches on the top.",
                "category": "Furniture",
                "sub_category": "Tables",
                "original_price": "500.00",
                "purchase_year": 2024,
                "condition": "used",
                "is_valuated": False,
                "valuation_price": None,
                "valuation_document_urls": [],
                "city": "Leeds",
                "zip_code": "LS1 4AP",
                "collection_deadline": "2030-01-31",
                "image_urls": [
                    "https://img.example.com/table-1.jpg",
                    "https://img.example.com/table-2.jpg",
                    "https://img.example.com/table-3.jpg",
                    "https://img.example.com/table-4.jpg",
                ],
            }
        }

class ListingUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[Category] = None
    sub_category: Optional[str] = None
    original_price: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    purchase_year: Optional[int] = Field(None, ge=1000)
    condition: Optional[Condition] = None
    is_valuated: Optional[bool] = None
    valuation_price: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    valuation_document_urls: Optional[List[str]] = None
    city: Optional[str] = Field(None, min_length=1)
    zip_code: Optional[str] = None
    collection_deadline: Optional[date] = None
    image_urls: Optional[List[str]] = None
    status: Optional[ListingStatus] = None
    recipient_id: Optional[int] = None
    # Administrators only.
    estimated_value: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)

class ListingOut(BaseModel):
    id: int
    owner_id: int
    title: str
    description: Optional[str] = None
    category: Category
    sub_category: Optional[str] = None
    original_price: Decimal
    purchase_year: int
    condition: Condition
    is_valuated: bool
    valuation_price: Optional[Decimal] = None
    estimated_value: Decimal
    is_approved: bool
    approved_at: Optional[datetime] = None
    status: ListingStatus
    recipient_id: Optional[int] = None
    donated_at: Optional[datetime] = None
    city: str
    zip_code: Optional[str] = None
    collection_deadline: date
    image_urls: List[str]
    valuation_document_urls: List[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class ListingPage(BaseModel):
    listings: List[ListingOut]
    total: int
    page: int
    limit: int
    total_pages: int

class ApprovalRequest(BaseModel):
    is_approved: bool = True


# Messages

class MessageCreate(BaseModel):
    recipient_id: Optional[int] = None
    content: Optional[str] = None
    listing_id: ListingScope = None

class MessageOut(BaseModel):
    id: int
    sender_id: int
    recipient_id: int
    listing_id: Optional[int] = None
    content: str
    read: bool
    created_at: datetime

    class Config:
        from_attributes = True

class MarkReadRequest(BaseModel):
    counterparty_id: int
    listing_id: ListingScope = None

class MarkReadResult(BaseModel):
    success: bool = True
    updated: int

class UnreadCount(BaseModel):
    count: int

class Counterparty(BaseModel):
    id: int
    first_name: str
    last_name: str

class ThreadSummary(BaseModel):
    thread_key: str
    counterparty: Counterparty
    last_message: str
    last_message_at: datetime
    is_unread: bool
    unread_count: int
    listing_id: Optional[int] = None
    listing_title: Optional[str] = None
    listing_image: Optional[str] = None
    scope_label: str


# Receipts

class ReceiptRequest(BaseModel):
    receipt_urls: List[str] = Field(default_factory=list)

class ReceiptTotal(BaseModel):
    price: Decimal


# Reports

class ReportCreate(BaseModel):
    reason: str = ""
    details: Optional[str] = None
    listing_id: Optional[int] = None
    target_user_id: Optional[int] = None

ReportStatus = Literal["pending", "resolved", "dismissed"]

class ReportStatusUpdate(BaseModel):
    status: ReportStatus

class ReportOut(BaseModel):
    id: int
    reporter_id: int
    reason: str
    details: Optional[str] = None
    reported_listing_id: Optional[int] = None
    reported_user_id: Optional[int] = None
    status: ReportStatus
    created_at: datetime

    class Config:
        from_attributes = True

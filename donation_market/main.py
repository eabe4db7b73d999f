import logging
from decimal import Decimal
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from donation_market.config import settings
from donation_market.db import Base, SessionLocal, engine, get_db
from donation_market.errors import MarketplaceError
from donation_market.models.db_models import User
from donation_market.models.schemas import (
    ApprovalRequest,
    ListingCreate,
    ListingOut,
    ListingPage,
    ListingUpdate,
    MarkReadRequest,
    MarkReadResult,
    MessageCreate,
    MessageOut,
    ReceiptRequest,
    ReceiptTotal,
    ReportCreate,
    ReportOut,
    ReportStatusUpdate,
    ThreadSummary,
    UnreadCount,
)
from donation_market.seed import seed_demo_data
from donation_market.services.inbox import InboxService
from donation_market.services.listings import ListingService
from donation_market.services.messaging import MessageService
from donation_market.services.receipts import ReceiptReader
from donation_market.services.reports import ReportService

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Donation Marketplace")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Reusable OpenAI-backed reader for receipt totals
receipt_reader = ReceiptReader()


def _http_error(e: MarketplaceError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=str(e))


def _parse_user_id(x_user_id: Optional[str]) -> Optional[int]:
    raw = (x_user_id or "").strip()
    if not (raw.isascii() and raw.isdigit()):
        return None
    return int(raw)


# Identity is resolved upstream; requests carry the caller's user id.
def get_current_user(
    x_user_id: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> User:
    user_id = _parse_user_id(x_user_id)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Unauthorized: You must be logged in.")
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Unauthorized: unknown user.")
    return user

def get_optional_user(
    x_user_id: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> Optional[User]:
    user_id = _parse_user_id(x_user_id)
    if user_id is None:
        return None
    return db.get(User, user_id)

def get_listing_service(db: Session = Depends(get_db)) -> ListingService:
    return ListingService(db)

def get_message_service(db: Session = Depends(get_db)) -> MessageService:
    return MessageService(db)

def get_inbox_service(db: Session = Depends(get_db)) -> InboxService:
    return InboxService(db)

def get_report_service(db: Session = Depends(get_db)) -> ReportService:
    return ReportService(db)


@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)
    if settings.SEED_ON_STARTUP:
        db = SessionLocal()
        try:
            seed_demo_data(db)
        finally:
            db.close()

@app.get("/health")
def health():
    return {"status": "ok"}


# Listings

@app.post("/listings", response_model=ListingOut, status_code=status.HTTP_201_CREATED)
def create_listing(
    payload: ListingCreate,
    current_user: User = Depends(get_current_user),
    service: ListingService = Depends(get_listing_service),
):
    try:
        return service.create_listing(current_user.id, payload)
    except MarketplaceError as e:
        raise _http_error(e)
    except Exception as e:
        logger.exception("Error creating listing")
        raise HTTPException(status_code=500, detail=str(e))

@app.get("/listings", response_model=ListingPage)
def browse_listings(
    search: Optional[str] = None,
    category: Optional[str] = None,
    city: Optional[str] = None,
    condition: Optional[str] = None,
    min_value: Optional[Decimal] = Query(None, ge=0),
    max_value: Optional[Decimal] = Query(None, ge=0),
    sort: Optional[str] = None,
    page: int = 1,
    limit: Optional[int] = None,
    service: ListingService = Depends(get_listing_service),
):
    try:
        return service.browse(
            search=search,
            category=category,
            city=city,
            condition=condition,
            min_value=min_value,
            max_value=max_value,
            sort=sort,
            page=page,
            limit=limit,
        )
    except MarketplaceError as e:
        raise _http_error(e)

@app.get("/listings/mine", response_model=List[ListingOut])
def my_listings(
    current_user: User = Depends(get_current_user),
    service: ListingService = Depends(get_listing_service),
):
    return service.list_mine(current_user.id)

@app.get("/listings/{listing_id}", response_model=ListingOut)
def get_listing(
    listing_id: int,
    current_user: Optional[User] = Depends(get_optional_user),
    service: ListingService = Depends(get_listing_service),
):
    try:
        if current_user is None:
            return service.get_listing(listing_id)
        return service.get_listing(listing_id, current_user.id, current_user.role)
    except MarketplaceError as e:
        raise _http_error(e)

@app.put("/listings/{listing_id}", response_model=ListingOut)
def update_listing(
    listing_id: int,
    payload: ListingUpdate,
    current_user: User = Depends(get_current_user),
    service: ListingService = Depends(get_listing_service),
):
    try:
        return service.update_listing(current_user.id, current_user.role, listing_id, payload)
    except MarketplaceError as e:
        raise _http_error(e)
    except Exception as e:
        logger.exception("Error updating listing %s", listing_id)
        raise HTTPException(status_code=500, detail=str(e))

@app.delete("/listings/{listing_id}")
def delete_listing(
    listing_id: int,
    current_user: User = Depends(get_current_user),
    service: ListingService = Depends(get_listing_service),
):
    try:
        service.delete_listing(current_user.id, current_user.role, listing_id)
        return {"message": "Listing deleted successfully"}
    except MarketplaceError as e:
        raise _http_error(e)
    except Exception as e:
        logger.exception("Error deleting listing %s", listing_id)
        raise HTTPException(status_code=500, detail=str(e))


# Moderation

@app.get("/admin/listings/pending", response_model=List[ListingOut])
def pending_listings(
    current_user: User = Depends(get_current_user),
    service: ListingService = Depends(get_listing_service),
):
    try:
        return service.list_pending(current_user.role)
    except MarketplaceError as e:
        raise _http_error(e)

@app.put("/admin/listings/{listing_id}/approval", response_model=ListingOut)
def set_listing_approval(
    listing_id: int,
    request: Optional[ApprovalRequest] = None,
    current_user: User = Depends(get_current_user),
    service: ListingService = Depends(get_listing_service),
):
    # Approve unless the body explicitly says otherwise
    approved = request.is_approved if request is not None else True
    try:
        return service.set_approval(current_user.id, current_user.role, listing_id, approved)
    except MarketplaceError as e:
        raise _http_error(e)


# Messages

@app.post("/messages", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
def send_message(
    payload: MessageCreate,
    current_user: User = Depends(get_current_user),
    service: MessageService = Depends(get_message_service),
):
    try:
        return service.send_message(current_user.id, payload.recipient_id, payload.content, payload.listing_id)
    except MarketplaceError as e:
        raise _http_error(e)
    except Exception as e:
        logger.exception("Error sending message")
        raise HTTPException(status_code=500, detail=str(e))

@app.put("/messages/read", response_model=MarkReadResult)
def mark_thread_read(
    payload: MarkReadRequest,
    current_user: User = Depends(get_current_user),
    service: MessageService = Depends(get_message_service),
):
    try:
        updated = service.mark_thread_read(current_user.id, payload.counterparty_id, payload.listing_id)
        return MarkReadResult(updated=updated)
    except MarketplaceError as e:
        raise _http_error(e)

@app.get("/messages/unread-count", response_model=UnreadCount)
def unread_count(
    current_user: User = Depends(get_current_user),
    service: MessageService = Depends(get_message_service),
):
    return UnreadCount(count=service.get_unread_count(current_user.id))

@app.get("/messages/thread", response_model=List[MessageOut])
def thread_history(
    counterparty_id: int,
    listing_id: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    service: MessageService = Depends(get_message_service),
):
    try:
        return service.get_thread_history(current_user.id, counterparty_id, listing_id)
    except MarketplaceError as e:
        raise _http_error(e)

@app.get("/messages/inbox", response_model=List[ThreadSummary])
def inbox(
    current_user: User = Depends(get_current_user),
    service: InboxService = Depends(get_inbox_service),
):
    try:
        return service.get_inbox(current_user.id)
    except Exception as e:
        logger.exception("Error fetching inbox")
        raise HTTPException(status_code=500, detail=str(e))


# Receipts

@app.post("/receipts/total", response_model=ReceiptTotal)
def receipt_total(
    payload: ReceiptRequest,
    current_user: User = Depends(get_current_user),
):
    try:
        total = receipt_reader.extract_total(payload.receipt_urls)
    except MarketplaceError as e:
        raise _http_error(e)
    if total is None:
        raise HTTPException(status_code=404, detail="Could not reliably extract a total price from the document.")
    return ReceiptTotal(price=total)


# Reports

@app.post("/reports", response_model=ReportOut, status_code=status.HTTP_201_CREATED)
def submit_report(
    payload: ReportCreate,
    current_user: User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
):
    try:
        return service.submit(
            current_user.id,
            payload.reason,
            details=payload.details,
            listing_id=payload.listing_id,
            target_user_id=payload.target_user_id,
        )
    except MarketplaceError as e:
        raise _http_error(e)

@app.get("/admin/reports", response_model=List[ReportOut])
def list_reports(
    current_user: User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
):
    try:
        return service.list_reports(current_user.role)
    except MarketplaceError as e:
        raise _http_error(e)

@app.put("/admin/reports/{report_id}", response_model=ReportOut)
def update_report(
    report_id: int,
    payload: ReportStatusUpdate,
    current_user: User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
):
    try:
        return service.update_status(current_user.role, report_id, payload.status)
    except MarketplaceError as e:
        raise _http_error(e)

import logging
import math
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from donation_market.config import settings
from donation_market.db import commit, utcnow
from donation_market.errors import Forbidden, NotFound, ValidationError
from donation_market.models.db_models import Listing, Report, User
from donation_market.models.schemas import (
    Category,
    Condition,
    ListingCreate,
    ListingOut,
    ListingPage,
    ListingStatus,
    ListingUpdate,
    Role,
)
from donation_market.repositories import MessageRepository, SqlAlchemyMessageRepository
from donation_market.services.valuation import HIGH_VALUE_THRESHOLD, appraise, policy_for

logger = logging.getLogger(__name__)

# Fields whose change forces a fresh valuation.
VALUATION_INPUTS = (
    "category",
    "condition",
    "original_price",
    "purchase_year",
    "is_valuated",
    "valuation_price",
    "valuation_document_urls",
)

SORT_ORDERS = {
    "date_desc": (Listing.created_at.desc(), Listing.id.desc()),
    "date_asc": (Listing.created_at.asc(), Listing.id.asc()),
    "price_asc": (Listing.estimated_value.asc(), Listing.id.asc()),
    "price_desc": (Listing.estimated_value.desc(), Listing.id.desc()),
}


def is_admin(role: Optional[str]) -> bool:
    return role == Role.ADMIN


class ListingService:
    """Listing lifecycle: creation rules, edits, donation, moderation and deletion.

    Every mutation follows the same shape: load, check ownership, validate the
    whole request, then apply all field writes and commit once. A rejected
    request leaves the listing untouched.
    """

    def __init__(self, db: Session, messages: Optional[MessageRepository] = None):
        self.db = db
        self.messages = messages or SqlAlchemyMessageRepository(db)

    # -----------------------------
    # Rules
    # -----------------------------
    @staticmethod
    def _check_images(image_urls: List[str]) -> None:
        if len(image_urls) < settings.MIN_LISTING_IMAGES:
            raise ValidationError(
                f"Please upload at least {settings.MIN_LISTING_IMAGES} photos of the item."
            )

    @staticmethod
    def _check_deadline(deadline: date, today: date) -> None:
        earliest = today + timedelta(days=settings.MIN_COLLECTION_DAYS)
        if deadline < earliest:
            raise ValidationError(
                f"Collection deadline must be at least {settings.MIN_COLLECTION_DAYS} days from today."
            )

    @staticmethod
    def _check_condition(category: Category, condition: Condition) -> None:
        if not policy_for(category).allows(condition):
            raise ValidationError(
                f"Condition '{condition.value}' is not allowed for {category.value}."
            )

    @staticmethod
    def _check_purchase_year(purchase_year: int, current_year: int) -> None:
        if purchase_year > current_year:
            raise ValidationError("Purchase year cannot be in the future.")

    @staticmethod
    def _documented_appraisal(
        is_valuated: bool, valuation_price: Optional[Decimal], documents: List[str]
    ) -> Optional[Decimal]:
        if not is_valuated:
            return None
        if valuation_price is None or not documents:
            raise ValidationError(
                "A valuated listing needs an appraisal price and at least one valuation document."
            )
        return valuation_price

    @staticmethod
    def _check_ceiling(
        category: Category, condition: Condition, estimated_value: Decimal, original_price: Decimal
    ) -> None:
        if policy_for(category).ceiling_applies(condition) and estimated_value > original_price:
            raise ValidationError("Estimated value cannot exceed the original price.")

    # -----------------------------
    # Lookups
    # -----------------------------
    def _get_owned_listing_or_404(self, listing_id: int, actor_id: int, actor_role: Optional[str]) -> Listing:
        listing = self.db.get(Listing, listing_id)
        if not listing:
            raise NotFound(f"Listing with ID {listing_id} not found.")
        if listing.owner_id != actor_id and not is_admin(actor_role):
            raise Forbidden("Forbidden: You do not own this listing.")
        return listing

    def get_listing(
        self, listing_id: int, actor_id: Optional[int] = None, actor_role: Optional[str] = None
    ) -> Listing:
        listing = self.db.get(Listing, listing_id)
        # Unapproved listings are invisible to everyone but the owner and admins.
        if not listing or (
            not listing.is_approved and listing.owner_id != actor_id and not is_admin(actor_role)
        ):
            raise NotFound(f"Listing with ID {listing_id} not found.")
        return listing

    # -----------------------------
    # Create
    # -----------------------------
    def create_listing(self, owner_id: int, payload: ListingCreate, now: Optional[datetime] = None) -> Listing:
        now = now or utcnow()
        today = now.date()
        policy = policy_for(payload.category)

        self._check_images(payload.image_urls)
        self._check_condition(payload.category, payload.condition)
        self._check_purchase_year(payload.purchase_year, today.year)
        self._check_deadline(payload.collection_deadline, today)

        if today.year - payload.purchase_year < policy.min_age_years:
            raise ValidationError(
                f"{payload.category.value} items must be at least {policy.min_age_years} years old."
            )

        if payload.original_price >= HIGH_VALUE_THRESHOLD and not (
            payload.is_valuated and payload.valuation_price is not None and payload.valuation_document_urls
        ):
            raise ValidationError(
                f"Items worth {HIGH_VALUE_THRESHOLD} or more require a valuation document."
            )

        appraisal = self._documented_appraisal(
            payload.is_valuated, payload.valuation_price, payload.valuation_document_urls
        )
        estimated_value = appraise(
            payload.category,
            payload.condition,
            payload.original_price,
            payload.purchase_year,
            current_year=today.year,
            appraisal=appraisal,
            appraisal_documented=appraisal is not None,
        )
        self._check_ceiling(payload.category, payload.condition, estimated_value, payload.original_price)

        listing = Listing(
            owner_id=owner_id,
            title=payload.title,
            description=payload.description,
            category=payload.category.value,
            sub_category=payload.sub_category or None,
            original_price=payload.original_price,
            purchase_year=payload.purchase_year,
            condition=payload.condition.value,
            is_valuated=appraisal is not None,
            valuation_price=appraisal,
            estimated_value=estimated_value,
            is_approved=False,
            approved_at=None,
            status=ListingStatus.AVAILABLE.value,
            city=payload.city,
            zip_code=payload.zip_code or None,
            collection_deadline=payload.collection_deadline,
            image_urls=list(payload.image_urls),
            valuation_document_urls=list(payload.valuation_document_urls),
            created_at=now,
            updated_at=now,
        )
        self.db.add(listing)
        commit(self.db, "creating listing")
        self.db.refresh(listing)
        logger.info("Listing %s created by user %s (estimated value %s)", listing.id, owner_id, estimated_value)
        return listing

    # -----------------------------
    # Update
    # -----------------------------
    def update_listing(
        self,
        actor_id: int,
        actor_role: Optional[str],
        listing_id: int,
        payload: ListingUpdate,
        now: Optional[datetime] = None,
    ) -> Listing:
        listing = self._get_owned_listing_or_404(listing_id, actor_id, actor_role)
        admin = is_admin(actor_role)
        now = now or utcnow()
        today = now.date()

        # Unset and null fields are left untouched.
        data: Dict[str, Any] = {
            k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None
        }

        if "estimated_value" in data and not admin:
            raise Forbidden("Only administrators can override the estimated value.")

        category = Category(data.get("category", listing.category))
        condition = Condition(data.get("condition", listing.condition))
        original_price = data.get("original_price", listing.original_price)
        purchase_year = data.get("purchase_year", listing.purchase_year)

        self._check_condition(category, condition)
        if "purchase_year" in data:
            self._check_purchase_year(purchase_year, today.year)
        if "image_urls" in data:
            self._check_images(data["image_urls"])
        if (
            "collection_deadline" in data
            and data["collection_deadline"] != listing.collection_deadline
            and not admin
        ):
            self._check_deadline(data["collection_deadline"], today)

        changes: Dict[str, Any] = {}
        for field in ("title", "description", "sub_category", "city", "zip_code",
                      "collection_deadline", "image_urls", "original_price", "purchase_year"):
            if field in data:
                changes[field] = data[field]
        changes["category"] = category.value
        changes["condition"] = condition.value

        valuation_changed = any(
            field in data and data[field] != getattr(listing, field) for field in VALUATION_INPUTS
        )
        if valuation_changed:
            is_valuated = data.get("is_valuated", listing.is_valuated)
            documents = data.get("valuation_document_urls", listing.valuation_document_urls)
            appraisal = self._documented_appraisal(
                is_valuated, data.get("valuation_price", listing.valuation_price), documents
            )
            changes["is_valuated"] = appraisal is not None
            changes["valuation_price"] = appraisal
            changes["valuation_document_urls"] = list(documents)
            changes["estimated_value"] = appraise(
                category,
                condition,
                original_price,
                purchase_year,
                current_year=today.year,
                appraisal=appraisal,
                appraisal_documented=appraisal is not None,
            )
        if "estimated_value" in data:
            changes["estimated_value"] = data["estimated_value"]

        if valuation_changed and not admin:
            self._check_ceiling(category, condition, changes["estimated_value"], original_price)

        changes.update(self._status_changes(listing, data, now))

        for field, value in changes.items():
            setattr(listing, field, value)
        listing.updated_at = now

        commit(self.db, "updating listing")
        self.db.refresh(listing)
        if changes.get("status") == ListingStatus.DONATED.value and "donated_at" in changes:
            logger.info("Listing %s donated to user %s", listing.id, listing.recipient_id)
        return listing

    def _status_changes(self, listing: Listing, data: Dict[str, Any], now: datetime) -> Dict[str, Any]:
        """Work out status, recipient_id and donated_at as one unit."""
        target = ListingStatus(data.get("status", listing.status))
        recipient_id = data.get("recipient_id")

        if target != ListingStatus.DONATED:
            if recipient_id is not None:
                raise ValidationError("A recipient can only be set when marking the listing as donated.")
            return {"status": target.value, "recipient_id": None, "donated_at": None}

        if listing.status == ListingStatus.DONATED.value:
            # Already donated: repeating the transition keeps the original stamp.
            if recipient_id is not None and recipient_id != listing.recipient_id:
                raise ValidationError(
                    "Listing is already donated. Set it back to available before choosing a new recipient."
                )
            return {}

        if recipient_id is None:
            raise ValidationError("A recipient is required to mark a listing as donated.")
        if recipient_id == listing.owner_id:
            raise ValidationError("You cannot donate a listing to yourself.")
        if self.db.get(User, recipient_id) is None:
            raise ValidationError("Recipient not found.")
        return {"status": target.value, "recipient_id": recipient_id, "donated_at": now}

    # -----------------------------
    # Delete
    # -----------------------------
    def delete_listing(self, actor_id: int, actor_role: Optional[str], listing_id: int) -> None:
        listing = self._get_owned_listing_or_404(listing_id, actor_id, actor_role)

        removed = self.messages.delete_for_listing(listing.id)
        self.db.query(Report).filter(Report.reported_listing_id == listing.id).update(
            {Report.reported_listing_id: None}, synchronize_session=False
        )
        self.db.delete(listing)
        commit(self.db, "deleting listing")
        logger.info("Listing %s deleted by user %s (%s messages removed)", listing_id, actor_id, removed)

    # -----------------------------
    # Moderation
    # -----------------------------
    def set_approval(
        self,
        actor_id: int,
        actor_role: Optional[str],
        listing_id: int,
        approved: bool = True,
        now: Optional[datetime] = None,
    ) -> Listing:
        if not is_admin(actor_role):
            raise Forbidden("Forbidden: administrators only.")
        listing = self.db.get(Listing, listing_id)
        if not listing:
            raise NotFound(f"Listing with ID {listing_id} not found.")

        if approved and not listing.is_approved:
            listing.is_approved = True
            listing.approved_at = now or utcnow()
        elif not approved:
            listing.is_approved = False
            listing.approved_at = None

        commit(self.db, "updating approval")
        self.db.refresh(listing)
        logger.info("Listing %s approval set to %s by admin %s", listing_id, approved, actor_id)
        return listing

    def list_pending(self, actor_role: Optional[str]) -> List[Listing]:
        if not is_admin(actor_role):
            raise Forbidden("Forbidden: administrators only.")
        return (
            self.db.query(Listing)
            .filter(Listing.is_approved.is_(False))
            .order_by(Listing.created_at.asc(), Listing.id.asc())
            .all()
        )

    # -----------------------------
    # Queries
    # -----------------------------
    def list_mine(self, owner_id: int) -> List[Listing]:
        return (
            self.db.query(Listing)
            .filter(Listing.owner_id == owner_id)
            .order_by(Listing.created_at.desc(), Listing.id.desc())
            .all()
        )

    def browse(
        self,
        search: Optional[str] = None,
        category: Optional[str] = None,
        city: Optional[str] = None,
        condition: Optional[str] = None,
        min_value: Optional[Decimal] = None,
        max_value: Optional[Decimal] = None,
        sort: Optional[str] = None,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> ListingPage:
        """Public catalogue: approved listings that have not been donated yet."""
        limit = limit or settings.DEFAULT_PAGE_SIZE
        if page < 1 or limit < 1 or limit > 100:
            raise ValidationError("page must be >= 1 and limit between 1 and 100.")
        sort = sort or "date_desc"
        if sort not in SORT_ORDERS:
            raise ValidationError(f"Unknown sort order: {sort}")

        q = self.db.query(Listing).filter(
            Listing.is_approved.is_(True),
            Listing.status != ListingStatus.DONATED.value,
        )
        if search:
            like = f"%{search}%"
            q = q.filter(or_(Listing.title.ilike(like), Listing.description.ilike(like)))
        if category and category != "All":
            q = q.filter(Listing.category == category)
        if city:
            q = q.filter(Listing.city.ilike(f"%{city}%"))
        if condition and condition != "All":
            q = q.filter(Listing.condition == condition)
        if min_value is not None:
            q = q.filter(Listing.estimated_value >= min_value)
        if max_value is not None:
            q = q.filter(Listing.estimated_value <= max_value)

        total = q.count()
        rows = q.order_by(*SORT_ORDERS[sort]).offset((page - 1) * limit).limit(limit).all()
        return ListingPage(
            listings=[ListingOut.model_validate(l) for l in rows],
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit),
        )

from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from donation_market.db import utcnow
from donation_market.models.db_models import Listing, User
from donation_market.services.valuation import appraise

DEMO_USERS = [
    {"email": "admin@example.com", "first_name": "Ada", "last_name": "Admin", "city": "Leeds", "role": "ADMIN"},
    {"email": "sam@example.com", "first_name": "Sam", "last_name": "Donor", "city": "Leeds", "role": "USER"},
    {"email": "riley@example.com", "first_name": "Riley", "last_name": "Taker", "city": "York", "role": "USER"},
]

DEMO_LISTINGS = [
    {"title": "Oak Dining Table", "description": "Seats six. A few scratches on the top.", "category": "Furniture", "sub_category": "Tables", "original_price": "500", "purchase_year_ago": 1, "condition": "used", "city": "Leeds"},
    {"title": "Bookshelf", "description": "Five shelves, white, flat-pack.", "category": "Furniture", "sub_category": "Storage", "original_price": "120", "purchase_year_ago": 3, "condition": "used_like_new", "city": "Leeds"},
    {"title": "Office Chair", "description": "Adjustable height, mesh back.", "category": "Furniture", "sub_category": "Chairs", "original_price": "15", "purchase_year_ago": 2, "condition": "used", "city": "York"},
    {"title": "CS Textbook Bundle", "description": "Algorithms and ML intro books. Great condition.", "category": "Books", "sub_category": "Textbooks", "original_price": "90", "purchase_year_ago": 2, "condition": "used_like_new", "city": "Leeds"},
    {"title": "Cookbook Collection", "description": "Ten cookbooks, never opened.", "category": "Books", "sub_category": "Cooking", "original_price": "60", "purchase_year_ago": 0, "condition": "new", "city": "York"},
    {"title": "Victorian Writing Desk", "description": "Mahogany, original brass handles.", "category": "Antique", "sub_category": "Desks", "original_price": "400", "purchase_year_ago": 25, "condition": "used", "city": "Leeds"},
    {"title": "Old Hatchback", "description": "Does not run. Good for parts.", "category": "Vehicles", "sub_category": "Cars", "original_price": "900", "purchase_year_ago": 12, "condition": "scrap", "city": "York"},
    {"title": "Kids Bicycle", "description": "16-inch wheels, stabilisers included.", "category": "Vehicles", "sub_category": "Bikes", "original_price": "150", "purchase_year_ago": 1, "condition": "used_like_new", "city": "Leeds"},
]


def seed_demo_data(db: Session):
    # Seed any missing demo users (idempotent)
    existing_emails = {e for (e,) in db.query(User.email).all() if e}
    for item in DEMO_USERS:
        if item["email"] not in existing_emails:
            db.add(User(**item))
    db.commit()

    owner = db.query(User).filter(User.email == "sam@example.com").first()
    existing_titles = {t for (t,) in db.query(Listing.title).all() if t}
    today = date.today()
    now = utcnow()

    to_add = []
    for item in DEMO_LISTINGS:
        if item["title"] in existing_titles:
            continue
        data = dict(item)
        purchase_year = today.year - data.pop("purchase_year_ago")
        price = Decimal(data.pop("original_price"))
        to_add.append(
            Listing(
                **data,
                owner_id=owner.id,
                original_price=price,
                purchase_year=purchase_year,
                estimated_value=appraise(data["category"], data["condition"], price, purchase_year),
                is_approved=True,
                approved_at=now,
                collection_deadline=today + timedelta(days=14),
                image_urls=[f"https://img.example.com/demo/{item['title'].lower().replace(' ', '-')}-{i}.jpg" for i in range(1, 5)],
                valuation_document_urls=[],
            )
        )

    if to_add:
        db.add_all(to_add)
        db.commit()

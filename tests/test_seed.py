from decimal import Decimal

from donation_market.models.db_models import Listing, User
from donation_market.seed import DEMO_LISTINGS, DEMO_USERS, seed_demo_data
from donation_market.services.listings import ListingService


def test_seed_is_idempotent(db):
    seed_demo_data(db)
    seed_demo_data(db)

    assert db.query(User).count() == len(DEMO_USERS)
    assert db.query(Listing).count() == len(DEMO_LISTINGS)


def test_seeded_listings_are_browsable(db):
    seed_demo_data(db)

    page = ListingService(db).browse(category="Vehicles", sort="price_asc")
    assert page.total == 2
    scrap = next(l for l in page.listings if l.condition == "scrap")
    assert scrap.estimated_value == Decimal("150.00")

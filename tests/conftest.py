from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from donation_market.db import Base, get_db
from donation_market.main import app
from donation_market.models.db_models import User

THIS_YEAR = date.today().year


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def users(db):
    owner = User(email="owner@example.com", first_name="Olive", last_name="Owner", city="Leeds")
    other = User(email="other@example.com", first_name="Otto", last_name="Other", city="York")
    admin = User(email="admin@example.com", first_name="Ada", last_name="Admin", city="Leeds", role="ADMIN")
    db.add_all([owner, other, admin])
    db.commit()
    return {"owner": owner, "other": other, "admin": admin}


@pytest.fixture
def client(engine, users):
    TestingSession = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    def _override_get_db():
        session = TestingSession()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def listing_payload(**overrides):
    payload = {
        "title": "Oak dining table",
        "description": "Seats six.",
        "category": "Furniture",
        "sub_category": "Tables",
        "original_price": "500.00",
        "purchase_year": THIS_YEAR - 1,
        "condition": "used",
        "city": "Leeds",
        "zip_code": "LS1 4AP",
        "collection_deadline": (date.today() + timedelta(days=10)).isoformat(),
        "image_urls": [f"https://img.example.com/table-{i}.jpg" for i in range(1, 5)],
        "valuation_document_urls": [],
    }
    payload.update(overrides)
    return payload


def auth(user):
    return {"X-User-Id": str(user.id)}

"""
Pytest fixtures for the table ordering service.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SEED_DEFAULTS", "false")
os.environ.setdefault("ACCESS_KEY", "test-access-key")
os.environ.setdefault("JWT_SECRET", "test-secret-for-session-tokens-0123456789")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from foodnfun import crud
from foodnfun.database import get_session, init_db, make_engine
from foodnfun.main import app
from foodnfun.notifier import change_feed
from foodnfun.security import create_session_token

ACCESS_KEY = os.environ["ACCESS_KEY"]


@pytest.fixture
def engine():
    test_engine = make_engine("sqlite://")
    init_db(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as db_session:
        yield db_session


@pytest.fixture
def client(session):
    app.dependency_overrides[get_session] = lambda: session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def events():
    """Collect change events published while the test runs."""
    subscription = change_feed.subscribe()
    yield subscription
    change_feed.unsubscribe(subscription)


@pytest.fixture
def table(session):
    return crud.create_table(session, {"id": 1})


@pytest.fixture
def other_table(session):
    return crud.create_table(session, {"id": 2})


@pytest.fixture
def biryani(session):
    return crud.create_menu_item(
        session,
        {
            "title": "Chicken Biryani",
            "description": "Aromatic basmati rice cooked with tender chicken",
            "price": Decimal("250.00"),
            "prep_time": 25,
            "category": "main",
        },
    )


@pytest.fixture
def dosa(session):
    return crud.create_menu_item(
        session,
        {
            "title": "Masala Dosa",
            "description": "Crispy rice crepe filled with spiced potato",
            "price": Decimal("80.00"),
            "prep_time": 8,
            "category": "main",
        },
    )


@pytest.fixture
def jamun(session):
    return crud.create_menu_item(
        session,
        {
            "title": "Gulab Jamun",
            "description": "Sweet milk dumplings soaked in sugar syrup",
            "price": Decimal("60.00"),
            "prep_time": 5,
            "category": "dessert",
            "is_available": False,
        },
    )


@pytest.fixture
def manager(session):
    return crud.provision_identity(session, "admin@manager.com")


@pytest.fixture
def servant(session):
    return crud.provision_identity(session, "staff@servant.com")


@pytest.fixture
def manager_headers(manager):
    identity, profile = manager
    return {"Authorization": f"Bearer {create_session_token(identity, profile)}"}


@pytest.fixture
def servant_headers(servant):
    identity, profile = servant
    return {"Authorization": f"Bearer {create_session_token(identity, profile)}"}


@pytest.fixture
def access_headers():
    return {"X-Access-Key": ACCESS_KEY}


@pytest.fixture
def place_order(client, table, biryani):
    """Place an order through the API and return its JSON body."""

    def _place(items=None, table_id=None, device_id="D1", **extra):
        payload = {
            "table_id": table_id or table.id,
            "device_id": device_id,
            "items": items or [{"menu_item_id": str(biryani.id), "quantity": 1}],
            **extra,
        }
        response = client.post("/orders", json=payload)
        assert response.status_code == 201, response.text
        return response.json()

    return _place

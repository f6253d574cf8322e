import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import main
from config import settings


@pytest.fixture
def mongo(monkeypatch):
    db = mongomock.MongoClient()["clearx_test"]
    monkeypatch.setattr(database, "db", db)
    monkeypatch.setattr(main, "db", db)
    monkeypatch.setattr(settings, "node_env", "development")
    main.limiter.reset()
    return db


@pytest.fixture
def client(mongo):
    with TestClient(main.app) as c:
        yield c


@pytest.fixture
def user(mongo):
    doc = {"uid": "u1", "phoneNumber": "+919900000001", "name": "Asha", "role": "consumer", "wishlist": [], "coins": 50}
    mongo["user"].insert_one(dict(doc))
    return doc


@pytest.fixture
def auth_headers(user):
    token = main.create_token({"uid": user["uid"], "phoneNumber": user["phoneNumber"]})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def milk_products():
    return [
        {"id": "d1", "name": "Fresh Milk", "price": 40, "category": "Dairy", "vertical": "DEALS"},
        {"id": "r1", "name": "Organic Milk", "price": 70, "category": "Dairy", "vertical": "RURAL"},
    ]

"""
Shared fixtures.

The API runs against an in-memory mongomock database injected through
`app.dependency_overrides`, so no MongoDB server is needed.
"""
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("LOG_FORMAT", "text")

import mongomock  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

import main  # noqa: E402


@pytest.fixture
def db():
    return mongomock.MongoClient()["marketplace_test"]


@pytest.fixture
def client(db):
    main.app.dependency_overrides[main.get_db] = lambda: db
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def login(client):
    """Log a user in and return {"id", "name", "headers", ...}."""

    def _login(name, email, user_type, address=""):
        resp = client.post(
            "/auth/login",
            json={
                "name": name,
                "email": email,
                "phone": "+91 90000 00000",
                "user_type": user_type,
                "location": {"address": address, "coordinates": [19.07, 72.87]},
            },
        )
        assert resp.status_code == 200, resp.text
        user = resp.json()["user"]
        user["headers"] = {"X-User-Id": user["id"]}
        return user

    return _login


@pytest.fixture
def vendor(login):
    return login("Raju Chaat Corner", "raju@vendors.example.com", "vendor", "Linking Road, Bandra")


@pytest.fixture
def supplier(login):
    return login("Ravi Vegetable Mart", "ravi@suppliers.example.com", "supplier", "Crawford Market")


@pytest.fixture
def other_supplier(login):
    return login("Green Valley Farms", "green@suppliers.example.com", "supplier", "Dadar")


@pytest.fixture
def make_product(client):
    def _make(owner, **overrides):
        body = {
            "name": "Fresh Red Onions",
            "category": "Vegetables",
            "price": 30,
            "unit": "kg",
            "stock": 500,
            "distance": 1.2,
            "delivery_modes": ["online", "offline"],
            "min_order": 5,
            "bulk_discounts": [{"quantity": 50, "discount": 5}, {"quantity": 100, "discount": 10}],
        }
        body.update(overrides)
        resp = client.post("/products", json=body, headers=owner["headers"])
        assert resp.status_code == 200, resp.text
        return resp.json()["id"]

    return _make

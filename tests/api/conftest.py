"""Shared fixtures for API tests."""

import pytest
from fastapi.testclient import TestClient

from fulfillment.container import ServiceContainer
from fulfillment.main import create_app


@pytest.fixture
def client(container: ServiceContainer) -> TestClient:
    """Create test client over the in-memory container."""
    return TestClient(create_app(container))


@pytest.fixture
def user_headers() -> dict[str, str]:
    return {"X-User-Id": "user-1"}


@pytest.fixture
def order_body() -> dict:
    """Two of plant A at 10.00 and one of plant B at 5.00."""
    return {
        "items": [
            {"item_id": "plant-a", "quantity": 2},
            {"item_id": "plant-b", "quantity": 1},
        ],
        "shipping_address": {
            "address": "12 Greenhouse Lane",
            "city": "Portland",
            "postal_code": "97201",
            "country": "US",
        },
    }

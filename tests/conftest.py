"""Shared fixtures for fulfillment tests."""

import pytest

from fulfillment.container import ServiceContainer, build_in_memory_container
from fulfillment.domain.value_objects import ShippingAddress
from fulfillment.infrastructure.broker import InMemoryBroker
from fulfillment.infrastructure.catalog_client import InMemoryCatalog
from fulfillment.infrastructure.config import Settings
from fulfillment.infrastructure.locks import InMemoryLockCoordinator
from fulfillment.infrastructure.memory import InMemoryStore
from tests.support import WEBHOOK_SECRET, FakePaymentGateway


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def settings() -> Settings:
    """Settings for in-memory test runs."""
    return Settings(
        use_in_memory_backends=True,
        stripe_api_key="sk_test_fake",
        stripe_webhook_secret=WEBHOOK_SECRET,
        lock_wait_timeout_ms=500,
        lock_lease_timeout_ms=5000,
        event_consumer_enabled=False,
        log_json=False,
    )


@pytest.fixture
def store() -> InMemoryStore:
    """In-memory store with plants A and B in stock."""
    store = InMemoryStore()
    store.seed_inventory("plant-a", 10)
    store.seed_inventory("plant-b", 10)
    return store


@pytest.fixture
def catalog() -> InMemoryCatalog:
    """Catalog with plant A at 10.00 and plant B at 5.00."""
    catalog = InMemoryCatalog()
    catalog.add("plant-a", "Monstera", "10.00")
    catalog.add("plant-b", "Fern", "5.00")
    return catalog


@pytest.fixture
def broker() -> InMemoryBroker:
    return InMemoryBroker()


@pytest.fixture
def locks() -> InMemoryLockCoordinator:
    return InMemoryLockCoordinator(wait_timeout_ms=500, lease_timeout_ms=5000)


@pytest.fixture
def gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture
def container(
    settings: Settings,
    store: InMemoryStore,
    gateway: FakePaymentGateway,
    catalog: InMemoryCatalog,
    broker: InMemoryBroker,
    locks: InMemoryLockCoordinator,
) -> ServiceContainer:
    """Container wired with in-memory backends and the fake gateway."""
    return build_in_memory_container(
        settings,
        store=store,
        gateway=gateway,
        catalog=catalog,
        broker=broker,
        locks=locks,
    )


@pytest.fixture
def address() -> ShippingAddress:
    return ShippingAddress(
        address="12 Greenhouse Lane",
        city="Portland",
        postal_code="97201",
        country="us",
    )

"""Tests for service wiring and settings."""

import pytest

from fulfillment.container import build_container, build_in_memory_container
from fulfillment.infrastructure.broker import InMemoryBroker
from fulfillment.infrastructure.catalog_client import InMemoryCatalog
from fulfillment.infrastructure.config import Settings
from fulfillment.infrastructure.locks import InMemoryLockCoordinator
from fulfillment.infrastructure.memory import InMemoryStore
from fulfillment.infrastructure.payment_gateway import StripePaymentGateway


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.lock_wait_timeout_ms == 3000
        assert settings.lock_lease_timeout_ms == 10000
        assert settings.currency == "USD"

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOCK_WAIT_TIMEOUT_MS", "250")
        monkeypatch.setenv("USE_IN_MEMORY_BACKENDS", "true")
        settings = Settings()
        assert settings.lock_wait_timeout_ms == 250
        assert settings.use_in_memory_backends is True


class TestBuildContainer:
    """Tests for container builders."""

    def test_in_memory_defaults(self, settings: Settings) -> None:
        container = build_container(settings)

        assert isinstance(container.store, InMemoryStore)
        assert isinstance(container.broker, InMemoryBroker)
        assert isinstance(container.catalog, InMemoryCatalog)
        assert isinstance(container.gateway, StripePaymentGateway)
        assert isinstance(container.locks, InMemoryLockCoordinator)
        assert container.locks.wait_timeout_ms == 500
        assert container.redis is None
        assert container.engine is None

    def test_services_share_collaborators(self, settings: Settings) -> None:
        broker = InMemoryBroker()
        container = build_in_memory_container(settings, broker=broker)

        assert container.publisher.broker is broker
        assert container.order_service.publisher is container.publisher
        assert container.reconciliation_service.publisher is container.publisher

    @pytest.mark.asyncio
    async def test_ready_without_external_backends(self, settings: Settings) -> None:
        container = build_in_memory_container(settings)
        assert await container.check_ready() == {}

    @pytest.mark.asyncio
    async def test_close(self, settings: Settings) -> None:
        broker = InMemoryBroker()
        container = build_in_memory_container(settings, broker=broker)

        await container.close()

        assert broker.closed

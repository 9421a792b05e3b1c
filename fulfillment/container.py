"""Service wiring.

Builds the process-wide collaborators (Redis client, broker, database
engine, gateway, catalog) once at startup and hands them to the
application services. Tests inject their own container instead.
"""

from dataclasses import dataclass, field

import redis.asyncio as aioredis
import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from fulfillment.application.event_publisher import EventPublisher
from fulfillment.application.order_service import OrderService
from fulfillment.application.payment_service import PaymentService
from fulfillment.application.reconciliation_service import ReconciliationService
from fulfillment.infrastructure.broker import InMemoryBroker, MessageBroker, RedisStreamBroker
from fulfillment.infrastructure.catalog_client import (
    CatalogClient,
    HttpCatalogClient,
    InMemoryCatalog,
)
from fulfillment.infrastructure.config import Settings
from fulfillment.infrastructure.database import create_engine, create_session_factory
from fulfillment.infrastructure.locks import (
    InMemoryLockCoordinator,
    LockCoordinator,
    RedisLockCoordinator,
)
from fulfillment.infrastructure.memory import InMemoryStore
from fulfillment.infrastructure.payment_gateway import (
    PaymentGateway,
    StripePaymentGateway,
    StripeWebhookVerifier,
)
from fulfillment.infrastructure.unit_of_work import SqlAlchemyUnitOfWork, UnitOfWorkFactory

logger = structlog.get_logger()


@dataclass
class ServiceContainer:
    """Collaborators and services for one process."""

    settings: Settings
    uow_factory: UnitOfWorkFactory
    locks: LockCoordinator
    broker: MessageBroker
    gateway: PaymentGateway
    catalog: CatalogClient
    webhook_verifier: StripeWebhookVerifier
    redis: aioredis.Redis | None = None
    engine: AsyncEngine | None = None
    store: InMemoryStore | None = None
    publisher: EventPublisher = field(init=False)
    payment_service: PaymentService = field(init=False)
    order_service: OrderService = field(init=False)
    reconciliation_service: ReconciliationService = field(init=False)

    def __post_init__(self) -> None:
        self.publisher = EventPublisher(self.broker)
        self.payment_service = PaymentService(self.uow_factory, self.gateway)
        self.order_service = OrderService(
            uow_factory=self.uow_factory,
            locks=self.locks,
            catalog=self.catalog,
            payments=self.payment_service,
            publisher=self.publisher,
            compensation_attempts=self.settings.compensation_attempts,
        )
        self.reconciliation_service = ReconciliationService(
            uow_factory=self.uow_factory,
            locks=self.locks,
            publisher=self.publisher,
        )

    async def check_ready(self) -> dict[str, str]:
        """Check connectivity of the durable store and Redis.

        Returns:
            Status per dependency ('ok' or 'unavailable').
        """
        checks: dict[str, str] = {}
        if self.engine is not None:
            try:
                async with self.engine.connect() as connection:
                    await connection.execute(text("SELECT 1"))
                checks["database"] = "ok"
            except Exception as e:
                logger.warning("Database readiness check failed", error=str(e))
                checks["database"] = "unavailable"
        if self.redis is not None:
            try:
                await self.redis.ping()
                checks["redis"] = "ok"
            except Exception as e:
                logger.warning("Redis readiness check failed", error=str(e))
                checks["redis"] = "unavailable"
        return checks

    async def close(self) -> None:
        """Close process-wide clients in reverse order of creation."""
        await self.broker.close()
        await self.catalog.close()
        if self.redis is not None:
            await self.redis.aclose()
        if self.engine is not None:
            await self.engine.dispose()


def build_container(settings: Settings) -> ServiceContainer:
    """Build the container for settings.

    Args:
        settings: Application settings.

    Returns:
        Container backed by PostgreSQL, Redis, Stripe and the catalog
        service, or by in-memory backends if configured.
    """
    if settings.use_in_memory_backends:
        return build_in_memory_container(settings)

    redis = aioredis.from_url(settings.redis_url, decode_responses=True)
    engine = create_engine(settings)
    session_factory = create_session_factory(engine)
    logger.info("Using PostgreSQL and Redis backends")

    return ServiceContainer(
        settings=settings,
        uow_factory=lambda: SqlAlchemyUnitOfWork(session_factory),
        locks=RedisLockCoordinator(
            redis,
            wait_timeout_ms=settings.lock_wait_timeout_ms,
            lease_timeout_ms=settings.lock_lease_timeout_ms,
        ),
        broker=RedisStreamBroker(
            redis,
            max_attempts=settings.broker_publish_attempts,
            retry_backoff_ms=settings.broker_retry_backoff_ms,
            stream_maxlen=settings.broker_stream_maxlen,
        ),
        gateway=StripePaymentGateway(
            settings.stripe_api_key,
            max_network_retries=settings.stripe_max_network_retries,
        ),
        catalog=HttpCatalogClient(
            settings.catalog_url,
            timeout=settings.catalog_timeout_seconds,
            default_currency=settings.currency,
        ),
        webhook_verifier=StripeWebhookVerifier(
            settings.stripe_webhook_secret,
            tolerance_seconds=settings.webhook_tolerance_seconds,
        ),
        redis=redis,
        engine=engine,
    )


def build_in_memory_container(
    settings: Settings,
    store: InMemoryStore | None = None,
    gateway: PaymentGateway | None = None,
    catalog: CatalogClient | None = None,
    broker: MessageBroker | None = None,
    locks: LockCoordinator | None = None,
) -> ServiceContainer:
    """Build a single-process container with in-memory backends.

    Args:
        settings: Application settings.
        store: Store to use (a new one by default).
        gateway: Payment gateway (Stripe by default).
        catalog: Catalog client (an empty in-memory catalog by default).
        broker: Message broker (an in-memory broker by default).
        locks: Lock coordinator (an in-memory coordinator by default).

    Returns:
        ServiceContainer with in-memory backends.
    """
    store = store or InMemoryStore()
    logger.info("Using in-memory backends")
    return ServiceContainer(
        settings=settings,
        uow_factory=store.unit_of_work,
        locks=locks
        or InMemoryLockCoordinator(
            wait_timeout_ms=settings.lock_wait_timeout_ms,
            lease_timeout_ms=settings.lock_lease_timeout_ms,
        ),
        broker=broker or InMemoryBroker(),
        gateway=gateway
        or StripePaymentGateway(
            settings.stripe_api_key,
            max_network_retries=settings.stripe_max_network_retries,
        ),
        catalog=catalog or InMemoryCatalog(),
        webhook_verifier=StripeWebhookVerifier(
            settings.stripe_webhook_secret,
            tolerance_seconds=settings.webhook_tolerance_seconds,
        ),
        store=store,
    )

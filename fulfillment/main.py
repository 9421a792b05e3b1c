"""Fulfillment API main application module.

This module initializes the FastAPI application and configures
core middleware, routers, and startup/shutdown events.
"""

import asyncio
import socket
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI

from fulfillment.api.health import router as health_router
from fulfillment.api.middleware import setup_middleware
from fulfillment.api.orders import router as orders_router
from fulfillment.api.webhooks import router as webhooks_router
from fulfillment.container import ServiceContainer, build_container
from fulfillment.infrastructure.broker import EventConsumer
from fulfillment.infrastructure.config import Settings, settings as default_settings
from fulfillment.infrastructure.logging_setup import configure_logging

logger = structlog.get_logger()


def create_app(
    container: ServiceContainer | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        container: Pre-built service container. When omitted, one is built
            from settings at startup and closed at shutdown.
        settings: Application settings (module settings by default).

    Returns:
        Configured application.
    """
    settings = settings or (container.settings if container else default_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Handle application startup and shutdown events.

        Args:
            app: The FastAPI application instance.

        Yields:
            None after startup, cleanup happens after yield.
        """
        # Startup
        configure_logging(settings)
        logger.info(
            "Starting fulfillment API",
            version=settings.api_version,
            debug=settings.debug,
        )

        owned = app.state.container is None
        if owned:
            app.state.container = build_container(settings)
        active: ServiceContainer = app.state.container

        shutdown_event = asyncio.Event()
        consumer_task: asyncio.Task | None = None
        if settings.event_consumer_enabled and active.redis is not None:
            consumer = EventConsumer(
                active.redis,
                group=settings.consumer_group,
                consumer_name=f"{socket.gethostname()}-{id(app)}",
                claim_idle_ms=settings.consumer_claim_idle_ms,
            )
            consumer_task = asyncio.create_task(consumer.run(shutdown_event))

        yield

        # Shutdown
        logger.info("Shutting down fulfillment API")
        shutdown_event.set()
        if consumer_task is not None:
            await consumer_task
        if owned:
            await active.close()
            app.state.container = None

    app = FastAPI(
        title="Fulfillment API",
        description="Order placement, stock reservation and payment reconciliation",
        version=settings.api_version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.container = container

    # Request ID and error handling
    setup_middleware(app)

    # Include routers
    app.include_router(health_router, tags=["Health"])
    app.include_router(orders_router)
    app.include_router(webhooks_router)

    return app


app = create_app()

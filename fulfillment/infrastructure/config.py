"""Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API
    api_version: str = "0.1.0"
    debug: bool = False

    # Database
    database_url: str = "postgresql+asyncpg://fulfillment:fulfillment_dev_password@db:5432/fulfillment"

    # Redis (locks and event streams)
    redis_url: str = "redis://redis:6379/0"

    # Distributed locks
    lock_wait_timeout_ms: int = 3000
    lock_lease_timeout_ms: int = 10000
    compensation_attempts: int = 3

    # Payment gateway
    stripe_api_key: str = "sk_test_change-in-production"
    stripe_webhook_secret: str = "whsec_change-in-production"
    stripe_max_network_retries: int = 2
    webhook_tolerance_seconds: int = 300
    currency: str = "USD"

    # Catalog service
    catalog_url: str = "http://catalog:8001"
    catalog_timeout_seconds: float = 5.0

    # Event broker
    broker_publish_attempts: int = 3
    broker_retry_backoff_ms: int = 100
    broker_stream_maxlen: int = 100_000
    consumer_group: str = "fulfillment"
    consumer_claim_idle_ms: int = 60000
    event_consumer_enabled: bool = True

    # Local runs without Postgres/Redis/Stripe
    use_in_memory_backends: bool = False

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    class Config:
        """Pydantic configuration."""

        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()

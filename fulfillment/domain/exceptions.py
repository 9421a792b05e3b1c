"""Domain exceptions.

Every error raised by the fulfillment core derives from DomainError and
is scoped to a single request or callback. The error_code is what the
HTTP boundary reports to callers.
"""

from typing import Any


class DomainError(Exception):
    """Base class for all domain exceptions."""

    error_code: str = "DOMAIN_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize domain error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(DomainError):
    """Raised when a request has the wrong shape. Not retried."""

    error_code = "VALIDATION_ERROR"


class NotFoundError(DomainError):
    """Raised when a referenced entity does not exist."""

    error_code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str) -> None:
        """Initialize not found error.

        Args:
            entity_type: Type of the missing entity (e.g., "InventoryItem").
            entity_id: Identifier that was looked up.
        """
        super().__init__(
            f"{entity_type} {entity_id} not found",
            details={"entity_type": entity_type, "entity_id": entity_id},
        )


class DuplicateRecordError(DomainError):
    """Raised when a unique constraint in the durable store is violated."""

    error_code = "DUPLICATE_RECORD"


# ============================================================================
# State Machine Errors
# ============================================================================


class InvalidStateTransitionError(DomainError):
    """Raised when an invalid state transition is attempted."""

    error_code = "INVALID_STATE_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_state: str,
        target_state: str,
        allowed_transitions: list[str] | None = None,
    ) -> None:
        """Initialize invalid state transition error.

        Args:
            entity_type: Type of entity (e.g., "Order", "Payment").
            entity_id: ID of the entity.
            current_state: Current state of the entity.
            target_state: Attempted target state.
            allowed_transitions: Allowed target states from current state.
        """
        allowed = allowed_transitions or []
        message = (
            f"Cannot transition {entity_type}({entity_id}) "
            f"from '{current_state}' to '{target_state}'. "
            f"Allowed transitions: {allowed}"
        )
        super().__init__(
            message,
            details={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "current_state": current_state,
                "target_state": target_state,
                "allowed_transitions": allowed,
            },
        )


# ============================================================================
# Lock Errors
# ============================================================================


class LockTimeoutError(DomainError):
    """Raised when a distributed lock cannot be acquired in time.

    Signals resource contention; callers may retry with backoff.
    """

    error_code = "LOCK_TIMEOUT"

    def __init__(self, key: str, wait_timeout_ms: int) -> None:
        """Initialize lock timeout error.

        Args:
            key: Lock key that could not be acquired.
            wait_timeout_ms: How long the caller waited.
        """
        super().__init__(
            f"Timed out after {wait_timeout_ms}ms waiting for lock '{key}'",
            details={"key": key, "wait_timeout_ms": wait_timeout_ms},
        )


class LockLeaseExpiredError(LockTimeoutError):
    """Raised when a held lock's lease expired before the work committed."""

    def __init__(self, key: str) -> None:
        DomainError.__init__(
            self,
            f"Lease on lock '{key}' expired before the operation completed",
            details={"key": key},
        )


# ============================================================================
# Inventory Errors
# ============================================================================


class InsufficientStockError(DomainError):
    """Raised when a reservation asks for more than is available."""

    error_code = "INSUFFICIENT_STOCK"

    def __init__(self, item_id: str, requested: int, available: int) -> None:
        """Initialize insufficient stock error.

        Args:
            item_id: Inventory item identifier.
            requested: Quantity requested.
            available: Quantity currently available.
        """
        super().__init__(
            f"Insufficient stock for item {item_id}: "
            f"requested {requested}, available {available}",
            details={"item_id": item_id, "requested": requested, "available": available},
        )


# ============================================================================
# Collaborator Errors
# ============================================================================


class CatalogUnavailableError(DomainError):
    """Raised when the catalog service cannot answer."""

    error_code = "CATALOG_UNAVAILABLE"


class GatewayError(DomainError):
    """Raised when the payment gateway rejects or fails a request."""

    error_code = "PAYMENT_GATEWAY_ERROR"


class WebhookSignatureError(DomainError):
    """Raised when a gateway callback fails signature verification."""

    error_code = "INVALID_SIGNATURE"


# ============================================================================
# Reconciliation Errors
# ============================================================================


class ReconciliationDataError(DomainError):
    """Raised when a callback references a payment this service never stored.

    Surfaced for operator attention; a blind retry cannot fix a missing
    record, so it is never retried automatically.
    """

    error_code = "RECONCILIATION_DATA_ERROR"

    def __init__(self, authorization_id: str, event_id: str, reason: str) -> None:
        super().__init__(
            f"Cannot reconcile event {event_id} for authorization "
            f"{authorization_id}: {reason}",
            details={
                "authorization_id": authorization_id,
                "event_id": event_id,
                "reason": reason,
            },
        )


class UnknownEventError(DomainError):
    """Raised when a broker message is not one of the known event variants."""

    error_code = "UNKNOWN_EVENT"


class BrokerPublishError(DomainError):
    """Raised by a broker transport once its publish retries are exhausted."""

    error_code = "EVENT_PUBLISH_FAILED"


# ============================================================================
# Money Errors
# ============================================================================


class MoneyError(DomainError):
    """Base class for money-related errors."""

    error_code = "INVALID_AMOUNT"


class CurrencyMismatchError(MoneyError):
    """Raised when combining money with different currencies."""

    def __init__(self, currency1: str, currency2: str) -> None:
        super().__init__(
            f"Cannot combine money with different currencies: {currency1} and {currency2}",
            details={"currency1": currency1, "currency2": currency2},
        )


class NegativeMoneyError(MoneyError):
    """Raised when creating money with a negative amount."""

    def __init__(self, amount: str) -> None:
        super().__init__(
            f"Money amount cannot be negative: {amount}",
            details={"amount": amount},
        )


class InvalidScaleError(MoneyError):
    """Raised when an amount has more fractional digits than the currency scale."""

    def __init__(self, amount: str, scale: int) -> None:
        super().__init__(
            f"Amount {amount} exceeds currency scale of {scale} decimal places",
            details={"amount": amount, "scale": scale},
        )

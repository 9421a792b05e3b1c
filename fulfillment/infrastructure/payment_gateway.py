"""Payment gateway adapter.

Creates payment authorizations (Stripe PaymentIntents) and verifies the
gateway's signed webhook callbacks, turning them into typed
GatewayEvents for reconciliation.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import stripe
import structlog

from fulfillment.domain.exceptions import GatewayError, ValidationError, WebhookSignatureError

logger = structlog.get_logger()


# ============================================================================
# Authorization
# ============================================================================


@dataclass(frozen=True)
class GatewayAuthorization:
    """Authorization created at the gateway.

    Attributes:
        authorization_id: Gateway-side identifier (PaymentIntent id).
        status: Gateway status string at creation.
        client_secret: Secret the client uses to complete the payment.
    """

    authorization_id: str
    status: str
    client_secret: str | None = None


class PaymentGateway(ABC):
    """Payment gateway contract used by the payment service."""

    @abstractmethod
    async def create_authorization(
        self,
        amount_minor: int,
        currency: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> GatewayAuthorization:
        """Create a payment authorization.

        Args:
            amount_minor: Amount in minor currency units (e.g., cents).
            currency: ISO 4217 currency code.
            metadata: Correlation data stored with the authorization.
            idempotency_key: Key making retries of this call safe.

        Returns:
            The created authorization.

        Raises:
            GatewayError: If the gateway rejects or fails the request.
        """


class StripePaymentGateway(PaymentGateway):
    """Payment gateway backed by Stripe PaymentIntents.

    The Stripe SDK is synchronous, so calls run in a worker thread.
    """

    def __init__(self, api_key: str, max_network_retries: int = 2) -> None:
        """Initialize gateway.

        Args:
            api_key: Stripe secret key, passed per request.
            max_network_retries: SDK-level retries for network failures.
        """
        self.api_key = api_key
        stripe.max_network_retries = max_network_retries

    async def create_authorization(
        self,
        amount_minor: int,
        currency: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> GatewayAuthorization:
        if amount_minor <= 0:
            raise ValidationError(
                "Authorization amount must be positive",
                details={"amount_minor": amount_minor},
            )
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                amount=amount_minor,
                currency=currency.lower(),
                metadata=metadata,
                automatic_payment_methods={"enabled": True},
                idempotency_key=idempotency_key,
                api_key=self.api_key,
            )
        except stripe.StripeError as e:
            logger.error(
                "Payment authorization failed",
                error=str(e),
                error_type=type(e).__name__,
                order_number=metadata.get("order_number"),
            )
            raise GatewayError(
                f"Payment gateway error: {e.user_message or e}",
                details={"error_type": type(e).__name__, "code": e.code},
            ) from e

        logger.info(
            "Payment authorization created",
            authorization_id=intent.id,
            status=intent.status,
            order_number=metadata.get("order_number"),
        )
        return GatewayAuthorization(
            authorization_id=intent.id,
            status=intent.status,
            client_secret=intent.client_secret,
        )


# ============================================================================
# Webhook Callbacks
# ============================================================================


class GatewayEventKind(str, Enum):
    """Outcome reported by a gateway callback."""

    AUTHORIZATION_SUCCEEDED = "authorization_succeeded"
    AUTHORIZATION_FAILED = "authorization_failed"
    AUTHORIZATION_PROCESSING = "authorization_processing"
    UNSUPPORTED = "unsupported"


_STRIPE_EVENT_KINDS: dict[str, GatewayEventKind] = {
    "payment_intent.succeeded": GatewayEventKind.AUTHORIZATION_SUCCEEDED,
    "payment_intent.payment_failed": GatewayEventKind.AUTHORIZATION_FAILED,
    "payment_intent.processing": GatewayEventKind.AUTHORIZATION_PROCESSING,
}

UNKNOWN_FAILURE_REASON = "Unknown error"


@dataclass(frozen=True)
class GatewayEvent:
    """A verified, typed gateway callback.

    Attributes:
        event_id: Gateway event identifier.
        kind: What the callback reports.
        authorization_id: Authorization the callback refers to.
        raw_type: Gateway event type string.
        failure_reason: Failure reason for AUTHORIZATION_FAILED.
    """

    event_id: str
    kind: GatewayEventKind
    authorization_id: str | None = None
    raw_type: str = ""
    failure_reason: str | None = None
    data: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)


class StripeWebhookVerifier:
    """Verifies Stripe-Signature headers and decodes callback payloads."""

    def __init__(self, secret: str, tolerance_seconds: int = 300) -> None:
        """Initialize verifier.

        Args:
            secret: Webhook endpoint signing secret.
            tolerance_seconds: Maximum accepted signature age.
        """
        self.secret = secret
        self.tolerance_seconds = tolerance_seconds

    def verify(self, payload: bytes | str, signature_header: str | None) -> GatewayEvent:
        """Verify a callback and convert it to a GatewayEvent.

        Verification happens before the payload is parsed.

        Args:
            payload: Raw request body.
            signature_header: Value of the Stripe-Signature header.

        Returns:
            Typed gateway event.

        Raises:
            WebhookSignatureError: If the signature is missing or invalid,
                or the verified body is not a Stripe event.
        """
        if not signature_header:
            logger.warning("Webhook signature missing")
            raise WebhookSignatureError("Missing Stripe-Signature header")

        try:
            body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        except UnicodeDecodeError as e:
            logger.warning("Webhook payload is not UTF-8")
            raise WebhookSignatureError("Invalid webhook signature") from e

        try:
            stripe.WebhookSignature.verify_header(
                body,
                signature_header,
                self.secret,
                self.tolerance_seconds,
            )
        except stripe.SignatureVerificationError as e:
            logger.warning("Webhook signature invalid", error=str(e))
            raise WebhookSignatureError("Invalid webhook signature") from e

        try:
            event = json.loads(body)
        except json.JSONDecodeError as e:
            raise WebhookSignatureError("Webhook payload is not valid JSON") from e
        if not isinstance(event, dict):
            raise WebhookSignatureError("Webhook payload is not a Stripe event")

        return self._to_gateway_event(event)

    def _to_gateway_event(self, event: dict[str, Any]) -> GatewayEvent:
        raw_type = event.get("type", "")
        event_id = event.get("id", "")
        kind = _STRIPE_EVENT_KINDS.get(raw_type, GatewayEventKind.UNSUPPORTED)
        data_object = (event.get("data") or {}).get("object") or {}

        failure_reason = None
        if kind == GatewayEventKind.AUTHORIZATION_FAILED:
            last_error = data_object.get("last_payment_error") or {}
            failure_reason = last_error.get("message") or UNKNOWN_FAILURE_REASON

        return GatewayEvent(
            event_id=event_id,
            kind=kind,
            authorization_id=data_object.get("id"),
            raw_type=raw_type,
            failure_reason=failure_reason,
            data=data_object,
        )

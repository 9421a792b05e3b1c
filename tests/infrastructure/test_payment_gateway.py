"""Tests for the Stripe gateway adapter and webhook verifier."""

import time
from unittest.mock import MagicMock, patch

import pytest
import stripe

from fulfillment.domain import GatewayError, ValidationError, WebhookSignatureError
from fulfillment.infrastructure.payment_gateway import (
    GatewayEventKind,
    StripePaymentGateway,
    StripeWebhookVerifier,
)
from tests.support import WEBHOOK_SECRET, sign_stripe_payload, stripe_event


# ============================================================================
# Authorization
# ============================================================================


class TestStripePaymentGateway:
    """Tests for StripePaymentGateway."""

    @pytest.fixture
    def gateway(self) -> StripePaymentGateway:
        return StripePaymentGateway("sk_test_fake", max_network_retries=0)

    @pytest.mark.asyncio
    async def test_creates_payment_intent(self, gateway: StripePaymentGateway) -> None:
        intent = MagicMock(id="pi_123", status="requires_payment_method", client_secret="pi_123_secret")
        with patch("stripe.PaymentIntent.create", return_value=intent) as create:
            authorization = await gateway.create_authorization(
                amount_minor=2500,
                currency="USD",
                metadata={"order_number": "ORD-ABCDEF123456"},
                idempotency_key="key-1",
            )

        assert authorization.authorization_id == "pi_123"
        assert authorization.client_secret == "pi_123_secret"
        create.assert_called_once_with(
            amount=2500,
            currency="usd",
            metadata={"order_number": "ORD-ABCDEF123456"},
            automatic_payment_methods={"enabled": True},
            idempotency_key="key-1",
            api_key="sk_test_fake",
        )

    @pytest.mark.asyncio
    async def test_stripe_error_becomes_gateway_error(self, gateway: StripePaymentGateway) -> None:
        with patch(
            "stripe.PaymentIntent.create",
            side_effect=stripe.APIConnectionError("network down"),
        ):
            with pytest.raises(GatewayError) as exc_info:
                await gateway.create_authorization(2500, "USD", {}, "key-1")

        assert exc_info.value.error_code == "PAYMENT_GATEWAY_ERROR"
        assert exc_info.value.details["error_type"] == "APIConnectionError"

    @pytest.mark.asyncio
    async def test_zero_amount_rejected(self, gateway: StripePaymentGateway) -> None:
        with patch("stripe.PaymentIntent.create") as create:
            with pytest.raises(ValidationError):
                await gateway.create_authorization(0, "USD", {}, "key-1")
        create.assert_not_called()


# ============================================================================
# Webhook verification
# ============================================================================


class TestStripeWebhookVerifier:
    """Tests for StripeWebhookVerifier."""

    @pytest.fixture
    def verifier(self) -> StripeWebhookVerifier:
        return StripeWebhookVerifier(WEBHOOK_SECRET, tolerance_seconds=300)

    def test_succeeded_event(self, verifier: StripeWebhookVerifier) -> None:
        payload = stripe_event("payment_intent.succeeded", "pi_123", event_id="evt_1")

        event = verifier.verify(payload.encode(), sign_stripe_payload(payload))

        assert event.kind == GatewayEventKind.AUTHORIZATION_SUCCEEDED
        assert event.event_id == "evt_1"
        assert event.authorization_id == "pi_123"
        assert event.failure_reason is None

    def test_failed_event_carries_reason(self, verifier: StripeWebhookVerifier) -> None:
        payload = stripe_event(
            "payment_intent.payment_failed", "pi_123", failure_message="Your card was declined."
        )

        event = verifier.verify(payload, sign_stripe_payload(payload))

        assert event.kind == GatewayEventKind.AUTHORIZATION_FAILED
        assert event.failure_reason == "Your card was declined."

    def test_failed_event_without_reason(self, verifier: StripeWebhookVerifier) -> None:
        payload = stripe_event("payment_intent.payment_failed", "pi_123")
        event = verifier.verify(payload, sign_stripe_payload(payload))
        assert event.failure_reason == "Unknown error"

    def test_unsupported_event(self, verifier: StripeWebhookVerifier) -> None:
        payload = stripe_event("charge.refunded", "ch_123")
        event = verifier.verify(payload, sign_stripe_payload(payload))
        assert event.kind == GatewayEventKind.UNSUPPORTED
        assert event.raw_type == "charge.refunded"

    def test_missing_signature_rejected(self, verifier: StripeWebhookVerifier) -> None:
        payload = stripe_event("payment_intent.succeeded", "pi_123")
        with pytest.raises(WebhookSignatureError, match="Missing"):
            verifier.verify(payload, None)

    def test_wrong_secret_rejected(self, verifier: StripeWebhookVerifier) -> None:
        payload = stripe_event("payment_intent.succeeded", "pi_123")
        with pytest.raises(WebhookSignatureError):
            verifier.verify(payload, sign_stripe_payload(payload, secret="whsec_other"))

    def test_tampered_payload_rejected(self, verifier: StripeWebhookVerifier) -> None:
        payload = stripe_event("payment_intent.payment_failed", "pi_123")
        header = sign_stripe_payload(payload)
        tampered = payload.replace("payment_failed", "succeeded")
        with pytest.raises(WebhookSignatureError):
            verifier.verify(tampered, header)

    def test_non_utf8_body_rejected(self, verifier: StripeWebhookVerifier) -> None:
        with pytest.raises(WebhookSignatureError):
            verifier.verify(b"\xff\xfe\x00garbage", "t=1,v1=deadbeef")

    def test_stale_signature_rejected(self, verifier: StripeWebhookVerifier) -> None:
        payload = stripe_event("payment_intent.succeeded", "pi_123")
        header = sign_stripe_payload(payload, timestamp=int(time.time()) - 3600)
        with pytest.raises(WebhookSignatureError):
            verifier.verify(payload, header)

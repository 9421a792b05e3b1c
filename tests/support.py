"""Test doubles and payload helpers shared by the test suites."""

import asyncio
import hashlib
import hmac
import json
import time
from typing import Any

from fulfillment.domain.exceptions import GatewayError
from fulfillment.infrastructure.payment_gateway import GatewayAuthorization, PaymentGateway

WEBHOOK_SECRET = "whsec_test_secret"


# ============================================================================
# Fakes
# ============================================================================


class FakePaymentGateway(PaymentGateway):
    """Gateway that records calls and returns sequential authorization ids."""

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.fail_with: Exception | None = None
        self.block: asyncio.Event | None = None
        self.entered = asyncio.Event()

    async def create_authorization(
        self,
        amount_minor: int,
        currency: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> GatewayAuthorization:
        self.calls.append(
            {
                "amount_minor": amount_minor,
                "currency": currency,
                "metadata": metadata,
                "idempotency_key": idempotency_key,
            }
        )
        self.entered.set()
        if self.block is not None:
            await self.block.wait()
        if self.fail_with is not None:
            raise self.fail_with
        return GatewayAuthorization(
            authorization_id=f"pi_test_{len(self.calls)}",
            status="requires_payment_method",
            client_secret=f"pi_test_{len(self.calls)}_secret",
        )

    def fail(self, message: str = "Card network unavailable") -> None:
        self.fail_with = GatewayError(message)


def sign_stripe_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header for payload."""
    timestamp = timestamp if timestamp is not None else int(time.time())
    signature = hmac.new(
        secret.encode(),
        f"{timestamp}.{payload}".encode(),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


def stripe_event(
    event_type: str,
    authorization_id: str,
    event_id: str = "evt_test_1",
    failure_message: str | None = None,
) -> str:
    """Build a Stripe event body for a PaymentIntent."""
    data_object: dict[str, Any] = {"id": authorization_id, "object": "payment_intent"}
    if failure_message is not None:
        data_object["last_payment_error"] = {"message": failure_message}
    return json.dumps(
        {
            "id": event_id,
            "object": "event",
            "type": event_type,
            "data": {"object": data_object},
        }
    )

"""Tests for the Stripe webhook endpoint."""

from fastapi import status
from fastapi.testclient import TestClient

from fulfillment.infrastructure.broker import InMemoryBroker
from fulfillment.infrastructure.memory import InMemoryStore
from tests.support import sign_stripe_payload, stripe_event


def post_webhook(client: TestClient, payload: str, signature: str | None = None):
    headers = {"Content-Type": "application/json"}
    headers["Stripe-Signature"] = signature or sign_stripe_payload(payload)
    return client.post("/webhooks/stripe", content=payload, headers=headers)


def place_order(client: TestClient, order_body: dict, user_headers: dict) -> dict:
    response = client.post("/orders", json=order_body, headers=user_headers)
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()


class TestStripeWebhook:
    """Tests for POST /webhooks/stripe."""

    def test_payment_succeeded_confirms_order(
        self,
        client: TestClient,
        order_body: dict,
        user_headers: dict,
        broker: InMemoryBroker,
    ) -> None:
        order = place_order(client, order_body, user_headers)
        payload = stripe_event("payment_intent.succeeded", order["payment"]["authorization_id"])

        response = post_webhook(client, payload)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "applied"
        details = client.get(f"/orders/{order['order_number']}", headers=user_headers).json()
        assert details["status"] == "confirmed"
        assert details["payment"]["status"] == "succeeded"
        assert broker.topics() == ["order-created", "order-confirmed", "payment-processed"]

    def test_replayed_callback_is_unchanged(
        self,
        client: TestClient,
        order_body: dict,
        user_headers: dict,
        broker: InMemoryBroker,
    ) -> None:
        order = place_order(client, order_body, user_headers)
        payload = stripe_event("payment_intent.succeeded", order["payment"]["authorization_id"])
        post_webhook(client, payload)

        response = post_webhook(client, payload)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "unchanged"
        assert len(broker.messages) == 3

    def test_payment_failed_cancels_order(
        self,
        client: TestClient,
        order_body: dict,
        user_headers: dict,
        store: InMemoryStore,
    ) -> None:
        order = place_order(client, order_body, user_headers)
        payload = stripe_event(
            "payment_intent.payment_failed",
            order["payment"]["authorization_id"],
            failure_message="Insufficient funds",
        )

        response = post_webhook(client, payload)

        assert response.status_code == status.HTTP_200_OK
        details = client.get(f"/orders/{order['order_number']}", headers=user_headers).json()
        assert details["status"] == "cancelled"
        assert details["cancelled_reason"] == "Payment failed: Insufficient funds"
        assert details["payment"]["failure_reason"] == "Insufficient funds"
        assert store.quantity_of("plant-a") == 10
        assert store.quantity_of("plant-b") == 10

    def test_invalid_signature_rejected(self, client: TestClient) -> None:
        payload = stripe_event("payment_intent.succeeded", "pi_test_1")

        response = post_webhook(
            client, payload, signature=sign_stripe_payload(payload, secret="whsec_wrong")
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "INVALID_SIGNATURE"

    def test_missing_signature_rejected(self, client: TestClient) -> None:
        payload = stripe_event("payment_intent.succeeded", "pi_test_1")

        response = client.post("/webhooks/stripe", content=payload)

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_non_utf8_body_rejected(self, client: TestClient) -> None:
        response = client.post(
            "/webhooks/stripe",
            content=b"\xff\xfe\x00garbage",
            headers={"Stripe-Signature": "t=1,v1=deadbeef"},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "INVALID_SIGNATURE"

    def test_unknown_authorization_acknowledged_as_rejected(self, client: TestClient) -> None:
        payload = stripe_event("payment_intent.succeeded", "pi_unknown")

        response = post_webhook(client, payload)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "rejected"

    def test_unsupported_event_ignored(self, client: TestClient) -> None:
        payload = stripe_event("customer.created", "cus_123")

        response = post_webhook(client, payload)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "ignored"

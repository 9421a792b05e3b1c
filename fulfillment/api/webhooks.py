"""Payment gateway webhook endpoints.

Receives Stripe callbacks and reconciles local payment and order state.
The signature is verified against the raw body before anything is
parsed. Callbacks may be replayed; applying one twice is a no-op.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Header, Request

from fulfillment.api.dependencies import ContainerDep
from fulfillment.api.schemas import ErrorResponse, WebhookResponse
from fulfillment.domain.exceptions import ReconciliationDataError

logger = structlog.get_logger()

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post(
    "/stripe",
    response_model=WebhookResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid signature"},
        503: {"model": ErrorResponse, "description": "Lock wait timed out, retry"},
    },
    summary="Receive Stripe webhook",
)
async def receive_stripe_webhook(
    request: Request,
    container: ContainerDep,
    stripe_signature: Annotated[str | None, Header()] = None,
) -> WebhookResponse:
    """Receive a Stripe payment callback.

    Callbacks that reference an unknown authorization are acknowledged
    with status ``rejected`` so the gateway stops redelivering them;
    transient failures surface as 5xx so the gateway retries.
    """
    payload = await request.body()
    event = container.webhook_verifier.verify(payload, stripe_signature)

    logger.info(
        "Webhook received",
        event_id=event.event_id,
        event_type=event.raw_type,
        authorization_id=event.authorization_id,
    )

    try:
        result = await container.reconciliation_service.apply(event)
    except ReconciliationDataError as e:
        return WebhookResponse(
            received=True,
            event_id=event.event_id,
            status="rejected",
            message=e.message,
        )

    return WebhookResponse(
        received=True,
        event_id=event.event_id,
        status=result.outcome.value,
        message=(
            f"payment {result.payment_status.value}"
            if result.payment_status is not None
            else f"event type {event.raw_type} not handled"
        ),
    )

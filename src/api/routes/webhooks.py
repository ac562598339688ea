"""Webhook API routes for payment provider callbacks."""

import logging

from fastapi import APIRouter, HTTPException, Request, status

from src.services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post(
    "/stripe",
    status_code=status.HTTP_200_OK,
    summary="Handle Stripe webhooks",
    description="Receives Stripe PaymentIntent events. Requires a valid signature.",
)
async def stripe_webhook(request: Request) -> dict[str, str]:
    """Handle Stripe webhook events.

    Handles:
    - payment_intent.succeeded: re-reads the intent and marks the order paid
    - payment_intent.payment_failed: logged, the order stays pending

    Other events are acknowledged without action. Errors while confirming
    a payment return a 5xx so Stripe delivers the event again.

    Raises:
        HTTPException: 400 if the signature header is missing.
        SignatureMismatchError: 400 if the signature is invalid.
    """
    payload = await request.body()

    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        logger.error("Missing Stripe-Signature header in webhook request")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Stripe-Signature header",
        )

    logger.debug("Payload size: %d bytes", len(payload))

    result = await PaymentService().handle_stripe_event(payload, sig_header)

    response = {"status": "received", "outcome": result["status"]}
    if "order_id" in result:
        response["order_id"] = result["order_id"]
    return response

"""Payment handshake API routes."""

from fastapi import APIRouter

from src.api.deps import RequiredDualAuth
from src.core.inflight import get_inflight_registry
from src.schemas.order import OrderResponse
from src.schemas.payment import (
    CashOnDeliveryConfirm,
    PaymentResponse,
    PaymentSessionCreate,
    PaymentSessionResponse,
    PaymentVerify,
)
from src.services.order_service import OrderService
from src.services.payment_service import PaymentOutcome, PaymentService

router = APIRouter(prefix="/payments", tags=["payments"])


def _payment_response(outcome: PaymentOutcome) -> PaymentResponse:
    return PaymentResponse(
        order=OrderResponse(**outcome.order),
        state=outcome.state,
        already_paid=outcome.already_paid,
    )


@router.post(
    "/create-session",
    response_model=PaymentSessionResponse,
    summary="Start an online payment",
    description="Opens a Razorpay order or Stripe PaymentIntent for an unpaid order. The amount must equal the order total.",
)
async def create_payment_session(data: PaymentSessionCreate, auth: RequiredDualAuth) -> PaymentSessionResponse:
    """Create a provider payment session for the caller's order.

    Raises:
        NotFoundError: 404 if the order does not exist.
        AuthorizationError: 403 if the caller does not own the order.
        ValidationError: 422 for cash on delivery orders or a wrong amount.
        ConflictError: 409 if the order is already paid or not pending.
        ProviderError: 502 if the provider refuses or is unreachable.
    """
    await OrderService().get_order_for(data.order_id, auth.owner, is_admin=auth.is_admin)

    outcome = await PaymentService().create_provider_session(data.order_id, data.amount)
    session = outcome.session
    return PaymentSessionResponse(
        order_id=outcome.order_id,
        provider=session.provider,
        provider_order_id=session.provider_order_id,
        amount=session.amount_minor,
        currency=session.currency,
        key_id=session.key_id,
        client_secret=session.client_secret,
        state=outcome.state,
    )


@router.post(
    "/verify",
    response_model=PaymentResponse,
    summary="Verify a Razorpay payment",
    description="Checks the signed checkout callback, confirms the payment with Razorpay and marks the order paid.",
)
async def verify_payment(data: PaymentVerify, auth: RequiredDualAuth) -> PaymentResponse:
    """Verify a Razorpay checkout callback.

    Safe to repeat: an order already paid by the same payment comes back
    with `already_paid` set.

    Raises:
        SignatureMismatchError: 400 if the signature is invalid.
        ConflictError: 409 if the order is being verified already or was
            paid with another payment.
        ProviderError: 502 if the payment cannot be confirmed.
    """
    await OrderService().get_order_for(data.order_id, auth.owner, is_admin=auth.is_admin)

    async with get_inflight_registry().claim(f"verify:{data.order_id}", "This payment is already being verified"):
        outcome = await PaymentService().verify_callback(
            provider_order_id=data.provider_order_id,
            provider_payment_id=data.provider_payment_id,
            signature=data.signature,
            order_id=data.order_id,
        )
    return _payment_response(outcome)


@router.post(
    "/cod/confirm",
    response_model=PaymentResponse,
    summary="Confirm a cash on delivery order",
    description="Moves a cash on delivery order from pending to processing. No payment session is involved.",
)
async def confirm_cash_on_delivery(data: CashOnDeliveryConfirm, auth: RequiredDualAuth) -> PaymentResponse:
    await OrderService().get_order_for(data.order_id, auth.owner, is_admin=auth.is_admin)
    outcome = await PaymentService().confirm_cash_on_delivery(data.order_id)
    return _payment_response(outcome)

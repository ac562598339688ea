"""Payment handshake between an order and its payment provider.

One attempt moves through these states::

    awaiting_method_selection -> cod_confirmed
    awaiting_method_selection -> provider_session_created
    provider_session_created  -> provider_payment_submitted
    provider_payment_submitted -> verified_paid | verification_failed

An order is only marked paid after the provider callback has been
authenticated and the payment re-read from the provider matches the
order. Marking paid is a conditional update on `is_paid = false`, so a
repeated callback never records a second payment.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, NoReturn
from uuid import UUID

from supabase import Client

from src.api.middleware.error_handler import (
    APIError,
    ConflictError,
    ProviderError,
    ValidationError,
)
from src.core.supabase import execute_query, get_supabase_client
from src.models.order import OrderStatus, PaymentMethod, PaymentResult, PaymentState
from src.schemas.common import utc_now
from src.services.order_service import OrderService
from src.services.payment_providers import (
    PaymentGateway,
    PaymentSession,
    ProviderPayment,
    get_payment_gateway,
)
from src.services.pricing import parse_money, to_minor_units

logger = logging.getLogger(__name__)


PAYMENT_TRANSITIONS: dict[PaymentState, frozenset[PaymentState]] = {
    PaymentState.AWAITING_METHOD_SELECTION: frozenset(
        {PaymentState.COD_CONFIRMED, PaymentState.PROVIDER_SESSION_CREATED}
    ),
    PaymentState.PROVIDER_SESSION_CREATED: frozenset({PaymentState.PROVIDER_PAYMENT_SUBMITTED}),
    PaymentState.PROVIDER_PAYMENT_SUBMITTED: frozenset(
        {PaymentState.VERIFIED_PAID, PaymentState.VERIFICATION_FAILED}
    ),
    PaymentState.COD_CONFIRMED: frozenset(),
    PaymentState.VERIFIED_PAID: frozenset(),
    PaymentState.VERIFICATION_FAILED: frozenset(),
}


@dataclass
class PaymentAttempt:
    """State of one payment attempt for an order."""

    order_id: str
    state: PaymentState = PaymentState.AWAITING_METHOD_SELECTION
    history: list[PaymentState] = field(default_factory=list)

    def advance(self, target: PaymentState) -> None:
        """Move to target state.

        Raises:
            ConflictError: If the transition table does not allow it.
        """
        if target not in PAYMENT_TRANSITIONS[self.state]:
            raise ConflictError(f"Payment cannot move from {self.state.value} to {target.value}")
        logger.debug("Payment for order %s: %s -> %s", self.order_id, self.state.value, target.value)
        self.history.append(self.state)
        self.state = target


def payment_state_of(order: dict[str, Any]) -> PaymentState:
    """Where an order's payment stands, judged from the stored row."""
    if order.get("is_paid"):
        return PaymentState.VERIFIED_PAID
    method = PaymentMethod(order["payment_method"])
    status = OrderStatus(order["status"])
    if method is PaymentMethod.CASH_ON_DELIVERY and status not in (OrderStatus.PENDING, OrderStatus.CANCELED):
        return PaymentState.COD_CONFIRMED
    return PaymentState.AWAITING_METHOD_SELECTION


@dataclass(frozen=True)
class PaymentOutcome:
    """Order after a payment step and the state the attempt ended in."""

    order: dict[str, Any]
    state: PaymentState
    already_paid: bool = False


@dataclass(frozen=True)
class SessionOutcome:
    session: PaymentSession
    order_id: str
    state: PaymentState


class PaymentService:
    """Drives the payment handshake for orders."""

    table = "orders"

    def __init__(
        self,
        supabase_client: Client | None = None,
        order_service: OrderService | None = None,
    ) -> None:
        """Initialize payment service.

        Args:
            supabase_client: Optional Supabase client for testing.
            order_service: Optional order service for testing.
        """
        self.client = supabase_client or get_supabase_client()
        self.orders = order_service or OrderService(self.client)

    def gateway_for(self, method: PaymentMethod) -> PaymentGateway:
        return get_payment_gateway(method)

    async def confirm_cash_on_delivery(self, order_id: UUID | str) -> PaymentOutcome:
        """Accept a cash-on-delivery order for fulfilment.

        Moves the order from pending straight to processing without any
        payment session. The order stays unpaid until delivery. Confirming
        an already confirmed order returns it unchanged.

        Raises:
            NotFoundError: If the order does not exist.
            ValidationError: If the order is not cash on delivery.
            ConflictError: If the order can no longer be confirmed.
        """
        order = await self.orders.require_order(order_id)
        if PaymentMethod(order["payment_method"]) is not PaymentMethod.CASH_ON_DELIVERY:
            raise ValidationError("Only cash on delivery orders can be confirmed without payment")

        current = payment_state_of(order)
        if current is PaymentState.COD_CONFIRMED:
            return PaymentOutcome(order=order, state=current, already_paid=False)

        attempt = PaymentAttempt(order_id=str(order["id"]), state=current)
        attempt.advance(PaymentState.COD_CONFIRMED)

        updated = await self.orders.update_status(order["id"], OrderStatus.PROCESSING)
        logger.info("Cash on delivery confirmed for order %s", order["id"])
        return PaymentOutcome(order=updated, state=attempt.state)

    async def create_provider_session(self, order_id: UUID | str, amount: Decimal) -> SessionOutcome:
        """Open a provider payment session for an unpaid online order.

        Args:
            order_id: Order to pay for.
            amount: Amount the client intends to pay. Must equal the stored total.

        Raises:
            NotFoundError: If the order does not exist.
            ValidationError: For cash on delivery orders or a wrong amount.
            ConflictError: If the order is already paid or no longer pending.
            ProviderError: If the provider cannot create the session.
        """
        order = await self.orders.require_order(order_id)
        method = PaymentMethod(order["payment_method"])
        if not method.is_online:
            raise ValidationError("Cash on delivery orders do not need a payment session")
        if order.get("is_paid"):
            raise ConflictError("Order has already been paid")
        if OrderStatus(order["status"]) is not OrderStatus.PENDING:
            raise ConflictError("Only pending orders can be paid")

        total = parse_money(order["total_price"])
        if parse_money(amount) != total:
            raise ValidationError(f"Payment amount {amount} does not match the order total {total}")

        attempt = PaymentAttempt(order_id=str(order["id"]), state=payment_state_of(order))
        expected_minor = to_minor_units(total)

        gateway = self.gateway_for(method)
        session = gateway.create_session(str(order["id"]), expected_minor, order.get("currency") or "INR")
        if session.amount_minor != expected_minor:
            raise ProviderError("Payment provider created a session for the wrong amount")

        attempt.advance(PaymentState.PROVIDER_SESSION_CREATED)
        logger.info(
            "Created %s session %s for order %s (%d minor units)",
            method.value,
            session.provider_order_id,
            order["id"],
            expected_minor,
        )
        return SessionOutcome(session=session, order_id=str(order["id"]), state=attempt.state)

    async def verify_callback(
        self,
        provider_order_id: str,
        provider_payment_id: str,
        signature: str,
        order_id: UUID | str,
    ) -> PaymentOutcome:
        """Verify a signed Razorpay checkout callback and mark the order paid.

        Repeating the call with the same payment is safe: the already paid
        order is returned with `already_paid` set.

        Raises:
            NotFoundError: If the order does not exist.
            ValidationError: If the order is not a Razorpay order.
            SignatureMismatchError: If the signature does not match.
            ProviderError: If the provider cannot confirm a matching captured payment.
            ConflictError: If the order was paid with a different payment.
        """
        order = await self.orders.require_order(order_id)
        if PaymentMethod(order["payment_method"]) is not PaymentMethod.RAZORPAY:
            raise ValidationError("Order is not paid through Razorpay")

        gateway = self.gateway_for(PaymentMethod.RAZORPAY)

        attempt = PaymentAttempt(order_id=str(order["id"]), state=PaymentState.PROVIDER_SESSION_CREATED)
        attempt.advance(PaymentState.PROVIDER_PAYMENT_SUBMITTED)

        try:
            gateway.verify_signature(provider_order_id, provider_payment_id, signature)
        except APIError:
            attempt.advance(PaymentState.VERIFICATION_FAILED)
            raise

        if order.get("is_paid"):
            return self._already_paid(order, provider_payment_id)

        payment = self._fetch_payment(gateway, attempt, provider_payment_id, provider_order_id)
        if payment.provider_order_id != provider_order_id:
            self._fail(attempt, "Payment does not belong to this payment session")
        return await self._settle(order, payment, attempt)

    async def handle_stripe_event(self, payload: bytes, sig_header: str) -> dict[str, Any]:
        """Process a signed Stripe webhook.

        Returns:
            dict: What was done with the event.

        Raises:
            SignatureMismatchError: If the webhook signature is invalid.
        """
        gateway = self.gateway_for(PaymentMethod.STRIPE)
        event = gateway.construct_event(payload, sig_header)

        event_type = event["type"]
        intent = event["data"]["object"]
        logger.info("Received Stripe event: %s", event_type)

        if event_type == "payment_intent.payment_failed":
            logger.warning(
                "Stripe payment failed for intent %s (order %s)",
                intent.get("id"),
                (intent.get("metadata") or {}).get("order_id"),
            )
            return {"status": "payment_failed"}

        if event_type != "payment_intent.succeeded":
            logger.debug("Unhandled Stripe event type: %s", event_type)
            return {"status": "ignored"}

        order_id = (intent.get("metadata") or {}).get("order_id")
        if not order_id:
            logger.warning("Webhook missing order_id in metadata: %s", intent.get("id"))
            return {"status": "ignored"}

        order = await self.orders.get_order(order_id)
        if not order:
            logger.warning("Order not found for Stripe payment intent %s: %s", intent.get("id"), order_id)
            return {"status": "ignored"}

        if PaymentMethod(order["payment_method"]) is not PaymentMethod.STRIPE:
            logger.warning("Stripe payment for non-Stripe order %s", order_id)
            return {"status": "ignored"}

        if order.get("is_paid"):
            outcome = self._already_paid(order, intent["id"])
            return {"status": "already_paid", "order_id": str(outcome.order["id"])}

        attempt = PaymentAttempt(order_id=str(order["id"]), state=PaymentState.PROVIDER_SESSION_CREATED)
        attempt.advance(PaymentState.PROVIDER_PAYMENT_SUBMITTED)
        payment = self._fetch_payment(gateway, attempt, intent["id"], intent["id"])
        outcome = await self._settle(order, payment, attempt)
        return {
            "status": "already_paid" if outcome.already_paid else "paid",
            "order_id": str(outcome.order["id"]),
        }

    def _fetch_payment(
        self,
        gateway: PaymentGateway,
        attempt: PaymentAttempt,
        payment_id: str,
        provider_order_id: str,
    ) -> ProviderPayment:
        try:
            return gateway.fetch_payment(payment_id, provider_order_id)
        except APIError:
            attempt.advance(PaymentState.VERIFICATION_FAILED)
            raise

    def _fail(self, attempt: PaymentAttempt, message: str) -> NoReturn:
        attempt.advance(PaymentState.VERIFICATION_FAILED)
        logger.warning("Payment verification failed for order %s: %s", attempt.order_id, message)
        raise ProviderError(message)

    def _already_paid(self, order: dict[str, Any], payment_id: str) -> PaymentOutcome:
        recorded = (order.get("payment_result") or {}).get("payment_id")
        if recorded != payment_id:
            logger.warning(
                "Order %s is already paid by %s, rejecting payment %s",
                order["id"],
                recorded,
                payment_id,
            )
            raise ConflictError("Order has already been paid with a different payment")
        logger.info("Order %s already paid by %s", order["id"], payment_id)
        return PaymentOutcome(order=order, state=PaymentState.VERIFIED_PAID, already_paid=True)

    async def _settle(
        self,
        order: dict[str, Any],
        payment: ProviderPayment,
        attempt: PaymentAttempt,
    ) -> PaymentOutcome:
        """Check a provider payment against the order and mark the order paid."""
        expected_minor = to_minor_units(parse_money(order["total_price"]))

        if not payment.captured:
            self._fail(attempt, f"Payment is {payment.status or 'not captured'}")
        if payment.amount_minor != expected_minor:
            self._fail(attempt, "Paid amount does not match the order total")
        if payment.merchant_reference != str(order["id"]):
            self._fail(attempt, "Payment does not belong to this order")

        payment_result = PaymentResult(
            provider=payment.provider.value,
            payment_id=payment.payment_id,
            provider_order_id=payment.provider_order_id,
            status=payment.status,
            amount_minor=payment.amount_minor,
            verified_at=utc_now().isoformat(),
        )

        response = execute_query(
            self.client.table(self.table)
            .update({"is_paid": True, "paid_at": utc_now().isoformat(), "payment_result": payment_result})
            .eq("id", str(order["id"]))
            .eq("is_paid", False),
            "mark order paid",
        )

        if not response.data:
            # Another verification got there first
            current = await self.orders.require_order(order["id"])
            return self._already_paid(current, payment.payment_id)

        attempt.advance(PaymentState.VERIFIED_PAID)
        paid = response.data[0]
        logger.info("Order %s paid via %s payment %s", paid["id"], payment.provider.value, payment.payment_id)

        await self.orders.notifier.order_paid(paid)
        return PaymentOutcome(order=paid, state=attempt.state)

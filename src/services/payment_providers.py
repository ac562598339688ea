"""Payment provider gateways.

Each gateway opens a provider-hosted payment session for an order and
re-reads a payment from the provider so it can be checked before the
order is marked paid. Amounts are integer minor units (paise).
"""

import hashlib
import hmac
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import stripe

from src.api.middleware.error_handler import (
    ProviderError,
    SignatureMismatchError,
    ValidationError,
)
from src.core.config import get_settings
from src.core.razorpay import get_razorpay_client
from src.core.stripe import get_stripe
from src.models.order import PaymentMethod

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentSession:
    """Handle the storefront needs to open the provider checkout."""

    provider: PaymentMethod
    provider_order_id: str
    amount_minor: int
    currency: str
    key_id: str | None = None
    client_secret: str | None = None


@dataclass(frozen=True)
class ProviderPayment:
    """A payment as reported by the provider itself."""

    provider: PaymentMethod
    payment_id: str
    provider_order_id: str
    amount_minor: int
    currency: str
    status: str
    captured: bool
    # Our order id as recorded on the provider side (receipt or metadata)
    merchant_reference: str | None


class PaymentGateway(ABC):
    """Provider-specific half of the payment handshake."""

    provider: PaymentMethod

    @abstractmethod
    def create_session(self, order_id: str, amount_minor: int, currency: str) -> PaymentSession:
        """Open a payment session for an order.

        Raises:
            ProviderError: If the provider is unreachable or refuses.
        """

    @abstractmethod
    def fetch_payment(self, payment_id: str, provider_order_id: str) -> ProviderPayment:
        """Re-read a payment from the provider.

        Raises:
            ProviderError: If the provider is unreachable or refuses.
        """


class RazorpayGateway(PaymentGateway):
    """Razorpay orders with HMAC-signed checkout callbacks."""

    provider = PaymentMethod.RAZORPAY

    def __init__(self, client: Any | None = None) -> None:
        self.settings = get_settings()
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            if not self.settings.razorpay_key_id or not self.settings.razorpay_key_secret:
                raise ProviderError("Razorpay is not configured")
            self._client = get_razorpay_client()
        return self._client

    def expected_signature(self, provider_order_id: str, payment_id: str) -> str:
        """HMAC-SHA256 hex digest of "order_id|payment_id" keyed with the secret."""
        message = f"{provider_order_id}|{payment_id}".encode()
        return hmac.new(self.settings.razorpay_key_secret.encode(), message, hashlib.sha256).hexdigest()

    def verify_signature(self, provider_order_id: str, payment_id: str, signature: str) -> None:
        """Check a checkout callback signature.

        Raises:
            SignatureMismatchError: If the signature does not match exactly.
        """
        if not self.settings.razorpay_key_secret:
            raise ProviderError("Razorpay is not configured")

        expected = self.expected_signature(provider_order_id, payment_id)
        if not hmac.compare_digest(expected.encode(), (signature or "").encode()):
            logger.warning("Signature mismatch for Razorpay order %s payment %s", provider_order_id, payment_id)
            raise SignatureMismatchError()

    def create_session(self, order_id: str, amount_minor: int, currency: str) -> PaymentSession:
        try:
            provider_order = self.client.order.create({
                "amount": amount_minor,
                "currency": currency,
                "receipt": order_id,
                "notes": {"order_id": order_id},
            })
        except ProviderError:
            raise
        except Exception as e:
            logger.error("Razorpay error creating order for %s: %s", order_id, str(e))
            raise ProviderError("Could not start the payment, please try again") from e

        return PaymentSession(
            provider=self.provider,
            provider_order_id=provider_order["id"],
            amount_minor=int(provider_order["amount"]),
            currency=provider_order.get("currency", currency),
            key_id=self.settings.razorpay_key_id,
        )

    def fetch_payment(self, payment_id: str, provider_order_id: str) -> ProviderPayment:
        try:
            payment = self.client.payment.fetch(payment_id)
            provider_order = self.client.order.fetch(provider_order_id)
        except ProviderError:
            raise
        except Exception as e:
            logger.error("Razorpay error fetching payment %s: %s", payment_id, str(e))
            raise ProviderError("Could not confirm the payment with the provider") from e

        status = payment.get("status", "")
        return ProviderPayment(
            provider=self.provider,
            payment_id=payment["id"],
            provider_order_id=payment.get("order_id") or "",
            amount_minor=int(payment.get("amount", 0)),
            currency=payment.get("currency", ""),
            status=status,
            captured=status == "captured",
            merchant_reference=provider_order.get("receipt"),
        )


class StripeGateway(PaymentGateway):
    """Stripe PaymentIntents confirmed through signed webhooks."""

    provider = PaymentMethod.STRIPE

    def __init__(self) -> None:
        self.settings = get_settings()
        self.stripe = get_stripe()

    def _require_configured(self) -> None:
        if not self.settings.stripe_secret_key:
            raise ProviderError("Stripe is not configured")

    def create_session(self, order_id: str, amount_minor: int, currency: str) -> PaymentSession:
        self._require_configured()
        try:
            intent = self.stripe.PaymentIntent.create(
                amount=amount_minor,
                currency=currency.lower(),
                metadata={"order_id": order_id},
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as e:
            logger.error("Stripe error creating payment intent for %s: %s", order_id, str(e))
            raise ProviderError("Could not start the payment, please try again") from e

        return PaymentSession(
            provider=self.provider,
            provider_order_id=intent.id,
            amount_minor=int(intent.amount),
            currency=intent.currency.upper(),
            client_secret=intent.client_secret,
        )

    def fetch_payment(self, payment_id: str, provider_order_id: str) -> ProviderPayment:
        """Re-read a PaymentIntent. For Stripe both ids are the intent id."""
        self._require_configured()
        try:
            intent = self.stripe.PaymentIntent.retrieve(payment_id)
        except stripe.StripeError as e:
            logger.error("Stripe error retrieving payment intent %s: %s", payment_id, str(e))
            raise ProviderError("Could not confirm the payment with the provider") from e

        metadata = intent.metadata or {}
        return ProviderPayment(
            provider=self.provider,
            payment_id=intent.id,
            provider_order_id=intent.id,
            amount_minor=int(intent.amount_received or 0),
            currency=(intent.currency or "").upper(),
            status=intent.status,
            captured=intent.status == "succeeded",
            merchant_reference=metadata.get("order_id"),
        )

    def construct_event(self, payload: bytes, sig_header: str) -> Any:
        """Verify a webhook signature and parse the event.

        Raises:
            SignatureMismatchError: If the signature is invalid.
            ValidationError: If the payload is not a valid event.
        """
        if not self.settings.stripe_webhook_secret:
            raise ProviderError("Stripe webhook secret is not configured")

        try:
            return self.stripe.Webhook.construct_event(payload, sig_header, self.settings.stripe_webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning("Invalid webhook signature: %s", str(e))
            raise SignatureMismatchError("Invalid webhook signature") from e
        except ValueError as e:
            raise ValidationError("Invalid webhook payload") from e


def get_payment_gateway(method: PaymentMethod | str) -> PaymentGateway:
    """Gateway for an online payment method.

    Raises:
        ValidationError: For cash on delivery, which has no gateway.
    """
    method = PaymentMethod(method)
    if method is PaymentMethod.RAZORPAY:
        return RazorpayGateway()
    if method is PaymentMethod.STRIPE:
        return StripeGateway()
    raise ValidationError("Cash on delivery orders do not use a payment provider")

"""Order model type definitions for database operations."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, TypedDict
from uuid import UUID


class OrderStatus(str, Enum):
    """Fulfilment status of an order.

    `canceled` is the canonical spelling. `cancelled` is accepted when
    reading rows or requests and maps to the same member.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELED = "canceled"

    @classmethod
    def _missing_(cls, value: object) -> "OrderStatus | None":
        if isinstance(value, str):
            normalized = value.strip().lower()
            if normalized == "cancelled":
                return cls.CANCELED
            for member in cls:
                if member.value == normalized:
                    return member
        return None

    @property
    def is_terminal(self) -> bool:
        """Delivered and canceled orders never change status again."""
        return not ORDER_STATUS_TRANSITIONS[self]


ORDER_STATUS_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELED: frozenset(),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """Check whether an order may move from current to target status."""
    return target in ORDER_STATUS_TRANSITIONS[current]


class PaymentMethod(str, Enum):
    """How the customer pays for an order."""

    CASH_ON_DELIVERY = "cash-on-delivery"
    RAZORPAY = "razorpay"
    STRIPE = "stripe"

    @property
    def is_online(self) -> bool:
        return self is not PaymentMethod.CASH_ON_DELIVERY


class PaymentState(str, Enum):
    """Step of a payment attempt, from method selection to verification."""

    AWAITING_METHOD_SELECTION = "awaiting_method_selection"
    COD_CONFIRMED = "cod_confirmed"
    PROVIDER_SESSION_CREATED = "provider_session_created"
    PROVIDER_PAYMENT_SUBMITTED = "provider_payment_submitted"
    VERIFIED_PAID = "verified_paid"
    VERIFICATION_FAILED = "verification_failed"


@dataclass(frozen=True)
class OrderOwner:
    """Who placed an order: an authenticated user or an anonymous session."""

    user_id: UUID | None = None
    session_id: UUID | None = None

    @property
    def key(self) -> str:
        """Stable key used for carts and in-flight guards."""
        if self.user_id:
            return f"user:{self.user_id}"
        if self.session_id:
            return f"session:{self.session_id}"
        return "anonymous"

    def owns(self, order: dict[str, Any]) -> bool:
        """Check whether an order row belongs to this owner."""
        if self.user_id and order.get("user_id") == str(self.user_id):
            return True
        if self.session_id and order.get("session_id") == str(self.session_id):
            return True
        return False


class OrderLine(TypedDict):
    """Snapshot of one purchased item.

    Stored in the order_items JSONB array. Prices are decimal strings
    captured from the catalog when the order was placed.
    """

    product_ref: str
    name: str
    variant: str | None
    quantity: int
    unit_price: str
    unit_sale_price: str | None
    image: str | None


class PaymentResult(TypedDict, total=False):
    """Provider payment reference kept for audit once an order is paid."""

    provider: str
    payment_id: str
    provider_order_id: str
    status: str
    amount_minor: int
    verified_at: str


class Order(TypedDict):
    """Order table row representation."""

    id: UUID
    user_id: UUID | None
    session_id: UUID | None
    order_items: list[OrderLine]
    shipping_address: dict[str, Any]
    payment_method: str
    items_price: str
    tax_price: str
    shipping_price: str
    total_price: str
    currency: str
    is_paid: bool
    paid_at: datetime | None
    payment_result: PaymentResult | None
    is_delivered: bool
    delivered_at: datetime | None
    status: str
    created_at: datetime
    updated_at: datetime


def order_number(order_id: Any) -> str:
    """Short human-facing reference: the last six characters of the id."""
    return str(order_id)[-6:].upper()


def customer_channel(order: dict[str, Any]) -> str | None:
    """Notification channel of the customer who placed an order."""
    if order.get("user_id"):
        return f"user-{order['user_id']}"
    if order.get("session_id"):
        return f"session-{order['session_id']}"
    return None

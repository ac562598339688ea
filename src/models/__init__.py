"""Database model type definitions."""

from src.models.order import (
    Order,
    OrderLine,
    OrderOwner,
    OrderStatus,
    PaymentMethod,
    PaymentResult,
    PaymentState,
)

__all__ = [
    "Order",
    "OrderLine",
    "OrderOwner",
    "OrderStatus",
    "PaymentMethod",
    "PaymentResult",
    "PaymentState",
]

"""Order creation, lookup and status business logic service."""

import logging
from collections.abc import Sequence
from decimal import Decimal
from typing import Any, Protocol
from uuid import UUID

from supabase import Client

from src.api.middleware.error_handler import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from src.core.config import get_settings
from src.core.supabase import execute_query, get_supabase_client
from src.models.order import (
    OrderLine,
    OrderOwner,
    OrderStatus,
    PaymentMethod,
    can_transition,
)
from src.schemas.common import utc_now
from src.services.catalog_service import CatalogService
from src.services.notification_service import OrderStatusNotifier, get_order_notifier
from src.services.pricing import PriceBreakdown, PricingPolicy, compute

logger = logging.getLogger(__name__)


class OrderItemRequest(Protocol):
    """What a caller asks for: cart items and API line items both fit."""

    product_ref: str
    variant: str | None
    quantity: int


class _SnapshotLine:
    """Catalog-priced line used to compute totals before insert."""

    def __init__(self, line: OrderLine) -> None:
        self.quantity = line["quantity"]
        self.unit_price = Decimal(line["unit_price"])
        self.unit_sale_price = None if line["unit_sale_price"] is None else Decimal(line["unit_sale_price"])


class OrderService:
    """Service for placing orders and moving them through fulfilment."""

    table = "orders"

    def __init__(
        self,
        supabase_client: Client | None = None,
        catalog: CatalogService | None = None,
        notifier: OrderStatusNotifier | None = None,
    ) -> None:
        """Initialize order service.

        Args:
            supabase_client: Optional Supabase client for testing.
            catalog: Optional catalog service for testing.
            notifier: Optional notifier for testing.
        """
        self.client = supabase_client or get_supabase_client()
        self.settings = get_settings()
        self.catalog = catalog or CatalogService(self.client)
        self.notifier = notifier or get_order_notifier()
        self.policy = PricingPolicy.from_settings(self.settings)

    async def snapshot_items(self, items: Sequence[OrderItemRequest]) -> list[OrderLine]:
        """Price each requested item from the catalog.

        Raises:
            NotFoundError: If a product does not exist.
            ValidationError: If a product is inactive, a size is invalid or
                a quantity is below one.
        """
        products = await self.catalog.get_products(item.product_ref for item in items)

        lines: list[OrderLine] = []
        for item in items:
            if item.quantity < 1:
                raise ValidationError(f"Quantity for {item.product_ref} must be at least 1")

            product = products.get(item.product_ref)
            if product is None:
                raise NotFoundError(f"Product {item.product_ref} not found")

            unit_price, unit_sale_price = product.price_for(item.variant)
            lines.append(
                OrderLine(
                    product_ref=product.id,
                    name=product.name,
                    variant=item.variant,
                    quantity=item.quantity,
                    unit_price=str(unit_price),
                    unit_sale_price=None if unit_sale_price is None else str(unit_sale_price),
                    image=product.image,
                )
            )
        return lines

    def price_lines(self, lines: Sequence[OrderLine]) -> PriceBreakdown:
        return compute([_SnapshotLine(line) for line in lines], self.policy)

    async def create_order(
        self,
        items: Sequence[OrderItemRequest],
        shipping_address: dict[str, Any],
        payment_method: PaymentMethod,
        owner: OrderOwner,
        advisory_total: Decimal | None = None,
    ) -> dict[str, Any]:
        """Create a pending order priced from the catalog.

        Args:
            items: Requested products, sizes and quantities.
            shipping_address: Delivery address snapshot.
            payment_method: How the customer will pay.
            owner: User or anonymous session placing the order.
            advisory_total: Total the client displayed. Only compared and logged.

        Returns:
            dict: The persisted order including its database id.

        Raises:
            ValidationError: If there are no items or an item is invalid.
            NotFoundError: If a product does not exist.
            PersistenceError: If the order could not be stored.
        """
        if not items:
            raise ValidationError("Cannot place an order with an empty cart")

        lines = await self.snapshot_items(items)
        prices = self.price_lines(lines)

        if advisory_total is not None and advisory_total != prices.total:
            logger.warning(
                "Client total %s differs from computed total %s for %s",
                advisory_total,
                prices.total,
                owner.key,
            )

        order_data = {
            "user_id": str(owner.user_id) if owner.user_id else None,
            "session_id": str(owner.session_id) if owner.session_id else None,
            "order_items": lines,
            "shipping_address": shipping_address,
            "payment_method": PaymentMethod(payment_method).value,
            **prices.as_order_prices(),
            "currency": self.settings.currency,
            "is_paid": False,
            "is_delivered": False,
            "status": OrderStatus.PENDING.value,
        }

        response = execute_query(self.client.table(self.table).insert(order_data), "create order")
        if not response.data:
            raise PersistenceError("Failed to create order")

        order = response.data[0]
        logger.info("Created order %s for %s, total %s", order["id"], owner.key, prices.total)

        await self.notifier.order_created(order)
        return order

    async def get_order(self, order_id: UUID | str) -> dict[str, Any] | None:
        """Get an order by ID.

        Returns:
            dict | None: The order data or None if not found.
        """
        response = execute_query(
            self.client.table(self.table).select("*").eq("id", str(order_id)).maybe_single(),
            "load order",
        )
        return response.data if response and response.data else None

    async def require_order(self, order_id: UUID | str) -> dict[str, Any]:
        order = await self.get_order(order_id)
        if not order:
            raise NotFoundError("Order not found")
        return order

    async def get_order_for(self, order_id: UUID | str, owner: OrderOwner, is_admin: bool = False) -> dict[str, Any]:
        """Get an order the caller is allowed to see.

        Raises:
            NotFoundError: If the order does not exist.
            AuthorizationError: If the caller neither owns it nor is an admin.
        """
        order = await self.require_order(order_id)
        self.ensure_can_view(order, owner, is_admin)
        return order

    @staticmethod
    def ensure_can_view(order: dict[str, Any], owner: OrderOwner, is_admin: bool = False) -> None:
        if is_admin or owner.owns(order):
            return
        raise AuthorizationError("You do not have access to this order")

    async def list_orders_for_owner(self, owner: OrderOwner) -> list[dict[str, Any]]:
        """Get all orders placed by a user or session, newest first."""
        query = self.client.table(self.table).select("*")
        if owner.user_id:
            query = query.eq("user_id", str(owner.user_id))
        elif owner.session_id:
            query = query.eq("session_id", str(owner.session_id))
        else:
            return []

        response = execute_query(query.order("created_at", desc=True), "list orders")
        return response.data or []

    async def list_all_orders(self) -> list[dict[str, Any]]:
        """Get every order, newest first. Admin only."""
        response = execute_query(
            self.client.table(self.table).select("*").order("created_at", desc=True),
            "list orders",
        )
        return response.data or []

    async def update_status(self, order_id: UUID | str, status: OrderStatus) -> dict[str, Any]:
        """Move an order to a new fulfilment status and notify listeners.

        Setting the status an order already has returns it unchanged.

        Raises:
            NotFoundError: If the order does not exist.
            ConflictError: If the transition is not allowed or the order
                changed status concurrently.
        """
        order = await self.require_order(order_id)
        current = OrderStatus(order["status"])
        target = OrderStatus(status)

        if current is target:
            return order

        if not can_transition(current, target):
            raise ConflictError(f"Cannot change order status from {current.value} to {target.value}")

        update_data: dict[str, Any] = {"status": target.value}
        if target is OrderStatus.DELIVERED:
            update_data["is_delivered"] = True
            update_data["delivered_at"] = utc_now().isoformat()

        # Match the status we read so a concurrent change is not overwritten
        response = execute_query(
            self.client.table(self.table)
            .update(update_data)
            .eq("id", str(order_id))
            .eq("status", order["status"]),
            "update order status",
        )
        if not response.data:
            raise ConflictError("Order status changed while updating, please reload")

        updated = response.data[0]
        logger.info("Order %s moved from %s to %s", order_id, current.value, target.value)

        await self.notifier.status_changed(updated)
        return updated

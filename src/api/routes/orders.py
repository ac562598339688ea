"""Order API routes."""

from uuid import UUID

from fastapi import APIRouter, status

from src.api.deps import AdminUser, DualAuth, RequiredDualAuth
from src.core.inflight import get_inflight_registry
from src.schemas.order import (
    OrderCreate,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
)
from src.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place an order",
    description="Creates a pending order. Prices are computed from the catalog; client prices are advisory.",
)
async def create_order(data: OrderCreate, auth: DualAuth) -> OrderResponse:
    """Place an order for the current user or session.

    Raises:
        ValidationError: 422 if the order has no items or an item is invalid.
        NotFoundError: 404 if a product does not exist.
        ConflictError: 409 if an order from the same owner is being placed.
        PersistenceError: 503 if the order could not be stored.
    """
    owner = auth.owner
    service = OrderService()

    async with get_inflight_registry().claim(f"order:{owner.key}", "Your order is already being placed"):
        order = await service.create_order(
            items=data.items,
            shipping_address=data.shipping_address.model_dump(mode="json"),
            payment_method=data.payment_method,
            owner=owner,
            advisory_total=data.prices.total_price if data.prices else None,
        )

    return OrderResponse(**order)


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List my orders",
    description="Returns all orders for the authenticated user or session, newest first.",
)
async def list_orders(auth: RequiredDualAuth) -> OrderListResponse:
    service = OrderService()
    orders = await service.list_orders_for_owner(auth.owner)
    return OrderListResponse(items=[OrderResponse(**order) for order in orders])


@router.get(
    "/all",
    response_model=OrderListResponse,
    summary="List all orders",
    description="Admin only. Returns every order, newest first.",
)
async def list_all_orders(admin: AdminUser) -> OrderListResponse:
    service = OrderService()
    orders = await service.list_all_orders()
    return OrderListResponse(items=[OrderResponse(**order) for order in orders])


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order by ID",
    description="Returns a single order. Only accessible by the order owner or an admin.",
)
async def get_order(order_id: UUID, auth: RequiredDualAuth) -> OrderResponse:
    """Get a single order by ID.

    Raises:
        NotFoundError: 404 if order not found.
        AuthorizationError: 403 if not authorized to view this order.
    """
    service = OrderService()
    order = await service.get_order_for(order_id, auth.owner, is_admin=auth.is_admin)
    return OrderResponse(**order)


@router.put(
    "/{order_id}/status",
    response_model=OrderResponse,
    summary="Update order status",
    description="Admin only. Moves an order along pending, processing, shipped, delivered or cancels it.",
)
async def update_order_status(order_id: UUID, data: OrderStatusUpdate, admin: AdminUser) -> OrderResponse:
    """Change an order's fulfilment status and notify the customer.

    Raises:
        NotFoundError: 404 if order not found.
        ConflictError: 409 if the transition is not allowed.
    """
    service = OrderService()
    order = await service.update_status(order_id, data.status)
    return OrderResponse(**order)

"""Cart API routes.

The cart lives in cart storage under a key derived from the caller
(user or guest session). Each request loads it, applies one change and
writes it back.
"""

import logging

from fastapi import APIRouter, Query, status

from src.api.deps import AuthContext, DualAuth
from src.api.middleware.error_handler import ValidationError
from src.core.inflight import get_inflight_registry
from src.schemas.cart import (
    CartCheckout,
    CartItemAdd,
    CartItemSchema,
    CartItemUpdate,
    CartResponse,
    PriceBreakdownSchema,
)
from src.schemas.order import OrderResponse
from src.services.cart_storage import cart_storage_key, get_cart_storage
from src.services.cart_store import CartStore, CartUpdate
from src.services.catalog_service import CatalogService
from src.services.order_service import OrderService
from src.services.pricing import PricingPolicy, compute

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cart", tags=["cart"])


def open_cart(auth: AuthContext) -> CartStore:
    """Load the caller's cart from storage."""
    return CartStore(storage=get_cart_storage(), key=cart_storage_key(auth.owner.key))


def _cart_response(store: CartStore, update: CartUpdate | None = None) -> CartResponse:
    prices = compute(store.items, PricingPolicy.from_settings())
    warning = update.warning if update else None
    return CartResponse(
        items=[CartItemSchema.model_validate(item) for item in store.items],
        item_count=store.item_count,
        prices=PriceBreakdownSchema.model_validate(prices),
        persisted=update.persisted if update else True,
        warning=warning or store.load_warning,
    )


@router.get(
    "",
    response_model=CartResponse,
    summary="Get my cart",
)
async def get_cart(auth: DualAuth) -> CartResponse:
    return _cart_response(open_cart(auth))


@router.post(
    "/items",
    response_model=CartResponse,
    summary="Add an item",
    description="Adds a product (and size) to the cart, increasing the quantity if it is already there.",
)
async def add_item(data: CartItemAdd, auth: DualAuth) -> CartResponse:
    """Add a product to the cart at its current catalog price.

    Raises:
        NotFoundError: 404 if the product does not exist.
        ValidationError: 422 if the product is unavailable or the size is invalid.
    """
    product = await CatalogService().require_product(data.product_ref)
    store = open_cart(auth)
    update = store.add_item(product, data.variant, data.quantity)
    return _cart_response(store, update)


@router.patch(
    "/items",
    response_model=CartResponse,
    summary="Change an item's quantity",
    description="Sets the quantity of a cart item. A quantity below one removes the item.",
)
async def update_item(data: CartItemUpdate, auth: DualAuth) -> CartResponse:
    store = open_cart(auth)
    update = store.update_quantity(data.product_ref, data.variant, data.quantity)
    return _cart_response(store, update)


@router.delete(
    "/items",
    response_model=CartResponse,
    summary="Remove an item",
)
async def remove_item(
    auth: DualAuth,
    product_ref: str = Query(min_length=1),
    variant: str | None = Query(default=None),
) -> CartResponse:
    store = open_cart(auth)
    update = store.remove_item(product_ref, variant)
    return _cart_response(store, update)


@router.delete(
    "",
    response_model=CartResponse,
    summary="Empty the cart",
)
async def clear_cart(auth: DualAuth) -> CartResponse:
    store = open_cart(auth)
    update = store.clear()
    return _cart_response(store, update)


@router.post(
    "/checkout",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place an order from the cart",
    description="Creates a pending order from the cart contents. The cart is emptied only if the order was created.",
)
async def checkout(data: CartCheckout, auth: DualAuth) -> OrderResponse:
    """Turn the caller's cart into an order.

    Raises:
        ValidationError: 422 if the cart is empty or an item is no longer available.
        ConflictError: 409 if an order from the same owner is being placed.
        PersistenceError: 503 if the order could not be stored. The cart is kept.
    """
    owner = auth.owner
    store = open_cart(auth)
    if not store.items:
        raise ValidationError("Your cart is empty")

    async with get_inflight_registry().claim(f"order:{owner.key}", "Your order is already being placed"):
        order = await OrderService().create_order(
            items=store.items,
            shipping_address=data.shipping_address.model_dump(mode="json"),
            payment_method=data.payment_method,
            owner=owner,
            advisory_total=data.prices.total_price if data.prices else None,
        )

    update = store.clear()
    if not update.persisted:
        logger.warning("Order %s placed but cart %s could not be cleared", order["id"], store.key)
    return OrderResponse(**order)

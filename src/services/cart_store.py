"""Shopping cart state container.

The cart is a reducer over a closed set of actions. `CartStore` owns the
current state for one cart owner, writes the items back to storage after
every committed change and tells subscribers about it.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from src.services.cart_storage import CartStorage, CartStorageError
from src.services.pricing import subtotal_of

if TYPE_CHECKING:
    from src.services.catalog_service import CatalogProduct

logger = logging.getLogger(__name__)

SAVE_FAILED_WARNING = "Your cart could not be saved and may be lost when you leave"
LOAD_FAILED_WARNING = "Your saved cart could not be loaded"


@dataclass(frozen=True)
class CartItem:
    """One product (and size) in the cart with its catalog price snapshot."""

    product_ref: str
    quantity: int
    unit_price: Decimal
    variant: str | None = None
    unit_sale_price: Decimal | None = None
    name: str = ""
    image: str | None = None

    @property
    def key(self) -> tuple[str, str | None]:
        return (self.product_ref, self.variant)

    @classmethod
    def from_product(cls, product: CatalogProduct, variant: str | None, quantity: int) -> CartItem:
        """Build a cart item from a catalog product.

        Raises:
            ValidationError: If variant is not valid for the product.
        """
        unit_price, unit_sale_price = product.price_for(variant)
        return cls(
            product_ref=product.id,
            quantity=quantity,
            unit_price=unit_price,
            variant=variant,
            unit_sale_price=unit_sale_price,
            name=product.name,
            image=product.image,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_ref": self.product_ref,
            "name": self.name,
            "variant": self.variant,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
            "unit_sale_price": None if self.unit_sale_price is None else str(self.unit_sale_price),
            "image": self.image,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CartItem:
        sale = data.get("unit_sale_price")
        return cls(
            product_ref=str(data["product_ref"]),
            quantity=int(data["quantity"]),
            unit_price=Decimal(str(data["unit_price"])),
            variant=data.get("variant"),
            unit_sale_price=None if sale is None else Decimal(str(sale)),
            name=data.get("name") or "",
            image=data.get("image"),
        )


@dataclass(frozen=True)
class CartState:
    items: tuple[CartItem, ...] = ()
    is_open: bool = False
    shipping_address: dict[str, Any] | None = None

    def find(self, product_ref: str, variant: str | None) -> CartItem | None:
        for item in self.items:
            if item.key == (product_ref, variant):
                return item
        return None


# Actions


@dataclass(frozen=True)
class AddItem:
    item: CartItem


@dataclass(frozen=True)
class RemoveItem:
    product_ref: str
    variant: str | None = None


@dataclass(frozen=True)
class UpdateQuantity:
    product_ref: str
    variant: str | None
    quantity: int


@dataclass(frozen=True)
class Clear:
    pass


@dataclass(frozen=True)
class Open:
    pass


@dataclass(frozen=True)
class Close:
    pass


@dataclass(frozen=True)
class SetShippingAddress:
    address: dict[str, Any] | None


CartAction = AddItem | RemoveItem | UpdateQuantity | Clear | Open | Close | SetShippingAddress


def reduce(state: CartState, action: CartAction) -> CartState:
    """Apply an action to a cart state and return the new state.

    Never raises for user-driven input: adding fewer than one unit is
    ignored and setting a quantity below one removes the item.

    Raises:
        TypeError: If action is not one of the cart actions.
    """
    if isinstance(action, AddItem):
        incoming = action.item
        if incoming.quantity < 1:
            return state
        existing = state.find(*incoming.key)
        if existing is None:
            return replace(state, items=state.items + (incoming,))
        items = tuple(
            replace(item, quantity=item.quantity + incoming.quantity) if item is existing else item
            for item in state.items
        )
        return replace(state, items=items)

    if isinstance(action, RemoveItem):
        key = (action.product_ref, action.variant)
        return replace(state, items=tuple(item for item in state.items if item.key != key))

    if isinstance(action, UpdateQuantity):
        if action.quantity < 1:
            return reduce(state, RemoveItem(action.product_ref, action.variant))
        key = (action.product_ref, action.variant)
        items = tuple(
            replace(item, quantity=action.quantity) if item.key == key else item for item in state.items
        )
        return replace(state, items=items)

    if isinstance(action, Clear):
        return replace(state, items=())

    if isinstance(action, Open):
        return replace(state, is_open=True)

    if isinstance(action, Close):
        return replace(state, is_open=False)

    if isinstance(action, SetShippingAddress):
        return replace(state, shipping_address=action.address)

    raise TypeError(f"Unknown cart action: {action!r}")


def serialize_items(items: tuple[CartItem, ...]) -> str:
    return json.dumps({"items": [item.to_dict() for item in items]})


def deserialize_items(payload: str) -> tuple[CartItem, ...]:
    """Parse a stored payload back into cart items.

    Malformed entries are skipped. Entries sharing a key are merged the
    same way adding them one by one would merge them.

    Raises:
        ValueError: If the payload is not a JSON object with an items list.
    """
    data = json.loads(payload)
    if not isinstance(data, dict) or not isinstance(data.get("items"), list):
        raise ValueError("Cart payload must be an object with an items list")

    state = CartState()
    for entry in data["items"]:
        try:
            item = CartItem.from_dict(entry)
        except (KeyError, TypeError, ValueError, InvalidOperation):
            logger.warning("Skipping malformed cart entry: %r", entry)
            continue
        state = reduce(state, AddItem(item))
    return state.items


@dataclass(frozen=True)
class CartUpdate:
    """Result of a dispatch: the new state and whether it reached storage."""

    state: CartState
    persisted: bool = True
    warning: str | None = None


CartListener = Callable[[CartState], None]


@dataclass
class CartStore:
    """Cart state for a single owner, backed by a storage key.

    Construct one per owner; the store loads its items from storage on
    creation. An absent key is an empty cart. A read failure or corrupt
    payload also gives an empty cart but sets `load_warning`.
    """

    storage: CartStorage
    key: str
    load_warning: str | None = field(default=None, init=False)
    _state: CartState = field(default_factory=CartState, init=False, repr=False)
    _listeners: list[CartListener] = field(default_factory=list, init=False, repr=False)

    def __post_init__(self) -> None:
        self._hydrate()

    def _hydrate(self) -> None:
        try:
            payload = self.storage.get(self.key)
        except CartStorageError as e:
            logger.warning("Could not read cart %s: %s", self.key, e)
            self.load_warning = LOAD_FAILED_WARNING
            return

        if payload is None:
            return

        try:
            self._state = CartState(items=deserialize_items(payload))
        except ValueError as e:
            logger.warning("Discarding corrupt cart payload for %s: %s", self.key, e)
            self.load_warning = LOAD_FAILED_WARNING

    @property
    def state(self) -> CartState:
        return self._state

    @property
    def items(self) -> tuple[CartItem, ...]:
        return self._state.items

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self._state.items)

    @property
    def subtotal(self) -> Decimal:
        return subtotal_of(self._state.items)

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        """Register a listener called with the new state after every dispatch.

        Returns:
            Callable that removes the listener again.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, action: CartAction) -> CartUpdate:
        """Apply an action, persist the items if they changed and notify listeners.

        The in-memory state always advances; a failed write is reported in
        the returned update instead of being raised.
        """
        previous = self._state
        self._state = reduce(previous, action)

        persisted = True
        warning = None
        if self._state.items != previous.items:
            try:
                self.storage.set(self.key, serialize_items(self._state.items))
            except CartStorageError as e:
                logger.warning("Could not save cart %s: %s", self.key, e)
                persisted = False
                warning = SAVE_FAILED_WARNING

        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                logger.exception("Cart listener failed")

        return CartUpdate(state=self._state, persisted=persisted, warning=warning)

    def add_item(self, product: CatalogProduct, variant: str | None = None, quantity: int = 1) -> CartUpdate:
        return self.dispatch(AddItem(CartItem.from_product(product, variant, quantity)))

    def remove_item(self, product_ref: str, variant: str | None = None) -> CartUpdate:
        return self.dispatch(RemoveItem(product_ref, variant))

    def update_quantity(self, product_ref: str, variant: str | None, quantity: int) -> CartUpdate:
        return self.dispatch(UpdateQuantity(product_ref, variant, quantity))

    def clear(self) -> CartUpdate:
        return self.dispatch(Clear())

    def open(self) -> CartUpdate:
        return self.dispatch(Open())

    def close(self) -> CartUpdate:
        return self.dispatch(Close())

    def set_shipping_address(self, address: dict[str, Any] | None) -> CartUpdate:
        return self.dispatch(SetShippingAddress(address))

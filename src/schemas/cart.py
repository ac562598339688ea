"""Cart Pydantic schemas for API request/response models."""

from pydantic import BaseModel, ConfigDict, Field

from src.models.order import PaymentMethod
from src.schemas.common import Money
from src.schemas.order import AdvisoryPrices, ShippingAddressSchema


class CartItemSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_ref: str
    name: str
    variant: str | None = None
    quantity: int
    unit_price: Money
    unit_sale_price: Money | None = None
    image: str | None = None


class PriceBreakdownSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    subtotal: Money
    tax: Money
    shipping: Money
    total: Money


class CartResponse(BaseModel):
    """Current cart with server-computed prices."""

    items: list[CartItemSchema] = Field(default_factory=list)
    item_count: int = Field(default=0, description="Total units in the cart")
    prices: PriceBreakdownSchema
    persisted: bool = Field(default=True, description="False if the last change could not be saved")
    warning: str | None = Field(default=None, description="Message to show when the cart could not be saved or loaded")


class CartItemAdd(BaseModel):
    """Schema for POST /cart/items."""

    product_ref: str = Field(min_length=1, description="Catalog product identifier")
    variant: str | None = Field(default=None, description="Size label for products sold in sizes")
    quantity: int = Field(default=1, ge=1, description="Units to add")


class CartItemUpdate(BaseModel):
    """Schema for PATCH /cart/items. A quantity below one removes the item."""

    product_ref: str = Field(min_length=1)
    variant: str | None = None
    quantity: int


class CartCheckout(BaseModel):
    """Schema for POST /cart/checkout."""

    shipping_address: ShippingAddressSchema
    payment_method: PaymentMethod
    prices: AdvisoryPrices | None = None

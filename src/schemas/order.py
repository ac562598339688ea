"""Order Pydantic schemas for API request/response models."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, computed_field

from src.models.order import OrderStatus, PaymentMethod, order_number
from src.schemas.common import Money


class ShippingAddressSchema(BaseModel):
    """Delivery address captured at checkout."""

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    full_name: str = Field(min_length=1, description="Recipient name")
    email: EmailStr | None = Field(default=None, description="Address for order updates")
    phone: str | None = Field(default=None, description="Contact phone number")
    address: str = Field(min_length=1, description="Street address")
    city: str = Field(min_length=1, description="City")
    state: str | None = Field(default=None, description="State or region")
    postal_code: str = Field(min_length=1, description="Postal code")
    country: str = Field(default="India", min_length=1, description="Country")


class OrderItemCreate(BaseModel):
    """A requested product line. Prices are looked up server-side."""

    model_config = ConfigDict(from_attributes=True)

    product_ref: str = Field(min_length=1, description="Catalog product identifier")
    variant: str | None = Field(default=None, description="Size label for products sold in sizes")
    quantity: int = Field(ge=1, description="Quantity ordered")


class AdvisoryPrices(BaseModel):
    """Prices the client displayed. Only used to spot stale carts."""

    items_price: Money | None = None
    tax_price: Money | None = None
    shipping_price: Money | None = None
    total_price: Money | None = None


class OrderCreate(BaseModel):
    """Schema for creating an order via POST /orders."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    items: list[OrderItemCreate] = Field(
        validation_alias=AliasChoices("items", "order_items"),
        description="Products to order",
    )
    shipping_address: ShippingAddressSchema = Field(description="Delivery address")
    payment_method: PaymentMethod = Field(description="How the order will be paid")
    prices: AdvisoryPrices | None = Field(default=None, description="Client-side prices, advisory only")


class OrderLineSchema(BaseModel):
    """A purchased item as captured when the order was placed."""

    model_config = ConfigDict(from_attributes=True)

    product_ref: str
    name: str
    variant: str | None = None
    quantity: int = Field(ge=1)
    unit_price: Money
    unit_sale_price: Money | None = None
    image: str | None = None


class PaymentResultSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True, extra="ignore")

    provider: str
    payment_id: str
    provider_order_id: str | None = None
    status: str | None = None


class OrderResponse(BaseModel):
    """Schema for order API responses."""

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: UUID = Field(description="Order unique identifier")
    user_id: UUID | None = Field(default=None, description="Ordering user, if signed in")
    session_id: UUID | None = Field(default=None, description="Ordering guest session, if anonymous")
    order_items: list[OrderLineSchema] = Field(description="Order line snapshot")
    shipping_address: dict[str, Any] = Field(description="Delivery address")
    payment_method: PaymentMethod = Field(description="Payment method")
    items_price: Money = Field(description="Sum of line totals")
    tax_price: Money = Field(description="Tax on the items")
    shipping_price: Money = Field(description="Shipping charge")
    total_price: Money = Field(description="Amount to pay")
    currency: str = Field(default="INR", description="Currency code")
    is_paid: bool = Field(default=False)
    paid_at: datetime | None = None
    payment_result: PaymentResultSchema | None = None
    is_delivered: bool = Field(default=False)
    delivered_at: datetime | None = None
    status: OrderStatus = Field(description="Fulfilment status")
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def order_number(self) -> str:
        return order_number(self.id)


class OrderListResponse(BaseModel):
    """Schema for order list API responses."""

    model_config = ConfigDict(from_attributes=True)

    items: list[OrderResponse] = Field(description="List of orders")


class OrderStatusUpdate(BaseModel):
    """Schema for PUT /orders/{id}/status. `cancelled` is read as `canceled`."""

    status: OrderStatus = Field(description="New fulfilment status")

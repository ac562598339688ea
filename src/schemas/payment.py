"""Payment handshake Pydantic schemas for API request/response models."""

from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from src.models.order import PaymentMethod, PaymentState
from src.schemas.common import Money
from src.schemas.order import OrderResponse


class PaymentSessionCreate(BaseModel):
    """Schema for POST /payments/create-session."""

    order_id: UUID = Field(description="Order to pay for")
    amount: Money = Field(gt=0, description="Amount to pay; must equal the order total")


class PaymentSessionResponse(BaseModel):
    """Handle the storefront passes to the provider checkout."""

    model_config = ConfigDict(from_attributes=True)

    order_id: UUID
    provider: PaymentMethod
    provider_order_id: str = Field(description="Razorpay order id or Stripe PaymentIntent id")
    amount: int = Field(description="Amount in minor units (paise)")
    currency: str
    key_id: str | None = Field(default=None, description="Razorpay key id for the checkout widget")
    client_secret: str | None = Field(default=None, description="Stripe PaymentIntent client secret")
    state: PaymentState


class PaymentVerify(BaseModel):
    """Schema for POST /payments/verify (Razorpay checkout callback)."""

    model_config = ConfigDict(populate_by_name=True)

    order_id: UUID = Field(validation_alias=AliasChoices("order_id", "orderId"))
    provider_order_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices("provider_order_id", "razorpay_order_id"),
    )
    provider_payment_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices("provider_payment_id", "razorpay_payment_id"),
    )
    signature: str = Field(
        min_length=1,
        validation_alias=AliasChoices("signature", "razorpay_signature"),
    )


class CashOnDeliveryConfirm(BaseModel):
    """Schema for POST /payments/cod/confirm."""

    order_id: UUID


class PaymentResponse(BaseModel):
    """Order after a payment step."""

    order: OrderResponse
    state: PaymentState
    already_paid: bool = False

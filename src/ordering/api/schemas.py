"""Pydantic request/response schemas for the cart and order API.

These are external contracts, separate from the engine's dataclasses. Money
fields are ``Decimal`` and serialize as strings.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from ordering.order.order import OrderStatus, PaymentStatus


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------
class AddCartItemRequest(BaseModel):
    variant_id: str
    quantity: int = Field(ge=1, default=1)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "variant_id": "3f0c9a52-1f43-4a7e-9d55-0c1d7b1f2e11",
                    "quantity": 2,
                }
            ]
        }
    }


class ChangeCartQuantityRequest(BaseModel):
    quantity: int = Field(ge=0)


class CartLineSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    variant_id: str
    quantity: int


class CartResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    cart_id: str | None
    user_id: str
    items: list[CartLineSchema]


# ---------------------------------------------------------------------------
# Totals
# ---------------------------------------------------------------------------
class LinePriceSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    variant_id: str
    sku: str
    product_name: str
    quantity: int
    unit_price: Decimal
    discount_percentage: Decimal
    discount_amount: Decimal
    effective_price: Decimal
    line_subtotal: Decimal


class TotalsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    item_subtotals: list[LinePriceSchema]
    total_item_subtotal: Decimal
    tax_amount: Decimal
    shipping_charge: Decimal
    total_amount: Decimal
    currency: str


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class CreateOrderRequest(BaseModel):
    shipping_address_id: str
    billing_address_id: str

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "shipping_address_id": "addr-home",
                    "billing_address_id": "addr-office",
                }
            ]
        }
    }


class PaymentVerificationRequest(BaseModel):
    gateway_order_id: str
    gateway_payment_id: str
    signature: str


class PaymentVerificationResponse(BaseModel):
    verified: bool


class ResolveCancellationRequest(BaseModel):
    action: str = Field(description="confirm or reject")


class OrderItemSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    variant_id: str
    sku: str
    product_name: str
    quantity: int
    list_price: Decimal
    discount_amount: Decimal
    unit_price: Decimal
    line_subtotal: Decimal


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    shipping_address_id: str
    billing_address_id: str
    status: OrderStatus
    payment: PaymentStatus
    item_subtotal: Decimal
    tax_amount: Decimal
    shipping_charge: Decimal
    total_amount: Decimal
    currency: str
    gateway_order_id: str
    gateway_payment_id: str | None
    created_at: datetime
    updated_at: datetime
    items: list[OrderItemSchema]


class PlacedOrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order: OrderResponse
    gateway_order_id: str
    amount_minor_units: int
    currency: str


class OrderPageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    orders: list[OrderResponse]
    current_page: int
    total_pages: int
    total_count: int

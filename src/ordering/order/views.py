"""Read-only order snapshots handed out of a transaction."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from ordering.order.order import Order, OrderItem, OrderStatus, PaymentStatus
from shared.clock import as_utc


@dataclass(frozen=True)
class OrderItemView:
    variant_id: str
    sku: str
    product_name: str
    quantity: int
    list_price: Decimal
    discount_amount: Decimal
    unit_price: Decimal
    line_subtotal: Decimal

    @classmethod
    def from_model(cls, item: OrderItem) -> "OrderItemView":
        return cls(
            variant_id=item.variant_id,
            sku=item.sku,
            product_name=item.product_name,
            quantity=item.quantity,
            list_price=item.list_price,
            discount_amount=item.discount_amount,
            unit_price=item.unit_price,
            line_subtotal=item.line_subtotal,
        )


@dataclass(frozen=True)
class OrderView:
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
    items: tuple[OrderItemView, ...]

    @classmethod
    def from_model(cls, order: Order) -> "OrderView":
        return cls(
            id=order.id,
            user_id=order.user_id,
            shipping_address_id=order.shipping_address_id,
            billing_address_id=order.billing_address_id,
            status=order.order_status,
            payment=order.payment_status,
            item_subtotal=order.item_subtotal,
            tax_amount=order.tax_amount,
            shipping_charge=order.shipping_charge,
            total_amount=order.total_amount,
            currency=order.currency,
            gateway_order_id=order.gateway_order_id,
            gateway_payment_id=order.gateway_payment_id,
            created_at=as_utc(order.created_at),
            updated_at=as_utc(order.updated_at),
            items=tuple(OrderItemView.from_model(item) for item in order.items),
        )


@dataclass(frozen=True)
class PlacedOrder:
    """A freshly created order plus what the client needs to start paying."""

    order: OrderView
    gateway_order_id: str
    amount_minor_units: int
    currency: str


@dataclass(frozen=True)
class OrderPage:
    orders: tuple[OrderView, ...]
    current_page: int
    total_pages: int
    total_count: int

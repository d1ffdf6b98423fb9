"""FastAPI routes for carts and orders."""

from dataclasses import asdict

from fastapi import APIRouter, Depends

from identity.collaborators import Identity
from ordering.api.schemas import (
    AddCartItemRequest,
    CartResponse,
    ChangeCartQuantityRequest,
    CreateOrderRequest,
    OrderPageResponse,
    OrderResponse,
    PaymentVerificationRequest,
    PaymentVerificationResponse,
    PlacedOrderResponse,
    ResolveCancellationRequest,
    TotalsResponse,
)
from ordering.order.filters import parse_filters
from shared.dependencies import current_identity, services

# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/cart", tags=["cart"])


@cart_router.get("", response_model=CartResponse)
def get_cart(identity: Identity = Depends(current_identity), svc=Depends(services)):
    return svc.carts.get_cart(identity.id)


@cart_router.post("/items", status_code=201, response_model=CartResponse)
def add_cart_item(
    body: AddCartItemRequest,
    identity: Identity = Depends(current_identity),
    svc=Depends(services),
):
    return svc.carts.add_item(identity.id, body.variant_id, body.quantity)


@cart_router.put("/items/{variant_id}", response_model=CartResponse)
def change_cart_item_quantity(
    variant_id: str,
    body: ChangeCartQuantityRequest,
    identity: Identity = Depends(current_identity),
    svc=Depends(services),
):
    return svc.carts.change_quantity(identity.id, variant_id, body.quantity)


@cart_router.delete("/items/{variant_id}", response_model=CartResponse)
def remove_cart_item(variant_id: str, identity: Identity = Depends(current_identity), svc=Depends(services)):
    return svc.carts.remove_item(identity.id, variant_id)


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.get("/total", response_model=TotalsResponse)
def preview_totals(identity: Identity = Depends(current_identity), svc=Depends(services)):
    """Price the current cart exactly as order creation would."""
    totals = svc.orders.preview_totals(identity)
    return TotalsResponse(
        item_subtotals=[asdict(line) for line in totals.item_subtotals],
        total_item_subtotal=totals.total_item_subtotal,
        tax_amount=totals.tax_amount,
        shipping_charge=totals.shipping_charge,
        total_amount=totals.total_amount,
        currency=svc.settings.currency,
    )


@order_router.post("", status_code=201, response_model=PlacedOrderResponse)
def create_order(
    body: CreateOrderRequest,
    identity: Identity = Depends(current_identity),
    svc=Depends(services),
):
    """Reserve stock and open a payment intent for the current cart.

    The cart is left intact; it is emptied once the payment is verified.
    """
    return svc.orders.create_order(identity, body.shipping_address_id, body.billing_address_id)


@order_router.post("/payment/verification", response_model=PaymentVerificationResponse)
def verify_payment(body: PaymentVerificationRequest, svc=Depends(services)):
    """Gateway callback. A bad signature fails the payment and returns ``verified: false``."""
    verified = svc.orders.verify_payment(body.gateway_order_id, body.gateway_payment_id, body.signature)
    return PaymentVerificationResponse(verified=verified)


@order_router.get("", response_model=OrderPageResponse)
def list_orders(
    status: str | None = None,
    payment: str | None = None,
    order_id: str | None = None,
    user_id: str | None = None,
    page: int = 1,
    limit: int = 5,
    identity: Identity = Depends(current_identity),
    svc=Depends(services),
):
    filters = parse_filters(status=status, payment=payment, order_id=order_id, user_id=user_id)
    return svc.orders.list_orders(identity, filters, page=page, limit=limit)


@order_router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: str, identity: Identity = Depends(current_identity), svc=Depends(services)):
    return svc.orders.get_order(identity, order_id)


@order_router.put("/{order_id}/cancel", response_model=OrderResponse)
def request_cancellation(order_id: str, identity: Identity = Depends(current_identity), svc=Depends(services)):
    return svc.orders.request_cancellation(order_id, identity)


@order_router.put("/{order_id}/cancellation", response_model=OrderResponse)
def resolve_cancellation(
    order_id: str,
    body: ResolveCancellationRequest,
    identity: Identity = Depends(current_identity),
    svc=Depends(services),
):
    """Confirm or reject a pending cancellation (ADMIN or MASTER)."""
    return svc.orders.resolve_cancellation(order_id, body.action, identity)

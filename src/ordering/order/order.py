"""Order and OrderItem tables with the order state machine.

State Machine:
    PENDING → ORDERED (bulk fulfillment export)
    PENDING → PENDING_CANCELLATION (customer request)
    PENDING → CANCELLED
    ORDERED → PENDING_CANCELLATION (customer request)
    PENDING_CANCELLATION → ORDERED (request rejected)
    PENDING_CANCELLATION → CANCELLED (request approved)

Payment runs in parallel:
    DUE → SUCCESSFUL | FAILED
    SUCCESSFUL → REFUNDED (only with an approved cancellation)

Order items are price snapshots taken at creation and never recomputed.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.clock import utcnow
from shared.errors import InvalidTransition
from shared.store import Base


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "PENDING"
    PENDING_CANCELLATION = "PENDING_CANCELLATION"
    ORDERED = "ORDERED"
    CANCELLED = "CANCELLED"


class PaymentStatus(Enum):
    DUE = "DUE"
    SUCCESSFUL = "SUCCESSFUL"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class CancellationAction(Enum):
    CONFIRM = "confirm"
    REJECT = "reject"


# State machine transition maps
_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {
        OrderStatus.ORDERED,
        OrderStatus.PENDING_CANCELLATION,
        OrderStatus.CANCELLED,
    },
    OrderStatus.PENDING_CANCELLATION: {OrderStatus.ORDERED, OrderStatus.CANCELLED},
    OrderStatus.ORDERED: {OrderStatus.PENDING_CANCELLATION},
    OrderStatus.CANCELLED: set(),  # Terminal
}

_VALID_PAYMENT_TRANSITIONS = {
    PaymentStatus.DUE: {PaymentStatus.SUCCESSFUL, PaymentStatus.FAILED},
    PaymentStatus.SUCCESSFUL: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),
    PaymentStatus.REFUNDED: set(),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in _VALID_TRANSITIONS.get(current, set())


def can_transition_payment(current: PaymentStatus, target: PaymentStatus) -> bool:
    return target in _VALID_PAYMENT_TRANSITIONS.get(current, set())


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------
class OrderItem(Base):
    """Immutable price snapshot of one ordered variant."""

    __tablename__ = "order_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id"), index=True)
    position: Mapped[int] = mapped_column(Integer)
    variant_id: Mapped[str] = mapped_column(ForeignKey("product_variants.id"))
    sku: Mapped[str] = mapped_column(String(64))
    product_name: Mapped[str] = mapped_column(String(255))
    quantity: Mapped[int] = mapped_column(Integer)
    # Rounded per unit for display; line_subtotal is rounded from the exact product.
    list_price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    line_subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2))

    order = relationship("Order", back_populates="items")


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id: Mapped[str] = mapped_column(String(36), index=True)
    shipping_address_id: Mapped[str] = mapped_column(ForeignKey("addresses.id"))
    billing_address_id: Mapped[str] = mapped_column(ForeignKey("addresses.id"))
    item_subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    shipping_charge: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    currency: Mapped[str] = mapped_column(String(3))
    status: Mapped[str] = mapped_column(String(32), default=OrderStatus.PENDING.value, index=True)
    payment: Mapped[str] = mapped_column(String(16), default=PaymentStatus.DUE.value, index=True)
    gateway_order_id: Mapped[str] = mapped_column(String(255), unique=True)
    gateway_payment_id: Mapped[str | None] = mapped_column(String(255))
    stock_held: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    items = relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.position",
        cascade="all, delete-orphan",
    )

    # -------------------------------------------------------------------
    # State transition helpers
    # -------------------------------------------------------------------
    @property
    def order_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    @property
    def payment_status(self) -> PaymentStatus:
        return PaymentStatus(self.payment)

    def _transition(self, target: OrderStatus) -> None:
        current = self.order_status
        if not can_transition(current, target):
            raise InvalidTransition({"status": [f"Cannot transition from {current.value} to {target.value}"]})
        self.status = target.value
        self.updated_at = utcnow()

    def _transition_payment(self, target: PaymentStatus) -> None:
        current = self.payment_status
        if not can_transition_payment(current, target):
            raise InvalidTransition({"payment": [f"Cannot transition payment from {current.value} to {target.value}"]})
        self.payment = target.value
        self.updated_at = utcnow()

    # -------------------------------------------------------------------
    # Order lifecycle transitions
    # -------------------------------------------------------------------
    def mark_ordered(self) -> None:
        """Confirm a pending order for fulfillment."""
        if self.order_status != OrderStatus.PENDING:
            raise InvalidTransition({"status": [f"Only PENDING orders can be confirmed, not {self.status}"]})
        self._transition(OrderStatus.ORDERED)

    def request_cancellation(self) -> None:
        current = self.order_status
        if current in (OrderStatus.CANCELLED, OrderStatus.PENDING_CANCELLATION):
            raise InvalidTransition({"status": [f"Order is already {current.value}"]})
        self._transition(OrderStatus.PENDING_CANCELLATION)

    def reject_cancellation(self) -> None:
        if self.order_status != OrderStatus.PENDING_CANCELLATION:
            raise InvalidTransition({"status": ["Order has no pending cancellation request"]})
        self._transition(OrderStatus.ORDERED)

    def confirm_cancellation(self) -> None:
        """Cancel the order and settle its payment sub-state.

        A captured payment becomes REFUNDED; a payment still DUE is voided
        (FAILED) so a late gateway callback cannot capture it.
        """
        if self.order_status != OrderStatus.PENDING_CANCELLATION:
            raise InvalidTransition({"status": ["Order has no pending cancellation request"]})
        self._transition(OrderStatus.CANCELLED)

        if self.payment_status == PaymentStatus.SUCCESSFUL:
            self._transition_payment(PaymentStatus.REFUNDED)
        elif self.payment_status == PaymentStatus.DUE:
            self._transition_payment(PaymentStatus.FAILED)

    # -------------------------------------------------------------------
    # Payment transitions
    # -------------------------------------------------------------------
    def record_payment_success(self, gateway_payment_id: str) -> None:
        self._transition_payment(PaymentStatus.SUCCESSFUL)
        self.gateway_payment_id = gateway_payment_id

    def record_payment_failure(self) -> None:
        self._transition_payment(PaymentStatus.FAILED)

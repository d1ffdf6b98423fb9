"""Order search filters.

Each filter is a small explicit predicate; a query is the AND of a tuple of
them. Callers without ADMIN or MASTER role are always scoped to their own
orders.
"""

from dataclasses import dataclass

from protean.exceptions import ValidationError

from identity.collaborators import Identity
from ordering.order.order import Order, OrderStatus, PaymentStatus


@dataclass(frozen=True)
class ByStatus:
    status: OrderStatus

    def clause(self):
        return Order.status == self.status.value


@dataclass(frozen=True)
class ByPayment:
    payment: PaymentStatus

    def clause(self):
        return Order.payment == self.payment.value


@dataclass(frozen=True)
class ByUser:
    user_id: str

    def clause(self):
        return Order.user_id == self.user_id


@dataclass(frozen=True)
class ById:
    order_id: str

    def clause(self):
        return Order.id == self.order_id


OrderFilter = ByStatus | ByPayment | ByUser | ById


def scope_for(identity: Identity, filters: tuple[OrderFilter, ...] = ()) -> tuple[OrderFilter, ...]:
    """Add the ownership filter unless the caller is ADMIN or MASTER."""
    if identity.is_privileged:
        return tuple(filters)
    return (*filters, ByUser(identity.id))


def clauses(filters: tuple[OrderFilter, ...]) -> list:
    return [f.clause() for f in filters]


def parse_filters(
    status: str | None = None,
    payment: str | None = None,
    order_id: str | None = None,
    user_id: str | None = None,
) -> tuple[OrderFilter, ...]:
    """Build filters from raw query parameters, ignoring the ones not given."""
    filters: list[OrderFilter] = []
    if status:
        try:
            filters.append(ByStatus(OrderStatus(status)))
        except ValueError:
            raise ValidationError({"status": [f"Unknown order status: {status}"]}) from None
    if payment:
        try:
            filters.append(ByPayment(PaymentStatus(payment)))
        except ValueError:
            raise ValidationError({"payment": [f"Unknown payment status: {payment}"]}) from None
    if order_id:
        filters.append(ById(order_id))
    if user_id:
        filters.append(ByUser(user_id))
    return tuple(filters)

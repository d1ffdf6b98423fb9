"""Bulk fulfillment export.

Collects every PENDING order whose payment has not failed, flattens it into
one row per order line with customer and address data, and confirms those
orders (PENDING -> ORDERED) in the same transaction. A batch is either fully
exported and confirmed or left untouched.
"""

import csv
from dataclasses import asdict, dataclass, fields
from typing import IO, Iterable

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from identity.models import Address, User
from ordering.order.order import Order, OrderStatus, PaymentStatus
from pricing.resolver import round_money
from shared.clock import as_utc
from shared.errors import ConsistencyViolation, ValidationError
from shared.store import Store

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ExportRow:
    order_id: str
    order_date: str
    customer_name: str
    customer_email: str
    customer_phone: str
    shipping_line1: str
    shipping_line2: str
    shipping_city: str
    shipping_state: str
    shipping_postal_code: str
    shipping_country: str
    billing_line1: str
    billing_line2: str
    billing_city: str
    billing_state: str
    billing_postal_code: str
    billing_country: str
    sku: str
    product_name: str
    quantity: int
    unit_price: str


EXPORT_COLUMNS = tuple(f.name for f in fields(ExportRow))


def _address_columns(prefix: str, address: Address) -> dict:
    return {
        f"{prefix}_line1": address.line1,
        f"{prefix}_line2": address.line2 or "",
        f"{prefix}_city": address.city,
        f"{prefix}_state": address.state or "",
        f"{prefix}_postal_code": address.postal_code,
        f"{prefix}_country": address.country,
    }


class FulfillmentExporter:
    def __init__(self, store: Store) -> None:
        self.store = store

    def export_pending(self, batch_size: int | None = None) -> list[ExportRow]:
        """Export and confirm pending orders, oldest first.

        Without ``batch_size`` everything goes in one transaction. With it,
        orders are taken ``batch_size`` at a time, one transaction each, until
        none are left.
        """
        if batch_size is not None and batch_size < 1:
            raise ValidationError({"batch_size": ["Batch size must be at least 1"]})

        rows: list[ExportRow] = []
        batches = 0
        while True:
            with self.store.transaction() as session:
                stmt = (
                    select(Order)
                    .where(
                        Order.status == OrderStatus.PENDING.value,
                        Order.payment != PaymentStatus.FAILED.value,
                    )
                    .options(selectinload(Order.items))
                    .order_by(Order.created_at, Order.id)
                    .with_for_update()
                )
                if batch_size:
                    stmt = stmt.limit(batch_size)
                orders = session.scalars(stmt).all()
                if not orders:
                    break

                batch = self._rows(session, orders)
                for order in orders:
                    order.mark_ordered()

            rows.extend(batch)
            batches += 1
            logger.info("fulfillment_batch_exported", orders=len(orders), rows=len(batch))
            if not batch_size:
                break

        logger.info("fulfillment_export_finished", batches=batches, rows=len(rows))
        return rows

    def _rows(self, session: Session, orders) -> list[ExportRow]:
        users = {
            user.id: user
            for user in session.scalars(select(User).where(User.id.in_(sorted({o.user_id for o in orders}))))
        }
        address_ids = {o.shipping_address_id for o in orders} | {o.billing_address_id for o in orders}
        addresses = {
            address.id: address
            for address in session.scalars(select(Address).where(Address.id.in_(sorted(address_ids))))
        }

        rows = []
        for order in orders:
            user = users.get(order.user_id)
            shipping = addresses.get(order.shipping_address_id)
            billing = addresses.get(order.billing_address_id)
            if user is None or shipping is None or billing is None:
                logger.error("fulfillment_export_missing_records", order_id=order.id)
                raise ConsistencyViolation({"order": [f"Order {order.id} references missing customer or address"]})

            header = {
                "order_id": order.id,
                "order_date": as_utc(order.created_at).isoformat(),
                "customer_name": user.name,
                "customer_email": user.email,
                "customer_phone": user.phone or "",
                **_address_columns("shipping", shipping),
                **_address_columns("billing", billing),
            }
            for item in order.items:
                rows.append(
                    ExportRow(
                        **header,
                        sku=item.sku,
                        product_name=item.product_name,
                        quantity=item.quantity,
                        unit_price=str(round_money(item.unit_price)),
                    )
                )
        return rows


def write_csv(rows: Iterable[ExportRow], stream: IO[str]) -> int:
    """Write rows with the ``EXPORT_COLUMNS`` header; returns the row count."""
    writer = csv.DictWriter(stream, fieldnames=EXPORT_COLUMNS)
    writer.writeheader()
    count = 0
    for row in rows:
        writer.writerow(asdict(row))
        count += 1
    return count
